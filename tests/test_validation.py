from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from fitcomp_core import (
    AlreadyEnrolledError,
    CompetitionCreate,
    EngineConfig,
    InputSanitizer,
    InvalidInputError,
    NotFoundError,
    ProgressUpdate,
    TaskCreate,
    TaskUpdate,
)


def _competition(**overrides):
    payload = {
        "gymId": 1,
        "name": "Spring Strength Challenge",
        "startDate": "2026-03-01T00:00:00Z",
        "endDate": "2026-04-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def test_competition_create_defaults_and_utc_dates():
    data = CompetitionCreate.model_validate(
        _competition(startDate="2026-03-01T00:00:00", endDate="2026-04-01T02:00:00+02:00")
    )
    assert data.isActive is True
    assert data.maxParticipants is None
    assert data.startDate == datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert data.endDate == datetime(2026, 4, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "   "},
        {"name": "<script>alert(1)</script>"},
        {"name": "<b>bold</b>"},
        {"gymId": 0},
        {"maxParticipants": 0},
        {"imageUrl": "ftp://example.com/a.png"},
        {"endDate": "2026-03-01T00:00:00Z"},
        {"unexpected": True},
    ],
)
def test_competition_create_rejects(overrides):
    with pytest.raises(ValidationError):
        CompetitionCreate.model_validate(_competition(**overrides))


def test_task_create_rules():
    task = TaskCreate.model_validate({"name": " Deadlift ", "targetValue": 100, "unit": "kg"})
    assert task.name == "Deadlift"
    assert task.pointsValue is None

    for bad in (
        {"name": "Deadlift", "targetValue": 0, "unit": "kg"},
        {"name": "Deadlift", "targetValue": float("inf"), "unit": "kg"},
        {"name": "Deadlift", "targetValue": 100, "unit": "kg", "pointsValue": 0},
        {"name": "Deadlift", "targetValue": 100, "unit": " "},
    ):
        with pytest.raises(ValidationError):
            TaskCreate.model_validate(bad)


def test_task_update_is_partial():
    assert TaskUpdate.model_validate({}).model_dump(exclude_none=True) == {}
    with pytest.raises(ValidationError):
        TaskUpdate.model_validate({"targetValue": -3})


def test_progress_update_rules():
    assert ProgressUpdate.model_validate({"currentValue": 0}).currentValue == 0
    for bad in ({"currentValue": -1}, {"currentValue": float("nan")}, {"notes": "x"}):
        with pytest.raises(ValidationError):
            ProgressUpdate.model_validate(bad)
    with pytest.raises(ValidationError):
        ProgressUpdate.model_validate({"currentValue": 1, "notes": "x" * 2001})


def test_validate_payload_wraps_errors():
    with pytest.raises(InvalidInputError) as excinfo:
        InputSanitizer.validate_payload(TaskCreate, {"name": "Row", "unit": "m"})
    error = excinfo.value
    assert error.message.startswith("Invalid TaskCreate:")
    assert error.details["errors"][0]["loc"] == "targetValue"
    assert error.status_code == 400


def test_validate_payload_passes_models_through():
    model = ProgressUpdate(currentValue=3)
    assert InputSanitizer.validate_payload(ProgressUpdate, model) is model


def test_sanitize_notes():
    assert InputSanitizer.sanitize_notes(None) is None
    assert InputSanitizer.sanitize_notes("   ") is None
    assert InputSanitizer.sanitize_notes(" set 1\n\tset 2\x07 ") == "set 1\n\tset 2"
    assert InputSanitizer.sanitize_notes("abcdef", max_length=3) == "abc"


def test_sanitize_string():
    assert InputSanitizer.sanitize_string("  hi\0there  ") == "hithere"
    assert InputSanitizer.sanitize_string(12345, max_length=3) == "123"


def test_config_defaults():
    config = EngineConfig()
    assert config.default_page_size == 10
    assert config.max_page_size == 100
    assert config.default_points_value == 100


def test_config_from_env():
    config = EngineConfig.from_env(
        environ={
            "FITCOMP_MAX_PAGE_SIZE": "50",
            "FITCOMP_DEFAULT_POINTS_VALUE": "250",
            "OTHER_MAX_PAGE_SIZE": "1",
        }
    )
    assert config.max_page_size == 50
    assert config.default_points_value == 250
    assert config.default_page_size == 10

    custom = EngineConfig.from_env(prefix="GYM_", environ={"GYM_DEFAULT_PAGE_SIZE": "5"})
    assert custom.default_page_size == 5


def test_config_rejects_inconsistent_page_sizes():
    with pytest.raises(ValidationError):
        EngineConfig(default_page_size=20, max_page_size=10)
    with pytest.raises(ValidationError):
        EngineConfig.from_env(environ={"FITCOMP_MAX_PAGE_SIZE": "0"})


def test_errors_serialize():
    error = AlreadyEnrolledError(3, 9)
    assert error.to_dict() == {
        "kind": "conflict",
        "code": "already_enrolled",
        "message": "User is already participating in this competition",
        "status_code": 409,
        "details": {"user_id": 3, "competition_id": 9},
    }
    assert str(NotFoundError("Task", 5)) == "[not_found:task_not_found] Task 5 not found"
