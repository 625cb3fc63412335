"""Progress tracker: record a participant's value for a task and derive completion.

Completion policy:
- is_completed follows the *current* value (value >= target), so a later
  decrease below the target flips it back to False.
- completion_date is stamped on the first transition to completed and is never
  cleared or moved afterwards.

The owning participant is rescored inside the same unit of work, so cached
totals never lag behind the Progress rows.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Any

from .errors import CompetitionClosedError, InvalidInputError, NotEnrolledError, NotFoundError
from .scoring import recompute_participant_score
from .store import PROGRESS, UnitOfWork
from .types import CompetitionTask, Progress, ProgressOutcome

logger = logging.getLogger(__name__)


def _coerce_value(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(
            "Current value must be a number", details={"value": repr(value)}
        )
    value = float(value)
    if not math.isfinite(value):
        raise InvalidInputError("Current value must be finite", details={"value": value})
    if value < 0:
        raise InvalidInputError("Current value cannot be negative", details={"value": value})
    return value


def apply_value(
    progress: Progress,
    task: CompetitionTask,
    value: float,
    now: datetime,
    notes: str | None = None,
) -> Progress:
    """Return the Progress row updated with a new value (pure)."""
    is_completed = value >= task.target_value
    completion_date = progress.completion_date
    if is_completed and completion_date is None:
        completion_date = now
    return replace(
        progress,
        current_value=value,
        is_completed=is_completed,
        completion_date=completion_date,
        notes=notes if notes is not None else progress.notes,
        last_updated=now,
    )


def rederive_completion(progress: Progress, task: CompetitionTask, now: datetime) -> Progress:
    """Re-evaluate completion of an existing row against the task's current target."""
    is_completed = progress.current_value >= task.target_value
    completion_date = progress.completion_date
    if is_completed and completion_date is None:
        completion_date = now
    if is_completed == progress.is_completed and completion_date == progress.completion_date:
        return progress
    return replace(progress, is_completed=is_completed, completion_date=completion_date)


def update_progress(
    uow: UnitOfWork,
    participant_id: int,
    task_id: int,
    value: Any,
    now: datetime,
    notes: str | None = None,
) -> ProgressOutcome:
    """
    Write a participant's value for one task and rescore the participant.

    Raises:
      InvalidInputError: value is negative, non-finite or not a number.
      NotFoundError: participant, task or progress row missing.
      NotEnrolledError: participant has left the competition.
      CompetitionClosedError: competition is inactive or has ended.
    """
    new_value = _coerce_value(value)

    participant = uow.participant(participant_id)
    if participant is None:
        raise NotFoundError("Participant", participant_id)
    task = uow.task(task_id)
    if task is None or task.competition_id != participant.competition_id:
        raise NotFoundError("Task", task_id)
    if not participant.is_active:
        raise NotEnrolledError(participant.user_id, participant.competition_id)
    competition = uow.competition(participant.competition_id)
    if competition is None:
        raise NotFoundError("Competition", participant.competition_id)
    if not competition.is_open_at(now):
        raise CompetitionClosedError(competition.id)

    progress = uow.find_progress(participant_id, task_id)
    if progress is None:
        raise NotFoundError(
            "Progress",
            f"{participant_id}/{task_id}",
            message="Progress record not found",
        )

    updated = uow.save(PROGRESS, apply_value(progress, task, new_value, now, notes))
    if updated.is_completed and not progress.is_completed:
        logger.info(f"Participant {participant_id} completed task {task_id}")
    elif progress.is_completed and not updated.is_completed:
        logger.debug(
            f"Participant {participant_id} fell below target on task {task_id} "
            f"({new_value} < {task.target_value})"
        )

    rescored = recompute_participant_score(uow, participant_id)
    return ProgressOutcome(progress=updated, participant=rescored)


__all__ = ["apply_value", "rederive_completion", "update_progress"]
