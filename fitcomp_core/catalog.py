"""Task catalog and competition CRUD.

Mutations require the caller to be an admin or the owner of the competition's
gym. Task changes keep derived state in step:
- create: backfills a zero Progress row for every participant (active or not)
- update: re-derives completion when the target moves (completion dates kept)
- delete: drops the task's Progress rows
and each of them rescores the affected participants and reranks the competition.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Optional

from .enrollment import ensure_progress_rows
from .errors import ForbiddenError, InvalidInputError, NotFoundError
from .progress import rederive_completion
from .ranking import recompute_rankings
from .scoring import recompute_participant_score
from .store import COMPETITIONS, PROGRESS, TASKS, UnitOfWork
from .types import Caller, Competition, CompetitionPage, CompetitionTask
from .validation import (
    CompetitionCreate,
    CompetitionUpdate,
    InputSanitizer,
    TaskCreate,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

_DESCRIPTION_MAX = 5000


def authorize_gym_admin(uow: UnitOfWork, caller: Caller, gym_id: int) -> None:
    """Admins may manage any gym; gym owners only their own."""
    gym = uow.gym(gym_id)
    if gym is None:
        raise NotFoundError("Gym", gym_id)
    if caller.role == "admin":
        return
    if caller.role == "gym_owner" and gym.owner_id == caller.user_id:
        return
    logger.warning(f"User {caller.user_id} ({caller.role}) refused management of gym {gym_id}")
    raise ForbiddenError(
        "You can only manage competitions for gyms you own",
        details={"user_id": caller.user_id, "gym_id": gym_id},
    )


def _require_competition(uow: UnitOfWork, competition_id: int) -> Competition:
    competition = uow.competition(competition_id)
    if competition is None:
        raise NotFoundError("Competition", competition_id)
    return competition


def _require_task(uow: UnitOfWork, task_id: int) -> CompetitionTask:
    task = uow.task(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def _clean_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return InputSanitizer.sanitize_string(value, _DESCRIPTION_MAX) or None


def _rescore_all(uow: UnitOfWork, competition_id: int) -> None:
    for participant in uow.participants_of(competition_id):
        recompute_participant_score(uow, participant.id)
    recompute_rankings(uow, competition_id)


# ==================== COMPETITIONS ====================


def create_competition(
    uow: UnitOfWork, caller: Caller, data: CompetitionCreate, now: datetime
) -> Competition:
    authorize_gym_admin(uow, caller, data.gymId)
    competition = Competition(
        id=uow.next_id(COMPETITIONS),
        gym_id=data.gymId,
        name=data.name,
        description=_clean_description(data.description),
        start_date=data.startDate,
        end_date=data.endDate,
        image_url=data.imageUrl,
        max_participants=data.maxParticipants,
        is_active=data.isActive,
        created_at=now,
    )
    uow.save(COMPETITIONS, competition)
    logger.info(f"Competition {competition.id} '{competition.name}' created for gym {data.gymId}")
    return competition


def update_competition(
    uow: UnitOfWork, caller: Caller, competition_id: int, data: CompetitionUpdate
) -> Competition:
    competition = _require_competition(uow, competition_id)
    authorize_gym_admin(uow, caller, competition.gym_id)

    changes = {}
    if data.name is not None:
        changes["name"] = data.name
    if data.description is not None:
        changes["description"] = _clean_description(data.description)
    if data.startDate is not None:
        changes["start_date"] = data.startDate
    if data.endDate is not None:
        changes["end_date"] = data.endDate
    if data.imageUrl is not None:
        changes["image_url"] = data.imageUrl
    if data.maxParticipants is not None:
        changes["max_participants"] = data.maxParticipants
    if data.isActive is not None:
        changes["is_active"] = data.isActive

    updated = replace(competition, **changes)
    if updated.end_date <= updated.start_date:
        raise InvalidInputError(
            "End date must be after start date",
            details={
                "start_date": updated.start_date.isoformat(),
                "end_date": updated.end_date.isoformat(),
            },
        )
    uow.save(COMPETITIONS, updated)
    logger.info(f"Competition {competition_id} updated: {sorted(changes)}")
    return updated


def delete_competition(
    uow: UnitOfWork, caller: Caller, competition_id: int
) -> Competition | None:
    """Soft-delete when anybody ever joined, hard-delete otherwise.

    Returns the deactivated competition, or None when it was removed.
    """
    competition = _require_competition(uow, competition_id)
    authorize_gym_admin(uow, caller, competition.gym_id)

    if uow.participants_of(competition_id):
        deactivated = uow.save(COMPETITIONS, replace(competition, is_active=False))
        logger.info(f"Competition {competition_id} has participants; deactivated instead of deleted")
        return deactivated

    for task in uow.tasks_of(competition_id):
        uow.delete(TASKS, task.id)
    uow.delete(COMPETITIONS, competition_id)
    logger.info(f"Competition {competition_id} deleted")
    return None


def list_competitions(
    uow: UnitOfWork,
    now: datetime,
    *,
    gym_id: int | None = None,
    is_active: bool | None = True,
    search: str = "",
    page: int = 1,
    page_size: int = 10,
    include_ended: bool = False,
) -> CompetitionPage:
    needle = (search or "").strip().lower()

    def _matches(c: Competition) -> bool:
        if gym_id is not None and c.gym_id != gym_id:
            return False
        if is_active is not None and c.is_active != is_active:
            return False
        if not include_ended and c.has_ended_at(now):
            return False
        if needle:
            haystack = f"{c.name}\n{c.description or ''}".lower()
            if needle not in haystack:
                return False
        return True

    matches = uow.select(COMPETITIONS, _matches)
    matches.sort(key=lambda c: (c.start_date, c.id), reverse=True)
    start = (page - 1) * page_size
    return CompetitionPage(
        competitions=tuple(matches[start : start + page_size]),
        total_items=len(matches),
        total_pages=math.ceil(len(matches) / page_size),
        page=page,
        page_size=page_size,
    )


# ==================== TASKS ====================


def create_task(
    uow: UnitOfWork,
    caller: Caller,
    competition_id: int,
    data: TaskCreate,
    *,
    default_points: int,
) -> CompetitionTask:
    competition = _require_competition(uow, competition_id)
    authorize_gym_admin(uow, caller, competition.gym_id)
    if data.exerciseId is not None and uow.exercise(data.exerciseId) is None:
        raise NotFoundError("Exercise", data.exerciseId)

    task = CompetitionTask(
        id=uow.next_id(TASKS),
        competition_id=competition_id,
        name=data.name,
        description=_clean_description(data.description),
        target_value=float(data.targetValue),
        unit=data.unit,
        points_value=data.pointsValue if data.pointsValue is not None else default_points,
        exercise_id=data.exerciseId,
    )
    uow.save(TASKS, task)

    participants = uow.participants_of(competition_id)
    for participant in participants:
        ensure_progress_rows(uow, participant)
    _rescore_all(uow, competition_id)
    logger.info(
        f"Task {task.id} '{task.name}' added to competition {competition_id} "
        f"(backfilled {len(participants)} participants)"
    )
    return task


def update_task(
    uow: UnitOfWork, caller: Caller, task_id: int, data: TaskUpdate, now: datetime
) -> CompetitionTask:
    task = _require_task(uow, task_id)
    competition = _require_competition(uow, task.competition_id)
    authorize_gym_admin(uow, caller, competition.gym_id)

    changes = {}
    if data.name is not None:
        changes["name"] = data.name
    if data.description is not None:
        changes["description"] = _clean_description(data.description)
    if data.targetValue is not None:
        changes["target_value"] = float(data.targetValue)
    if data.unit is not None:
        changes["unit"] = data.unit
    if data.pointsValue is not None:
        changes["points_value"] = data.pointsValue
    updated = uow.save(TASKS, replace(task, **changes))

    if "target_value" in changes:
        for progress in uow.progress_for_task(task_id):
            rederived = rederive_completion(progress, updated, now)
            if rederived is not progress:
                uow.save(PROGRESS, rederived)
    if "target_value" in changes or "points_value" in changes:
        _rescore_all(uow, task.competition_id)
    logger.info(f"Task {task_id} updated: {sorted(changes)}")
    return updated


def delete_task(uow: UnitOfWork, caller: Caller, task_id: int) -> CompetitionTask:
    task = _require_task(uow, task_id)
    competition = _require_competition(uow, task.competition_id)
    authorize_gym_admin(uow, caller, competition.gym_id)

    rows = uow.progress_for_task(task_id)
    for progress in rows:
        uow.delete(PROGRESS, progress.id)
    uow.delete(TASKS, task_id)
    _rescore_all(uow, task.competition_id)
    logger.info(f"Task {task_id} deleted from competition {task.competition_id} ({len(rows)} progress rows)")
    return task


__all__ = [
    "authorize_gym_admin",
    "create_competition",
    "create_task",
    "delete_competition",
    "delete_task",
    "list_competitions",
    "update_competition",
    "update_task",
]
