"""Enrollment manager: join/leave with capacity and single-membership checks.

Functions here operate on a UnitOfWork and must be called while holding the
competition lock, so the capacity check and the insert are atomic.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from .errors import (
    AlreadyEnrolledError,
    CapacityExceededError,
    CompetitionClosedError,
    NotEnrolledError,
    NotFoundError,
)
from .ranking import recompute_rankings
from .scoring import recompute_participant_score
from .store import PARTICIPANTS, PROGRESS, UnitOfWork
from .types import Competition, Participant, Progress

logger = logging.getLogger(__name__)


def ensure_progress_rows(uow: UnitOfWork, participant: Participant) -> int:
    """Create a zero Progress row for every task the participant has none for."""
    existing = {p.task_id for p in uow.progress_of(participant.id)}
    created = 0
    for task in uow.tasks_of(participant.competition_id):
        if task.id in existing:
            continue
        uow.save(
            PROGRESS,
            Progress(
                id=uow.next_id(PROGRESS),
                participant_id=participant.id,
                task_id=task.id,
                current_value=0.0,
                is_completed=False,
            ),
        )
        created += 1
    return created


def _check_capacity(uow: UnitOfWork, competition: Competition) -> None:
    if competition.max_participants is None:
        return
    active_count = len(uow.participants_of(competition.id, active=True))
    if active_count >= competition.max_participants:
        logger.warning(
            f"Join refused: competition {competition.id} full "
            f"({active_count}/{competition.max_participants})"
        )
        raise CapacityExceededError(competition.id, competition.max_participants)


def join_competition(
    uow: UnitOfWork, user_id: int, competition_id: int, now: datetime
) -> Participant:
    competition = uow.competition(competition_id)
    if competition is None:
        raise NotFoundError("Competition", competition_id)
    if not competition.is_open_at(now):
        raise CompetitionClosedError(competition_id)

    existing = uow.find_participant(user_id, competition_id)
    if existing is not None and existing.is_active:
        raise AlreadyEnrolledError(user_id, competition_id)

    _check_capacity(uow, competition)

    if existing is not None:
        # Re-joining restores the old record and its progress history.
        participant = uow.save(PARTICIPANTS, replace(existing, is_active=True))
        backfilled = ensure_progress_rows(uow, participant)
        recompute_participant_score(uow, participant.id)
        logger.info(
            f"User {user_id} rejoined competition {competition_id} "
            f"(participant {participant.id}, {backfilled} new task rows)"
        )
    else:
        participant = uow.save(
            PARTICIPANTS,
            Participant(
                id=uow.next_id(PARTICIPANTS),
                user_id=user_id,
                competition_id=competition_id,
                join_date=now,
                is_active=True,
                total_points=0,
                completion_pct=0.0,
            ),
        )
        ensure_progress_rows(uow, participant)
        logger.info(
            f"User {user_id} joined competition {competition_id} (participant {participant.id})"
        )

    recompute_rankings(uow, competition_id)
    return uow.participant(participant.id)


def leave_competition(uow: UnitOfWork, user_id: int, competition_id: int) -> Participant:
    if uow.competition(competition_id) is None:
        raise NotFoundError("Competition", competition_id)
    participant = uow.find_participant(user_id, competition_id)
    if participant is None or not participant.is_active:
        raise NotEnrolledError(user_id, competition_id)

    left = uow.save(PARTICIPANTS, replace(participant, is_active=False, rank=None))
    recompute_rankings(uow, competition_id)
    logger.info(f"User {user_id} left competition {competition_id} (participant {left.id})")
    return left


__all__ = ["ensure_progress_rows", "join_competition", "leave_competition"]
