"""Scoring engine: per-participant points and completion percentage.

Rules:
- completed task -> full points_value, however far current_value exceeds the target
- otherwise -> floor(points_value * current_value / target_value), value clamped to [0, target)
- completion_pct = completed rows / all rows * 100 (0 with no rows)

Arithmetic is done on exact rationals so e.g. 200 * 40 / 100 floors to 80, never 79.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from fractions import Fraction
from typing import Iterable, Tuple

from .errors import NotFoundError
from .store import PARTICIPANTS, UnitOfWork
from .types import CompetitionTask, Participant, Progress, ScoreSummary

logger = logging.getLogger(__name__)


def _exact(value: float | int) -> Fraction:
    if isinstance(value, int):
        return Fraction(value)
    # str() gives the shortest repr, so 0.1 becomes 1/10 rather than its binary approximation.
    return Fraction(str(value))


def task_contribution(progress: Progress, task: CompetitionTask) -> int:
    if progress.is_completed:
        return int(task.points_value)
    target = _exact(task.target_value)
    value = min(max(_exact(progress.current_value), Fraction(0)), target)
    if value <= 0:
        return 0
    return math.floor(Fraction(int(task.points_value)) * value / target)


def compute_score(rows: Iterable[Tuple[Progress, CompetitionTask]]) -> ScoreSummary:
    """Aggregate (Progress, Task) pairs of one participant into a ScoreSummary."""
    total_points = 0
    completed = 0
    total = 0
    for progress, task in rows:
        total += 1
        if progress.is_completed:
            completed += 1
        total_points += task_contribution(progress, task)
    completion_pct = (completed / total) * 100 if total else 0.0
    return ScoreSummary(
        total_points=total_points,
        completion_pct=float(completion_pct),
        completed_tasks=completed,
        total_tasks=total,
    )


def score_participant(uow: UnitOfWork, participant_id: int) -> ScoreSummary:
    rows = []
    for progress in uow.progress_of(participant_id):
        task = uow.task(progress.task_id)
        if task is None:
            # Orphaned row (task deleted in this unit of work); it no longer counts.
            continue
        rows.append((progress, task))
    return compute_score(rows)


def recompute_participant_score(uow: UnitOfWork, participant_id: int) -> Participant:
    """Recompute and stage a participant's total_points/completion_pct."""
    participant = uow.participant(participant_id)
    if participant is None:
        raise NotFoundError("Participant", participant_id)
    summary = score_participant(uow, participant_id)
    updated = replace(
        participant,
        total_points=summary.total_points,
        completion_pct=summary.completion_pct,
    )
    uow.save(PARTICIPANTS, updated)
    logger.debug(
        f"Participant {participant_id} rescored: {summary.total_points} pts, "
        f"{summary.completion_pct:.2f}% ({summary.completed_tasks}/{summary.total_tasks})"
    )
    return updated


__all__ = [
    "compute_score",
    "recompute_participant_score",
    "score_participant",
    "task_contribution",
]
