"""Leaderboard ranker.

Single source of truth for competition ordering:
- Comparator: completion_pct desc, then total_points desc.
- Exact ties: earliest join_date first, then lowest participant id.
- Ranks are 1..N with no shared rank numbers.
- Only active participants are ranked; leavers get rank=None.

Ranking is a full recomputation over the competition; reads
(build_leaderboard) never recompute, they serve the last stored ranks.
"""
from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import replace
from typing import Sequence, Set

from .store import PARTICIPANTS, PROGRESS, UnitOfWork
from .types import (
    Competition,
    CompetitionSummary,
    LeaderboardEntry,
    LeaderboardPage,
    Participant,
    RankingRow,
)

logger = logging.getLogger(__name__)


def _ranking_sort_key(participant: Participant) -> tuple:
    return (
        -float(participant.completion_pct),
        -int(participant.total_points),
        participant.join_date,
        participant.id,
    )


def compute_rankings(participants: Sequence[Participant]) -> tuple[RankingRow, ...]:
    """
    Order participants and assign ranks.

    Args:
      participants: candidates; inactive ones are ignored.

    Returns:
      RankingRow tuple in rank order (rank 1 first).
    """
    active = [p for p in participants if p.is_active]
    active.sort(key=_ranking_sort_key)
    return tuple(
        RankingRow(
            participant_id=p.id,
            user_id=p.user_id,
            rank=position,
            completion_pct=float(p.completion_pct),
            total_points=int(p.total_points),
            join_date=p.join_date,
        )
        for position, p in enumerate(active, start=1)
    )


def recompute_rankings(uow: UnitOfWork, competition_id: int) -> tuple[RankingRow, ...]:
    """Recompute and stage ranks for every participant of a competition."""
    participants = uow.participants_of(competition_id)
    rows = compute_rankings(participants)
    rank_by_id = {row.participant_id: row.rank for row in rows}
    changed = 0
    for participant in participants:
        new_rank = rank_by_id.get(participant.id)
        if participant.rank != new_rank:
            uow.save(PARTICIPANTS, replace(participant, rank=new_rank))
            changed += 1
    logger.debug(
        f"Competition {competition_id} ranked {len(rows)} participants ({changed} rank changes)"
    )
    return rows


def _leaderboard_order(participant: Participant) -> tuple:
    # Unranked (never recomputed) rows go last, oldest join first.
    return (
        participant.rank is None,
        participant.rank or 0,
        participant.join_date,
        participant.id,
    )


def summarize_competition(competition: Competition) -> CompetitionSummary:
    return CompetitionSummary(
        id=competition.id,
        name=competition.name,
        start_date=competition.start_date,
        end_date=competition.end_date,
        is_active=competition.is_active,
    )


def leaderboard_entry(participant: Participant, completed_tasks: int) -> LeaderboardEntry:
    return LeaderboardEntry(
        participant_id=participant.id,
        user_id=participant.user_id,
        rank=participant.rank,
        total_points=participant.total_points,
        completion_pct=participant.completion_pct,
        completed_tasks=completed_tasks,
        join_date=participant.join_date,
    )


def _completed_counts(
    uow: UnitOfWork, competition_id: int, participant_ids: Set[int]
) -> Counter:
    if not participant_ids:
        return Counter()
    live_task_ids = {t.id for t in uow.tasks_of(competition_id)}
    rows = uow.select(
        PROGRESS,
        lambda p: p.participant_id in participant_ids
        and p.is_completed
        and p.task_id in live_task_ids,
    )
    return Counter(p.participant_id for p in rows)


def build_leaderboard(
    uow: UnitOfWork, competition: Competition, page: int, page_size: int
) -> LeaderboardPage:
    """Page through the stored ranking of a competition's active participants."""
    active = sorted(
        uow.participants_of(competition.id, active=True), key=_leaderboard_order
    )
    total_items = len(active)
    start = (page - 1) * page_size
    window = active[start : start + page_size]
    completed = _completed_counts(uow, competition.id, {p.id for p in window})
    return LeaderboardPage(
        competition=summarize_competition(competition),
        entries=tuple(leaderboard_entry(p, completed[p.id]) for p in window),
        total_items=total_items,
        total_pages=math.ceil(total_items / page_size) if page_size else 0,
        page=page,
        page_size=page_size,
    )


__all__ = [
    "build_leaderboard",
    "compute_rankings",
    "leaderboard_entry",
    "recompute_rankings",
    "summarize_competition",
]
