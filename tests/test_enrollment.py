from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

import fitcomp_core.ranking as ranking_module
from fitcomp_core import (
    AlreadyEnrolledError,
    CapacityExceededError,
    CompetitionClosedError,
    CompetitionError,
    NotEnrolledError,
    NotFoundError,
    compute_score,
)


def _progress_rows(engine, participant_id):
    with engine.store.transaction() as uow:
        return uow.progress_of(participant_id)


def test_join_creates_zeroed_participant_and_progress_rows(engine, clock, make_competition, make_task):
    competition = make_competition()
    squat = make_task(competition.id, name="Squat")
    row = make_task(competition.id, name="Row", unit="m")

    participant = engine.join(7, competition.id)

    assert participant.user_id == 7
    assert participant.is_active is True
    assert participant.join_date == clock()
    assert participant.total_points == 0
    assert participant.completion_pct == 0
    assert participant.rank == 1
    rows = _progress_rows(engine, participant.id)
    assert sorted(r.task_id for r in rows) == [squat.id, row.id]
    assert all(r.current_value == 0 and r.is_completed is False for r in rows)


def test_join_twice_is_a_conflict(engine, make_competition):
    competition = make_competition()
    engine.join(1, competition.id)
    with pytest.raises(AlreadyEnrolledError) as excinfo:
        engine.join(1, competition.id)
    assert excinfo.value.kind == "conflict"
    assert excinfo.value.code == "already_enrolled"


def test_capacity_blocks_then_frees_after_leave(engine, make_competition):
    competition = make_competition(maxParticipants=2)
    engine.join(1, competition.id)
    engine.join(2, competition.id)

    with pytest.raises(CapacityExceededError) as excinfo:
        engine.join(3, competition.id)
    assert excinfo.value.kind == "capacity_exceeded"

    engine.leave(1, competition.id)
    third = engine.join(3, competition.id)
    assert third.is_active


def test_leave_requires_active_participation(engine, make_competition):
    competition = make_competition()
    with pytest.raises(NotEnrolledError):
        engine.leave(5, competition.id)

    engine.join(5, competition.id)
    engine.leave(5, competition.id)
    with pytest.raises(NotEnrolledError) as excinfo:
        engine.leave(5, competition.id)
    assert excinfo.value.kind == "conflict"


def test_leave_drops_from_leaderboard_but_keeps_progress(engine, make_competition, make_task):
    competition = make_competition()
    task = make_task(competition.id)
    stayer = engine.join(1, competition.id)
    leaver = engine.join(2, competition.id)
    engine.update_progress(leaver.id, task.id, 100)

    left = engine.leave(2, competition.id)

    assert left.is_active is False
    assert left.rank is None
    board = engine.get_leaderboard(competition.id)
    assert [e.participant_id for e in board.entries] == [stayer.id]
    assert board.entries[0].rank == 1
    rows = _progress_rows(engine, leaver.id)
    assert len(rows) == 1 and rows[0].current_value == 100


def test_rejoin_reactivates_record_with_history(engine, make_competition, make_task):
    competition = make_competition()
    first = make_task(competition.id, name="Squat")
    participant = engine.join(1, competition.id)
    engine.update_progress(participant.id, first.id, 100)
    engine.leave(1, competition.id)

    second = make_task(competition.id, name="Bench")
    again = engine.join(1, competition.id)

    assert again.id == participant.id
    assert again.is_active is True
    rows = {r.task_id: r for r in _progress_rows(engine, again.id)}
    assert rows[first.id].is_completed is True
    assert rows[second.id].current_value == 0
    assert again.completion_pct == 50.0
    assert again.rank == 1


def test_cannot_join_ended_or_inactive_competition(engine, clock, make_competition):
    ended = make_competition(
        startDate=(clock() - timedelta(days=10)).isoformat(),
        endDate=(clock() - timedelta(days=1)).isoformat(),
    )
    with pytest.raises(CompetitionClosedError):
        engine.join(1, ended.id)

    paused = make_competition(isActive=False)
    with pytest.raises(CompetitionClosedError):
        engine.join(1, paused.id)


def test_joining_before_start_is_allowed(engine, clock, make_competition):
    upcoming = make_competition(
        startDate=(clock() + timedelta(days=3)).isoformat(),
        endDate=(clock() + timedelta(days=10)).isoformat(),
    )
    assert engine.join(1, upcoming.id).is_active


def test_join_unknown_competition(engine):
    with pytest.raises(NotFoundError) as excinfo:
        engine.join(1, 404)
    assert excinfo.value.status_code == 404


def _race_joins(engine, competition_id, user_ids):
    barrier = threading.Barrier(len(user_ids))

    def _attempt(user_id):
        barrier.wait()
        try:
            engine.join(user_id, competition_id)
            return "ok"
        except CompetitionError as exc:
            return exc.kind

    with ThreadPoolExecutor(max_workers=len(user_ids)) as pool:
        return list(pool.map(_attempt, user_ids))


def test_concurrent_joins_at_capacity_boundary(engine, make_competition, make_task):
    competition = make_competition(maxParticipants=5)
    make_task(competition.id)
    engine.join(1, competition.id)

    # 4 free slots, 5 simultaneous attempts.
    outcomes = _race_joins(engine, competition.id, [10, 11, 12, 13, 14])

    assert outcomes.count("ok") == 4
    assert outcomes.count("capacity_exceeded") == 1
    board = engine.get_leaderboard(competition.id)
    assert board.total_items == 5
    assert sorted(e.rank for e in board.entries) == [1, 2, 3, 4, 5]


def test_many_concurrent_joins_never_over_admit(engine, make_competition):
    competition = make_competition(maxParticipants=10)
    outcomes = _race_joins(engine, competition.id, list(range(100, 125)))
    assert outcomes.count("ok") == 10
    assert outcomes.count("capacity_exceeded") == 15


def _assert_scores_match_progress(engine, competition_id):
    with engine.store.transaction() as uow:
        for participant in uow.participants_of(competition_id):
            rows = [(p, uow.task(p.task_id)) for p in uow.progress_of(participant.id)]
            summary = compute_score(rows)
            assert participant.total_points == summary.total_points
            assert participant.completion_pct == summary.completion_pct


@pytest.mark.parametrize("action", ["leave", "join", "recompute"])
def test_ranking_pass_never_overwrites_concurrent_progress(
    engine, make_competition, make_task, monkeypatch, action
):
    competition = make_competition()
    task = make_task(competition.id)
    first = engine.join(1, competition.id)
    second = engine.join(2, competition.id)
    engine.update_progress(first.id, task.id, 30)

    ranking_read = threading.Event()
    release = threading.Event()
    original = ranking_module.compute_rankings

    def _slow_rankings(participants):
        if threading.current_thread().name == "ranker" and not ranking_read.is_set():
            ranking_read.set()
            release.wait(timeout=5)
        return original(participants)

    monkeypatch.setattr(ranking_module, "compute_rankings", _slow_rankings)

    actions = {
        "leave": lambda: engine.leave(1, competition.id),
        "join": lambda: engine.join(3, competition.id),
        "recompute": lambda: engine.recompute_rankings(competition.id),
    }
    errors = []

    def _run(fn):
        try:
            fn()
        except Exception as exc:
            errors.append(exc)

    ranker = threading.Thread(target=_run, args=(actions[action],), name="ranker")
    updater = threading.Thread(
        target=_run, args=(lambda: engine.update_progress(second.id, task.id, 40),)
    )
    ranker.start()
    assert ranking_read.wait(timeout=5)
    updater.start()
    updater.join(timeout=0.2)
    # The participant is locked by the ranking pass until it commits.
    assert updater.is_alive()
    release.set()
    ranker.join(timeout=5)
    updater.join(timeout=5)

    assert errors == []
    with engine.store.transaction() as uow:
        assert uow.participant(second.id).total_points == 80
    _assert_scores_match_progress(engine, competition.id)
    board = engine.get_leaderboard(competition.id)
    assert board.entries[0].participant_id == second.id
