from __future__ import annotations

from fitcomp_core import CompetitionTask, Progress, compute_score, task_contribution


def _task(task_id=1, target=100, points=200):
    return CompetitionTask(
        id=task_id, competition_id=1, name=f"T{task_id}", target_value=target, unit="kg", points_value=points
    )


def _progress(task_id=1, value=0.0, completed=False):
    return Progress(
        id=task_id, participant_id=1, task_id=task_id, current_value=value, is_completed=completed
    )


def test_partial_progress_earns_floored_share_of_points():
    assert task_contribution(_progress(value=40), _task()) == 80


def test_completed_task_earns_exactly_full_points():
    assert task_contribution(_progress(value=100, completed=True), _task()) == 200
    assert task_contribution(_progress(value=350, completed=True), _task()) == 200


def test_zero_progress_earns_nothing():
    assert task_contribution(_progress(value=0), _task()) == 0


def test_partial_points_use_exact_arithmetic():
    # 100 * 0.29 is 28.999... in binary floating point.
    assert task_contribution(_progress(value=29), _task(points=100)) == 29
    assert task_contribution(_progress(value=33.4), _task(points=150)) == 50


def test_compute_score_without_rows_is_zero():
    summary = compute_score([])
    assert summary.total_points == 0
    assert summary.completion_pct == 0
    assert summary.total_tasks == 0


def test_compute_score_mixes_full_and_partial_credit():
    rows = [
        (_progress(task_id=1, value=120, completed=True), _task(task_id=1)),
        (_progress(task_id=2, value=40), _task(task_id=2)),
        (_progress(task_id=3, value=0), _task(task_id=3, points=50)),
        (_progress(task_id=4, value=10, completed=True), _task(task_id=4, target=10, points=30)),
    ]
    summary = compute_score(rows)
    assert summary.total_points == 200 + 80 + 0 + 30
    assert summary.completed_tasks == 2
    assert summary.total_tasks == 4
    assert summary.completion_pct == 50.0


def test_completion_pct_stays_within_bounds():
    for completed in range(0, 4):
        rows = [
            (_progress(task_id=i, value=100 if i < completed else 10, completed=i < completed), _task(task_id=i))
            for i in range(3)
        ]
        pct = compute_score(rows).completion_pct
        assert 0 <= pct <= 100
    all_done = [(_progress(task_id=i, value=100, completed=True), _task(task_id=i)) for i in range(3)]
    assert compute_score(all_done).completion_pct == 100.0
