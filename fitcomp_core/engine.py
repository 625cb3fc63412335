"""Competition engine facade (pure Python, no web framework or ORM).

CompetitionEngine is what a transport layer calls. For every operation it:
- validates raw payloads (validation.py) and turns failures into InvalidInputError
- takes the right lock: per competition for enrollment, ranking and catalog
  changes; per participant for progress writes
- runs the component function inside one store unit of work, so any error
  rolls every staged write back

Locking:
- competition lock: join, leave, recompute_rankings, competition/task mutations
- participant lock: update_progress write + rescore
- anything that rewrites participant rows across a competition (ranking passes,
  task mutations) also takes the locks of all its participants, in id order,
  after the competition lock
- update_progress releases the participant lock before taking the competition
  lock for its ranking pass, so the two are never held in the opposite order
"""
from __future__ import annotations

import logging
import math
from contextlib import ExitStack
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from . import catalog, enrollment, progress, ranking, scoring
from .config import EngineConfig
from .errors import InvalidInputError, NotEnrolledError, NotFoundError
from .store import EXERCISES, GYMS, PARTICIPANTS, CompetitionStore, InMemoryStore
from .types import (
    Caller,
    Competition,
    CompetitionDetail,
    CompetitionPage,
    CompetitionTask,
    Exercise,
    Gym,
    LeaderboardPage,
    Participant,
    ParticipationPage,
    ProgressOutcome,
    RankingRow,
    TaskProgress,
    UserProgress,
)
from .validation import (
    CompetitionCreate,
    CompetitionUpdate,
    InputSanitizer,
    PageQuery,
    ProgressUpdate,
    TaskCreate,
    TaskUpdate,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CompetitionEngine:
    """Entry point for competition, enrollment, progress and leaderboard operations."""

    def __init__(
        self,
        store: CompetitionStore | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store if store is not None else InMemoryStore()
        self.config = config or EngineConfig()
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    def _paging(self, page: int, page_size: Optional[int]) -> tuple[int, int]:
        size = self.config.default_page_size if page_size is None else page_size
        query = InputSanitizer.validate_payload(PageQuery, {"page": page, "limit": size})
        if query.limit > self.config.max_page_size:
            raise InvalidInputError(
                f"Page size cannot exceed {self.config.max_page_size}",
                details={"page_size": query.limit},
            )
        return query.page, query.limit

    def _competition_id_of_task(self, task_id: int) -> int:
        with self.store.transaction() as uow:
            task = uow.task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task.competition_id

    def _participant_locks(self, stack: ExitStack, competition_id: int) -> None:
        # Caller holds the competition lock, so no participant can be added meanwhile.
        with self.store.transaction() as uow:
            ids = sorted(p.id for p in uow.participants_of(competition_id))
        for participant_id in ids:
            stack.enter_context(self.store.participant_lock(participant_id))

    # ==================== EXTERNAL REFERENCES ====================

    def register_gym(self, owner_id: int, name: str = "") -> Gym:
        with self.store.transaction() as uow:
            gym = Gym(id=uow.next_id(GYMS), owner_id=owner_id, name=name)
            uow.save(GYMS, gym)
        return gym

    def register_exercise(self, name: str, category: str | None = None) -> Exercise:
        with self.store.transaction() as uow:
            exercise = Exercise(id=uow.next_id(EXERCISES), name=name, category=category)
            uow.save(EXERCISES, exercise)
        return exercise

    # ==================== COMPETITIONS ====================

    def create_competition(self, caller: Caller, payload: Dict[str, Any]) -> Competition:
        data = InputSanitizer.validate_payload(CompetitionCreate, payload)
        with self.store.transaction() as uow:
            return catalog.create_competition(uow, caller, data, self.now())

    def update_competition(
        self, caller: Caller, competition_id: int, payload: Dict[str, Any]
    ) -> Competition:
        data = InputSanitizer.validate_payload(CompetitionUpdate, payload)
        with self.store.competition_lock(competition_id):
            with self.store.transaction() as uow:
                return catalog.update_competition(uow, caller, competition_id, data)

    def delete_competition(self, caller: Caller, competition_id: int) -> Competition | None:
        with self.store.competition_lock(competition_id):
            with self.store.transaction() as uow:
                return catalog.delete_competition(uow, caller, competition_id)

    def get_competition(
        self, competition_id: int, include_leaderboard: bool = False
    ) -> CompetitionDetail:
        with self.store.transaction() as uow:
            competition = uow.competition(competition_id)
            if competition is None:
                raise NotFoundError("Competition", competition_id)
            leaderboard = ()
            if include_leaderboard and self.config.leaderboard_preview_size > 0:
                leaderboard = ranking.build_leaderboard(
                    uow, competition, 1, self.config.leaderboard_preview_size
                ).entries
            return CompetitionDetail(
                competition=competition,
                tasks=tuple(uow.tasks_of(competition_id)),
                participant_count=len(uow.participants_of(competition_id)),
                leaderboard=leaderboard,
            )

    def list_competitions(
        self,
        *,
        gym_id: int | None = None,
        is_active: bool | None = True,
        search: str = "",
        page: int = 1,
        page_size: int | None = None,
        include_ended: bool = False,
    ) -> CompetitionPage:
        page, size = self._paging(page, page_size)
        with self.store.transaction() as uow:
            return catalog.list_competitions(
                uow,
                self.now(),
                gym_id=gym_id,
                is_active=is_active,
                search=search,
                page=page,
                page_size=size,
                include_ended=include_ended,
            )

    # ==================== TASKS ====================

    def create_task(
        self, caller: Caller, competition_id: int, payload: Dict[str, Any]
    ) -> CompetitionTask:
        data = InputSanitizer.validate_payload(TaskCreate, payload)
        with self.store.competition_lock(competition_id), ExitStack() as stack:
            self._participant_locks(stack, competition_id)
            with self.store.transaction() as uow:
                return catalog.create_task(
                    uow,
                    caller,
                    competition_id,
                    data,
                    default_points=self.config.default_points_value,
                )

    def update_task(
        self, caller: Caller, task_id: int, payload: Dict[str, Any]
    ) -> CompetitionTask:
        data = InputSanitizer.validate_payload(TaskUpdate, payload)
        competition_id = self._competition_id_of_task(task_id)
        with self.store.competition_lock(competition_id), ExitStack() as stack:
            self._participant_locks(stack, competition_id)
            with self.store.transaction() as uow:
                return catalog.update_task(uow, caller, task_id, data, self.now())

    def delete_task(self, caller: Caller, task_id: int) -> CompetitionTask:
        competition_id = self._competition_id_of_task(task_id)
        with self.store.competition_lock(competition_id), ExitStack() as stack:
            self._participant_locks(stack, competition_id)
            with self.store.transaction() as uow:
                return catalog.delete_task(uow, caller, task_id)

    def list_tasks(self, competition_id: int) -> tuple[CompetitionTask, ...]:
        with self.store.transaction() as uow:
            if uow.competition(competition_id) is None:
                raise NotFoundError("Competition", competition_id)
            return tuple(uow.tasks_of(competition_id))

    # ==================== ENROLLMENT ====================

    def join(self, user_id: int, competition_id: int) -> Participant:
        with self.store.competition_lock(competition_id), ExitStack() as stack:
            self._participant_locks(stack, competition_id)
            with self.store.transaction() as uow:
                return enrollment.join_competition(uow, user_id, competition_id, self.now())

    def leave(self, user_id: int, competition_id: int) -> Participant:
        with self.store.competition_lock(competition_id), ExitStack() as stack:
            self._participant_locks(stack, competition_id)
            with self.store.transaction() as uow:
                return enrollment.leave_competition(uow, user_id, competition_id)

    # ==================== PROGRESS ====================

    def update_progress(
        self,
        participant_id: int,
        task_id: int,
        value: Any,
        notes: str | None = None,
    ) -> ProgressOutcome:
        """Record a value for (participant, task), rescore, then rerank the competition."""
        notes = InputSanitizer.sanitize_notes(notes, self.config.max_notes_length)
        with self.store.participant_lock(participant_id):
            with self.store.transaction() as uow:
                outcome = progress.update_progress(
                    uow, participant_id, task_id, value, self.now(), notes
                )
        competition_id = outcome.participant.competition_id
        with self.store.competition_lock(competition_id), ExitStack() as stack:
            self._participant_locks(stack, competition_id)
            with self.store.transaction() as uow:
                ranking.recompute_rankings(uow, competition_id)
                participant = uow.participant(participant_id)
        return ProgressOutcome(progress=outcome.progress, participant=participant)

    def record_progress(
        self, user_id: int, task_id: int, payload: Dict[str, Any]
    ) -> ProgressOutcome:
        """Progress update addressed by the caller's user id, as the HTTP route does."""
        data = InputSanitizer.validate_payload(ProgressUpdate, payload)
        competition_id = self._competition_id_of_task(task_id)
        with self.store.transaction() as uow:
            participant = uow.find_participant(user_id, competition_id)
        if participant is None or not participant.is_active:
            raise NotEnrolledError(user_id, competition_id)
        return self.update_progress(participant.id, task_id, data.currentValue, data.notes)

    # ==================== SCORING / RANKING ====================

    def recompute_participant_score(self, participant_id: int) -> Participant:
        with self.store.participant_lock(participant_id):
            with self.store.transaction() as uow:
                return scoring.recompute_participant_score(uow, participant_id)

    def recompute_rankings(self, competition_id: int) -> tuple[RankingRow, ...]:
        with self.store.competition_lock(competition_id), ExitStack() as stack:
            self._participant_locks(stack, competition_id)
            with self.store.transaction() as uow:
                if uow.competition(competition_id) is None:
                    raise NotFoundError("Competition", competition_id)
                return ranking.recompute_rankings(uow, competition_id)

    def get_leaderboard(
        self, competition_id: int, page: int = 1, page_size: int | None = None
    ) -> LeaderboardPage:
        page, size = self._paging(page, page_size)
        with self.store.transaction() as uow:
            competition = uow.competition(competition_id)
            if competition is None:
                raise NotFoundError("Competition", competition_id)
            return ranking.build_leaderboard(uow, competition, page, size)

    # ==================== PARTICIPANT VIEWS ====================

    def get_user_competitions(
        self,
        user_id: int,
        *,
        active: bool = True,
        page: int = 1,
        page_size: int | None = None,
    ) -> ParticipationPage:
        page, size = self._paging(page, page_size)
        with self.store.transaction() as uow:
            rows = uow.select(
                PARTICIPANTS,
                lambda p: p.user_id == user_id and (p.is_active or not active),
            )
        rows.sort(key=lambda p: (p.join_date, p.id), reverse=True)
        start = (page - 1) * size
        total = len(rows)
        return ParticipationPage(
            participations=tuple(rows[start : start + size]),
            total_items=total,
            total_pages=math.ceil(total / size),
            page=page,
            page_size=size,
        )

    def get_user_progress(self, user_id: int, competition_id: int) -> UserProgress:
        with self.store.transaction() as uow:
            competition = uow.competition(competition_id)
            if competition is None:
                raise NotFoundError("Competition", competition_id)
            participant = uow.find_participant(user_id, competition_id)
            if participant is None:
                raise NotFoundError(
                    "Participant",
                    f"{user_id}/{competition_id}",
                    message="Participation not found",
                )
            by_task = {p.task_id: p for p in uow.progress_of(participant.id)}
            tasks = tuple(
                TaskProgress(task=task, progress=by_task.get(task.id))
                for task in uow.tasks_of(competition_id)
            )
        return UserProgress(participant=participant, competition=competition, tasks=tasks)


__all__ = ["CompetitionEngine"]
