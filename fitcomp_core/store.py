"""Persistence collaborator: store interface, unit of work and keyed locks.

Records are frozen dataclasses keyed by ``id`` in named tables. All engine
writes go through a UnitOfWork:
- reads see the unit's own staged writes first, then committed rows
- writes are staged and applied to the tables together on commit()
- leaving the transaction() block with an exception discards every staged write

Locks are independent of transactions: the engine takes a per-competition or
per-participant lock, then opens a unit of work inside it.
"""
from __future__ import annotations

import itertools
import logging
import threading
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    ContextManager,
    Dict,
    Hashable,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
)

from .types import Competition, CompetitionTask, Exercise, Gym, Participant, Progress

logger = logging.getLogger(__name__)

GYMS = "gyms"
EXERCISES = "exercises"
COMPETITIONS = "competitions"
TASKS = "tasks"
PARTICIPANTS = "participants"
PROGRESS = "progress"

TABLES = (GYMS, EXERCISES, COMPETITIONS, TASKS, PARTICIPANTS, PROGRESS)

_DELETED = object()

Predicate = Callable[[Any], bool]


class KeyedLocks:
    """Registry of re-entrant locks created on first use per key."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._mutex:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield


class UnitOfWork:
    """Staged reads/writes against a store, applied atomically on commit."""

    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self._staged: Dict[Tuple[str, int], Any] = {}
        self.committed = False

    # ---- generic access ----

    def get(self, table: str, key: int) -> Any | None:
        staged = self._staged.get((table, key))
        if staged is _DELETED:
            return None
        if staged is not None:
            return staged
        return self._store.get(table, key)

    def select(self, table: str, predicate: Optional[Predicate] = None) -> List[Any]:
        rows = {row.id: row for row in self._store.select(table)}
        for (staged_table, key), value in self._staged.items():
            if staged_table != table:
                continue
            if value is _DELETED:
                rows.pop(key, None)
            else:
                rows[key] = value
        result = [row for row in rows.values() if predicate is None or predicate(row)]
        result.sort(key=lambda row: row.id)
        return result

    def next_id(self, table: str) -> int:
        return self._store.next_id(table)

    def save(self, table: str, record: Any) -> Any:
        self._staged[(table, record.id)] = record
        return record

    def delete(self, table: str, key: int) -> None:
        self._staged[(table, key)] = _DELETED

    def commit(self) -> None:
        self._store._apply(self._staged)
        self.committed = True
        self._staged = {}

    def rollback(self) -> None:
        if self._staged:
            logger.debug(f"Rolling back {len(self._staged)} staged writes")
        self._staged = {}

    # ---- typed loaders ----

    def gym(self, gym_id: int) -> Gym | None:
        return self.get(GYMS, gym_id)

    def exercise(self, exercise_id: int) -> Exercise | None:
        return self.get(EXERCISES, exercise_id)

    def competition(self, competition_id: int) -> Competition | None:
        return self.get(COMPETITIONS, competition_id)

    def task(self, task_id: int) -> CompetitionTask | None:
        return self.get(TASKS, task_id)

    def participant(self, participant_id: int) -> Participant | None:
        return self.get(PARTICIPANTS, participant_id)

    def tasks_of(self, competition_id: int) -> List[CompetitionTask]:
        return self.select(TASKS, lambda t: t.competition_id == competition_id)

    def participants_of(
        self, competition_id: int, *, active: Optional[bool] = None
    ) -> List[Participant]:
        return self.select(
            PARTICIPANTS,
            lambda p: p.competition_id == competition_id
            and (active is None or p.is_active == active),
        )

    def find_participant(self, user_id: int, competition_id: int) -> Participant | None:
        rows = self.select(
            PARTICIPANTS,
            lambda p: p.user_id == user_id and p.competition_id == competition_id,
        )
        return rows[0] if rows else None

    def progress_of(self, participant_id: int) -> List[Progress]:
        return self.select(PROGRESS, lambda p: p.participant_id == participant_id)

    def progress_for_task(self, task_id: int) -> List[Progress]:
        return self.select(PROGRESS, lambda p: p.task_id == task_id)

    def find_progress(self, participant_id: int, task_id: int) -> Progress | None:
        rows = self.select(
            PROGRESS,
            lambda p: p.participant_id == participant_id and p.task_id == task_id,
        )
        return rows[0] if rows else None


class CompetitionStore(Protocol):
    """What the engine needs from persistence."""

    def transaction(self) -> ContextManager[UnitOfWork]:
        ...

    def competition_lock(self, competition_id: int) -> ContextManager[None]:
        ...

    def participant_lock(self, participant_id: int) -> ContextManager[None]:
        ...


class InMemoryStore:
    """Thread-safe in-memory tables; the reference CompetitionStore."""

    def __init__(self) -> None:
        self._mutex = threading.RLock()
        self._tables: Dict[str, Dict[int, Any]] = {name: {} for name in TABLES}
        self._sequences = {name: itertools.count(1) for name in TABLES}
        self._locks = KeyedLocks()

    def next_id(self, table: str) -> int:
        with self._mutex:
            return next(self._sequences[table])

    def get(self, table: str, key: int) -> Any | None:
        with self._mutex:
            return self._tables[table].get(key)

    def select(self, table: str, predicate: Optional[Predicate] = None) -> List[Any]:
        with self._mutex:
            rows = list(self._tables[table].values())
        return [row for row in rows if predicate is None or predicate(row)]

    def count(self, table: str) -> int:
        with self._mutex:
            return len(self._tables[table])

    def _apply(self, staged: Dict[Tuple[str, int], Any]) -> None:
        with self._mutex:
            for (table, key), value in staged.items():
                if value is _DELETED:
                    self._tables[table].pop(key, None)
                else:
                    self._tables[table][key] = value

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        uow = UnitOfWork(self)
        try:
            yield uow
        except BaseException:
            uow.rollback()
            raise
        else:
            uow.commit()

    @contextmanager
    def competition_lock(self, competition_id: int) -> Iterator[None]:
        with self._locks.hold(("competition", competition_id)):
            yield

    @contextmanager
    def participant_lock(self, participant_id: int) -> Iterator[None]:
        with self._locks.hold(("participant", participant_id)):
            yield


__all__ = [
    "CompetitionStore",
    "InMemoryStore",
    "KeyedLocks",
    "UnitOfWork",
    "GYMS",
    "EXERCISES",
    "COMPETITIONS",
    "TASKS",
    "PARTICIPANTS",
    "PROGRESS",
]
