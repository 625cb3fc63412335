"""Type definitions for competition records, payloads and engine results."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, TypedDict


Role = Literal["admin", "gym_owner", "user"]


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: Role = "user"


@dataclass(frozen=True)
class Gym:
    id: int
    owner_id: int
    name: str = ""


@dataclass(frozen=True)
class Exercise:
    id: int
    name: str
    category: str | None = None


@dataclass(frozen=True)
class Competition:
    id: int
    gym_id: int
    name: str
    start_date: datetime
    end_date: datetime
    description: str | None = None
    image_url: str | None = None
    # None means unbounded.
    max_participants: int | None = None
    is_active: bool = True
    created_at: datetime | None = None

    def is_open_at(self, now: datetime) -> bool:
        return self.is_active and now < self.end_date

    def has_ended_at(self, now: datetime) -> bool:
        return now >= self.end_date


@dataclass(frozen=True)
class CompetitionTask:
    id: int
    competition_id: int
    name: str
    target_value: float
    unit: str
    points_value: int
    description: str | None = None
    exercise_id: int | None = None


@dataclass(frozen=True)
class Participant:
    id: int
    user_id: int
    competition_id: int
    join_date: datetime
    is_active: bool = True
    # Derived: written only by the scoring engine and the ranker.
    total_points: int = 0
    completion_pct: float = 0.0
    rank: int | None = None


@dataclass(frozen=True)
class Progress:
    id: int
    participant_id: int
    task_id: int
    current_value: float = 0.0
    is_completed: bool = False
    # First completion timestamp; never cleared once set.
    completion_date: datetime | None = None
    notes: str | None = None
    last_updated: datetime | None = None


@dataclass(frozen=True)
class ScoreSummary:
    total_points: int
    completion_pct: float
    completed_tasks: int
    total_tasks: int


@dataclass(frozen=True)
class RankingRow:
    participant_id: int
    user_id: int
    rank: int
    completion_pct: float
    total_points: int
    join_date: datetime


@dataclass(frozen=True)
class ProgressOutcome:
    """Result of a progress update: the written row and the rescored participant."""

    progress: Progress
    participant: Participant


@dataclass(frozen=True)
class CompetitionSummary:
    id: int
    name: str
    start_date: datetime
    end_date: datetime
    is_active: bool


@dataclass(frozen=True)
class LeaderboardEntry:
    participant_id: int
    user_id: int
    rank: int | None
    total_points: int
    completion_pct: float
    completed_tasks: int
    join_date: datetime


@dataclass(frozen=True)
class LeaderboardPage:
    competition: CompetitionSummary
    entries: tuple[LeaderboardEntry, ...]
    total_items: int
    total_pages: int
    page: int
    page_size: int


@dataclass(frozen=True)
class CompetitionDetail:
    competition: Competition
    tasks: tuple[CompetitionTask, ...]
    participant_count: int
    leaderboard: tuple[LeaderboardEntry, ...] = ()


@dataclass(frozen=True)
class CompetitionPage:
    competitions: tuple[Competition, ...]
    total_items: int
    total_pages: int
    page: int
    page_size: int


@dataclass(frozen=True)
class ParticipationPage:
    participations: tuple[Participant, ...]
    total_items: int
    total_pages: int
    page: int
    page_size: int


@dataclass(frozen=True)
class TaskProgress:
    task: CompetitionTask
    progress: Progress | None


@dataclass(frozen=True)
class UserProgress:
    participant: Participant
    competition: Competition
    tasks: tuple[TaskProgress, ...]


class CompetitionPayload(TypedDict, total=False):
    """Raw competition create/update payload as received from the transport layer."""
    gymId: int
    name: str
    description: Optional[str]
    startDate: str  # ISO-8601
    endDate: str  # ISO-8601
    imageUrl: Optional[str]
    maxParticipants: Optional[int]
    isActive: bool


class TaskPayload(TypedDict, total=False):
    """Raw task create/update payload."""
    exerciseId: Optional[int]
    name: str
    description: Optional[str]
    targetValue: float
    unit: str
    pointsValue: int


class ProgressPayload(TypedDict, total=False):
    currentValue: float
    notes: Optional[str]
