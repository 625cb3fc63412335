from .config import EngineConfig
from .engine import CompetitionEngine
from .errors import (
    AlreadyEnrolledError,
    CapacityExceededError,
    CompetitionClosedError,
    CompetitionError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotEnrolledError,
    NotFoundError,
)
from .ranking import compute_rankings
from .scoring import compute_score, task_contribution
from .store import CompetitionStore, InMemoryStore, UnitOfWork
from .types import (
    Caller,
    Competition,
    CompetitionDetail,
    CompetitionPage,
    CompetitionSummary,
    CompetitionTask,
    Exercise,
    Gym,
    LeaderboardEntry,
    LeaderboardPage,
    Participant,
    ParticipationPage,
    Progress,
    ProgressOutcome,
    RankingRow,
    ScoreSummary,
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

__all__ = [
    "CompetitionEngine",
    "EngineConfig",
    "CompetitionStore",
    "InMemoryStore",
    "UnitOfWork",
    "CompetitionError",
    "NotFoundError",
    "ConflictError",
    "AlreadyEnrolledError",
    "NotEnrolledError",
    "CompetitionClosedError",
    "CapacityExceededError",
    "InvalidInputError",
    "ForbiddenError",
    "Caller",
    "Gym",
    "Exercise",
    "Competition",
    "CompetitionTask",
    "Participant",
    "Progress",
    "ScoreSummary",
    "RankingRow",
    "ProgressOutcome",
    "CompetitionSummary",
    "LeaderboardEntry",
    "LeaderboardPage",
    "CompetitionDetail",
    "CompetitionPage",
    "ParticipationPage",
    "TaskProgress",
    "UserProgress",
    "compute_score",
    "task_contribution",
    "compute_rankings",
    "CompetitionCreate",
    "CompetitionUpdate",
    "TaskCreate",
    "TaskUpdate",
    "ProgressUpdate",
    "PageQuery",
    "InputSanitizer",
]
