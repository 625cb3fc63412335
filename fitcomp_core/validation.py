"""
Input validation schemas using Pydantic v2
Validates competition, task, progress and pagination inputs
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Self, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# ==================== VALIDATOR FUNCTIONS ====================

_DANGEROUS_PATTERNS = [
    "<script",
    "</script",
    "javascript:",
    "onerror=",
    "onclick=",
    "onload=",
    "<iframe",
    "<object",
    "<embed",
]


def _clean_label(v: Optional[str], field: str) -> Optional[str]:
    """Strip a display label and reject empty or markup-bearing values"""
    if v is None:
        return v
    v = v.strip()
    if len(v) == 0:
        raise ValueError(f"{field} cannot be empty")
    lowered = v.lower()
    for pattern in _DANGEROUS_PATTERNS:
        if pattern in lowered:
            raise ValueError(f"{field} contains potentially dangerous pattern: {pattern}")
    if "<" in v and ">" in v:
        raise ValueError(f"{field} contains HTML tags")
    return v


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return v
    # Naive datetimes are treated as UTC so comparisons never mix naive/aware values.
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class CompetitionCreate(BaseModel):
    """Competition creation payload"""

    gymId: int = Field(..., gt=0, description="Owning gym ID")
    name: str = Field(..., min_length=1, max_length=255, description="Competition name")
    description: Optional[str] = Field(None, max_length=5000)
    startDate: datetime = Field(..., description="ISO-8601 start (inclusive)")
    endDate: datetime = Field(..., description="ISO-8601 end (exclusive)")
    imageUrl: Optional[str] = Field(None, max_length=2048)
    maxParticipants: Optional[int] = Field(
        None, gt=0, description="Participant cap (omit for unbounded)"
    )
    isActive: bool = True

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_label(v, "name")

    @field_validator("startDate", "endDate")
    @classmethod
    def normalize_dates(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @field_validator("imageUrl")
    @classmethod
    def validate_image_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not re.match(r"^https?://\S+$", v):
            raise ValueError("imageUrl must be an http(s) URL")
        return v

    @model_validator(mode="after")
    def validate_date_range(self) -> Self:
        if self.endDate <= self.startDate:
            raise ValueError("End date must be after start date")
        return self


class CompetitionUpdate(BaseModel):
    """Partial competition update; the merged date range is re-checked by the catalog"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    imageUrl: Optional[str] = Field(None, max_length=2048)
    maxParticipants: Optional[int] = Field(None, gt=0)
    isActive: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_label(v, "name")

    @field_validator("startDate", "endDate")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @model_validator(mode="after")
    def validate_date_range(self) -> Self:
        if self.startDate is not None and self.endDate is not None:
            if self.endDate <= self.startDate:
                raise ValueError("End date must be after start date")
        return self


class TaskCreate(BaseModel):
    """Competition task creation payload"""

    exerciseId: Optional[int] = Field(None, gt=0)
    name: str = Field(..., min_length=1, max_length=255, description="Task name")
    description: Optional[str] = Field(None, max_length=5000)
    targetValue: float = Field(
        ..., gt=0, allow_inf_nan=False, description="Value that completes the task"
    )
    unit: str = Field(..., min_length=1, max_length=50, description="e.g. 'kg', 'reps'")
    # None means "use EngineConfig.default_points_value".
    pointsValue: Optional[int] = Field(None, gt=0, description="Full-credit points")

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_label(v, "name")

    @field_validator("unit")
    @classmethod
    def validate_unit(cls, v: str) -> str:
        return _clean_label(v, "unit")


class TaskUpdate(BaseModel):
    """Partial task update"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    targetValue: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    unit: Optional[str] = Field(None, min_length=1, max_length=50)
    pointsValue: Optional[int] = Field(None, gt=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_label(v, "name")

    @field_validator("unit")
    @classmethod
    def validate_unit(cls, v: Optional[str]) -> Optional[str]:
        return _clean_label(v, "unit")


class ProgressUpdate(BaseModel):
    """Progress report for one task"""

    currentValue: float = Field(
        ..., ge=0, allow_inf_nan=False, description="Measured value (non-negative)"
    )
    notes: Optional[str] = Field(None, max_length=2000)

    model_config = ConfigDict(extra="forbid")


class PageQuery(BaseModel):
    """Pagination parameters; upper bound comes from EngineConfig.max_page_size"""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: Any, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        # Strip whitespace
        value = value.strip()

        # Limit length
        value = value[:max_length]

        # Remove null bytes
        value = value.replace("\0", "")

        return value

    @staticmethod
    def sanitize_notes(notes: Optional[str], max_length: int = 2000) -> Optional[str]:
        """Sanitize free-text progress notes; blank notes become None"""
        if notes is None:
            return None
        cleaned = InputSanitizer.sanitize_string(notes, max_length)
        # Keep newlines/tabs, drop other control characters.
        cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", cleaned)
        return cleaned or None

    @staticmethod
    def validate_payload(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
        """
        Validate a raw payload against a schema

        Returns:
            The validated model instance

        Raises:
            InvalidInputError: If validation fails (field errors in details)
        """
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except ValidationError as e:
            errors: List[Dict[str, Any]] = [
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]
            logger.warning(f"{model.__name__} validation failed: {errors}")
            message = errors[0]["msg"] if errors else "Invalid input"
            raise InvalidInputError(
                f"Invalid {model.__name__}: {message}", details={"errors": errors}
            ) from e


# ==================== EXPORT ====================

__all__ = [
    "CompetitionCreate",
    "CompetitionUpdate",
    "TaskCreate",
    "TaskUpdate",
    "ProgressUpdate",
    "PageQuery",
    "InputSanitizer",
]
