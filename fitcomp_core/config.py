"""Engine configuration (pagination limits, defaults, input lengths)."""
from __future__ import annotations

import logging
import os
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    """Tunable engine settings; defaults match the public API behaviour."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    default_page_size: int = Field(10, ge=1, description="Leaderboard/list page size")
    max_page_size: int = Field(100, ge=1, description="Largest page a caller may request")
    default_points_value: int = Field(100, gt=0, description="Task points when omitted")
    leaderboard_preview_size: int = Field(
        10, ge=0, description="Entries included in competition detail views"
    )
    max_notes_length: int = Field(2000, ge=1)

    @model_validator(mode="after")
    def _page_bounds(self) -> "EngineConfig":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self

    @classmethod
    def from_env(
        cls, prefix: str = "FITCOMP_", environ: Mapping[str, str] | None = None
    ) -> "EngineConfig":
        """Build a config from environment variables (e.g. FITCOMP_MAX_PAGE_SIZE=50)."""
        env = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            key = f"{prefix}{name.upper()}"
            if key in env:
                overrides[name] = env[key]
        if overrides:
            logger.debug(f"EngineConfig overrides from environment: {sorted(overrides)}")
        return cls(**overrides)


__all__ = ["EngineConfig"]
