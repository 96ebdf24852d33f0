"""Runtime configuration read from environment variables."""

import os
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel, Field, model_validator

DEFAULT_PAGE_SIZE = 100
# Default start-to-close timeout given to a single fetch activity.
DEFAULT_EXECUTION_CEILING_SECONDS = 600
DEFAULT_SAFETY_MARGIN_SECONDS = 30
DEFAULT_SCAN_PAGES_PER_CALL = 1
DEFAULT_MAX_DRAIN_CALLS = 1000


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


class SyncSettings(BaseModel):
    """Settings shared by the drivers, the service layer and the API."""
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    execution_ceiling_seconds: int = Field(default=DEFAULT_EXECUTION_CEILING_SECONDS, gt=0)
    safety_margin_seconds: int = Field(default=DEFAULT_SAFETY_MARGIN_SECONDS, ge=0)
    scan_pages_per_call: int = Field(default=DEFAULT_SCAN_PAGES_PER_CALL, ge=0)
    max_drain_calls: int = Field(default=DEFAULT_MAX_DRAIN_CALLS, gt=0)

    @model_validator(mode="after")
    def _check_margin(self) -> "SyncSettings":
        if self.safety_margin_seconds >= self.execution_ceiling_seconds:
            raise ValueError(
                "safety_margin_seconds must be lower than execution_ceiling_seconds"
            )
        return self

    @property
    def execution_ceiling(self) -> timedelta:
        return timedelta(seconds=self.execution_ceiling_seconds)

    @property
    def safety_margin(self) -> timedelta:
        return timedelta(seconds=self.safety_margin_seconds)

    @property
    def max_scan_pages(self) -> Optional[int]:
        """Backward scan pages allowed per call; None means deadline-bound only."""
        return self.scan_pages_per_call or None

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Build settings from SYNC_* environment variables.

        Raises:
            ValueError: If a variable is not an integer or values are inconsistent.
        """
        return cls(
            default_page_size=_int_env("SYNC_DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            execution_ceiling_seconds=_int_env(
                "SYNC_EXECUTION_CEILING_SECONDS", DEFAULT_EXECUTION_CEILING_SECONDS
            ),
            safety_margin_seconds=_int_env(
                "SYNC_SAFETY_MARGIN_SECONDS", DEFAULT_SAFETY_MARGIN_SECONDS
            ),
            scan_pages_per_call=_int_env(
                "SYNC_SCAN_PAGES_PER_CALL", DEFAULT_SCAN_PAGES_PER_CALL
            ),
            max_drain_calls=_int_env("SYNC_MAX_DRAIN_CALLS", DEFAULT_MAX_DRAIN_CALLS),
        )
