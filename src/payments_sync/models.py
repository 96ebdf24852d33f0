"""Canonical models exchanged between adapters, drivers and callers."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .errors import StateDecodeError


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CanonicalRecord(BaseModel):
    """Engine-level record: just what ordering and deduplication need."""
    reference: str = Field(..., min_length=1, description="Provider reference of the record")
    timestamp: datetime = Field(..., description="Ordering key (creation or update time)")
    raw: Optional[Dict[str, Any]] = Field(default=None, description="Sanitized provider payload")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Page(BaseModel):
    """One page of canonical records returned for a single adapter call."""
    records: List[CanonicalRecord] = Field(default_factory=list)
    has_more_upstream: bool = False


class FetchNextRequest(BaseModel):
    """Uniform request envelope for every source, whatever its driver."""
    state: Optional[bytes] = Field(default=None, description="Opaque JSON continuation state")
    page_size: int = Field(..., gt=0)
    from_payload: Optional[bytes] = Field(default=None, description="Source-identifying context")

    def decoded_from_payload(self) -> Optional[Dict[str, Any]]:
        """Decode the source context; empty input means no context.

        Raises:
            StateDecodeError: If the payload is not a JSON object.
        """
        if not self.from_payload:
            return None
        try:
            payload = json.loads(self.from_payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StateDecodeError(f"from_payload is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise StateDecodeError("from_payload must be a JSON object")
        return payload


class FetchNextResponse(BaseModel):
    """Uniform response envelope: records in ascending timestamp order."""
    records: List[CanonicalRecord] = Field(default_factory=list)
    new_state: bytes
    has_more: bool = False
