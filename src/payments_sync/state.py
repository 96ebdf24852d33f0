"""Continuation state shapes and their JSON codec.

The state blob is opaque to callers. An empty blob, ``null`` or a missing
field always means "start of stream".

Forward-cursor layout::

    {"lastSeenAt": "2024-03-01T10:00:00Z", "lastPage": 2, "adapter": {...}}

Timeline layout::

    {"latest_id": "pi_3", "backlog_cursor": "", "backlog_starting_point": "", "adapter": {...}}
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from .errors import StateDecodeError
from .models import ensure_utc

logger = logging.getLogger(__name__)

# Zero value written for a stream that has never emitted a record.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
ZERO_TIME_STRING = "0001-01-01T00:00:00Z"


class CursorState(BaseModel):
    """State of a forward-cursor stream: a watermark plus the last page index."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    last_seen_at: Optional[datetime] = Field(default=None, alias="lastSeenAt")
    # Informational only: every call restarts its page index at 0.
    last_page: int = Field(default=0, ge=0, alias="lastPage")
    adapter: Optional[Dict[str, Any]] = None

    @field_validator("last_seen_at")
    @classmethod
    def _zero_is_none(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        value = ensure_utc(value)
        if value == ZERO_TIME:
            return None
        return value

    @field_serializer("last_seen_at")
    def _serialize_watermark(self, value: Optional[datetime]) -> str:
        if value is None:
            return ZERO_TIME_STRING
        return value.isoformat().replace("+00:00", "Z")

    @property
    def watermark(self) -> Optional[datetime]:
        return self.last_seen_at


class Timeline(BaseModel):
    """State of a reverse-chronological stream.

    ``latest_id`` is the newest record already emitted; while it is empty the
    stream is still scanning backward for the oldest record, starting from
    ``backlog_cursor``. ``backlog_starting_point`` is the newest record seen
    when the current scan began.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    latest_id: str = ""
    backlog_cursor: str = ""
    backlog_starting_point: str = ""
    adapter: Optional[Dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_state(cls, data: Any) -> Any:
        # Older versions persisted only the last created id.
        if isinstance(data, dict) and data.get("lastIDCreated") and not data.get("latest_id"):
            data = dict(data)
            data["latest_id"] = data.pop("lastIDCreated")
            logger.info("Migrated legacy lastIDCreated timeline state")
        return data

    @field_validator("latest_id", "backlog_cursor", "backlog_starting_point", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def is_caught_up(self) -> bool:
        return self.latest_id != ""

    def has_backlog(self) -> bool:
        return self.backlog_starting_point != ""


StateT = TypeVar("StateT", CursorState, Timeline)


class StateCodec(Generic[StateT]):
    """Serialize and deserialize one state shape.

    Example:
        codec = StateCodec(CursorState)
        state = codec.decode(request.state)
        blob = codec.encode(state)
    """

    def __init__(self, model: Type[StateT]):
        self.model = model

    def decode(self, blob: Optional[bytes]) -> StateT:
        """Decode a state blob.

        Args:
            blob: JSON bytes, or None/empty for a fresh stream.

        Returns:
            The decoded state; the zero value for empty input.

        Raises:
            StateDecodeError: If the blob is not a JSON object of the right shape.
        """
        if blob is None or not blob.strip():
            return self.model()
        try:
            data = json.loads(blob)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StateDecodeError(f"Continuation state is not valid JSON: {e}") from e
        if data is None:
            return self.model()
        if not isinstance(data, dict):
            raise StateDecodeError(
                f"Continuation state must be a JSON object, got {type(data).__name__}"
            )
        try:
            return self.model.model_validate(data)
        except ValidationError as e:
            raise StateDecodeError(
                f"Invalid {self.model.__name__} continuation state: {e}"
            ) from e

    def encode(self, state: StateT) -> bytes:
        return state.model_dump_json(by_alias=True).encode("utf-8")


cursor_codec: StateCodec[CursorState] = StateCodec(CursorState)
timeline_codec: StateCodec[Timeline] = StateCodec(Timeline)
