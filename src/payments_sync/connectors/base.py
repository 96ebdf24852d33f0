import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from ..models import CanonicalRecord


class SourceKind(str, enum.Enum):
    """How a source can be paginated."""
    FORWARD_CURSOR = "forward_cursor"  # "give me records since <watermark>"
    TIMELINE = "timeline"  # reverse-chronological, walk from "now" only


@dataclass
class NativePage:
    """One page of provider-native records as returned by an adapter."""
    records: List[Any] = field(default_factory=list)
    has_more: bool = False


@dataclass
class CursorPosition:
    """Where a forward-cursor adapter should read from."""
    since: Optional[datetime] = None
    page: int = 0
    adapter_state: Optional[Dict[str, Any]] = None


class RecordMapper(ABC):
    """
    Turns one provider-native record into a canonical record. Raise any
    exception on malformed input; the driver converts it into a
    RecordMappingError and discards the page.
    """

    @abstractmethod
    def map(self, native: Any) -> CanonicalRecord:
        raise NotImplementedError


class ForwardCursorAdapter(ABC):
    """
    Source that supports "records modified since X" queries in ascending
    order. Implementations should be side-effect free apart from the
    network call to the PSP.
    """

    kind: ClassVar[SourceKind] = SourceKind.FORWARD_CURSOR

    @abstractmethod
    def page(
        self,
        position: CursorPosition,
        page_size: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        """
        Return the records of page ``position.page`` among those newer than
        ``position.since`` (all records when None), oldest first.
        """
        raise NotImplementedError

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True}


class TimelineAdapter(ABC):
    """
    Source that only lists records newest first, relative to another
    record id (Stripe-style ``starting_after`` / ``ending_before``).
    """

    kind: ClassVar[SourceKind] = SourceKind.TIMELINE

    @abstractmethod
    def list_older(
        self,
        before_id: Optional[str],
        limit: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        """
        Return up to ``limit`` records strictly older than ``before_id``
        (the newest records when None), newest first. ``has_more`` tells
        whether even older records exist.
        """
        raise NotImplementedError

    @abstractmethod
    def list_newer(
        self,
        after_id: str,
        limit: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        """
        Return up to ``limit`` records strictly newer than ``after_id`` and
        adjacent to it, newest first. ``has_more`` tells whether even newer
        records exist.
        """
        raise NotImplementedError

    def record_id(self, native: Any) -> str:
        if isinstance(native, dict):
            return native["id"]
        return native.id

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True}
