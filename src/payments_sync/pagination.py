"""Forward-cursor page draining with watermark deduplication."""

import logging
import threading
from typing import Any, Iterable, List, Optional, Tuple

from .connectors.base import CursorPosition, ForwardCursorAdapter, RecordMapper
from .dedup import DedupFilter
from .errors import FetchCancelledError, RecordMappingError
from .models import CanonicalRecord, FetchNextRequest, FetchNextResponse, Page
from .state import CursorState, cursor_codec

logger = logging.getLogger(__name__)


def should_fetch_more(
    accumulated: int,
    page_size: int,
    has_more_upstream: bool,
) -> Tuple[bool, bool]:
    """Decide whether to fetch another page.

    Args:
        accumulated: Number of new records collected so far in this call.
        page_size: Number of records the caller asked for.
        has_more_upstream: Whether the last adapter page reported more data.

    Returns:
        ``(need_more, has_more)``: whether to keep paging, and the HasMore
        value to report if paging stops now.
    """
    if accumulated < page_size:
        return has_more_upstream, has_more_upstream
    if accumulated == page_size:
        # Exact fit: only report more when upstream says so.
        return False, has_more_upstream
    return False, True


def map_page(mapper: RecordMapper, natives: Iterable[Any]) -> List[CanonicalRecord]:
    """Map a whole native page, failing the page on the first bad record.

    Raises:
        RecordMappingError: If any record cannot be mapped.
    """
    records = []
    for index, native in enumerate(natives):
        try:
            record = mapper.map(native)
        except RecordMappingError:
            raise
        except Exception as e:
            raise RecordMappingError(
                f"Failed to map record #{index} of page: {e}",
                reference=_guess_reference(native),
            ) from e
        records.append(record)
    return records


def _guess_reference(native: Any) -> Optional[str]:
    if isinstance(native, dict):
        value = native.get("id")
    else:
        value = getattr(native, "id", None)
    return str(value) if value is not None else None


class PaginationDriver:
    """
    Drains pages from a forward-cursor adapter until ``page_size`` new
    records are collected or upstream runs out.

    The page index restarts at 0 on every call; resumption relies only on
    the watermark, so the adapter is free to use its own upstream page size.
    """

    def __init__(self, adapter: ForwardCursorAdapter, mapper: RecordMapper):
        self.adapter = adapter
        self.mapper = mapper

    def fetch_next(
        self,
        request: FetchNextRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> FetchNextResponse:
        """Return the next records after the watermark held in ``request.state``.

        Raises:
            StateDecodeError: If the state or source context cannot be decoded.
            RecordMappingError: If a record of any fetched page cannot be mapped.
            FetchCancelledError: If ``cancel_event`` is set between two pages.
        """
        old_state = cursor_codec.decode(request.state)
        from_payload = request.decoded_from_payload()
        page_size = request.page_size
        dedup = DedupFilter(old_state.watermark)

        accumulated: List[CanonicalRecord] = []
        has_more = False
        page = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelledError("Fetch cancelled by caller")

            position = CursorPosition(
                since=old_state.watermark,
                page=page,
                adapter_state=old_state.adapter,
            )
            native_page = self.adapter.page(position, page_size, from_payload)
            mapped = Page(
                records=map_page(self.mapper, native_page.records),
                has_more_upstream=native_page.has_more,
            )
            accumulated.extend(dedup.filter(mapped.records))

            need_more, has_more = should_fetch_more(
                len(accumulated), page_size, mapped.has_more_upstream
            )
            if not need_more:
                break
            page += 1

        if len(accumulated) > page_size:
            accumulated = accumulated[:page_size]

        new_state = CursorState(
            last_seen_at=old_state.watermark,
            last_page=page,
            adapter=old_state.adapter,
        )
        if accumulated:
            new_state.last_seen_at = accumulated[-1].timestamp

        logger.info(
            f"Fetched {len(accumulated)} records over {page + 1} page(s), "
            f"skipped {dedup.skipped} already ingested, has_more={has_more}"
        )
        return FetchNextResponse(
            records=accumulated,
            new_state=cursor_codec.encode(new_state),
            has_more=has_more,
        )
