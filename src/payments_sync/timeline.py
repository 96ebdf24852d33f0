"""Forward, resumable extraction from reverse-chronological-only sources.

Such sources can only list records newest first, relative to another
record id. A stream is rebuilt in two phases:

1. Scan backward from "now" until the oldest record is found. Each call
   fetches a bounded number of pages and persists the backlog cursor
   reached, so a deep history is scanned across many calls.
2. Once the oldest record is known (the stream is caught up), page
   forward from the newest emitted id, reversing each page to keep
   ascending order.
"""

import logging
import threading
import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from .budget import TimeBudgetGuard
from .config import DEFAULT_EXECUTION_CEILING_SECONDS, DEFAULT_SAFETY_MARGIN_SECONDS
from .connectors.base import RecordMapper, TimelineAdapter
from .models import CanonicalRecord, FetchNextRequest, FetchNextResponse
from .pagination import map_page
from .state import Timeline, timeline_codec

logger = logging.getLogger(__name__)


class TimelineScanner:
    """Timeline driver exposing the same fetch_next contract as PaginationDriver.

    Args:
        adapter: Reverse-chronological source.
        mapper: Native to canonical record mapper.
        ceiling: Caller's execution ceiling for one call.
        margin: Safety margin subtracted from the ceiling.
        max_scan_pages: Backward scan pages allowed per call; None leaves
            only the time budget as a bound.
        clock: Monotonic clock, in seconds.
    """

    def __init__(
        self,
        adapter: TimelineAdapter,
        mapper: RecordMapper,
        ceiling: timedelta = timedelta(seconds=DEFAULT_EXECUTION_CEILING_SECONDS),
        margin: timedelta = timedelta(seconds=DEFAULT_SAFETY_MARGIN_SECONDS),
        max_scan_pages: Optional[int] = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_scan_pages is not None and max_scan_pages <= 0:
            raise ValueError("max_scan_pages must be positive or None")
        self.adapter = adapter
        self.mapper = mapper
        self.ceiling = ceiling
        self.margin = margin
        self.max_scan_pages = max_scan_pages
        self.clock = clock

    def new_guard(self, cancel_event: Optional[threading.Event] = None) -> TimeBudgetGuard:
        return TimeBudgetGuard(self.ceiling, self.margin, cancel_event, self.clock)

    def fetch_next(
        self,
        request: FetchNextRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> FetchNextResponse:
        """Return the next records of the stream held in ``request.state``.

        Raises:
            StateDecodeError: If the state or source context cannot be decoded.
            RecordMappingError: If a record to emit cannot be mapped.
            FetchCancelledError: If ``cancel_event`` fires during the scan.
        """
        timeline = timeline_codec.decode(request.state)
        from_payload = request.decoded_from_payload()
        guard = self.new_guard(cancel_event)

        records, timeline, has_more = self.fetch_page(
            timeline, request.page_size, from_payload, guard
        )
        return FetchNextResponse(
            records=records,
            new_state=timeline_codec.encode(timeline),
            has_more=has_more,
        )

    def fetch_page(
        self,
        timeline: Timeline,
        page_size: int,
        from_payload: Optional[Dict[str, Any]] = None,
        guard: Optional[TimeBudgetGuard] = None,
    ) -> Tuple[List[CanonicalRecord], Timeline, bool]:
        """Run both phases once.

        Returns:
            ``(records, updated_timeline, has_more)`` with records in
            ascending chronological order. The input timeline is not mutated.
        """
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        guard = guard or self.new_guard()
        timeline = timeline.model_copy()
        records: List[CanonicalRecord] = []

        if not timeline.is_caught_up():
            anchor, timeline, has_more = self._scan_for_oldest(
                timeline, page_size, from_payload, guard
            )
            if anchor is None:
                return records, timeline, has_more
            records.append(anchor)

        limit = page_size - len(records)
        if limit == 0:
            # The anchor alone filled the page.
            return records, timeline, True

        native_page = self.adapter.list_newer(timeline.latest_id, limit, from_payload)
        newest_first = list(native_page.records)
        records.extend(map_page(self.mapper, reversed(newest_first)))

        if newest_first:
            timeline.latest_id = self.adapter.record_id(newest_first[0])
        if timeline.has_backlog():
            ids = {self.adapter.record_id(native) for native in newest_first}
            if timeline.backlog_starting_point in ids or not native_page.has_more:
                logger.info(
                    f"Backlog replay complete at {timeline.latest_id}, tailing new records"
                )
                timeline.backlog_starting_point = ""
                timeline.backlog_cursor = ""

        logger.info(
            f"Timeline fetched {len(records)} records, latest_id={timeline.latest_id}, "
            f"has_more={native_page.has_more}"
        )
        return records, timeline, native_page.has_more

    def _scan_for_oldest(
        self,
        timeline: Timeline,
        page_size: int,
        from_payload: Optional[Dict[str, Any]],
        guard: TimeBudgetGuard,
    ) -> Tuple[Optional[CanonicalRecord], Timeline, bool]:
        """Walk backward from the backlog cursor looking for the oldest record.

        Returns:
            ``(anchor, timeline, has_more)``. ``anchor`` is the mapped oldest
            record once history start is reached, None while scanning goes on.
        """
        pages = 0
        while guard.check():
            if self.max_scan_pages is not None and pages >= self.max_scan_pages:
                return None, timeline, True

            native_page = self.adapter.list_older(
                timeline.backlog_cursor or None, page_size, from_payload
            )
            pages += 1
            natives = list(native_page.records)

            if not natives:
                if timeline.backlog_cursor:
                    return self._anchor_on_cursor(timeline, from_payload)
                logger.info("Timeline source is empty, nothing to scan")
                return None, timeline, False

            if not timeline.backlog_cursor and not timeline.backlog_starting_point:
                timeline.backlog_starting_point = self.adapter.record_id(natives[0])

            oldest = natives[-1]
            oldest_id = self.adapter.record_id(oldest)
            if native_page.has_more:
                timeline.backlog_cursor = oldest_id
                continue

            anchor = map_page(self.mapper, [oldest])[0]
            timeline.latest_id = oldest_id
            timeline.backlog_cursor = ""
            logger.info(f"Reached start of history at {oldest_id} after {pages} page(s)")
            return anchor, timeline, False

        logger.warning(
            f"Deadline reached while scanning backlog, resuming from "
            f"{timeline.backlog_cursor or 'the newest record'} next call"
        )
        return None, timeline, True

    def _anchor_on_cursor(
        self,
        timeline: Timeline,
        from_payload: Optional[Dict[str, Any]],
    ) -> Tuple[Optional[CanonicalRecord], Timeline, bool]:
        """Use the backlog cursor record as the oldest one.

        Called when upstream announced older records past the cursor but
        returned none. The cursor record was only seen as a scan boundary,
        so it is listed again and emitted as the anchor.
        """
        cursor = timeline.backlog_cursor
        native = self._relist(cursor, from_payload)
        timeline.latest_id = cursor
        timeline.backlog_cursor = ""
        if native is None:
            logger.error(
                f"Empty page past backlog cursor {cursor} and the record could not "
                f"be listed again; {cursor} is anchored but not emitted"
            )
            return None, timeline, True

        logger.warning(f"Empty page past backlog cursor {cursor}, using it as the oldest record")
        return map_page(self.mapper, [native])[0], timeline, False

    def _relist(self, record_id: str, from_payload: Optional[Dict[str, Any]]) -> Optional[Any]:
        # The record right after ``record_id`` lists it as its older neighbour.
        newer = list(self.adapter.list_newer(record_id, 1, from_payload).records)
        before_id = self.adapter.record_id(newer[0]) if newer else None
        for native in self.adapter.list_older(before_id, 1, from_payload).records:
            if self.adapter.record_id(native) == record_id:
                return native
        return None
