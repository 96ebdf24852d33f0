"""Uniform FetchNext entry point over every kind of source."""

import logging
import threading
import time
from typing import Callable, Optional, Union

from .config import SyncSettings
from .connectors.base import ForwardCursorAdapter, RecordMapper, SourceKind, TimelineAdapter
from .errors import SyncError, UnsupportedSourceError
from .models import FetchNextRequest, FetchNextResponse
from .pagination import PaginationDriver
from .timeline import TimelineScanner

logger = logging.getLogger(__name__)

Driver = Union[PaginationDriver, TimelineScanner]
Adapter = Union[ForwardCursorAdapter, TimelineAdapter]


class SyncContract:
    """
    One synchronization stream's FetchNext contract.

    The driver is picked once, from the adapter's declared ``kind``. A
    contract holds no mutable state between calls, so independent streams
    can run concurrently; calls for the same stream must be serialized by
    the caller.
    """

    def __init__(self, driver: Driver, name: str = "stream"):
        self.driver = driver
        self.name = name

    @classmethod
    def for_source(
        cls,
        adapter: Adapter,
        mapper: RecordMapper,
        settings: Optional[SyncSettings] = None,
        name: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "SyncContract":
        """Build the contract for an adapter/mapper pair.

        Raises:
            UnsupportedSourceError: If the adapter's kind is unknown.
        """
        settings = settings or SyncSettings()
        kind = getattr(adapter, "kind", None)
        name = name or type(adapter).__name__

        if kind == SourceKind.FORWARD_CURSOR:
            driver: Driver = PaginationDriver(adapter, mapper)
        elif kind == SourceKind.TIMELINE:
            driver = TimelineScanner(
                adapter,
                mapper,
                ceiling=settings.execution_ceiling,
                margin=settings.safety_margin,
                max_scan_pages=settings.max_scan_pages,
                clock=clock,
            )
        else:
            raise UnsupportedSourceError(
                f"{type(adapter).__name__} does not declare a supported source kind"
            )
        return cls(driver, name=name)

    @property
    def kind(self) -> SourceKind:
        return self.driver.adapter.kind

    def fetch_next(
        self,
        request: FetchNextRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> FetchNextResponse:
        """Fetch the next page of canonical records.

        Every failure propagates unchanged and leaves the caller's previous
        state valid for a retry.
        """
        try:
            return self.driver.fetch_next(request, cancel_event=cancel_event)
        except SyncError as e:
            logger.error(f"[{self.name}] fetch_next failed: {type(e).__name__}: {e}")
            raise
        except Exception as e:
            logger.error(f"[{self.name}] upstream error during fetch_next: {type(e).__name__}")
            raise
