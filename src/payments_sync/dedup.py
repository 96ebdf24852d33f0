"""Watermark filter dropping records that were already emitted."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from .models import CanonicalRecord, ensure_utc

logger = logging.getLogger(__name__)


class DedupFilter:
    """Drop records whose timestamp is at or below the watermark.

    Ties are dropped too: a record sharing the watermark's timestamp was
    emitted by the call that set the watermark.
    """

    def __init__(self, watermark: Optional[datetime] = None):
        self.watermark = ensure_utc(watermark) if watermark is not None else None
        self.skipped = 0

    def is_new(self, record: CanonicalRecord) -> bool:
        if self.watermark is None:
            return True
        return record.timestamp > self.watermark

    def filter(self, records: Iterable[CanonicalRecord]) -> List[CanonicalRecord]:
        kept = []
        for record in records:
            if self.is_new(record):
                kept.append(record)
            else:
                self.skipped += 1
        return kept
