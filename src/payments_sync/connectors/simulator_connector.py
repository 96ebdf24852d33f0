"""Simulator sources for exercising synchronization without real PSP calls."""

import uuid
import time
import random
import logging
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from ..errors import MissingFromPayloadError
from ..models import CanonicalRecord
from .base import (
    CursorPosition,
    ForwardCursorAdapter,
    NativePage,
    RecordMapper,
    TimelineAdapter,
)

logger = logging.getLogger(__name__)


class SimulatorScenario(str, Enum):
    """Failure scenarios the simulator can inject on the next page call."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"


class SimulatedRateLimitError(ConnectionError):
    """Simulated HTTP 429 from the provider."""


class SimulatedServerError(ConnectionError):
    """Simulated HTTP 5xx from the provider."""


@dataclass
class SimulatedTransaction:
    """In-memory representation of a provider transaction."""
    id: str
    amount: int
    currency: str
    status: str
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "metadata": dict(self.metadata),
        }


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    upstream_page_size: Optional[int] = None  # None: honour the requested page size
    delay_ms: int = 0  # Simulated response delay in ms
    failure_rate: float = 0.0  # Rate of transient (rate limit) errors
    seed: Optional[int] = None  # Random seed for reproducibility
    require_account: bool = False  # Listing is scoped to a parent account reference


class SimulatedTransactionMapper(RecordMapper):
    """Maps SimulatedTransaction objects to canonical records."""

    def map(self, native: SimulatedTransaction) -> CanonicalRecord:
        if native.created_at is None:
            raise ValueError(f"transaction {native.id} has no created_at")
        return CanonicalRecord(
            reference=native.id,
            timestamp=native.created_at,
            raw=native.to_dict(),
        )


class _SimulatorStore:
    """Transactions shared by the simulator adapters, oldest first."""

    def __init__(self, config: Optional[SimulatorConfig] = None):
        self.config = config or SimulatorConfig()
        self._transactions: List[SimulatedTransaction] = []
        self._rng = random.Random(self.config.seed)
        self._forced: List[SimulatorScenario] = []
        self.calls = 0

    def _generate_id(self) -> str:
        return f"sim_{uuid.uuid4().hex[:24]}"

    def add_transaction(
        self,
        created_at: Optional[datetime],
        amount: int = 1000,
        currency: str = "USD",
        status: str = "captured",
        transaction_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SimulatedTransaction:
        """Append a transaction; it must not be older than the last one."""
        txn = SimulatedTransaction(
            id=transaction_id or self._generate_id(),
            amount=amount,
            currency=currency,
            status=status,
            created_at=created_at,
            metadata=metadata or {},
        )
        self._transactions.append(txn)
        return txn

    def generate(
        self,
        count: int,
        start: Optional[datetime] = None,
        step: timedelta = timedelta(minutes=1),
        prefix: str = "sim",
    ) -> List[SimulatedTransaction]:
        """Append ``count`` transactions with strictly increasing timestamps."""
        start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        offset = len(self._transactions)
        return [
            self.add_transaction(
                created_at=start + step * i,
                amount=1000 + i,
                transaction_id=f"{prefix}_{offset + i:05d}",
            )
            for i in range(count)
        ]

    def fail_next(self, scenario: SimulatorScenario) -> None:
        """Make the next page call fail with the given scenario."""
        self._forced.append(scenario)

    def _before_call(self, from_payload: Optional[Dict[str, Any]]) -> None:
        if self.config.require_account and not (from_payload or {}).get("reference"):
            raise MissingFromPayloadError("an account reference is required in from_payload")
        self.calls += 1
        if self.config.delay_ms > 0:
            time.sleep(self.config.delay_ms / 1000.0)

        scenario = self._forced.pop(0) if self._forced else SimulatorScenario.SUCCESS
        if scenario == SimulatorScenario.SUCCESS and self._rng.random() < self.config.failure_rate:
            scenario = SimulatorScenario.RATE_LIMIT

        if scenario == SimulatorScenario.TIMEOUT:
            raise TimeoutError("Simulated timeout")
        if scenario == SimulatorScenario.RATE_LIMIT:
            raise SimulatedRateLimitError("Simulated rate limit (429)")
        if scenario == SimulatorScenario.SERVER_ERROR:
            raise SimulatedServerError("Simulated server error (503)")

    def _limit(self, requested: int) -> int:
        if self.config.upstream_page_size:
            return min(requested, self.config.upstream_page_size)
        return requested

    def get_all_transactions(self) -> List[SimulatedTransaction]:
        return list(self._transactions)

    def clear_transactions(self) -> None:
        self._transactions.clear()

    def health_check(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "provider": "simulator",
            "transaction_count": len(self._transactions),
            "calls": self.calls,
        }


class SimulatorCursorAdapter(_SimulatorStore, ForwardCursorAdapter):
    """
    Forward-cursor simulator: lists transactions created at or after
    ``since`` in ascending order, page by page. The boundary is inclusive
    like most "updated_at_from" filters, leaving deduplication to the driver.
    """

    def page(
        self,
        position: CursorPosition,
        page_size: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        self._before_call(from_payload)
        eligible = [
            t for t in self._transactions
            if position.since is None or t.created_at is None or t.created_at >= position.since
        ]
        limit = self._limit(page_size)
        start = position.page * limit
        chunk = eligible[start:start + limit]
        return NativePage(records=chunk, has_more=start + limit < len(eligible))


class SimulatorTimelineAdapter(_SimulatorStore, TimelineAdapter):
    """Reverse-chronological simulator: newest first, relative to an id."""

    def _newest_first(self) -> List[SimulatedTransaction]:
        return list(reversed(self._transactions))

    def _index_of(self, records: List[SimulatedTransaction], transaction_id: str) -> int:
        for i, txn in enumerate(records):
            if txn.id == transaction_id:
                return i
        raise LookupError(f"No such transaction: {transaction_id}")

    def list_older(
        self,
        before_id: Optional[str],
        limit: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        self._before_call(from_payload)
        records = self._newest_first()
        start = 0 if before_id is None else self._index_of(records, before_id) + 1
        end = start + self._limit(limit)
        return NativePage(records=records[start:end], has_more=end < len(records))

    def list_newer(
        self,
        after_id: str,
        limit: int,
        from_payload: Optional[Dict[str, Any]] = None,
    ) -> NativePage:
        self._before_call(from_payload)
        records = self._newest_first()
        end = self._index_of(records, after_id)
        start = max(0, end - self._limit(limit))
        return NativePage(records=records[start:end], has_more=start > 0)
