"""Sync service layer that threads continuation state through the database."""

import asyncio
import json
import logging
import threading
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from .config import SyncSettings
from .contract import SyncContract
from .database import SyncState, SyncStateRepository, SyncedRecordRepository
from .models import FetchNextRequest

logger = logging.getLogger(__name__)


class SyncStepResult(BaseModel):
    """Outcome of one fetch_next call persisted for a stream."""
    connector_id: str
    resource: str
    records_fetched: int = 0
    records_stored: int = 0
    has_more: bool = False


class DrainResult(BaseModel):
    """Outcome of draining a stream."""
    connector_id: str
    resource: str
    calls: int = 0
    records_fetched: int = 0
    records_stored: int = 0
    has_more: bool = False
    steps: List[SyncStepResult] = Field(default_factory=list, exclude=True)


class SyncService:
    """Service class running synchronization steps with persistence.

    State is written only after a successful fetch_next call, so a failed
    call leaves the previous state in place for a retry.
    """

    def __init__(self, session: AsyncSession, settings: Optional[SyncSettings] = None):
        """Initialize the service with a database session.

        Args:
            session: AsyncSession instance for database operations.
            settings: Sync settings; read from the environment when omitted.
        """
        self.session = session
        self.settings = settings or SyncSettings.from_env()
        self.state_repo = SyncStateRepository(session)
        self.record_repo = SyncedRecordRepository(session)

    async def get_state(self, connector_id: str, resource: str) -> Optional[SyncState]:
        return await self.state_repo.get(connector_id, resource)

    async def reset(self, connector_id: str, resource: str) -> bool:
        """Drop a stream's state; its next sync starts from the beginning."""
        return await self.state_repo.reset(connector_id, resource)

    async def run_once(
        self,
        connector_id: str,
        resource: str,
        contract: SyncContract,
        page_size: Optional[int] = None,
        from_payload: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncStepResult:
        """Run one fetch_next call and persist its records and new state.

        Args:
            connector_id: Connector instance identifier.
            resource: Resource kind.
            contract: FetchNext contract of the stream's source.
            page_size: Records per call; settings default when omitted.
            from_payload: Source context handed to the adapter.
            cancel_event: Set it to abort a running fetch. It is also set when
                the awaiting task is cancelled, so the worker thread stops at
                its next page boundary.

        Returns:
            SyncStepResult for the call.

        Raises:
            Any error raised by fetch_next; nothing is persisted in that case.
        """
        row = await self.state_repo.get(connector_id, resource)
        request = FetchNextRequest(
            state=row.state if row else None,
            page_size=page_size or self.settings.default_page_size,
            from_payload=json.dumps(from_payload).encode("utf-8") if from_payload else None,
        )

        # fetch_next blocks on provider I/O; keep it off the event loop.
        cancel_event = cancel_event or threading.Event()
        try:
            response = await asyncio.to_thread(
                contract.fetch_next, request, cancel_event=cancel_event
            )
        except asyncio.CancelledError:
            cancel_event.set()
            raise

        stored = await self.record_repo.add_many(connector_id, resource, response.records)
        await self.state_repo.save(
            connector_id=connector_id,
            resource=resource,
            kind=contract.kind.value,
            state=response.new_state,
            has_more=response.has_more,
        )

        logger.info(
            f"Synced {connector_id}/{resource}: {len(response.records)} fetched, "
            f"{stored} stored, has_more={response.has_more}"
        )
        return SyncStepResult(
            connector_id=connector_id,
            resource=resource,
            records_fetched=len(response.records),
            records_stored=stored,
            has_more=response.has_more,
        )

    async def drain(
        self,
        connector_id: str,
        resource: str,
        contract: SyncContract,
        page_size: Optional[int] = None,
        from_payload: Optional[Dict[str, Any]] = None,
        max_calls: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> DrainResult:
        """Call run_once until the stream reports no more data.

        Each successful step is committed before the next one starts, so a
        failure mid-drain keeps the progress made so far.

        Returns:
            DrainResult; ``has_more`` is True when ``max_calls`` was reached first.
        """
        max_calls = max_calls or self.settings.max_drain_calls
        result = DrainResult(connector_id=connector_id, resource=resource)

        while result.calls < max_calls:
            step = await self.run_once(
                connector_id,
                resource,
                contract,
                page_size=page_size,
                from_payload=from_payload,
                cancel_event=cancel_event,
            )
            await self.session.commit()

            result.calls += 1
            result.records_fetched += step.records_fetched
            result.records_stored += step.records_stored
            result.has_more = step.has_more
            result.steps.append(step)
            if not step.has_more:
                break

        if result.has_more:
            logger.warning(
                f"Stopped draining {connector_id}/{resource} after {result.calls} calls "
                f"with more data pending"
            )
        return result
