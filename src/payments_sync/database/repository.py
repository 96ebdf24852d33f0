"""Repository layer for stream state and synced records."""

import logging
from datetime import datetime
from typing import Optional, List, Sequence

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CanonicalRecord
from .models import SyncState, SyncedRecord

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    # Columns store naive UTC; CanonicalRecord timestamps are always aware UTC.
    return value.replace(tzinfo=None)


class SyncStateRepository:
    """Repository for SyncState persistence."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def get(self, connector_id: str, resource: str) -> Optional[SyncState]:
        """Get the state row of a stream.

        Args:
            connector_id: Connector instance identifier.
            resource: Resource kind (payments, accounts, ...).

        Returns:
            SyncState instance if the stream was synced before, None otherwise.
        """
        result = await self.session.execute(
            select(SyncState).where(
                and_(
                    SyncState.connector_id == connector_id,
                    SyncState.resource == resource,
                )
            )
        )
        return result.scalar_one_or_none()

    async def save(
        self,
        connector_id: str,
        resource: str,
        kind: str,
        state: bytes,
        has_more: bool,
    ) -> SyncState:
        """Create or replace the state of a stream.

        Args:
            connector_id: Connector instance identifier.
            resource: Resource kind.
            kind: Source kind of the stream's driver.
            state: New opaque state blob.
            has_more: HasMore flag returned with the state.

        Returns:
            The persisted SyncState.
        """
        row = await self.get(connector_id, resource)
        if row is None:
            row = SyncState(connector_id=connector_id, resource=resource, kind=kind)
            self.session.add(row)
        row.kind = kind
        row.state = state
        row.has_more = has_more
        row.updated_at = datetime.utcnow()
        await self.session.flush()
        return row

    async def reset(self, connector_id: str, resource: str) -> bool:
        """Forget the state of a stream so the next sync starts fresh.

        Returns:
            True if a state existed.
        """
        row = await self.get(connector_id, resource)
        if row is None:
            return False
        await self.session.delete(row)
        await self.session.flush()
        logger.info(f"Reset state of stream {connector_id}/{resource}")
        return True


class SyncedRecordRepository:
    """Repository for canonical records, idempotent by reference."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_many(
        self,
        connector_id: str,
        resource: str,
        records: Sequence[CanonicalRecord],
    ) -> int:
        """Store records not stored yet for this stream.

        Args:
            connector_id: Connector instance identifier.
            resource: Resource kind.
            records: Canonical records in emission order.

        Returns:
            Number of newly stored records.
        """
        if not records:
            return 0

        references = [r.reference for r in records]
        result = await self.session.execute(
            select(SyncedRecord.reference).where(
                and_(
                    SyncedRecord.connector_id == connector_id,
                    SyncedRecord.resource == resource,
                    SyncedRecord.reference.in_(references),
                )
            )
        )
        existing = set(result.scalars().all())

        added = 0
        for record in records:
            if record.reference in existing:
                continue
            row = SyncedRecord(
                connector_id=connector_id,
                resource=resource,
                reference=record.reference,
                timestamp=_naive_utc(record.timestamp),
            )
            row.raw = record.raw
            self.session.add(row)
            existing.add(record.reference)
            added += 1

        await self.session.flush()
        if added < len(records):
            logger.info(
                f"Skipped {len(records) - added} already stored records "
                f"for {connector_id}/{resource}"
            )
        return added

    async def list_for_stream(
        self,
        connector_id: str,
        resource: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[SyncedRecord]:
        """List stored records of a stream in timestamp order."""
        result = await self.session.execute(
            select(SyncedRecord)
            .where(
                and_(
                    SyncedRecord.connector_id == connector_id,
                    SyncedRecord.resource == resource,
                )
            )
            .order_by(SyncedRecord.timestamp, SyncedRecord.reference)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count(self, connector_id: str, resource: str) -> int:
        """Count stored records of a stream."""
        result = await self.session.execute(
            select(func.count())
            .select_from(SyncedRecord)
            .where(
                and_(
                    SyncedRecord.connector_id == connector_id,
                    SyncedRecord.resource == resource,
                )
            )
        )
        return result.scalar_one()
