"""SQLAlchemy models for stream state and synced record persistence."""

import uuid
import json
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import (
    Boolean,
    String,
    DateTime,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class SyncState(Base):
    """Continuation state of one (connector, resource) stream."""
    __tablename__ = "sync_states"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    connector_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)

    # Opaque JSON blob returned by the last successful fetch_next call
    state_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    has_more: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("connector_id", "resource", name="uq_sync_states_stream"),
    )

    @property
    def state(self) -> Optional[bytes]:
        """Get the state blob as bytes."""
        if self.state_json:
            return self.state_json.encode("utf-8")
        return None

    @state.setter
    def state(self, value: Optional[bytes]) -> None:
        """Set the state blob from bytes."""
        if value:
            self.state_json = value.decode("utf-8")
        else:
            self.state_json = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the stream state to dictionary representation."""
        return {
            "connector_id": self.connector_id,
            "resource": self.resource,
            "kind": self.kind,
            "state": json.loads(self.state_json) if self.state_json else None,
            "has_more": self.has_more,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SyncedRecord(Base):
    """Canonical record stored once per (connector, resource, reference)."""
    __tablename__ = "synced_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    connector_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource: Mapped[str] = mapped_column(String(100), nullable=False)
    reference: Mapped[str] = mapped_column(String(255), nullable=False)

    # Ordering key, naive UTC
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Sanitized provider payload
    raw_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("connector_id", "resource", "reference", name="uq_synced_records_reference"),
        Index("ix_synced_records_stream_timestamp", "connector_id", "resource", "timestamp"),
    )

    @property
    def raw(self) -> Optional[Dict[str, Any]]:
        """Get raw payload as dictionary."""
        if self.raw_json:
            return json.loads(self.raw_json)
        return None

    @raw.setter
    def raw(self, value: Optional[Dict[str, Any]]) -> None:
        """Set raw payload from dictionary."""
        if value is not None:
            self.raw_json = json.dumps(value, default=str)
        else:
            self.raw_json = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to dictionary representation."""
        return {
            "reference": self.reference,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "raw": self.raw,
        }
