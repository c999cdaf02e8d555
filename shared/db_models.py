"""SQLAlchemy database models for the WeRead to Notion sync application."""

from sqlalchemy import (
    Column, String, Integer, Text, DateTime, ForeignKey, Index, TypeDecorator
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import uuid


class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise uses
    CHAR(36), storing as stringified hex values.
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        else:
            return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name == 'postgresql':
            return value
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None or dialect.name == 'postgresql':
            return value
        return uuid.UUID(value) if isinstance(value, str) else value


Base = declarative_base()


class SyncRun(Base):
    """Model for sync_runs table."""
    __tablename__ = 'sync_runs'

    run_id = Column(UUID(), primary_key=True)
    status = Column(String(50), nullable=False)
    sync_mode = Column(String(20), nullable=True)
    total_items = Column(Integer, default=0)
    matched_items = Column(Integer, default=0)
    success_items = Column(Integer, default=0)
    failed_items = Column(Integer, default=0)
    skipped_items = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('idx_sync_runs_created', 'created_at'),
    )


class SyncState(Base):
    """Model for sync_state table, one row per WeRead book."""
    __tablename__ = 'sync_state'

    item_id = Column(String(255), primary_key=True)
    last_sync_time = Column(DateTime, nullable=False)
    highlights_cursor = Column(String(255), nullable=True)
    notes_cursor = Column(String(255), nullable=True)


class SyncLog(Base):
    """Model for sync_logs table."""
    __tablename__ = 'sync_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(UUID(), ForeignKey('sync_runs.run_id'), nullable=False)
    item_id = Column(String(255), nullable=True)
    level = Column(String(20), nullable=False)  # INFO, WARNING, ERROR
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_sync_logs_run_id', 'run_id'),
    )
