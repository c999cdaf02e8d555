"""Sync state store: last-seen cursors per book."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from shared.db_operations import DatabaseOperations
from shared.models import SyncStateRecord

logger = logging.getLogger(__name__)


class SyncStateStore(ABC):
    """Keyed storage of SyncStateRecords with last-write-wins semantics.

    Not safe for concurrent writers; a single sync run owns the store while
    it processes a book.
    """

    @abstractmethod
    def load(self, item_id: str) -> Optional[SyncStateRecord]:
        """Return the stored record for a book, or None if it was never synced."""

    @abstractmethod
    def save(self, record: SyncStateRecord) -> None:
        """Replace the stored record for ``record.item_id``."""


class DatabaseSyncStateStore(SyncStateStore):
    """SyncStateStore backed by the sync_state table."""

    def __init__(self, db_ops: DatabaseOperations):
        self.db_ops = db_ops

    def load(self, item_id: str) -> Optional[SyncStateRecord]:
        row = self.db_ops.get_sync_state(item_id)
        if row is None:
            return None
        return SyncStateRecord(
            item_id=row.item_id,
            last_sync_time=row.last_sync_time,
            highlights_cursor=row.highlights_cursor,
            notes_cursor=row.notes_cursor
        )

    def save(self, record: SyncStateRecord) -> None:
        self.db_ops.save_sync_state(
            item_id=record.item_id,
            last_sync_time=record.last_sync_time,
            highlights_cursor=record.highlights_cursor,
            notes_cursor=record.notes_cursor
        )
        logger.debug(
            f"Saved sync state for {record.item_id}: "
            f"highlights={record.highlights_cursor}, notes={record.notes_cursor}"
        )
