"""Per-book reconciliation between WeRead and Notion."""

import logging
from datetime import datetime
from typing import Callable, Optional

from shared.models import (
    ItemResult,
    LibraryItem,
    ReconciliationOutcome,
    SyncStateRecord,
)
from shared.state_store import SyncStateStore
from services.notion_writer.writer import NotionWriter
from services.sync_service.content import BookContentSyncer
from services.weread_reader.client import WeReadClient
from services.weread_reader.metadata import apply_book_detail

logger = logging.getLogger(__name__)


class ItemReconciler:
    """
    Brings one book's Notion page in line with WeRead.

    Steps for each book:
    1. Look up an existing page by exact title and author
    2. If there is none, enrich the book with its WeRead details and create the page
    3. Transfer highlights and notes into the page
    4. If the content changed (or the run is a full sync), overwrite the
       stored cursors, even when the content write itself failed

    Every failure is turned into an ItemResult; nothing raised here reaches
    the next book.
    """

    def __init__(
        self,
        weread_client: WeReadClient,
        notion_writer: NotionWriter,
        content_syncer: BookContentSyncer,
        state_store: SyncStateStore,
        database_id: str,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        """
        Initialize the reconciler.

        Args:
            weread_client: Source of book details
            notion_writer: Writer for the books database
            content_syncer: Transfers highlights and notes
            state_store: Stored cursors per book
            database_id: Notion books database ID
            clock: Source of the sync timestamp
        """
        self.weread_client = weread_client
        self.notion_writer = notion_writer
        self.content_syncer = content_syncer
        self.state_store = state_store
        self.database_id = database_id
        self.clock = clock

    async def reconcile(
        self,
        item: LibraryItem,
        incremental: bool,
        organize_by_chapter: bool
    ) -> ItemResult:
        """
        Reconcile a single book.

        Args:
            item: The book
            incremental: Effective incremental flag of the run
            organize_by_chapter: Effective chapter organisation flag of the run

        Returns:
            ItemResult describing the outcome
        """
        # Identity resolution and metadata phase
        try:
            lookup = await self.notion_writer.find_book_page(self.database_id, item.title, item.author)

            if lookup.exists and lookup.record_id:
                logger.info(f"{item.title} already exists in Notion, updating page {lookup.record_id}")
                page_id = lookup.record_id
                created = False
            else:
                page_id = await self._create_page(item)
                created = True
        except Exception as e:
            logger.error(f"Failed to write metadata of {item.title}: {e}", exc_info=True)
            return self._result(item, ReconciliationOutcome.FAILED_METADATA, error=str(e))

        if not page_id:
            logger.error(f"Failed to create Notion page for {item.title}")
            return self._result(
                item, ReconciliationOutcome.FAILED_METADATA, error="Notion page was not created"
            )

        # Content phase
        try:
            # A new page starts empty, so stored cursors no longer describe it
            previous_state = None if created else self.state_store.load(item.item_id)
            content = await self.content_syncer.transfer(
                item, page_id, incremental, organize_by_chapter, previous_state
            )
        except Exception as e:
            logger.error(f"Failed to sync content of {item.title}: {e}", exc_info=True)
            return self._result(item, ReconciliationOutcome.FAILED_CONTENT, page_id, error=str(e))

        # Full syncs always count as an update
        changed = content.has_update or not incremental
        if not changed:
            logger.info(f"No new content detected for {item.title}, skipping")
            return self._result(item, ReconciliationOutcome.SKIPPED_NO_CHANGE, page_id)

        # Stored even when the content write failed
        record = SyncStateRecord(
            item_id=item.item_id,
            last_sync_time=self.clock(),
            highlights_cursor=content.highlights_cursor,
            notes_cursor=content.notes_cursor
        )
        try:
            self.state_store.save(record)
        except Exception as e:
            logger.error(f"Failed to save sync state of {item.title}: {e}", exc_info=True)
            return self._result(
                item, ReconciliationOutcome.FAILED_CONTENT, page_id,
                error=f"Failed to save sync state: {e}"
            )

        if not content.success:
            logger.warning(f"Metadata of {item.title} synced, but content sync failed")
            return self._result(
                item, ReconciliationOutcome.FAILED_CONTENT, page_id, error="Content sync failed"
            )

        outcome = ReconciliationOutcome.CREATED if created else ReconciliationOutcome.UPDATED
        logger.info(f"Synced {item.title} ({outcome.value})")
        return self._result(item, outcome, page_id)

    async def _create_page(self, item: LibraryItem) -> Optional[str]:
        logger.info(f"Fetching details of {item.title}")
        try:
            detail = await self.weread_client.get_book_info(item.item_id)
        except Exception as e:
            logger.warning(f"Could not fetch details of {item.title}, using listing data: {e}")
            detail = None

        enriched = apply_book_detail(item, detail)
        logger.info(f"Details of {item.title}: ISBN={enriched.isbn!r}, publisher={enriched.publisher!r}")

        write = await self.notion_writer.create_book_page(self.database_id, enriched)
        if not write.success:
            return None
        return write.record_id

    @staticmethod
    def _result(
        item: LibraryItem,
        outcome: ReconciliationOutcome,
        record_id: Optional[str] = None,
        error: Optional[str] = None
    ) -> ItemResult:
        return ItemResult(
            item_id=item.item_id,
            title=item.title,
            outcome=outcome,
            record_id=record_id,
            error=error
        )
