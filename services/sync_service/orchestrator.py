"""Sync orchestration logic."""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from shared.db_operations import DatabaseOperations
from shared.models import (
    SYNC_MODE_FULL,
    SYNC_MODE_INCREMENTAL,
    ItemResult,
    LibraryItem,
    ReconciliationOutcome,
    SyncConfiguration,
    SyncRunSummary,
)
from shared.state_store import DatabaseSyncStateStore, SyncStateStore
from services.notion_writer.config_service import NotionConfigService
from services.notion_writer.writer import NotionWriter
from services.sync_service.content import BookContentSyncer
from services.sync_service.filters import filter_items_by_config, log_filter_stats
from services.sync_service.notifications import NotificationService
from services.sync_service.reconciler import ItemReconciler
from services.weread_reader.client import WeReadClient
from services.weread_reader.metadata import merge_book_metadata

logger = logging.getLogger(__name__)

DEFAULT_PACING_DELAY = 1.0


class RunPhase(str, Enum):
    INIT = "init"
    CONFIGURING = "configuring"
    LISTING = "listing"
    FILTERING = "filtering"
    ITERATING = "iterating"
    SUMMARIZING = "summarizing"
    DONE = "done"


class SyncOrchestrator:
    """Orchestrates a sync run from the WeRead library to the Notion books database."""

    def __init__(
        self,
        weread_client: WeReadClient,
        notion_writer: NotionWriter,
        db_ops: DatabaseOperations,
        database_id: str,
        config_database_id: Optional[str] = None,
        pacing_delay: float = DEFAULT_PACING_DELAY,
        state_store: Optional[SyncStateStore] = None,
        notification_service: Optional[NotificationService] = None
    ):
        """
        Initialize the sync orchestrator.

        Args:
            weread_client: Client for the WeRead account
            notion_writer: Writer for the Notion workspace
            db_ops: Database operations instance
            database_id: Notion books database ID
            config_database_id: Notion database holding the sync configuration;
                without it a permissive in-memory default is used
            pacing_delay: Seconds to wait after each book
            state_store: Stored cursors per book, defaults to the sync_state table
            notification_service: Notifier for run-level failures
        """
        self.weread_client = weread_client
        self.notion_writer = notion_writer
        self.db_ops = db_ops
        self.database_id = database_id
        self.config_database_id = config_database_id
        self.pacing_delay = pacing_delay
        self.state_store = state_store or DatabaseSyncStateStore(db_ops)
        self.notification_service = notification_service or NotificationService()
        self.config_service = NotionConfigService(notion_writer)
        self.reconciler = ItemReconciler(
            weread_client=weread_client,
            notion_writer=notion_writer,
            content_syncer=BookContentSyncer(weread_client, notion_writer),
            state_store=self.state_store,
            database_id=database_id
        )
        self.phase = RunPhase.INIT

    async def execute_sync(self, run_id: UUID) -> SyncRunSummary:
        """
        Execute a sync run.

        1. Loads the sync configuration, creating the default one if needed
        2. Lists shelf and notebook books and merges them
        3. Filters the books by configuration
        4. Reconciles each book in order, pausing after each one
        5. Records the outcome counts

        Failures of a single book are counted and the run moves on. Only a
        failure outside the per-book loop (configuration, listing) fails the
        run; state already saved for earlier books is kept.

        Args:
            run_id: Unique run identifier

        Returns:
            SyncRunSummary with outcome counts
        """
        self.phase = RunPhase.INIT
        logger.info(f"Starting sync run {run_id}")

        self.db_ops.create_sync_run(run_id)
        self.db_ops.update_sync_run(run_id, status='running')
        self.db_ops.add_sync_log(run_id, 'INFO', 'Starting sync run')

        summary = SyncRunSummary(run_id=str(run_id), status='running')

        try:
            self.phase = RunPhase.CONFIGURING
            config = await self._load_configuration()
            incremental = config.incremental
            organize_by_chapter = config.organize_by_chapter
            summary.sync_mode = SYNC_MODE_INCREMENTAL if incremental else SYNC_MODE_FULL

            logger.info(f"Sync mode: {summary.sync_mode}, organize by chapter: {organize_by_chapter}")
            self.db_ops.update_sync_run(run_id, sync_mode=summary.sync_mode)

            self.phase = RunPhase.LISTING
            all_items = await self._list_library()
            summary.total_items = len(all_items)

            self.phase = RunPhase.FILTERING
            items, stats = filter_items_by_config(all_items, config)
            log_filter_stats(stats, config)
            summary.matched_items = len(items)

            self.db_ops.update_sync_run(
                run_id, total_items=summary.total_items, matched_items=summary.matched_items
            )
            self.db_ops.add_sync_log(
                run_id,
                'INFO',
                f'Selected {stats.matched} of {stats.total} books '
                f'({stats.excluded_by_status} excluded by status, {stats.excluded_by_author} by author)'
            )

            self.phase = RunPhase.ITERATING
            await self._sync_items(run_id, items, incremental, organize_by_chapter, summary)

            self.phase = RunPhase.SUMMARIZING
            summary.status = 'completed'
            logger.info(
                f"Sync run {run_id} completed: {summary.success_count} succeeded, "
                f"{summary.fail_count} failed, {summary.skipped_count} skipped (no updates)"
            )

            self.db_ops.update_sync_run(run_id, status='completed', completed_at=datetime.utcnow())
            self.db_ops.add_sync_log(
                run_id,
                'INFO',
                f'Sync completed: {summary.success_count} succeeded, '
                f'{summary.fail_count} failed, {summary.skipped_count} skipped'
            )

        except Exception as e:
            failed_phase = self.phase
            logger.error(f"Sync run {run_id} failed during {failed_phase.value}: {e}", exc_info=True)

            summary.status = 'failed'
            summary.error_message = str(e)

            self.db_ops.update_sync_run(
                run_id,
                status='failed',
                error_message=str(e),
                completed_at=datetime.utcnow()
            )
            self.db_ops.add_sync_log(run_id, 'ERROR', f'Sync failed: {e}')

            await self.notification_service.send_critical_error_notification(
                run_id=str(run_id),
                error_message=str(e),
                context={"phase": failed_phase.value, "sync_mode": summary.sync_mode}
            )

        self.phase = RunPhase.DONE
        return summary

    async def _load_configuration(self) -> SyncConfiguration:
        if not self.config_database_id:
            logger.info("No configuration database set, using default configuration (all statuses)")
            return SyncConfiguration()

        # Check-then-create; two first runs racing may both create a default page
        if not await self.config_service.configuration_exists(self.config_database_id):
            logger.info("No sync configuration found, creating the default configuration")
            await self.config_service.create_default_configuration(self.config_database_id)

        return await self.config_service.load_configuration(self.config_database_id)

    async def _list_library(self) -> List[LibraryItem]:
        shelf_items = await self.weread_client.get_bookshelf_books()
        notebook_items = await self.weread_client.get_notebook_books()
        return merge_book_metadata(shelf_items, notebook_items)

    async def _sync_items(
        self,
        run_id: UUID,
        items: List[LibraryItem],
        incremental: bool,
        organize_by_chapter: bool,
        summary: SyncRunSummary
    ) -> None:
        logger.info(f"Syncing {len(items)} books to Notion")

        # Strictly sequential: the state store has no guard against concurrent writers
        for index, item in enumerate(items, start=1):
            logger.info(f"[{index}/{len(items)}] Syncing {item.title}...")

            try:
                result = await self.reconciler.reconcile(item, incremental, organize_by_chapter)
            except Exception as e:
                logger.error(f"Unexpected error syncing {item.title}: {e}", exc_info=True)
                result = ItemResult(
                    item_id=item.item_id,
                    title=item.title,
                    outcome=ReconciliationOutcome.FAILED_CONTENT,
                    error=str(e)
                )

            summary.record(result)
            self._record_item_progress(run_id, result)

            await asyncio.sleep(self.pacing_delay)

    def _record_item_progress(self, run_id: UUID, result: ItemResult) -> None:
        outcome = result.outcome
        if outcome.failed:
            level, message = 'ERROR', f"Failed to sync {result.title}: {result.error or outcome.value}"
        elif outcome is ReconciliationOutcome.SKIPPED_NO_CHANGE:
            level, message = 'INFO', f"No updates for {result.title}, skipped"
        else:
            level, message = 'INFO', f"Synced {result.title} to Notion page {result.record_id} ({outcome.value})"

        try:
            self.db_ops.increment_sync_run_progress(
                run_id,
                success=1 if outcome.succeeded else 0,
                failed=1 if outcome.failed else 0,
                skipped=1 if outcome is ReconciliationOutcome.SKIPPED_NO_CHANGE else 0
            )
            self.db_ops.add_sync_log(run_id, level, message, item_id=result.item_id)
        except SQLAlchemyError as e:
            # Run history is informational; the book itself is already reconciled
            logger.error(f"Failed to record progress of {result.title} for run {run_id}: {e}")
