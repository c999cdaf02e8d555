"""Database operations for the WeRead to Notion sync application."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from sqlalchemy import create_engine, select, func as sql_func
from sqlalchemy.orm import Session, sessionmaker

from shared.db_models import Base, SyncRun, SyncState, SyncLog
from shared.config import get_database_url


class DatabaseOperations:
    """Handles all database operations for the sync application."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database connection."""
        self.database_url = database_url or get_database_url()
        self.engine = create_engine(self.database_url, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    # Sync State Operations

    def get_sync_state(self, item_id: str) -> Optional[SyncState]:
        """
        Get the sync state record for a book.

        Args:
            item_id: The WeRead book ID

        Returns:
            SyncState record or None if the book was never synced
        """
        with self.get_session() as session:
            return session.get(SyncState, item_id)

    def list_sync_states(self) -> List[SyncState]:
        """Get all sync state records, most recently synced first."""
        with self.get_session() as session:
            stmt = select(SyncState).order_by(SyncState.last_sync_time.desc())
            return list(session.execute(stmt).scalars().all())

    def save_sync_state(
        self,
        item_id: str,
        last_sync_time: datetime,
        highlights_cursor: Optional[str],
        notes_cursor: Optional[str]
    ) -> SyncState:
        """
        Insert or overwrite the sync state record for a book.

        Every field of an existing record is replaced; nothing is merged.

        Args:
            item_id: The WeRead book ID
            last_sync_time: When the content transfer finished
            highlights_cursor: Highlights synckey observed during the transfer
            notes_cursor: Notes synckey observed during the transfer

        Returns:
            The created or updated SyncState record
        """
        with self.get_session() as session:
            state = session.get(SyncState, item_id)
            if state is None:
                state = SyncState(item_id=item_id)
                session.add(state)

            state.last_sync_time = last_sync_time
            state.highlights_cursor = highlights_cursor
            state.notes_cursor = notes_cursor

            session.commit()
            session.refresh(state)
            return state

    # Sync Run Tracking Operations

    def create_sync_run(self, run_id: UUID, sync_mode: Optional[str] = None) -> SyncRun:
        """
        Create a new sync run in 'queued' status.

        Args:
            run_id: Unique run identifier
            sync_mode: full or incremental, when already known

        Returns:
            The created SyncRun record
        """
        with self.get_session() as session:
            sync_run = SyncRun(
                run_id=run_id,
                status='queued',
                sync_mode=sync_mode,
                total_items=0,
                matched_items=0,
                success_items=0,
                failed_items=0,
                skipped_items=0
            )
            session.add(sync_run)
            session.commit()
            session.refresh(sync_run)
            return sync_run

    def update_sync_run(
        self,
        run_id: UUID,
        status: Optional[str] = None,
        sync_mode: Optional[str] = None,
        total_items: Optional[int] = None,
        matched_items: Optional[int] = None,
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None
    ) -> Optional[SyncRun]:
        """
        Update a sync run with progress information.

        Args:
            run_id: The run ID to update
            status: New status (queued, running, completed, failed)
            sync_mode: full or incremental
            total_items: Number of books in the library
            matched_items: Number of books left after filtering
            error_message: Error message if the run failed
            completed_at: Completion timestamp

        Returns:
            The updated SyncRun record or None if not found
        """
        with self.get_session() as session:
            sync_run = session.get(SyncRun, run_id)

            if not sync_run:
                return None

            if status is not None:
                sync_run.status = status
            if sync_mode is not None:
                sync_run.sync_mode = sync_mode
            if total_items is not None:
                sync_run.total_items = total_items
            if matched_items is not None:
                sync_run.matched_items = matched_items
            if error_message is not None:
                sync_run.error_message = error_message
            if completed_at is not None:
                sync_run.completed_at = completed_at

            session.commit()
            session.refresh(sync_run)
            return sync_run

    def increment_sync_run_progress(
        self,
        run_id: UUID,
        success: int = 0,
        failed: int = 0,
        skipped: int = 0
    ) -> Optional[SyncRun]:
        """
        Increment sync run outcome counters.

        Args:
            run_id: The run ID
            success: Number of books to add to the success count
            failed: Number of books to add to the failed count
            skipped: Number of books to add to the skipped count

        Returns:
            The updated SyncRun record or None if not found
        """
        with self.get_session() as session:
            sync_run = session.get(SyncRun, run_id)

            if not sync_run:
                return None

            sync_run.success_items += success
            sync_run.failed_items += failed
            sync_run.skipped_items += skipped

            session.commit()
            session.refresh(sync_run)
            return sync_run

    def get_sync_run(self, run_id: UUID) -> Optional[SyncRun]:
        """Get a sync run by ID."""
        with self.get_session() as session:
            return session.get(SyncRun, run_id)

    def get_sync_runs(self, limit: int = 50, offset: int = 0) -> tuple[List[SyncRun], int]:
        """
        Get sync runs, newest first, with pagination.

        Args:
            limit: Maximum number of runs to return
            offset: Number of runs to skip

        Returns:
            Tuple of (list of SyncRun records, total count)
        """
        with self.get_session() as session:
            total_count = session.execute(
                select(sql_func.count()).select_from(SyncRun)
            ).scalar()

            stmt = select(SyncRun).order_by(
                SyncRun.created_at.desc()
            ).limit(limit).offset(offset)

            runs = list(session.execute(stmt).scalars().all())
            return runs, total_count

    # Sync Log Operations

    def add_sync_log(
        self,
        run_id: UUID,
        level: str,
        message: str,
        item_id: Optional[str] = None
    ) -> SyncLog:
        """
        Add a log entry for a sync run.

        Args:
            run_id: The run ID
            level: Log level (INFO, WARNING, ERROR)
            message: Log message
            item_id: Optional WeRead book ID related to this log

        Returns:
            The created SyncLog record
        """
        with self.get_session() as session:
            sync_log = SyncLog(
                run_id=run_id,
                level=level,
                message=message,
                item_id=item_id
            )
            session.add(sync_log)
            session.commit()
            session.refresh(sync_log)
            return sync_log

    def get_sync_logs(self, run_id: UUID, limit: int = 100) -> List[SyncLog]:
        """
        Get log entries for a sync run, oldest first.

        Args:
            run_id: The run ID
            limit: Maximum number of logs to return

        Returns:
            List of SyncLog records
        """
        with self.get_session() as session:
            stmt = select(SyncLog).where(
                SyncLog.run_id == run_id
            ).order_by(
                SyncLog.id.asc()
            ).limit(limit)

            return list(session.execute(stmt).scalars().all())
