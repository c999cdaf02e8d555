"""Sync Service - FastAPI application."""

import logging
import sys
import os
import uuid
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import UUID

from fastapi import FastAPI, Request, status, HTTPException, BackgroundTasks, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from shared.config import get_notion_config, get_pacing_delay, get_weread_config
from shared.db_operations import DatabaseOperations
from services.notion_writer.writer import NotionWriter
from services.sync_service.orchestrator import SyncOrchestrator
from services.weread_reader.client import WeReadClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

# Global instances
db_ops: Optional[DatabaseOperations] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    global db_ops

    logger.info("Sync Service starting up...")

    db_ops = DatabaseOperations()
    db_ops.create_tables()
    logger.info("Database connection initialized")

    yield

    logger.info("Sync Service shutting down...")


# Create FastAPI application
app = FastAPI(
    title="Sync Service",
    description="Synchronizes WeRead books, highlights and notes into Notion",
    version="0.1.0",
    lifespan=lifespan
)


# Error handling middleware
@app.middleware("http")
async def error_handling_middleware(request: Request, call_next):
    """Global error handling middleware."""
    try:
        response = await call_next(request)
        return response
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc)
            }
        )


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Health check endpoint."""
    db_healthy = False
    try:
        with db_ops.get_session() as session:
            session.execute(text("SELECT 1"))
        db_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_healthy else "degraded",
        "service": "sync_service",
        "version": "0.1.0",
        "dependencies": {
            "database": "up" if db_healthy else "down"
        }
    }


@app.get("/", status_code=status.HTTP_200_OK)
async def root():
    """Root endpoint."""
    return {
        "service": "Sync Service",
        "version": "0.1.0",
        "status": "running"
    }


async def run_sync(run_id: UUID, weread_config: dict, notion_config: dict, pacing_delay: float) -> None:
    """Run one sync with clients built from the given settings, then close them."""
    weread_client = WeReadClient(weread_config["cookie"], base_url=weread_config["base_url"])
    notion_writer = NotionWriter(notion_config["api_token"])
    try:
        orchestrator = SyncOrchestrator(
            weread_client=weread_client,
            notion_writer=notion_writer,
            db_ops=db_ops,
            database_id=notion_config["database_id"],
            config_database_id=notion_config["config_database_id"],
            pacing_delay=pacing_delay
        )
        await orchestrator.execute_sync(run_id)
    finally:
        await weread_client.close()
        await notion_writer.close()


# Request/Response models
class SyncExecuteRequest(BaseModel):
    """Request model for sync execution."""
    run_id: Optional[str] = None  # Optional - will be generated if not provided


class SyncExecuteResponse(BaseModel):
    """Response model for sync execution."""
    run_id: str
    status: str
    message: Optional[str] = None


@app.post("/internal/sync/execute", response_model=SyncExecuteResponse, status_code=status.HTTP_200_OK)
async def execute_sync(request: SyncExecuteRequest, background_tasks: BackgroundTasks):
    """
    Queue a sync run and return immediately.

    Sync mode, status and author filters come from the Notion configuration
    database. Use /internal/sync/status/{run_id} to follow progress.

    Args:
        request: SyncExecuteRequest with an optional run_id
        background_tasks: FastAPI background tasks

    Returns:
        SyncExecuteResponse with run_id and queued status
    """
    if request.run_id:
        try:
            run_id = UUID(request.run_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid run_id format"
            )
    else:
        run_id = uuid.uuid4()

    if db_ops.get_sync_run(run_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Sync run {run_id} already exists"
        )

    # Missing settings fail the request; no background run is queued
    try:
        weread_config = get_weread_config()
        notion_config = get_notion_config()
        pacing_delay = get_pacing_delay()
    except ValueError as e:
        logger.error(f"Cannot start sync run {run_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    logger.info(f"Received sync execute request for run {run_id}")

    background_tasks.add_task(run_sync, run_id, weread_config, notion_config, pacing_delay)

    return SyncExecuteResponse(
        run_id=str(run_id),
        status="queued",
        message="Sync run queued successfully"
    )


class SyncStatusResponse(BaseModel):
    """Response model for sync status."""
    run_id: str
    status: str
    sync_mode: Optional[str] = None
    progress: dict
    created_at: str
    completed_at: Optional[str] = None
    error_message: Optional[str] = None


@app.get("/internal/sync/status/{run_id}", response_model=SyncStatusResponse, status_code=status.HTTP_200_OK)
async def get_sync_status(run_id: str):
    """
    Get the status and outcome counts of a sync run.

    Raises:
        HTTPException: If run_id is invalid or the run is not found
    """
    try:
        run_uuid = UUID(run_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid run_id format"
        )

    sync_run = db_ops.get_sync_run(run_uuid)

    if not sync_run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sync run {run_id} not found"
        )

    return _run_response(sync_run)


def _run_response(sync_run) -> SyncStatusResponse:
    return SyncStatusResponse(
        run_id=str(sync_run.run_id),
        status=sync_run.status,
        sync_mode=sync_run.sync_mode,
        progress={
            "total_items": sync_run.total_items,
            "matched_items": sync_run.matched_items,
            "success_items": sync_run.success_items,
            "failed_items": sync_run.failed_items,
            "skipped_items": sync_run.skipped_items
        },
        created_at=sync_run.created_at.isoformat(),
        completed_at=sync_run.completed_at.isoformat() if sync_run.completed_at else None,
        error_message=sync_run.error_message
    )


class SyncRunListResponse(BaseModel):
    """Response model for the run history."""
    runs: List[SyncStatusResponse]
    total_count: int
    limit: int
    offset: int


@app.get("/internal/sync/runs", response_model=SyncRunListResponse, status_code=status.HTTP_200_OK)
async def list_sync_runs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0)
):
    """List sync runs, newest first."""
    runs, total_count = db_ops.get_sync_runs(limit=limit, offset=offset)
    return SyncRunListResponse(
        runs=[_run_response(run) for run in runs],
        total_count=total_count,
        limit=limit,
        offset=offset
    )


class SyncLogResponse(BaseModel):
    """Response model for one run log entry."""
    level: str
    message: str
    item_id: Optional[str] = None
    created_at: str


@app.get("/internal/sync/logs/{run_id}", response_model=List[SyncLogResponse], status_code=status.HTTP_200_OK)
async def get_sync_logs(run_id: str, limit: int = Query(100, ge=1, le=1000)):
    """
    Get the log entries of a sync run, oldest first.

    Raises:
        HTTPException: If run_id is invalid or the run is not found
    """
    try:
        run_uuid = UUID(run_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid run_id format"
        )

    if not db_ops.get_sync_run(run_uuid):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sync run {run_id} not found"
        )

    return [
        SyncLogResponse(
            level=log.level,
            message=log.message,
            item_id=log.item_id,
            created_at=log.created_at.isoformat()
        )
        for log in db_ops.get_sync_logs(run_uuid, limit=limit)
    ]


class SyncStateResponse(BaseModel):
    """Response model for the stored state of a book."""
    item_id: str
    last_sync_time: str
    highlights_cursor: Optional[str] = None
    notes_cursor: Optional[str] = None


@app.get("/internal/sync/state/{item_id}", response_model=SyncStateResponse, status_code=status.HTTP_200_OK)
async def get_sync_state(item_id: str):
    """Get the cursors stored for a book after its last sync."""
    state = db_ops.get_sync_state(item_id)

    if not state:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No sync state for book {item_id}"
        )

    return _state_response(state)


@app.get("/internal/sync/states", response_model=List[SyncStateResponse], status_code=status.HTTP_200_OK)
async def list_sync_states():
    """List the stored state of every synced book, most recently synced first."""
    return [_state_response(state) for state in db_ops.list_sync_states()]


def _state_response(state) -> SyncStateResponse:
    return SyncStateResponse(
        item_id=state.item_id,
        last_sync_time=state.last_sync_time.isoformat(),
        highlights_cursor=state.highlights_cursor,
        notes_cursor=state.notes_cursor
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("SYNC_SERVICE_PORT", 8005))
    uvicorn.run(app, host="0.0.0.0", port=port)
