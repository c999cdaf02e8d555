"""Shared data models for the WeRead to Notion sync application."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional


# Reading status labels as WeRead reports them
STATUS_FINISHED = "已读"
STATUS_READING = "在读"
STATUS_UNREAD = "未读"
ALL_READING_STATUSES = (STATUS_FINISHED, STATUS_READING, STATUS_UNREAD)

SYNC_MODE_FULL = "full"
SYNC_MODE_INCREMENTAL = "incremental"


@dataclass(frozen=True)
class LibraryItem:
    """Represents a book from the WeRead library."""
    item_id: str
    title: str
    author: str = ""
    reading_status: str = STATUS_UNREAD
    isbn: str = ""
    publisher: str = ""
    synopsis: str = ""
    publish_time: str = ""
    cover: str = ""
    category: str = ""
    progress: int = 0
    note_count: int = 0
    review_count: int = 0


@dataclass(frozen=True)
class BookDetail:
    """Supplementary bibliographic fields from the book info lookup."""
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    synopsis: Optional[str] = None
    publish_time: Optional[str] = None


@dataclass(frozen=True)
class SyncConfiguration:
    """Which books are in scope and how their content is synced."""
    enabled_statuses: FrozenSet[str] = frozenset(ALL_READING_STATUSES)
    enabled_authors: FrozenSet[str] = frozenset()
    sync_mode: str = SYNC_MODE_INCREMENTAL
    organize_by_chapter: bool = False

    @property
    def incremental(self) -> bool:
        return self.sync_mode != SYNC_MODE_FULL


@dataclass
class SyncStateRecord:
    """Record of sync state for a book."""
    item_id: str
    last_sync_time: datetime
    highlights_cursor: Optional[str]
    notes_cursor: Optional[str]


class ReconciliationOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_NO_CHANGE = "skipped_no_change"
    FAILED_METADATA = "failed_metadata"
    FAILED_CONTENT = "failed_content"

    @property
    def succeeded(self) -> bool:
        return self in (ReconciliationOutcome.CREATED, ReconciliationOutcome.UPDATED)

    @property
    def failed(self) -> bool:
        return self in (ReconciliationOutcome.FAILED_METADATA, ReconciliationOutcome.FAILED_CONTENT)


@dataclass(frozen=True)
class Chapter:
    chapter_uid: int
    title: str
    index: int = 0


@dataclass(frozen=True)
class Highlight:
    """A passage the reader marked in a book."""
    highlight_id: str
    chapter_uid: Optional[int]
    text: str
    create_time: int


@dataclass(frozen=True)
class Thought:
    """A note the reader wrote, optionally anchored to a passage."""
    thought_id: str
    chapter_uid: Optional[int]
    chapter_title: str
    abstract: str
    content: str
    create_time: int


@dataclass
class HighlightBatch:
    highlights: List[Highlight]
    chapters: List[Chapter]
    synckey: Optional[str]


@dataclass
class ThoughtBatch:
    thoughts: List[Thought]
    synckey: Optional[str]


@dataclass
class RecordLookup:
    """Result of looking up a book page in the destination database."""
    exists: bool
    record_id: Optional[str] = None


@dataclass
class MetadataWriteResult:
    success: bool
    record_id: Optional[str] = None


@dataclass
class ContentSyncResult:
    """Result of transferring highlights and notes for one book."""
    success: bool
    has_update: bool
    highlights_cursor: Optional[str]
    notes_cursor: Optional[str]
    highlights_written: int = 0
    notes_written: int = 0


@dataclass
class ItemResult:
    """Result of reconciling a single book."""
    item_id: str
    title: str
    outcome: ReconciliationOutcome
    record_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncRunSummary:
    """Result of a complete sync run."""
    run_id: str
    status: str  # running, completed, failed
    sync_mode: str = SYNC_MODE_INCREMENTAL
    total_items: int = 0
    matched_items: int = 0
    success_count: int = 0
    fail_count: int = 0
    skipped_count: int = 0
    error_message: Optional[str] = None
    results: List[ItemResult] = field(default_factory=list)

    def record(self, result: ItemResult) -> None:
        self.results.append(result)
        if result.outcome.succeeded:
            self.success_count += 1
        elif result.outcome.failed:
            self.fail_count += 1
        else:
            self.skipped_count += 1
