"""Unit tests for highlight and note transfer."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from notion_client.errors import APIResponseError

from shared.models import (
    Chapter,
    Highlight,
    HighlightBatch,
    LibraryItem,
    SyncStateRecord,
    Thought,
    ThoughtBatch,
)
from services.sync_service.content import BookContentSyncer, cursors_changed
from services.weread_reader.client import WeReadAPIError

LAST_SYNC = datetime(2024, 1, 1, 0, 0, 0)
LAST_SYNC_TS = int(LAST_SYNC.replace(tzinfo=timezone.utc).timestamp())

OLD_HIGHLIGHT = Highlight("h_old", 1, "old passage", LAST_SYNC_TS - 100)
NEW_HIGHLIGHT = Highlight("h_new", 1, "new passage", LAST_SYNC_TS + 100)
OLD_THOUGHT = Thought("t_old", 1, "Chapter 1", "quoted", "old note", LAST_SYNC_TS - 50)
NEW_THOUGHT = Thought("t_new", 2, "Chapter 2", "", "new note", LAST_SYNC_TS + 50)


def make_api_error(status_code=400, code="validation_error"):
    return APIResponseError(
        response=Mock(status_code=status_code, headers={}),
        message="write failed",
        code=code
    )


@pytest.fixture
def book():
    return LibraryItem(item_id="book_1", title="Three Body", author="Liu Cixin")


@pytest.fixture
def mock_weread_client():
    client = Mock()
    client.get_highlights = AsyncMock(return_value=HighlightBatch(
        highlights=[OLD_HIGHLIGHT, NEW_HIGHLIGHT],
        chapters=[Chapter(1, "Chapter 1", 1), Chapter(2, "Chapter 2", 2)],
        synckey="h2"
    ))
    client.get_thoughts = AsyncMock(return_value=ThoughtBatch(
        thoughts=[OLD_THOUGHT, NEW_THOUGHT],
        synckey="n2"
    ))
    return client


@pytest.fixture
def mock_notion_writer():
    writer = Mock()
    writer.build_content_blocks = Mock(return_value=[{"type": "quote"}])
    writer.append_blocks = AsyncMock(return_value=1)
    writer.replace_page_content = AsyncMock(return_value=1)
    return writer


@pytest.fixture
def syncer(mock_weread_client, mock_notion_writer):
    return BookContentSyncer(mock_weread_client, mock_notion_writer)


def test_cursors_changed():
    previous = SyncStateRecord("b", LAST_SYNC, "h1", "n1")

    assert cursors_changed(None, "h1", "n1") is True
    assert cursors_changed(previous, "h1", "n1") is False
    assert cursors_changed(previous, "h2", "n1") is True
    assert cursors_changed(previous, "h1", "n2") is True


@pytest.mark.asyncio
async def test_first_sync_replaces_page_with_everything(syncer, book, mock_notion_writer):
    result = await syncer.transfer(book, "page_1", incremental=True, organize_by_chapter=False)

    assert result.success is True
    assert result.has_update is True
    assert result.highlights_cursor == "h2"
    assert result.notes_cursor == "n2"
    assert result.highlights_written == 2
    assert result.notes_written == 2

    mock_notion_writer.replace_page_content.assert_awaited_once_with("page_1", [{"type": "quote"}])
    mock_notion_writer.append_blocks.assert_not_awaited()


@pytest.mark.asyncio
async def test_unchanged_cursors_write_nothing(syncer, book, mock_notion_writer):
    previous = SyncStateRecord("book_1", LAST_SYNC, "h2", "n2")

    result = await syncer.transfer(book, "page_1", True, False, previous)

    assert result.success is True
    assert result.has_update is False
    mock_notion_writer.build_content_blocks.assert_not_called()
    mock_notion_writer.append_blocks.assert_not_awaited()
    mock_notion_writer.replace_page_content.assert_not_awaited()


@pytest.mark.asyncio
async def test_incremental_appends_only_new_entries(syncer, book, mock_notion_writer):
    previous = SyncStateRecord("book_1", LAST_SYNC, "h1", "n1")

    result = await syncer.transfer(book, "page_1", True, True, previous)

    assert result.has_update is True
    highlights, thoughts, chapters, organize = mock_notion_writer.build_content_blocks.call_args.args
    assert highlights == [NEW_HIGHLIGHT]
    assert thoughts == [NEW_THOUGHT]
    assert [c.chapter_uid for c in chapters] == [1, 2]
    assert organize is True
    mock_notion_writer.append_blocks.assert_awaited_once()
    mock_notion_writer.replace_page_content.assert_not_awaited()


@pytest.mark.asyncio
async def test_full_mode_rebuilds_page_even_without_changes(syncer, book, mock_notion_writer):
    previous = SyncStateRecord("book_1", LAST_SYNC, "h2", "n2")

    result = await syncer.transfer(book, "page_1", False, False, previous)

    assert result.has_update is False
    assert result.highlights_written == 2
    mock_notion_writer.replace_page_content.assert_awaited_once()


@pytest.mark.asyncio
async def test_notion_failure_reports_failure_with_fresh_cursors(syncer, book, mock_notion_writer):
    mock_notion_writer.replace_page_content.side_effect = make_api_error()

    result = await syncer.transfer(book, "page_1", True, False)

    assert result.success is False
    assert result.has_update is True
    assert result.highlights_cursor == "h2"
    assert result.notes_cursor == "n2"


@pytest.mark.asyncio
async def test_weread_failure_propagates(syncer, book, mock_weread_client):
    mock_weread_client.get_thoughts.side_effect = WeReadAPIError("session expired", errcode=-2012)

    with pytest.raises(WeReadAPIError):
        await syncer.transfer(book, "page_1", True, False)
