"""Unit tests for Notion Writer."""

import pytest
from dataclasses import replace
from unittest.mock import Mock, AsyncMock, patch
from notion_client.errors import APIResponseError

from shared.models import Chapter, Highlight, LibraryItem, Thought
from services.notion_writer.writer import MAX_TEXT_LENGTH, NotionWriter, rich_text


def title_page(page_id, title, author):
    return {
        "id": page_id,
        "properties": {
            "Title": {"title": [{"plain_text": title}]},
            "Author": {"rich_text": [{"plain_text": author}]},
        }
    }


class TestNotionWriter:
    """Tests for NotionWriter book pages."""

    @pytest.fixture
    def mock_notion_client(self):
        """Create a mock async Notion client."""
        mock_client = Mock()
        mock_client.databases = Mock()
        mock_client.databases.query = AsyncMock(return_value={"results": []})
        mock_client.pages = Mock()
        mock_client.pages.create = AsyncMock()
        mock_client.blocks = Mock()
        mock_client.blocks.delete = AsyncMock(return_value={})
        mock_client.blocks.children = Mock()
        mock_client.blocks.children.append = AsyncMock(return_value={})
        mock_client.blocks.children.list = AsyncMock(return_value={"results": [], "has_more": False})
        return mock_client

    @pytest.fixture
    def writer(self, mock_notion_client):
        """Create a NotionWriter instance with mocked client."""
        return NotionWriter(api_token="test_token", client=mock_notion_client)

    @pytest.fixture
    def book(self):
        return LibraryItem(
            item_id="cb_123",
            title="The Three-Body Problem",
            author="Liu Cixin",
            reading_status="已读",
            isbn="9787536692930",
            publisher="Chongqing Press",
            synopsis="",
            publish_time="2008-01-01 00:00:00"
        )

    @pytest.mark.asyncio
    async def test_find_book_page_exact_match(self, writer, mock_notion_client):
        mock_notion_client.databases.query.return_value = {
            "results": [title_page("page123", "Z", "Author Z")]
        }

        lookup = await writer.find_book_page("db123", "Z", "Author Z")

        assert lookup.exists is True
        assert lookup.record_id == "page123"

        call_args = mock_notion_client.databases.query.call_args
        assert call_args.kwargs["database_id"] == "db123"
        conditions = call_args.kwargs["filter"]["and"]
        assert conditions[0] == {"property": "Title", "title": {"equals": "Z"}}
        assert conditions[1] == {"property": "Author", "rich_text": {"equals": "Author Z"}}

    @pytest.mark.asyncio
    async def test_find_book_page_rejects_near_matches(self, writer, mock_notion_client):
        mock_notion_client.databases.query.return_value = {
            "results": [
                title_page("page1", "z", "Author Z"),
                title_page("page2", "Z", "Author Z2"),
            ]
        }

        lookup = await writer.find_book_page("db123", "Z", "Author Z")

        assert lookup.exists is False
        assert lookup.record_id is None

    @pytest.mark.asyncio
    async def test_find_book_page_without_author(self, writer, mock_notion_client):
        mock_notion_client.databases.query.return_value = {
            "results": [{"id": "page9", "properties": {
                "Title": {"title": [{"plain_text": "Anonymous"}]},
                "Author": {"rich_text": []},
            }}]
        }

        lookup = await writer.find_book_page("db123", "Anonymous", "")

        assert lookup.record_id == "page9"
        conditions = mock_notion_client.databases.query.call_args.kwargs["filter"]["and"]
        assert conditions[1] == {"property": "Author", "rich_text": {"is_empty": True}}

    @pytest.mark.asyncio
    async def test_create_book_page(self, writer, mock_notion_client, book):
        mock_notion_client.pages.create.return_value = {
            "id": "page456",
            "url": "https://notion.so/page456"
        }

        result = await writer.create_book_page("db123", book)

        assert result.success is True
        assert result.record_id == "page456"

        call_args = mock_notion_client.pages.create.call_args
        assert call_args.kwargs["parent"]["database_id"] == "db123"

        properties = call_args.kwargs["properties"]
        assert properties["Title"]["title"][0]["text"]["content"] == "The Three-Body Problem"
        assert properties["Author"]["rich_text"][0]["text"]["content"] == "Liu Cixin"
        assert properties["ISBN"]["rich_text"][0]["text"]["content"] == "9787536692930"
        assert properties["Status"]["select"]["name"] == "已读"
        assert properties["Publish Date"]["date"]["start"] == "2008-01-01"
        assert properties["Book ID"]["rich_text"][0]["text"]["content"] == "cb_123"
        # Empty synopsis is left out
        assert "Synopsis" not in properties

    @pytest.mark.asyncio
    async def test_untitled_book_is_found_under_the_title_it_was_created_with(self, writer, mock_notion_client):
        mock_notion_client.pages.create.return_value = {"id": "page_untitled"}
        await writer.create_book_page("db123", LibraryItem(item_id="b9", title="", author="Anon"))
        written_title = mock_notion_client.pages.create.call_args.kwargs["properties"]["Title"]
        mock_notion_client.databases.query.return_value = {
            "results": [{"id": "page_untitled", "properties": {
                "Title": written_title,
                "Author": {"rich_text": [{"plain_text": "Anon"}]},
            }}]
        }

        lookup = await writer.find_book_page("db123", "", "Anon")

        assert lookup.record_id == "page_untitled"
        conditions = mock_notion_client.databases.query.call_args.kwargs["filter"]["and"]
        assert conditions[0] == {"property": "Title", "title": {"equals": "Untitled"}}

    @pytest.mark.asyncio
    async def test_create_book_page_cover(self, writer, mock_notion_client, book):
        mock_notion_client.pages.create.return_value = {"id": "page456"}

        await writer.create_book_page("db123", book)
        assert "cover" not in mock_notion_client.pages.create.call_args.kwargs

        await writer.create_book_page("db123", replace(book, cover="https://img.test/cover.jpg"))
        assert mock_notion_client.pages.create.call_args.kwargs["cover"] == {
            "type": "external",
            "external": {"url": "https://img.test/cover.jpg"}
        }

    @pytest.mark.asyncio
    async def test_create_book_page_without_id_reports_failure(self, writer, mock_notion_client, book):
        mock_notion_client.pages.create.return_value = {}

        result = await writer.create_book_page("db123", book)

        assert result.success is False
        assert result.record_id is None

    @pytest.mark.asyncio
    async def test_create_book_page_api_error(self, writer, mock_notion_client, book):
        error = APIResponseError(
            response=Mock(status_code=400, headers={}),
            message="Invalid request",
            code="validation_error"
        )
        mock_notion_client.pages.create.side_effect = error

        with pytest.raises(APIResponseError):
            await writer.create_book_page("db123", book)

    @pytest.mark.asyncio
    async def test_append_blocks_in_chunks(self, writer, mock_notion_client):
        blocks = [{"type": "quote", "quote": {"rich_text": []}} for _ in range(250)]

        appended = await writer.append_blocks("page123", blocks)

        assert appended == 250
        sizes = [len(c.kwargs["children"]) for c in mock_notion_client.blocks.children.append.call_args_list]
        assert sizes == [100, 100, 50]

    @pytest.mark.asyncio
    async def test_replace_page_content_clears_all_pages_of_children(self, writer, mock_notion_client):
        mock_notion_client.blocks.children.list.side_effect = [
            {"results": [{"id": "b1"}, {"id": "b2"}], "has_more": True, "next_cursor": "cur"},
            {"results": [{"id": "b3"}], "has_more": False, "next_cursor": None},
        ]

        await writer.replace_page_content("page123", [{"type": "quote"}])

        deleted = [c.kwargs["block_id"] for c in mock_notion_client.blocks.delete.call_args_list]
        assert deleted == ["b1", "b2", "b3"]
        second_list = mock_notion_client.blocks.children.list.call_args_list[1]
        assert second_list.kwargs["start_cursor"] == "cur"
        mock_notion_client.blocks.children.append.assert_awaited_once_with(
            block_id="page123", children=[{"type": "quote"}]
        )


class TestContentBlocks:
    """Tests for highlight and note block layout."""

    @pytest.fixture
    def writer(self):
        return NotionWriter(api_token="test_token", client=Mock())

    @pytest.fixture
    def chapters(self):
        return [Chapter(20, "Chapter Two", 2), Chapter(10, "Chapter One", 1)]

    @pytest.fixture
    def highlights(self):
        return [
            Highlight("h2", 20, "second chapter passage", 300),
            Highlight("h1", 10, "first chapter passage", 200),
            Highlight("h3", None, "orphan passage", 100),
        ]

    @pytest.fixture
    def thoughts(self):
        return [Thought("t1", 10, "Chapter One", "first chapter passage", "my note", 250)]

    def test_flat_layout(self, writer, highlights, thoughts, chapters):
        blocks = writer.build_content_blocks(highlights, thoughts, chapters, organize_by_chapter=False)

        types = [b["type"] for b in blocks]
        assert types == ["heading_2", "quote", "quote", "quote", "heading_2", "quote", "callout"]
        assert blocks[0]["heading_2"]["rich_text"][0]["text"]["content"] == "Highlights"
        # Ordered by creation time
        assert blocks[1]["quote"]["rich_text"][0]["text"]["content"] == "orphan passage"
        assert blocks[4]["heading_2"]["rich_text"][0]["text"]["content"] == "Notes"
        assert blocks[6]["callout"]["rich_text"][0]["text"]["content"] == "my note"

    def test_chapter_layout(self, writer, highlights, thoughts, chapters):
        blocks = writer.build_content_blocks(highlights, thoughts, chapters, organize_by_chapter=True)

        headings = [
            b["heading_2"]["rich_text"][0]["text"]["content"]
            for b in blocks if b["type"] == "heading_2"
        ]
        assert headings == ["Chapter One", "Chapter Two", "Other"]

        # Chapter One: highlight (t=200) then note (t=250, quote + callout)
        assert [b["type"] for b in blocks[:4]] == ["heading_2", "quote", "quote", "callout"]

    def test_empty_content(self, writer):
        assert writer.build_content_blocks([], [], [], organize_by_chapter=False) == []
        assert writer.build_content_blocks([], [], [], organize_by_chapter=True) == []


def test_rich_text_splits_long_content():
    parts = rich_text("x" * (MAX_TEXT_LENGTH * 2 + 5))

    assert [len(p["text"]["content"]) for p in parts] == [MAX_TEXT_LENGTH, MAX_TEXT_LENGTH, 5]
    assert rich_text("") == []


class TestNotionWriterRateLimit:
    """Tests for rate limit handling in NotionWriter."""

    @pytest.fixture
    def mock_notion_client(self):
        mock_client = Mock()
        mock_client.pages = Mock()
        mock_client.pages.create = AsyncMock()
        return mock_client

    @pytest.fixture
    def writer(self, mock_notion_client):
        return NotionWriter(api_token="test_token", client=mock_notion_client)

    @staticmethod
    def rate_limit_error():
        return APIResponseError(
            response=Mock(
                status_code=429,
                headers={'Retry-After': '2'},
                json=lambda: {}
            ),
            message="Rate limited",
            code="rate_limited"
        )

    @pytest.mark.asyncio
    async def test_rate_limit_retry_success(self, writer, mock_notion_client):
        """Test successful retry after rate limit."""
        mock_notion_client.pages.create.side_effect = [
            self.rate_limit_error(),
            {"id": "page123"}
        ]

        with patch('services.notion_writer.rate_limit.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
            result = await writer.create_book_page("db123", LibraryItem(item_id="b", title="T"))

        assert result.record_id == "page123"
        assert mock_notion_client.pages.create.call_count == 2
        mock_sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_rate_limit_max_retries_exceeded(self, writer, mock_notion_client):
        """Test failure after exceeding max retries."""
        mock_notion_client.pages.create.side_effect = self.rate_limit_error()

        with patch('services.notion_writer.rate_limit.asyncio.sleep', new_callable=AsyncMock):
            with pytest.raises(APIResponseError):
                await writer.create_book_page("db123", LibraryItem(item_id="b", title="T"))

        # Initial attempt plus three retries
        assert mock_notion_client.pages.create.call_count == 4

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_not_retried(self, writer, mock_notion_client):
        mock_notion_client.pages.create.side_effect = APIResponseError(
            response=Mock(status_code=404, headers={}),
            message="Not found",
            code="object_not_found"
        )

        with pytest.raises(APIResponseError):
            await writer.create_book_page("db123", LibraryItem(item_id="b", title="T"))

        assert mock_notion_client.pages.create.call_count == 1
