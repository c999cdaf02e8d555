"""Notion Writer - handles book pages and their content in Notion."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from notion_client import AsyncClient
from notion_client.errors import APIResponseError

from shared.models import (
    Chapter,
    Highlight,
    LibraryItem,
    MetadataWriteResult,
    RecordLookup,
    Thought,
)
from services.notion_writer.rate_limit import handle_rate_limit

logger = logging.getLogger(__name__)

# Property names of the books database
TITLE_PROPERTY = "Title"
AUTHOR_PROPERTY = "Author"
ISBN_PROPERTY = "ISBN"
PUBLISHER_PROPERTY = "Publisher"
SYNOPSIS_PROPERTY = "Synopsis"
PUBLISH_DATE_PROPERTY = "Publish Date"
STATUS_PROPERTY = "Status"
BOOK_ID_PROPERTY = "Book ID"

# Notion API limits
MAX_BLOCKS_PER_REQUEST = 100
MAX_TEXT_LENGTH = 2000

UNKNOWN_CHAPTER_TITLE = "Other"
UNTITLED_BOOK_TITLE = "Untitled"


def rich_text(content: str) -> List[Dict[str, Any]]:
    """Build a rich_text array, splitting content at Notion's per-object limit."""
    if not content:
        return []
    return [
        {"type": "text", "text": {"content": content[i:i + MAX_TEXT_LENGTH]}}
        for i in range(0, len(content), MAX_TEXT_LENGTH)
    ]


def plain_text(rich: Iterable[Dict[str, Any]]) -> str:
    return "".join(part.get("plain_text") or part.get("text", {}).get("content", "") for part in rich)


def book_page_title(title: str) -> str:
    """Title a book's page is written and looked up under."""
    return title or UNTITLED_BOOK_TITLE


def _chunks(blocks: List[Dict[str, Any]], size: int = MAX_BLOCKS_PER_REQUEST):
    for i in range(0, len(blocks), size):
        yield blocks[i:i + size]


class NotionWriter:
    """Handles writing WeRead books to a Notion database."""

    def __init__(self, api_token: str, client: Optional[AsyncClient] = None):
        """
        Initialize Notion Writer.

        Args:
            api_token: Notion API integration token
            client: Preconfigured Notion client, mainly for tests
        """
        self.client = client or AsyncClient(auth=api_token)

    async def close(self) -> None:
        await self.client.aclose()

    # Low-level calls, each retried on rate limiting

    @handle_rate_limit(max_retries=3)
    async def query_database(self, database_id: str, **kwargs) -> Dict[str, Any]:
        return await self.client.databases.query(database_id=database_id, **kwargs)

    @handle_rate_limit(max_retries=3)
    async def create_page(self, **kwargs) -> Dict[str, Any]:
        return await self.client.pages.create(**kwargs)

    @handle_rate_limit(max_retries=3)
    async def _append_children(self, block_id: str, children: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self.client.blocks.children.append(block_id=block_id, children=children)

    @handle_rate_limit(max_retries=3)
    async def _list_children(self, block_id: str, start_cursor: Optional[str] = None) -> Dict[str, Any]:
        kwargs = {"block_id": block_id, "page_size": MAX_BLOCKS_PER_REQUEST}
        if start_cursor:
            kwargs["start_cursor"] = start_cursor
        return await self.client.blocks.children.list(**kwargs)

    @handle_rate_limit(max_retries=3)
    async def _delete_block(self, block_id: str) -> Dict[str, Any]:
        return await self.client.blocks.delete(block_id=block_id)

    # Book pages

    async def find_book_page(self, database_id: str, title: str, author: str) -> RecordLookup:
        """
        Look up the page of a book by exact title and author.

        Args:
            database_id: Notion books database ID
            title: Book title
            author: Book author

        Returns:
            RecordLookup with the page ID when a page matches both fields
        """
        title = book_page_title(title)
        author_filter = (
            {"property": AUTHOR_PROPERTY, "rich_text": {"equals": author}}
            if author
            else {"property": AUTHOR_PROPERTY, "rich_text": {"is_empty": True}}
        )
        response = await self.query_database(
            database_id,
            filter={
                "and": [
                    {"property": TITLE_PROPERTY, "title": {"equals": title}},
                    author_filter,
                ]
            }
        )

        # Notion's equals filter is not strictly byte-exact, so confirm locally
        for page in response.get("results", []):
            properties = page.get("properties", {})
            page_title = plain_text(properties.get(TITLE_PROPERTY, {}).get("title", []))
            page_author = plain_text(properties.get(AUTHOR_PROPERTY, {}).get("rich_text", []))
            if page_title == title and page_author == (author or ""):
                return RecordLookup(exists=True, record_id=page["id"])

        return RecordLookup(exists=False)

    async def create_book_page(self, database_id: str, item: LibraryItem) -> MetadataWriteResult:
        """
        Create a new Notion page holding a book's metadata.

        Args:
            database_id: Notion books database ID
            item: Book to write

        Returns:
            MetadataWriteResult with the new page ID

        Raises:
            APIResponseError: If Notion API request fails
        """
        try:
            logger.info(f"Creating Notion page for book: {item.title}")
            page = {
                "parent": {"database_id": database_id},
                "properties": self.build_book_properties(item),
            }
            if item.cover:
                page["cover"] = {"type": "external", "external": {"url": item.cover}}
            response = await self.create_page(**page)
        except APIResponseError as e:
            logger.error(f"Notion API error creating page for {item.title}: {e}")
            raise

        page_id = response.get("id")
        if not page_id:
            logger.error(f"Notion returned no page ID for {item.title}")
            return MetadataWriteResult(success=False)

        logger.info(f"Successfully created Notion page: {page_id}")
        return MetadataWriteResult(success=True, record_id=page_id)

    def build_book_properties(self, item: LibraryItem) -> Dict[str, Any]:
        """
        Build Notion page properties from a book.

        Empty optional fields are left out so the database keeps them blank.
        """
        properties: Dict[str, Any] = {
            TITLE_PROPERTY: {"title": rich_text(book_page_title(item.title))},
            AUTHOR_PROPERTY: {"rich_text": rich_text(item.author)},
            BOOK_ID_PROPERTY: {"rich_text": rich_text(item.item_id)},
        }
        if item.reading_status:
            properties[STATUS_PROPERTY] = {"select": {"name": item.reading_status}}
        if item.isbn:
            properties[ISBN_PROPERTY] = {"rich_text": rich_text(item.isbn)}
        if item.publisher:
            properties[PUBLISHER_PROPERTY] = {"rich_text": rich_text(item.publisher)}
        if item.synopsis:
            properties[SYNOPSIS_PROPERTY] = {"rich_text": rich_text(item.synopsis)}
        if item.publish_time:
            # WeRead reports "YYYY-MM-DD HH:MM:SS"; Notion dates want the date part
            properties[PUBLISH_DATE_PROPERTY] = {"date": {"start": item.publish_time[:10]}}
        return properties

    # Page content

    async def append_blocks(self, page_id: str, blocks: List[Dict[str, Any]]) -> int:
        """Append blocks to a page in request-sized chunks. Returns the number appended."""
        for chunk in _chunks(blocks):
            await self._append_children(page_id, chunk)
        return len(blocks)

    async def clear_page_content(self, page_id: str) -> int:
        """Delete every top-level block of a page. Returns the number deleted."""
        block_ids = []
        cursor = None
        while True:
            response = await self._list_children(page_id, start_cursor=cursor)
            block_ids.extend(block["id"] for block in response.get("results", []))
            if not response.get("has_more"):
                break
            cursor = response.get("next_cursor")

        for block_id in block_ids:
            await self._delete_block(block_id)
        return len(block_ids)

    async def replace_page_content(self, page_id: str, blocks: List[Dict[str, Any]]) -> int:
        """Replace the whole content of a page with ``blocks``."""
        deleted = await self.clear_page_content(page_id)
        logger.info(f"Cleared {deleted} blocks from Notion page {page_id}")
        return await self.append_blocks(page_id, blocks)

    def build_content_blocks(
        self,
        highlights: List[Highlight],
        thoughts: List[Thought],
        chapters: List[Chapter],
        organize_by_chapter: bool
    ) -> List[Dict[str, Any]]:
        """
        Build Notion blocks for a book's highlights and notes.

        With ``organize_by_chapter`` entries are grouped under a heading per
        chapter in reading order; otherwise highlights and notes get one
        section each. Within a group entries are ordered by creation time.
        """
        if organize_by_chapter:
            return self._build_chapter_blocks(highlights, thoughts, chapters)

        blocks = []
        if highlights:
            blocks.append(self._heading("Highlights"))
            for highlight in sorted(highlights, key=lambda h: h.create_time):
                blocks.append(self._highlight_block(highlight))
        if thoughts:
            blocks.append(self._heading("Notes"))
            for thought in sorted(thoughts, key=lambda t: t.create_time):
                blocks.extend(self._thought_blocks(thought))
        return blocks

    def _build_chapter_blocks(
        self,
        highlights: List[Highlight],
        thoughts: List[Thought],
        chapters: List[Chapter]
    ) -> List[Dict[str, Any]]:
        chapter_by_uid = {chapter.chapter_uid: chapter for chapter in chapters}
        groups: Dict[Optional[int], list] = {}

        for highlight in highlights:
            groups.setdefault(highlight.chapter_uid, []).append(highlight)
        for thought in thoughts:
            groups.setdefault(thought.chapter_uid, []).append(thought)

        def order(uid):
            chapter = chapter_by_uid.get(uid)
            # Unknown chapters go last
            return (chapter is None, chapter.index if chapter else 0, uid or 0)

        blocks = []
        for uid in sorted(groups, key=order):
            entries = groups[uid]
            title = self._chapter_title(uid, chapter_by_uid, entries)
            blocks.append(self._heading(title))
            for entry in sorted(entries, key=lambda e: e.create_time):
                if isinstance(entry, Highlight):
                    blocks.append(self._highlight_block(entry))
                else:
                    blocks.extend(self._thought_blocks(entry))
        return blocks

    @staticmethod
    def _chapter_title(uid, chapter_by_uid, entries) -> str:
        chapter = chapter_by_uid.get(uid)
        if chapter and chapter.title:
            return chapter.title
        for entry in entries:
            if isinstance(entry, Thought) and entry.chapter_title:
                return entry.chapter_title
        return UNKNOWN_CHAPTER_TITLE

    @staticmethod
    def _heading(text: str) -> Dict[str, Any]:
        return {
            "object": "block",
            "type": "heading_2",
            "heading_2": {"rich_text": rich_text(text)}
        }

    @staticmethod
    def _highlight_block(highlight: Highlight) -> Dict[str, Any]:
        return {
            "object": "block",
            "type": "quote",
            "quote": {"rich_text": rich_text(highlight.text)}
        }

    @staticmethod
    def _thought_blocks(thought: Thought) -> List[Dict[str, Any]]:
        blocks = []
        if thought.abstract:
            blocks.append({
                "object": "block",
                "type": "quote",
                "quote": {"rich_text": rich_text(thought.abstract)}
            })
        blocks.append({
            "object": "block",
            "type": "callout",
            "callout": {
                "rich_text": rich_text(thought.content),
                "icon": {"type": "emoji", "emoji": "💭"}
            }
        })
        return blocks
