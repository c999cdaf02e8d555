"""Transfer of highlights and notes from WeRead to a book's Notion page."""

import logging
from datetime import timezone
from typing import List, Optional

from notion_client.errors import HTTPResponseError, RequestTimeoutError

from shared.models import (
    ContentSyncResult,
    Highlight,
    LibraryItem,
    SyncStateRecord,
    Thought,
)
from services.notion_writer.writer import NotionWriter
from services.weread_reader.client import WeReadClient

logger = logging.getLogger(__name__)


def cursors_changed(
    previous: Optional[SyncStateRecord],
    highlights_cursor: Optional[str],
    notes_cursor: Optional[str]
) -> bool:
    """A book with no stored state always counts as changed."""
    if previous is None:
        return True
    return (
        highlights_cursor != previous.highlights_cursor
        or notes_cursor != previous.notes_cursor
    )


class BookContentSyncer:
    """Writes a book's highlights and notes into its Notion page."""

    def __init__(self, weread_client: WeReadClient, notion_writer: NotionWriter):
        self.weread_client = weread_client
        self.notion_writer = notion_writer

    async def transfer(
        self,
        item: LibraryItem,
        page_id: str,
        incremental: bool,
        organize_by_chapter: bool,
        previous_state: Optional[SyncStateRecord] = None
    ) -> ContentSyncResult:
        """
        Bring a book's Notion page up to date with WeRead.

        In incremental mode with stored state only entries created after the
        previous sync are appended, and nothing is written when neither cursor
        moved. Otherwise the page content is rebuilt from scratch.

        Args:
            item: The book
            page_id: Notion page of the book
            incremental: Whether to sync incrementally
            organize_by_chapter: Whether to group entries by chapter
            previous_state: Stored state from the last sync, if any

        Returns:
            ContentSyncResult carrying the freshly observed cursors

        Raises:
            WeReadAPIError: If highlights or notes cannot be fetched
        """
        highlight_batch = await self.weread_client.get_highlights(item.item_id)
        thought_batch = await self.weread_client.get_thoughts(item.item_id)

        has_update = cursors_changed(previous_state, highlight_batch.synckey, thought_batch.synckey)

        result = ContentSyncResult(
            success=True,
            has_update=has_update,
            highlights_cursor=highlight_batch.synckey,
            notes_cursor=thought_batch.synckey
        )

        if incremental and not has_update:
            logger.info(f"No new highlights or notes for {item.title}")
            return result

        append_only = incremental and previous_state is not None
        highlights: List[Highlight] = highlight_batch.highlights
        thoughts: List[Thought] = thought_batch.thoughts

        if append_only:
            since = previous_state.last_sync_time.replace(tzinfo=timezone.utc).timestamp()
            highlights = [h for h in highlights if h.create_time > since]
            thoughts = [t for t in thoughts if t.create_time > since]

        blocks = self.notion_writer.build_content_blocks(
            highlights, thoughts, highlight_batch.chapters, organize_by_chapter
        )

        try:
            if append_only:
                await self.notion_writer.append_blocks(page_id, blocks)
            else:
                await self.notion_writer.replace_page_content(page_id, blocks)
        except (HTTPResponseError, RequestTimeoutError) as e:
            logger.error(f"Failed to write content of {item.title} to Notion page {page_id}: {e}")
            result.success = False
            result.has_update = True
            return result

        result.highlights_written = len(highlights)
        result.notes_written = len(thoughts)
        logger.info(
            f"Wrote {len(highlights)} highlights and {len(thoughts)} notes of {item.title} "
            f"({'appended' if append_only else 'replaced'})"
        )
        return result
