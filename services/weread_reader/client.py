"""WeRead web API client."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from shared.models import (
    STATUS_FINISHED,
    STATUS_READING,
    STATUS_UNREAD,
    BookDetail,
    Chapter,
    Highlight,
    HighlightBatch,
    LibraryItem,
    Thought,
    ThoughtBatch,
)
from services.weread_reader.retry import retry_with_exponential_backoff

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://weread.qq.com"
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# listType=11 with mine=1 lists the reader's own notes for a book
REVIEW_LIST_TYPE = 11


class WeReadAPIError(Exception):
    """Raised when WeRead rejects a request or returns an error payload."""

    def __init__(self, message: str, errcode: Optional[int] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.errcode = errcode
        self.status_code = status_code


def is_transient(error: Exception) -> bool:
    """Network failures and WeRead server errors are worth another attempt."""
    if isinstance(error, httpx.TransportError):
        return True
    return isinstance(error, WeReadAPIError) and (error.status_code or 0) >= 500


def _cursor(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def reading_status_from_shelf(book: Dict[str, Any], progress: int) -> str:
    """Derive the reading status label from shelf flags and progress."""
    if book.get("finishReading"):
        return STATUS_FINISHED
    if progress > 0:
        return STATUS_READING
    return STATUS_UNREAD


class WeReadClient:
    """Reads the library, book details, highlights and notes of one WeRead account."""

    def __init__(
        self,
        cookie: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize WeRead client.

        Args:
            cookie: Cookie header of a logged-in WeRead web session
            base_url: WeRead web origin
            http_client: Preconfigured client, mainly for tests
        """
        self.client = http_client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Cookie": cookie, "User-Agent": USER_AGENT},
            timeout=30.0
        )

    async def close(self) -> None:
        await self.client.aclose()

    @retry_with_exponential_backoff(
        max_retries=3,
        initial_delay=1.0,
        exponential_base=2.0,
        exceptions=(httpx.TransportError, WeReadAPIError),
        retry_if=is_transient
    )
    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.client.get(path, params=params)

        if response.status_code != 200:
            raise WeReadAPIError(
                f"WeRead request {path} failed with status {response.status_code}: {response.text}",
                status_code=response.status_code
            )

        data = response.json()
        errcode = data.get("errcode") or data.get("errCode")
        if errcode:
            raise WeReadAPIError(
                f"WeRead request {path} returned error {errcode}: {data.get('errmsg', 'unknown error')}",
                errcode=errcode
            )
        return data

    async def get_bookshelf_books(self) -> List[LibraryItem]:
        """
        List the books on the reader's shelf.

        Returns:
            LibraryItems in shelf order with reading status derived from progress
        """
        data = await self._get("/web/shelf/sync")

        progress_by_id = {
            str(entry.get("bookId")): int(entry.get("progress") or 0)
            for entry in data.get("bookProgress", [])
        }

        items = []
        for book in data.get("books", []):
            book_id = str(book.get("bookId", ""))
            if not book_id:
                continue
            progress = progress_by_id.get(book_id, 0)
            items.append(LibraryItem(
                item_id=book_id,
                title=book.get("title", ""),
                author=book.get("author", ""),
                reading_status=reading_status_from_shelf(book, progress),
                cover=book.get("cover", ""),
                category=book.get("category", ""),
                progress=progress
            ))

        logger.info(f"Fetched {len(items)} books from the WeRead shelf")
        return items

    async def get_notebook_books(self) -> List[LibraryItem]:
        """List the books that carry highlights or notes."""
        data = await self._get("/api/user/notebook")

        items = []
        for entry in data.get("books", []):
            book = entry.get("book") or {}
            book_id = str(entry.get("bookId") or book.get("bookId") or "")
            if not book_id:
                continue
            items.append(LibraryItem(
                item_id=book_id,
                title=book.get("title", ""),
                author=book.get("author", ""),
                cover=book.get("cover", ""),
                category=book.get("category", ""),
                note_count=int(entry.get("noteCount") or 0),
                review_count=int(entry.get("reviewCount") or 0)
            ))

        logger.info(f"Fetched {len(items)} books from the WeRead notebook")
        return items

    async def get_book_info(self, book_id: str) -> Optional[BookDetail]:
        """
        Look up bibliographic details for a book.

        Returns:
            BookDetail, or None when WeRead has no record of the book
        """
        data = await self._get("/web/book/info", params={"bookId": book_id})
        if not data:
            return None
        return BookDetail(
            isbn=data.get("isbn"),
            publisher=data.get("publisher"),
            synopsis=data.get("intro"),
            publish_time=data.get("publishTime")
        )

    async def get_highlights(self, book_id: str) -> HighlightBatch:
        """Fetch all highlights of a book together with its chapter table."""
        data = await self._get("/web/book/bookmarklist", params={"bookId": book_id})

        highlights = [
            Highlight(
                highlight_id=str(mark.get("bookmarkId", "")),
                chapter_uid=mark.get("chapterUid"),
                text=mark.get("markText", ""),
                create_time=int(mark.get("createTime") or 0)
            )
            for mark in data.get("updated", [])
            if mark.get("markText")
        ]
        chapters = [
            Chapter(
                chapter_uid=chapter.get("chapterUid"),
                title=chapter.get("title", ""),
                index=int(chapter.get("chapterIdx") or 0)
            )
            for chapter in data.get("chapters", [])
            if chapter.get("chapterUid") is not None
        ]
        return HighlightBatch(
            highlights=highlights,
            chapters=chapters,
            synckey=_cursor(data.get("synckey"))
        )

    async def get_thoughts(self, book_id: str) -> ThoughtBatch:
        """Fetch all of the reader's own notes on a book."""
        data = await self._get(
            "/web/review/list",
            params={"bookId": book_id, "listType": REVIEW_LIST_TYPE, "mine": 1, "synckey": 0}
        )

        thoughts = []
        for entry in data.get("reviews", []):
            review = entry.get("review") or {}
            content = review.get("content", "")
            if not content:
                continue
            thoughts.append(Thought(
                thought_id=str(review.get("reviewId") or entry.get("reviewId") or ""),
                chapter_uid=review.get("chapterUid"),
                chapter_title=review.get("chapterName", ""),
                abstract=review.get("abstract", ""),
                content=content,
                create_time=int(review.get("createTime") or 0)
            ))

        return ThoughtBatch(thoughts=thoughts, synckey=_cursor(data.get("synckey")))
