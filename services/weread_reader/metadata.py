"""Merging of WeRead book listings into one LibraryItem per book."""

import logging
from dataclasses import replace
from typing import Dict, List, Optional

from shared.models import BookDetail, LibraryItem

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("title", "author", "isbn", "publisher", "synopsis", "publish_time", "cover", "category")


def fill_if_absent(preferred: Optional[str], fallback: Optional[str]) -> str:
    """Return ``preferred`` unless it is empty, else ``fallback``, else ""."""
    return preferred or fallback or ""


def apply_book_detail(item: LibraryItem, detail: Optional[BookDetail]) -> LibraryItem:
    """
    Merge a book info lookup into a LibraryItem.

    A non-empty detail value wins; an empty or missing one keeps what the
    item already had.
    """
    if detail is None:
        return item
    return replace(
        item,
        isbn=fill_if_absent(detail.isbn, item.isbn),
        publisher=fill_if_absent(detail.publisher, item.publisher),
        synopsis=fill_if_absent(detail.synopsis, item.synopsis),
        publish_time=fill_if_absent(detail.publish_time, item.publish_time),
    )


def _union(shelf_item: LibraryItem, notebook_item: LibraryItem) -> LibraryItem:
    merged = {
        name: fill_if_absent(getattr(shelf_item, name), getattr(notebook_item, name))
        for name in _TEXT_FIELDS
    }
    return replace(
        shelf_item,
        note_count=notebook_item.note_count,
        review_count=notebook_item.review_count,
        **merged
    )


def merge_book_metadata(
    shelf_items: List[LibraryItem],
    notebook_items: List[LibraryItem]
) -> List[LibraryItem]:
    """
    Combine shelf and notebook listings into a single list without duplicates.

    Shelf order is kept, followed by books that only appear in the notebook
    (e.g. books removed from the shelf that still carry highlights). Reading
    status and progress come from the shelf; highlight and note counts come
    from the notebook.

    Args:
        shelf_items: Books from the shelf listing
        notebook_items: Books from the notebook listing

    Returns:
        Merged LibraryItems
    """
    notebook_by_id: Dict[str, LibraryItem] = {}
    for item in notebook_items:
        notebook_by_id.setdefault(item.item_id, item)

    merged: Dict[str, LibraryItem] = {}
    for item in shelf_items:
        if item.item_id in merged:
            continue
        notebook_item = notebook_by_id.get(item.item_id)
        merged[item.item_id] = _union(item, notebook_item) if notebook_item else item

    for item_id, item in notebook_by_id.items():
        if item_id not in merged:
            merged[item_id] = item

    logger.info(
        f"Merged {len(shelf_items)} shelf books and {len(notebook_items)} notebook books "
        f"into {len(merged)} books"
    )
    return list(merged.values())
