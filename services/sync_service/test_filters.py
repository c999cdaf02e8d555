"""Tests for book filtering."""

from shared.models import (
    ALL_READING_STATUSES,
    STATUS_FINISHED,
    STATUS_READING,
    STATUS_UNREAD,
    LibraryItem,
    SyncConfiguration,
)
from services.sync_service.filters import filter_items_by_config


def book(item_id, status, author="Author"):
    return LibraryItem(item_id=item_id, title=item_id.upper(), author=author, reading_status=status)


LIBRARY = [
    book("a", STATUS_FINISHED, "Liu Cixin"),
    book("b", STATUS_READING, "Yu Hua"),
    book("c", STATUS_UNREAD, "Liu Cixin"),
    book("d", STATUS_FINISHED, "Mo Yan"),
    book("e", "unknown", "Yu Hua"),
]


def test_example_status_filter():
    items = [book("x", "未读"), book("y", "已读")]
    config = SyncConfiguration(enabled_statuses=frozenset({"已读"}))

    matched, stats = filter_items_by_config(items, config)

    assert [item.item_id for item in matched] == ["y"]
    assert stats.total == 2
    assert stats.matched == 1
    assert stats.excluded == 1
    assert stats.excluded_by_status == 1


def test_empty_filters_match_everything():
    config = SyncConfiguration(enabled_statuses=frozenset(), enabled_authors=frozenset())

    matched, stats = filter_items_by_config(LIBRARY, config)

    assert matched == LIBRARY
    assert stats.excluded == 0


def test_malformed_status_never_matches_a_status_filter():
    config = SyncConfiguration(enabled_statuses=frozenset(ALL_READING_STATUSES))

    matched, stats = filter_items_by_config(LIBRARY, config)

    assert "e" not in [item.item_id for item in matched]
    assert stats.excluded_by_status == 1


def test_author_filter():
    config = SyncConfiguration(enabled_statuses=frozenset(), enabled_authors=frozenset({"Liu Cixin"}))

    matched, stats = filter_items_by_config(LIBRARY, config)

    assert [item.item_id for item in matched] == ["a", "c"]
    assert stats.excluded_by_author == 3
    assert stats.excluded_by_status == 0


def test_filters_are_combined_and_order_is_kept():
    config = SyncConfiguration(
        enabled_statuses=frozenset({STATUS_FINISHED, STATUS_UNREAD}),
        enabled_authors=frozenset({"Liu Cixin", "Mo Yan"})
    )

    matched, stats = filter_items_by_config(LIBRARY, config)

    assert [item.item_id for item in matched] == ["a", "c", "d"]
    assert stats.excluded_by_status == 2  # b and e
    assert stats.excluded_by_author == 0


def test_matched_is_exactly_the_books_passing_both_predicates():
    config = SyncConfiguration(
        enabled_statuses=frozenset({STATUS_FINISHED, STATUS_READING}),
        enabled_authors=frozenset({"Yu Hua", "Mo Yan"})
    )

    matched, stats = filter_items_by_config(LIBRARY, config)

    for item in LIBRARY:
        passes = item.reading_status in config.enabled_statuses and item.author in config.enabled_authors
        assert (item in matched) == passes
    assert stats.matched + stats.excluded == stats.total


def test_empty_library():
    matched, stats = filter_items_by_config([], SyncConfiguration())

    assert matched == []
    assert stats.total == 0
    assert stats.matched == 0
