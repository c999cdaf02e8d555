"""Selection of the books a sync run covers."""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from shared.models import LibraryItem, SyncConfiguration

logger = logging.getLogger(__name__)


@dataclass
class FilterStats:
    """Counts describing one filter pass. Each excluded book is counted once."""
    total: int = 0
    matched: int = 0
    excluded_by_status: int = 0
    excluded_by_author: int = 0

    @property
    def excluded(self) -> int:
        return self.excluded_by_status + self.excluded_by_author


def filter_items_by_config(
    items: Sequence[LibraryItem],
    config: SyncConfiguration
) -> Tuple[List[LibraryItem], FilterStats]:
    """
    Keep the books whose status and author are enabled by the configuration.

    An empty status or author set disables that filter. Input order is
    preserved. A book failing both checks is counted under status.

    Args:
        items: All books in the library
        config: Sync configuration for this run

    Returns:
        Tuple of (matched books, statistics)
    """
    stats = FilterStats(total=len(items))
    matched = []

    for item in items:
        if config.enabled_statuses and item.reading_status not in config.enabled_statuses:
            stats.excluded_by_status += 1
        elif config.enabled_authors and item.author not in config.enabled_authors:
            stats.excluded_by_author += 1
        else:
            matched.append(item)

    stats.matched = len(matched)
    return matched, stats


def log_filter_stats(stats: FilterStats, config: SyncConfiguration) -> None:
    logger.info(
        f"Filtered library: {stats.matched}/{stats.total} books selected "
        f"(excluded {stats.excluded_by_status} by status, {stats.excluded_by_author} by author)"
    )
    if config.enabled_statuses:
        logger.info(f"Enabled reading statuses: {', '.join(sorted(config.enabled_statuses))}")
    if config.enabled_authors:
        logger.info(f"Enabled authors: {', '.join(sorted(config.enabled_authors))}")
