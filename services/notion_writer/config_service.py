"""Sync configuration stored as a page in a Notion database."""

import logging
from typing import Any, Dict, FrozenSet

from shared.models import (
    ALL_READING_STATUSES,
    SYNC_MODE_FULL,
    SYNC_MODE_INCREMENTAL,
    SyncConfiguration,
)
from services.notion_writer.writer import NotionWriter, rich_text

logger = logging.getLogger(__name__)

NAME_PROPERTY = "Name"
READING_STATUS_PROPERTY = "Reading Status"
AUTHORS_PROPERTY = "Authors"
SYNC_MODE_PROPERTY = "Sync Mode"
ORGANIZE_BY_CHAPTER_PROPERTY = "Organize By Chapter"

DEFAULT_CONFIG_NAME = "Default sync configuration"

# Labels accepted for each select option, including the WeRead-era Chinese ones
FULL_MODE_LABELS = {"full", "全量"}
YES_LABELS = {"yes", "true", "是"}


def _select_name(prop: Dict[str, Any]) -> str:
    select = prop.get("select") or {}
    return (select.get("name") or "").strip()


def _multi_select_names(prop: Dict[str, Any]) -> FrozenSet[str]:
    return frozenset(
        option["name"].strip()
        for option in prop.get("multi_select") or []
        if option.get("name")
    )


def parse_configuration(properties: Dict[str, Any]) -> SyncConfiguration:
    """
    Build a SyncConfiguration from the properties of a configuration page.

    Missing properties fall back to the permissive defaults. An empty
    status or author selection means no filtering on that field.
    """
    status_prop = properties.get(READING_STATUS_PROPERTY)
    authors_prop = properties.get(AUTHORS_PROPERTY)
    mode_prop = properties.get(SYNC_MODE_PROPERTY) or {}
    chapter_prop = properties.get(ORGANIZE_BY_CHAPTER_PROPERTY) or {}

    enabled_statuses = (
        _multi_select_names(status_prop) if status_prop is not None else frozenset(ALL_READING_STATUSES)
    )
    enabled_authors = _multi_select_names(authors_prop) if authors_prop is not None else frozenset()

    mode = _select_name(mode_prop).lower()
    sync_mode = SYNC_MODE_FULL if mode in FULL_MODE_LABELS else SYNC_MODE_INCREMENTAL

    if chapter_prop.get("type") == "checkbox" or "checkbox" in chapter_prop:
        organize_by_chapter = bool(chapter_prop.get("checkbox"))
    else:
        organize_by_chapter = _select_name(chapter_prop).lower() in YES_LABELS

    return SyncConfiguration(
        enabled_statuses=enabled_statuses,
        enabled_authors=enabled_authors,
        sync_mode=sync_mode,
        organize_by_chapter=organize_by_chapter
    )


class NotionConfigService:
    """Reads and provisions the sync configuration page."""

    def __init__(self, writer: NotionWriter):
        self.writer = writer

    async def configuration_exists(self, config_database_id: str) -> bool:
        response = await self.writer.query_database(config_database_id, page_size=1)
        return bool(response.get("results"))

    async def create_default_configuration(self, config_database_id: str) -> str:
        """
        Create the permissive default configuration page.

        Returns:
            ID of the created page
        """
        response = await self.writer.create_page(
            parent={"database_id": config_database_id},
            properties={
                NAME_PROPERTY: {"title": rich_text(DEFAULT_CONFIG_NAME)},
                READING_STATUS_PROPERTY: {
                    "multi_select": [{"name": status} for status in ALL_READING_STATUSES]
                },
                AUTHORS_PROPERTY: {"multi_select": []},
                SYNC_MODE_PROPERTY: {"select": {"name": SYNC_MODE_INCREMENTAL}},
                ORGANIZE_BY_CHAPTER_PROPERTY: {"select": {"name": "no"}},
            }
        )
        logger.info(f"Created default sync configuration page {response.get('id')}")
        return response.get("id")

    async def load_configuration(self, config_database_id: str) -> SyncConfiguration:
        """
        Load the configuration from the oldest page of the configuration database.

        Raises:
            LookupError: If the database holds no configuration page
        """
        response = await self.writer.query_database(
            config_database_id,
            sorts=[{"timestamp": "created_time", "direction": "ascending"}],
            page_size=1
        )
        results = response.get("results", [])
        if not results:
            raise LookupError(f"No sync configuration found in database {config_database_id}")

        config = parse_configuration(results[0].get("properties", {}))
        logger.info(
            f"Loaded sync configuration: statuses={sorted(config.enabled_statuses)}, "
            f"authors={sorted(config.enabled_authors)}, mode={config.sync_mode}, "
            f"organize_by_chapter={config.organize_by_chapter}"
        )
        return config
