"""Shared fixtures for Sync Service tests."""

from typing import Dict, List, Optional

import pytest

from shared.models import SyncStateRecord
from shared.state_store import SyncStateStore


class InMemorySyncStateStore(SyncStateStore):
    """Dict-backed store that also records every save."""

    def __init__(self):
        self.records: Dict[str, SyncStateRecord] = {}
        self.saves: List[SyncStateRecord] = []

    def load(self, item_id: str) -> Optional[SyncStateRecord]:
        return self.records.get(item_id)

    def save(self, record: SyncStateRecord) -> None:
        self.saves.append(record)
        self.records[record.item_id] = record


@pytest.fixture
def state_store():
    return InMemorySyncStateStore()
