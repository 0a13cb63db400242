"""Shared fixtures for the sync engine tests."""

from typing import Dict, List, Optional, Tuple

import pytest

from curio_sync.config.settings import AppSettings, SupabaseSettings, SyncSettings
from curio_sync.database.local_store import LocalStore
from curio_sync.database.supabase_service import RemoteSnapshot, RemoteStore, RemoteStoreError
from curio_sync.domain.models import Collection, FieldDefinition, FieldType, Item


class FakeRemoteStore(RemoteStore):
    """In-memory stand-in for Supabase with switchable outages."""

    is_available = True

    def __init__(self, user_id: Optional[str] = "user-1"):
        super().__init__(settings=SupabaseSettings(url="https://example.supabase.co", anon_key="anon"))
        self.user_id = user_id
        self.rows: Dict[str, Collection] = {}
        self.objects: Dict[str, bytes] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail = False
        self.upload_failures = 0

    def _check(self, operation: str):
        if self.fail:
            raise RemoteStoreError(operation, "network unreachable")

    async def initialize(self) -> bool:
        return True

    async def ensure_user_id(self) -> Optional[str]:
        return self.user_id

    async def fetch_collections(self, user_id=None, include_public=True) -> RemoteSnapshot:
        self._check("fetch_collections")
        self.calls.append(("fetch_collections", user_id))
        return RemoteSnapshot(collections=[collection.model_copy(deep=True) for collection in self.rows.values()])

    async def save_collection(self, collection: Collection, user_id: str) -> None:
        self._check("save_collection")
        self.calls.append(("save_collection", collection.id))
        self.rows[collection.id] = collection.model_copy(deep=True, update={"owner_id": user_id})

    async def save_item(self, item: Item, user_id: str) -> None:
        self._check("save_item")
        self.calls.append(("save_item", item.id))
        collection = self.rows.get(item.collection_id)
        if collection is None:
            raise RemoteStoreError("save_item", "violates foreign key constraint")
        items = [existing for existing in collection.items if existing.id != item.id] + [item]
        self.rows[collection.id] = collection.model_copy(update={"items": items})

    async def delete_collection(self, collection_id: str) -> None:
        self._check("delete_collection")
        self.calls.append(("delete_collection", collection_id))
        self.rows.pop(collection_id, None)

    async def delete_item(self, item_id: str) -> None:
        self._check("delete_item")
        self.calls.append(("delete_item", item_id))
        for collection_id, collection in list(self.rows.items()):
            items = [item for item in collection.items if item.id != item_id]
            self.rows[collection_id] = collection.model_copy(update={"items": items})

    async def upload_asset(self, path: str, data: bytes, retries=None, retry_delay=None) -> str:
        self._check("upload_asset")
        self.calls.append(("upload_asset", path))
        self.objects[path] = data
        return path

    async def download_asset(self, path: str) -> Optional[bytes]:
        if self.fail:
            return None
        self.calls.append(("download_asset", path))
        return self.objects.get(path)

    async def delete_asset_objects(self, paths) -> None:
        self._check("delete_asset_objects")
        for path in paths:
            self.objects.pop(path, None)


def make_collection(collection_id: str = "col-1", **overrides) -> Collection:
    data = {
        "id": collection_id,
        "template_id": "vinyl",
        "name": "Records",
        "icon": "🎵",
        "custom_fields": [
            FieldDefinition(id="artist", label="Artist"),
            FieldDefinition(id="year", label="Release Year", type=FieldType.NUMBER),
            FieldDefinition(id="condition", label="Condition", type=FieldType.SELECT, options=["Mint", "Good"]),
        ],
        "created_at": "2024-01-01T00:00:00.000Z",
        "updated_at": "2024-01-01T00:00:00.000Z",
    }
    data.update(overrides)
    return Collection(**data)


def make_item(item_id: str = "item-1", collection_id: str = "col-1", **overrides) -> Item:
    data = {
        "id": item_id,
        "collection_id": collection_id,
        "title": "Blue Train",
        "rating": 4,
        "data": {"artist": "John Coltrane", "year": 1957},
        "created_at": "2024-01-02T00:00:00.000Z",
        "updated_at": "2024-01-02T00:00:00.000Z",
    }
    data.update(overrides)
    return Item(**data)


@pytest.fixture
def settings():
    """Settings with a short debounce window."""
    return AppSettings(
        sync=SyncSettings(debounce_seconds=0.01, upload_retries=1, retry_delay_seconds=0)
    )


@pytest.fixture
async def local_store():
    store = LocalStore("sqlite:///:memory:")
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def remote_store():
    return FakeRemoteStore()
