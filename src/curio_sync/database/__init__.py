"""Persistence package: the on-device cache and the Supabase remote store."""

from .database import DatabaseManager

from .models import (
    AssetRecord,
    Base,
    CollectionRecord,
    SettingRecord
)

from .local_store import (
    LocalStore,
    LocalStoreError,
    repair_collection_document
)

from .supabase_service import (
    RemoteStore,
    RemoteSnapshot,
    RemoteStoreError,
    collection_to_row,
    item_to_row,
    row_to_collection,
    row_to_item
)

__all__ = [
    # Database management
    "DatabaseManager",

    # Tables
    "AssetRecord",
    "Base",
    "CollectionRecord",
    "SettingRecord",

    # Local store
    "LocalStore",
    "LocalStoreError",
    "repair_collection_document",

    # Remote store
    "RemoteStore",
    "RemoteSnapshot",
    "RemoteStoreError",
    "collection_to_row",
    "item_to_row",
    "row_to_collection",
    "row_to_item",
]
