"""On-device cache for collections, photo assets and sync bookkeeping."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import DatabaseManager
from .models import AssetRecord, CollectionRecord, SettingRecord
from ..config.settings import get_settings
from ..domain.merge import normalize_collection
from ..domain.models import AssetVariant, Collection, Item
from ..domain.templates import TemplateRegistry
from ..utils.logging import get_logger

logger = get_logger(__name__)

SEED_VERSION_KEY = "seed_version"


class LocalStoreError(Exception):
    """Raised when a local cache operation fails."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        message = f"Local store {operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation


def _clamp_rating(value: Any) -> int:
    try:
        rating = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, min(5, rating))


def repair_collection_document(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Fix the structural damage older app versions left in stored documents.

    Non-list schemas and item lists are reset, items without an id are
    dropped, and every item is pointed at the collection that contains it.
    """
    repaired = dict(document)
    collection_id = repaired.get("id")

    if not isinstance(repaired.get("custom_fields"), list):
        repaired["custom_fields"] = []
    if not isinstance(repaired.get("settings"), dict):
        repaired["settings"] = {}

    items = repaired.get("items")
    repaired_items = []
    for raw_item in items if isinstance(items, list) else []:
        if not isinstance(raw_item, dict) or not raw_item.get("id"):
            logger.warning("Dropping stored item without id", collection_id=collection_id)
            continue
        item = dict(raw_item)
        item["collection_id"] = collection_id
        if "rating" in item:
            item["rating"] = _clamp_rating(item["rating"])
        if not isinstance(item.get("data"), dict):
            item["data"] = {}
        repaired_items.append(item)
    repaired["items"] = repaired_items

    return repaired


class LocalStore:
    """SQLite-backed local store.

    Every mutation runs in a single transaction. Failures surface as
    ``LocalStoreError``.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        templates: Optional[TemplateRegistry] = None
    ):
        self.database_url = database_url or get_settings().database.url
        self.templates = templates
        self._db: Optional[DatabaseManager] = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self) -> DatabaseManager:
        """Open the store once; later calls return the same handle."""
        if self._db is None:
            try:
                db = DatabaseManager(self.database_url)
                db.create_tables()
            except SQLAlchemyError as e:
                raise LocalStoreError("open", e) from e
            if not db.test_connection():
                db.dispose()
                raise LocalStoreError("open")
            self._db = db
            logger.info("Local store opened", database_url=self.database_url)
        return self._db

    async def close(self) -> None:
        if self._db is not None:
            self._db.dispose()
            self._db = None
            logger.info("Local store closed")

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[Session]:
        db = await self.open()
        try:
            with db.session_scope() as session:
                yield session
        except SQLAlchemyError as e:
            raise LocalStoreError(operation, e) from e

    # Collection operations

    def _decode_collection(self, document: Any) -> Optional[Collection]:
        if not isinstance(document, dict):
            logger.warning("Skipping stored collection that is not a document")
            return None
        try:
            collection = Collection.model_validate(document)
        except ValidationError:
            try:
                collection = Collection.model_validate(repair_collection_document(document))
                logger.info("Repaired stored collection", collection_id=document.get("id"))
            except ValidationError as e:
                logger.warning(
                    "Skipping unreadable stored collection",
                    collection_id=document.get("id"),
                    error=str(e)
                )
                return None
        return normalize_collection(collection, self.templates)

    @staticmethod
    def _encode_collection(collection: Collection) -> Dict[str, Any]:
        return collection.model_dump(mode="json")

    async def put_collection(self, collection: Collection) -> None:
        """Insert or replace a collection document."""
        async with self._transaction("put_collection") as session:
            session.merge(CollectionRecord(id=collection.id, document=self._encode_collection(collection)))

    async def get_collection(self, collection_id: str) -> Optional[Collection]:
        async with self._transaction("get_collection") as session:
            record = session.get(CollectionRecord, collection_id)
            document = record.document if record else None
        if document is None:
            return None
        return self._decode_collection(document)

    async def load_collections(self) -> List[Collection]:
        """Read every stored collection, repairing or skipping damaged documents."""
        async with self._transaction("load_collections") as session:
            documents = [record.document for record in session.query(CollectionRecord).all()]

        collections = []
        for document in documents:
            collection = self._decode_collection(document)
            if collection is not None:
                collections.append(collection)
        return collections

    async def delete_collection(self, collection_id: str, purge_assets: bool = False) -> bool:
        """Delete a collection, optionally with the cached photos of its items.

        Returns:
            True if a stored collection was removed
        """
        async with self._transaction("delete_collection") as session:
            record = session.get(CollectionRecord, collection_id)
            if record is None:
                return False
            if purge_assets:
                item_ids = [item.get("id") for item in record.document.get("items") or [] if isinstance(item, dict)]
                if item_ids:
                    session.query(AssetRecord).filter(
                        AssetRecord.item_id.in_(item_ids)
                    ).delete(synchronize_session=False)
            session.delete(record)
        return True

    async def replace_all_collections(self, collections: Iterable[Collection]) -> None:
        """Clear and rewrite the whole collection set atomically."""
        collections = list(collections)
        async with self._transaction("replace_all_collections") as session:
            session.query(CollectionRecord).delete(synchronize_session=False)
            for collection in collections:
                session.add(CollectionRecord(id=collection.id, document=self._encode_collection(collection)))
        logger.debug("Replaced stored collections", count=len(collections))

    async def put_item(self, item: Item) -> Collection:
        """Insert or replace an item inside its stored collection.

        Returns:
            The updated collection

        Raises:
            LocalStoreError: If the owning collection is not stored
        """
        async with self._transaction("put_item") as session:
            record = session.get(CollectionRecord, item.collection_id)
            collection = self._decode_collection(record.document) if record else None
            if collection is None:
                raise LocalStoreError("put_item", KeyError(item.collection_id))

            items = list(collection.items)
            for index, existing in enumerate(items):
                if existing.id == item.id:
                    items[index] = item
                    break
            else:
                items.append(item)

            collection = collection.model_copy(update={"items": items})
            record.document = self._encode_collection(collection)
        return collection

    async def remove_item(self, collection_id: str, item_id: str, purge_assets: bool = False) -> bool:
        """Remove an item from its stored collection.

        Returns:
            True if the item was found and removed
        """
        async with self._transaction("remove_item") as session:
            record = session.get(CollectionRecord, collection_id)
            collection = self._decode_collection(record.document) if record else None
            if collection is None or collection.find_item(item_id) is None:
                return False

            items = [item for item in collection.items if item.id != item_id]
            record.document = self._encode_collection(collection.model_copy(update={"items": items}))

            if purge_assets:
                session.query(AssetRecord).filter(
                    AssetRecord.item_id == item_id
                ).delete(synchronize_session=False)
        return True

    # Asset operations

    async def put_assets(self, item_id: str, variants: Mapping[AssetVariant, bytes]) -> None:
        """Write photo variants of one item in a single transaction."""
        async with self._transaction("put_assets") as session:
            for variant, data in variants.items():
                session.merge(AssetRecord(
                    item_id=item_id,
                    variant=AssetVariant.parse(variant).value,
                    data=bytes(data)
                ))

    async def get_asset(self, item_id: str, variant: AssetVariant) -> Optional[bytes]:
        async with self._transaction("get_asset") as session:
            record = session.get(AssetRecord, (item_id, AssetVariant.parse(variant).value))
            return bytes(record.data) if record else None

    async def delete_assets(self, item_id: str) -> int:
        """Delete every cached variant of an item.

        Returns:
            Number of variants removed
        """
        async with self._transaction("delete_assets") as session:
            return session.query(AssetRecord).filter(
                AssetRecord.item_id == item_id
            ).delete(synchronize_session=False)

    async def list_asset_keys(self) -> List[Tuple[str, AssetVariant]]:
        async with self._transaction("list_asset_keys") as session:
            rows = session.query(AssetRecord.item_id, AssetRecord.variant).all()
        return [(item_id, AssetVariant.parse(variant)) for item_id, variant in rows]

    async def clear_assets(self) -> int:
        """Drop the whole asset cache."""
        async with self._transaction("clear_assets") as session:
            removed = session.query(AssetRecord).delete(synchronize_session=False)
        logger.info("Cleared local asset cache", removed=removed)
        return removed

    async def cleanup_orphaned_assets(self, collections: Iterable[Collection]) -> int:
        """Remove cached photos whose item no longer exists in ``collections``.

        Returns:
            Number of asset rows removed

        Raises:
            TypeError: If ``collections`` is None
        """
        if collections is None:
            raise TypeError("collections must be an iterable of Collection, not None")

        live_item_ids = {item.id for collection in collections for item in collection.items}
        async with self._transaction("cleanup_orphaned_assets") as session:
            stored_ids = {item_id for (item_id,) in session.query(AssetRecord.item_id).distinct()}
            orphaned = stored_ids - live_item_ids
            removed = 0
            if orphaned:
                removed = session.query(AssetRecord).filter(
                    AssetRecord.item_id.in_(orphaned)
                ).delete(synchronize_session=False)

        if removed:
            logger.info("Removed orphaned assets", removed=removed, items=len(orphaned))
        return removed

    # Settings operations

    async def get_setting(self, key: str, default: Any = None) -> Any:
        async with self._transaction("get_setting") as session:
            record = session.get(SettingRecord, key)
            return record.value if record is not None else default

    async def set_setting(self, key: str, value: Any) -> None:
        async with self._transaction("set_setting") as session:
            session.merge(SettingRecord(key=key, value=value))

    async def get_seed_version(self) -> Optional[int]:
        """Version of the sample data last seeded on this device."""
        value = await self.get_setting(SEED_VERSION_KEY)
        return int(value) if value is not None else None

    async def set_seed_version(self, version: int) -> None:
        await self.set_setting(SEED_VERSION_KEY, int(version))
