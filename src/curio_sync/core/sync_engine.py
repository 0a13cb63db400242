"""Sync orchestrator keeping the local cache and Supabase consistent."""

import functools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .assets import AssetCache
from .debounce import DebouncedWriter
from .interfaces import ImageProcessor
from ..config.settings import AppSettings, get_settings
from ..database.local_store import LocalStore
from ..database.supabase_service import RemoteStore, RemoteStoreError
from ..domain.fields import dump_field_values, validate_item_data
from ..domain.merge import collect_entity_ids, merge_collections, normalize_collection
from ..domain.models import AssetVariant, Collection, Item, SyncStatus, utc_now_iso
from ..domain.paths import LOCAL_ASSET_MARKER
from ..domain.templates import TemplateRegistry, get_template_registry
from ..utils.logging import get_logger, log_async_execution_time

KNOWN_REMOTE_IDS_KEY = "known_remote_ids"
PENDING_OPERATIONS_KEY = "pending_operations"

SAVE_COLLECTION = "save_collection"
SAVE_ITEM = "save_item"
DELETE_COLLECTION = "delete_collection"
DELETE_ITEM = "delete_item"
DELETE_OPERATIONS = (DELETE_COLLECTION, DELETE_ITEM)

StatusCallback = Callable[[str, SyncStatus, Optional[str]], None]


class SyncEngineError(Exception):
    """Raised when a sync engine call cannot be carried out."""


@dataclass
class SyncResult:
    """Result of a load/merge pass."""

    success: bool
    remote_reachable: bool = False
    collections: int = 0
    items: int = 0
    deleted_ids: List[str] = field(default_factory=list)
    has_local_only_data: bool = False
    error_message: Optional[str] = None
    sync_duration: Optional[float] = None

    @property
    def deleted_count(self) -> int:
        """Local entities removed because the remote side deleted them."""
        return len(self.deleted_ids)


def _count_items(collections: Iterable[Collection]) -> int:
    return sum(len(collection.items) for collection in collections)


class SyncEngine:
    """Offline-first orchestrator.

    Every write lands in the local store first and reaches Supabase through a
    per-entity debounced write. Remote failures never fail the caller; the
    affected entity is marked ``pending_retry`` and retried by
    ``sync_pending_changes``.
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote_store: Optional[RemoteStore] = None,
        settings: Optional[AppSettings] = None,
        templates: Optional[TemplateRegistry] = None,
        status_callback: Optional[StatusCallback] = None
    ):
        """Initialize sync engine.

        Args:
            local_store: On-device cache, owned and closed by the engine
            remote_store: Supabase adapter; None runs the engine local-only
            settings: Application settings
            templates: Registry used to repair empty field schemas
            status_callback: Called with (entity_id, status, error) on every status change
        """
        self.settings = settings or get_settings()
        self.local_store = local_store
        self.remote_store = remote_store
        self.templates = templates or get_template_registry()
        self.status_callback = status_callback
        self.assets = AssetCache(local_store, remote_store, remote_ready=self._remote_ready)
        self.logger = get_logger(self.__class__.__name__)

        self.last_result: Optional[SyncResult] = None

        self._writer = DebouncedWriter(self.settings.sync.debounce_seconds)
        self._statuses: Dict[str, SyncStatus] = {}
        self._errors: Dict[str, str] = {}
        self._pending_ops: Optional[Dict[str, Dict[str, Any]]] = None
        self._remote_init_attempted = False

        self.logger.info(
            "Sync engine initialized",
            remote=remote_store is not None,
            debounce_seconds=self.settings.sync.debounce_seconds
        )

    # Status tracking

    def set_status_callback(self, callback: Optional[StatusCallback]) -> None:
        self.status_callback = callback

    def _set_status(self, entity_id: str, status: SyncStatus, error: Optional[str] = None) -> None:
        self._statuses[entity_id] = status
        if error:
            self._errors[entity_id] = error
        else:
            self._errors.pop(entity_id, None)

        if self.status_callback is not None:
            try:
                self.status_callback(entity_id, status, error)
            except Exception as e:
                self.logger.warning("Sync status callback failed", entity_id=entity_id, error=str(e))

    def get_sync_status(self, entity_id: str) -> Optional[SyncStatus]:
        """Last known sync state of an entity, None if it was never written."""
        return self._statuses.get(entity_id)

    def get_sync_error(self, entity_id: str) -> Optional[str]:
        return self._errors.get(entity_id)

    @property
    def overall_status(self) -> SyncStatus:
        """Worst state across all tracked entities."""
        if any(status == SyncStatus.PENDING_RETRY for status in self._statuses.values()):
            return SyncStatus.PENDING_RETRY
        if self._writer.pending_keys or SyncStatus.SAVED_LOCALLY in self._statuses.values():
            return SyncStatus.SAVED_LOCALLY
        return SyncStatus.SYNCED

    # Bookkeeping persisted in the local settings table

    async def _pending_operations(self) -> Dict[str, Dict[str, Any]]:
        if self._pending_ops is None:
            stored = await self.local_store.get_setting(PENDING_OPERATIONS_KEY, {})
            self._pending_ops = dict(stored) if isinstance(stored, dict) else {}
        return self._pending_ops

    async def _record_pending(self, entity_id: str, operation: str, collection_id: Optional[str] = None) -> None:
        ops = await self._pending_operations()
        ops[entity_id] = {"op": operation, "collection_id": collection_id}
        await self.local_store.set_setting(PENDING_OPERATIONS_KEY, ops)

    async def _clear_pending(self, entity_ids: Iterable[str]) -> None:
        ops = await self._pending_operations()
        removed = [entity_id for entity_id in entity_ids if ops.pop(entity_id, None) is not None]
        if removed:
            await self.local_store.set_setting(PENDING_OPERATIONS_KEY, ops)

    async def _known_remote_ids(self) -> Set[str]:
        stored = await self.local_store.get_setting(KNOWN_REMOTE_IDS_KEY, [])
        return set(stored or [])

    async def _remember_remote_ids(self, entity_ids: Iterable[str]) -> None:
        known = await self._known_remote_ids()
        updated = known | set(entity_ids)
        if updated != known:
            await self.local_store.set_setting(KNOWN_REMOTE_IDS_KEY, sorted(updated))

    # Remote writes

    async def _remote_ready(self) -> bool:
        if self.remote_store is None:
            return False
        if not self.remote_store.is_available and not self._remote_init_attempted:
            self._remote_init_attempted = True
            await self.remote_store.initialize()
        return self.remote_store.is_available

    async def _require_user_id(self, operation: str) -> str:
        if not await self._remote_ready():
            raise RemoteStoreError(operation, "Supabase is not available")
        user_id = await self.remote_store.ensure_user_id()
        if not user_id:
            raise RemoteStoreError(operation, "no authenticated user")
        return user_id

    async def _push(self, entity_id: str, operation: str, collection_id: Optional[str] = None) -> bool:
        """Send the current local state of one entity to Supabase.

        Returns:
            True if the remote write succeeded or is no longer needed
        """
        written: Set[str] = set()
        try:
            user_id = await self._require_user_id(operation)

            if operation == SAVE_COLLECTION:
                collection = await self.local_store.get_collection(entity_id)
                if collection is not None:
                    await self.remote_store.save_collection(collection, user_id)
                    written = collect_entity_ids([collection])

            elif operation == SAVE_ITEM:
                collection = await self.local_store.get_collection(collection_id) if collection_id else None
                item = collection.find_item(entity_id) if collection else None
                if item is not None:
                    if collection.id in await self._known_remote_ids():
                        await self.remote_store.save_item(item, user_id)
                        written = {item.id}
                    else:
                        # Items reference their collection row, so it goes first.
                        await self.remote_store.save_collection(collection, user_id)
                        written = collect_entity_ids([collection])

            elif operation == DELETE_COLLECTION:
                await self.remote_store.delete_collection(entity_id)

            elif operation == DELETE_ITEM:
                await self.remote_store.delete_item(entity_id)

            else:
                raise SyncEngineError(f"Unknown remote operation: {operation}")

        except RemoteStoreError as e:
            self.logger.warning(
                "Remote write failed, marked for retry",
                entity_id=entity_id,
                operation=operation,
                error=str(e)
            )
            await self._record_pending(entity_id, operation, collection_id)
            self._set_status(entity_id, SyncStatus.PENDING_RETRY, str(e))
            return False

        await self._clear_pending([entity_id])
        if written:
            await self._remember_remote_ids(written)
        self._set_status(entity_id, SyncStatus.SYNCED)
        return True

    @staticmethod
    def _write_key(operation: str, entity_id: str) -> str:
        kind = "collection" if operation in (SAVE_COLLECTION, DELETE_COLLECTION) else "item"
        return f"{kind}:{entity_id}"

    def _schedule_write(self, entity_id: str, operation: str, collection_id: Optional[str] = None) -> None:
        self._set_status(entity_id, SyncStatus.SAVED_LOCALLY)
        if self.remote_store is None:
            return
        self._writer.schedule(
            self._write_key(operation, entity_id),
            functools.partial(self._push, entity_id, operation, collection_id)
        )

    async def _schedule_delete(self, entity_id: str, operation: str, collection_id: Optional[str] = None) -> None:
        self._set_status(entity_id, SyncStatus.SAVED_LOCALLY)
        if self.remote_store is None:
            return
        # Recorded first so a load pass treats the id as deleted until the remote delete lands.
        await self._record_pending(entity_id, operation, collection_id)
        self._writer.run_now(
            self._write_key(operation, entity_id),
            functools.partial(self._push, entity_id, operation, collection_id)
        )

    # Load / merge

    @log_async_execution_time
    async def load_collections(self) -> List[Collection]:
        """Load the local snapshot and reconcile it with Supabase.

        Returns:
            The merged collections, or the local snapshot when the remote
            side cannot be reached
        """
        start_time = datetime.now()
        local = await self.local_store.load_collections()
        result = SyncResult(success=False, collections=len(local), items=_count_items(local))

        try:
            if self.remote_store is None:
                result.success = True
                return local

            try:
                user_id = await self._require_user_id("fetch_collections")
                snapshot = await self.remote_store.fetch_collections(
                    user_id,
                    include_public=self.settings.sync.include_public
                )
            except RemoteStoreError as e:
                self.logger.warning("Remote fetch failed, using local snapshot", error=str(e))
                result.error_message = str(e)
                return local

            cloud = snapshot.collections
            # Unreadable rows still exist remotely, so they count as fetched.
            fetched_ids = snapshot.entity_ids
            if snapshot.unreadable_ids:
                self.logger.warning(
                    "Keeping local copies of unreadable remote rows",
                    entity_ids=sorted(snapshot.unreadable_ids)
                )
            known_ids = await self._known_remote_ids()
            ops = await self._pending_operations()
            pending_deletes = {entity_id for entity_id, op in ops.items() if op.get("op") in DELETE_OPERATIONS}
            cloud_deleted_ids = (known_ids - fetched_ids) | pending_deletes

            merged = merge_collections(local, cloud, cloud_deleted_ids, self.templates)

            removed_ids = collect_entity_ids(local) - collect_entity_ids(merged)
            for collection in local:
                for item in collection.items:
                    if item.id in removed_ids:
                        await self.local_store.delete_assets(item.id)

            await self.local_store.replace_all_collections(merged)
            await self.local_store.set_setting(KNOWN_REMOTE_IDS_KEY, sorted(fetched_ids))

            result.success = True
            result.remote_reachable = True
            result.collections = len(merged)
            result.items = _count_items(merged)
            result.deleted_ids = sorted(removed_ids)
            result.has_local_only_data = bool(collect_entity_ids(merged) - fetched_ids)
            return merged

        finally:
            result.sync_duration = (datetime.now() - start_time).total_seconds()
            self.last_result = result
            self.logger.info(
                "Collections loaded",
                success=result.success,
                remote_reachable=result.remote_reachable,
                collections=result.collections,
                items=result.items,
                deleted=result.deleted_count,
                duration=f"{result.sync_duration:.2f}s"
            )

    # Collection / item writes

    async def save_collection(self, collection: Collection, touch: bool = True) -> Collection:
        """Write a collection locally and schedule its remote write.

        Args:
            collection: Collection to store, items included
            touch: Stamp ``updated_at`` with the current time

        Returns:
            The collection as stored
        """
        now = utc_now_iso()
        updates: Dict[str, Any] = {
            "items": [
                item if item.collection_id == collection.id
                else item.model_copy(update={"collection_id": collection.id})
                for item in collection.items
            ]
        }
        if touch:
            updates["updated_at"] = now
        if not collection.created_at:
            updates["created_at"] = now

        collection = normalize_collection(collection.model_copy(update=updates), self.templates)
        await self.local_store.put_collection(collection)
        self._schedule_write(collection.id, SAVE_COLLECTION)
        return collection

    async def save_item(self, item: Item, touch: bool = True, strict: bool = True) -> Item:
        """Validate an item against its collection schema, store it and schedule its remote write.

        Args:
            item: Item to store; ``collection_id`` selects the owning collection
            touch: Stamp ``updated_at`` with the current time
            strict: Reject values that do not fit the schema

        Returns:
            The item as stored

        Raises:
            SyncEngineError: If the owning collection does not exist locally
            FieldValidationError: If ``strict`` and the metadata does not fit the schema
        """
        collection = await self.local_store.get_collection(item.collection_id)
        if collection is None:
            raise SyncEngineError(f"Collection {item.collection_id!r} not found for item {item.id!r}")

        typed = validate_item_data(item.data, collection.custom_fields, strict=strict)
        updates: Dict[str, Any] = {"data": dump_field_values(typed)}
        if touch:
            updates["updated_at"] = utc_now_iso()

        item = item.model_copy(update=updates)
        await self.local_store.put_item(item)
        self._schedule_write(item.id, SAVE_ITEM, item.collection_id)
        return item

    async def delete_collection(self, collection_id: str) -> bool:
        """Delete a collection and its items locally, then remotely in the background.

        Returns:
            True if the collection existed locally
        """
        collection = await self.local_store.get_collection(collection_id)
        removed = await self.local_store.delete_collection(collection_id, purge_assets=True)

        item_ids = [item.id for item in collection.items] if collection else []
        for item_id in item_ids:
            self._writer.cancel(self._write_key(SAVE_ITEM, item_id))
            self._statuses.pop(item_id, None)
            await self.assets.delete_asset(item_id, collection_id)
        await self._clear_pending(item_ids)

        await self._schedule_delete(collection_id, DELETE_COLLECTION)
        self.logger.info("Collection deleted", collection_id=collection_id, items=len(item_ids))
        return removed

    async def delete_item(self, collection_id: str, item_id: str) -> bool:
        """Delete an item locally, then remotely in the background.

        Returns:
            True if the item existed locally
        """
        removed = await self.local_store.remove_item(collection_id, item_id, purge_assets=True)
        await self.assets.delete_asset(item_id, collection_id)
        await self._schedule_delete(item_id, DELETE_ITEM, collection_id)
        self.logger.info("Item deleted", collection_id=collection_id, item_id=item_id)
        return removed

    # Assets

    async def save_asset(
        self,
        item_id: str,
        original: bytes,
        display: bytes,
        collection_id: Optional[str] = None
    ) -> None:
        await self.assets.save_asset(item_id, original, display, collection_id)

    async def get_asset(
        self,
        item_id: str,
        variant: AssetVariant = AssetVariant.DISPLAY,
        remote_path_hint: Optional[str] = None,
        collection_id: Optional[str] = None
    ) -> Optional[bytes]:
        return await self.assets.get_asset(item_id, variant, remote_path_hint, collection_id)

    async def delete_asset(self, item_id: str, collection_id: Optional[str] = None) -> None:
        await self.assets.delete_asset(item_id, collection_id)

    async def save_item_photo(self, item: Item, source: Any, processor: ImageProcessor) -> Item:
        """Process a photo into both variants, cache them and point the item at them."""
        processed = await processor.process_image(source)
        await self.assets.save_asset(item.id, processed.original, processed.display, item.collection_id)
        return await self.save_item(item.model_copy(update={"photo_url": LOCAL_ASSET_MARKER}))

    # Recovery

    @log_async_execution_time
    async def sync_pending_changes(self) -> int:
        """Retry every remote write and delete that previously failed.

        Returns:
            Number of operations that succeeded
        """
        ops = dict(await self._pending_operations())
        if not ops:
            return 0
        if not await self._remote_ready():
            self.logger.warning("Pending changes kept, Supabase is not available", pending=len(ops))
            return 0

        synced = 0
        for entity_id, op in ops.items():
            if self._writer.is_pending(self._write_key(op.get("op"), entity_id)):
                continue
            if await self._push(entity_id, op.get("op"), op.get("collection_id")):
                synced += 1

        self.logger.info("Pending changes synced", synced=synced, pending=len(ops) - synced)
        return synced

    async def import_local_only_data(self) -> int:
        """Upload owned collections that hold ids Supabase has never seen.

        Returns:
            Number of collections uploaded
        """
        try:
            user_id = await self._require_user_id("import_local_only_data")
        except RemoteStoreError as e:
            self.logger.warning("Local data import skipped", error=str(e))
            return 0

        known_ids = await self._known_remote_ids()
        imported = 0
        for collection in await self.local_store.load_collections():
            if collection.owner_id and collection.owner_id != user_id:
                continue
            if collect_entity_ids([collection]) <= known_ids:
                continue
            if await self._push(collection.id, SAVE_COLLECTION):
                imported += 1

        self.logger.info("Local-only data imported", collections=imported)
        return imported

    async def seed_collections(self, seeds: Iterable[Collection], version: int) -> bool:
        """Store sample collections once per seed version.

        Returns:
            True if the seeds were written
        """
        current = await self.local_store.get_seed_version() or 0
        if current >= version:
            return False

        seeds = list(seeds)
        for seed in seeds:
            await self.save_collection(seed, touch=False)
        await self.local_store.set_seed_version(version)
        self.logger.info("Seeded collections", count=len(seeds), version=version)
        return True

    # Lifecycle

    async def flush(self) -> None:
        """Send every debounced write now and wait for background work."""
        await self._writer.flush()
        await self.assets.drain()

    async def close(self) -> None:
        await self.flush()
        await self.local_store.close()
        self.logger.info("Sync engine closed")
