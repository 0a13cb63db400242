"""Supabase-backed remote store for collection rows and photo objects."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import AsyncClient, acreate_client

from ..config.settings import SupabaseSettings, get_settings
from ..domain.models import AssetVariant, Collection, CollectionSettings, FieldDefinition, Item
from ..domain.paths import LOCAL_ASSET_MARKER, build_asset_path, normalize_photo_paths
from ..utils.logging import get_logger

logger = get_logger(__name__)

COLLECTIONS_TABLE = "collections"
ITEMS_TABLE = "items"


class RemoteStoreError(Exception):
    """Raised when the remote store cannot complete a request."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"Remote {operation} failed: {message}")
        self.operation = operation


@dataclass
class RemoteSnapshot:
    """Result of a remote fetch."""

    collections: List[Collection] = field(default_factory=list)
    # Rows present remotely that could not be parsed; they are not deletions.
    unreadable_ids: Set[str] = field(default_factory=set)

    @property
    def entity_ids(self) -> Set[str]:
        """Every id the remote reported, readable or not."""
        ids = set(self.unreadable_ids)
        for collection in self.collections:
            ids.add(collection.id)
            ids.update(item.id for item in collection.items)
        return ids


def _error_message(error: Exception) -> str:
    if isinstance(error, APIError):
        return error.message or str(error)
    return str(error)


# Row mapping

def collection_to_row(
    collection: Collection,
    user_id: str,
    include_updated_at: bool = False
) -> Dict[str, Any]:
    """Build a ``collections`` row; items are written separately."""
    row = {
        "id": collection.id,
        "user_id": user_id,
        "template_id": collection.template_id,
        "name": collection.name,
        "icon": collection.icon,
        "settings": {
            "displayFields": list(collection.settings.display_fields),
            "badgeFields": list(collection.settings.badge_fields),
            "customFields": [field.model_dump(mode="json") for field in collection.custom_fields],
        },
        "is_public": collection.is_public,
        "seed_key": collection.seed_key,
    }
    if collection.created_at:
        row["created_at"] = collection.created_at
    if include_updated_at and collection.updated_at:
        row["updated_at"] = collection.updated_at
    return row


def item_to_row(item: Item, user_id: str, include_updated_at: bool = False) -> Dict[str, Any]:
    """Build an ``items`` row."""
    if item.photo_url == LOCAL_ASSET_MARKER:
        original_path = build_asset_path(user_id, item.id, AssetVariant.ORIGINAL, item.collection_id)
        display_path = build_asset_path(user_id, item.id, AssetVariant.DISPLAY, item.collection_id)
    else:
        original_path, display_path = normalize_photo_paths(item.photo_url)

    row = {
        "id": item.id,
        "collection_id": item.collection_id,
        "user_id": user_id,
        "title": item.title,
        "notes": item.notes,
        "rating": item.rating,
        "data": dict(item.data),
        "photo_original_path": original_path or None,
        "photo_display_path": display_path or None,
        "seed_key": item.seed_key,
        "created_at": item.created_at,
    }
    if include_updated_at and item.updated_at:
        row["updated_at"] = item.updated_at
    return row


def row_to_item(row: Dict[str, Any]) -> Item:
    photo_url = row.get("photo_display_path") or row.get("photo_original_path") or row.get("photo_path") or ""
    return Item(
        id=row["id"],
        collection_id=row["collection_id"],
        title=row.get("title") or "",
        rating=row.get("rating") or 0,
        notes=row.get("notes") or "",
        data=row.get("data") or {},
        photo_url=photo_url,
        seed_key=row.get("seed_key"),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at"),
    )


def row_to_collection(row: Dict[str, Any], items: Optional[List[Item]] = None) -> Collection:
    settings = row.get("settings") or {}
    return Collection(
        id=row["id"],
        template_id=row.get("template_id") or "general",
        name=row.get("name") or "",
        icon=row.get("icon") or "",
        custom_fields=[FieldDefinition.model_validate(field) for field in settings.get("customFields") or []],
        settings=CollectionSettings(
            display_fields=settings.get("displayFields") or [],
            badge_fields=settings.get("badgeFields") or [],
        ),
        items=items or [],
        owner_id=row.get("user_id"),
        is_public=bool(row.get("is_public", False)),
        seed_key=row.get("seed_key"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class RemoteStore:
    """Supabase rows and storage objects behind one adapter.

    Read failures raise ``RemoteStoreError`` so an outage is never mistaken
    for an empty remote dataset.
    """

    def __init__(self, settings: Optional[SupabaseSettings] = None, client: Optional[AsyncClient] = None):
        self.settings = settings or get_settings().supabase
        self.client: Optional[AsyncClient] = client
        self.user_id: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.client is not None

    async def initialize(self) -> bool:
        """Initialize Supabase client."""
        if self.client is not None:
            return True
        if not self.settings.is_configured:
            logger.warning("Supabase credentials not configured")
            return False

        try:
            self.client = await acreate_client(self.settings.url, self.settings.anon_key)
            logger.info("Supabase service initialized successfully")
            return True
        except Exception as e:
            logger.error("Failed to initialize Supabase service", error=str(e))
            return False

    def _require_client(self, operation: str) -> AsyncClient:
        if self.client is None:
            raise RemoteStoreError(operation, "Supabase is not configured")
        return self.client

    async def ensure_user_id(self) -> Optional[str]:
        """Current session user id, signing in anonymously when there is none."""
        if self.user_id:
            return self.user_id
        if self.client is None:
            return None

        try:
            session = await self.client.auth.get_session()
            if session and session.user:
                self.user_id = session.user.id
                return self.user_id

            response = await self.client.auth.sign_in_anonymously()
            if response.user is None:
                logger.warning("Supabase anonymous sign-in returned no user")
                return None
            self.user_id = response.user.id
            logger.info("Signed in anonymously", user_id=self.user_id)
            return self.user_id
        except Exception as e:
            logger.warning("Supabase auth check failed", error=str(e))
            return None

    # Row operations

    async def fetch_collections(
        self,
        user_id: Optional[str] = None,
        include_public: bool = True
    ) -> RemoteSnapshot:
        """Fetch visible collections with their items in two queries.

        Rows that exist but cannot be parsed are left out of the collections
        and reported in ``unreadable_ids``. Items of an unreadable collection
        row are reported with it.

        Args:
            user_id: Owner whose rows to read
            include_public: Also read other users' public collections

        Returns:
            Collections with nested items, plus the ids of unreadable rows

        Raises:
            RemoteStoreError: If either query fails
        """
        client = self._require_client("fetch_collections")

        query = client.table(COLLECTIONS_TABLE).select("*")
        if user_id and include_public:
            query = query.or_(f"user_id.eq.{user_id},is_public.eq.true")
        elif user_id:
            query = query.eq("user_id", user_id)
        elif include_public:
            query = query.eq("is_public", True)
        else:
            return RemoteSnapshot()

        try:
            collection_rows = (await query.order("created_at").execute()).data or []
            if not collection_rows:
                return RemoteSnapshot()

            collection_ids = [row["id"] for row in collection_rows]
            item_rows = (
                await client.table(ITEMS_TABLE)
                .select("*")
                .in_("collection_id", collection_ids)
                .order("created_at")
                .execute()
            ).data or []
        except Exception as e:
            logger.warning("Failed to fetch remote collections", error=_error_message(e))
            raise RemoteStoreError("fetch_collections", _error_message(e)) from e

        snapshot = RemoteSnapshot()
        items_by_collection: Dict[str, List[Item]] = {collection_id: [] for collection_id in collection_ids}
        for row in item_rows:
            try:
                item = row_to_item(row)
            except (ValidationError, KeyError) as e:
                logger.warning("Invalid item row", item_id=row.get("id"), error=str(e))
                if row.get("id"):
                    snapshot.unreadable_ids.add(row["id"])
                continue
            if item.collection_id in items_by_collection:
                items_by_collection[item.collection_id].append(item)

        for row in collection_rows:
            items = items_by_collection.get(row["id"]) or []
            try:
                snapshot.collections.append(row_to_collection(row, items))
            except (ValidationError, KeyError) as e:
                logger.warning("Invalid collection row", collection_id=row.get("id"), error=str(e))
                snapshot.unreadable_ids.add(row["id"])
                snapshot.unreadable_ids.update(item.id for item in items)

        logger.info(
            "Fetched remote collections",
            collections=len(snapshot.collections),
            items=len(item_rows),
            unreadable=len(snapshot.unreadable_ids)
        )
        return snapshot

    async def save_collection(self, collection: Collection, user_id: str) -> None:
        """Upsert a collection row, then all of its item rows in one call."""
        client = self._require_client("save_collection")
        trust = self.settings.trust_client_timestamps

        try:
            await client.table(COLLECTIONS_TABLE).upsert(
                collection_to_row(collection, user_id, trust)
            ).execute()
            if collection.items:
                await client.table(ITEMS_TABLE).upsert(
                    [item_to_row(item, user_id, trust) for item in collection.items]
                ).execute()
        except Exception as e:
            raise RemoteStoreError("save_collection", _error_message(e)) from e

        logger.debug("Saved remote collection", collection_id=collection.id, items=len(collection.items))

    async def save_item(self, item: Item, user_id: str) -> None:
        """Upsert a single item row."""
        client = self._require_client("save_item")
        try:
            await client.table(ITEMS_TABLE).upsert(
                item_to_row(item, user_id, self.settings.trust_client_timestamps)
            ).execute()
        except Exception as e:
            raise RemoteStoreError("save_item", _error_message(e)) from e

        logger.debug("Saved remote item", item_id=item.id, collection_id=item.collection_id)

    async def delete_collection(self, collection_id: str) -> None:
        client = self._require_client("delete_collection")
        try:
            await client.table(COLLECTIONS_TABLE).delete().eq("id", collection_id).execute()
        except Exception as e:
            raise RemoteStoreError("delete_collection", _error_message(e)) from e
        logger.info("Deleted remote collection", collection_id=collection_id)

    async def delete_item(self, item_id: str) -> None:
        client = self._require_client("delete_item")
        try:
            await client.table(ITEMS_TABLE).delete().eq("id", item_id).execute()
        except Exception as e:
            raise RemoteStoreError("delete_item", _error_message(e)) from e
        logger.info("Deleted remote item", item_id=item_id)

    # Storage operations

    def _bucket(self, client: AsyncClient):
        return client.storage.from_(self.settings.bucket)

    async def upload_asset(
        self,
        path: str,
        data: bytes,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None
    ) -> str:
        """Upload a JPEG object, retrying transient failures.

        Returns:
            The storage path written

        Raises:
            RemoteStoreError: After the last attempt fails
        """
        client = self._require_client("upload_asset")
        sync_settings = get_settings().sync
        retries = sync_settings.upload_retries if retries is None else retries
        retry_delay = sync_settings.retry_delay_seconds if retry_delay is None else retry_delay

        last_error: Optional[Exception] = None
        for attempt in range(retries + 1):
            try:
                await self._bucket(client).upload(
                    path,
                    data,
                    file_options={"content-type": "image/jpeg", "upsert": "true"}
                )
                logger.debug("Uploaded asset", path=path, attempt=attempt + 1)
                return path
            except Exception as e:
                last_error = e
                logger.warning(
                    "Asset upload attempt failed",
                    path=path,
                    attempt=attempt + 1,
                    error=_error_message(e)
                )
                if attempt < retries:
                    await asyncio.sleep(retry_delay * (attempt + 1))

        raise RemoteStoreError("upload_asset", _error_message(last_error)) from last_error

    async def download_asset(self, path: str) -> Optional[bytes]:
        """Download an object, or None when it cannot be read."""
        if self.client is None:
            return None
        try:
            data = await self._bucket(self.client).download(path)
        except Exception as e:
            logger.warning("Asset download failed", path=path, error=_error_message(e))
            return None
        return bytes(data) if data else None

    async def delete_asset_objects(self, paths: Iterable[str]) -> None:
        client = self._require_client("delete_asset_objects")
        paths = [path for path in paths if path]
        if not paths:
            return
        try:
            await self._bucket(client).remove(paths)
        except Exception as e:
            raise RemoteStoreError("delete_asset_objects", _error_message(e)) from e
        logger.debug("Deleted asset objects", count=len(paths))
