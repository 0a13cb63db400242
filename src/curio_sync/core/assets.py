"""Tiered photo cache: local first, remote fallback, self-healing."""

import asyncio
from typing import Awaitable, Callable, Coroutine, Dict, List, Optional, Set

from ..database.local_store import LocalStore
from ..database.supabase_service import RemoteStore, RemoteStoreError
from ..domain.models import AssetVariant
from ..domain.paths import build_asset_path, resolve_storage_path
from ..utils.logging import get_logger

logger = get_logger(__name__)


class AssetCache:
    """Photo variants keyed by item id and variant.

    Writes land in the local store synchronously and reach the remote bucket
    in the background. Reads that miss locally are served from the remote
    bucket and written back to the local store.
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote_store: Optional[RemoteStore] = None,
        remote_ready: Optional[Callable[[], Awaitable[bool]]] = None
    ):
        """Initialize the asset cache.

        Args:
            local_store: On-device cache
            remote_store: Supabase adapter; None keeps assets local-only
            remote_ready: Coroutine function reporting whether the remote store
                can be used, initializing it if needed. Defaults to initializing
                the store once on first use.
        """
        self.local_store = local_store
        self.remote_store = remote_store
        self._remote_ready_check = remote_ready
        self._init_attempted = False
        self._tasks: Set[asyncio.Task] = set()

    async def _remote_ready(self) -> bool:
        if self.remote_store is None:
            return False
        if self._remote_ready_check is not None:
            return await self._remote_ready_check()
        if not self.remote_store.is_available and not self._init_attempted:
            self._init_attempted = True
            await self.remote_store.initialize()
        return self.remote_store.is_available

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for background uploads and deletes."""
        while True:
            running = [task for task in self._tasks if not task.done()]
            if not running:
                break
            await asyncio.wait(running)

    async def save_asset(
        self,
        item_id: str,
        original: bytes,
        display: bytes,
        collection_id: Optional[str] = None
    ) -> None:
        """Store both variants locally in one transaction and upload them in the background."""
        variants = {AssetVariant.ORIGINAL: original, AssetVariant.DISPLAY: display}
        await self.local_store.put_assets(item_id, variants)
        logger.debug("Saved asset locally", item_id=item_id)

        if await self._remote_ready():
            self._spawn(self._upload(item_id, variants, collection_id))
        elif self.remote_store is not None:
            logger.warning("Remote store unavailable, asset kept locally only", item_id=item_id)

    async def _upload(
        self,
        item_id: str,
        variants: Dict[AssetVariant, bytes],
        collection_id: Optional[str]
    ) -> None:
        user_id = await self.remote_store.ensure_user_id()
        if not user_id:
            logger.warning("Skipping asset upload without a user", item_id=item_id)
            return

        for variant, data in variants.items():
            path = build_asset_path(user_id, item_id, variant, collection_id)
            try:
                await self.remote_store.upload_asset(path, data)
            except RemoteStoreError as e:
                logger.warning("Asset upload failed", item_id=item_id, variant=variant.value, error=str(e))

    async def _candidate_paths(
        self,
        item_id: str,
        variant: AssetVariant,
        remote_path_hint: Optional[str],
        collection_id: Optional[str]
    ) -> List[str]:
        paths = []
        hinted = resolve_storage_path(remote_path_hint, variant)
        if hinted:
            paths.append(hinted)

        user_id = await self.remote_store.ensure_user_id()
        if user_id:
            derived = build_asset_path(user_id, item_id, variant, collection_id)
            if derived not in paths:
                paths.append(derived)
        return paths

    async def get_asset(
        self,
        item_id: str,
        variant: AssetVariant = AssetVariant.DISPLAY,
        remote_path_hint: Optional[str] = None,
        collection_id: Optional[str] = None
    ) -> Optional[bytes]:
        """Read a photo variant, restoring it from the remote bucket on a local miss.

        Args:
            item_id: Owning item id
            variant: Variant to read; legacy names are accepted
            remote_path_hint: Stored photo reference of the item, if any
            collection_id: Owning collection, used to derive the object path

        Returns:
            Image bytes, or None if neither tier has the variant
        """
        variant = AssetVariant.parse(variant)
        data = await self.local_store.get_asset(item_id, variant)
        if data is not None:
            return data

        if not await self._remote_ready():
            return None

        for path in await self._candidate_paths(item_id, variant, remote_path_hint, collection_id):
            data = await self.remote_store.download_asset(path)
            if data is not None:
                await self.local_store.put_assets(item_id, {variant: data})
                logger.info("Restored asset from remote", item_id=item_id, variant=variant.value, path=path)
                return data

        logger.debug("Asset not found in any tier", item_id=item_id, variant=variant.value)
        return None

    async def delete_asset(self, item_id: str, collection_id: Optional[str] = None) -> None:
        """Delete both variants locally now and remotely in the background."""
        await self.local_store.delete_assets(item_id)
        if await self._remote_ready():
            self._spawn(self._delete_remote(item_id, collection_id))
        elif self.remote_store is not None:
            logger.warning("Remote store unavailable, remote asset copies not deleted", item_id=item_id)

    async def _delete_remote(self, item_id: str, collection_id: Optional[str]) -> None:
        user_id = await self.remote_store.ensure_user_id()
        if not user_id:
            return

        paths = [build_asset_path(user_id, item_id, variant) for variant in AssetVariant]
        if collection_id:
            paths.extend(build_asset_path(user_id, item_id, variant, collection_id) for variant in AssetVariant)
        try:
            await self.remote_store.delete_asset_objects(paths)
        except RemoteStoreError as e:
            logger.warning("Remote asset delete failed", item_id=item_id, error=str(e))
