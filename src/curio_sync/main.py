"""Main application entry point: one load/merge/retry pass."""

import asyncio
import sys
from typing import Optional

from .config.loader import ConfigLoader, ConfigurationError
from .config.settings import get_settings
from .core.sync_engine import SyncEngine, SyncResult
from .database.local_store import LocalStore
from .database.supabase_service import RemoteStore
from .domain.templates import TemplateRegistry
from .utils.logging import get_logger, setup_logging


class CurioSyncApp:
    """Runs a single sync pass against the configured stores."""

    def __init__(self):
        """Initialize the application."""
        self.settings = get_settings()
        self.logger = get_logger("CurioSync")
        self.config_loader = ConfigLoader()
        self.engine: Optional[SyncEngine] = None

    def _build_templates(self) -> TemplateRegistry:
        registry = TemplateRegistry()
        if self.settings.templates_file:
            self.config_loader.extend_registry(registry, self.settings.templates_file)
        return registry

    async def startup(self):
        """Application startup."""
        self.logger.info(
            "Starting Curio Sync",
            version=self.settings.version,
            environment=self.settings.environment
        )

        templates = self._build_templates()
        local_store = LocalStore(self.settings.database.url, templates=templates)
        await local_store.open()

        remote_store = None
        if self.settings.supabase.is_configured:
            remote_store = RemoteStore(self.settings.supabase)
            await remote_store.initialize()
        else:
            self.logger.warning("Supabase not configured, running local-only")

        self.engine = SyncEngine(
            local_store,
            remote_store,
            settings=self.settings,
            templates=templates,
            status_callback=self._on_status
        )

    def _on_status(self, entity_id, status, error):
        if error:
            self.logger.warning("Sync status changed", entity_id=entity_id, status=status.value, error=error)
        else:
            self.logger.debug("Sync status changed", entity_id=entity_id, status=status.value)

    async def run_once(self) -> SyncResult:
        """Seed, retry pending writes, reconcile, and upload local-only data."""
        if self.settings.seed_file:
            bundle = self.config_loader.load_seed_bundle(self.settings.seed_file)
            await self.engine.seed_collections(bundle.collections, bundle.version)

        retried = await self.engine.sync_pending_changes()
        collections = await self.engine.load_collections()
        result = self.engine.last_result

        imported = 0
        if result.remote_reachable and result.has_local_only_data:
            imported = await self.engine.import_local_only_data()

        await self.engine.flush()

        self.logger.info(
            "Sync pass finished",
            collections=len(collections),
            items=result.items,
            deleted=result.deleted_count,
            retried=retried,
            imported=imported,
            status=self.engine.overall_status.value
        )
        return result

    async def shutdown(self):
        """Application shutdown."""
        if self.engine is not None:
            await self.engine.close()
        self.logger.info("Curio Sync stopped")

    async def run(self) -> int:
        """Run one pass and return a process exit code."""
        try:
            await self.startup()
            result = await self.run_once()
        except ConfigurationError as e:
            self.logger.error("Invalid configuration", error=str(e))
            return 2
        finally:
            await self.shutdown()
        return 0 if result.success else 1


async def main() -> int:
    """Main entry point."""
    setup_logging()

    logger = get_logger("main")
    logger.info("Initializing Curio Sync application")

    app = CurioSyncApp()
    return await app.run()


def cli():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    cli()
