"""Tests for the single-pass application runner."""

import json

import pytest

from curio_sync.config.settings import AppSettings, LocalStoreSettings, SupabaseSettings
from curio_sync.domain.models import SyncStatus
from curio_sync.main import CurioSyncApp


def local_only_settings(tmp_path, **overrides) -> AppSettings:
    return AppSettings(
        database=LocalStoreSettings(url=f"sqlite:///{tmp_path / 'curio.db'}"),
        supabase=SupabaseSettings(url="", anon_key=""),
        **overrides
    )


@pytest.mark.integration
class TestCurioSyncApp:

    @pytest.mark.asyncio
    async def test_local_only_pass_seeds_once(self, tmp_path):
        seed_file = tmp_path / "seeds.json"
        seed_file.write_text(json.dumps({
            "version": 1,
            "collections": [{"id": "seed-col", "template_id": "vinyl", "name": "Starter"}],
        }), encoding="utf-8")

        app = CurioSyncApp()
        app.settings = local_only_settings(tmp_path, seed_file=str(seed_file))

        await app.startup()
        try:
            result = await app.run_once()
            assert result.success is True
            assert result.remote_reachable is False
            assert result.collections == 1
            assert app.engine.overall_status == SyncStatus.SAVED_LOCALLY
        finally:
            await app.shutdown()

    @pytest.mark.asyncio
    async def test_run_returns_exit_codes(self, tmp_path):
        app = CurioSyncApp()
        app.settings = local_only_settings(tmp_path)
        assert await app.run() == 0

        broken = CurioSyncApp()
        broken.settings = local_only_settings(tmp_path, templates_file=str(tmp_path / "missing.yaml"))
        assert await broken.run() == 2
