"""Tests for settings, the sync config store, sync metrics and app wiring."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock, patch

import pytest
from prometheus_client import REGISTRY

from src.polytrade.config import Settings
from src.polytrade.core.monitoring import record_sync_operation
from src.polytrade.deals.repository import DealRepository
from src.polytrade.sync.config_store import SyncConfigStore
from src.polytrade.sync.schemas import ConflictResolution, SyncConfig


def _make_settings(**overrides) -> Settings:
    """Create Settings with Sheets unconfigured unless overridden."""
    defaults = {
        "GOOGLE_SHEETS_ID": "",
        "GOOGLE_SERVICE_ACCOUNT_FILE": "",
        "GOOGLE_SERVICE_ACCOUNT_JSON_B64": "",
    }
    defaults.update(overrides)
    return Settings(**defaults)


# ── Settings ─────────────────────────────────────────────────────────────────


class TestSettings:
    def test_sheets_not_configured_without_id(self):
        settings = _make_settings(GOOGLE_SERVICE_ACCOUNT_FILE="/keys/sa.json")

        assert settings.sheets_configured() is False

    def test_sheets_not_configured_without_credential(self):
        settings = _make_settings(GOOGLE_SHEETS_ID="sheet-123")

        assert settings.sheets_configured() is False

    def test_service_account_file_preferred(self):
        settings = _make_settings(
            GOOGLE_SHEETS_ID="sheet-123",
            GOOGLE_SERVICE_ACCOUNT_FILE="/keys/sa.json",
            GOOGLE_SERVICE_ACCOUNT_JSON_B64=base64.b64encode(b"{}").decode(),
        )

        assert settings.sheets_configured() is True
        assert settings.get_service_account_path() == "/keys/sa.json"

    def test_base64_credential_written_to_temp_file(self):
        encoded = base64.b64encode(b'{"type": "service_account"}').decode()
        settings = _make_settings(GOOGLE_SERVICE_ACCOUNT_JSON_B64=encoded)

        path = settings.get_service_account_path()

        with open(path, "rb") as f:
            assert f.read() == b'{"type": "service_account"}'

    def test_no_credential_path(self):
        assert _make_settings().get_service_account_path() is None


# ── SyncConfigStore ──────────────────────────────────────────────────────────


class TestSyncConfigStore:
    def test_from_settings(self):
        settings = _make_settings(
            SYNC_AUTO_ENABLED=False,
            SYNC_INTERVAL_MINUTES=15,
            SYNC_CONFLICT_RESOLUTION="sheets_wins",
            SYNC_BATCH_SIZE=50,
            SYNC_RETRY_ATTEMPTS=2,
        )

        config = SyncConfigStore.from_settings(settings).get()

        assert config == SyncConfig(
            auto_sync_enabled=False,
            sync_interval=15,
            conflict_resolution=ConflictResolution.SHEETS_WINS,
            batch_size=50,
            retry_attempts=2,
        )

    def test_from_settings_rejects_unknown_policy(self):
        settings = _make_settings(SYNC_CONFLICT_RESOLUTION="coin_flip")

        with pytest.raises(ValueError):
            SyncConfigStore.from_settings(settings)

    def test_defaults_without_initial(self):
        assert SyncConfigStore().get() == SyncConfig()

    def test_set_replaces_whole_config(self):
        store = SyncConfigStore()

        store.set(SyncConfig(batch_size=10))

        assert store.get().batch_size == 10

    def test_update_keeps_unchanged_fields(self):
        store = SyncConfigStore(SyncConfig(sync_interval=30))

        result = store.update(retry_attempts=7)

        assert result.retry_attempts == 7
        assert result.sync_interval == 30

    def test_get_is_a_copy(self):
        store = SyncConfigStore()

        store.get().auto_sync_enabled = False

        assert store.get().auto_sync_enabled is True


# ── Sync Metrics ─────────────────────────────────────────────────────────────


class TestSyncMetrics:
    @staticmethod
    def _value(operation: str, status: str) -> float:
        return (
            REGISTRY.get_sample_value(
                "sync_operations_total", {"operation": operation, "status": status}
            )
            or 0.0
        )

    def test_record_sync_operation_labels_outcome(self):
        before_ok = self._value("single", "success")
        before_failed = self._value("single", "failure")

        record_sync_operation("single", success=True)
        record_sync_operation("single", success=False)
        record_sync_operation("single", success=False)

        assert self._value("single", "success") == before_ok + 1
        assert self._value("single", "failure") == before_failed + 2

    async def test_engine_records_push(self, sync_engine, deal_store, make_deal):
        deal = await deal_store.create_deal(make_deal())
        before = self._value("single", "success")

        await sync_engine.sync_deal_to_sheets(deal.id)

        assert self._value("single", "success") == before + 1


# ── App Wiring ───────────────────────────────────────────────────────────────


class TestBuildSyncEngine:
    async def test_returns_none_when_sheets_not_configured(self, event_bus):
        from src.polytrade.main import _build_sync_engine

        engine = await _build_sync_engine(
            _make_settings(), DealRepository(session_factory=MagicMock()), event_bus
        )

        assert engine is None

    async def test_wires_engine_and_writes_header(self, event_bus, make_sheet):
        from src.polytrade.main import _build_sync_engine

        service, _ = make_sheet(with_header=False)
        settings = _make_settings(
            GOOGLE_SHEETS_ID="sheet-123",
            GOOGLE_SERVICE_ACCOUNT_FILE="/keys/sa.json",
            SYNC_CONFLICT_RESOLUTION="manual",
        )

        with patch("src.polytrade.main.GoogleAuthManager") as manager_cls:
            manager_cls.return_value.get_sheets_service.return_value = service
            engine = await _build_sync_engine(
                settings, DealRepository(session_factory=MagicMock()), event_bus
            )

        try:
            manager_cls.assert_called_once_with(service_account_file="/keys/sa.json")
            assert engine.get_config().conflict_resolution == ConflictResolution.MANUAL
            assert service.grid[0][0] == "ID"
        finally:
            engine.close()

    async def test_unreachable_sheet_does_not_block_startup(self, event_bus, make_sheet):
        from src.polytrade.main import _build_sync_engine

        service, _ = make_sheet()
        service.fail_on.add("values.get")
        settings = _make_settings(
            GOOGLE_SHEETS_ID="sheet-123",
            GOOGLE_SERVICE_ACCOUNT_FILE="/keys/sa.json",
        )

        with patch("src.polytrade.main.GoogleAuthManager") as manager_cls:
            manager_cls.return_value.get_sheets_service.return_value = service
            engine = await _build_sync_engine(
                settings, DealRepository(session_factory=MagicMock()), event_bus
            )

        assert engine is not None
        engine.close()
