"""运行期设置服务测试。"""
import pytest
from sqlalchemy import select

from netpulse.models import Setting
from netpulse.services.settings_store import DEFAULT_SETTINGS, SettingsService


class TestSettingsService:
    @pytest.mark.asyncio
    async def test_defaults_without_rows(self, db_session):
        store = SettingsService(db_session)
        assert await store.get("test_interval_seconds") == "300"
        assert await store.get("outlier_detection_enabled") == "true"
        assert await store.get("no_such_key") is None
        assert set((await store.all()).keys()) == set(DEFAULT_SETTINGS)

    @pytest.mark.asyncio
    async def test_set_and_typed_get(self, db_session):
        store = SettingsService(db_session)
        await store.set("test_interval_seconds", 60)
        await store.set("outlier_threshold_multiplier", "2.5")
        await store.set("outlier_detection_enabled", False)

        assert await store.get_int("test_interval_seconds") == 60
        assert await store.get_float("outlier_threshold_multiplier") == 2.5
        assert await store.get_bool("outlier_detection_enabled") is False
        assert (await store.all())["test_interval_seconds"] == "60"

    @pytest.mark.asyncio
    async def test_invalid_value_falls_back_to_default(self, db_session):
        store = SettingsService(db_session)
        await store.set("raw_data_retention_days", "fourteen")
        await store.set("outlier_detection_enabled", "maybe")

        assert await store.get_int("raw_data_retention_days") == 14
        assert await store.get_bool("outlier_detection_enabled") is True

    @pytest.mark.asyncio
    async def test_ensure_defaults_keeps_existing(self, db_session):
        store = SettingsService(db_session)
        await store.set("ping_timeout_seconds", 2)

        assert await store.ensure_defaults() == len(DEFAULT_SETTINGS) - 1
        assert await store.ensure_defaults() == 0
        row = (await db_session.execute(
            select(Setting).where(Setting.key == "ping_timeout_seconds")
        )).scalar_one()
        assert row.value == "2"

    @pytest.mark.asyncio
    async def test_probe_config_clamps_timeouts(self, db_session):
        store = SettingsService(db_session)
        await store.set("http_timeout_seconds", 30)
        await store.set("dns_timeout_seconds", 0)

        config = await store.probe_config()
        assert config.http_timeout == 10
        assert config.dns_timeout == 1
        assert config.ping_timeout == 5
        assert config.timeout_for("jitter") == 5

    @pytest.mark.asyncio
    async def test_outlier_config(self, db_session):
        store = SettingsService(db_session)
        config = await store.outlier_config()
        assert config.enabled is True
        assert config.multiplier == 10
        assert config.min_threshold_ms == 500

        await store.set("outlier_threshold_multiplier", -1)
        assert (await store.outlier_config()).multiplier == 10

    @pytest.mark.asyncio
    async def test_non_positive_interval_uses_default(self, db_session):
        store = SettingsService(db_session)
        await store.set("test_interval_seconds", 0)
        assert await store.test_interval() == 300
