"""
运行期设置服务 (Runtime Settings Service)

settings 表以字符串保存可调参数，这里负责默认值合并与类型转换，并构造探测与
离群检测所需的配置对象。无效的存储值回退到默认值并记录警告。

Reads the string-valued settings table, merges typed defaults, and builds the
probe and outlier configuration objects. Unparsable stored values fall back
to their defaults with a warning.
"""
import logging
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.models.setting import Setting
from netpulse.probes.models import OutlierConfig, ProbeConfig

logger = logging.getLogger(__name__)

# 默认设置 (Default Settings)
DEFAULT_SETTINGS = {
    "test_interval_seconds": 300,             # 测试基础间隔 5 分钟
    "raw_data_retention_days": 14,            # 原始测量保留 14 天
    "aggregation_15min_retention_days": 30,   # 15 分钟桶保留 30 天
    "aggregation_hourly_retention_days": 0,   # 小时桶保留天数，0 表示永久保留
    "ping_timeout_seconds": 5,
    "tcp_timeout_seconds": 5,
    "http_timeout_seconds": 10,
    "dns_timeout_seconds": 5,
    "outlier_detection_enabled": True,        # 离群结果复测
    "outlier_threshold_multiplier": 10,       # 结果需超过中位数的倍数
    "outlier_min_threshold_ms": 500,          # 与中位数的最小差值（毫秒）
}

SETTING_DESCRIPTIONS = {
    "test_interval_seconds": "测试基础间隔（秒）",
    "raw_data_retention_days": "原始测量保留天数",
    "aggregation_15min_retention_days": "15 分钟汇总保留天数",
    "aggregation_hourly_retention_days": "小时汇总保留天数（0 为永久）",
    "outlier_detection_enabled": "是否启用离群复测",
    "outlier_threshold_multiplier": "离群倍数阈值",
    "outlier_min_threshold_ms": "离群最小差值（毫秒）",
}

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


def _to_str(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SettingsService:
    """运行期设置读写服务"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _row(self, key: str) -> Setting | None:
        result = await self.db.execute(select(Setting).where(Setting.key == key))
        return result.scalar_one_or_none()

    async def get(self, key: str) -> str | None:
        """读取字符串值，未存储时返回默认值的字符串形式。"""
        setting = await self._row(key)
        if setting is not None:
            return setting.value
        if key in DEFAULT_SETTINGS:
            return _to_str(DEFAULT_SETTINGS[key])
        return None

    async def set(self, key: str, value) -> None:
        setting = await self._row(key)
        if setting:
            setting.value = _to_str(value)
        else:
            self.db.add(Setting(key=key, value=_to_str(value), description=SETTING_DESCRIPTIONS.get(key)))
        await self.db.commit()

    async def all(self) -> Dict[str, str]:
        """默认值与已存储值合并后的全部设置。"""
        merged = {key: _to_str(value) for key, value in DEFAULT_SETTINGS.items()}
        result = await self.db.execute(select(Setting))
        for setting in result.scalars().all():
            merged[setting.key] = setting.value
        return merged

    async def ensure_defaults(self) -> int:
        """写入缺失的默认设置，不覆盖已有值。返回新写入的数量。"""
        result = await self.db.execute(select(Setting.key))
        existing = set(result.scalars().all())
        created = 0
        for key, value in DEFAULT_SETTINGS.items():
            if key not in existing:
                self.db.add(Setting(key=key, value=_to_str(value), description=SETTING_DESCRIPTIONS.get(key)))
                created += 1
        if created:
            await self.db.commit()
        return created

    async def get_int(self, key: str) -> int:
        raw = await self.get(key)
        try:
            return int(float(raw))
        except (TypeError, ValueError):
            logger.warning("Invalid integer setting %s=%r, using default", key, raw)
            return int(DEFAULT_SETTINGS[key])

    async def get_float(self, key: str) -> float:
        raw = await self.get(key)
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning("Invalid numeric setting %s=%r, using default", key, raw)
            return float(DEFAULT_SETTINGS[key])

    async def get_bool(self, key: str) -> bool:
        raw = (await self.get(key) or "").strip().lower()
        if raw in TRUE_VALUES:
            return True
        if raw in FALSE_VALUES:
            return False
        logger.warning("Invalid boolean setting %s=%r, using default", key, raw)
        return bool(DEFAULT_SETTINGS[key])

    async def test_interval(self) -> int:
        interval = await self.get_int("test_interval_seconds")
        return interval if interval > 0 else int(DEFAULT_SETTINGS["test_interval_seconds"])

    async def probe_config(self) -> ProbeConfig:
        return ProbeConfig(
            ping_timeout=await self.get_int("ping_timeout_seconds"),
            tcp_timeout=await self.get_int("tcp_timeout_seconds"),
            http_timeout=await self.get_int("http_timeout_seconds"),
            dns_timeout=await self.get_int("dns_timeout_seconds"),
        )

    async def outlier_config(self) -> OutlierConfig:
        multiplier = await self.get_float("outlier_threshold_multiplier")
        if multiplier <= 0:
            logger.warning("Non-positive outlier multiplier %s, using default", multiplier)
            multiplier = float(DEFAULT_SETTINGS["outlier_threshold_multiplier"])
        return OutlierConfig(
            enabled=await self.get_bool("outlier_detection_enabled"),
            multiplier=multiplier,
            min_threshold_ms=max(0.0, await self.get_float("outlier_min_threshold_ms")),
        )
