"""
时间工具函数。

所有持久化时间戳统一为不带时区的 UTC 时间，PostgreSQL 与 SQLite 行为一致。
"""
from datetime import datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """当前 UTC 时间（naive）。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def floor_to_minutes(value: datetime, minutes: int) -> datetime:
    """向下对齐到 `minutes` 分钟的整倍数窗口起点（窗口在小时内对齐）。"""
    minute = (value.minute // minutes) * minutes
    return value.replace(minute=minute, second=0, microsecond=0)


def floor_to_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def seconds_until_daily(hour: int, now: datetime | None = None) -> float:
    """距离下一次本地时间 `hour`:00 的秒数；已过今天的该时刻则计算到明天。"""
    now = now or datetime.now()
    target = datetime.combine(now.date(), time(hour, 0))
    if now >= target:
        target += timedelta(days=1)
    return (target - now).total_seconds()
