"""
实体存储访问函数 (Entity Store Access)

探测核心对存储的全部读写都经过这里：读取启用的主机与测试、更新 next_due、
插入测量、按 (主机, 类型) 读取最近的测量指标。汇总桶的读写在汇总服务中完成。

Every read and write the probing core performs against the store goes through
here: enabled hosts and tests, next_due updates, measurement inserts, and
recent metric history per (host, type). Aggregate buckets are handled by the
aggregator service.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.core.timeutil import utcnow
from netpulse.models.host import Host
from netpulse.models.host_test import HostTest
from netpulse.models.measurement import Measurement
from netpulse.probes.models import ProbeOutcome


def _enabled_tests_query():
    return (
        select(HostTest)
        .join(Host, HostTest.host_id == Host.id)
        .where(HostTest.enabled.is_(True), Host.enabled.is_(True))
    )


async def list_enabled_tests(db: AsyncSession) -> list[HostTest]:
    """所有启用主机下的启用测试。"""
    result = await db.execute(_enabled_tests_query().order_by(HostTest.id))
    return list(result.unique().scalars().all())


async def list_due_tests(db: AsyncSession, now: datetime) -> list[HostTest]:
    """已到期（next_due <= now）或从未运行（next_due 为空）的测试。"""
    query = _enabled_tests_query().where(
        or_(HostTest.next_due.is_(None), HostTest.next_due <= now)
    )
    result = await db.execute(query.order_by(HostTest.id))
    return list(result.unique().scalars().all())


async def get_host(db: AsyncSession, host_id: int) -> Optional[Host]:
    return await db.get(Host, host_id)


async def list_enabled_tests_for_host(db: AsyncSession, host_id: int) -> list[HostTest]:
    result = await db.execute(
        select(HostTest)
        .where(HostTest.host_id == host_id, HostTest.enabled.is_(True))
        .order_by(HostTest.test_type)
    )
    return list(result.unique().scalars().all())


async def set_next_due(db: AsyncSession, test_id: int, next_due: datetime) -> None:
    await db.execute(update(HostTest).where(HostTest.id == test_id).values(next_due=next_due))


async def insert_measurement(
    db: AsyncSession,
    test: HostTest,
    outcome: ProbeOutcome,
    tested_at: Optional[datetime] = None,
) -> Measurement:
    measurement = Measurement(
        host_id=test.host_id,
        test_type=test.test_type,
        reachable=outcome.reachable,
        latency_ms=outcome.latency_ms,
        jitter_ms=outcome.jitter_ms,
        status_code=outcome.status,
        error_message=outcome.error,
        tested_at=tested_at or utcnow(),
    )
    db.add(measurement)
    await db.flush()
    return measurement


async def recent_metric_values(
    db: AsyncSession,
    host_id: int,
    test_type: str,
    limit: int,
) -> list[float]:
    """最近 `limit` 条成功测量的指标值，按时间倒序。jitter 测试取抖动，其余取延迟。"""
    column = Measurement.jitter_ms if test_type == "jitter" else Measurement.latency_ms
    result = await db.execute(
        select(column)
        .where(
            Measurement.host_id == host_id,
            Measurement.test_type == test_type,
            Measurement.reachable.is_(True),
            column.is_not(None),
        )
        .order_by(Measurement.tested_at.desc(), Measurement.id.desc())
        .limit(limit)
    )
    return [float(v) for v in result.scalars().all()]
