"""
主机测试配置辅助函数。

- ensure_test: 每台主机每种协议至多一个测试，已存在则返回，不存在则校验后创建
- sync_jitter_test: 根据主机的 jitter_enabled 开关自动创建或删除 jitter 测试
"""
import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.core.exceptions import ValidationError
from netpulse.models.host import Host
from netpulse.models.host_test import HostTest

logger = logging.getLogger(__name__)


async def find_test(db: AsyncSession, host_id: int, test_type: str) -> Optional[HostTest]:
    result = await db.execute(
        select(HostTest).where(HostTest.host_id == host_id, HostTest.test_type == test_type)
    )
    return result.unique().scalar_one_or_none()


async def ensure_test(db: AsyncSession, host: Host, test_type: str, **params) -> HostTest:
    """返回主机的某类测试，不存在时按参数创建（next_due 为空，首轮即到期）。"""
    existing = await find_test(db, host.id, test_type)
    if existing is not None:
        return existing

    test = HostTest(host_id=host.id, test_type=test_type, enabled=params.pop("enabled", True), **params)
    errors = test.parameter_errors()
    if errors:
        raise ValidationError("测试参数无效 (Invalid test parameters)", detail="; ".join(errors))

    db.add(test)
    await db.commit()
    await db.refresh(test)
    logger.info("Created %s test for host %s", test_type, host.name)
    return test


async def sync_jitter_test(db: AsyncSession, host: Host) -> Optional[HostTest]:
    """jitter_enabled 为真时保证存在 jitter 测试，否则删除它。"""
    if host.jitter_enabled:
        return await ensure_test(db, host, "jitter")

    result = await db.execute(
        delete(HostTest).where(HostTest.host_id == host.id, HostTest.test_type == "jitter")
    )
    await db.commit()
    if result.rowcount:
        logger.info("Removed jitter test for host %s", host.name)
    return None
