"""
NetPulse 测试基础配置

每个测试使用 tmp_path 下独立的 SQLite 文件数据库（aiosqlite），不依赖外部 PostgreSQL。
调度器、离群守卫与汇总服务通过注入的会话工厂访问该数据库。
"""
import os
import tempfile
from datetime import timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# 必须在导入 netpulse 之前设置环境变量，避免真实连接
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.gettempdir(), "netpulse_health_check.db"
)
os.environ["SCHEDULER_AUTOSTART"] = "false"

from netpulse.core.database import Base  # noqa: E402
from netpulse.core.timeutil import utcnow  # noqa: E402
from netpulse.models import Host, HostTest, Measurement  # noqa: E402
from netpulse.probes.models import ProbeOutcome  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    """每个测试一个独立的数据库文件，建好所有表。"""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_host(session_factory):
    """创建主机的工厂。"""
    async def _make(name="edge-router", address="127.0.0.1", **kwargs) -> Host:
        async with session_factory() as db:
            host = Host(name=name, address=address, **kwargs)
            db.add(host)
            await db.commit()
            await db.refresh(host)
            return host
    return _make


@pytest_asyncio.fixture
async def make_test(session_factory):
    """创建测试配置的工厂，返回已加载 host 关系的 HostTest。"""
    async def _make(host: Host, test_type="ping", **kwargs) -> HostTest:
        async with session_factory() as db:
            test = HostTest(host_id=host.id, test_type=test_type, **kwargs)
            db.add(test)
            await db.commit()
            test_id = test.id
        async with session_factory() as db:
            return await db.get(HostTest, test_id)
    return _make


@pytest_asyncio.fixture
async def add_measurements(session_factory):
    """批量写入历史测量，用于构造离群检测基线。"""
    async def _add(host: Host, test_type: str, latencies, jitters=None, tested_at=None):
        base = tested_at or utcnow() - timedelta(hours=1)
        async with session_factory() as db:
            for i, latency in enumerate(latencies):
                db.add(Measurement(
                    host_id=host.id,
                    test_type=test_type,
                    reachable=True,
                    latency_ms=latency,
                    jitter_ms=jitters[i] if jitters else None,
                    tested_at=base + timedelta(seconds=i),
                ))
            await db.commit()
    return _add


class ScriptedRegistry:
    """按顺序返回预设结果的探测注册表替身，记录调用次数。"""

    def __init__(self, *outcomes: ProbeOutcome, default: ProbeOutcome | None = None):
        self.outcomes = list(outcomes)
        self.default = default or ProbeOutcome(reachable=True, latency_ms=10.0)
        self.calls = []

    async def execute(self, test, config):
        self.calls.append(test.id)
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default


@pytest.fixture
def scripted_registry():
    """返回 ScriptedRegistry 类，测试中按需构造。"""
    return ScriptedRegistry


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """挂好测试调度器的异步 HTTP 测试客户端（不触发 lifespan）。"""
    from netpulse.main import app
    from netpulse.tasks.scheduler import ProbeScheduler

    registry = ScriptedRegistry()
    app.state.scheduler = ProbeScheduler(session_factory, check_interval=1, registry=registry)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await app.state.scheduler.stop()
    del app.state.scheduler
