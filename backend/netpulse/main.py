"""
NetPulse 后端应用入口模块 (NetPulse Backend Application Entry Module)

负责 FastAPI 应用的生命周期管理：日志初始化、建表、写入默认运行期设置、
启动与停止探测调度器，以及注册异常处理器和调度器触发接口。

Application entry point managing the FastAPI lifecycle: logging setup, table
creation, default runtime settings, starting and stopping the probe scheduler,
exception handlers and the scheduler trigger routes.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from sqlalchemy import text

from netpulse import __version__
from netpulse.core.config import settings as app_settings
from netpulse.core.database import Base, async_session, engine
from netpulse.core.exceptions import register_exception_handlers
from netpulse.core.logging_config import configure_logging
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to ensure SQLAlchemy table registration)
from netpulse.models import Host, HostTest, Measurement, Measurement15Min, MeasurementHourly, Setting  # noqa: F401
from netpulse.routers import scheduler as scheduler_router
from netpulse.services.settings_store import SettingsService
from netpulse.tasks.scheduler import ProbeScheduler

logger = logging.getLogger(__name__)


def build_scheduler(session_factory=async_session) -> ProbeScheduler:
    """按进程配置构造调度器。"""
    return ProbeScheduler(
        session_factory,
        check_interval=app_settings.check_interval_seconds,
        aggregation_hour=app_settings.aggregation_hour,
        max_concurrent=app_settings.max_concurrent_probes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    启动：日志、建表、默认设置、调度器；关闭：停止调度器并释放连接池。
    """
    configure_logging(
        level=app_settings.log_level,
        log_dir=app_settings.log_dir,
        rotation_period=app_settings.log_rotation_period,
        retention_count=app_settings.log_retention_count,
    )

    # 自动创建数据库表结构 (Automatically create database table structure)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # 写入缺失的默认运行期设置，不覆盖已有值 (Persist missing default settings)
    async with async_session() as db:
        created = await SettingsService(db).ensure_defaults()
        if created:
            logger.info("Initialized %d default settings", created)

    scheduler = build_scheduler()
    app.state.scheduler = scheduler
    if app_settings.scheduler_autostart:
        await scheduler.start()

    yield

    # 关闭阶段 (Shutdown Phase)
    await scheduler.stop()
    await engine.dispose()


# 创建 FastAPI 应用实例 (Create FastAPI application instance)
app = FastAPI(
    title="NetPulse",
    description="Network reachability and latency monitoring | 网络可达性与延迟监测",
    version=__version__,
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

app.include_router(scheduler_router.router)  # 调度器触发接口 (Scheduler triggers)


@app.get("/health")
@app.get("/api/v1/health")
async def health():
    """
    健康检查接口 (Health Check Endpoint)

    检查数据库连通性与调度器运行状态。调度器未运行时状态为 degraded。

    Returns:
        dict: 各组件状态和时间戳
    """
    checks = {"api": "ok"}

    # 数据库连通性检查 (Database connectivity check)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        checks["database"] = "error"

    scheduler = getattr(app.state, "scheduler", None)
    checks["scheduler"] = "ok" if scheduler is not None and scheduler.is_running() else "stopped"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
