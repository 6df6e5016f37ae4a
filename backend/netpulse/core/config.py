"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 NetPulse 进程级配置项，支持从 .env 文件和环境变量读取。
运行期可调整的探测参数（间隔、超时、离群检测、保留期）保存在 settings 表中，
见 netpulse.services.settings_store。

Uses Pydantic Settings to manage process-level configuration for NetPulse,
read from .env files and environment variables. Runtime-tunable probing
parameters (interval, timeouts, outlier detection, retention) live in the
settings table, see netpulse.services.settings_store.
"""
import logging

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    进程全局配置类 (Process Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。

    Field names map to same-named environment variables (case insensitive),
    with .env file loading.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "netpulse"  # 数据库名称 (Database Name)
    postgres_user: str = "netpulse"  # 数据库用户名 (Database Username)
    postgres_password: str = "netpulse_dev_password"  # 数据库密码 (Database Password)
    database_url_override: str = ""  # 完整连接串，设置后优先使用 (Full URL, wins when set)

    # 调度器配置 (Scheduler Configuration)
    check_interval_seconds: int = 10  # 到期检查周期（秒） (Due-check tick cadence)
    aggregation_hour: int = 2  # 每日汇总执行的小时（本地时间） (Daily aggregation hour, local time)
    max_concurrent_probes: int = 8  # 单次 tick 内并发探测上限 (Concurrent probes per tick)
    scheduler_autostart: bool = True  # 应用启动时自动启动调度器 (Start scheduler with the app)

    # 日志配置 (Logging Configuration)
    log_level: str = "INFO"
    log_dir: str = ""  # 为空时仅输出到控制台 (Console only when empty)
    log_rotation_period: str = "hourly"  # hourly / daily
    log_retention_count: int = 12  # 保留的日志文件数量 (Rotated files to keep)

    @property
    def database_url(self) -> str:
        """
        构造异步数据库连接 URL (Build Async Database Connection URL)

        未设置 database_url_override 时，按 PostgreSQL 参数生成 asyncpg 连接串。

        Falls back to an asyncpg connection string built from the PostgreSQL
        parts when database_url_override is not set.
        """
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}  # Pydantic 配置：自动加载 .env 文件 (Auto-load .env file)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()

if settings.check_interval_seconds <= 0:
    logger.warning(
        "CHECK_INTERVAL_SECONDS=%d 无效，已重置为 10 秒 | invalid check interval, reset to 10s",
        settings.check_interval_seconds,
    )
    settings.check_interval_seconds = 10
