"""
日志初始化模块 (Logging Setup Module)

控制台输出 + 可选的按小时/按天轮转文件日志，保留指定数量的历史文件。

Console output plus an optional hourly/daily rotating log file that keeps a
bounded number of rotated files.
"""
import logging
import os
from logging.handlers import TimedRotatingFileHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

ROTATION_WHEN = {"hourly": "H", "daily": "D"}
DEFAULT_ROTATION = "hourly"
DEFAULT_RETENTION_COUNT = 12
MAX_RETENTION_COUNT = 168  # 一周的小时数 (one week of hourly files)


def _retention(count: int | None) -> int:
    if not count or count <= 0:
        return DEFAULT_RETENTION_COUNT
    return min(count, MAX_RETENTION_COUNT)


def configure_logging(
    level: str | int = "INFO",
    log_dir: str = "",
    rotation_period: str = DEFAULT_ROTATION,
    retention_count: int | None = DEFAULT_RETENTION_COUNT,
) -> logging.Logger:
    """配置根日志器，重复调用时替换之前安装的处理器。

    Args:
        level: 日志级别名称或数值
        log_dir: 日志目录，为空时只输出到控制台
        rotation_period: hourly / daily，未知值按 hourly 处理
        retention_count: 保留的轮转文件数量，限制在 1..168

    Returns:
        根日志器
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_netpulse", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console._netpulse = True
    root.addHandler(console)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        when = ROTATION_WHEN.get(rotation_period, ROTATION_WHEN[DEFAULT_ROTATION])
        file_handler = TimedRotatingFileHandler(
            os.path.join(log_dir, "netpulse.log"),
            when=when,
            backupCount=_retention(retention_count),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler._netpulse = True
        root.addHandler(file_handler)

    root.setLevel(level)
    return root
