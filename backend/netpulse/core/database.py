"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话管理。
调度器、离群检测与汇总服务均通过会话工厂获取独立会话，便于并发探测各自写入。

Creates the database engine and session management based on SQLAlchemy 2.0
async mode. The scheduler, outlier guard and aggregator each obtain their own
sessions from the session factory so concurrent probes write independently.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from netpulse.core.config import settings

# 创建异步数据库引擎 (Create Async Database Engine)
engine = create_async_engine(
    settings.database_url,
    echo=False  # 关闭 SQL 日志输出 (Disable SQL logging)
)

# 创建异步会话工厂 (Create Async Session Factory)
# 提交后不过期对象，探测任务在会话关闭后仍需读取 Host/Test 属性
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False  # Don't expire objects after commit
)


class Base(DeclarativeBase):
    """
    ORM 模型基类 (ORM Model Base Class)

    所有数据模型都继承此类。
    All data models inherit from this class.
    """
    pass
