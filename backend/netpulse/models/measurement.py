"""
测量结果模型 (Measurement Model)

一次测试运行的不可变结果。只插入、不更新；由汇总服务在折叠进 15 分钟桶并超过
原始数据保留期后批量删除。

Immutable outcome of running one test once. Insert-only; bulk deleted by the
aggregator once folded into a 15-minute bucket and past raw retention.
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from netpulse.core.database import Base


class Measurement(Base):
    """原始测量表 (Raw Measurement Table)"""
    __tablename__ = "measurements"
    __table_args__ = (
        Index("ix_measurements_host_type_tested_at", "host_id", "test_type", "tested_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    host_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("hosts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    test_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reachable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)  # 延迟毫秒 (Latency in ms)
    jitter_ms: Mapped[float | None] = mapped_column(Float, nullable=True)  # IPDV 抖动毫秒 (IPDV jitter in ms)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 协议状态码，如 HTTP 状态 (Protocol status)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    tested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)  # 探测时间 (UTC)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
