"""
汇总桶模型 (Aggregate Bucket Models)

两级汇总：15 分钟桶由原始测量汇总而来，小时桶由 15 分钟桶加权汇总而来。
每级按 (host_id, test_type, period_start) 唯一，重复执行汇总不会产生重复桶。

Two rollup tiers: 15-minute buckets fold raw measurements, hourly buckets fold
15-minute buckets with test_count weighting. Each tier is unique per
(host_id, test_type, period_start), so re-running aggregation never duplicates.
"""
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from netpulse.core.database import Base


class AggregateColumns:
    """两级汇总表共用的字段。"""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    host_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("hosts.id", ondelete="CASCADE"), index=True, nullable=False
    )
    test_type: Mapped[str] = mapped_column(String(16), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    period_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    test_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_jitter_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Measurement15Min(AggregateColumns, Base):
    """15 分钟汇总表 (15-minute Aggregate Table)"""
    __tablename__ = "measurements_15min"
    __table_args__ = (
        UniqueConstraint("host_id", "test_type", "period_start", name="uq_measurements_15min_period"),
    )


class MeasurementHourly(AggregateColumns, Base):
    """小时汇总表 (Hourly Aggregate Table)"""
    __tablename__ = "measurements_hourly"
    __table_args__ = (
        UniqueConstraint("host_id", "test_type", "period_start", name="uq_measurements_hourly_period"),
    )
