"""
测量汇总服务 (Measurement Aggregation Service)

每日执行，按严格顺序把原始测量逐级汇总并清理过期数据：

1. 原始测量 -> 15 分钟桶（早于原始保留期）
2. 15 分钟桶 -> 小时桶（早于 15 分钟保留期，按 test_count 加权）
3. 清理原始测量（仅在第 1 步成功后执行）
4. 清理 15 分钟桶（仅在第 2 步成功后执行）
5. 清理小时桶（保留天数为正时）

截止时间向下对齐到该级窗口边界，跨越截止时间的窗口不会被部分汇总；对应的清理
使用同一个对齐后的截止时间。已存在的桶会被跳过，重复执行不会产生重复数据。

Rolls raw measurements up into 15-minute and hourly buckets and deletes expired
rows. Every step is idempotent; a failed step is logged and rolled back, and
the cleanup that depends on it is skipped so no unaggregated data is lost.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from netpulse.core.timeutil import floor_to_hour, floor_to_minutes, utcnow
from netpulse.models.aggregate import Measurement15Min, MeasurementHourly
from netpulse.models.measurement import Measurement
from netpulse.services.settings_store import SettingsService

logger = logging.getLogger(__name__)

FIFTEEN_MINUTES = timedelta(minutes=15)
ONE_HOUR = timedelta(hours=1)


class AggregationReport(BaseModel):
    """一次汇总运行的各步统计。"""
    created_15min: int = 0
    created_hourly: int = 0
    deleted_raw: int = 0
    deleted_15min: int = 0
    deleted_hourly: int = 0
    failed_steps: List[str] = Field(default_factory=list)


def _round(value: Optional[float]) -> Optional[float]:
    return round(value, 3) if value is not None else None


def _weighted_mean(pairs: Iterable[Tuple[Optional[float], int]]) -> Optional[float]:
    """按权重求均值，忽略值为空或权重非正的项。"""
    total = 0.0
    weight = 0
    for value, count in pairs:
        if value is None or not count or count <= 0:
            continue
        total += value * count
        weight += count
    return total / weight if weight else None


def raw_cutoff(days: int, now: datetime) -> datetime:
    return floor_to_minutes(now - timedelta(days=days), 15)


def hourly_cutoff(days: int, now: datetime) -> datetime:
    return floor_to_hour(now - timedelta(days=days))


class AggregationService:
    """汇总服务类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _pairs(self, model, column, cutoff: datetime) -> List[Tuple[int, str]]:
        """截止时间之前存在数据的 (host_id, test_type) 组合。"""
        result = await self.db.execute(
            select(model.host_id, model.test_type)
            .where(column < cutoff)
            .distinct()
            .order_by(model.host_id, model.test_type)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def _existing_periods(self, model, host_id: int, test_type: str, cutoff: datetime) -> set:
        result = await self.db.execute(
            select(model.period_start).where(
                model.host_id == host_id,
                model.test_type == test_type,
                model.period_start < cutoff,
            )
        )
        return set(result.scalars().all())

    async def aggregate_to_15min(self, days: int, now: Optional[datetime] = None) -> int:
        """把早于 `days` 天的原始测量汇总为 15 分钟桶，返回新建桶数量。"""
        cutoff = raw_cutoff(days, now or utcnow())
        created = 0

        for host_id, test_type in await self._pairs(Measurement, Measurement.tested_at, cutoff):
            existing = await self._existing_periods(Measurement15Min, host_id, test_type, cutoff)
            result = await self.db.execute(
                select(
                    Measurement.tested_at,
                    Measurement.reachable,
                    Measurement.latency_ms,
                    Measurement.jitter_ms,
                )
                .where(
                    Measurement.host_id == host_id,
                    Measurement.test_type == test_type,
                    Measurement.tested_at < cutoff,
                )
                .order_by(Measurement.tested_at)
            )
            rows = result.all()

            grouped: Dict[datetime, list] = defaultdict(list)
            for row in rows:
                grouped[floor_to_minutes(row.tested_at, 15)].append(row)

            for period_start, group in sorted(grouped.items()):
                if period_start in existing:
                    continue
                successful = [r for r in group if r.reachable]
                latencies = [r.latency_ms for r in successful if r.latency_ms is not None]
                jitters = [r.jitter_ms for r in successful if r.jitter_ms is not None]
                self.db.add(Measurement15Min(
                    host_id=host_id,
                    test_type=test_type,
                    period_start=period_start,
                    period_end=period_start + FIFTEEN_MINUTES,
                    test_count=len(group),
                    success_count=len(successful),
                    avg_latency_ms=_round(sum(latencies) / len(latencies)) if latencies else None,
                    min_latency_ms=_round(min(latencies)) if latencies else None,
                    max_latency_ms=_round(max(latencies)) if latencies else None,
                    avg_jitter_ms=_round(sum(jitters) / len(jitters)) if jitters else None,
                ))
                created += 1

            logger.info(
                "[Aggregator] Aggregated %d measurements to 15-min for host %s (%s)",
                len(rows), host_id, test_type,
            )

        await self.db.commit()
        return created

    async def aggregate_to_hourly(self, days: int, now: Optional[datetime] = None) -> int:
        """把早于 `days` 天的 15 分钟桶按 test_count 加权汇总为小时桶，返回新建桶数量。"""
        cutoff = hourly_cutoff(days, now or utcnow())
        created = 0

        pairs = await self._pairs(Measurement15Min, Measurement15Min.period_start, cutoff)
        for host_id, test_type in pairs:
            existing = await self._existing_periods(MeasurementHourly, host_id, test_type, cutoff)
            result = await self.db.execute(
                select(Measurement15Min)
                .where(
                    Measurement15Min.host_id == host_id,
                    Measurement15Min.test_type == test_type,
                    Measurement15Min.period_start < cutoff,
                )
                .order_by(Measurement15Min.period_start)
            )
            buckets = list(result.scalars().all())

            grouped: Dict[datetime, List[Measurement15Min]] = defaultdict(list)
            for bucket in buckets:
                grouped[floor_to_hour(bucket.period_start)].append(bucket)

            for period_start, group in sorted(grouped.items()):
                if period_start in existing:
                    continue
                mins = [b.min_latency_ms for b in group if b.min_latency_ms is not None]
                maxes = [b.max_latency_ms for b in group if b.max_latency_ms is not None]
                # 均值按各桶 test_count 加权，不是对已平均值再求平均
                self.db.add(MeasurementHourly(
                    host_id=host_id,
                    test_type=test_type,
                    period_start=period_start,
                    period_end=period_start + ONE_HOUR,
                    test_count=sum(b.test_count for b in group),
                    success_count=sum(b.success_count for b in group),
                    avg_latency_ms=_round(_weighted_mean((b.avg_latency_ms, b.test_count) for b in group)),
                    min_latency_ms=_round(min(mins)) if mins else None,
                    max_latency_ms=_round(max(maxes)) if maxes else None,
                    avg_jitter_ms=_round(_weighted_mean((b.avg_jitter_ms, b.test_count) for b in group)),
                ))
                created += 1

            logger.info(
                "[Aggregator] Aggregated %d 15-min records to hourly for host %s (%s)",
                len(buckets), host_id, test_type,
            )

        await self.db.commit()
        return created

    async def cleanup_raw(self, days: int, now: Optional[datetime] = None) -> int:
        cutoff = raw_cutoff(days, now or utcnow())
        result = await self.db.execute(delete(Measurement).where(Measurement.tested_at < cutoff))
        await self.db.commit()
        deleted = result.rowcount or 0
        logger.info("[Aggregator] Deleted %d old raw measurements", deleted)
        return deleted

    async def cleanup_15min(self, days: int, now: Optional[datetime] = None) -> int:
        cutoff = hourly_cutoff(days, now or utcnow())
        result = await self.db.execute(
            delete(Measurement15Min).where(Measurement15Min.period_start < cutoff)
        )
        await self.db.commit()
        deleted = result.rowcount or 0
        logger.info("[Aggregator] Deleted %d old 15-min aggregates", deleted)
        return deleted

    async def cleanup_hourly(self, days: int, now: Optional[datetime] = None) -> int:
        """删除早于 `days` 天的小时桶；`days` 不为正时永久保留。"""
        if days <= 0:
            return 0
        cutoff = hourly_cutoff(days, now or utcnow())
        result = await self.db.execute(
            delete(MeasurementHourly).where(MeasurementHourly.period_start < cutoff)
        )
        await self.db.commit()
        deleted = result.rowcount or 0
        logger.info("[Aggregator] Deleted %d old hourly aggregates", deleted)
        return deleted

    async def _step(self, report: AggregationReport, name: str, coro) -> Optional[int]:
        """执行单个步骤，失败时回滚并记录，不向上抛出。"""
        try:
            return await coro
        except Exception as e:
            await self.db.rollback()
            report.failed_steps.append(name)
            logger.error(f"[Aggregator] Step {name} failed: {e}", exc_info=True)
            return None

    async def run(self, now: Optional[datetime] = None) -> AggregationReport:
        """按顺序执行全部汇总与清理步骤。"""
        now = now or utcnow()
        settings = SettingsService(self.db)
        raw_days = await settings.get_int("raw_data_retention_days")
        agg_15min_days = await settings.get_int("aggregation_15min_retention_days")
        hourly_days = await settings.get_int("aggregation_hourly_retention_days")

        logger.info("[Aggregator] Starting data aggregation...")
        report = AggregationReport()

        created_15min = await self._step(report, "aggregate_15min", self.aggregate_to_15min(raw_days, now))
        created_hourly = await self._step(report, "aggregate_hourly", self.aggregate_to_hourly(agg_15min_days, now))
        report.created_15min = created_15min or 0
        report.created_hourly = created_hourly or 0

        if created_15min is None:
            logger.warning("[Aggregator] Skipping raw cleanup, 15-min aggregation failed")
        else:
            report.deleted_raw = await self._step(report, "cleanup_raw", self.cleanup_raw(raw_days, now)) or 0

        if created_hourly is None:
            logger.warning("[Aggregator] Skipping 15-min cleanup, hourly aggregation failed")
        else:
            report.deleted_15min = await self._step(
                report, "cleanup_15min", self.cleanup_15min(agg_15min_days, now)
            ) or 0

        report.deleted_hourly = await self._step(
            report, "cleanup_hourly", self.cleanup_hourly(hourly_days, now)
        ) or 0

        logger.info(
            "[Aggregator] Aggregation complete: %s",
            report.model_dump(exclude={"failed_steps"}),
        )
        return report
