"""
离群守卫 (Outlier Guard)

所有需要落库的探测都经过这里。流程：

1. 探测一次得到候选结果；
2. 检测关闭、候选不可达、候选没有指标值、或同 (主机, 类型) 的历史成功测量少于 5 条时，直接写入；
3. 否则取最近 50 条历史测量指标的中位数（不用均值，均值会被历史离群值拉高）；
4. 同时满足 `候选 - 中位数 > 最小差值` 与 `候选 > 中位数 * 倍数` 才判定为离群；
5. 离群时以 VALIDATE 模式复测一次（不落库）；
6. 复测不可达或复测值在原值 50% 以内，原值被确认并写入；否则用复测结果替换原值写入。

无论是否复测，每次运行恰好写入一条测量。

Wraps every persisted probe run. A spike is retested once without persistence;
a single transient spike is replaced by the retest, a confirmed one is kept.
Exactly one Measurement is written per run.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from netpulse.core.timeutil import utcnow
from netpulse.services import repository

from .latency import median
from .models import OutlierConfig, ProbeConfig, ProbeOutcome, RunMode
from .registry import ProbeRegistry

logger = logging.getLogger(__name__)

BASELINE_SIZE = 50
MIN_BASELINE_SAMPLES = 5
RETEST_TOLERANCE = 0.5


def is_outlier(value: float, baseline: Sequence[float], config: OutlierConfig) -> bool:
    """按中位数判定离群，基线不足 5 条时永不离群。"""
    if len(baseline) < MIN_BASELINE_SAMPLES:
        return False
    center = median(baseline)
    return (value - center) > config.min_threshold_ms and value > center * config.multiplier


def retest_confirms(original_value: float, retest: ProbeOutcome, test_type: str) -> bool:
    """复测不可达、没有指标值，或指标在原值 50% 以内时，原值被确认。"""
    if not retest.reachable:
        return True
    retest_value = retest.metric(test_type)
    if retest_value is None:
        return True
    return abs(retest_value - original_value) <= original_value * RETEST_TOLERANCE


class OutlierGuard:
    """执行探测、做离群检测并写入唯一一条测量。"""

    def __init__(self, session_factory, registry: Optional[ProbeRegistry] = None) -> None:
        self._session_factory = session_factory
        self.registry = registry or ProbeRegistry()

    async def guarded_run(
        self,
        test,
        probe_config: ProbeConfig,
        outlier_config: OutlierConfig,
        mode: RunMode = RunMode.RECORD,
    ) -> ProbeOutcome:
        if mode is RunMode.VALIDATE:
            return await self.registry.execute(test, probe_config)

        tested_at = utcnow()
        candidate = await self.registry.execute(test, probe_config)
        outcome = await self._screen(test, candidate, probe_config, outlier_config)

        async with self._session_factory() as db:
            await repository.insert_measurement(db, test, outcome, tested_at=tested_at)
            await db.commit()
        return outcome

    async def _screen(
        self,
        test,
        candidate: ProbeOutcome,
        probe_config: ProbeConfig,
        outlier_config: OutlierConfig,
    ) -> ProbeOutcome:
        """返回最终要写入的结果。"""
        if not outlier_config.enabled or not candidate.reachable:
            return candidate
        value = candidate.metric(test.test_type)
        if value is None:
            return candidate

        async with self._session_factory() as db:
            baseline = await repository.recent_metric_values(
                db, test.host_id, test.test_type, BASELINE_SIZE
            )
        if not is_outlier(value, baseline, outlier_config):
            return candidate

        logger.info(
            "[OutlierGuard] Outlier on test %s (%s): %.3fms vs median %.3fms over %d samples, retesting",
            test.id, test.test_type, value, median(baseline), len(baseline),
        )
        retest = await self.guarded_run(test, probe_config, outlier_config, mode=RunMode.VALIDATE)

        if retest_confirms(value, retest, test.test_type):
            logger.info(
                "[OutlierGuard] Retest confirmed test %s: original %.3fms kept (retest %s)",
                test.id, value, retest.summary(),
            )
            return candidate

        logger.info(
            "[OutlierGuard] Retest did not confirm test %s: %.3fms replaced by %s",
            test.id, value, retest.summary(),
        )
        return retest
