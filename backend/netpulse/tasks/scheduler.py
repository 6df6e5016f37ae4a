"""
探测调度器 (Probe Scheduler)

每个测试的状态只由 next_due 表示：为空表示从未运行，未来时间表示等待中，
不晚于当前时间表示已到期。调度器包含两个独立的后台循环：

- 到期检查循环：每 10 秒选出所有到期测试，经离群守卫执行，并按主机随机度重新计算 next_due；
- 汇总循环：每日本地时间 2:00 执行一次汇总，失败只记录日志。

同一轮内的探测并发执行（受信号量限制），同一个测试同一时刻最多运行一次。
单个测试失败不影响同轮其他测试，单轮失败不影响后续轮次。

Drives scheduled probing: a fixed-cadence due-check tick and an independent
daily aggregation trigger. Probes within a tick run concurrently under a
semaphore; a test already in flight is skipped rather than run twice.
"""
import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from netpulse.core.exceptions import NotFoundError, UnknownProtocolError
from netpulse.core.timeutil import seconds_until_daily, utcnow
from netpulse.probes.guard import OutlierGuard
from netpulse.probes.models import OutlierConfig, ProbeConfig, TestRunResult
from netpulse.probes.registry import ProbeRegistry
from netpulse.services import repository
from netpulse.services.aggregator import AggregationReport, AggregationService
from netpulse.services.settings_store import SettingsService

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 10  # 到期检查间隔（秒）
FIRST_TICK_DELAY_SECONDS = 5  # 启动后首次检查的延迟
AGGREGATION_HOUR = 2  # 每日汇总时间（本地时间 2:00）
MAX_CONCURRENT_PROBES = 8


def calculate_next_due(
    now: datetime,
    base_interval: int,
    randomness_percent: Optional[int],
    rng: Optional[random.Random] = None,
) -> datetime:
    """now + 基础间隔 + [-v, +v] 内的均匀随机偏移，v = 基础间隔 * 随机度 / 100。"""
    rng = rng or random
    variation = base_interval * (randomness_percent or 0) / 100.0
    offset = rng.uniform(-variation, variation) if variation else 0.0
    return now + timedelta(seconds=base_interval + offset)


class _RunContext:
    """一轮执行共用的运行期设置快照。"""

    def __init__(self, probe_config: ProbeConfig, outlier_config: OutlierConfig, interval: int):
        self.probe_config = probe_config
        self.outlier_config = outlier_config
        self.interval = interval


class ProbeScheduler:
    """探测调度器，生命周期由应用 lifespan 或 CLI 管理。"""

    def __init__(
        self,
        session_factory,
        check_interval: int = CHECK_INTERVAL_SECONDS,
        aggregation_hour: int = AGGREGATION_HOUR,
        max_concurrent: int = MAX_CONCURRENT_PROBES,
        registry: Optional[ProbeRegistry] = None,
        guard: Optional[OutlierGuard] = None,
        rng: Optional[random.Random] = None,
    ):
        self._session_factory = session_factory
        self.check_interval = check_interval
        self.aggregation_hour = aggregation_hour
        self.guard = guard or OutlierGuard(session_factory, registry)
        self._rng = rng or random.Random()
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self._in_flight: set[int] = set()
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []

    # ------------------------------------------------------------------
    # 生命周期 (Lifecycle)
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop_event = asyncio.Event()

        try:
            await self.initialize_schedules()
        except Exception as e:
            # 存储暂不可用时，后续每轮会把 next_due 为空的测试当作到期
            logger.error(f"Failed to initialize test schedules: {e}", exc_info=True)

        self._tasks = [
            asyncio.create_task(self._tick_loop(), name="netpulse-tick"),
            asyncio.create_task(self._aggregation_loop(), name="netpulse-aggregation"),
        ]
        logger.info("Scheduler started")

    async def stop(self) -> None:
        """停止调度：等待当前这一轮已派发的探测完成后退出，不强制取消。"""
        if not self._running:
            return
        logger.info("Stopping scheduler...")
        self._stop_event.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._running = False
        logger.info("Scheduler stopped")

    async def _wait(self, seconds: float) -> bool:
        """等待指定秒数，期间收到停止信号返回 True。"""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(0.0, seconds))
            return True
        except asyncio.TimeoutError:
            return False

    async def _tick_loop(self) -> None:
        logger.info(f"Checking for due tests every {self.check_interval}s")
        if await self._wait(min(FIRST_TICK_DELAY_SECONDS, self.check_interval)):
            return
        while not self._stop_event.is_set():
            try:
                await self.check_and_run_due_tests()
            except Exception as e:
                logger.error(f"Error running tests: {e}", exc_info=True)
            if await self._wait(self.check_interval):
                break

    async def _aggregation_loop(self) -> None:
        logger.info(f"Aggregation scheduled daily at {self.aggregation_hour}:00")
        while not self._stop_event.is_set():
            wait_seconds = seconds_until_daily(self.aggregation_hour)
            logger.debug(f"Next aggregation in {wait_seconds:.0f} seconds")
            if await self._wait(wait_seconds):
                break
            try:
                await self.run_aggregation_now()
            except Exception as e:
                logger.error(f"Error running aggregation: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # 调度操作 (Scheduling Operations)
    # ------------------------------------------------------------------

    async def _load_context(self) -> _RunContext:
        async with self._session_factory() as db:
            store = SettingsService(db)
            return _RunContext(
                probe_config=await store.probe_config(),
                outlier_config=await store.outlier_config(),
                interval=await store.test_interval(),
            )

    async def initialize_schedules(self) -> int:
        """为从未运行的启用测试分配 [now, now + 基础间隔] 内的随机首次执行时间，错开启动负载。"""
        async with self._session_factory() as db:
            interval = await SettingsService(db).test_interval()
            tests = await repository.list_enabled_tests(db)
            now = utcnow()
            initialized = 0
            for test in tests:
                if test.next_due is not None:
                    continue
                delay = self._rng.uniform(0, interval)
                await repository.set_next_due(db, test.id, now + timedelta(seconds=delay))
                initialized += 1
            await db.commit()

        logger.info(f"Initialized test schedules for {initialized} of {len(tests)} tests")
        return initialized

    async def check_and_run_due_tests(self) -> List[TestRunResult]:
        """执行一轮到期检查。"""
        async with self._session_factory() as db:
            due = await repository.list_due_tests(db, utcnow())
        if not due:
            return []

        context = await self._load_context()
        results = await self._run_batch(due, context)
        for result in results:
            self._log_result(result)
        return results

    async def run_tests_for_host(self, host_id: int) -> List[TestRunResult]:
        """立即执行某台主机的全部启用测试，next_due 与常规调度一样推进。"""
        async with self._session_factory() as db:
            host = await repository.get_host(db, host_id)
            if host is None:
                raise NotFoundError("主机不存在 (Host not found)", detail=f"host_id={host_id}")
            if not host.enabled:
                return []
            tests = await repository.list_enabled_tests_for_host(db, host_id)

        context = await self._load_context()
        results = await self._run_batch(tests, context)
        for result in results:
            self._log_result(result)
        return results

    async def run_all_now(self) -> List[TestRunResult]:
        """手动全量执行所有启用主机的启用测试。"""
        async with self._session_factory() as db:
            tests = await repository.list_enabled_tests(db)

        context = await self._load_context()
        results = await self._run_batch(tests, context)
        logger.info(f"Manual run: tested {len(results)} tests")
        for result in results:
            self._log_result(result, indent=True)
        return results

    async def run_aggregation_now(self) -> AggregationReport:
        async with self._session_factory() as db:
            return await AggregationService(db).run()

    # ------------------------------------------------------------------
    # 单个测试执行 (Per-test Execution)
    # ------------------------------------------------------------------

    async def _run_batch(self, tests: Iterable, context: _RunContext) -> List[TestRunResult]:
        results = await asyncio.gather(*(self._run_one(test, context) for test in tests))
        return [r for r in results if r is not None]

    async def _run_one(self, test, context: _RunContext) -> Optional[TestRunResult]:
        """执行单个测试并推进 next_due。任何异常都只影响这一个测试。"""
        if test.id in self._in_flight:
            logger.debug(f"Test {test.id} still running, skipped")
            return None
        self._in_flight.add(test.id)
        try:
            async with self._semaphore:
                return await self._dispatch(test, context)
        finally:
            await self._advance(test, context.interval)
            self._in_flight.discard(test.id)

    async def _dispatch(self, test, context: _RunContext) -> Optional[TestRunResult]:
        host = test.host
        try:
            outcome = await self.guard.guarded_run(test, context.probe_config, context.outlier_config)
        except UnknownProtocolError as e:
            logger.error(f"{host.name}: {e} (test {test.id})")
            return None
        except Exception as e:
            logger.error(f"Error running test {test.id} for {host.name}: {e}", exc_info=True)
            return None
        return TestRunResult(
            host_id=host.id,
            host_name=host.name,
            test_id=test.id,
            test_type=test.test_type,
            label=test.describe(),
            outcome=outcome,
        )

    async def _advance(self, test, interval: int) -> None:
        next_due = calculate_next_due(utcnow(), interval, test.host.randomness_percent, self._rng)
        try:
            async with self._session_factory() as db:
                await repository.set_next_due(db, test.id, next_due)
                await db.commit()
        except Exception as e:
            logger.error(f"Failed to update next_due for test {test.id}: {e}", exc_info=True)

    def _log_result(self, result: TestRunResult, indent: bool = False) -> None:
        prefix = "  " if indent else ""
        label = result.label or result.test_type.upper()
        logger.info(f"{prefix}{result.host_name} [{label}]: {result.outcome.summary()}")
