"""离群守卫测试：判定规则与落库行为。"""
import pytest
from sqlalchemy import func, select

from netpulse.models import Measurement
from netpulse.probes.guard import OutlierGuard, is_outlier, retest_confirms
from netpulse.probes.latency import mean
from netpulse.probes.models import OutlierConfig, ProbeConfig, ProbeOutcome, RunMode


class TestIsOutlier:
    def test_exactly_multiplier_is_not_outlier(self):
        config = OutlierConfig(multiplier=5, min_threshold_ms=0)
        baseline = [20.0] * 10
        assert is_outlier(100.0, baseline, config) is False
        assert is_outlier(100.01, baseline, config) is True

    def test_small_baseline_never_flags(self):
        config = OutlierConfig(multiplier=2, min_threshold_ms=0)
        assert is_outlier(100000.0, [1.0, 1.0, 1.0, 1.0], config) is False

    def test_uses_median_not_mean(self):
        config = OutlierConfig(multiplier=5, min_threshold_ms=0)
        baseline = [10, 10, 10, 10, 10, 10, 10, 500, 500]
        assert is_outlier(60, baseline, config) is True
        assert not 60 > mean(baseline) * 5

    def test_both_conditions_required(self):
        config = OutlierConfig(multiplier=10, min_threshold_ms=500)
        # 50 倍于中位数，但绝对差值只有 49ms
        assert is_outlier(50.0, [1.0] * 10, config) is False
        # 差值超过 500ms，但不到 10 倍
        assert is_outlier(900.0, [200.0] * 10, config) is False
        assert is_outlier(2600.0, [200.0] * 10, config) is True


class TestRetestConfirms:
    def test_close_retest_confirms(self):
        assert retest_confirms(1000, ProbeOutcome(reachable=True, latency_ms=900), "ping") is True

    def test_far_retest_does_not_confirm(self):
        assert retest_confirms(1000, ProbeOutcome(reachable=True, latency_ms=100), "ping") is False

    def test_unreachable_retest_confirms(self):
        assert retest_confirms(1000, ProbeOutcome(reachable=False, error="Host unreachable"), "ping") is True

    def test_jitter_compares_jitter(self):
        retest = ProbeOutcome(reachable=True, latency_ms=5000.0, jitter_ms=90.0)
        assert retest_confirms(100.0, retest, "jitter") is True
        assert retest_confirms(1000.0, retest, "jitter") is False


async def _stored(session_factory, host_id):
    async with session_factory() as db:
        result = await db.execute(
            select(Measurement)
            .where(Measurement.host_id == host_id)
            .order_by(Measurement.tested_at.desc(), Measurement.id.desc())
        )
        return list(result.scalars().all())


class TestGuardedRun:
    @pytest.mark.asyncio
    async def test_spike_replaced_by_retest(self, session_factory, make_host, make_test, add_measurements, scripted_registry):
        host = await make_host()
        test = await make_test(host, "ping")
        await add_measurements(host, "ping", [20.0] * 10)
        registry = scripted_registry(
            ProbeOutcome(reachable=True, latency_ms=1000.0),
            ProbeOutcome(reachable=True, latency_ms=25.0),
        )

        outcome = await OutlierGuard(session_factory, registry).guarded_run(test, ProbeConfig(), OutlierConfig())

        assert outcome.latency_ms == 25.0
        assert len(registry.calls) == 2
        rows = await _stored(session_factory, host.id)
        assert len(rows) == 11
        assert rows[0].latency_ms == 25.0

    @pytest.mark.asyncio
    async def test_confirmed_spike_kept(self, session_factory, make_host, make_test, add_measurements, scripted_registry):
        host = await make_host()
        test = await make_test(host, "ping")
        await add_measurements(host, "ping", [20.0] * 10)
        registry = scripted_registry(
            ProbeOutcome(reachable=True, latency_ms=1000.0),
            ProbeOutcome(reachable=True, latency_ms=900.0),
        )

        outcome = await OutlierGuard(session_factory, registry).guarded_run(test, ProbeConfig(), OutlierConfig())

        assert outcome.latency_ms == 1000.0
        rows = await _stored(session_factory, host.id)
        assert len(rows) == 11
        assert rows[0].latency_ms == 1000.0

    @pytest.mark.asyncio
    async def test_unreachable_retest_keeps_original(self, session_factory, make_host, make_test, add_measurements, scripted_registry):
        host = await make_host()
        test = await make_test(host, "ping")
        await add_measurements(host, "ping", [20.0] * 10)
        registry = scripted_registry(
            ProbeOutcome(reachable=True, latency_ms=1000.0),
            ProbeOutcome(reachable=False, error="Host unreachable"),
        )

        outcome = await OutlierGuard(session_factory, registry).guarded_run(test, ProbeConfig(), OutlierConfig())

        assert outcome.reachable is True
        assert outcome.latency_ms == 1000.0
        assert len(await _stored(session_factory, host.id)) == 11

    @pytest.mark.asyncio
    async def test_disabled_detection_skips_retest(self, session_factory, make_host, make_test, add_measurements, scripted_registry):
        host = await make_host()
        test = await make_test(host, "ping")
        await add_measurements(host, "ping", [20.0] * 10)
        registry = scripted_registry(ProbeOutcome(reachable=True, latency_ms=1000.0))

        await OutlierGuard(session_factory, registry).guarded_run(
            test, ProbeConfig(), OutlierConfig(enabled=False)
        )

        assert len(registry.calls) == 1
        assert (await _stored(session_factory, host.id))[0].latency_ms == 1000.0

    @pytest.mark.asyncio
    async def test_unreachable_candidate_written_as_is(self, session_factory, make_host, make_test, add_measurements, scripted_registry):
        host = await make_host()
        test = await make_test(host, "tcp", port=22)
        await add_measurements(host, "tcp", [20.0] * 10)
        registry = scripted_registry(ProbeOutcome(reachable=False, error="Connection refused"))

        await OutlierGuard(session_factory, registry).guarded_run(test, ProbeConfig(), OutlierConfig())

        assert len(registry.calls) == 1
        latest = (await _stored(session_factory, host.id))[0]
        assert latest.reachable is False
        assert latest.error_message == "Connection refused"

    @pytest.mark.asyncio
    async def test_baseline_is_per_host_and_type(self, session_factory, make_host, make_test, add_measurements, scripted_registry):
        host = await make_host()
        test = await make_test(host, "ping")
        # 只有其他类型的历史数据，ping 基线为空
        await add_measurements(host, "tcp", [20.0] * 10)
        registry = scripted_registry(ProbeOutcome(reachable=True, latency_ms=1000.0))

        await OutlierGuard(session_factory, registry).guarded_run(test, ProbeConfig(), OutlierConfig())
        assert len(registry.calls) == 1

    @pytest.mark.asyncio
    async def test_validate_mode_writes_nothing(self, session_factory, make_host, make_test, add_measurements, scripted_registry):
        host = await make_host()
        test = await make_test(host, "ping")
        await add_measurements(host, "ping", [20.0] * 10)
        registry = scripted_registry(ProbeOutcome(reachable=True, latency_ms=1000.0))

        outcome = await OutlierGuard(session_factory, registry).guarded_run(
            test, ProbeConfig(), OutlierConfig(), mode=RunMode.VALIDATE
        )

        assert outcome.latency_ms == 1000.0
        assert len(registry.calls) == 1
        async with session_factory() as db:
            count = await db.scalar(select(func.count()).select_from(Measurement))
        assert count == 10
