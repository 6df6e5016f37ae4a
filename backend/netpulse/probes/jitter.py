"""
抖动探测：固定 5 次 ping，按 IPDV 计算抖动，平均延迟作为副产品一并报告。
"""
from __future__ import annotations

from .latency import ipdv_jitter, mean
from .models import ProbeConfig, ProbeOutcome
from .ping import execute_ping

JITTER_SAMPLE_COUNT = 5


class JitterProbe:
    test_type = "jitter"

    async def execute(self, test, config: ProbeConfig) -> ProbeOutcome:
        latencies = await execute_ping(
            test.host.address, JITTER_SAMPLE_COUNT, config.timeout_for(self.test_type)
        )
        if len(latencies) < 2:
            return ProbeOutcome.failure("Insufficient ping responses for jitter calculation")

        return ProbeOutcome(
            reachable=True,
            latency_ms=round(mean(latencies), 3),
            jitter_ms=round(ipdv_jitter(latencies), 3),
        )
