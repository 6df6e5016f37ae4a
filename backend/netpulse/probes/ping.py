"""
ICMP ping 探测，调用系统 ping 命令（无需 root 权限）。

目标地址作为独立参数传给 create_subprocess_exec，不经过 shell，无法注入命令。
"""
from __future__ import annotations

import asyncio
import logging
import platform
import re

from .models import MAX_TIMEOUT_SECONDS, ProbeConfig, ProbeOutcome

logger = logging.getLogger(__name__)

# Linux/macOS: "time=12.3 ms"；Windows: "time=12ms" / "time<1ms"
LATENCY_PATTERN = re.compile(r"time\s*([=<])\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)
PING_INTERVAL_SECONDS = 0.2


def parse_ping_latencies(output: str) -> list[float]:
    """从 ping 输出中按顺序提取每个回包的 RTT（毫秒）。

    Windows 的 "time<1ms" 按阈值一半估算（0.5ms）。
    """
    latencies = []
    for op, value in LATENCY_PATTERN.findall(output or ""):
        rtt = float(value)
        latencies.append(rtt / 2.0 if op == "<" else rtt)
    return latencies


def reply_wait_seconds(count: int, timeout: int) -> int:
    """单个回包的等待时间，保证整组发送在 timeout 内结束（至少 1 秒）。"""
    return max(1, int(timeout - PING_INTERVAL_SECONDS * (count - 1)))


def build_ping_command(address: str, count: int, timeout: int, system: str | None = None) -> list[str]:
    system = system or platform.system()
    if system == "Windows":
        return ["ping", "-n", str(count), "-w", str(timeout * 1000), address]
    if system == "Linux":
        cmd = ["ping", "-c", str(count), "-W", str(reply_wait_seconds(count, timeout))]
    else:
        # macOS/BSD 的 -W 单位是毫秒，用 -t 限制整体时长
        cmd = ["ping", "-c", str(count), "-t", str(timeout)]
    if count > 1:
        cmd += ["-i", str(PING_INTERVAL_SECONDS)]
    cmd.append(address)
    return cmd


async def execute_ping(address: str, count: int, timeout: int) -> list[float]:
    """执行系统 ping，返回成功回包的延迟列表；超时或无回包返回空列表。

    整体耗时不超过 MAX_TIMEOUT_SECONDS。
    """
    cmd = build_ping_command(address, count, timeout)
    deadline = min(timeout + count * PING_INTERVAL_SECONDS + 1, MAX_TIMEOUT_SECONDS)
    logger.debug("Executing ping: %s", " ".join(cmd))

    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=deadline)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.communicate()
        logger.debug("Ping timed out: address=%s, deadline=%.1fs", address, deadline)
        return []

    output = stdout.decode(errors="replace")
    latencies = parse_ping_latencies(output)
    if proc.returncode != 0 and not latencies:
        logger.debug("Ping failed: address=%s, returncode=%s", address, proc.returncode)
    return latencies


class PingProbe:
    """单次 ICMP echo，只报告延迟，不计算抖动。"""
    test_type = "ping"

    async def execute(self, test, config: ProbeConfig) -> ProbeOutcome:
        latencies = await execute_ping(test.host.address, 1, config.timeout_for(self.test_type))
        if not latencies:
            return ProbeOutcome.failure("Host unreachable")
        return ProbeOutcome(reachable=True, latency_ms=round(latencies[0], 3))
