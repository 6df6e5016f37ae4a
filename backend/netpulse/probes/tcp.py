"""
TCP 连接探测：在超时内完成一次非阻塞连接即为可达，延迟为建连耗时。
"""
from __future__ import annotations

import asyncio
import errno
import logging
import time

from .models import ProbeConfig, ProbeOutcome

logger = logging.getLogger(__name__)

ERRNO_MESSAGES = {
    errno.ECONNREFUSED: "Connection refused",
    errno.ENETUNREACH: "Network unreachable",
    errno.EHOSTUNREACH: "Host unreachable",
}


def classify_os_error(exc: OSError) -> str:
    if exc.errno in ERRNO_MESSAGES:
        return ERRNO_MESSAGES[exc.errno]
    # 多地址（如 IPv4 + IPv6）同时失败时 asyncio 抛出的 OSError 不带 errno
    text = str(exc)
    for code, message in ERRNO_MESSAGES.items():
        if f"[Errno {code}]" in text:
            return message
    return text or "Connection failed"


async def measure_connect(address: str, port: int, timeout: float) -> float:
    """建立并立即关闭 TCP 连接，返回耗时（毫秒）。失败时抛出原始异常。"""
    start = time.monotonic()
    _, writer = await asyncio.wait_for(asyncio.open_connection(address, port), timeout=timeout)
    elapsed_ms = (time.monotonic() - start) * 1000
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return elapsed_ms


class TcpProbe:
    test_type = "tcp"

    async def execute(self, test, config: ProbeConfig) -> ProbeOutcome:
        if not test.port:
            return ProbeOutcome.failure("No port configured")

        timeout = config.timeout_for(self.test_type)
        try:
            latency_ms = await measure_connect(test.host.address, test.port, timeout)
        except asyncio.TimeoutError:
            return ProbeOutcome.failure("Connection timed out")
        except ConnectionRefusedError:
            return ProbeOutcome.failure("Connection refused")
        except OSError as e:
            return ProbeOutcome.failure(classify_os_error(e))

        return ProbeOutcome(reachable=True, latency_ms=round(latency_ms, 3))
