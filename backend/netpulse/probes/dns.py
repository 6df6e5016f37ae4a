"""
DNS 探测：以测试目标地址作为 nameserver，解析配置的查询域名。

阻塞式解析在线程池中执行，外层用 asyncio.wait_for 限时；超时后放弃该解析
（尽力取消），迟到的结果直接丢弃。解析线程不持有任何数据库句柄，不会写入测量。
"""
from __future__ import annotations

import asyncio
import logging
import socket
import time

import dns.exception
import dns.inet
import dns.resolver

from .models import ProbeConfig, ProbeOutcome

logger = logging.getLogger(__name__)


def nameserver_address(address: str) -> str:
    """nameserver 只接受 IP；主机名先经系统解析器（含 /etc/hosts）转换为 IP。"""
    if dns.inet.is_address(address):
        return address
    infos = socket.getaddrinfo(address, 53, type=socket.SOCK_DGRAM)
    return infos[0][4][0]


def _resolve(nameserver: str, hostname: str, timeout: float) -> list[str]:
    """同步解析 A 记录（供线程池调用，nameserver 的地址解析也受外层超时约束）。"""
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = [nameserver_address(nameserver)]
    resolver.timeout = timeout
    resolver.lifetime = timeout
    answer = resolver.resolve(hostname, "A")
    return [rdata.to_text() for rdata in answer]


class DnsProbe:
    """DNS 解析探测，不计算抖动。"""
    test_type = "dns"

    async def execute(self, test, config: ProbeConfig) -> ProbeOutcome:
        hostname = (test.dns_query_hostname or "").strip()
        if not hostname:
            return ProbeOutcome.failure("No query hostname configured")

        nameserver = test.host.address
        timeout = config.timeout_for(self.test_type)
        timeout_error = f"DNS query timed out after {timeout}s"

        loop = asyncio.get_running_loop()
        start = time.monotonic()
        future = loop.run_in_executor(None, _resolve, nameserver, hostname, timeout)
        try:
            addresses = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            future.cancel()
            logger.debug("DNS query abandoned: %s @ %s after %ss", hostname, nameserver, timeout)
            return ProbeOutcome.failure(timeout_error)
        except dns.exception.Timeout:
            return ProbeOutcome.failure(timeout_error)
        except dns.resolver.NoAnswer:
            return ProbeOutcome.failure(f"No addresses returned for {hostname}")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoNameservers) as e:
            return ProbeOutcome.failure(f"DNS resolution failed: {e}")
        except socket.gaierror as e:
            return ProbeOutcome.failure(f"Cannot resolve nameserver {nameserver}: {e}")
        except (dns.exception.DNSException, ValueError, OSError) as e:
            return ProbeOutcome.failure(f"DNS error: {e}")

        elapsed_ms = min((time.monotonic() - start) * 1000, timeout * 1000)
        if not addresses:
            return ProbeOutcome.failure(f"No addresses returned for {hostname}")

        logger.debug("DNS %s @ %s -> %s", hostname, nameserver, ", ".join(addresses))
        return ProbeOutcome(reachable=True, latency_ms=round(elapsed_ms, 3))
