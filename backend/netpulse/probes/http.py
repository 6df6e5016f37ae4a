"""
HTTP 探测：单次 GET 请求，最多跟随 5 次重定向。

只有 2xx 视为可达；非 2xx 仍是一次完成的请求，会带上状态码，但记为不可达。
超时、连接失败与 TLS 失败分别给出不同的错误信息。
"""
from __future__ import annotations

import logging
import ssl
import time
from typing import Optional

import httpx

from .models import ProbeConfig, ProbeOutcome

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
DEFAULT_PORTS = {"http": 80, "https": 443}


def build_url(scheme: Optional[str], address: str, port: Optional[int]) -> str:
    """端口等于该协议默认端口时省略。未配置 scheme 时按端口推断。"""
    scheme = scheme or ("https" if port == 443 else "http")
    if port is None or DEFAULT_PORTS.get(scheme) == port:
        return f"{scheme}://{address}"
    return f"{scheme}://{address}:{port}"


def _is_tls_error(exc: BaseException) -> bool:
    text = str(exc)
    if "SSL" in text or "CERTIFICATE" in text.upper():
        return True
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, ssl.SSLError):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False


class HttpProbe:
    test_type = "http"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def execute(self, test, config: ProbeConfig) -> ProbeOutcome:
        url = build_url(test.http_scheme, test.host.address, test.port)
        timeout = config.timeout_for(self.test_type)

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                max_redirects=MAX_REDIRECTS,
                transport=self._transport,
            ) as client:
                start = time.monotonic()
                resp = await client.get(url)
                latency_ms = round((time.monotonic() - start) * 1000, 3)
        except httpx.TimeoutException:
            return ProbeOutcome.failure("Request timed out")
        except httpx.TooManyRedirects:
            return ProbeOutcome.failure(f"Too many redirects (limit {MAX_REDIRECTS})")
        except httpx.ConnectError as e:
            if _is_tls_error(e):
                return ProbeOutcome.failure(f"SSL error: {e}")
            return ProbeOutcome.failure(f"Connection failed: {e}")
        except httpx.HTTPError as e:
            return ProbeOutcome.failure(str(e)[:500] or type(e).__name__)

        reachable = 200 <= resp.status_code < 300
        logger.debug("HTTP %s -> %d in %.1fms", url, resp.status_code, latency_ms)
        return ProbeOutcome(
            reachable=reachable,
            latency_ms=latency_ms,
            status=resp.status_code,
            error=None if reachable else f"HTTP status {resp.status_code} (expected 2xx)",
        )
