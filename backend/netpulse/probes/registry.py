"""
探测注册表：按测试类型选择对应的探测实现。

五种协议在构造时注册。简单字典，不搞插件系统。
"""
from __future__ import annotations

import logging
from typing import Protocol

from netpulse.core.exceptions import UnknownProtocolError

from .dns import DnsProbe
from .http import HttpProbe
from .jitter import JitterProbe
from .models import ProbeConfig, ProbeOutcome
from .ping import PingProbe
from .tcp import TcpProbe

logger = logging.getLogger(__name__)


class Probe(Protocol):
    test_type: str

    async def execute(self, test, config: ProbeConfig) -> ProbeOutcome: ...


class ProbeRegistry:
    """所有可用探测的注册表。"""

    def __init__(self) -> None:
        self._probes: dict[str, Probe] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        for probe in [PingProbe(), TcpProbe(), HttpProbe(), DnsProbe(), JitterProbe()]:
            self.register(probe)

    def register(self, probe: Probe) -> None:
        self._probes[probe.test_type] = probe
        logger.debug("Registered probe: %s", probe.test_type)

    def get(self, test_type: str) -> Probe:
        probe = self._probes.get((test_type or "").lower())
        if probe is None:
            raise UnknownProtocolError(test_type)
        return probe

    def test_types(self) -> list[str]:
        return sorted(self._probes)

    async def execute(self, test, config: ProbeConfig) -> ProbeOutcome:
        """执行一次探测。

        未知类型抛出 UnknownProtocolError；探测实现内部的意外异常转换为不可达结果，
        不向上抛出。
        """
        probe = self.get(test.test_type)
        try:
            return await probe.execute(test, config)
        except Exception as e:
            logger.warning("Probe %s raised for test %s: %s", test.test_type, test.id, e, exc_info=True)
            return ProbeOutcome.failure(str(e) or type(e).__name__)
