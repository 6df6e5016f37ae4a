"""
探测模块的 Pydantic 数据模型。

用于探测、离群检测与调度器之间的数据传递，与 SQLAlchemy ORM 模型互补。
"""
from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

MAX_TIMEOUT_SECONDS = 10
MIN_TIMEOUT_SECONDS = 1


class RunMode(str, enum.Enum):
    """一次探测是否落库。

    RECORD 经过离群检测并写入一条测量；VALIDATE 只探测、不写库、不做离群检测，
    离群复测固定使用 VALIDATE，因此复测不可能再触发嵌套复测。
    """
    RECORD = "record"
    VALIDATE = "validate"


class ProbeConfig(BaseModel):
    """各协议超时（秒），无论配置多大都截断到 10 秒。"""
    ping_timeout: int = 5
    tcp_timeout: int = 5
    http_timeout: int = 10
    dns_timeout: int = 5

    @field_validator("ping_timeout", "tcp_timeout", "http_timeout", "dns_timeout")
    @classmethod
    def _clamp(cls, value: int) -> int:
        return max(MIN_TIMEOUT_SECONDS, min(int(value), MAX_TIMEOUT_SECONDS))

    def timeout_for(self, test_type: str) -> int:
        # jitter 复用 ping 的超时
        if test_type == "jitter":
            return self.ping_timeout
        return getattr(self, f"{test_type}_timeout", MAX_TIMEOUT_SECONDS)


class OutlierConfig(BaseModel):
    """离群检测参数：两个条件必须同时满足才判定为离群。"""
    enabled: bool = True
    multiplier: float = Field(default=10.0, gt=0)
    min_threshold_ms: float = Field(default=500.0, ge=0)


class ProbeOutcome(BaseModel):
    """单次探测的结构化结果。"""
    reachable: bool
    latency_ms: Optional[float] = None
    jitter_ms: Optional[float] = None
    status: Optional[int] = None  # 协议相关状态，如 HTTP 状态码
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, **kwargs) -> "ProbeOutcome":
        return cls(reachable=False, error=error, **kwargs)

    def metric(self, test_type: str) -> Optional[float]:
        """离群检测使用的指标：jitter 测试看抖动，其余看延迟。"""
        return self.jitter_ms if test_type == "jitter" else self.latency_ms

    def summary(self) -> str:
        status = "UP" if self.reachable else "DOWN"
        latency = f"{self.latency_ms}ms" if self.latency_ms is not None else "N/A"
        error = f" - {self.error}" if self.error else ""
        return f"{status} ({latency}){error}"


class TestRunResult(BaseModel):
    """调度器对一个测试执行一次后的结果。"""
    __test__ = False  # 避免 pytest 把它当成测试类收集

    host_id: int
    host_name: str
    test_id: int
    test_type: str
    label: str = ""  # 日志用的测试描述，如 `TCP 10.0.0.1:22`
    outcome: ProbeOutcome
