"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型：监控主机、测试配置、原始测量、两级汇总桶与运行期设置。

Centrally exports all SQLAlchemy ORM models: monitored hosts, test
configurations, raw measurements, the two aggregate tiers and runtime settings.
"""
from netpulse.models.host import Host
from netpulse.models.host_test import HostTest
from netpulse.models.measurement import Measurement
from netpulse.models.aggregate import Measurement15Min, MeasurementHourly
from netpulse.models.setting import Setting

__all__ = [
    "Host", "HostTest", "Measurement", "Measurement15Min", "MeasurementHourly", "Setting",
]
