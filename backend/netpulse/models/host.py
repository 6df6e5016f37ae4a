"""
监控目标主机模型 (Monitored Host Model)

主机由外部 CRUD 层创建和编辑，探测核心只读取主机属性，并通过其下属的测试配置
（HostTest）记录调度状态。地址必须是 IPv4 字面量或符合 RFC 1123 的主机名。

Hosts are created and edited by the external CRUD layer; the probing core only
reads them and tracks scheduling state on their child HostTest rows. The
address must be an IPv4 literal or an RFC 1123 hostname.
"""
import re
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from netpulse.core.database import Base

IPV4_PATTERN = re.compile(
    r"^(?:(?:25[0-5]|2[0-4]\d|1\d{2}|[1-9]?\d)\.){3}(?:25[0-5]|2[0-4]\d|1\d{2}|[1-9]?\d)$"
)
# 每个标签 1-63 个字符，字母数字与连字符，不能以连字符开头或结尾
HOSTNAME_LABEL_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
DOTTED_QUAD_PATTERN = re.compile(r"^\d+\.\d+\.\d+\.\d+$")

MAX_RANDOMNESS_PERCENT = 50


def valid_ipv4(value: str | None) -> bool:
    return bool(value) and IPV4_PATTERN.match(value) is not None


def valid_hostname(value: str | None) -> bool:
    """RFC 1123 主机名校验，总长度不超过 253。"""
    if not value or len(value) > 253:
        return False
    labels = value.split(".")
    return all(HOSTNAME_LABEL_PATTERN.match(label) for label in labels)


def valid_address(value: str | None) -> bool:
    """IPv4 或主机名。形如 a.b.c.d 的输入只按 IPv4 校验，500.500.500.500 不会被当作主机名放行。"""
    if value and DOTTED_QUAD_PATTERN.match(value):
        return valid_ipv4(value)
    return valid_ipv4(value) or valid_hostname(value)


class Host(Base):
    """
    主机表 (Host Table)

    randomness_percent 决定下一次调度时间的随机浮动幅度（0-50%），
    jitter_enabled 控制是否自动维护一个 jitter 类型的测试。

    randomness_percent bounds the random variation of each test's next due time
    (0-50%); jitter_enabled toggles an automatically managed jitter test.
    """
    __tablename__ = "hosts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    name: Mapped[str] = mapped_column(String(255), nullable=False)  # 显示名称 (Display Name)
    address: Mapped[str] = mapped_column(String(253), nullable=False)  # IPv4 或主机名 (IPv4 or hostname)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    randomness_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 调度随机幅度 (Schedule jitter percent)
    jitter_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)  # 自动维护抖动测试 (Managed jitter test)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    tests = relationship(
        "HostTest",
        back_populates="host",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @validates("address")
    def _validate_address(self, key, value):
        value = (value or "").strip()
        if not valid_address(value):
            raise ValueError(f"Invalid host address: {value!r} (must be an IPv4 address or hostname)")
        return value

    @validates("randomness_percent")
    def _validate_randomness(self, key, value):
        value = 0 if value is None else int(value)
        if not 0 <= value <= MAX_RANDOMNESS_PERCENT:
            raise ValueError(f"randomness_percent must be between 0 and {MAX_RANDOMNESS_PERCENT}, got {value}")
        return value
