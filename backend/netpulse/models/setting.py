"""
运行期设置模型

键值对形式的可调参数（测试间隔、各协议超时、离群检测、保留期），值一律存为字符串，
由 netpulse.services.settings_store 负责类型转换与默认值。
"""
from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from netpulse.core.database import Base


class Setting(Base):
    """运行期设置表，键为设置名，值为字符串形式。"""
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
