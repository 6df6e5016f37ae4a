"""
核心模块包 (Core Module Package)

NetPulse 的基础设施组件：配置管理、数据库连接、异常定义、日志初始化与时间工具。

Infrastructure components for NetPulse: configuration management, database
connections, exception definitions, logging setup and time helpers.
"""
