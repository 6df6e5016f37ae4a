"""
NetPulse 路由模块包 (NetPulse Router Module Package)

- scheduler.py: 调度器状态、启停与立即执行（测试 / 汇总）
"""
