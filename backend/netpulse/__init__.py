"""
NetPulse 网络可达性探测服务 (NetPulse Network Reachability Probing Service)

按随机化的独立周期对一组目标主机执行 ping / TCP / HTTP / DNS / 抖动探测，
记录延迟、可达性与抖动数据，并对历史数据做分级汇总。

Probes a set of target hosts with ping / TCP / HTTP / DNS / jitter tests on
independent randomized schedules, records latency, reachability and jitter,
and rolls historical data up into coarser buckets.
"""

__version__ = "0.1.0"
