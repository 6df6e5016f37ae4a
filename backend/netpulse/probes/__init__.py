"""
探测包 (Probes Package)

五种协议探测（ping/tcp/http/dns/jitter）、延迟统计、探测注册表与离群守卫。
"""
