"""
延迟统计纯函数：均值、中位数与 IPDV 抖动。

IPDV（Inter-Packet Delay Variation，RFC 3393）取相邻样本差值绝对值的平均，
按采集顺序计算、不排序。ping 与 jitter 测试报告的抖动都使用这一个公式。
"""
from typing import Sequence


def mean(samples: Sequence[float]) -> float:
    """算术平均；空序列由调用方保证不会传入。"""
    return sum(samples) / len(samples)


def median(samples: Sequence[float]) -> float:
    ordered = sorted(samples)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2.0


def ipdv_jitter(samples: Sequence[float]) -> float:
    """相邻样本延迟差的平均绝对值，少于 2 个样本时为 0.0。

    >>> ipdv_jitter([10, 20])
    10.0
    """
    if len(samples) < 2:
        return 0.0
    variations = [abs(samples[i] - samples[i - 1]) for i in range(1, len(samples))]
    return sum(variations) / len(variations)
