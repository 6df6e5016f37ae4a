"""延迟统计函数测试。"""
import pytest

from netpulse.probes.latency import ipdv_jitter, mean, median


class TestIpdvJitter:
    def test_constant_samples(self):
        assert ipdv_jitter([10, 10, 10]) == 0.0

    def test_two_samples(self):
        assert ipdv_jitter([10, 20]) == 10.0

    def test_empty_and_single(self):
        assert ipdv_jitter([]) == 0.0
        assert ipdv_jitter([42.0]) == 0.0

    def test_uses_collection_order(self):
        # 10->30->20: |20| + |10| = 30 / 2
        assert ipdv_jitter([10, 30, 20]) == 15.0
        assert ipdv_jitter(sorted([10, 30, 20])) == 10.0


class TestMedian:
    def test_odd_count(self):
        assert median([5, 1, 3, 2, 4]) == 3

    def test_even_count(self):
        assert median([4, 1, 3, 2]) == 2.5

    def test_robust_to_outliers(self):
        samples = [10, 10, 10, 10, 10, 10, 10, 500, 500]
        assert median(samples) == 10
        assert mean(samples) == pytest.approx(118.888, rel=1e-3)


def test_mean():
    assert mean([10, 20, 30]) == 20
