"""tests for the coverage map"""

import pytest

from shcov.core import CoverageMap


class TestCoverageMap:
    """test coverage accumulation"""

    def create_test_coverage(self):
        """helper to create a small coverage map"""
        cov = CoverageMap()
        cov.hit("/src/main.sh", 1)
        cov.hit("/src/main.sh", 2)
        cov.hit("/src/main.sh", 2)
        cov.hit("/src/lib.sh", 5)
        return cov

    def test_coverage_map_creation(self):
        """test basic container behavior"""
        cov = self.create_test_coverage()

        assert len(cov) == 2
        assert bool(cov) is True
        assert "/src/lib.sh" in cov
        assert "/src/other.sh" not in cov
        assert list(cov) == ["/src/lib.sh", "/src/main.sh"]
        assert cov.files == ["/src/lib.sh", "/src/main.sh"]

    def test_empty_map(self):
        cov = CoverageMap()
        assert len(cov) == 0
        assert not cov
        assert cov.to_dict() == {}

    def test_hits(self):
        """counts accumulate per line"""
        cov = self.create_test_coverage()

        assert cov.hits("/src/main.sh", 1) == 1
        assert cov.hits("/src/main.sh", 2) == 2
        assert cov.hits("/src/main.sh", 3) == 0
        assert cov.hits("/src/missing.sh", 1) == 0

    def test_lazy_table_is_not_reset(self):
        """a repeated first reference keeps existing counts"""
        cov = CoverageMap()
        cov.hit("/a.sh", 3)
        cov.hit("/a.sh", 3)
        cov.hit("/a.sh", 1)

        assert cov.lines("/a.sh") == {1: 1, 3: 2}

    def test_monotonic_counts(self):
        """counts never decrease while records are processed"""
        cov = CoverageMap()
        previous = 0
        for _ in range(50):
            cov.hit("/loop.sh", 4)
            current = cov.hits("/loop.sh", 4)
            assert current >= previous
            previous = current
        assert previous == 50

    def test_negative_hits_rejected(self):
        cov = CoverageMap()
        with pytest.raises(ValueError):
            cov.hit("/a.sh", 1, count=-1)

    def test_lines_returns_copy(self):
        cov = self.create_test_coverage()
        table = cov.lines("/src/main.sh")
        table[1] = 100

        assert cov.hits("/src/main.sh", 1) == 1

    def test_to_list(self):
        """index i holds line i + 1, unseen lines are None"""
        cov = self.create_test_coverage()

        assert cov.to_list("/src/main.sh") == [1, 2]
        assert cov.to_list("/src/lib.sh") == [None, None, None, None, 1]
        assert cov.to_list("/src/lib.sh", 7) == [None, None, None, None, 1, None, None]
        assert cov.to_list("/src/none.sh", 2) == [None, None]

    def test_to_dict(self):
        """export shape used by the report handoff"""
        cov = self.create_test_coverage()
        exported = cov.to_dict()

        assert exported == {
            "/src/lib.sh": [None, None, None, None, 1],
            "/src/main.sh": [1, 2],
        }

