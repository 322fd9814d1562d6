"""
Tests for version ordering.
"""

from pkgmux.core.versions import compare_versions, newest, version_key


class TestCompareVersions:
    def test_numeric_segments(self):
        assert compare_versions("1.10", "1.9") == 1
        assert compare_versions("2.0", "10.0") == -1

    def test_equal(self):
        assert compare_versions("121.0-1", "121.0-1") == 0

    def test_release_suffix(self):
        assert compare_versions("121.0-2", "121.0-1") == 1

    def test_epoch_wins(self):
        assert compare_versions("1:1.0", "9.9") == 1
        assert compare_versions("2:9.0.1378-2", "9.0.1378-2") == 1

    def test_tilde_sorts_before_release(self):
        assert compare_versions("1.0~rc1", "1.0") == -1
        assert compare_versions("1.0~rc1", "1.0~rc2") == -1

    def test_number_above_letters(self):
        assert compare_versions("1.0.1", "1.0a") == 1

    def test_longer_is_newer(self):
        assert compare_versions("1.0.1", "1.0") == 1

    def test_none_is_lowest(self):
        assert compare_versions(None, "0.1") == -1
        assert version_key(None) == version_key("")


class TestNewest:
    def test_picks_highest(self):
        assert newest(["115.0", "121.0", "99.0"]) == "121.0"

    def test_empty(self):
        assert newest([]) is None
