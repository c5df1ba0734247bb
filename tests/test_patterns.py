"""
Tests for glob compilation.
"""

import pytest

from mapsync.exceptions import ConfigurationError
from mapsync.rules.patterns import compile_glob, glob_matches


class TestGlobMatches:
    """Tests for glob matching semantics."""

    @pytest.mark.parametrize(
        "pattern,name,expected",
        [
            ("*.csv", "report.csv", True),
            ("*.csv", "report.CSV", True),
            ("*.csv", "report.csv.bak", False),
            ("SAL_????.txt", "SAL_2024.txt", True),
            ("SAL_????.txt", "SAL_202.txt", False),
            ("[ab]*.dat", "alpha.dat", True),
            ("[ab]*.dat", "gamma.dat", False),
            ("[!ab]*.dat", "gamma.dat", True),
            ("[a-c]1", "B1", True),
            ("file.txt", "file.txt", True),
            ("file.txt", "fileXtxt", False),
            ("a+b(1).txt", "a+b(1).txt", True),
        ],
    )
    def test_matching(self, pattern, name, expected):
        assert glob_matches(pattern, name) is expected

    def test_anchored(self):
        """Patterns must match the whole name."""
        assert not glob_matches("report", "my_report_final")


class TestCompileGlobErrors:
    """Malformed patterns are configuration errors."""

    @pytest.mark.parametrize("pattern", ["", "   "])
    def test_empty(self, pattern):
        with pytest.raises(ConfigurationError, match="empty"):
            compile_glob(pattern)

    def test_unterminated_bracket(self):
        with pytest.raises(ConfigurationError, match="Unterminated"):
            compile_glob("report[0-9.csv")

    def test_unmatched_close_bracket(self):
        with pytest.raises(ConfigurationError, match="Unmatched"):
            compile_glob("report]0.csv")

    def test_empty_class(self):
        with pytest.raises(ConfigurationError, match="Empty character class"):
            compile_glob("a[!]b")

    def test_bad_range(self):
        with pytest.raises(ConfigurationError, match="Invalid pattern"):
            compile_glob("[z-a].csv")
