"""
Tests for path and filename template expansion.
"""

from datetime import date, datetime

from mapsync.rules.templates import (
    BaseName,
    CompactDate,
    Extension,
    FormattedDate,
    Literal,
    compile_template,
    resolve_template,
)

REF = date(2024, 3, 5)


class TestResolveTemplate:
    """Tests for resolve_template."""

    def test_static_template_unchanged(self):
        """A template with no placeholders is returned as-is."""
        assert resolve_template("/inbound/sales", REF, "report.csv") == "/inbound/sales"

    def test_basename_and_ext(self):
        """{baseName}{ext} reproduces the original file name."""
        assert resolve_template("{baseName}{ext}", REF, "report.csv") == "report.csv"

    def test_compact_date(self):
        assert resolve_template("out_{date}", REF) == "out_20240305"

    def test_formatted_date_keeps_separators(self):
        assert resolve_template("{Date:YYYY/MM/DD}", REF) == "2024/03/05"
        assert resolve_template("{Date:YYYY-MM}", REF) == "2024-03"
        assert resolve_template("{Date:D.M.YY}", REF) == "5.3.24"

    def test_formatted_date_time_fields_default_to_midnight(self):
        assert resolve_template("{Date:HH:mm:ss}", REF) == "00:00:00"

    def test_formatted_date_with_datetime(self):
        moment = datetime(2024, 3, 5, 7, 8, 9)
        assert resolve_template("{Date:YYYYMMDD_HHmmss}", moment) == "20240305_070809"
        assert resolve_template("{Date:H-m-s}", moment) == "7-8-9"

    def test_mixed_template(self):
        result = resolve_template("/out/{Date:YYYY/MM}/{baseName}_{date}{ext}", date(2024, 1, 5), "report.csv")
        assert result == "/out/2024/01/report_20240105.csv"

    def test_extension_only_last_suffix(self):
        assert resolve_template("{baseName}|{ext}", REF, "archive.tar.gz") == "archive.tar|.gz"

    def test_no_extension(self):
        assert resolve_template("{baseName}{ext}", REF, "README") == "README"
        assert resolve_template("[{ext}]", REF, "README") == "[]"

    def test_unknown_placeholder_left_verbatim(self):
        assert resolve_template("{unknown}/{date}", REF) == "{unknown}/20240305"

    def test_filename_placeholders_without_filename_left_verbatim(self):
        assert resolve_template("{baseName}{ext}", REF) == "{baseName}{ext}"

    def test_empty_date_format_left_verbatim(self):
        assert resolve_template("{Date:}", REF) == "{Date:}"

    def test_placeholders_are_case_sensitive(self):
        assert resolve_template("{DATE}", REF) == "{DATE}"


class TestCompileTemplate:
    """Tests for the token parse."""

    def test_tokens(self):
        compiled = compile_template("a/{date}/{Date:YYYY}/{baseName}{ext}")
        kinds = [type(t) for t in compiled.tokens]
        assert kinds == [Literal, CompactDate, Literal, FormattedDate, Literal, BaseName, Extension]

    def test_static_detection(self):
        assert compile_template("/plain/path").is_static
        assert compile_template("{nope}").is_static
        assert not compile_template("{date}").is_static

    def test_uses_filename(self):
        assert compile_template("{baseName}.bak").uses_filename
        assert not compile_template("{date}").uses_filename

    def test_parse_is_cached(self):
        assert compile_template("x/{date}") is compile_template("x/{date}")
