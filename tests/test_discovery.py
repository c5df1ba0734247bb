"""
Tests for candidate file discovery.
"""

from mapsync.sync.discovery import discover_files


class TestDiscoverFiles:
    def test_lists_files_sorted(self, tmp_path):
        (tmp_path / "in").mkdir()
        (tmp_path / "in" / "b.csv").write_text("bb")
        (tmp_path / "in" / "a.csv").write_text("a")

        files = discover_files(tmp_path, ["in"])

        assert [f.name for f in files] == ["a.csv", "b.csv"]
        assert files[0].directory == "in"
        assert files[0].size == 1
        assert files[1].local_path == str(tmp_path / "in" / "b.csv")

    def test_missing_directory_yields_nothing(self, tmp_path):
        assert discover_files(tmp_path, ["missing"]) == []

    def test_ignores_hidden_partial_and_subdirs(self, tmp_path):
        d = tmp_path / "in"
        (d / "nested").mkdir(parents=True)
        (d / ".hidden").write_text("x")
        (d / "upload.part").write_text("x")
        (d / "ok.txt").write_text("x")

        assert [f.name for f in discover_files(tmp_path, ["in"])] == ["ok.txt"]

    def test_root_directory_and_duplicates(self, tmp_path):
        (tmp_path / "top.csv").write_text("x")
        files = discover_files(tmp_path, ["", ""])
        assert [(f.directory, f.name) for f in files] == [("", "top.csv")]
        assert files[0].relative_path == "top.csv"
