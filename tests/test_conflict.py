"""
Tests for destination conflict handling.
"""

import threading
import time

import pytest

from mapsync.exceptions import ConflictResolutionExhausted
from mapsync.rules.types import ConflictPolicy
from mapsync.sync.conflict import ConflictResolver, PathLocks, ResolutionAction, conflict_group, rename_candidate


def existing(*paths):
    taken = set(paths)
    return lambda p: p in taken


class TestRenameCandidate:
    def test_suffix_before_extension(self):
        assert rename_candidate("/out/report.csv", 1) == "/out/report_1.csv"

    def test_only_last_extension(self):
        assert rename_candidate("/out/a.tar.gz", 2) == "/out/a.tar_2.gz"

    def test_no_extension(self):
        assert rename_candidate("/out/README", 3) == "/out/README_3"


class TestConflictResolver:
    """Tests for overwrite, rename and skip policies."""

    def test_free_path_proceeds(self):
        resolution = ConflictResolver().resolve("/out/a.csv", ConflictPolicy.RENAME, existing())
        assert resolution.action == ResolutionAction.PROCEED
        assert resolution.path == "/out/a.csv"

    def test_overwrite_never_checks(self):
        def boom(path):
            raise AssertionError("exists should not be called")

        resolution = ConflictResolver().resolve("/out/a.csv", ConflictPolicy.OVERWRITE, boom)
        assert resolution.path == "/out/a.csv"
        assert not resolution.skipped

    def test_skip_existing(self):
        resolution = ConflictResolver().resolve("/out/a.csv", ConflictPolicy.SKIP, existing("/out/a.csv"))
        assert resolution.skipped
        assert resolution.path == "/out/a.csv"

    def test_rename_picks_first_free_suffix(self):
        taken = existing("/out/a.csv", "/out/a_1.csv", "/out/a_2.csv")
        resolution = ConflictResolver().resolve("/out/a.csv", ConflictPolicy.RENAME, taken)
        assert resolution.path == "/out/a_3.csv"
        assert "a_3.csv" in resolution.message

    def test_rename_exhausted(self):
        taken = existing("/out/a.csv", "/out/a_1.csv", "/out/a_2.csv")
        with pytest.raises(ConflictResolutionExhausted) as exc_info:
            ConflictResolver(rename_limit=2).resolve("/out/a.csv", ConflictPolicy.RENAME, taken)
        assert exc_info.value.limit == 2
        assert exc_info.value.remote_path == "/out/a.csv"

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            ConflictResolver(rename_limit=0)


class TestPathLocks:
    def test_same_path_serialized(self):
        locks = PathLocks()
        active = []
        overlaps = []

        def worker():
            with locks.hold("/out/a.csv"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlaps == []

    def test_different_paths_independent(self):
        locks = PathLocks()
        with locks.hold("/out/a.csv"):
            with locks.hold("/out/b.csv"):
                pass

    def test_rename_targets_share_a_lock(self):
        locks = PathLocks()
        entered = threading.Event()
        order = []

        def second():
            entered.wait()
            with locks.hold("/out/a_1.csv"):
                order.append("a_1.csv")

        thread = threading.Thread(target=second)
        thread.start()
        with locks.hold("/out/a.csv"):
            entered.set()
            time.sleep(0.05)
            order.append("a.csv")
        thread.join()

        assert order == ["a.csv", "a_1.csv"]

    def test_entries_released(self):
        locks = PathLocks()
        with locks.hold("/out/a.csv"):
            with locks.hold("/out/b.csv"):
                assert len(locks) == 2
        assert len(locks) == 0

        for i in range(50):
            with locks.hold(f"/out/{i}/a.csv"):
                pass
        assert len(locks) == 0

    def test_entry_kept_while_waiting(self):
        locks = PathLocks()
        started = threading.Event()

        def waiter():
            started.set()
            with locks.hold("/out/a_2.csv"):
                pass

        with locks.hold("/out/a.csv"):
            thread = threading.Thread(target=waiter)
            thread.start()
            started.wait()
            time.sleep(0.02)
            assert len(locks) == 1
        thread.join()
        assert len(locks) == 0


class TestConflictGroup:
    @pytest.mark.parametrize(
        "path",
        ["/out/a.csv", "/out/a_1.csv", "/out/a_12.csv", "/out/a_1_2.csv"],
    )
    def test_rename_family(self, path):
        assert conflict_group(path) == "/out/a*.csv"

    def test_candidates_share_group(self):
        for path in ("/out/report.csv", "/out/a.tar.gz", "/out/README"):
            assert conflict_group(rename_candidate(path, 7)) == conflict_group(path)

    def test_distinct_names_differ(self):
        assert conflict_group("/out/a.csv") != conflict_group("/out/b.csv")
        assert conflict_group("/out/a.csv") != conflict_group("/out/a.txt")
        assert conflict_group("/in/a.csv") != conflict_group("/out/a.csv")
        assert conflict_group("/out/a_x.csv") == "/out/a_x*.csv"
