"""
Tests for the scheduler, its run locks and persisted schedule state.
"""

import threading
import time
from datetime import UTC, date, datetime, timedelta

import pytest

from mapsync.backends import FilesystemBackend
from mapsync.exceptions import AlreadyRunningError, ConfigurationError, CronParseError
from mapsync.logstore import LogStore, RunStatus, TaskLog, Trigger
from mapsync.rules.store import RuleStore
from mapsync.scheduler import RunLocks, Scheduler, ScheduleConfig, ScheduleStateStore, schedules_from_config
from mapsync.sync.orchestrator import SyncOrchestrator

T0 = datetime(2024, 3, 4, 3, 0, tzinfo=UTC)


class FakeRunner:
    """Records run requests and returns a finished task log."""

    def __init__(self, status=RunStatus.SUCCESS, error=None):
        self.requests = []
        self.tokens = []
        self.status = status
        self.error = error

    def __call__(self, request, token):
        self.requests.append(request)
        self.tokens.append(token)
        if self.error is not None:
            raise self.error
        task = TaskLog(task_type=request.task_type, trigger=request.trigger, task_date=date(2024, 3, 3))
        task.status = self.status
        return task


@pytest.fixture
def log_store():
    store = LogStore(":memory:")
    yield store
    store.close()


class TestScheduleConfig:
    """Tests for schedule configuration parsing."""

    def test_defaults(self):
        config = ScheduleConfig(task_type="transfer")
        assert config.cron == "30 3 * * *"
        assert config.timezone == "UTC"
        assert config.offset_days == 1
        assert config.enabled

    def test_from_dict(self):
        config = ScheduleConfig.from_dict(
            "transfer", {"cron": "0 5 * * 1-5", "timezone": "Europe/Berlin", "params": {"offset_days": 2}}
        )
        assert config.cron == "0 5 * * 1-5"
        assert config.offset_days == 2

    def test_explicit_offset_wins_over_params(self):
        config = ScheduleConfig.from_dict("t", {"offset_days": 0, "params": {"offset_days": 3}})
        assert config.offset_days == 0

    def test_invalid_values(self):
        with pytest.raises(CronParseError):
            ScheduleConfig(task_type="t", cron="bad")
        with pytest.raises(ConfigurationError, match="Unknown timezone"):
            ScheduleConfig(task_type="t", timezone="Nowhere/Land")
        with pytest.raises(ConfigurationError, match="offset_days"):
            ScheduleConfig(task_type="t", offset_days=-1)
        with pytest.raises(ConfigurationError, match="integer"):
            ScheduleConfig.from_dict("t", {"offset_days": "soon"})

    def test_schedules_from_config(self):
        configs = schedules_from_config({"transfer": {"cron": "0 1 * * *"}, "archive": None})
        assert [c.task_type for c in configs] == ["transfer", "archive"]
        assert configs[1].cron == "30 3 * * *"

    def test_empty_section_gives_default(self):
        assert [c.task_type for c in schedules_from_config(None)] == ["transfer"]

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            schedules_from_config([{"task_type": "transfer"}])


class TestRunLocks:
    def test_second_holder_rejected(self):
        locks = RunLocks()
        with locks.hold("transfer"):
            assert locks.is_running("transfer")
            with pytest.raises(AlreadyRunningError, match="already in progress"):
                with locks.hold("transfer"):
                    pass
            with locks.hold("archive"):
                pass
        assert not locks.is_running("transfer")


class TestSchedulerTick:
    """Tests for cron-driven runs."""

    def test_first_fire_time_from_now(self):
        runner = FakeRunner()
        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], runner)

        assert scheduler.tick(T0) == []

        config = scheduler.get("transfer")
        assert config.next_run_at == datetime(2024, 3, 4, 3, 30, tzinfo=UTC)
        assert runner.requests == []

    def test_runs_when_due(self):
        runner = FakeRunner()
        scheduler = Scheduler([ScheduleConfig(task_type="transfer", offset_days=2)], runner)
        scheduler.tick(T0)

        due = datetime(2024, 3, 4, 3, 30, 0, 400000, tzinfo=UTC)
        finished = scheduler.tick(due)

        assert len(finished) == 1
        request = runner.requests[0]
        assert request.trigger == Trigger.SCHEDULED
        assert request.offset_days == 2
        assert not request.bypass_windows
        assert request.reference_date is None
        config = scheduler.get("transfer")
        assert config.last_run_at == due
        assert config.last_status == "success"
        assert config.last_task_id == finished[0].id
        assert config.next_run_at == datetime(2024, 3, 5, 3, 30, tzinfo=UTC)

        # Same minute again: nothing to do
        assert scheduler.tick(due + timedelta(seconds=10)) == []

    def test_misfire_runs_once(self):
        runner = FakeRunner()
        config = ScheduleConfig(task_type="transfer")
        config.next_run_at = datetime(2024, 3, 1, 3, 30, tzinfo=UTC)
        scheduler = Scheduler([config], runner)

        scheduler.tick(T0)

        assert len(runner.requests) == 1
        assert config.next_run_at == datetime(2024, 3, 4, 3, 30, tzinfo=UTC)

    def test_disabled_schedule_never_runs(self):
        runner = FakeRunner()
        config = ScheduleConfig(task_type="transfer", enabled=False)
        config.next_run_at = T0 - timedelta(days=1)
        Scheduler([config], runner).tick(T0)
        assert runner.requests == []

    def test_runner_error_keeps_schedule(self):
        runner = FakeRunner(error=RuntimeError("boom"))
        config = ScheduleConfig(task_type="transfer")
        config.next_run_at = T0
        scheduler = Scheduler([config], runner)

        assert scheduler.tick(T0) == []
        assert config.next_run_at == datetime(2024, 3, 4, 3, 30, tzinfo=UTC)
        assert not scheduler.is_running("transfer")

    def test_tick_skipped_while_manual_run_active(self):
        started = threading.Event()
        release = threading.Event()

        def slow_runner(request, token):
            started.set()
            release.wait(5)
            return FakeRunner()(request, token)

        config = ScheduleConfig(task_type="transfer")
        scheduler = Scheduler([config], slow_runner)
        scheduler.restore(T0)
        worker = threading.Thread(target=scheduler.run_now, args=("transfer",))
        worker.start()
        try:
            assert started.wait(5)
            finished = scheduler.tick(datetime(2024, 3, 4, 3, 30, tzinfo=UTC))
            assert finished == []
            assert config.next_run_at == datetime(2024, 3, 5, 3, 30, tzinfo=UTC)
        finally:
            release.set()
            worker.join(5)


class TestRunNow:
    """Tests for manual runs, overlap and cancellation."""

    def test_manual_run(self):
        runner = FakeRunner()
        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], runner, clock=lambda: T0)
        scheduler.restore(T0)
        next_before = scheduler.get("transfer").next_run_at

        task = scheduler.run_now("transfer", reference_date=date(2024, 3, 1), rule_ids=["a"], resend=True)

        request = runner.requests[0]
        assert request.trigger == Trigger.MANUAL
        assert request.reference_date == date(2024, 3, 1)
        assert request.rule_ids == ("a",)
        assert request.resend
        assert request.bypass_windows
        config = scheduler.get("transfer")
        assert config.last_run_at == T0
        assert config.last_task_id == task.id
        assert config.next_run_at == next_before

    def test_offset_defaults_to_schedule(self):
        runner = FakeRunner()
        scheduler = Scheduler([ScheduleConfig(task_type="transfer", offset_days=3)], runner)
        scheduler.run_now("transfer")
        scheduler.run_now("transfer", offset_days=0)
        assert [r.offset_days for r in runner.requests] == [3, 0]

    def test_manual_run_ignores_rule_windows(self, tmp_path, log_store):
        source = tmp_path / "outgoing"
        (source / "sales").mkdir(parents=True)
        (source / "sales" / "a.csv").write_text("data")
        rules = RuleStore(
            [
                {
                    "id": "weekly",
                    "match_type": "filename-pattern",
                    "source": {"directory": "sales", "pattern": "*.csv"},
                    "destination": {"path": "/in"},
                    "schedule": {"period": "weekly", "weekdays": [1]},
                }
            ]
        )
        backend = FilesystemBackend("fs", {"root": str(tmp_path / "dest")})
        orchestrator = SyncOrchestrator(rules, backend, log_store, source, sleep=lambda s: None)
        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], orchestrator.run)

        # 2024-03-05 is a Tuesday; the rule only runs on Mondays when scheduled
        task = scheduler.run_now("transfer", reference_date=date(2024, 3, 5))

        assert task.trigger == Trigger.MANUAL
        assert task.total_rules == 1
        assert task.success_count == 1
        assert (tmp_path / "dest" / "in" / "a.csv").exists()

    def test_unknown_task_type(self):
        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], FakeRunner())
        with pytest.raises(ConfigurationError, match="Unknown task type"):
            scheduler.run_now("archive")

    def test_overlapping_runs_rejected(self):
        started = threading.Event()
        release = threading.Event()
        results = []

        def slow_runner(request, token):
            started.set()
            release.wait(5)
            return FakeRunner()(request, token)

        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], slow_runner)
        worker = threading.Thread(target=lambda: results.append(scheduler.run_now("transfer")))
        worker.start()
        try:
            assert started.wait(5)
            assert scheduler.is_running("transfer")
            with pytest.raises(AlreadyRunningError):
                scheduler.run_now("transfer")
        finally:
            release.set()
            worker.join(5)
        assert len(results) == 1
        assert not scheduler.is_running("transfer")

    def test_cancel_active_run(self):
        started = threading.Event()
        seen = []

        def waiting_runner(request, token):
            started.set()
            for _ in range(500):
                if token.cancelled:
                    break
                time.sleep(0.01)
            seen.append(token.reason)
            return FakeRunner(status=RunStatus.PARTIAL)(request, token)

        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], waiting_runner)
        worker = threading.Thread(target=scheduler.run_now, args=("transfer",))
        worker.start()
        assert started.wait(5)
        assert scheduler.cancel("transfer", "operator")
        worker.join(5)

        assert seen == ["operator"]
        assert scheduler.get("transfer").last_status == "partial"

    def test_cancel_without_run(self):
        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], FakeRunner())
        assert scheduler.cancel("transfer") is False

    def test_status(self):
        scheduler = Scheduler([ScheduleConfig(task_type="transfer")], FakeRunner())
        scheduler.restore(T0)
        [entry] = scheduler.status()
        assert entry["task_type"] == "transfer"
        assert entry["running"] is False
        assert entry["next_run_at"] == "2024-03-04T03:30:00+00:00"


class TestScheduleState:
    """Tests for persisting schedule state across restarts."""

    def test_save_and_restore(self, log_store):
        state = ScheduleStateStore(log_store)
        config = ScheduleConfig(task_type="transfer")
        config.last_run_at = T0
        config.next_run_at = T0 + timedelta(days=1)
        config.last_task_id = "abc"
        config.last_status = "success"
        state.save(config)

        restored = ScheduleConfig(task_type="transfer")
        assert state.restore(restored)
        assert restored.last_run_at == T0
        assert restored.next_run_at == T0 + timedelta(days=1)
        assert restored.next_run_at.tzinfo is not None
        assert restored.last_task_id == "abc"
        assert restored.last_status == "success"

    def test_restore_nothing_saved(self, log_store):
        assert not ScheduleStateStore(log_store).restore(ScheduleConfig(task_type="transfer"))

    def test_save_overwrites(self, log_store):
        state = ScheduleStateStore(log_store)
        config = ScheduleConfig(task_type="transfer")
        config.last_status = "fail"
        state.save(config)
        config.last_status = "success"
        state.save(config)
        assert state.load("transfer")["last_status"] == "success"

    def test_scheduler_persists_and_restarts(self, log_store):
        runner = FakeRunner()
        first = Scheduler([ScheduleConfig(task_type="transfer")], runner, state_store=ScheduleStateStore(log_store))
        first.tick(T0)
        first.tick(datetime(2024, 3, 4, 3, 30, tzinfo=UTC))

        # Service was down for two days; the restarted scheduler runs once
        restarted_runner = FakeRunner()
        second = Scheduler(
            [ScheduleConfig(task_type="transfer")], restarted_runner, state_store=ScheduleStateStore(log_store)
        )
        later = datetime(2024, 3, 7, 12, 0, tzinfo=UTC)
        second.tick(later)

        assert len(restarted_runner.requests) == 1
        config = second.get("transfer")
        assert config.next_run_at == datetime(2024, 3, 8, 3, 30, tzinfo=UTC)
        assert config.last_run_at == later
