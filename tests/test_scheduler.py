import unittest
from datetime import datetime
from unittest.mock import Mock

from apscheduler.schedulers.background import BackgroundScheduler

from jira_pulse.models import SyncTrigger
from jira_pulse.scheduler import SyncScheduler
from jira_pulse.settings import Schedule, Team


def team(team_id: str, times: list[str], enabled: bool = True) -> Team:
    return Team(id=team_id, name=f"Team {team_id}", notification=Schedule(enabled=enabled, times=times))


class SyncSchedulerTests(unittest.TestCase):
    def setUp(self):
        # Never started: jobs stay pending and nothing fires.
        self.background = BackgroundScheduler()
        self.engine = Mock()
        self.observer = Mock()
        self.scheduler = SyncScheduler(self.engine, observer=self.observer, scheduler=self.background)

    def job_ids(self) -> set[str]:
        return {job.id for job in self.background.get_jobs()}

    def test_start_arms_one_trigger_per_time(self):
        self.scheduler.start(Schedule(times=["09:00", "13:00"]))

        self.assertEqual(self.job_ids(), {"sync_09:00", "sync_13:00"})
        self.assertEqual(self.scheduler.sync_times, ["09:00", "13:00"])

    def test_restart_is_idempotent(self):
        schedule = Schedule(times=["09:00", "13:00"])
        self.scheduler.start(schedule)
        self.scheduler.start(schedule)

        self.assertEqual(len(self.background.get_jobs()), 2)

        self.scheduler.start(Schedule(times=["18:00"]))
        self.assertEqual(self.job_ids(), {"sync_18:00"})

    def test_duplicate_times_arm_once(self):
        self.scheduler.start(Schedule(times=["09:00", "09:00"]))

        self.assertEqual(len(self.background.get_jobs()), 1)

    def test_disabled_schedule_arms_nothing(self):
        self.scheduler.start(Schedule(times=["09:00"]))
        self.scheduler.start(Schedule(enabled=False, times=["09:00"]))

        self.assertEqual(self.background.get_jobs(), [])

    def test_without_engine_arms_nothing(self):
        scheduler = SyncScheduler(None, scheduler=self.background)
        scheduler.start(Schedule(times=["09:00"]))

        self.assertEqual(self.background.get_jobs(), [])

    def test_fired_trigger_runs_scheduled_sync(self):
        self.scheduler.start(Schedule(times=["09:00"]))

        self.background.get_jobs()[0].func()

        self.engine.perform_sync.assert_called_once_with(SyncTrigger.SCHEDULED, self.observer)

    def test_team_sets_are_independent(self):
        routine = Mock()
        self.scheduler.start_team(team("a", ["08:00", "16:00"]), routine)
        self.scheduler.start_team(team("b", ["10:00"]), routine)

        self.scheduler.stop_team("a")

        self.assertEqual(self.job_ids(), {"team_b_10:00"})
        self.assertEqual(self.scheduler.team_ids, ["b"])
        self.assertEqual(self.scheduler.team_times("b"), ["10:00"])

    def test_team_trigger_invokes_routine_with_team(self):
        routine = Mock()
        configured = team("a", ["08:00"])
        self.scheduler.start_team(configured, routine)

        self.background.get_jobs()[0].func()

        routine.assert_called_once_with(configured)

    def test_disabled_team_arms_nothing(self):
        self.scheduler.start_team(team("a", ["08:00"], enabled=False), Mock())
        self.scheduler.start_team(team("b", []), Mock())

        self.assertEqual(self.background.get_jobs(), [])
        self.assertEqual(self.scheduler.team_ids, [])

    def test_sync_teams_reconciles(self):
        routine = Mock()
        self.scheduler.sync_teams([team("a", ["08:00"]), team("b", ["10:00"])], routine)
        self.scheduler.sync_teams([team("b", ["11:00"]), team("c", ["12:00"])], routine)

        self.assertEqual(self.job_ids(), {"team_b_11:00", "team_c_12:00"})

    def test_team_and_sync_sets_do_not_touch_each_other(self):
        self.scheduler.start(Schedule(times=["09:00"]))
        self.scheduler.start_team(team("a", ["09:00"]), Mock())

        self.scheduler.stop()
        self.assertEqual(self.job_ids(), {"team_a_09:00"})

        self.scheduler.start(Schedule(times=["09:00"]))
        self.scheduler.stop_team("a")
        self.assertEqual(self.job_ids(), {"sync_09:00"})

    def test_stop_all(self):
        self.scheduler.start(Schedule(times=["09:00"]))
        self.scheduler.start_team(team("a", ["08:00"]), Mock())

        self.scheduler.stop_all()

        self.assertEqual(self.background.get_jobs(), [])


class NextRunTimeTests(unittest.TestCase):
    def test_next_time_later_today(self):
        times = ["18:00", "09:00", "13:00"]

        self.assertEqual(SyncScheduler.get_next_run_time(times, datetime(2024, 5, 1, 10, 30)), "13:00")
        self.assertEqual(SyncScheduler.get_next_run_time(times, datetime(2024, 5, 1, 8, 59)), "09:00")

    def test_current_minute_is_not_next(self):
        self.assertEqual(SyncScheduler.get_next_run_time(["09:00", "13:00"], datetime(2024, 5, 1, 13, 0)), "09:00")

    def test_wraps_to_earliest_tomorrow(self):
        self.assertEqual(SyncScheduler.get_next_run_time(["13:00", "09:00"], datetime(2024, 5, 1, 23, 0)), "09:00")

    def test_empty(self):
        self.assertIsNone(SyncScheduler.get_next_run_time([]))


if __name__ == "__main__":
    unittest.main()
