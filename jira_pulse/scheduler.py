"""Daily wall-clock triggers for syncs and per-team notifications."""

import functools
from collections.abc import Callable
from datetime import datetime

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from .models import SyncTrigger
from .settings import Schedule, Team
from .sync_engine import SyncEngine, SyncObserver

logger = structlog.get_logger()

TeamRoutine = Callable[[Team], None]


class DailyTrigger:
    """Runs a callback every day at one HH:MM time."""

    def __init__(self, scheduler: BaseScheduler, job_id: str, time: str, callback: Callable[[], None]) -> None:
        self.scheduler = scheduler
        self.job_id = job_id
        self.time = time
        self.callback = callback
        self.armed = False

    def arm(self) -> None:
        hour, minute = self.time.split(":")
        self.scheduler.add_job(
            func=self.callback,
            trigger=CronTrigger(hour=int(hour), minute=int(minute)),
            id=self.job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )
        self.armed = True

    def disarm(self) -> None:
        if not self.armed:
            return
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            pass
        self.armed = False


class SyncScheduler:
    """Owns the global sync trigger set and one trigger set per team."""

    def __init__(
        self,
        sync_engine: SyncEngine | None,
        observer: SyncObserver | None = None,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self.sync_engine = sync_engine
        self.observer = observer
        self.scheduler = scheduler or BackgroundScheduler()
        self._sync_triggers: list[DailyTrigger] = []
        self._team_triggers: dict[str, list[DailyTrigger]] = {}

    @property
    def sync_times(self) -> list[str]:
        return [t.time for t in self._sync_triggers]

    @property
    def team_ids(self) -> list[str]:
        return list(self._team_triggers)

    def team_times(self, team_id: str) -> list[str]:
        return [t.time for t in self._team_triggers.get(team_id, [])]

    def ensure_running(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Background scheduler started")

    def start(self, schedule: Schedule) -> None:
        """(Re)arm the global sync triggers."""
        self.stop()

        if not schedule.enabled:
            logger.info("Scheduled sync disabled")
            return

        if self.sync_engine is None:
            logger.info("JIRA connection not configured, scheduled sync not armed")
            return

        for time in dict.fromkeys(schedule.times):
            trigger = DailyTrigger(self.scheduler, f"sync_{time}", time, self._run_scheduled_sync)
            trigger.arm()
            self._sync_triggers.append(trigger)
            logger.info("Scheduled sync", time=time)

    def stop(self) -> None:
        """Disarm every global sync trigger."""
        for trigger in self._sync_triggers:
            trigger.disarm()
        self._sync_triggers = []

    def start_team(self, team: Team, routine: TeamRoutine) -> None:
        """(Re)arm one team's notification triggers without touching other teams."""
        self.stop_team(team.id)

        if not team.notification.enabled or not team.notification.times:
            logger.info("Team notifications disabled", team_id=team.id)
            return

        triggers = []
        for time in dict.fromkeys(team.notification.times):
            trigger = DailyTrigger(
                self.scheduler,
                f"team_{team.id}_{time}",
                time,
                functools.partial(routine, team),
            )
            trigger.arm()
            triggers.append(trigger)

        self._team_triggers[team.id] = triggers
        logger.info("Scheduled team notifications", team_id=team.id, times=[t.time for t in triggers])

    def stop_team(self, team_id: str) -> None:
        for trigger in self._team_triggers.pop(team_id, []):
            trigger.disarm()

    def sync_teams(self, teams: list[Team], routine: TeamRoutine) -> None:
        """Reconcile team trigger sets with the configured teams."""
        configured = {team.id for team in teams}
        for team_id in list(self._team_triggers):
            if team_id not in configured:
                self.stop_team(team_id)
                logger.info("Unscheduled removed team", team_id=team_id)

        for team in teams:
            self.start_team(team, routine)

    def stop_all(self) -> None:
        self.stop()
        for team_id in list(self._team_triggers):
            self.stop_team(team_id)

    def shutdown(self) -> None:
        self.stop_all()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def _run_scheduled_sync(self) -> None:
        logger.info("Scheduled sync triggered")
        self.sync_engine.perform_sync(SyncTrigger.SCHEDULED, self.observer)  # type: ignore[union-attr]

    @staticmethod
    def get_next_run_time(times: list[str], now: datetime | None = None) -> str | None:
        """Next configured time later today, else the earliest one (tomorrow)."""
        if not times:
            return None

        now = now or datetime.now()
        current_minutes = now.hour * 60 + now.minute
        sorted_times = sorted(times)

        for time in sorted_times:
            hour, minute = (int(part) for part in time.split(":"))
            if hour * 60 + minute > current_minutes:
                return time

        return sorted_times[0]
