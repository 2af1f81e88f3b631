"""Service container wiring storage, client, engine and schedulers together."""

import threading
from typing import Any

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from .config import AppConfig
from .credentials import JIRA_API_TOKEN, CredentialStore
from .jira_client import JiraClient
from .models import ConnectionCheck, StatusCategory, SyncResult, SyncStatus, SyncTrigger
from .scheduler import SyncScheduler, TeamRoutine
from .settings import Settings, Team
from .storage import FileStorage
from .sync_engine import SyncEngine, SyncObserver

logger = structlog.get_logger()

NOT_INITIALIZED = "Sync service not initialized"
NOT_CONFIGURED = "JIRA connection not configured"


class AppContext:
    """Holds the live collaborators and swaps them as a set on settings change."""

    def __init__(
        self,
        config: AppConfig,
        storage: FileStorage,
        credentials: CredentialStore,
        observer: SyncObserver | None = None,
        team_routine: TeamRoutine | None = None,
        background: BaseScheduler | None = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.credentials = credentials
        self.observer = observer
        self.team_routine = team_routine or self._log_team_digest
        self.background = background or BackgroundScheduler()

        self.settings: Settings = Settings()
        self.client: JiraClient | None = None
        self.sync_engine: SyncEngine | None = None
        self.scheduler: SyncScheduler | None = None
        self._lock = threading.RLock()

    @classmethod
    def create(
        cls,
        config: AppConfig,
        credentials: CredentialStore,
        observer: SyncObserver | None = None,
        team_routine: TeamRoutine | None = None,
        background: BaseScheduler | None = None,
    ) -> "AppContext":
        """Build storage from config and wire everything from the stored settings."""
        storage = FileStorage(config.data_dir)
        storage.ensure_directories()

        context = cls(config, storage, credentials, observer, team_routine, background)
        context.rebuild()
        return context

    def _build_client(self, settings: Settings, api_token: str | None = None) -> JiraClient | None:
        token = api_token or self.credentials.get(JIRA_API_TOKEN)
        if not settings.jira.base_url or not settings.jira.email or not token:
            return None

        return JiraClient(
            base_url=settings.jira.base_url,
            email=settings.jira.email,
            api_token=token,
            fields=self.config.fields,
            timeout=self.config.request_timeout_seconds,
            max_retries=self.config.max_retries,
            retry_base_delay=self.config.retry_base_delay_seconds,
        )

    def rebuild(self, settings: Settings | None = None) -> None:
        """Tear down triggers, rebuild client and schedulers, then swap them in.

        The engine survives rebuilds so a run in flight keeps the process-wide
        single-flight guarantee.
        """
        with self._lock:
            settings = settings or self.storage.load_settings()

            if self.scheduler is not None:
                self.scheduler.stop_all()

            client = self._build_client(settings)
            engine = self.sync_engine
            if client is not None:
                if engine is None:
                    engine = SyncEngine(self.storage, client, settings)
                else:
                    engine.update_client(client)
                    engine.update_settings(settings)
            else:
                logger.warning(NOT_CONFIGURED)

            scheduler = SyncScheduler(
                engine if client is not None else None,
                observer=self.observer,
                scheduler=self.background,
            )
            scheduler.start(settings.schedule)
            scheduler.sync_teams(settings.teams, self.team_routine)

            self.settings = settings
            self.client = client
            self.sync_engine = engine
            self.scheduler = scheduler

        logger.info(
            "Application context rebuilt",
            connected=client is not None,
            sync_times=scheduler.sync_times,
            teams=scheduler.team_ids,
        )

    def start(self) -> None:
        with self._lock:
            if self.scheduler is not None:
                self.scheduler.ensure_running()

    def trigger_manual_sync(self, observer: SyncObserver | None = None) -> SyncResult:
        """Run a sync on the caller's thread."""
        with self._lock:
            engine = self.sync_engine if self.client is not None else None

        if engine is None:
            return SyncResult(success=False, error=NOT_INITIALIZED)

        return engine.perform_sync(SyncTrigger.MANUAL, observer or self.observer)

    def get_status(self) -> SyncStatus:
        with self._lock:
            engine = self.sync_engine

        if engine is None:
            meta = self.storage.get_meta()
            last_result = meta.sync_history[0] if meta.sync_history else None
            return SyncStatus(is_running=False, last_sync=meta.last_sync, last_result=last_result)
        return engine.get_status()

    def save_settings(self, raw: Settings | dict[str, Any]) -> Settings:
        """Persist a settings document and rebuild around it."""
        settings = self.storage.save_settings(raw)
        self.rebuild(settings)
        return settings

    def save_token(self, token: str) -> None:
        self.credentials.save(JIRA_API_TOKEN, token)
        self.rebuild(self.settings)

    def delete_token(self) -> None:
        self.credentials.delete(JIRA_API_TOKEN)
        self.rebuild(self.settings)

    def test_connection(
        self,
        base_url: str | None = None,
        email: str | None = None,
        api_token: str | None = None,
    ) -> ConnectionCheck:
        """Probe the current connection, or a candidate one when values are given."""
        settings = self.settings
        if base_url is not None or email is not None:
            settings = settings.model_copy(
                update={
                    "jira": settings.jira.model_copy(
                        update={
                            "base_url": base_url if base_url is not None else settings.jira.base_url,
                            "email": email if email is not None else settings.jira.email,
                        }
                    )
                }
            )

        client = self._build_client(settings, api_token)
        if client is None:
            return ConnectionCheck(success=False, error=NOT_CONFIGURED)
        return client.test_connection()

    def shutdown(self) -> None:
        with self._lock:
            if self.scheduler is not None:
                self.scheduler.shutdown()
            self.scheduler = None
        logger.info("Application context shut down")

    def _log_team_digest(self, team: Team) -> None:
        """Default team routine: log how many synced issues belong to the team."""
        latest = self.storage.get_latest()
        assignees = set(team.assignees)
        issues = [i for i in latest.issues if i.assignee in assignees] if latest else []
        open_issues = [i for i in issues if i.status_category != StatusCategory.DONE]

        logger.info(
            "Team notification",
            team_id=team.id,
            team=team.name,
            issue_count=len(issues),
            open_count=len(open_issues),
            synced_at=latest.synced_at.isoformat() if latest else None,
        )
