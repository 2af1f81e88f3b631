"""Sync engine: fetch, normalize, diff, persist and record one run."""

import threading
import time
from datetime import UTC, datetime
from typing import Protocol

import structlog

from .diff import diff_issues
from .jira_client import JiraClient, build_jql
from .models import (
    StoredData,
    SyncHistoryEntry,
    SyncProgress,
    SyncResult,
    SyncSource,
    SyncStatus,
    SyncTrigger,
)
from .normalizer import IssueNormalizer
from .settings import Settings
from .storage import FileStorage, StorageError

logger = structlog.get_logger()

ALREADY_RUNNING = "Sync is already in progress"


class SyncObserver(Protocol):
    """Receives progress and completion events for a run."""

    def on_progress(self, progress: SyncProgress) -> None: ...

    def on_complete(self, result: SyncResult) -> None: ...


class SyncEngine:
    """Runs syncs one at a time and keeps the last outcome in memory."""

    def __init__(
        self,
        storage: FileStorage,
        client: JiraClient,
        settings: Settings,
        normalizer: IssueNormalizer | None = None,
    ) -> None:
        """Initialize sync engine."""
        self.storage = storage
        self.client = client
        self.settings = settings
        self.normalizer = normalizer or IssueNormalizer(client.fields)
        self._run_lock = threading.Lock()
        self._is_running = False
        self._last_sync: datetime | None = None
        self._last_result: SyncHistoryEntry | None = None

    def update_settings(self, settings: Settings) -> None:
        self.settings = settings

    def update_client(self, client: JiraClient) -> None:
        self.client = client

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            is_running=self._is_running,
            last_sync=self._last_sync,
            last_result=self._last_result,
        )

    def perform_sync(self, trigger: SyncTrigger, observer: SyncObserver | None = None) -> SyncResult:
        """Run one sync. A call made while another run is active fails immediately."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Sync rejected, another run is active", trigger=trigger.value)
            return SyncResult(success=False, error=ALREADY_RUNNING)

        self._is_running = True
        started = time.monotonic()
        try:
            result = self._run(trigger, started, observer)
        except Exception as e:
            result = self._record_failure(trigger, started, e)
        finally:
            self._is_running = False
            self._run_lock.release()

        if result.success and observer:
            observer.on_complete(result)
        return result

    def _run(self, trigger: SyncTrigger, started: float, observer: SyncObserver | None) -> SyncResult:
        settings = self.settings
        collection = settings.collection
        jql = build_jql(collection.projects, collection.assignees, collection.custom_jql)

        logger.info("Sync started", trigger=trigger.value, jql=jql)

        def forward_progress(current: int, total: int) -> None:
            if observer:
                observer.on_progress(SyncProgress.of(current, total))

        raw_issues = self.client.fetch_all(jql, on_progress=forward_progress)
        issues = self.normalizer.normalize_batch(raw_issues)
        synced_at = datetime.now(UTC)

        previous = self.storage.get_latest()
        if previous is not None:
            changes = diff_issues(previous.issues, issues, synced_at)
            if changes:
                self.storage.append_changelog(changes, synced_at)
        else:
            logger.info("No previous batch, skipping change detection")

        data = StoredData(
            synced_at=synced_at,
            source=SyncSource(base_url=settings.jira.base_url, projects=list(collection.projects)),
            issues=issues,
            total_count=len(issues),
        )
        self.storage.save_latest(data)
        self.storage.save_snapshot(data)

        duration_ms = _elapsed_ms(started)
        entry = SyncHistoryEntry(
            timestamp=synced_at,
            type=trigger,
            issue_count=len(issues),
            duration_ms=duration_ms,
            success=True,
        )
        self.storage.append_history(entry, last_sync=synced_at)
        self._last_result = entry
        self._last_sync = synced_at

        try:
            self.storage.cleanup_old_data(settings.storage.retention_days)
        except OSError as e:
            logger.warning("Retention cleanup failed", error=str(e))

        logger.info("Sync completed", issue_count=len(issues), duration_ms=duration_ms)
        return SyncResult(success=True, issue_count=len(issues), duration_ms=duration_ms)

    def _record_failure(self, trigger: SyncTrigger, started: float, error: Exception) -> SyncResult:
        duration_ms = _elapsed_ms(started)
        message = str(error) or type(error).__name__
        logger.error("Sync failed", trigger=trigger.value, error=message, duration_ms=duration_ms)

        entry = SyncHistoryEntry(
            timestamp=datetime.now(UTC),
            type=trigger,
            issue_count=0,
            duration_ms=duration_ms,
            success=False,
            error=message,
        )
        try:
            self.storage.append_history(entry)
        except (OSError, StorageError) as e:
            logger.error("Failed to record sync failure", error=str(e))
        self._last_result = entry

        return SyncResult(success=False, duration_ms=duration_ms, error=message)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
