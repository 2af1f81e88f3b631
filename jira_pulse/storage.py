"""File-backed storage for settings, synced batches and run history."""

import contextlib
import json
import os
import re
import shutil
import tempfile
import threading
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from .models import (
    CHANGELOG_LIMIT,
    HISTORY_LIMIT,
    ChangelogData,
    ChangelogEntry,
    LabelNote,
    MetaData,
    PlanningDocument,
    ReportInfo,
    StoredData,
    SyncHistoryEntry,
)
from .settings import Settings, default_settings, merge_with_defaults, migrate_to_teams

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

REPORT_EXTENSION = ".md"
UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
SNAPSHOT_DIR_FORMAT = "%Y-%m-%d"
SNAPSHOT_FILE_FORMAT = "%H-%M-%S"

_label_notes_adapter = TypeAdapter(list[LabelNote])


class StorageError(Exception):
    """Custom exception for storage operations."""

    pass


class SettingsValidationError(StorageError):
    """A settings document failed validation on save."""

    pass


class PathSafetyError(StorageError):
    """A report path would resolve outside the reports directory."""

    pass


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via a temp sibling + os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


class _Lane:
    def __init__(self) -> None:
        self.condition = threading.Condition()
        self.next_ticket = 0
        self.now_serving = 0


class WriteQueue:
    """Per-destination FIFO: holders of a slot for one path run strictly in enqueue order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._lanes: dict[Path, _Lane] = {}

    @contextlib.contextmanager
    def slot(self, path: Path) -> Iterator[None]:
        key = Path(os.path.abspath(path))

        with self._lock:
            lane = self._lanes.setdefault(key, _Lane())
            with lane.condition:
                ticket = lane.next_ticket
                lane.next_ticket += 1

        with lane.condition:
            lane.condition.wait_for(lambda: lane.now_serving == ticket)

        try:
            yield
        finally:
            with self._lock, lane.condition:
                lane.now_serving += 1
                lane.condition.notify_all()
                if lane.now_serving == lane.next_ticket:
                    self._lanes.pop(key, None)

    def pending(self, path: Path) -> int:
        """Number of writers holding or waiting for ``path``."""
        with self._lock:
            lane = self._lanes.get(Path(os.path.abspath(path)))
            return lane.next_ticket - lane.now_serving if lane else 0


class FileStorage:
    """JSON document store rooted at one directory."""

    def __init__(self, root: Path) -> None:
        """Initialize file storage."""
        self.root = Path(root)
        self.settings_path = self.root / "settings.json"
        self.label_notes_path = self.root / "label-notes.json"
        self.planning_path = self.root / "planning.json"
        self.reports_dir = self.root / "reports"
        self.data_dir = self.root / "data"
        self.raw_dir = self.data_dir / "raw"
        self.latest_path = self.data_dir / "latest.json"
        self.meta_path = self.data_dir / "meta.json"
        self.changelog_path = self.data_dir / "changelog.json"
        self._queue = WriteQueue()

    def ensure_directories(self) -> None:
        """Create the directory layout if it doesn't exist."""
        for directory in (self.root, self.data_dir, self.raw_dir, self.reports_dir):
            directory.mkdir(parents=True, exist_ok=True)

    # --- low level ---

    def _write_text(self, path: Path, content: str) -> None:
        with self._queue.slot(path):
            write_atomic(path, content)

    def _write_model(self, path: Path, model: BaseModel) -> None:
        self._write_text(path, model.model_dump_json(indent=2))

    def _load_model(self, path: Path, model_cls: type[M]) -> M | None:
        """Read and validate a document; None when missing or unreadable."""
        try:
            return model_cls.model_validate_json(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Failed to load document", path=str(path), error=str(e))
            return None

    # --- settings ---

    def load_settings(self) -> Settings:
        """Load settings, healing invalid documents. Never raises."""
        try:
            raw = json.loads(self.settings_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("No settings file, using defaults", path=str(self.settings_path))
            return default_settings()
        except (OSError, ValueError) as e:
            logger.warning("Settings load failed, using defaults", error=str(e))
            return default_settings()

        try:
            settings = Settings.model_validate(raw)
        except ValidationError as e:
            logger.warning("Settings validation failed, merging with defaults", error=str(e))
            settings = self._heal_settings(raw)

        migrated = migrate_to_teams(settings)
        if migrated is not settings:
            try:
                self._write_model(self.settings_path, migrated)
                logger.info("Migrated settings to teams", team_id=migrated.teams[0].id)
            except OSError as e:
                logger.warning("Failed to persist migrated settings", error=str(e))
        return migrated

    def _heal_settings(self, raw: Any) -> Settings:
        if not isinstance(raw, dict):
            return default_settings()
        try:
            return Settings.model_validate(merge_with_defaults(raw))
        except ValidationError as e:
            logger.warning("Merged settings still invalid, using defaults", error=str(e))
            return default_settings()

    def save_settings(self, settings: Settings | dict[str, Any]) -> Settings:
        """Validate and persist the whole settings document."""
        try:
            validated = Settings.model_validate(
                settings.model_dump() if isinstance(settings, Settings) else settings
            )
        except ValidationError as e:
            raise SettingsValidationError(f"Invalid settings: {e}") from e

        self._write_model(self.settings_path, validated)
        logger.info("Settings saved", path=str(self.settings_path))
        return validated

    # --- latest batch and snapshots ---

    def save_latest(self, data: StoredData) -> None:
        """Replace the latest batch."""
        validated = StoredData.model_validate(data.model_dump())
        self._write_model(self.latest_path, validated)
        logger.info("Latest data saved", total_count=validated.total_count)

    def get_latest(self) -> StoredData | None:
        return self._load_model(self.latest_path, StoredData)

    def snapshot_path(self, when: datetime) -> Path:
        when = when.astimezone(UTC)
        return self.raw_dir / when.strftime(SNAPSHOT_DIR_FORMAT) / f"{when.strftime(SNAPSHOT_FILE_FORMAT)}.json"

    def save_snapshot(self, data: StoredData, when: datetime | None = None) -> Path:
        """Write an immutable copy of a batch under its date directory."""
        path = self.snapshot_path(when or data.synced_at)
        self._write_model(path, StoredData.model_validate(data.model_dump()))
        logger.info("Snapshot saved", path=str(path))
        return path

    def list_snapshots(self) -> list[Path]:
        if not self.raw_dir.is_dir():
            return []
        return sorted(self.raw_dir.glob("*/*.json"))

    # --- run history ---

    def get_meta(self) -> MetaData:
        return self._load_model(self.meta_path, MetaData) or MetaData()

    def append_history(self, entry: SyncHistoryEntry, last_sync: datetime | None = None) -> MetaData:
        """Prepend a run to the history, keeping the most recent HISTORY_LIMIT."""
        with self._queue.slot(self.meta_path):
            meta = self.get_meta()
            meta.sync_history = [entry, *meta.sync_history][:HISTORY_LIMIT]
            if last_sync is not None:
                meta.last_sync = last_sync
            write_atomic(self.meta_path, meta.model_dump_json(indent=2))
        return meta

    # --- changelog ---

    def get_changelog(self) -> ChangelogData:
        return self._load_model(self.changelog_path, ChangelogData) or ChangelogData()

    def append_changelog(self, entries: list[ChangelogEntry], synced_at: datetime) -> ChangelogData:
        """Prepend new entries, keeping the most recent CHANGELOG_LIMIT."""
        with self._queue.slot(self.changelog_path):
            changelog = self.get_changelog()
            changelog.entries = [*entries, *changelog.entries][:CHANGELOG_LIMIT]
            changelog.synced_at = synced_at
            write_atomic(self.changelog_path, changelog.model_dump_json(indent=2))

        logger.info("Changelog updated", new_entries=len(entries), total_entries=len(changelog.entries))
        return changelog

    # --- reports ---

    @staticmethod
    def sanitize_report_filename(filename: str) -> str:
        """Replace characters that are unsafe in file names and enforce the .md extension."""
        name = UNSAFE_FILENAME_CHARS.sub("_", filename).strip()
        if not name.lower().endswith(REPORT_EXTENSION):
            name = f"{name}{REPORT_EXTENSION}"
        return name

    def _resolve_report_path(self, filename: str) -> Path:
        """Map a report name onto a path inside the reports directory or raise PathSafetyError."""
        if not filename or ".." in filename or "/" in filename or "\\" in filename or "\x00" in filename:
            raise PathSafetyError(f"Unsafe report filename: {filename!r}")

        root = self.reports_dir.resolve()
        path = (root / filename).resolve()
        if path.parent != root:
            raise PathSafetyError(f"Report path escapes reports directory: {filename!r}")
        return path

    def save_report(self, filename: str, content: str) -> str:
        """Store a report and return the sanitized filename it was saved under."""
        name = self.sanitize_report_filename(filename)
        path = self._resolve_report_path(name)
        self._write_text(path, content)
        logger.info("Report saved", filename=name)
        return name

    def get_report(self, filename: str) -> str | None:
        path = self._resolve_report_path(filename)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def delete_report(self, filename: str) -> bool:
        path = self._resolve_report_path(filename)
        with self._queue.slot(path):
            try:
                path.unlink()
            except FileNotFoundError:
                return False
        logger.info("Report deleted", filename=filename)
        return True

    def list_reports(self) -> list[ReportInfo]:
        """Stored reports, newest first."""
        if not self.reports_dir.is_dir():
            return []

        reports = []
        for path in self.reports_dir.glob(f"*{REPORT_EXTENSION}"):
            stat = path.stat()
            reports.append(
                ReportInfo(
                    filename=path.name,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, UTC),
                )
            )
        return sorted(reports, key=lambda r: r.modified_at, reverse=True)

    # --- label notes and planning ---

    def load_label_notes(self) -> list[LabelNote]:
        try:
            return _label_notes_adapter.validate_json(self.label_notes_path.read_bytes())
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.warning("Failed to load label notes", error=str(e))
            return []

    def save_label_notes(self, notes: list[LabelNote] | list[dict[str, Any]]) -> list[LabelNote]:
        try:
            validated = _label_notes_adapter.validate_python(
                [n.model_dump() if isinstance(n, LabelNote) else n for n in notes]
            )
        except ValidationError as e:
            raise StorageError(f"Invalid label notes: {e}") from e

        self._write_text(self.label_notes_path, _label_notes_adapter.dump_json(validated, indent=2).decode())
        return validated

    def load_planning(self) -> PlanningDocument:
        return self._load_model(self.planning_path, PlanningDocument) or PlanningDocument()

    def save_planning(self, document: PlanningDocument | dict[str, Any]) -> PlanningDocument:
        try:
            validated = PlanningDocument.model_validate(
                document.model_dump() if isinstance(document, PlanningDocument) else document
            )
        except ValidationError as e:
            raise StorageError(f"Invalid planning document: {e}") from e

        validated.updated_at = datetime.now(UTC)
        self._write_model(self.planning_path, validated)
        return validated

    # --- retention ---

    def cleanup_old_data(self, retention_days: int, now: datetime | None = None) -> list[str]:
        """Remove snapshot directories dated before ``now - retention_days``."""
        if not self.raw_dir.is_dir():
            return []

        cutoff = ((now or datetime.now(UTC)) - timedelta(days=retention_days)).date()
        removed: list[str] = []

        try:
            entries = sorted(self.raw_dir.iterdir())
        except OSError as e:
            logger.warning("Failed to list snapshot directories", path=str(self.raw_dir), error=str(e))
            return removed

        for entry in entries:
            if not entry.is_dir():
                continue
            try:
                entry_date = datetime.strptime(entry.name, SNAPSHOT_DIR_FORMAT).date()
            except ValueError:
                continue

            if entry_date >= cutoff:
                continue

            try:
                shutil.rmtree(entry)
            except OSError as e:
                logger.warning("Failed to remove old snapshot directory", path=str(entry), error=str(e))
                continue

            removed.append(entry.name)
            logger.info("Cleaned up old data", directory=entry.name)

        return removed
