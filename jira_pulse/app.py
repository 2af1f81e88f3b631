"""Process entry point for the jira-pulse sync service."""

import signal
import sys
import threading

import structlog

from .config import load_config
from .context import AppContext
from .credentials import EnvCredentialStore
from .logging_config import configure_logging
from .models import SyncProgress, SyncResult

logger = structlog.get_logger()


class LoggingObserver:
    """Reports sync progress and completion to the log."""

    def on_progress(self, progress: SyncProgress) -> None:
        logger.debug(
            "Sync progress",
            current=progress.current,
            total=progress.total,
            percentage=progress.percentage,
        )

    def on_complete(self, result: SyncResult) -> None:
        logger.info(
            "Sync finished",
            issue_count=result.issue_count,
            duration_ms=result.duration_ms,
        )


def run_once(context: AppContext) -> int:
    """Run one manual sync and return a process exit code."""
    result = context.trigger_manual_sync()
    if not result.success:
        logger.error("Manual sync failed", error=result.error)
        return 1
    return 0


def serve(context: AppContext) -> int:
    """Start the schedulers and block until SIGINT or SIGTERM."""
    stop = threading.Event()

    def _handle_signal(signum: int, frame: object) -> None:
        logger.info("Shutdown requested", signal=signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    context.start()
    status = context.get_status()
    logger.info(
        "jira-pulse running",
        data_dir=str(context.config.data_dir),
        last_sync=status.last_sync.isoformat() if status.last_sync else None,
    )

    stop.wait()
    return 0


def main() -> None:
    """Run the service, or a single sync with ``jira-pulse sync``."""
    config = load_config()
    configure_logging(config.log_level)

    command = sys.argv[1].lower() if len(sys.argv) > 1 else "serve"
    if command not in ("serve", "sync"):
        print(f"Unknown command: {command}")  # noqa: T201
        print("Usage: jira-pulse [serve|sync]")  # noqa: T201
        sys.exit(2)

    context = AppContext.create(config, EnvCredentialStore(), observer=LoggingObserver())
    try:
        exit_code = run_once(context) if command == "sync" else serve(context)
    finally:
        context.shutdown()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
