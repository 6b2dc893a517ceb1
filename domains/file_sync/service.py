#!/usr/bin/env python3
"""
File sync service.

Watches the configured sync directory and turns every change into a
``FileCommand`` that is recorded for undo and executed asynchronously.
Runs until interrupted; SIGUSR1 undoes the last command and SIGUSR2 undoes
all of them.
"""

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from loguru import logger

from app.utils.config import ConfigurationError, Settings, get_settings, validate_sync_dir
from app.utils.logging_setup import configure_logging
from domains.file_sync.commands.file_command import classify_event
from domains.file_sync.commands.manager import CommandManager
from domains.file_sync.watchers.filesystem import RecursiveWatcher, WatchEvent, WatcherError


class ServiceNotStartedError(RuntimeError):
    """Raised when undo is requested before the service started."""


class FileSyncService:
    """Runs the watcher on its own thread and feeds the command manager."""

    def __init__(self, settings: Settings, log=None, observer_factory=None):
        """
        Initialize file sync service.

        Args:
            settings: Application settings
            log: Optional loguru logger, defaults to the process logger
            observer_factory: Optional watchdog observer factory
        """
        self.settings = settings
        self.log = log or logger
        self.sync_dir: Optional[Path] = None
        self.manager: Optional[CommandManager] = None

        watcher_kwargs = {"ignore_patterns": settings.get_ignore_patterns(), "log": self.log}
        if observer_factory is not None:
            watcher_kwargs["observer_factory"] = observer_factory
        self.watcher = RecursiveWatcher(**watcher_kwargs)

        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None
        self._done = threading.Event()

    def start(self, timeout: float = 30.0) -> None:
        """
        Validate configuration and start watching in the background.

        Returns once the initial directory walk completed.

        Raises:
            ConfigurationError: If the sync directory is unusable
            WatcherError: If the watcher could not start
        """
        self.sync_dir = validate_sync_dir(self.settings.sync_dir)
        self.log.info(f"Sync directory: {self.sync_dir}")

        self.manager = CommandManager(
            buffer_size=self.settings.queue_buffer_size,
            workers=self.settings.queue_workers,
            history_limit=self.settings.history_limit,
            log=self.log,
        )

        self._thread = threading.Thread(target=self._run, name="fsync-watcher", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self.watcher.wait_until_ready(0.1):
            if self._done.is_set() or time.monotonic() > deadline:
                break
        if self._error is not None:
            raise self._error

        self.log.success("File sync service started")

    def _run(self) -> None:
        try:
            self.watcher.watch(self.sync_dir, self.handle_event)
        except WatcherError as e:
            self._error = e
            self.log.error(f"Failed to watch {self.sync_dir}: {e}")
        finally:
            # Stop the queue whenever the watch loop ends
            self.manager.stop()
            self._done.set()

    def handle_event(self, event: WatchEvent) -> None:
        """Classify a watch event and record the resulting command."""
        command = classify_event(event, log=self.log)
        if command is None:
            return
        self.manager.add_command(command)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop watching and wait for the command workers to finish."""
        self.watcher.stop()
        if self._thread is not None:
            self._thread.join(timeout)
        self.log.info("File sync service stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the watch loop ended."""
        return self._done.wait(timeout)

    def undo_last_action(self) -> None:
        """Undo the most recent command."""
        if self.manager is None:
            raise ServiceNotStartedError("Command manager not initialized")
        self.manager.undo_last()

    def undo_all_actions(self) -> None:
        """Undo every recorded command."""
        if self.manager is None:
            raise ServiceNotStartedError("Command manager not initialized")
        self.manager.undo_all()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Watch a directory and turn every change into an undoable command.",
    )
    parser.add_argument(
        "--sync-dir",
        type=Path,
        default=None,
        help="Directory to watch (default: FSYNC_SYNC_DIR).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of command worker threads (default: FSYNC_QUEUE_WORKERS or 2).",
    )
    parser.add_argument(
        "--buffer-size",
        type=int,
        default=None,
        help="Capacity of the command queue (default: FSYNC_QUEUE_BUFFER_SIZE or 100).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply CLI overrides on top of the environment settings."""
    overrides = {
        "sync_dir": args.sync_dir,
        "queue_workers": args.workers,
        "queue_buffer_size": args.buffer_size,
        "log_level": args.log_level,
        "log_file": args.log_file,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    try:
        if not overrides:
            return get_settings()
        return Settings(**overrides)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI."""

    args = parse_args(argv)

    try:
        settings = build_settings(args)
    except ConfigurationError as e:
        configure_logging()
        logger.error(str(e))
        return 2

    configure_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
        compression=settings.log_compression,
    )
    logger.info("File Sync - Directory Watcher")

    service = FileSyncService(settings)
    try:
        service.start()
    except ConfigurationError as e:
        logger.error(str(e))
        return 2
    except WatcherError as e:
        logger.error(f"File sync service failed: {e}")
        return 1

    stop_event = threading.Event()

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    def _undo_handler(signum, frame):  # noqa: D401
        # Undo errors are logged, never raised from the handler
        try:
            if signum == signal.SIGUSR1:
                service.undo_last_action()
            else:
                service.undo_all_actions()
        except Exception as e:
            logger.error(f"Undo failed: {e}")

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, _undo_handler)
        signal.signal(signal.SIGUSR2, _undo_handler)

    try:
        while not stop_event.is_set() and not service.wait(1.0):
            pass
    finally:
        service.stop()

    logger.info("File sync service stopped.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
