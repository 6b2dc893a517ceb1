"""
Command manager: undo history plus asynchronous execution.

Every command handed to ``add_command`` is recorded in the history and then
offered to the queue. History entries mean "requested": a recorded command
may still be waiting, running, failed, or dropped by a full queue.
"""

import threading
from collections import deque
from typing import Deque, List, Optional

from loguru import logger

from domains.file_sync.commands.base import Command, CommandError
from domains.file_sync.commands.queue import CommandQueue


class CommandManager:
    """Owns the command queue and the undo history."""

    def __init__(
        self,
        buffer_size: int,
        workers: int,
        history_limit: Optional[int] = None,
        log=None,
    ):
        """
        Initialize command manager.

        Args:
            buffer_size: Capacity of the command queue
            workers: Number of queue workers
            history_limit: Keep at most this many history entries, oldest dropped first
            log: Optional loguru logger, defaults to the process logger
        """
        self.log = (log or logger).bind(component="command_manager")
        self.queue = CommandQueue(buffer_size, workers, log=log)
        self.history_limit = history_limit

        self._history: Deque[Command] = deque(maxlen=history_limit)
        self._lock = threading.Lock()

    def add_command(self, command: Command) -> bool:
        """
        Record ``command`` in the history and hand it to the queue.

        Returns:
            True if the queue admitted the command
        """
        with self._lock:
            self._history.append(command)

        admitted = self.queue.enqueue(command)
        if admitted:
            self.log.bind(description=command.describe()).info(
                f"Command queued for execution: {command.describe()}"
            )
        return admitted

    def undo_last(self) -> None:
        """
        Undo the most recent command.

        The entry leaves the history even if its undo fails. An empty history
        is a no-op.

        Raises:
            Exception: Whatever the command's undo raised
        """
        with self._lock:
            if not self._history:
                self.log.info("No commands to undo")
                return
            command = self._history.pop()

        self.log.bind(description=command.describe()).info(f"Undoing last command: {command.describe()}")
        try:
            command.undo()
        except Exception as e:
            self.log.bind(description=command.describe(), error=str(e)).error(
                f"Failed to undo command: {command.describe()}: {e}"
            )
            raise

    def undo_all(self) -> None:
        """
        Undo every command, newest first, then clear the history.

        A failing undo does not stop the remaining ones.

        Raises:
            CommandError: If one or more undos failed, chained to the first failure
        """
        with self._lock:
            commands = list(self._history)
            self._history.clear()

        if not commands:
            self.log.info("No commands to undo")
            return

        failures: List[Exception] = []
        for command in reversed(commands):
            self.log.bind(description=command.describe()).info(f"Undoing command: {command.describe()}")
            try:
                command.undo()
            except Exception as e:
                failures.append(e)
                self.log.bind(description=command.describe(), error=str(e)).error(
                    f"Failed to undo command: {command.describe()}: {e}"
                )

        if failures:
            raise CommandError(
                f"{len(failures)} of {len(commands)} undo operations failed"
            ) from failures[0]

    def history(self) -> List[Command]:
        """Return a snapshot of the history, oldest first."""
        with self._lock:
            return list(self._history)

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    @property
    def stopped(self) -> bool:
        return self.queue.stopped

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the queue gracefully; history stays available for undo."""
        self.queue.stop(timeout)
        if self.queue.stopped:
            self.log.info("Command manager stopped gracefully")
