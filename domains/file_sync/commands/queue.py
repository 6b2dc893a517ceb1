"""
Bounded command queue drained by a fixed pool of worker threads.

The producer side never blocks: when the buffer is full, or once the queue
is stopping, a command is dropped with a warning instead of waiting for room.
"""

import queue
import threading
import time
from dataclasses import asdict, dataclass
from typing import List, Optional

from loguru import logger

from app.utils.config import ConfigurationError
from domains.file_sync.commands.base import Command

# Placed once per worker on stop; a worker exits when it takes one.
_SHUTDOWN = object()


@dataclass
class QueueStats:
    """Counters emitted by the queue for observability."""

    admitted: int = 0
    dropped: int = 0
    executed: int = 0
    failed: int = 0
    discarded: int = 0


class CommandQueue:
    """Fixed-capacity buffer of pending commands plus a fixed worker pool."""

    def __init__(self, capacity: int, workers: int, log=None):
        """
        Create the queue and start its workers.

        Args:
            capacity: Maximum number of commands waiting for a worker
            workers: Number of worker threads
            log: Optional loguru logger, defaults to the process logger

        Raises:
            ConfigurationError: If capacity or workers is below 1
        """
        if capacity < 1:
            raise ConfigurationError(f"Queue capacity must be at least 1, got {capacity}")
        if workers < 1:
            raise ConfigurationError(f"Worker count must be at least 1, got {workers}")

        self.capacity = capacity
        self.worker_count = workers
        self.log = (log or logger).bind(component="command_queue")

        self._commands: queue.Queue = queue.Queue(maxsize=capacity)
        self._state_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = QueueStats()
        self._stopping = False
        self._stopped = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._shutdown_owed = workers

        self._workers: List[threading.Thread] = []
        for worker_id in range(workers):
            thread = threading.Thread(
                target=self._worker,
                args=(worker_id,),
                name=f"command-worker-{worker_id}",
                daemon=True,
            )
            thread.start()
            self._workers.append(thread)

        self.log.info(f"Command queue started (capacity={capacity}, workers={workers})")

    def enqueue(self, command: Command) -> bool:
        """
        Try to admit ``command`` without blocking.

        Returns:
            True if the command was admitted, False if it was dropped
        """
        description = command.describe()

        with self._state_lock:
            if self._stopping:
                admitted = False
                reason = "queue stopped"
            else:
                try:
                    self._commands.put_nowait(command)
                    admitted = True
                except queue.Full:
                    admitted = False
                    reason = "queue full"

        with self._stats_lock:
            if admitted:
                self._stats.admitted += 1
            else:
                self._stats.dropped += 1

        if admitted:
            self.log.bind(command_desc=description).debug(f"Command queued: {description}")
        else:
            self.log.bind(command_desc=description).warning(
                f"Dropping command, {reason}: {description}"
            )
        return admitted

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting commands and wait for every worker to exit.

        Commands already running finish; commands still waiting in the buffer
        are discarded. If ``timeout`` expires first the queue is not marked
        stopped, and calling ``stop`` again resumes the shutdown.
        """
        with self._state_lock:
            first_call = not self._stopping
            self._stopping = True
        if self._stopped.is_set():
            return

        deadline = None if timeout is None else time.monotonic() + timeout

        if first_call:
            discarded = self._discard_pending()
            if discarded:
                self.log.warning(f"Discarded {discarded} pending commands on shutdown")

        self._send_shutdown(deadline)
        for thread in self._workers:
            thread.join(_remaining(deadline))

        alive = self.alive_workers()
        if alive:
            self.log.bind(alive_workers=alive).warning(
                f"{alive} workers still running after stop timeout"
            )
            return

        with self._state_lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
        self.log.bind(**asdict(self.stats())).info("Command queue stopped gracefully")

    @property
    def stopped(self) -> bool:
        """True once every worker has exited."""
        return self._stopped.is_set()

    def stats(self) -> QueueStats:
        """Return a copy of the queue counters."""
        with self._stats_lock:
            return QueueStats(**asdict(self._stats))

    def alive_workers(self) -> int:
        """Number of worker threads still running."""
        return sum(1 for thread in self._workers if thread.is_alive())

    def _discard_pending(self) -> int:
        discarded = 0
        while True:
            try:
                item = self._commands.get_nowait()
            except queue.Empty:
                break
            if item is _SHUTDOWN:
                # Taken from a concurrent stop call, send it again
                with self._state_lock:
                    self._shutdown_owed += 1
                continue
            discarded += 1
            self.log.bind(command_desc=item.describe()).debug(
                f"Discarding pending command: {item.describe()}"
            )
        with self._stats_lock:
            self._stats.discarded += discarded
        return discarded

    def _send_shutdown(self, deadline: Optional[float]) -> None:
        # One sentinel per worker overall, however many times stop is called
        wait = -1 if deadline is None else _remaining(deadline)
        if not self._shutdown_lock.acquire(timeout=wait):
            return
        try:
            while self._shutdown_owed:
                try:
                    self._commands.put(_SHUTDOWN, timeout=_remaining(deadline))
                except queue.Full:
                    self.log.warning("Command buffer still full, shutdown signal not delivered")
                    return
                with self._state_lock:
                    self._shutdown_owed -= 1
        finally:
            self._shutdown_lock.release()

    def _worker(self, worker_id: int) -> None:
        log = self.log.bind(worker_id=worker_id)
        log.debug(f"Worker {worker_id} started")

        while True:
            command = self._commands.get()
            if command is _SHUTDOWN:
                log.info(f"Worker {worker_id} received shutdown signal")
                return

            description = command.describe()
            log.bind(command_desc=description).debug(f"Worker {worker_id} executing: {description}")
            try:
                command.execute()
            except Exception as e:
                with self._stats_lock:
                    self._stats.failed += 1
                log.bind(command_desc=description, error=str(e)).error(
                    f"Worker {worker_id} failed to execute command: {description}: {e}"
                )
                continue

            with self._stats_lock:
                self._stats.executed += 1
            log.bind(command_desc=description).debug(f"Worker {worker_id} finished: {description}")


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())
