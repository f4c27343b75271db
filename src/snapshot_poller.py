"""Background snapshot polls and backend commands, handed back to the main thread via a queue."""
import threading
from dataclasses import dataclass
from queue import Queue, Empty
from typing import Any, Callable, List, Optional

try:
    from .logger import get_logger
except ImportError:
    from logger import get_logger

logger = get_logger(__name__)


@dataclass
class PollResult:
    generation: int
    data: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CommandResult:
    label: str
    on_done: Callable[['CommandResult'], None]
    value: Any = None
    error: Optional[Exception] = None


class SnapshotPoller:
    """Runs snapshot fetches on worker threads. Only the newest request's result is delivered."""

    def __init__(self, fetch: Callable[[], Any]):
        """
        Initialize the poller.

        Args:
            fetch: Blocking call returning the raw snapshot (raises on failure)
        """
        self.fetch = fetch
        self.result_queue = Queue()
        self.generation = 0
        self._threads: List[threading.Thread] = []

    def request(self) -> int:
        """
        Start a poll, superseding any that is still pending.

        Returns:
            Generation number of the new poll
        """
        self.generation += 1
        generation = self.generation
        thread = threading.Thread(target=self._run, args=(generation,), daemon=True)
        self._threads = [t for t in self._threads if t.is_alive()] + [thread]
        thread.start()
        logger.debug(f"[POLL] Started poll #{generation}")
        return generation

    def cancel(self) -> None:
        """Discard the result of whatever poll is in flight."""
        self.generation += 1

    def wait(self, timeout: Optional[float] = None) -> None:
        """Join the worker threads (tests and shutdown)."""
        for thread in list(self._threads):
            thread.join(timeout=timeout)

    def _run(self, generation: int) -> None:
        try:
            data = self.fetch()
        except Exception as e:
            self.result_queue.put(PollResult(generation, error=e))
            return
        self.result_queue.put(PollResult(generation, data=data))

    def drain(self) -> List[PollResult]:
        """
        Collect finished polls. Call from the main thread.

        Returns:
            Results of the current generation (stale ones are dropped)
        """
        results = []
        while True:
            try:
                result = self.result_queue.get_nowait()
            except Empty:
                break
            if result.generation != self.generation:
                logger.debug(f"[POLL] Discarding stale poll #{result.generation} (current #{self.generation})")
                continue
            results.append(result)
        return results


class CommandRunner:
    """Runs backend commands off the main thread and queues their completions."""

    def __init__(self):
        self.result_queue = Queue()

    def submit(self, label: str, call: Callable[[], Any],
               on_done: Callable[[CommandResult], None]) -> threading.Thread:
        """
        Run call on a worker thread. on_done receives the CommandResult on the main thread.

        Returns:
            The worker thread
        """
        def _run():
            try:
                value = call()
            except Exception as e:
                self.result_queue.put(CommandResult(label, on_done, error=e))
                return
            self.result_queue.put(CommandResult(label, on_done, value=value))

        logger.debug(f"[API] Submitting command: {label}")
        thread = threading.Thread(target=_run, daemon=True)
        thread.start()
        return thread

    def drain(self, limit: int = 10) -> int:
        """Deliver finished commands to their callbacks. Returns how many were delivered."""
        delivered = 0
        while delivered < limit:
            try:
                result = self.result_queue.get_nowait()
            except Empty:
                break
            delivered += 1
            try:
                result.on_done(result)
            except Exception as e:
                logger.error(f"[API] Completion handler for '{result.label}' failed: {e}", exc_info=True)
        return delivered
