import os
import time
import queue
import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from watchdog.observers import Observer
from watchdog.events import FileModifiedEvent, FileSystemEvent, FileSystemEventHandler

log = logging.getLogger(__name__)


class WatchSetupError(RuntimeError):
    """Raised when the filesystem watch cannot be registered."""


class ModifiedEventQueue(FileSystemEventHandler):
    """A watchdog event handler that hands file modifications to the watch loop."""

    def __init__(self, events: "queue.Queue[FileSystemEvent]"):
        super().__init__()
        self.events = events

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.events.put(event)


class ChangeWatcher:
    """
    Turns modifications of one file in one directory into debounced triggers.

    Watchdog's observer thread only enqueues events. Filtering, debouncing
    and the trigger call all happen on the thread running `run()`.
    """

    def __init__(self, directory: Path, file_name: str, on_trigger: Callable[[], object],
                 debounce: float = 0.0, poll_interval: float = 0.15,
                 clock: Callable[[], float] = time.monotonic):
        """
        :param directory: The directory to watch, non-recursively.
        :param file_name: The exact entry name that qualifies as a trigger.
        :param on_trigger: Called once per accepted trigger.
        :param debounce: Seconds that must strictly elapse between accepted triggers.
            Zero fires on every qualifying event.
        :param poll_interval: Upper bound in seconds on each wait for events.
        :param clock: Monotonic time source.
        """
        self.directory = Path(directory)
        self.file_name = file_name
        self.on_trigger = on_trigger
        self.debounce = max(debounce, 0.0)
        self.poll_interval = poll_interval
        self.clock = clock

        self.last_trigger = float("-inf")
        self.failure: Optional[BaseException] = None
        self._events: "queue.Queue[FileSystemEvent]" = queue.Queue()
        self._observer: Optional[Observer] = None
        self._stop_event = threading.Event()

    @property
    def is_armed(self) -> bool:
        return self._observer is not None

    def arm(self) -> None:
        """
        Registers the watchdog observer for modifications in `directory`.

        :raises WatchSetupError: If the directory is missing or cannot be watched.
        """
        if not self.directory.is_dir():
            raise WatchSetupError(f"Cannot watch '{self.directory}': not an existing directory.")

        observer = Observer()
        try:
            observer.schedule(ModifiedEventQueue(self._events), str(self.directory),
                              recursive=False, event_filter=[FileModifiedEvent])
            observer.start()
        except OSError as e:
            raise WatchSetupError(f"Cannot watch '{self.directory}': {e}") from e

        self._observer = observer
        log.info(f"Start change tracking in folder: {self.directory.resolve()} (target: {self.file_name})")

    def disarm(self) -> None:
        """Stops and joins the observer, releasing the OS watch."""
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join()
        log.debug("Change tracking observer stopped.")

    def stop(self) -> None:
        """Asks the loop to exit. It does so within one poll interval."""
        self._stop_event.set()

    def run(self) -> None:
        """Blocking watch loop. Returns after `stop()` is called."""
        if not self.is_armed:
            self.arm()
        try:
            while not self._stop_event.is_set():
                try:
                    batch = self._poll_batch()
                    self._ensure_observer_alive()
                except WatchSetupError:
                    raise
                except Exception as e:
                    log.error(f"Error while polling for changes: {e}", exc_info=True)
                    continue

                if batch:
                    self.process_batch(batch)
        finally:
            self.disarm()

    def start(self) -> threading.Thread:
        """
        Arms the watch on the calling thread (unless already armed), then runs
        the loop on a daemon thread.

        :raises WatchSetupError: If the watch cannot be registered.
        """
        if not self.is_armed:
            self.arm()
        thread = threading.Thread(target=self._run_in_thread, daemon=True, name="ChangeWatcherThread")
        thread.start()
        return thread

    def _run_in_thread(self) -> None:
        try:
            self.run()
        except Exception as e:
            self.failure = e
            log.critical(f"Change watcher stopped due to an error: {e}", exc_info=True)

    def _poll_batch(self) -> List[FileSystemEvent]:
        """Waits up to `poll_interval` for an event, then drains everything queued."""
        try:
            batch = [self._events.get(timeout=self.poll_interval)]
        except queue.Empty:
            return []
        while True:
            try:
                batch.append(self._events.get_nowait())
            except queue.Empty:
                return batch

    def _ensure_observer_alive(self) -> None:
        """Re-arms the watch if the observer thread has died."""
        if self._observer is not None and not self._observer.is_alive():
            log.error("Watchdog observer thread has stopped unexpectedly. Restarting observer.")
            self.disarm()
            self.arm()
            log.info("Observer restarted.")

    def process_batch(self, events: Iterable[FileSystemEvent]) -> int:
        """
        Filters and debounces a batch of events, firing the trigger for each
        one accepted. Events are handled in the order given.

        :param events: Watchdog events as delivered by the observer.
        :return: The number of triggers fired.
        """
        fired = 0
        for event in events:
            name = os.path.basename(os.fsdecode(event.src_path))
            if name != self.file_name:
                continue

            now = self.clock()
            if self.debounce == 0 or now - self.last_trigger > self.debounce:
                log.info(f"Changes detected: {name}")
                self.on_trigger()
                self.last_trigger = self.clock()
                fired += 1
            else:
                log.debug(f"Ignoring change to {name} within the {self.debounce:.3f}s debounce window.")
        return fired
