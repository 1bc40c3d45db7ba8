import logging
import subprocess
import threading
from types import MappingProxyType
from typing import List, Mapping, Optional

from relaunch.supervisor import process_utils

log = logging.getLogger(__name__)


class IllegalStateError(RuntimeError):
    """Raised when a lifecycle operation is called from a state that forbids it."""


class Supervisor:
    """
    Owns the single child-process slot and every transition of it.

    `start`, `restart`, `reload` and `stop` hold the slot lock for their whole
    transition. Reaper threads only take it to clear a handle that exited on
    its own.
    """

    def __init__(self, command: List[str], env: Optional[Mapping[str, str]] = None,
                 kill_timeout: Optional[float] = 5.0) -> None:
        """
        :param command: The executable followed by its arguments.
        :param env: Variables laid over the launcher's environment for the child.
        :param kill_timeout: Seconds to wait for a killed child before warning.
        """
        if not command:
            raise ValueError("Supervisor needs a non-empty command to launch.")
        self.command: List[str] = list(command)
        self.env: Mapping[str, str] = MappingProxyType(dict(env or {}))
        self.kill_timeout = kill_timeout

        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.RLock()
        self.restart_count = 0

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None

    def start(self) -> bool:
        """
        Launches the child if none is tracked.

        A spawn failure is logged and leaves the slot empty. It is not retried.

        :return: True if a new child was spawned, False otherwise.
        """
        with self._lock:
            if self._process is not None:
                log.warning(f"Child is already running (PID: {self._process.pid}). Use restart instead.")
                return False

            log.info(f"Starting child: {' '.join(self.command)}")
            try:
                process = process_utils.spawn_process(self.command, self.env)
            except (OSError, ValueError) as e:
                log.error(f"Could not run command {self.command}: {e}", exc_info=True)
                return False

            self._process = process
            process_utils.start_reaper(process, self._on_child_exit)
            log.info(f"Child started with PID: {process.pid}")
            return True

    def restart(self) -> bool:
        """
        Kills the tracked child and launches a fresh one.

        The old process is confirmed dead before the new one is spawned.

        :return: The result of the relaunch, as for `start`.
        :raises IllegalStateError: If no child is tracked.
        """
        with self._lock:
            if self._process is None:
                raise IllegalStateError("restart() called with no running child; call start() first.")

            self._kill_tracked()
            self.restart_count += 1
            log.info(f"Restart #{self.restart_count}")
            return self.start()

    def reload(self) -> bool:
        """
        Restarts the child if one is tracked, otherwise starts one.

        This is the change trigger: a child that failed to spawn or already
        exited is simply launched again.
        """
        with self._lock:
            if self._process is None:
                log.info("No child is running. Starting a fresh one.")
                return self.start()
            return self.restart()

    def stop(self) -> None:
        """Kills the tracked child, if any."""
        with self._lock:
            if self._process is None:
                log.debug("Stop requested but no child is running.")
                return
            self._kill_tracked()

    def _kill_tracked(self) -> None:
        """Kills the tracked child and empties the slot. Caller holds the lock."""
        process = self._process
        log.info(f"Killing child (PID: {process.pid})...")
        try:
            returncode = process_utils.kill_process_tree(process, timeout=self.kill_timeout)
        except subprocess.TimeoutExpired:
            log.warning(f"Child (PID: {process.pid}) did not exit within {self.kill_timeout}s of SIGKILL. Still waiting...")
            returncode = process.wait()
        self._process = None
        log.info(f"Child (PID: {process.pid}) terminated with exit code {returncode}.")

    def _on_child_exit(self, process: subprocess.Popen, returncode: int) -> None:
        """Reaper callback. Empties the slot only if it still holds `process`."""
        with self._lock:
            if self._process is process:
                self._process = None
                log.info(f"Child (PID: {process.pid}) exited on its own with code {returncode}. Waiting for changes...")
            else:
                log.debug(f"Reaped replaced child (PID: {process.pid}).")
