import os
import psutil
import logging
import threading
import subprocess
from typing import Callable, List, Mapping, Optional

log = logging.getLogger(__name__)


#* --- Process Creation ---
def build_child_env(overlay: Mapping[str, str]) -> dict:
    """Returns a copy of the launcher's environment with `overlay` applied on top."""
    env = dict(os.environ)
    env.update(overlay)
    return env

def spawn_process(command: List[str], env: Mapping[str, str]) -> subprocess.Popen:
    """
    Spawns `command` with inherited standard streams in the current directory.

    :param command: The executable followed by its arguments.
    :param env: Variables laid over the launcher's own environment.
    :return: The Popen handle of the new process.
    :raises OSError: If the OS refuses to create the process.
    """
    # stdin/stdout/stderr left as None: the child shares the launcher's terminal.
    return subprocess.Popen(command, env=build_child_env(env), cwd=os.getcwd())

def start_reaper(process: subprocess.Popen, on_exit: Callable[[subprocess.Popen, int], None]) -> threading.Thread:
    """
    Starts a daemon thread that waits for `process` to exit and then calls
    `on_exit(process, returncode)`.
    """
    def _reap() -> None:
        returncode = process.wait()
        on_exit(process, returncode)

    reaper = threading.Thread(target=_reap, daemon=True, name=f"Reaper-{process.pid}")
    reaper.start()
    return reaper


#* --- Process Termination ---
def _descendants(pid: int) -> List[psutil.Process]:
    """Returns the live descendants of `pid`, or an empty list if it is gone."""
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.NoSuchProcess:
        return []

def _kill_all(processes: List[psutil.Process]) -> None:
    """Sends SIGKILL to every process in the list."""
    for proc in processes:
        try:
            log.debug(f"Killing descendant process (PID {proc.pid})")
            proc.kill()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping kill.")
            continue

def kill_process_tree(process: subprocess.Popen, timeout: Optional[float] = None) -> int:
    """
    Forcefully kills `process` and its descendants, then waits for the
    process itself to exit.

    Descendants are collected before the parent dies so orphans are not lost
    to re-parenting.

    :param process: The Popen handle of the child to kill.
    :param timeout: Seconds to wait for exit, or None to wait indefinitely.
    :return: The exit code reported for `process`.
    :raises subprocess.TimeoutExpired: If the process outlives `timeout`.
    """
    if process.poll() is not None:
        # Already reaped: the PID may belong to an unrelated process by now.
        return process.returncode

    descendants = _descendants(process.pid)
    _kill_all(descendants)

    process.kill()
    returncode = process.wait(timeout=timeout)

    if descendants:
        _, alive = psutil.wait_procs(descendants, timeout=timeout)
        for proc in alive:
            log.warning(f"Descendant process {proc.pid} survived SIGKILL.")
    return returncode


#* --- Diagnostics ---
def describe_current_process() -> str:
    """Returns a short memory summary of the launcher process itself."""
    try:
        mem = psutil.Process().memory_info()
        return f"PID {os.getpid()}, rss={mem.rss // 1024} KiB, vms={mem.vms // 1024} KiB"
    except psutil.Error as e:
        return f"PID {os.getpid()} (memory info unavailable: {e})"
