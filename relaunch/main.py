import os
import sys
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import setproctitle

from relaunch.config import MergedSettings, effective_settings
from relaunch.log import setup_logging
from relaunch.supervisor import Supervisor
from relaunch.supervisor.process_utils import describe_current_process
from relaunch.watcher import ChangeWatcher, WatchSetupError

log = logging.getLogger("relaunch")


def parse_args(argv: List[str], config: MergedSettings) -> Tuple[str, bool]:
    """
    Parses `[TARGET] [--verbose]`.

    :return tuple: The target file name and whether verbose logging is on.
    :raises ValueError: If TARGET is not a bare file name in the watched directory.
    """
    args = list(argv)
    verbose = config.VERBOSE_LOGGING
    if "--verbose" in args:
        verbose = True
        args.remove("--verbose")
    target = args[0] if args else config.DEFAULT_TARGET
    # Events are matched on the bare entry name of a non-recursive watch.
    if not target or Path(target).parent != Path("."):
        raise ValueError(f"Target '{target}' must be a file name in the current directory, without a directory part.")
    return Path(target).name, verbose


def build_supervisor(target: str, config: MergedSettings) -> Supervisor:
    """Creates the Supervisor for `target` using the configured runtime and options."""
    return Supervisor(
        command=[config.RUNTIME_EXECUTABLE, target],
        env={config.CHILD_OPTS_VAR: config.CHILD_OPTS},
        kill_timeout=config.KILL_TIMEOUT,
    )


def build_watcher(target: str, supervisor: Supervisor, config: MergedSettings) -> ChangeWatcher:
    """Creates the ChangeWatcher that reloads `supervisor` when `target` changes."""
    return ChangeWatcher(
        directory=config.WATCH_DIR,
        file_name=target,
        on_trigger=supervisor.reload,
        debounce=config.debounce_seconds,
        poll_interval=config.poll_interval_seconds,
    )


def main(argv: Optional[List[str]] = None, config: MergedSettings = effective_settings) -> int:
    """
    The main entry point. Runs until interrupted.

    :return int: The process exit code.
    """
    try:
        target, verbose = parse_args(sys.argv[1:] if argv is None else argv, config)
    except ValueError as e:
        setup_logging(logging.INFO)
        log.critical(f"Startup failed: {e}")
        return 2
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    setproctitle.setproctitle(config.PROCESS_TITLE)

    log.info(f"Running with {config.CHILD_OPTS_VAR}: {os.getenv(config.CHILD_OPTS_VAR)}")
    log.info(f"Memory usage: {describe_current_process()}")
    if not (config.WATCH_DIR / target).is_file():
        log.warning(f"Target '{target}' does not exist yet in {config.WATCH_DIR.resolve()}.")

    supervisor = build_supervisor(target, config)
    watcher = build_watcher(target, supervisor, config)

    try:
        watcher.arm()
    except WatchSetupError as e:
        log.critical(f"Startup failed: {e}")
        return 1

    supervisor.start()
    thread = watcher.start()
    try:
        while thread.is_alive():
            thread.join(timeout=0.5)
    except KeyboardInterrupt:
        log.info("Interrupted. Shutting down...")
    finally:
        watcher.stop()
        thread.join()
        supervisor.stop()

    if watcher.failure is not None:
        log.critical(f"Exiting because the change watcher failed: {watcher.failure}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
