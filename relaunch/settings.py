"""
This module contains the configuration settings for the relaunch supervisor.
It defines the child launch contract, the watch parameters and logging defaults.
Values are read from the environment (and a local .env file) at import time.
"""

import os
import sys
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

#* --- Core Paths ---
WATCH_DIR = pathlib.Path(".")
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("RELAUNCH_OVERRIDES", ".relaunch.json"))

#* --- Child Process Settings ---
DEFAULT_TARGET = "app.py"
# The interpreter running the launcher is used for the child unless overridden.
RUNTIME_EXECUTABLE = os.getenv("RELAUNCH_RUNTIME", sys.executable)
CHILD_OPTS_VAR = "PYTHON_OPTS"
CHILD_OPTS = os.getenv("APP_PYTHON_OPTS", "-X dev")
KILL_TIMEOUT = float(os.getenv("RELAUNCH_KILL_TIMEOUT", "5"))  # seconds

#* --- Watcher Settings ---
DEBOUNCE_MS = int(os.getenv("RELAUNCH_DEBOUNCE_MS", "0"))
POLL_INTERVAL_MS = int(os.getenv("RELAUNCH_POLL_INTERVAL_MS", "150"))

#* --- Logging ---
VERBOSE_LOGGING = os.getenv("RELAUNCH_VERBOSE", "False").lower() in ('true', '1', 't')
PROCESS_TITLE = "Relaunch - Supervisor"

#* --- MODIFIABLE SETTINGS (Changeable via the overrides JSON file) ---
MODIFIABLE_SETTINGS = {
    "DEBOUNCE_MS", "POLL_INTERVAL_MS", "KILL_TIMEOUT",
    "CHILD_OPTS", "RUNTIME_EXECUTABLE", "VERBOSE_LOGGING",
}
