import json
import logging
from pathlib import Path
from typing import Optional

import relaunch.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Merges the default settings with JSON overrides.

    Precedence, lowest first:
    1. Base values from `settings.py`.
    2. Environment and `.env` values (already applied in settings.py).
    3. Overrides from the JSON file for keys listed in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        """Initializes the settings object by loading defaults and overrides."""
        self.OVERRIDES_JSON_PATH: Path = Path(overrides_path or default_settings.OVERRIDES_JSON_PATH)

        self._load_defaults()
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module."""
        for key in dir(default_settings):
            if key.isupper() and key != "OVERRIDES_JSON_PATH":
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self) -> None:
        """
        Applies settings from the overrides file, if there is one.

        Only keys in `MODIFIABLE_SETTINGS` are honoured. Values are coerced to
        the type of the default they replace.
        """
        if not self.OVERRIDES_JSON_PATH.is_file():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return

        log.info(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue

            original_value = getattr(self, key)
            try:
                if isinstance(original_value, bool):
                    new_value = str(value).lower() in ('true', '1', 't', 'yes', 'y')
                elif original_value is not None:
                    new_value = type(original_value)(value)
                else:
                    new_value = value
            except (ValueError, TypeError) as e:
                log.error(f"Could not convert value '{value}' for key '{key}'. Error: {e}")
                continue

            setattr(self, key, new_value)
            log.debug(f"Overridden setting: {key} = {new_value}")

    @property
    def debounce_seconds(self) -> float:
        return max(self.DEBOUNCE_MS, 0) / 1000.0

    @property
    def poll_interval_seconds(self) -> float:
        return max(self.POLL_INTERVAL_MS, 1) / 1000.0


# A singleton instance to be imported by other modules
effective_settings = MergedSettings()
