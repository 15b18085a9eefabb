"""
Configuration management for the station client
"""

import copy
import math
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

import yaml

from .errors import ConfigError

DEFAULT_API_URL = "https://api.sathub.de"
DEFAULT_HEALTH_CHECK_INTERVAL = 300  # seconds
DEFAULT_PROCESS_DELAY = 60  # seconds
DEFAULT_SWEEP_INTERVAL = 60  # seconds
# Upper bound for timing values pushed by the server
MAX_SERVER_INTERVAL = 86400  # seconds
DEFAULT_CONFIG_PATH = "~/.config/sathub-client/config.yaml"


def expand_path(path: str) -> str:
    """Expand a leading ~ to the user's home directory."""
    if path and path.startswith("~"):
        return os.path.expanduser(path)
    return path


def default_config() -> Dict[str, Any]:
    """Return the default configuration tree."""
    home = Path.home()
    return {
        'station': {
            'token': '',
            'api_url': DEFAULT_API_URL,
        },
        'paths': {
            'watch': str(home / 'sathub' / 'data'),
            'processed': str(home / 'sathub' / 'processed'),
        },
        'intervals': {
            'health_check': DEFAULT_HEALTH_CHECK_INTERVAL,
            'process_delay': DEFAULT_PROCESS_DELAY,
            'sweep': DEFAULT_SWEEP_INTERVAL,
        },
        'options': {
            'insecure': False,
            'verbose': False,
        },
    }


class StationConfig:
    """Loads, validates and saves the station configuration YAML file."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, path: Optional[str] = None):
        self.path = expand_path(path) if path else None
        self.config = default_config()
        if data:
            self._merge(data)
        self.logger = logging.getLogger('StationConfig')

    def _merge(self, data: Dict[str, Any]):
        """Overlay the sections found in a loaded file onto the defaults."""
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a mapping at the top level")
        for section, values in data.items():
            if isinstance(values, dict) and isinstance(self.config.get(section), dict):
                self.config[section].update(values)
            else:
                self.config[section] = values

    @classmethod
    def load(cls, path: str) -> "StationConfig":
        """Read and validate a configuration file."""
        expanded = expand_path(path)
        try:
            with open(expanded, 'r') as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"failed to read config file: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse config file: {e}") from e

        config = cls(data, path=expanded)
        config.validate()
        return config

    @classmethod
    def load_or_default(cls, path: str = DEFAULT_CONFIG_PATH) -> "StationConfig":
        """
        Load the configuration, or create a default one if the file does not exist.

        A freshly written default file has no station token, so it is
        returned without validation; the caller decides what to do about it.
        """
        expanded = expand_path(path)
        if os.path.exists(expanded):
            return cls.load(expanded)

        config = cls(path=expanded)
        try:
            config.save()
            config.logger.warning(f"Created default config file at {expanded}, please set your station token")
        except ConfigError as e:
            config.logger.warning(f"Could not create default config file: {e}")
        return config

    def save(self, path: Optional[str] = None):
        """Write the configuration to disk with owner-only permissions."""
        target = expand_path(path) if path else self.path
        if not target:
            raise ConfigError("no config path to save to")

        try:
            Path(target).parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w') as f:
                yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"failed to write config file: {e}") from e

    def validate(self):
        """Raise ConfigError if a required field is missing or out of range."""
        if not self.token:
            raise ConfigError("station token is required")
        if not self.api_url:
            raise ConfigError("api_url is required")
        if not self.watch_paths:
            raise ConfigError("watch path is required")
        if not self.get('paths', 'processed'):
            raise ConfigError("processed path is required")
        if self.health_check_interval <= 0:
            raise ConfigError("health_check interval must be positive")
        if self.process_delay <= 0:
            raise ConfigError("process_delay must be positive")
        if self.sweep_interval <= 0:
            raise ConfigError("sweep interval must be positive")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        values = self.config.get(section) or {}
        return values.get(key, default)

    def get_int(self, section: str, key: str, default: int = 0) -> int:
        """Get configuration value as integer."""
        try:
            return int(self.get(section, key, default))
        except (ValueError, TypeError):
            return default

    def get_bool(self, section: str, key: str, default: bool = False) -> bool:
        """Get configuration value as boolean."""
        value = self.get(section, key, default)
        if isinstance(value, bool):
            return value
        return str(value).lower() in ('true', '1', 'yes', 'on')

    @property
    def token(self) -> str:
        return str(self.get('station', 'token') or '')

    @property
    def api_url(self) -> str:
        return str(self.get('station', 'api_url') or '')

    @property
    def watch_paths(self) -> List[Path]:
        watch = self.get('paths', 'watch')
        if not watch:
            return []
        if isinstance(watch, str):
            watch = watch.split(',')
        return [Path(expand_path(str(p).strip())) for p in watch if str(p).strip()]

    @property
    def processed_dir(self) -> Path:
        return Path(expand_path(str(self.get('paths', 'processed') or '')))

    @property
    def health_check_interval(self) -> int:
        return self.get_int('intervals', 'health_check', DEFAULT_HEALTH_CHECK_INTERVAL)

    @property
    def process_delay(self) -> int:
        return self.get_int('intervals', 'process_delay', DEFAULT_PROCESS_DELAY)

    @property
    def sweep_interval(self) -> int:
        return self.get_int('intervals', 'sweep', DEFAULT_SWEEP_INTERVAL)

    @property
    def insecure(self) -> bool:
        return self.get_bool('options', 'insecure')

    @property
    def verbose(self) -> bool:
        return self.get_bool('options', 'verbose')

    def update_intervals(self, health_check: int, process_delay: int):
        """Overwrite the timing section, e.g. after a settings update from the server."""
        self.config['intervals']['health_check'] = int(health_check)
        self.config['intervals']['process_delay'] = int(process_delay)

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)


@dataclass(frozen=True)
class TimingSettings:
    """Timing parameters that the server may change while the client runs."""
    process_delay: float
    health_check_interval: float


class RuntimeSettings:
    """
    Holds the current TimingSettings snapshot.

    Updates replace the whole snapshot under a lock, so a reader always sees
    a consistent pair of values.
    """

    def __init__(self, timing: TimingSettings):
        self._lock = threading.Lock()
        self._timing = timing

    @classmethod
    def from_config(cls, config: StationConfig) -> "RuntimeSettings":
        return cls(TimingSettings(
            process_delay=config.process_delay,
            health_check_interval=config.health_check_interval,
        ))

    @property
    def timing(self) -> TimingSettings:
        with self._lock:
            return self._timing

    @property
    def process_delay(self) -> float:
        return self.timing.process_delay

    @property
    def health_check_interval(self) -> float:
        return self.timing.health_check_interval

    def update(self, process_delay: Optional[float] = None,
               health_check_interval: Optional[float] = None) -> TimingSettings:
        """Swap in a new snapshot; values left as None keep their current setting."""
        with self._lock:
            current = self._timing
            self._timing = TimingSettings(
                process_delay=current.process_delay if process_delay is None else process_delay,
                health_check_interval=(current.health_check_interval
                                       if health_check_interval is None else health_check_interval),
            )
            return self._timing

    def apply_server_settings(self, settings: Optional[Dict[str, Any]]) -> bool:
        """
        Adopt timing values from a health check response.

        Only finite values of at least one second are taken, capped at
        MAX_SERVER_INTERVAL. Returns True if anything changed.

        Args:
            settings: The 'settings' object of a health check response

        Returns:
            True if the timing snapshot was replaced with different values
        """
        if not settings:
            return False

        def _positive(key: str) -> Optional[int]:
            value = settings.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            if isinstance(value, float) and not math.isfinite(value):
                return None
            if value < 1:
                return None
            return int(min(value, MAX_SERVER_INTERVAL))

        process_delay = _positive('process_delay')
        health_check_interval = _positive('health_check_interval')
        if process_delay is None and health_check_interval is None:
            return False

        before = self.timing
        after = self.update(process_delay=process_delay, health_check_interval=health_check_interval)
        return before != after
