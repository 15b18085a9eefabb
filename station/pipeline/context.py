"""
Pipeline context - the configuration, runtime settings and loggers shared by all services
"""

import logging
from dataclasses import dataclass, field
from typing import Dict

from .config import StationConfig, RuntimeSettings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class PipelineContext:
    """
    Explicit context handed to every service constructor.

    Services never reach for module-level configuration; whatever they need
    comes from here.
    """
    config: StationConfig
    settings: RuntimeSettings
    _loggers: Dict[str, logging.Logger] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(cls, config: StationConfig) -> "PipelineContext":
        return cls(config=config, settings=RuntimeSettings.from_config(config))

    @property
    def log_level(self) -> int:
        return logging.DEBUG if self.config.verbose else logging.INFO

    def get_logger(self, name: str) -> logging.Logger:
        """Setup logging for a named service."""
        if name in self._loggers:
            return self._loggers[name]

        logger = logging.getLogger(name)
        logger.setLevel(self.log_level)

        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)

        self._loggers[name] = logger
        return logger
