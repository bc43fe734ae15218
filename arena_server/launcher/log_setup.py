"""
Logging initialization for the game server
"""

import enum
import logging
from typing import Any, Optional, TextIO

from arena_server.shared.constants import LOG_DATE_FORMAT, LOG_FORMAT, VERBOSE_LEVEL_NUM

logging.addLevelName(VERBOSE_LEVEL_NUM, "VERBOSE")


class SeverityLevel(enum.IntEnum):
    """Ordered severity names accepted in the configuration"""
    VERBOSE = VERBOSE_LEVEL_NUM
    DEBUG = logging.DEBUG
    INFORMATION = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    FATAL = logging.CRITICAL

    @classmethod
    def from_name(cls, name: Any) -> 'SeverityLevel':
        """Exact, case-sensitive lookup; anything unknown is INFORMATION"""
        if isinstance(name, str) and name in cls.__members__:
            return cls.__members__[name]
        return cls.INFORMATION


class LogInitializer:
    """Installs the console handler and threshold on the server's logger tree.

    Components get child loggers through :meth:`get_logger` and receive them
    explicitly rather than configuring logging themselves.
    """

    def __init__(self, logger_name: str = "arena_server", stream: Optional[TextIO] = None):
        self.logger_name = logger_name
        self.stream = stream
        self.severity: Optional[SeverityLevel] = None
        self._handler: Optional[logging.Handler] = None

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(self.logger_name)

    def set_level(self, name: Any) -> SeverityLevel:
        severity = SeverityLevel.from_name(name)

        root = self.logger
        if self._handler is not None:
            root.removeHandler(self._handler)

        handler = logging.StreamHandler(self.stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(handler)
        root.setLevel(severity)

        self._handler = handler
        self.severity = severity
        return severity

    def get_logger(self, component: str) -> logging.Logger:
        return logging.getLogger(f"{self.logger_name}.{component}")
