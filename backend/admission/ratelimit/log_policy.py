"""Tenant-aware logging around an injected logger."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .policy import TenantPolicy

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class DecisionLogger(Protocol):
    """Anything with info/warning/error, e.g. a ``logging.Logger``."""

    def info(self, msg: str, *args: Any) -> None: ...

    def warning(self, msg: str, *args: Any) -> None: ...

    def error(self, msg: str, *args: Any) -> None: ...


def parse_level(name: str) -> int:
    """Map a policy ``logLevel`` to a logging level; unknown names mean warning."""
    return _LEVELS.get((name or "").strip().lower(), logging.WARNING)


class PolicyLogger:
    """
    Apply a tenant's ``enableLogging``/``logLevel`` to an injected logger.

    Errors always pass through so fail-open decisions stay visible.
    """

    def __init__(self, logger: DecisionLogger, enabled: bool = True, level: str = "info") -> None:
        self._logger = logger
        self.enabled = enabled
        self.threshold = parse_level(level)

    @classmethod
    def for_policy(cls, logger: DecisionLogger, policy: "TenantPolicy") -> "PolicyLogger":
        return cls(logger, enabled=policy.enable_logging, level=policy.log_level)

    def _emits(self, level: int) -> bool:
        return self.enabled and level >= self.threshold

    def info(self, msg: str, *args: Any) -> None:
        if self._emits(logging.INFO):
            self._logger.info(msg, *args)

    def warning(self, msg: str, *args: Any) -> None:
        if self._emits(logging.WARNING):
            self._logger.warning(msg, *args)

    def error(self, msg: str, *args: Any) -> None:
        self._logger.error(msg, *args)
