"""Operation events and the sinks that receive them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple, runtime_checkable

from .models import DatabaseScope

SUCCESS = "success"
FAILURE = "failure"


@dataclass(frozen=True)
class OperationEvent:
    """Terminal outcome of one client operation."""

    operation: str
    scope: DatabaseScope
    outcome: str
    record_names: Tuple[str, ...] = ()
    count: Optional[int] = None
    error: Optional[str] = None
    error_category: Optional[str] = None
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome == SUCCESS

    def describe(self) -> str:
        parts = [f"{self.operation} [{self.scope.value}] {self.outcome}"]
        if self.record_names:
            shown = ", ".join(self.record_names[:10])
            if len(self.record_names) > 10:
                shown += f", ... ({len(self.record_names)} total)"
            parts.append(f"records: {shown}")
        if self.count is not None:
            parts.append(f"count: {self.count}")
        if self.error:
            category = f"{self.error_category} " if self.error_category else ""
            parts.append(f"{category}error: {self.error}")
        parts.append(f"in {self.elapsed:.3f}s")
        return " - ".join(parts)


@runtime_checkable
class Notifier(Protocol):
    """Receives one event per terminal outcome; must not influence control flow."""

    def notify(self, event: OperationEvent) -> None:
        ...


class LoggingNotifier:
    """Writes operation events to a logger."""

    def __init__(self, logger_obj: Optional[logging.Logger] = None):
        self.logger = logger_obj or logging.getLogger(__name__)

    def notify(self, event: OperationEvent) -> None:
        if event.succeeded:
            self.logger.info(event.describe())
        else:
            self.logger.error(event.describe())
