"""
Attempt observers.

The router reports every backend attempt, successful or not, to one
Observer. Concrete observers can be swapped without touching the router.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class Backend(StrEnum):
    PRIMARY = "primary"
    LEGACY = "legacy"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one attempt against one backend."""

    operation: str
    resource_class: str
    backend: Backend
    duration_ms: float
    succeeded: bool
    error: Optional[BaseException] = None
    cache_bypassed: bool = False
    started_at: float = 0.0

    @property
    def error_type(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None


class Observer(Protocol):
    def on_attempt(self, outcome: ExecutionOutcome) -> None:
        ...


class LoggingObserver:
    """Writes one log line per attempt."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def on_attempt(self, outcome: ExecutionOutcome) -> None:
        if outcome.succeeded:
            self._log.info(
                "%s via %s in %.1fms (resource=%s, cache_bypassed=%s)",
                outcome.operation,
                outcome.backend.value,
                outcome.duration_ms,
                outcome.resource_class,
                outcome.cache_bypassed,
            )
        else:
            self._log.warning(
                "%s via %s failed after %.1fms: %s: %s",
                outcome.operation,
                outcome.backend.value,
                outcome.duration_ms,
                outcome.error_type,
                outcome.error,
            )


@dataclass
class RecordingObserver:
    """Keeps outcomes in memory; used by tests and the health endpoint."""

    max_outcomes: int = 500
    outcomes: list[ExecutionOutcome] = field(default_factory=list)

    def __post_init__(self):
        self._lock = threading.Lock()

    def on_attempt(self, outcome: ExecutionOutcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)
            if len(self.outcomes) > self.max_outcomes:
                del self.outcomes[: len(self.outcomes) - self.max_outcomes]

    def for_backend(self, backend: Backend) -> list[ExecutionOutcome]:
        with self._lock:
            return [o for o in self.outcomes if o.backend == backend]

    def summary(self) -> dict:
        """Attempt counts and failure counts per backend."""
        with self._lock:
            snapshot = list(self.outcomes)
        result = {}
        for backend in Backend:
            attempts = [o for o in snapshot if o.backend == backend]
            result[backend.value] = {
                "attempts": len(attempts),
                "failures": sum(1 for o in attempts if not o.succeeded),
            }
        return result

    def clear(self) -> None:
        with self._lock:
            self.outcomes.clear()


class CompositeObserver:
    """Fans each outcome out to several observers."""

    def __init__(self, observers: Sequence[Observer]):
        self._observers = list(observers)

    def on_attempt(self, outcome: ExecutionOutcome) -> None:
        for observer in self._observers:
            try:
                observer.on_attempt(outcome)
            except Exception:
                # Instrumentation must never change the routed result.
                logger.exception("Observer %r failed", observer)
