"""
Dual-backend request router.

Every operation has a primary executor (direct Google API calls) and a
legacy executor (the Apps Script web app) with the same result type. Reads
go to the primary and fall back to the legacy backend on transient
failures when fallback is enabled. Writes run on exactly one backend and
mark the invalidation registry before returning.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Callable, Generic, Optional, Protocol, TypeVar

from nowandlater.auth import Principal
from nowandlater.cancellation import CancellationToken
from nowandlater.config import RouterConfig
from nowandlater.errors import (
    BothBackendsFailed,
    ConfigurationError,
    RequestCancelled,
    TransientBackendFailure,
    Unauthenticated,
)
from nowandlater.invalidation import InvalidationStore
from nowandlater.observers import Backend, ExecutionOutcome, LoggingObserver, Observer

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", contravariant=True)
OutputT = TypeVar("OutputT", covariant=True)
T = TypeVar("T")
P = TypeVar("P")


class OperationKind(StrEnum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class AttemptContext:
    """
    Per-attempt settings handed to an executor.

    `deadline` is measured on `clock`. Every upstream call and backoff sleep
    an executor makes must fit in `remaining()`, so one attempt never runs
    past its timeout however many requests it issues.
    """

    operation: str
    backend: Backend
    timeout_seconds: float
    bypass_cache: bool = False
    cancellation: Optional[CancellationToken] = None
    deadline: Optional[float] = None
    clock: Callable[[], float] = field(
        default=time.perf_counter, compare=False, repr=False
    )

    def raise_if_cancelled(self) -> None:
        if self.cancellation is not None:
            self.cancellation.raise_if_cancelled()

    def remaining(self) -> float:
        if self.deadline is None:
            return self.timeout_seconds
        return self.deadline - self.clock()


class BackendExecutor(Protocol[InputT, OutputT]):
    """One operation against one backend."""

    def __call__(
        self, principal: Principal, payload: InputT, context: AttemptContext
    ) -> OutputT:
        ...


@dataclass(frozen=True)
class OperationDescriptor(Generic[P, T]):
    name: str
    resource_class: str
    kind: OperationKind
    primary: BackendExecutor[P, T]
    legacy: BackendExecutor[P, T]
    # Extra resource classes a write makes stale.
    invalidates: tuple[str, ...] = ()

    @property
    def is_read(self) -> bool:
        return self.kind == OperationKind.READ

    @property
    def invalidated_classes(self) -> tuple[str, ...]:
        return (self.resource_class, *self.invalidates)

    def scoped(self, key: str) -> "OperationDescriptor[P, T]":
        """Narrows the resource class to one record, e.g. `drive:<folderId>`."""
        return replace(self, resource_class=f"{self.resource_class}:{key}")


@dataclass
class RoutedResult(Generic[T]):
    value: T
    backend: Backend
    duration_ms: float
    timestamp: str
    cache_bypassed: bool = False
    outcomes: list[ExecutionOutcome] = field(default_factory=list)

    def performance(self) -> dict:
        return {
            "duration": f"{self.duration_ms:.0f}ms",
            "timestamp": self.timestamp,
            "backend": self.backend.value,
            "cacheInvalidated": self.cache_bypassed,
        }


class RequestRouter:
    """Routes operations between the primary and legacy backends."""

    def __init__(
        self,
        config: RouterConfig,
        store: InvalidationStore,
        observer: Optional[Observer] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self._config = config
        self._store = store
        self._observer = observer or LoggingObserver()
        self._timer = timer

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def store(self) -> InvalidationStore:
        return self._store

    def execute(
        self,
        operation: OperationDescriptor[P, T],
        principal: Principal,
        payload: P,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> RoutedResult[T]:
        if principal is None:
            raise Unauthenticated("No authenticated principal")
        if not self._config.primary_enabled and not self._config.fallback_enabled:
            raise ConfigurationError(
                f"{operation.name}: primary and legacy backends are both disabled"
            )
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        if operation.is_read:
            return self._execute_read(operation, principal, payload, cancellation)
        return self._execute_write(operation, principal, payload, cancellation)

    def _execute_read(
        self,
        operation: OperationDescriptor[P, T],
        principal: Principal,
        payload: P,
        cancellation: Optional[CancellationToken],
    ) -> RoutedResult[T]:
        outcomes: list[ExecutionOutcome] = []
        read_started_at = self._store.clock()
        bypass_cache = self._store.is_invalidated(principal.id, operation.resource_class)
        if bypass_cache:
            logger.info(
                "%s: %s invalidated for %s, bypassing caches",
                operation.name,
                operation.resource_class,
                principal.id,
            )

        primary_error: Optional[TransientBackendFailure] = None
        if self._config.primary_enabled:
            started = self._timer()
            try:
                value = self._attempt(
                    operation, Backend.PRIMARY, principal, payload,
                    bypass_cache, cancellation, outcomes,
                )
            except TransientBackendFailure as exc:
                if not self._config.fallback_enabled:
                    raise
                primary_error = exc
                logger.warning(
                    "%s: primary failed transiently, falling back to legacy",
                    operation.name,
                )
            else:
                self._clear_invalidation(operation, principal, bypass_cache, read_started_at)
                return self._result(value, Backend.PRIMARY, started, bypass_cache, outcomes)

        if cancellation is not None and cancellation.cancelled:
            raise RequestCancelled(
                f"{operation.name}: request cancelled before legacy attempt"
            ) from primary_error

        started = self._timer()
        try:
            value = self._attempt(
                operation, Backend.LEGACY, principal, payload,
                bypass_cache, cancellation, outcomes,
            )
        except RequestCancelled:
            raise
        except Exception as exc:
            if primary_error is None:
                raise
            raise BothBackendsFailed(operation.name, primary_error, exc) from exc

        self._clear_invalidation(operation, principal, bypass_cache, read_started_at)
        return self._result(value, Backend.LEGACY, started, bypass_cache, outcomes)

    def _execute_write(
        self,
        operation: OperationDescriptor[P, T],
        principal: Principal,
        payload: P,
        cancellation: Optional[CancellationToken],
    ) -> RoutedResult[T]:
        # Writes never fall back: a failed primary write may still have been
        # applied, and the legacy backend writes to the same spreadsheet.
        backend = Backend.PRIMARY if self._config.primary_enabled else Backend.LEGACY
        outcomes: list[ExecutionOutcome] = []
        started = self._timer()
        try:
            value = self._attempt(
                operation, backend, principal, payload, False, cancellation, outcomes
            )
        except TransientBackendFailure:
            # A timed-out or reset write may have landed upstream.
            logger.warning(
                "%s: write outcome unknown, invalidating %s",
                operation.name,
                ", ".join(operation.invalidated_classes),
            )
            self._invalidate(operation, principal)
            raise
        self._invalidate(operation, principal)
        return self._result(value, backend, started, False, outcomes)

    def _invalidate(self, operation: OperationDescriptor, principal: Principal) -> None:
        for resource_class in operation.invalidated_classes:
            self._store.mark_invalidated(principal.id, resource_class)

    def _attempt(
        self,
        operation: OperationDescriptor[P, T],
        backend: Backend,
        principal: Principal,
        payload: P,
        bypass_cache: bool,
        cancellation: Optional[CancellationToken],
        outcomes: list[ExecutionOutcome],
    ) -> T:
        timeout = self._config.attempt_timeout_seconds
        started = self._timer()
        context = AttemptContext(
            operation=operation.name,
            backend=backend,
            timeout_seconds=timeout,
            bypass_cache=bypass_cache,
            cancellation=cancellation,
            deadline=started + timeout,
            clock=self._timer,
        )
        context.raise_if_cancelled()
        executor = operation.primary if backend == Backend.PRIMARY else operation.legacy

        try:
            value = executor(principal, payload, context)
        except Exception as exc:
            self._report(
                outcomes, operation, backend, started, bypass_cache, error=exc
            )
            raise
        self._report(outcomes, operation, backend, started, bypass_cache)
        return value

    def _report(
        self,
        outcomes: list[ExecutionOutcome],
        operation: OperationDescriptor,
        backend: Backend,
        started: float,
        bypass_cache: bool,
        error: Optional[BaseException] = None,
    ) -> None:
        outcome = ExecutionOutcome(
            operation=operation.name,
            resource_class=operation.resource_class,
            backend=backend,
            duration_ms=(self._timer() - started) * 1000,
            succeeded=error is None,
            error=error,
            cache_bypassed=bypass_cache,
            started_at=started,
        )
        outcomes.append(outcome)
        self._observer.on_attempt(outcome)

    def _clear_invalidation(
        self,
        operation: OperationDescriptor,
        principal: Principal,
        bypass_cache: bool,
        read_started_at: int,
    ) -> None:
        if not bypass_cache:
            return
        self._store.mark_fresh(
            principal.id, operation.resource_class, read_started_at=read_started_at
        )

    def _result(
        self,
        value: T,
        backend: Backend,
        started: float,
        bypass_cache: bool,
        outcomes: list[ExecutionOutcome],
    ) -> RoutedResult[T]:
        return RoutedResult(
            value=value,
            backend=backend,
            duration_ms=(self._timer() - started) * 1000,
            timestamp=datetime.now(timezone.utc).isoformat(),
            cache_bypassed=bypass_cache,
            outcomes=outcomes,
        )
