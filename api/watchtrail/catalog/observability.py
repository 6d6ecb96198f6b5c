"""Circuit breaking and call metrics for catalog lookups."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, DefaultDict

logger = logging.getLogger("watchtrail.catalog")


class CatalogCircuitOpen(Exception):
    """Raised while the catalog circuit is cooling down after repeated failures."""


@dataclass
class CircuitBreaker:
    """Failure streak and cooldown window for one catalog source."""
    threshold: int = 3
    base_backoff_seconds: float = 15.0
    max_backoff_seconds: float = 300.0
    failure_streak: int = 0
    open_until: float = 0.0
    backoff: float = field(init=False)
    opened_count: int = 0

    def __post_init__(self) -> None:
        self.backoff = self.base_backoff_seconds

    def is_closed(self) -> bool:
        return time.monotonic() >= self.open_until

    def cooldown_left(self) -> float:
        return max(self.open_until - time.monotonic(), 0.0)

    def succeeded(self) -> None:
        self.failure_streak = 0
        self.open_until = 0.0
        self.backoff = self.base_backoff_seconds

    def failed(self) -> None:
        """Count a failure; open the circuit and double the backoff at the threshold."""
        self.failure_streak += 1
        if self.failure_streak < self.threshold:
            return
        self.open_until = time.monotonic() + self.backoff
        self.failure_streak = 0
        self.opened_count += 1
        self.backoff = min(self.backoff * 2, self.max_backoff_seconds)

    def as_dict(self) -> dict[str, Any]:
        return {
            "failure_streak": self.failure_streak,
            "open_until": self.open_until,
            "remaining_cooldown": self.cooldown_left(),
            "current_backoff": self.backoff,
            "opened_count": self.opened_count,
        }


@dataclass
class CallStats:
    started: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    last_latency_ms: float | None = None
    last_error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "last_latency_ms": self.last_latency_ms,
            "last_error": self.last_error,
        }


class CatalogMonitor:
    """Wrap catalog calls with per-operation stats and a per-source circuit breaker."""

    def __init__(
        self,
        *,
        circuit_threshold: int = 3,
        base_backoff_seconds: float = 15.0,
        max_backoff_seconds: float = 300.0,
    ) -> None:
        self._stats: DefaultDict[str, DefaultDict[str, CallStats]] = defaultdict(lambda: defaultdict(CallStats))
        self._circuits: DefaultDict[str, CircuitBreaker] = defaultdict(
            lambda: CircuitBreaker(
                threshold=circuit_threshold,
                base_backoff_seconds=base_backoff_seconds,
                max_backoff_seconds=max_backoff_seconds,
            )
        )
        self._lock = asyncio.Lock()

    def allow_call(self, source: str) -> bool:
        return self._circuits[source].is_closed()

    @staticmethod
    def _emit(level: int, event: str, **fields: Any) -> None:
        logger.log(level, json.dumps({"event": event, **fields}, default=str))

    async def track(
        self,
        source: str,
        operation: str,
        func: Callable[[], Awaitable[Any]],
        *,
        context: dict[str, Any] | None = None,
    ) -> Any:
        """Run one catalog call, recording latency and updating the circuit.

        Raises ``CatalogCircuitOpen`` without calling ``func`` while the
        source's circuit is open; failures from ``func`` are re-raised.
        """
        context = context or {}
        async with self._lock:
            circuit = self._circuits[source]
            stats = self._stats[source][operation]
            if not circuit.is_closed():
                stats.skipped += 1
                remaining = circuit.cooldown_left()
                self._emit(
                    logging.WARNING,
                    "catalog_circuit_open",
                    source=source,
                    operation=operation,
                    context=context,
                    remaining_cooldown=remaining,
                )
                raise CatalogCircuitOpen(f"{source} circuit open for {remaining:.2f}s")
            stats.started += 1

        start = time.monotonic()
        try:
            result = await func()
        except Exception as exc:
            latency_ms = (time.monotonic() - start) * 1000
            async with self._lock:
                stats = self._stats[source][operation]
                stats.failed += 1
                stats.last_latency_ms = latency_ms
                stats.last_error = str(exc)
                self._circuits[source].failed()
                circuit_state = self._circuits[source].as_dict()
            self._emit(
                logging.WARNING,
                "catalog_failure",
                source=source,
                operation=operation,
                error=str(exc),
                latency_ms=round(latency_ms, 2),
                context=context,
                circuit=circuit_state,
            )
            raise

        latency_ms = (time.monotonic() - start) * 1000
        async with self._lock:
            stats = self._stats[source][operation]
            stats.succeeded += 1
            stats.last_latency_ms = latency_ms
            stats.last_error = None
            self._circuits[source].succeeded()
        self._emit(
            logging.INFO,
            "catalog_success",
            source=source,
            operation=operation,
            latency_ms=round(latency_ms, 2),
            context=context,
        )
        return result

    async def snapshot(self) -> dict[str, Any]:
        async with self._lock:
            return {
                source: {
                    "circuit": self._circuits[source].as_dict(),
                    "operations": {name: stats.as_dict() for name, stats in operations.items()},
                }
                for source, operations in self._stats.items()
            }

    def reset(self) -> None:
        self._stats.clear()
        self._circuits.clear()


catalog_monitor = CatalogMonitor()
