"""FastAPI application and the health endpoint.

Invariants:
- Health detail (catalog circuits, queue state) is only shown to signed-in
  users or callers on the allowlist; everyone else gets a bare status.
"""

import ipaddress
import logging
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from watchtrail.api.deps import get_optional_current_user
from watchtrail.api.router import api_router
from watchtrail.catalog.observability import catalog_monitor
from watchtrail.core.config import settings
from watchtrail.jobs.schedule_registry import ensure_schedules
from watchtrail.models.user import User
from watchtrail.services.task_queue import task_queue

REPEATED_FAILURE_THRESHOLD = 3

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s [%(levelname)s] %(message)s")

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_prefix)


@app.on_event("startup")
async def _register_schedules() -> None:
    ensure_schedules()


def _summarize_catalog(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Reduce the catalog monitor snapshot to per-source state plus a list of issues.

    A source is degraded while its circuit is cooling down, after an
    operation has failed repeatedly, or when its latest call errored.
    """
    issues: list[dict[str, Any]] = []
    sources: dict[str, Any] = {}
    for source, payload in snapshot.items():
        circuit = payload.get("circuit", {})
        operations = payload.get("operations", {})
        cooldown = float(circuit.get("remaining_cooldown") or 0.0)
        degraded = cooldown > 0
        if degraded:
            issues.append({"source": source, "reason": "circuit_open", "remaining_cooldown": round(cooldown, 2)})

        failure_total = 0
        for operation, metrics in operations.items():
            failed = int(metrics.get("failed") or 0)
            failure_total += failed
            if metrics.get("last_error"):
                degraded = True
                issues.append(
                    {"source": source, "operation": operation, "reason": "last_error", "error": metrics["last_error"]}
                )
            if failed >= REPEATED_FAILURE_THRESHOLD:
                degraded = True
                issues.append(
                    {"source": source, "operation": operation, "reason": "repeated_failures", "failed": failed}
                )
        sources[source] = {
            "state": "degraded" if degraded else "ok",
            "circuit_open": cooldown > 0,
            "circuit": circuit,
            "operations": operations,
            "failure_total": failure_total,
        }
    return {"sources": sources, "issues": issues}


def _allowlisted(request: Request) -> bool:
    """True when the client address or Host header matches a health allowlist entry."""
    candidates = []
    if request.client and request.client.host:
        candidates.append(request.client.host)
    if host := request.headers.get("host"):
        candidates.append(host.split(":")[0])

    for entry in settings.health_allowlist:
        for candidate in candidates:
            try:
                if ipaddress.ip_address(candidate) in ipaddress.ip_network(entry, strict=False):
                    return True
            except ValueError:
                if entry.casefold() == candidate.casefold():
                    return True
    return False


@app.get("/health", tags=["internal"])
@app.get(f"{settings.api_prefix}/health", tags=["internal"])
async def health(request: Request, current_user: User | None = Depends(get_optional_current_user)) -> dict[str, Any]:
    if current_user is None and not _allowlisted(request):
        return {"status": "ok"}

    catalog = _summarize_catalog(await catalog_monitor.snapshot())
    return {
        "status": "degraded" if catalog["issues"] else "ok",
        "catalog": catalog,
        "jobs": task_queue.snapshot(),
    }
