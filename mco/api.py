from __future__ import annotations

from dataclasses import asdict
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Query, Request

from . import db
from .api_models import ClusterOut, EventOut, HealthResponse, ReconcileOut, WorkerOut, WorkersOut
from .dispatcher import Dispatcher
from .runtime import RuntimeState


def create_app(
    runtime: RuntimeState,
    dispatcher: Dispatcher | None = None,
    platform_check: Callable[[], bool] | None = None,
    lifespan: Any = None,
) -> FastAPI:
    """Read-only operator API over the runtime state and the event journal.

    ``dispatcher`` and ``platform_check`` live on ``app.state`` so a lifespan
    handler can fill them in once the platform connection exists.
    """
    app = FastAPI(title="MySQL Cluster Operator", lifespan=lifespan)
    app.state.runtime = runtime
    app.state.dispatcher = dispatcher
    app.state.platform_check = platform_check

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        check = request.app.state.platform_check
        ok = bool(check()) if check else True
        return HealthResponse(status="healthy" if ok else "degraded", platform=ok)

    @app.get("/events", response_model=list[EventOut])
    def events(limit: int = Query(50, ge=1, le=1000), cluster: str | None = None) -> list[dict[str, Any]]:
        return db.latest_events(limit=limit, cluster=cluster)

    @app.get("/reconciliations", response_model=list[ReconcileOut])
    def reconciliations(
        limit: int = Query(50, ge=1, le=1000),
        cluster: str | None = None,
        namespace: str | None = None,
    ) -> list[dict[str, Any]]:
        return [asdict(r) for r in db.list_reconciliations(limit=limit, cluster=cluster, namespace=namespace)]

    @app.get("/clusters", response_model=list[ClusterOut])
    def clusters() -> list[dict[str, Any]]:
        return [asdict(o) for o in runtime.list_outcomes()]

    @app.get("/clusters/{namespace}/{name}", response_model=ClusterOut)
    def cluster(namespace: str, name: str) -> dict[str, Any]:
        outcome = runtime.get(namespace, name)
        if outcome is None:
            raise HTTPException(status_code=404, detail=f"Cluster {namespace}/{name} has not been reconciled")
        return asdict(outcome)

    @app.get("/workers", response_model=WorkersOut)
    def workers(request: Request) -> WorkersOut:
        processed, failed = runtime.counters()
        d = request.app.state.dispatcher
        live = d.workers() if d is not None else []
        return WorkersOut(
            processed=processed,
            failed=failed,
            workers=[WorkerOut(namespace=ns, name=name, queued=q) for (ns, name), q in live],
        )

    return app
