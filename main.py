from __future__ import annotations

from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Query, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from cjsync import db
from cjsync.api_models import EventOut, QueueOut, ReconcileOut, ReconcileRowOut
from cjsync.logconfig import configure_logging
from cjsync.models import ObjectKey, validate_object_name
from cjsync.runtime import ControllerRuntime, build_runtime
from cjsync.settings import settings
from cjsync.store import StoreError


def create_app(runtime: ControllerRuntime | None = None, start_controller: bool | None = None) -> FastAPI:
    """Build the HTTP surface.

    With no ``runtime`` one is built from the environment at startup. Tests pass
    their own runtime and ``start_controller=False`` to keep threads out of it.
    """
    start = settings.start_controller if start_controller is None else start_controller
    app = FastAPI(title="CronJob Image Sync")
    app.state.runtime = runtime
    app.state.started = False

    def _runtime() -> ControllerRuntime:
        rt = app.state.runtime
        if rt is None:
            raise HTTPException(status_code=503, detail="Controller is not configured.")
        return rt

    @app.on_event("startup")
    def startup() -> None:
        configure_logging(settings.log_level)
        db.init_db()
        if app.state.runtime is None and start:
            app.state.runtime = build_runtime(settings)
        if app.state.runtime is not None and start:
            app.state.runtime.controller.start()
            app.state.started = True

    @app.on_event("shutdown")
    def shutdown() -> None:
        if app.state.started:
            app.state.runtime.controller.stop()
            app.state.started = False

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    def readyz() -> dict[str, str]:
        rt = _runtime()
        if app.state.started and not rt.controller.ready.is_set():
            raise HTTPException(status_code=503, detail="Waiting for the initial deployment list.")
        return {"status": "ready"}

    @app.get("/metrics")
    def metrics() -> Response:
        rt = _runtime()
        return Response(content=generate_latest(rt.metrics.registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/events", response_model=list[EventOut])
    def events(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
        return db.latest_events(limit)

    @app.get("/reconciles", response_model=list[ReconcileRowOut])
    def reconciles(limit: int = Query(100, ge=1, le=1000)) -> list[ReconcileRowOut]:
        return [ReconcileRowOut(**asdict(row)) for row in db.latest_reconciles(limit)]

    @app.post("/reconcile/{namespace}/{name}", response_model=ReconcileOut)
    def reconcile(namespace: str, name: str) -> ReconcileOut:
        try:
            validate_object_name(namespace, "namespace")
            validate_object_name(name, "deployment name")
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        rt = _runtime()
        key = ObjectKey(namespace, name)
        try:
            result = rt.controller.run_once(key)
        except StoreError as e:
            raise HTTPException(status_code=500, detail=f"{type(e).__name__}: {e}")
        return ReconcileOut(
            namespace=key.namespace,
            name=key.name,
            found=result.found,
            outcome=result.outcome,
            matched=result.matched,
            updated=result.updated,
            deleted_jobs=result.deleted_jobs,
        )

    @app.get("/queue", response_model=QueueOut)
    def queue() -> QueueOut:
        q = _runtime().controller.queue
        return QueueOut(depth=len(q), delayed=q.pending_delayed(), in_flight=sorted(str(k) for k in q.in_flight()))

    return app


app = create_app()
