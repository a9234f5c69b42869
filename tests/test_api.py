import importlib.util
import os

from fastapi.testclient import TestClient

from mco import db
from mco.api import create_app
from mco.dispatcher import ADDED, Dispatcher, Notification
from mco.errors import RemoteFailure
from mco.runtime import RuntimeState

from factories import make_cluster


def _import_main_module(project_root):
    """Import main.py as a module without requiring it to be installed as a package."""
    main_path = os.path.join(project_root, "main.py")
    spec = importlib.util.spec_from_file_location("mco_main", main_path)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[attr-defined]
    return mod


def test_health():
    client = TestClient(create_app(RuntimeState()))
    assert client.get("/health").json() == {"status": "healthy", "platform": True}

    client = TestClient(create_app(RuntimeState(), platform_check=lambda: False))
    assert client.get("/health").json() == {"status": "degraded", "platform": False}


def test_clusters():
    runtime = RuntimeState()
    runtime.record("prod", "shop", "add", None)
    runtime.record("prod", "shop", "update", RemoteFailure("boom"))
    client = TestClient(create_app(runtime))

    listed = client.get("/clusters").json()
    assert [(c["namespace"], c["name"], c["ok"]) for c in listed] == [("prod", "shop", False)]

    one = client.get("/clusters/prod/shop").json()
    assert one["action"] == "update"
    assert one["error"] == "boom"
    assert (one["reconciles"], one["failures"]) == (2, 1)

    r = client.get("/clusters/prod/missing")
    assert r.status_code == 404


def test_events_and_reconciliations():
    db.log_event("INFO", "hello", cluster="shop", namespace="prod")
    db.log_event("INFO", "other", cluster="blog", namespace="prod")
    db.record_reconcile("prod", "shop", "add", error=None, duration_ms=12.5)
    db.record_reconcile("prod", "blog", "add", error=RemoteFailure("boom"))
    client = TestClient(create_app(RuntimeState()))

    events = client.get("/events", params={"cluster": "shop"}).json()
    assert [e["message"] for e in events] == ["hello"]

    rows = client.get("/reconciliations", params={"namespace": "prod", "limit": 10}).json()
    assert [(r["cluster"], r["outcome"]) for r in rows] == [("blog", "failed"), ("shop", "ok")]

    assert client.get("/events", params={"limit": 0}).status_code == 422


def test_workers(operator):
    runtime = RuntimeState()
    d = Dispatcher(operator, runtime, idle_s=1.0)
    try:
        d.dispatch(Notification(ADDED, make_cluster("shop")))
        assert d.join(timeout=5)
        body = TestClient(create_app(runtime, dispatcher=d)).get("/workers").json()
    finally:
        d.stop()

    assert (body["processed"], body["failed"]) == (1, 0)
    assert body["workers"] == [{"namespace": "default", "name": "shop", "queued": 0}]


def test_workers_without_dispatcher():
    body = TestClient(create_app(RuntimeState())).get("/workers").json()
    assert body == {"processed": 0, "failed": 0, "workers": []}


def test_main_exposes_routes():
    project_root = os.path.dirname(os.path.dirname(__file__))
    main = _import_main_module(project_root)

    paths = {route.path for route in main.app.routes}
    assert {"/health", "/clusters", "/clusters/{namespace}/{name}", "/events", "/workers"} <= paths
