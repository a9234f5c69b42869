import threading
import time

import pytest

from mco import db
from mco.dispatcher import ADDED, DELETED, MODIFIED, Dispatcher, Notification
from mco.errors import RemoteFailure
from mco.platform import SERVICE, STATEFUL_SET

from factories import make_cluster


class RecordingOperator:
    """Records start/end of every call; optional per-cluster gates and failures."""

    def __init__(self, delay=0.0):
        self.delay = delay
        self.lock = threading.Lock()
        self.log = []
        self.gates = {}
        self.failures = {}

    def _run(self, action, cluster):
        with self.lock:
            self.log.append(("start", action, cluster.name, cluster.spec.replicas))
        gate = self.gates.get(cluster.name)
        if gate is not None:
            assert gate.wait(5), "gate never opened"
        if self.delay:
            time.sleep(self.delay)
        with self.lock:
            self.log.append(("end", action, cluster.name, cluster.spec.replicas))
        err = self.failures.pop((action, cluster.name), None)
        if err is not None:
            raise err

    def add_cluster(self, cluster):
        self._run("add", cluster)

    def update_cluster(self, cluster):
        self._run("update", cluster)

    def delete_cluster(self, cluster):
        self._run("delete", cluster)


@pytest.fixture
def recorder():
    return RecordingOperator()


@pytest.fixture
def dispatcher(recorder):
    d = Dispatcher(recorder, idle_s=1.0)
    yield d
    d.stop()


def test_add_completes_before_update_starts():
    op = RecordingOperator(delay=0.05)
    d = Dispatcher(op, idle_s=1.0)
    try:
        d.dispatch(Notification(ADDED, make_cluster("x")))
        d.dispatch(Notification(MODIFIED, make_cluster("x", replicas=3)))
        assert d.join(timeout=5)
    finally:
        d.stop()

    assert [(e[0], e[1]) for e in op.log] == [("start", "add"), ("end", "add"), ("start", "update"), ("end", "update")]


def test_same_identity_keeps_arrival_order(dispatcher, recorder):
    for i in range(1, 21):
        dispatcher.dispatch(Notification(MODIFIED, make_cluster("x", replicas=i)))
    assert dispatcher.join(timeout=5)

    ends = [e[3] for e in recorder.log if e[0] == "end"]
    assert ends == list(range(1, 21))


def test_kinds_route_to_operations(dispatcher, recorder):
    dispatcher.dispatch(Notification(ADDED, make_cluster("x")))
    dispatcher.dispatch(Notification(MODIFIED, make_cluster("x")))
    dispatcher.dispatch(Notification(DELETED, make_cluster("x")))
    assert dispatcher.join(timeout=5)

    assert [e[1] for e in recorder.log if e[0] == "end"] == ["add", "update", "delete"]


def test_blocked_cluster_does_not_block_others(dispatcher, recorder):
    gate = threading.Event()
    recorder.gates["a"] = gate

    dispatcher.dispatch(Notification(ADDED, make_cluster("a")))
    dispatcher.dispatch(Notification(ADDED, make_cluster("b")))

    deadline = time.monotonic() + 5
    while ("end", "add", "b", None) not in recorder.log and time.monotonic() < deadline:
        time.sleep(0.01)

    assert ("end", "add", "b", None) in recorder.log
    assert ("end", "add", "a", None) not in recorder.log

    gate.set()
    assert dispatcher.join(timeout=5)
    assert ("end", "add", "a", None) in recorder.log


def test_failure_does_not_stop_processing(dispatcher, recorder):
    recorder.failures[("add", "x")] = RemoteFailure("apiserver unavailable")

    dispatcher.dispatch(Notification(ADDED, make_cluster("x")))
    dispatcher.dispatch(Notification(MODIFIED, make_cluster("x")))
    dispatcher.dispatch(Notification(ADDED, make_cluster("y")))
    assert dispatcher.join(timeout=5)

    assert dispatcher.runtime.counters() == (3, 1)
    outcome = dispatcher.runtime.get("default", "x")
    assert outcome.ok is True
    assert outcome.action == "update"
    assert (outcome.reconciles, outcome.failures) == (2, 1)

    rows = db.list_reconciliations(cluster="x")
    assert [(r.action, r.outcome) for r in reversed(rows)] == [("add", "failed"), ("update", "ok")]
    assert "apiserver unavailable" in rows[-1].error
    assert any("add failed" in e["message"] for e in db.latest_events(cluster="x"))


def test_identities_are_namespaced(dispatcher, recorder):
    dispatcher.dispatch(Notification(ADDED, make_cluster("x", namespace="a")))
    dispatcher.dispatch(Notification(ADDED, make_cluster("x", namespace="b")))
    assert dispatcher.join(timeout=5)

    assert dispatcher.runtime.get("a", "x") is not None
    assert dispatcher.runtime.get("b", "x") is not None


def test_unknown_kind_is_rejected(dispatcher):
    with pytest.raises(ValueError):
        dispatcher.dispatch(Notification("BOOKMARK", make_cluster("x")))


def test_idle_workers_retire_and_come_back(recorder):
    d = Dispatcher(recorder, idle_s=0.05)
    try:
        d.dispatch(Notification(ADDED, make_cluster("x")))
        assert d.join(timeout=5)

        deadline = time.monotonic() + 5
        while d.workers() and time.monotonic() < deadline:
            time.sleep(0.02)
        assert d.workers() == []

        d.dispatch(Notification(MODIFIED, make_cluster("x")))
        assert d.join(timeout=5)
    finally:
        d.stop()

    assert [e[1] for e in recorder.log if e[0] == "end"] == ["add", "update"]


def test_stopped_dispatcher_rejects_notifications(recorder):
    d = Dispatcher(recorder, idle_s=1.0)
    d.stop()
    with pytest.raises(RuntimeError):
        d.dispatch(Notification(ADDED, make_cluster("x")))


def test_end_to_end_with_operator(operator, platform):
    d = Dispatcher(operator, idle_s=1.0)
    try:
        d.dispatch(Notification(ADDED, make_cluster("shop")))
        d.dispatch(Notification(MODIFIED, make_cluster("shop", replicas=4)))
        assert d.join(timeout=10)
    finally:
        d.stop()

    assert platform.names(SERVICE) == ["shop", "shop-read"]
    assert platform.get_object(STATEFUL_SET, "default", "shop").body["spec"]["replicas"] == 4
    assert platform.statuses[("default", "shop")].status.state == "Successful update"
