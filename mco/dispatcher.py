from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from queue import Empty, Queue
from threading import Lock, Thread
from typing import Protocol

from . import db
from .models import ClusterResource
from .runtime import RuntimeState
from .settings import settings

logger = logging.getLogger("mco")

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"

ACTIONS = {ADDED: "add", MODIFIED: "update", DELETED: "delete"}


class Operator(Protocol):
    def add_cluster(self, cluster: ClusterResource) -> None: ...

    def update_cluster(self, cluster: ClusterResource) -> None: ...

    def delete_cluster(self, cluster: ClusterResource) -> None: ...


@dataclass(frozen=True)
class Notification:
    kind: str  # ADDED|MODIFIED|DELETED
    resource: ClusterResource

    @property
    def identity(self) -> tuple[str, str]:
        return self.resource.identity


class _Worker(Thread):
    """Processes the notifications of one cluster, strictly in arrival order."""

    def __init__(self, dispatcher: Dispatcher, identity: tuple[str, str]):
        super().__init__(name=f"mco-{identity[0]}/{identity[1]}", daemon=True)
        self.dispatcher = dispatcher
        self.identity = identity
        self.queue: Queue[Notification | None] = Queue()

    def run(self) -> None:
        while True:
            try:
                item = self.queue.get(timeout=self.dispatcher.idle_s)
            except Empty:
                if self.dispatcher._retire(self):
                    return
                continue
            try:
                if item is None:
                    return
                self.dispatcher._handle(item)
            except Exception:
                logger.exception("Worker %s/%s failed to record a reconciliation", *self.identity)
            finally:
                self.queue.task_done()


class Dispatcher:
    """Routes cluster notifications to one worker thread per cluster identity.

    Notifications for the same cluster are handled one at a time in the order
    they were dispatched; different clusters are handled concurrently. A
    failed reconciliation is journaled and recorded, then the worker moves on.
    Idle workers exit after ``idle_s`` and are recreated on demand.
    """

    def __init__(self, operator: Operator, runtime: RuntimeState | None = None, idle_s: float | None = None):
        self.operator = operator
        self.runtime = runtime or RuntimeState()
        self.idle_s = settings.worker_idle_s if idle_s is None else max(0.01, float(idle_s))
        self._lock = Lock()
        self._workers: dict[tuple[str, str], _Worker] = {}
        self._stopped = False

    def dispatch(self, notification: Notification) -> None:
        if notification.kind not in ACTIONS:
            raise ValueError(f"Unknown notification kind {notification.kind!r}")
        with self._lock:
            if self._stopped:
                raise RuntimeError("Dispatcher is stopped")
            worker = self._workers.get(notification.identity)
            if worker is None:
                worker = _Worker(self, notification.identity)
                self._workers[notification.identity] = worker
                worker.start()
            worker.queue.put(notification)

    def _retire(self, worker: _Worker) -> bool:
        # Shares the lock with dispatch(), so nothing can be queued to a
        # worker after it decided to exit.
        with self._lock:
            if not worker.queue.empty():
                return False
            if self._workers.get(worker.identity) is worker:
                del self._workers[worker.identity]
            return True

    def _handle(self, notification: Notification) -> None:
        namespace, name = notification.identity
        action = ACTIONS[notification.kind]
        handler = getattr(self.operator, f"{action}_cluster")

        start = time.monotonic()
        error: Exception | None = None
        try:
            handler(notification.resource)
        except Exception as e:
            error = e
        duration_ms = round((time.monotonic() - start) * 1000.0, 2)

        self.runtime.record(namespace, name, action, error)
        if error is not None:
            db.log_event("ERROR", f"{action} failed: {type(error).__name__}: {error}", cluster=name, namespace=namespace)
        else:
            db.log_event("INFO", f"{action} succeeded", cluster=name, namespace=namespace)
        db.record_reconcile(namespace, name, action, error, duration_ms)

    def join(self, timeout: float | None = None) -> bool:
        """Wait until every dispatched notification has been handled."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                busy = [w for w in self._workers.values() if w.queue.unfinished_tasks]
            if not busy:
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.01)

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            self._stopped = True
            workers = list(self._workers.values())
            self._workers.clear()
        for w in workers:
            w.queue.put(None)
        for w in workers:
            w.join(timeout)

    def workers(self) -> list[tuple[tuple[str, str], int]]:
        """(identity, queued notifications) for each live worker."""
        with self._lock:
            return sorted((ident, w.queue.qsize()) for ident, w in self._workers.items())
