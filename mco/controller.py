from __future__ import annotations

from threading import Event, Thread
from typing import Any, Callable

from kubernetes import watch
from kubernetes.client.rest import ApiException

from . import db
from .dispatcher import ACTIONS, DELETED, MODIFIED, Dispatcher, Notification
from .models import API_GROUP, API_VERSION, CLUSTER_PLURAL, ClusterResource
from .settings import settings


class ClusterController:
    """Feeds MySQLCluster watch events into the dispatcher.

    Runs a watch on a background thread and resumes it from the last seen
    resourceVersion. An expired version (410) restarts with a fresh list.
    MODIFIED events that keep metadata.generation unchanged are status-only
    writes (most of them our own) and are not forwarded.
    """

    def __init__(
        self,
        api: Any,
        dispatcher: Dispatcher,
        namespace: str | None = None,
        watch_timeout_s: int | None = None,
        retry_s: float | None = None,
        watch_factory: Callable[[], Any] = watch.Watch,
    ):
        self.api = api  # kubernetes.client.CustomObjectsApi
        self.dispatcher = dispatcher
        self.namespace = settings.namespace if namespace is None else namespace
        self.watch_timeout_s = settings.watch_timeout_s if watch_timeout_s is None else watch_timeout_s
        self.retry_s = settings.watch_retry_s if retry_s is None else retry_s
        self.watch_factory = watch_factory
        self.resource_version: str | None = None
        self._generations: dict[tuple[str, str], int | None] = {}
        self._stop = Event()
        self._watch: Any = None
        self._thr: Thread | None = None

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self._loop, name="mco-controller", daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop.set()
        if self._watch is not None:
            self._watch.stop()

    def _loop(self) -> None:
        db.log_event("INFO", f"Cluster controller started (namespace={self.namespace or '*'})")
        while not self._stop.is_set():
            try:
                self.watch_once()
            except ApiException as e:
                if e.status == 410:
                    db.log_event("INFO", "Watch resource version expired, relisting")
                    self.resource_version = None
                    continue
                db.log_event("ERROR", f"Watch failed: {e.status} {e.reason}")
                self._stop.wait(self.retry_s)
            except Exception as e:
                db.log_event("ERROR", f"Watch failed: {type(e).__name__}: {e}")
                self._stop.wait(self.retry_s)
        db.log_event("INFO", "Cluster controller stopped")

    def watch_once(self) -> None:
        """Run one watch request until it times out or the controller stops."""
        kwargs: dict[str, Any] = {
            "group": API_GROUP,
            "version": API_VERSION,
            "plural": CLUSTER_PLURAL,
            "timeout_seconds": self.watch_timeout_s,
        }
        if self.namespace:
            kwargs["namespace"] = self.namespace
            func = self.api.list_namespaced_custom_object
        else:
            func = self.api.list_cluster_custom_object
        if self.resource_version:
            kwargs["resource_version"] = self.resource_version

        w = self.watch_factory()
        self._watch = w
        try:
            for event in w.stream(func, **kwargs):
                if self._stop.is_set():
                    break
                self.handle_event(event)
        finally:
            w.stop()
            self._watch = None

    def handle_event(self, event: dict[str, Any]) -> None:
        etype = event.get("type")
        obj = event.get("object") or {}

        if etype == "ERROR":
            if obj.get("code") == 410:
                raise ApiException(status=410, reason=obj.get("message") or "Gone")
            db.log_event("ERROR", f"Watch error event: {obj.get('message') or obj!r}")
            return

        version = (obj.get("metadata") or {}).get("resourceVersion")
        if version:
            self.resource_version = version
        if etype not in ACTIONS:
            # BOOKMARK only advances the resource version.
            return

        try:
            resource = ClusterResource.from_dict(obj)
        except ValueError as e:
            db.log_event("ERROR", f"Ignoring malformed {etype} event: {e}")
            return

        if self._should_forward(etype, resource):
            self.dispatcher.dispatch(Notification(etype, resource))

    def _should_forward(self, etype: str, resource: ClusterResource) -> bool:
        ident = resource.identity
        generation = resource.metadata.generation
        if etype == DELETED:
            self._generations.pop(ident, None)
            return True
        if etype == MODIFIED and generation is not None and self._generations.get(ident) == generation:
            return False
        self._generations[ident] = generation
        return True
