from __future__ import annotations

from . import db
from .errors import AlreadyExists, NotFound, OperatorError, aggregate
from .models import BackupInstance, ClusterResource, read_service_name, service_name, stateful_set_name
from .platform import SERVICE, STATEFUL_SET, PlatformClient, PlatformObject
from .render import Renderer, read_service_for_cluster, service_for_cluster, stateful_set_for_cluster
from .settings import settings

FAILED_UPDATE = "Failed update"
SUCCESSFUL_UPDATE = "Successful update"
SERVICE_UPDATE_FAILURE = "The provided patch resulted in a Service update failure"
STATEFUL_SET_UPDATE_FAILURE = "The provided patch resulted in a StatefulSet update failure"


class ClusterOperator:
    """Creates, updates and tears down the objects behind a MySQLCluster.

    Creation is compensated: when a later step fails, the Services created by
    earlier steps are deleted again and the caller gets every failure in one
    ``CompositeError``. Updates are not rolled back; they write a failure
    status instead and rely on the next event to converge.
    """

    def __init__(self, platform: PlatformClient, renderer: Renderer, timeout_s: float | None = None):
        self.platform = platform
        self.renderer = renderer
        self.timeout_s = settings.request_timeout_s if timeout_s is None else timeout_s

    # --- add ---

    def add_cluster(self, cluster: ClusterResource) -> None:
        cluster = cluster.with_defaults()

        self._log(cluster, "DEBUG", "Creating service.")
        self._create(cluster, service_for_cluster(self.renderer, cluster))

        self._log(cluster, "DEBUG", "Creating read service.")
        try:
            self._create(cluster, read_service_for_cluster(self.renderer, cluster))
        except OperatorError as err:
            self._log(cluster, "WARN", f"Reverting service creation: {err}")
            remove_err = self._remove(cluster, SERVICE, service_name(cluster.name))
            raise aggregate([err, remove_err]) from err

        self._log(cluster, "DEBUG", "Creating stateful set.")
        backup = self._resolve_backup(cluster)
        try:
            self._create(cluster, stateful_set_for_cluster(self.renderer, cluster, backup))
        except OperatorError as err:
            self._log(cluster, "WARN", f"Reverting service creation: {err}")
            remove_err = self._remove(cluster, SERVICE, service_name(cluster.name))
            self._log(cluster, "WARN", "Reverting read service creation.")
            remove_read_err = self._remove(cluster, SERVICE, read_service_name(cluster.name))
            raise aggregate([err, remove_err, remove_read_err]) from err

    def _create(self, cluster: ClusterResource, obj: PlatformObject) -> None:
        try:
            self.platform.create_object(obj, timeout=self.timeout_s)
        except AlreadyExists:
            self._log(cluster, "WARN", f"{obj.kind} {obj.name} for cluster already exists")

    def _resolve_backup(self, cluster: ClusterResource) -> BackupInstance | None:
        if not cluster.spec.from_backup:
            return None
        return self.platform.get_backup(cluster.namespace, cluster.spec.from_backup, timeout=self.timeout_s)

    def _remove(self, cluster: ClusterResource, kind: str, name: str) -> OperatorError | None:
        """Best-effort delete; returns the failure instead of raising it."""
        try:
            self.platform.delete_object(kind, cluster.namespace, name, timeout=self.timeout_s)
        except NotFound:
            return None
        except OperatorError as e:
            self._log(cluster, "ERROR", f"Removing {kind} {name} failed: {e}")
            return e
        return None

    # --- update ---

    def update_cluster(self, cluster: ClusterResource) -> None:
        cluster = cluster.with_defaults()

        self._log(cluster, "DEBUG", "Updating services.")
        try:
            self._update(service_for_cluster(self.renderer, cluster))
            self._update(read_service_for_cluster(self.renderer, cluster))
        except OperatorError as err:
            self._log(cluster, "WARN", f"Setting status: {err}")
            status_err = self._set_state(cluster, FAILED_UPDATE, SERVICE_UPDATE_FAILURE)
            raise aggregate([err, status_err]) from err

        self._log(cluster, "DEBUG", "Updating stateful set.")
        try:
            self._update(stateful_set_for_cluster(self.renderer, cluster))
        except OperatorError as err:
            self._log(cluster, "WARN", f"Setting status: {err}")
            status_err = self._set_state(cluster, FAILED_UPDATE, STATEFUL_SET_UPDATE_FAILURE)
            raise aggregate([err, status_err]) from err

        status_err = self._set_state(cluster, SUCCESSFUL_UPDATE, "")
        if status_err is not None:
            raise status_err

    def _update(self, desired: PlatformObject) -> None:
        # Updates must carry the current resourceVersion. Read it right before
        # writing; a concurrent change in between surfaces as VersionConflict.
        current = self.platform.get_object(desired.kind, desired.namespace, desired.name, timeout=self.timeout_s)
        obj = desired.with_resource_version(current.resource_version)
        if obj.kind == SERVICE:
            # clusterIP is assigned by the platform and immutable.
            cluster_ip = current.body.get("spec", {}).get("clusterIP")
            if cluster_ip and "clusterIP" not in obj.body.get("spec", {}):
                obj.body.setdefault("spec", {})["clusterIP"] = cluster_ip
        elif obj.kind == STATEFUL_SET:
            # Seeding from a backup happens once, at creation. Keep the restore
            # init container and its volume from the live pod template.
            current_pod = current.body.get("spec", {}).get("template", {}).get("spec", {})
            pod = obj.body.setdefault("spec", {}).setdefault("template", {}).setdefault("spec", {})
            for key in ("initContainers", "volumes"):
                if key in current_pod and key not in pod:
                    pod[key] = current_pod[key]
        self.platform.update_object(obj, timeout=self.timeout_s)

    def _set_state(self, cluster: ClusterResource, state: str, message: str) -> OperatorError | None:
        try:
            self.platform.update_cluster_status(cluster.with_status(state, message), timeout=self.timeout_s)
        except OperatorError as e:
            return e
        return None

    # --- delete ---

    def delete_cluster(self, cluster: ClusterResource) -> None:
        """Remove the stateful set and both services by their derived names."""
        name = cluster.name
        self._log(cluster, "DEBUG", "Removing stateful set and services.")
        err = aggregate(
            [
                self._remove(cluster, STATEFUL_SET, stateful_set_name(name)),
                self._remove(cluster, SERVICE, read_service_name(name)),
                self._remove(cluster, SERVICE, service_name(name)),
            ]
        )
        if err is not None:
            raise err

    def _log(self, cluster: ClusterResource, level: str, message: str) -> None:
        db.log_event(level, message, cluster=cluster.name, namespace=cluster.namespace)
