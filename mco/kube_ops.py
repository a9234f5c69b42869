from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Iterator

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .errors import AlreadyExists, NotFound, OperatorError, RemoteFailure, RenderError, VersionConflict
from .models import API_GROUP, API_VERSION, BACKUP_INSTANCE_PLURAL, CLUSTER_PLURAL, BackupInstance, ClusterResource
from .platform import SERVICE, STATEFUL_SET, PlatformClient, PlatformObject


def load_config(kubeconfig: str | None = None) -> None:
    """In-cluster service account first, kubeconfig as fallback."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config(config_file=kubeconfig)


def _api_message(e: ApiException) -> str:
    # The API server returns a Status object; its message is the useful part.
    try:
        data = json.loads(e.body or "")
    except (TypeError, ValueError):
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"{e.status} {e.reason}"


def translate(e: ApiException, op: str) -> OperatorError:
    msg = _api_message(e)
    if e.status == 404:
        return NotFound(msg)
    if e.status == 409:
        return AlreadyExists(msg) if op == "create" else VersionConflict(msg)
    return RemoteFailure(msg, status=e.status)


@contextmanager
def api_errors(op: str, kind: str, namespace: str, name: str) -> Iterator[None]:
    try:
        yield
    except ApiException as e:
        raise translate(e, op) from e
    except OperatorError:
        raise
    except Exception as e:
        # urllib3 connection errors and read timeouts end up here.
        raise RemoteFailure(f"{op} {kind} {namespace}/{name}: {type(e).__name__}: {e}") from e


class KubernetesPlatform(PlatformClient):
    """PlatformClient backed by the official kubernetes client."""

    def __init__(self, api_client: client.ApiClient | None = None):
        self.api_client = api_client or client.ApiClient()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)

    def available(self, timeout: float | None = None) -> bool:
        try:
            client.VersionApi(self.api_client).get_code(_request_timeout=timeout)
            return True
        except Exception:
            return False

    def _to_object(self, kind: str, obj: Any) -> PlatformObject:
        body = self.api_client.sanitize_for_serialization(obj)
        return PlatformObject(kind, body)

    def create_object(self, obj: PlatformObject, timeout: float | None = None) -> PlatformObject:
        with api_errors("create", obj.kind, obj.namespace, obj.name):
            if obj.kind == SERVICE:
                created = self.core.create_namespaced_service(obj.namespace, obj.body, _request_timeout=timeout)
            elif obj.kind == STATEFUL_SET:
                created = self.apps.create_namespaced_stateful_set(obj.namespace, obj.body, _request_timeout=timeout)
            else:
                raise RenderError(f"Unsupported kind {obj.kind!r}")
        return self._to_object(obj.kind, created)

    def get_object(self, kind: str, namespace: str, name: str, timeout: float | None = None) -> PlatformObject:
        with api_errors("get", kind, namespace, name):
            if kind == SERVICE:
                found = self.core.read_namespaced_service(name, namespace, _request_timeout=timeout)
            elif kind == STATEFUL_SET:
                found = self.apps.read_namespaced_stateful_set(name, namespace, _request_timeout=timeout)
            else:
                raise RenderError(f"Unsupported kind {kind!r}")
        return self._to_object(kind, found)

    def update_object(self, obj: PlatformObject, timeout: float | None = None) -> PlatformObject:
        with api_errors("update", obj.kind, obj.namespace, obj.name):
            if obj.kind == SERVICE:
                updated = self.core.replace_namespaced_service(
                    obj.name, obj.namespace, obj.body, _request_timeout=timeout
                )
            elif obj.kind == STATEFUL_SET:
                updated = self.apps.replace_namespaced_stateful_set(
                    obj.name, obj.namespace, obj.body, _request_timeout=timeout
                )
            else:
                raise RenderError(f"Unsupported kind {obj.kind!r}")
        return self._to_object(obj.kind, updated)

    def delete_object(self, kind: str, namespace: str, name: str, timeout: float | None = None) -> None:
        opts = client.V1DeleteOptions(propagation_policy="Background")
        with api_errors("delete", kind, namespace, name):
            if kind == SERVICE:
                self.core.delete_namespaced_service(name, namespace, body=opts, _request_timeout=timeout)
            elif kind == STATEFUL_SET:
                self.apps.delete_namespaced_stateful_set(name, namespace, body=opts, _request_timeout=timeout)
            else:
                raise RenderError(f"Unsupported kind {kind!r}")

    def get_backup(self, namespace: str, name: str, timeout: float | None = None) -> BackupInstance:
        with api_errors("get", "MySQLBackupInstance", namespace, name):
            raw = self.custom.get_namespaced_custom_object(
                API_GROUP, API_VERSION, namespace, BACKUP_INSTANCE_PLURAL, name, _request_timeout=timeout
            )
        try:
            return BackupInstance.from_dict(raw)
        except ValueError as e:
            raise RenderError(f"Backup instance {namespace}/{name} is malformed: {e}") from e

    def update_cluster_status(self, resource: ClusterResource, timeout: float | None = None) -> None:
        body = {"status": resource.status.model_dump()}
        with api_errors("update", resource.kind, resource.namespace, resource.name):
            self.custom.patch_namespaced_custom_object_status(
                API_GROUP,
                API_VERSION,
                resource.namespace,
                CLUSTER_PLURAL,
                resource.name,
                body,
                _request_timeout=timeout,
            )
