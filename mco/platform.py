"""Platform client contract and an in-memory implementation.

The operator only talks to the platform through ``PlatformClient``. The real
implementation lives in ``kube_ops``; ``InMemoryPlatform`` keeps objects in a
dict, records every call and can be told to fail specific calls.
"""
from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

from .errors import AlreadyExists, NotFound, RemoteFailure, VersionConflict
from .models import BACKUP_INSTANCE_KIND, CLUSTER_KIND, BackupInstance, ClusterResource

SERVICE = "Service"
STATEFUL_SET = "StatefulSet"
KINDS = (SERVICE, STATEFUL_SET)


@dataclass
class PlatformObject:
    kind: str
    body: dict[str, Any]

    @property
    def metadata(self) -> dict[str, Any]:
        return self.body.setdefault("metadata", {})

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "default")

    @property
    def resource_version(self) -> str | None:
        return self.metadata.get("resourceVersion")

    def with_resource_version(self, version: str | None) -> PlatformObject:
        body = copy.deepcopy(self.body)
        body.setdefault("metadata", {})["resourceVersion"] = version
        return PlatformObject(self.kind, body)


class PlatformClient(ABC):
    """Typed access to the objects the operator owns.

    Every call is bounded by ``timeout`` seconds and raises an ``OperatorError``
    subclass on failure.
    """

    @abstractmethod
    def create_object(self, obj: PlatformObject, timeout: float | None = None) -> PlatformObject: ...

    @abstractmethod
    def get_object(self, kind: str, namespace: str, name: str, timeout: float | None = None) -> PlatformObject: ...

    @abstractmethod
    def update_object(self, obj: PlatformObject, timeout: float | None = None) -> PlatformObject: ...

    @abstractmethod
    def delete_object(self, kind: str, namespace: str, name: str, timeout: float | None = None) -> None: ...

    @abstractmethod
    def get_backup(self, namespace: str, name: str, timeout: float | None = None) -> BackupInstance: ...

    @abstractmethod
    def update_cluster_status(self, resource: ClusterResource, timeout: float | None = None) -> None: ...


@dataclass(frozen=True)
class Call:
    op: str  # create|get|update|delete|get_backup|update_status
    kind: str
    namespace: str
    name: str
    timeout: float | None = None


@dataclass
class _Failure:
    error: BaseException
    remaining: int | None  # None = every time


@dataclass
class InMemoryPlatform(PlatformClient):
    """Dict-backed platform used by tests and the offline CLI."""

    objects: dict[tuple[str, str, str], dict[str, Any]] = field(default_factory=dict)
    backups: dict[tuple[str, str], BackupInstance] = field(default_factory=dict)
    statuses: dict[tuple[str, str], ClusterResource] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = Lock()
        self._failures: dict[tuple[str, str, str], _Failure] = {}
        self._version = 0

    # --- test hooks ---

    def fail(self, op: str, kind: str, name: str, error: BaseException, times: int | None = 1) -> None:
        """Make the next ``times`` matching calls raise ``error``; name ``*`` matches any."""
        with self._lock:
            self._failures[(op, kind, name)] = _Failure(error, times)

    def put(self, obj: PlatformObject) -> PlatformObject:
        with self._lock:
            return self._store(obj)

    def add_backup(self, backup: BackupInstance) -> None:
        with self._lock:
            self.backups[(backup.metadata.namespace, backup.name)] = backup

    def exists(self, kind: str, namespace: str, name: str) -> bool:
        with self._lock:
            return (kind, namespace, name) in self.objects

    def names(self, kind: str, namespace: str = "default") -> list[str]:
        with self._lock:
            return sorted(n for (k, ns, n) in self.objects if k == kind and ns == namespace)

    def ops(self, op: str | None = None) -> list[Call]:
        with self._lock:
            return [c for c in self.calls if op is None or c.op == op]

    # --- internals ---

    def _record(self, op: str, kind: str, namespace: str, name: str, timeout: float | None) -> None:
        self.calls.append(Call(op, kind, namespace, name, timeout))
        failure = self._failures.get((op, kind, name)) or self._failures.get((op, kind, "*"))
        if failure is None:
            return
        if failure.remaining is not None:
            failure.remaining -= 1
            if failure.remaining <= 0:
                for key, value in list(self._failures.items()):
                    if value is failure:
                        del self._failures[key]
        raise failure.error

    def _store(self, obj: PlatformObject) -> PlatformObject:
        self._version += 1
        body = copy.deepcopy(obj.body)
        body.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        body["metadata"].setdefault("namespace", "default")
        self.objects[(obj.kind, obj.namespace, obj.name)] = body
        return PlatformObject(obj.kind, copy.deepcopy(body))

    # --- PlatformClient ---

    def create_object(self, obj: PlatformObject, timeout: float | None = None) -> PlatformObject:
        with self._lock:
            self._record("create", obj.kind, obj.namespace, obj.name, timeout)
            if (obj.kind, obj.namespace, obj.name) in self.objects:
                raise AlreadyExists(f'{obj.kind.lower()}s "{obj.name}" already exists')
            return self._store(obj)

    def get_object(self, kind: str, namespace: str, name: str, timeout: float | None = None) -> PlatformObject:
        with self._lock:
            self._record("get", kind, namespace, name, timeout)
            body = self.objects.get((kind, namespace, name))
            if body is None:
                raise NotFound(f'{kind.lower()}s "{name}" not found')
            return PlatformObject(kind, copy.deepcopy(body))

    def update_object(self, obj: PlatformObject, timeout: float | None = None) -> PlatformObject:
        with self._lock:
            self._record("update", obj.kind, obj.namespace, obj.name, timeout)
            current = self.objects.get((obj.kind, obj.namespace, obj.name))
            if current is None:
                raise NotFound(f'{obj.kind.lower()}s "{obj.name}" not found')
            if not obj.resource_version:
                raise RemoteFailure(
                    f'{obj.kind} "{obj.name}" is invalid: metadata.resourceVersion must be specified for an update',
                    status=422,
                )
            if obj.resource_version != current["metadata"]["resourceVersion"]:
                raise VersionConflict(
                    f'Operation cannot be fulfilled on {obj.kind.lower()}s "{obj.name}": '
                    "the object has been modified; please apply your changes to the latest version and try again"
                )
            return self._store(obj)

    def delete_object(self, kind: str, namespace: str, name: str, timeout: float | None = None) -> None:
        with self._lock:
            self._record("delete", kind, namespace, name, timeout)
            if self.objects.pop((kind, namespace, name), None) is None:
                raise NotFound(f'{kind.lower()}s "{name}" not found')

    def get_backup(self, namespace: str, name: str, timeout: float | None = None) -> BackupInstance:
        with self._lock:
            self._record("get_backup", BACKUP_INSTANCE_KIND, namespace, name, timeout)
            backup = self.backups.get((namespace, name))
            if backup is None:
                raise NotFound(f'{BACKUP_INSTANCE_KIND.lower()}s "{name}" not found')
            return backup

    def update_cluster_status(self, resource: ClusterResource, timeout: float | None = None) -> None:
        with self._lock:
            self._record("update_status", CLUSTER_KIND, resource.namespace, resource.name, timeout)
            self.statuses[resource.identity] = resource.model_copy(deep=True)
