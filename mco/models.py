from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

API_GROUP = "cr.mco.io"
API_VERSION = "v1"
CLUSTER_KIND = "MySQLCluster"
CLUSTER_PLURAL = "mysqlclusters"
BACKUP_INSTANCE_KIND = "MySQLBackupInstance"
BACKUP_INSTANCE_PLURAL = "mysqlbackupinstances"

DEFAULT_STORAGE = "1Gi"
DEFAULT_REPLICAS = 2
DEFAULT_PORT = 3306
DEFAULT_IMAGE = "mysql:latest"

READ_SERVICE_SUFFIX = "-read"

# DNS-1035 label that still fits 63 chars once READ_SERVICE_SUFFIX is appended.
CLUSTER_NAME_RE = re.compile(r"^[a-z]([-a-z0-9]{0,56}[a-z0-9])?$")


def validate_cluster_name(name: str) -> None:
    if not CLUSTER_NAME_RE.match(name or ""):
        raise ValueError(
            f"Invalid cluster name {name!r}. Use lowercase letters/numbers and hyphen, "
            "starting with a letter (max 58 chars)."
        )


def service_name(cluster_name: str) -> str:
    return cluster_name


def read_service_name(cluster_name: str) -> str:
    return f"{cluster_name}{READ_SERVICE_SUFFIX}"


def stateful_set_name(cluster_name: str) -> str:
    return cluster_name


def backup_claim_name(schedule_name: str) -> str:
    return f"{schedule_name}-backup"


class _WireModel(BaseModel):
    # Wire form is camelCase; python attributes are snake_case.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ObjectMeta(_WireModel):
    name: str
    namespace: str = "default"
    resource_version: str | None = Field(None, alias="resourceVersion")
    generation: int | None = None
    uid: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)


class ClusterSpec(_WireModel):
    password: str = Field("", description="Name of the Secret holding the root password (key: password)")
    storage: str | None = Field(None, description="Volume size per instance, e.g. 1Gi")
    replicas: int | None = Field(None, ge=1)
    port: int | None = Field(None, ge=1, le=65535)
    image: str | None = None
    from_backup: str | None = Field(None, alias="fromBackup", description="MySQLBackupInstance to seed from")


class ClusterStatus(_WireModel):
    state: str = ""
    message: str = ""


class ClusterResource(_WireModel):
    api_version: str = Field(f"{API_GROUP}/{API_VERSION}", alias="apiVersion")
    kind: str = CLUSTER_KIND
    metadata: ObjectMeta
    spec: ClusterSpec = Field(default_factory=ClusterSpec)
    status: ClusterStatus = Field(default_factory=ClusterStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def identity(self) -> tuple[str, str]:
        return self.metadata.namespace, self.metadata.name

    def with_defaults(self) -> ClusterResource:
        """Return a copy with every unset optional spec field filled in."""
        spec = self.spec
        defaulted = spec.model_copy(
            update={
                "storage": spec.storage or DEFAULT_STORAGE,
                "replicas": spec.replicas or DEFAULT_REPLICAS,
                "port": spec.port or DEFAULT_PORT,
                "image": spec.image or DEFAULT_IMAGE,
            }
        )
        return self.model_copy(update={"spec": defaulted}, deep=True)

    def with_status(self, state: str, message: str) -> ClusterResource:
        return self.model_copy(update={"status": ClusterStatus(state=state, message=message)}, deep=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterResource:
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class BackupInstanceSpec(_WireModel):
    schedule: str = Field(..., description="MySQLBackupSchedule that produced the backup")
    cluster: str = Field(..., description="Cluster the backup was taken from")


class BackupInstanceStatus(_WireModel):
    phase: str = ""
    message: str = ""


class BackupInstance(_WireModel):
    api_version: str = Field(f"{API_GROUP}/{API_VERSION}", alias="apiVersion")
    kind: str = BACKUP_INSTANCE_KIND
    metadata: ObjectMeta
    spec: BackupInstanceSpec
    status: BackupInstanceStatus = Field(default_factory=BackupInstanceStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupInstance:
        return cls.model_validate(data)


@dataclass(frozen=True)
class RenderContext:
    """Everything a template may reference."""

    cluster: ClusterResource
    backup: BackupInstance | None = None
