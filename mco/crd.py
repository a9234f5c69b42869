from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from kubernetes.client.rest import ApiException

from . import db
from .kube_ops import translate
from .render import ARTIFACTS_DIR

CLUSTER_DEFINITION = ARTIFACTS_DIR / "mysql-crd.yaml"
BACKUP_INSTANCE_DEFINITION = ARTIFACTS_DIR / "mysql-backup-instance-crd.yaml"


def load_definition(source: str | Path) -> dict[str, Any]:
    text = Path(source).read_text(encoding="utf-8")
    definition = yaml.safe_load(text)
    if not isinstance(definition, dict) or definition.get("kind") != "CustomResourceDefinition":
        raise ValueError(f"{source} is not a CustomResourceDefinition")
    return definition


def register_schema(api: Any, source: str | Path, timeout: float | None = None) -> bool:
    """Install a CustomResourceDefinition.

    ``api`` is an ``ApiextensionsV1Api``. Returns False when the definition was
    already registered.
    """
    definition = load_definition(source)
    name = definition["metadata"]["name"]
    try:
        api.create_custom_resource_definition(definition, _request_timeout=timeout)
    except ApiException as e:
        if e.status == 409:
            db.log_event("INFO", f"CRD {name} already registered")
            return False
        raise translate(e, "create") from e
    db.log_event("INFO", f"Registered CRD {name}")
    return True


def register_all(api: Any, timeout: float | None = None) -> None:
    for source in (CLUSTER_DEFINITION, BACKUP_INSTANCE_DEFINITION):
        register_schema(api, source, timeout=timeout)
