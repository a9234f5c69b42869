from __future__ import annotations

from pathlib import Path
from typing import Mapping

import yaml
from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError, TemplateNotFound

from .errors import RenderError
from .models import (
    BackupInstance,
    ClusterResource,
    RenderContext,
    backup_claim_name,
    read_service_name,
    service_name,
    stateful_set_name,
    validate_cluster_name,
)
from .platform import PlatformObject

SERVICE_TEMPLATE = "service"
READ_SERVICE_TEMPLATE = "service-read"
STATEFUL_SET_TEMPLATE = "statefulset"

ARTIFACTS_DIR = Path(__file__).parent / "artifacts"

# template id -> file under the templates directory
TEMPLATE_FILES = {
    SERVICE_TEMPLATE: "cluster-service.yaml",
    READ_SERVICE_TEMPLATE: "cluster-service-read.yaml",
    STATEFUL_SET_TEMPLATE: "cluster-statefulset.yaml",
}

RESTORE_IMAGE = "gcr.io/google-samples/xtrabackup:1.0"


class Renderer:
    """Turns a render context into platform manifests.

    Templates are Jinja2 sources producing YAML, keyed by template id. Rendering
    has no side effects.
    """

    def __init__(self, templates: Mapping[str, str], restore_image: str = RESTORE_IMAGE):
        self.env = Environment(
            loader=DictLoader(dict(templates)),
            undefined=StrictUndefined,
            autoescape=False,
        )
        self.env.globals.update(
            service_name=service_name,
            read_service_name=read_service_name,
            stateful_set_name=stateful_set_name,
            backup_claim_name=backup_claim_name,
            restore_image=restore_image,
        )

    @classmethod
    def from_directory(cls, path: str | Path) -> Renderer:
        base = Path(path)
        templates: dict[str, str] = {}
        for template_id, filename in TEMPLATE_FILES.items():
            try:
                templates[template_id] = (base / filename).read_text(encoding="utf-8")
            except OSError as e:
                raise RenderError(f"Cannot read template {template_id!r} from {base / filename}: {e}") from e
        return cls(templates)

    def render(self, template_id: str, context: RenderContext) -> PlatformObject:
        try:
            validate_cluster_name(context.cluster.name)
        except ValueError as e:
            raise RenderError(str(e)) from e
        spec = context.cluster.spec
        missing = [f for f in ("storage", "replicas", "port", "image") if getattr(spec, f) is None]
        if missing:
            raise RenderError(f"Cluster spec is missing {', '.join(missing)}; apply defaults before rendering")

        try:
            template = self.env.get_template(template_id)
        except TemplateNotFound as e:
            raise RenderError(f"Unknown template {template_id!r}") from e

        try:
            text = template.render(cluster=context.cluster, backup=context.backup)
        except TemplateError as e:
            raise RenderError(f"Template {template_id!r}: {e}") from e

        try:
            body = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise RenderError(f"Template {template_id!r} produced invalid YAML: {e}") from e

        if not isinstance(body, dict):
            raise RenderError(f"Template {template_id!r} did not produce a mapping")
        kind = body.get("kind")
        meta = body.get("metadata")
        if not kind or not isinstance(meta, dict) or not meta.get("name"):
            raise RenderError(f"Template {template_id!r} produced an object without kind or metadata.name")

        meta["namespace"] = context.cluster.namespace
        return PlatformObject(kind=kind, body=body)


def default_renderer(templates_dir: str | None = None) -> Renderer:
    return Renderer.from_directory(templates_dir or ARTIFACTS_DIR)


def service_for_cluster(renderer: Renderer, cluster: ClusterResource) -> PlatformObject:
    return renderer.render(SERVICE_TEMPLATE, RenderContext(cluster))


def read_service_for_cluster(renderer: Renderer, cluster: ClusterResource) -> PlatformObject:
    return renderer.render(READ_SERVICE_TEMPLATE, RenderContext(cluster))


def stateful_set_for_cluster(
    renderer: Renderer, cluster: ClusterResource, backup: BackupInstance | None = None
) -> PlatformObject:
    return renderer.render(STATEFUL_SET_TEMPLATE, RenderContext(cluster, backup))
