from __future__ import annotations

import argparse
import json
import sys

import requests
import yaml

from mco.errors import RenderError
from mco.models import BackupInstance, ClusterResource
from mco.render import default_renderer, read_service_for_cluster, service_for_cluster, stateful_set_for_cluster


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _load_yaml(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _render(args: argparse.Namespace) -> int:
    try:
        cluster = ClusterResource.from_dict(_load_yaml(args.file)).with_defaults()
        backup = BackupInstance.from_dict(_load_yaml(args.backup)) if args.backup else None
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    renderer = default_renderer(args.templates_dir)
    try:
        objects = [
            service_for_cluster(renderer, cluster),
            read_service_for_cluster(renderer, cluster),
            stateful_set_for_cluster(renderer, cluster, backup),
        ]
    except RenderError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(yaml.safe_dump_all([o.body for o in objects], sort_keys=False), end="")
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="MySQL Cluster Operator CLI")
    p.add_argument("--api", default="http://localhost:8000", help="Operator API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("clusters", help="Last reconciliation outcome per cluster")

    s_cl = sub.add_parser("cluster", help="Last reconciliation outcome of one cluster")
    s_cl.add_argument("name")
    s_cl.add_argument("--namespace", default="default")

    s_ev = sub.add_parser("events", help="Show journal events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--cluster")

    s_rc = sub.add_parser("reconciliations", help="Show reconciliation history")
    s_rc.add_argument("--limit", type=int, default=20)
    s_rc.add_argument("--cluster")
    s_rc.add_argument("--namespace")

    sub.add_parser("workers", help="Show dispatcher workers and counters")

    s_rn = sub.add_parser("render", help="Print the manifests for a MySQLCluster file (offline)")
    s_rn.add_argument("--file", "-f", required=True, help="MySQLCluster YAML")
    s_rn.add_argument("--backup", help="MySQLBackupInstance YAML to seed from")
    s_rn.add_argument("--templates-dir", help="Directory with custom templates")

    args = p.parse_args(argv)

    if args.cmd == "render":
        return _render(args)

    base = args.api.rstrip("/")

    if args.cmd == "clusters":
        _print(requests.get(f"{base}/clusters", timeout=10).json())
        return 0

    if args.cmd == "cluster":
        r = requests.get(f"{base}/clusters/{args.namespace}/{args.name}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.cluster:
            params["cluster"] = args.cluster
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "reconciliations":
        params = {"limit": args.limit}
        if args.cluster:
            params["cluster"] = args.cluster
        if args.namespace:
            params["namespace"] = args.namespace
        _print(requests.get(f"{base}/reconciliations", params=params, timeout=10).json())
        return 0

    if args.cmd == "workers":
        _print(requests.get(f"{base}/workers", timeout=10).json())
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
