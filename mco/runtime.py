from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class ClusterOutcome:
    namespace: str
    name: str
    action: str  # add|update|delete
    ok: bool
    error: str | None = None
    reconciles: int = 0
    failures: int = 0
    updated_at: str = field(default_factory=utc_now)


class RuntimeState:
    """In-memory view of what the dispatcher has done so far."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.outcomes: dict[tuple[str, str], ClusterOutcome] = {}  # (namespace, name) -> last outcome
        self.processed = 0
        self.failed = 0

    def record(self, namespace: str, name: str, action: str, error: BaseException | None) -> ClusterOutcome:
        with self.lock:
            self.processed += 1
            if error is not None:
                self.failed += 1
            prev = self.outcomes.get((namespace, name))
            out = ClusterOutcome(
                namespace=namespace,
                name=name,
                action=action,
                ok=error is None,
                error=str(error) if error is not None else None,
                reconciles=(prev.reconciles if prev else 0) + 1,
                failures=(prev.failures if prev else 0) + (1 if error is not None else 0),
            )
            self.outcomes[(namespace, name)] = out
            return out

    def get(self, namespace: str, name: str) -> ClusterOutcome | None:
        with self.lock:
            return self.outcomes.get((namespace, name))

    def list_outcomes(self) -> list[ClusterOutcome]:
        with self.lock:
            return sorted(self.outcomes.values(), key=lambda o: (o.namespace, o.name))

    def counters(self) -> tuple[int, int]:
        with self.lock:
            return self.processed, self.failed
