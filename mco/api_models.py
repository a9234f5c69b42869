from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy|degraded")
    platform: bool = Field(..., description="Whether the platform API answered")


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    namespace: str | None = None
    cluster: str | None = None
    message: str


class ReconcileOut(BaseModel):
    id: int
    ts: str
    namespace: str
    cluster: str
    action: str = Field(..., description="add|update|delete")
    outcome: str = Field(..., description="ok|failed")
    error: str | None = None
    duration_ms: float | None = None


class ClusterOut(BaseModel):
    namespace: str
    name: str
    action: str
    ok: bool
    error: str | None = None
    reconciles: int
    failures: int
    updated_at: str


class WorkerOut(BaseModel):
    namespace: str
    name: str
    queued: int


class WorkersOut(BaseModel):
    processed: int
    failed: int
    workers: list[WorkerOut]
