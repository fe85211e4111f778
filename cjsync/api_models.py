from __future__ import annotations

from pydantic import BaseModel, Field


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    namespace: str | None = None
    object_kind: str | None = None
    object_name: str | None = None
    reason: str | None = None
    message: str


class ReconcileRowOut(BaseModel):
    id: int
    ts: str
    namespace: str
    name: str
    outcome: str = Field(..., description="synced|skipped|failed")
    updated: int
    deleted: int
    error: str | None = None


class ReconcileOut(BaseModel):
    namespace: str
    name: str
    found: bool = Field(..., description="False when the Deployment no longer exists")
    outcome: str
    matched: list[str] = Field(default_factory=list, description="CronJobs related to the Deployment")
    updated: list[str] = Field(default_factory=list, description="CronJobs whose images were rewritten")
    deleted_jobs: list[str] = Field(default_factory=list)


class QueueOut(BaseModel):
    depth: int = Field(..., ge=0)
    delayed: int = Field(..., ge=0)
    in_flight: list[str] = Field(default_factory=list)
