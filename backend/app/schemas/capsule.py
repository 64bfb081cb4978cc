from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class DeliveryResultOut(BaseModel):
    id: UUID
    success: bool
    error: str | None = None


class DeliveryOut(BaseModel):
    detail: str
    skipped: bool
    count: int
    delivered: int
    failed: int
    results: list[DeliveryResultOut]
