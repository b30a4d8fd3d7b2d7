from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class SyncRequest(BaseModel):
    action: Literal["sync_pool", "sync_all"] = "sync_pool"
    chain_id: str | None = Field(None, description="Required for sync_pool.")
    pool_address: str | None = Field(None, description="Required for sync_pool.")
    force: bool = False


class SyncResponse(BaseModel):
    success: bool
    count: int
    error: str | None = None
