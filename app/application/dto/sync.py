from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FetchBatch:
    """Items fetched for one sync cycle; `error` is set when the fetch stopped early."""

    items: list[Any] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class SyncPoolInput:
    chain: str
    pool_address: str
    force: bool = False


@dataclass(frozen=True)
class SyncPoolOutput:
    success: bool
    count: int
    error: str | None = None
