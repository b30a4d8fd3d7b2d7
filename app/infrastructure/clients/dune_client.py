from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import time

from app.application.dto.sync import FetchBatch
from app.domain.entities.lp_position import LpEvent
from app.domain.exceptions import PollTimeoutError, ProviderError, QueryFailedError, TransportError
from app.infrastructure.clients.http_gateway import HttpJsonGateway


logger = logging.getLogger(__name__)

STATE_COMPLETED = "QUERY_STATE_COMPLETED"
FAILED_STATES = frozenset({"QUERY_STATE_FAILED", "QUERY_STATE_CANCELLED", "QUERY_STATE_EXPIRED"})
PAGE_SIZE = 1000


@dataclass(frozen=True)
class DuneClientSettings:
    api_base: str
    api_key: str
    query_ids: dict
    poll_interval_seconds: float
    max_wait_seconds: float


def parse_block_time(value) -> int:
    """Dune timestamps look like `2024-10-10 10:10:10.000 UTC`."""
    text = str(value).strip()
    if text.endswith(" UTC"):
        text = text[: -len(" UTC")]
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00").replace(" ", "T", 1))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def map_row(row: dict) -> LpEvent:
    return LpEvent(
        owner=str(row.get("sender") or "").lower(),
        tick_lower=int(row["tick_lower"]),
        tick_upper=int(row["tick_upper"]),
        liquidity_delta=str(row.get("liquidity_delta")),
        tx_hash=str(row["tx_hash"]).lower(),
        block_number=int(row["block_number"]),
        timestamp=parse_block_time(row["block_time"]),
    )


class DuneClient:
    """Submit-then-poll LP history query; results are paged until a short page."""

    def __init__(
        self,
        settings: DuneClientSettings,
        *,
        gateway: HttpJsonGateway,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._gateway = gateway
        self._sleep = sleep
        self._clock = clock
        self._api_base = settings.api_base.rstrip("/")
        self._headers = {"X-Dune-API-Key": settings.api_key}

    def supports(self, *, chain: str) -> bool:
        return bool(self._settings.query_ids.get(chain))

    async def fetch_lp_events(
        self,
        *,
        chain: str,
        pool_address: str,
        from_block: int,
        to_block: int,
    ) -> FetchBatch:
        query_id = self._settings.query_ids.get(chain)
        if not query_id:
            raise ProviderError(f"No Dune query configured for chain {chain}")

        execution_id = await self._execute(query_id=query_id, pool_address=pool_address)
        await self._wait(execution_id)
        rows, error = await self._fetch_rows(execution_id)

        events: list[LpEvent] = []
        below_start = 0
        malformed = 0
        for row in rows:
            try:
                event = map_row(row)
            except (KeyError, TypeError, ValueError):
                malformed += 1
                continue
            if event.block_number < from_block:
                below_start += 1
                continue
            events.append(event)
        logger.info(
            "dune_client: fetched chain=%s pool=%s rows=%s kept=%s below_start=%s malformed=%s",
            chain,
            pool_address,
            len(rows),
            len(events),
            below_start,
            malformed,
        )
        return FetchBatch(items=events, error=error)

    async def _execute(self, *, query_id, pool_address: str) -> str:
        payload = await self._gateway.post_json(
            f"{self._api_base}/query/{query_id}/execute",
            json={"query_parameters": {"pool_id": pool_address}},
            headers=self._headers,
        )
        execution_id = (payload or {}).get("execution_id")
        if not execution_id:
            raise ProviderError(f"Dune execute returned no execution_id for query {query_id}")
        logger.info("dune_client: executed query_id=%s execution_id=%s", query_id, execution_id)
        return execution_id

    async def _wait(self, execution_id: str) -> None:
        started = self._clock()
        while True:
            payload = await self._gateway.get_json(
                f"{self._api_base}/execution/{execution_id}/status",
                headers=self._headers,
            )
            state = (payload or {}).get("state")
            logger.debug("dune_client: poll state=%s execution_id=%s", state, execution_id)
            if state == STATE_COMPLETED:
                return
            if state in FAILED_STATES:
                raise QueryFailedError(f"Dune execution {execution_id} ended in {state}")
            if self._clock() - started >= self._settings.max_wait_seconds:
                raise PollTimeoutError(
                    f"Dune execution {execution_id} not finished after {self._settings.max_wait_seconds}s"
                )
            await self._sleep(self._settings.poll_interval_seconds)

    async def _fetch_rows(self, execution_id: str) -> tuple[list[dict], str | None]:
        rows: list[dict] = []
        offset = 0
        while True:
            try:
                payload = await self._gateway.get_json(
                    f"{self._api_base}/execution/{execution_id}/results",
                    params={"limit": PAGE_SIZE, "offset": offset},
                    headers=self._headers,
                )
            except (TransportError, ProviderError) as exc:
                logger.warning(
                    "dune_client: page_failed execution_id=%s offset=%s kept=%s error=%s",
                    execution_id,
                    offset,
                    len(rows),
                    exc,
                )
                return rows, str(exc)
            page = ((payload or {}).get("result") or {}).get("rows") or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows, None
            offset += PAGE_SIZE
