from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any

import httpx

from app.domain.exceptions import GatewayTimeoutError, ProviderError, TransportError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 5.0


class _RetryableStatusError(Exception):
    pass


class HttpJsonGateway:
    """JSON over HTTP with a timeout per call and the same retry policy for every provider.

    Timeouts, connection failures, 429 and 5xx are retried; any other 4xx or a body that
    is not JSON is a definitive ProviderError.
    """

    def __init__(
        self,
        *,
        name: str,
        timeout_seconds: float,
        policy: RetryPolicy | None = None,
        headers: dict | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._name = name
        self._timeout_seconds = timeout_seconds
        self._policy = policy or RetryPolicy()
        self._headers = headers or {}
        self._transport = transport

    async def get_json(self, url: str, *, params: dict | None = None, headers: dict | None = None) -> Any:
        return await self._request("GET", url, params=params, headers=headers)

    async def post_json(
        self,
        url: str,
        *,
        json: Any = None,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> Any:
        return await self._request("POST", url, params=params, json=json, headers=headers)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
        json: Any = None,
        headers: dict | None = None,
    ) -> Any:
        attempts = max(1, self._policy.max_attempts)
        last_exc: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout_seconds,
                    headers=self._headers,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, url, params=params, json=json, headers=headers)
                if response.status_code == 429 or response.status_code >= 500:
                    raise _RetryableStatusError(f"HTTP {response.status_code} from {url}")
                if response.status_code >= 400:
                    raise ProviderError(
                        f"{self._name}: HTTP {response.status_code} from {url}: {response.text[:200]}"
                    )
                try:
                    return response.json()
                except ValueError as exc:
                    raise ProviderError(f"{self._name}: invalid JSON from {url}") from exc
            except httpx.TimeoutException as exc:
                last_exc = GatewayTimeoutError(f"{self._name}: timeout after {self._timeout_seconds}s url={url}")
                last_exc.__cause__ = exc
            except (httpx.TransportError, _RetryableStatusError) as exc:
                last_exc = TransportError(f"{self._name}: {exc}")
                last_exc.__cause__ = exc

            if attempt == attempts:
                break
            logger.warning(
                "http_gateway: retry name=%s attempt=%s/%s error=%s",
                self._name,
                attempt,
                attempts,
                last_exc,
            )
            await asyncio.sleep(self._policy.backoff_seconds)

        raise last_exc
