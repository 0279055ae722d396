"""
Base gateway client implementing shared concerns: http, retry, logging, mapping.

Concrete adapters subclass and implement the terminal-specific calls.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import (
    GatewayError,
    TransientGatewayError,
)


logger = get_logger(__name__)


class BasePointClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str = "",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 2.0, "read": 8.0, "write": 8.0, "total": 10.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._headers = headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self.timeouts,
                transport=self._transport,
            )
        # Kept open for reuse; aclose() releases it.
        yield self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(TransientGatewayError),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Single HTTP exchange; transport failures and 5xx become TransientGatewayError."""
        async with self.client() as http:
            try:
                resp = await http.request(method, path, json=json, params=params)
            except httpx.TimeoutException as exc:
                raise TransientGatewayError(
                    f"{method} {path} timed out", provider=self.provider, provider_code="timeout"
                ) from exc
            except httpx.TransportError as exc:
                raise TransientGatewayError(
                    f"{method} {path} failed: {exc}", provider=self.provider, provider_code="network"
                ) from exc
        if resp.status_code >= 500 or resp.status_code == 429:
            raise TransientGatewayError(
                f"{method} {path} returned {resp.status_code}",
                provider=self.provider,
                provider_code=str(resp.status_code),
            )
        return resp

    def _raise_for_status(self, resp: httpx.Response, action: str) -> None:
        if resp.is_success:
            return
        raise GatewayError(
            f"{action} failed: {self._error_message(resp)}",
            provider=self.provider,
            provider_code=str(resp.status_code),
        )

    def _json(self, resp: httpx.Response, action: str) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise GatewayError(f"{action} returned a non-JSON body", provider=self.provider) from exc
        if not isinstance(data, dict):
            raise GatewayError(f"{action} returned an unexpected payload", provider=self.provider)
        return data

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or f"HTTP {resp.status_code}")
        return f"HTTP {resp.status_code}"

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
