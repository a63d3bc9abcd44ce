# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
REST key-value stores.

Upstash Redis and Vercel KV both expose the Upstash REST protocol: a POST to
the base URL whose JSON body is a Redis command array (``["GET", key]``),
authenticated with a bearer token, answered with ``{"result": ...}`` or
``{"error": "..."}``. One transport serves both backends; the subclasses
only bind the store id, credentials and key namespace.
"""

import json
import logging
from typing import Any, Optional

import httpx

from ..config import LegacyKVSettings, TransportSettings, UpstashSettings
from ..exceptions import ConfigMissing, StoreUnavailable
from .base import RawStore

logger = logging.getLogger(__name__)

UPSTASH_STORE_ID = "upstash"
LEGACY_STORE_ID = "vercelKV"


class RestKVStore(RawStore):
    """RawStore over an Upstash-compatible REST endpoint."""

    def __init__(self,
                 name: str,
                 url: str,
                 token: str,
                 namespace: Optional[str] = None,
                 timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            name: Store identifier
            url: REST endpoint base URL
            token: Bearer token
            namespace: Key namespace, or None for bare keys
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        super().__init__(name, namespace)
        self.url = url.rstrip("/")
        self._token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Authorization": f"Bearer {self._token}", "Content-Type": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def command(self, *args: Any, key: Optional[str] = None) -> Any:
        """
        Execute one Redis command and return its ``result``.

        Raises:
            StoreUnavailable: on connection errors, timeouts, non-2xx responses,
                undecodable bodies or an ``error`` payload
        """
        try:
            response = await self._get_client().post(self.url, json=list(args))
        except httpx.HTTPError as e:
            raise StoreUnavailable(self.name, key, f"{args[0]} request failed: {type(e).__name__}: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise StoreUnavailable(
                self.name, key, f"{args[0]} returned undecodable body (HTTP {response.status_code})"
            ) from e

        if isinstance(payload, dict) and payload.get("error"):
            raise StoreUnavailable(self.name, key, f"{args[0]} failed: {payload['error']}")

        if response.is_error:
            raise StoreUnavailable(self.name, key, f"{args[0]} failed with HTTP {response.status_code}")

        if not isinstance(payload, dict) or "result" not in payload:
            raise StoreUnavailable(self.name, key, f"{args[0]} returned unexpected payload")

        return payload["result"]

    async def get(self, key: str) -> Optional[str]:
        result = await self.command("GET", key, key=key)
        if result is None:
            return None
        if isinstance(result, str):
            return result
        # Some clients hand back decoded JSON; the core only deals in strings
        return json.dumps(result)

    async def set(self, key: str, value: str) -> None:
        await self.command("SET", key, value, key=key)
        logger.debug(f"{self.name}: SET {key} ({len(value.encode('utf-8', 'surrogatepass'))} bytes)")

    async def delete(self, key: str) -> None:
        await self.command("DEL", key, key=key)

    async def ping(self) -> bool:
        return await self.command("PING") == "PONG"

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class UpstashStore(RestKVStore):
    """Primary store: Upstash Redis, namespaced keys."""

    @classmethod
    def from_settings(cls,
                      upstash: UpstashSettings,
                      namespace: str,
                      transport_settings: Optional[TransportSettings] = None,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> "UpstashStore":
        if not upstash.is_configured:
            raise ConfigMissing(["UPSTASH_REDIS_REST_URL", "UPSTASH_REDIS_REST_TOKEN"])
        transport_settings = transport_settings or TransportSettings()
        return cls(
            name=UPSTASH_STORE_ID,
            url=upstash.url,
            token=upstash.token.get_secret_value(),
            namespace=namespace,
            timeout=transport_settings.request_timeout,
            transport=transport,
        )


class LegacyKVStore(RestKVStore):
    """Legacy store: Vercel KV, bare logical keys."""

    @classmethod
    def from_settings(cls,
                      legacy: LegacyKVSettings,
                      transport_settings: Optional[TransportSettings] = None,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> "LegacyKVStore":
        if not legacy.is_configured:
            raise ConfigMissing(["KV_REST_API_URL", "KV_REST_API_TOKEN"])
        transport_settings = transport_settings or TransportSettings()
        return cls(
            name=LEGACY_STORE_ID,
            url=legacy.url,
            token=legacy.token.get_secret_value(),
            namespace=None,
            timeout=transport_settings.request_timeout,
            transport=transport,
        )
