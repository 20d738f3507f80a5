"""
HTTP transport for turn streams, built on httpx.

Endpoints:
- POST {base}/chat/message                         start a turn
- GET  {base}/chat/{chat_id}/runs/{run_id}/stream  resume a run from a cursor

Resume cursors are sent both as the ``lastEventId`` query parameter and as the
standard ``Last-Event-ID`` header.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from turnstream.config import ClientConfig
from turnstream.errors import StreamTransportError

logger = logging.getLogger(__name__)


class HttpTurnStream:
    """Pull-based wrapper over a streaming httpx response."""

    def __init__(self, response: httpx.Response):
        self._response = response
        self._chunks: AsyncIterator[bytes] = response.aiter_bytes()
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def read(self) -> bytes:
        if self._closed:
            return b""
        try:
            return await anext(self._chunks)
        except StopAsyncIteration:
            return b""
        except httpx.HTTPError as e:
            raise StreamTransportError(f"Stream read failed: {e}") from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class HttpTurnTransport:
    """
    Opens turn streams against the backend HTTP API.

    Example:
        async with HttpTurnTransport(ClientConfig()) as transport:
            stream = await transport.send_message("Build a todo app")
            chunk = await stream.read()
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or ClientConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.config.api_base_url,
            timeout=httpx.Timeout(
                self.config.read_timeout_seconds,
                connect=self.config.connect_timeout_seconds,
            ),
        )

    async def __aenter__(self) -> HttpTurnTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, last_event_id: str | None = None) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        if last_event_id:
            headers["Last-Event-ID"] = last_event_id
        return headers

    async def send_message(
        self,
        content: Any,
        *,
        chat_id: str | None = None,
        model: str | None = None,
    ) -> HttpTurnStream:
        body: dict[str, Any] = {"content": content}
        if chat_id:
            body["chatId"] = chat_id
        model = model or self.config.default_model
        if model:
            body["model"] = model

        request = self._client.build_request(
            "POST", "/chat/message", json=body, headers=self._headers()
        )
        return await self._open(request)

    async def open_turn_stream(
        self,
        chat_id: str,
        *,
        run_id: str,
        resume_from_event_id: str | None = None,
    ) -> HttpTurnStream:
        params = {"lastEventId": resume_from_event_id} if resume_from_event_id else None
        request = self._client.build_request(
            "GET",
            f"/chat/{chat_id}/runs/{run_id}/stream",
            params=params,
            headers=self._headers(resume_from_event_id),
        )
        logger.debug(f"Opening run stream {run_id} from event {resume_from_event_id}")
        return await self._open(request)

    async def _open(self, request: httpx.Request) -> HttpTurnStream:
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise StreamTransportError(f"Request to {request.url.path} failed: {e}") from e

        if response.is_error:
            message = await _error_message(response)
            await response.aclose()
            raise StreamTransportError(message, status_code=response.status_code)

        return HttpTurnStream(response)


async def _error_message(response: httpx.Response) -> str:
    """Prefer the server's JSON ``message``; fall back to the status line."""
    fallback = f"Request failed: {response.status_code}"
    try:
        await response.aread()
        data = response.json()
    except (httpx.HTTPError, ValueError):
        return fallback
    if isinstance(data, dict) and isinstance(data.get("message"), str) and data["message"]:
        return data["message"]
    return fallback
