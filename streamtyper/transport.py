"""Streaming transports: one long-lived GET delivering raw byte chunks."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

OpenHandler = Callable[[Optional[int], Optional[str]], None]
ChunkHandler = Callable[[bytes], None]
ErrorHandler = Callable[[str], None]
EndHandler = Callable[[], None]


class StreamTransport(Protocol):
    """What the EventSource needs from a transport.

    ``open`` starts the request without blocking and reports back through the
    handlers: ``on_open(status_code, content_type)`` once the response head is
    in (either value may be None if the transport cannot surface it), then
    ``on_chunk`` per body chunk, and finally exactly one of ``on_error`` or
    ``on_end``. ``close`` must be idempotent; no handler fires after it.
    """

    def open(
        self,
        url: str,
        headers: Dict[str, str],
        *,
        on_open: OpenHandler,
        on_chunk: ChunkHandler,
        on_error: ErrorHandler,
        on_end: EndHandler,
    ) -> None: ...

    def close(self) -> None: ...


class HttpxTransport:
    """StreamTransport over ``httpx.AsyncClient.stream``.

    Args:
        client: Shared AsyncClient to use. When omitted the transport creates
            its own client without read timeout and closes it when done.
        timeout: Connect timeout in seconds for an owned client.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    def open(
        self,
        url: str,
        headers: Dict[str, str],
        *,
        on_open: OpenHandler,
        on_chunk: ChunkHandler,
        on_error: ErrorHandler,
        on_end: EndHandler,
    ) -> None:
        if self._task is not None:
            raise RuntimeError("HttpxTransport can only be opened once")
        self._task = asyncio.get_running_loop().create_task(
            self._run(url, headers, on_open, on_chunk, on_error, on_end)
        )

    def close(self) -> None:
        self._closed = True
        if self._task and not self._task.done():
            self._task.cancel()

    async def _run(
        self,
        url: str,
        headers: Dict[str, str],
        on_open: OpenHandler,
        on_chunk: ChunkHandler,
        on_error: ErrorHandler,
        on_end: EndHandler,
    ) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None, connect=self._timeout),
            )
        try:
            async with self._client.stream("GET", url, headers=headers) as response:
                on_open(response.status_code, response.headers.get("content-type"))
                if self._closed:
                    return
                async for chunk in response.aiter_bytes():
                    if self._closed:
                        return
                    on_chunk(chunk)
        except (httpx.HTTPError, httpx.StreamError) as e:
            if not self._closed:
                logger.debug("Stream request to %s failed: %r", url, e)
                on_error(_describe(e))
            return
        finally:
            if self._owns_client and self._client is not None:
                await self._client.aclose()
                self._client = None

        if not self._closed:
            on_end()


def _describe(exc: Exception) -> str:
    text = str(exc)
    name = type(exc).__name__
    return f"{name}: {text}" if text else name
