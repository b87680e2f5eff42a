"""Copies upstream fragments to an HTTP response as they arrive."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Mapping, Optional, Tuple

import anyio
from langchain_core.messages import BaseMessage
from starlette.background import BackgroundTask
from starlette.responses import Response
from starlette.types import Receive, Scope, Send


logger = logging.getLogger(__name__)

PLAIN_TEXT_UTF8 = "text/plain; charset=utf-8"


@dataclass(frozen=True)
class Fragment:
    """Decoded upstream chunk: either text to forward or nothing."""

    text: Optional[str] = None

    @property
    def has_text(self) -> bool:
        return bool(self.text)


EMPTY = Fragment()


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                text = part.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)
    return ""


def decode_fragment(chunk: Any) -> Fragment:
    if isinstance(chunk, Fragment):
        return chunk
    if isinstance(chunk, str):
        text = chunk
    elif isinstance(chunk, BaseMessage):
        text = _content_text(chunk.content)
    else:
        return EMPTY
    return Fragment(text) if text else EMPTY


class ClientDisconnected(Exception):
    pass


class ResponseSink:
    """Outbound half of one HTTP response, written over raw ASGI messages.

    The status line and headers go out with the first body write. ``close``
    ends the body and is safe to call any number of times.
    """

    def __init__(
        self,
        send: Send,
        status_code: int = 200,
        headers: Optional[List[Tuple[bytes, bytes]]] = None,
    ):
        self._send = send
        self.status_code = status_code
        self.headers = [(k, v) for k, v in (headers or []) if k.lower() != b"content-type"]
        self.content_type: Optional[str] = None
        self.started = False
        self.terminated = False
        self.bytes_written = 0

    def set_content_type(self, content_type: str) -> None:
        if self.started:
            raise RuntimeError("Content type must be set before the body is written")
        if self.content_type is None:
            self.content_type = content_type

    async def _emit(self, message: dict) -> None:
        try:
            await self._send(message)
        except OSError as exc:
            self.terminated = True
            raise ClientDisconnected() from exc

    async def _start(self) -> None:
        headers = list(self.headers)
        if self.content_type:
            headers.append((b"content-type", self.content_type.encode("latin-1")))
        self.started = True
        await self._emit(
            {"type": "http.response.start", "status": self.status_code, "headers": headers}
        )

    async def write(self, text: str) -> None:
        if self.terminated:
            raise RuntimeError("Response already terminated")
        if not self.started:
            await self._start()
        body = text.encode("utf-8")
        await self._emit({"type": "http.response.body", "body": body, "more_body": True})
        self.bytes_written += len(body)

    async def close(self) -> None:
        if self.terminated:
            return
        self.terminated = True
        try:
            if not self.started:
                await self._start()
            await self._emit({"type": "http.response.body", "body": b"", "more_body": False})
        except ClientDisconnected:
            logger.info("Client went away before the response was closed")

    def abandon(self) -> None:
        """Mark the response finished without sending anything (client is gone)."""
        self.terminated = True


async def _release(fragments: AsyncIterator[Any]) -> None:
    close = getattr(fragments, "aclose", None)
    if close is None:
        return
    with anyio.CancelScope(shield=True):
        try:
            await close()
        except Exception:
            logger.warning("Failed to close upstream stream", exc_info=True)


async def relay(sink: ResponseSink, fragments: AsyncIterator[Any]) -> None:
    """Forward ``fragments`` to ``sink`` in order, one write per text fragment.

    Once the first byte is out the status cannot change, so an upstream failure
    mid-stream only ends the body early. Both the upstream stream and the
    response are closed on every path.
    """
    sink.set_content_type(PLAIN_TEXT_UTF8)
    try:
        async for chunk in fragments:
            fragment = decode_fragment(chunk)
            if fragment.has_text:
                await sink.write(fragment.text)
    except ClientDisconnected:
        logger.info("Client disconnected after %s bytes; stopping stream", sink.bytes_written)
    except Exception:
        logger.exception(
            "Upstream stream failed after %s bytes; terminating response",
            sink.bytes_written,
        )
    finally:
        await _release(fragments)
        await sink.close()


class StreamRelayResponse(Response):
    """Response that relays an upstream fragment stream to the client.

    Extra ``headers`` are sent as given; the content type is always the
    relay's own.
    """

    def __init__(
        self,
        fragments: AsyncIterator[Any],
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        background: Optional[BackgroundTask] = None,
    ) -> None:
        self.fragments = fragments
        self.status_code = status_code
        self.background = background
        self.init_headers(headers)

    async def _listen_for_disconnect(self, receive: Receive, sink: ResponseSink) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                if not sink.terminated:
                    logger.info("Client disconnected mid-stream")
                    sink.abandon()
                break

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = ResponseSink(send, self.status_code, self.raw_headers)

        async with anyio.create_task_group() as task_group:

            async def run_relay() -> None:
                await relay(sink, self.fragments)
                task_group.cancel_scope.cancel()

            async def watch_disconnect() -> None:
                await self._listen_for_disconnect(receive, sink)
                task_group.cancel_scope.cancel()

            task_group.start_soon(run_relay)
            task_group.start_soon(watch_disconnect)

        if self.background is not None:
            await self.background()
