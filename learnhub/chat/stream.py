"""Upstream agent streaming and the producer that feeds the relay.

The agent API answers with a server-sent event body. ``stream_and_publish``
decodes it incrementally and republishes each ``data:`` payload on the
session's relay channel:

    {"type": "chunk", "data": <payload>}   for every data line
    {"type": "done"}                        on [DONE] or end of body
    {"type": "error", "error": <message>}   on any upstream failure
"""

import asyncio
import codecs
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

import httpx
import structlog

from .relay import SessionRelay


logger = structlog.get_logger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
INFERENCE_STREAM_PATH = "/v3/inference/stream/"


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class AgentStreamError(Exception):
    """Upstream agent request failed."""

    def __init__(
        self,
        message: str,
        code: str = "agent_stream_error",
        status_code: int | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# ==============================================================================
# Line Decoding
# ==============================================================================


class SSELineDecoder:
    """Turn arbitrary byte chunks into complete text lines.

    UTF-8 sequences split across chunks are held back until complete, and
    the text after the last newline stays buffered for the next chunk.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return lines

    def flush(self) -> list[str]:
        """Return whatever is left once the body has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return [tail] if tail else []


def parse_data_line(line: str) -> str | None:
    """Payload of a ``data:`` line, or None for any other line."""
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX) :].strip()


# ==============================================================================
# Producer
# ==============================================================================


async def stream_and_publish(
    relay: SessionRelay,
    session_id: str,
    chunks: AsyncIterator[bytes],
) -> None:
    """Relay one upstream response onto ``session_id``'s channel.

    Errors end the stream with an ``error`` message and are not raised.
    Cancellation publishes an ``error`` message and propagates.
    """
    decoder = SSELineDecoder()
    chunk_count = 0

    def publish_lines(lines: list[str]) -> bool:
        nonlocal chunk_count
        for line in lines:
            payload = parse_data_line(line)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                return True
            chunk_count += 1
            relay.publish(session_id, {"type": "chunk", "data": payload})
        return False

    try:
        async for chunk in chunks:
            if publish_lines(decoder.feed(chunk)):
                break
        else:
            publish_lines(decoder.flush())
    except Exception as e:
        logger.warning(
            "agent_stream_failed",
            session_id=session_id,
            chunks=chunk_count,
            error=str(e),
        )
        relay.publish(session_id, {"type": "error", "error": str(e) or type(e).__name__})
        return
    except asyncio.CancelledError:
        relay.publish(session_id, {"type": "error", "error": "stream cancelled"})
        raise
    finally:
        if isinstance(chunks, AsyncGenerator):
            await chunks.aclose()

    logger.info("agent_stream_completed", session_id=session_id, chunks=chunk_count)
    relay.publish(session_id, {"type": "done"})


# ==============================================================================
# Upstream Client
# ==============================================================================


class AgentStreamClient:
    """Client for the agent inference streaming endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
        )

    async def stream_chat(
        self,
        agent_id: str,
        message: str,
        user_id: str,
        session_id: str,
        system_prompt_variables: dict[str, Any] | None = None,
    ) -> AsyncIterator[bytes]:
        """POST a chat turn and yield raw response body bytes.

        Raises:
            AgentStreamError: On a non-2xx response
        """
        payload = {
            "user_id": user_id,
            "agent_id": agent_id,
            "session_id": session_id,
            "message": message,
            "system_prompt_variables": system_prompt_variables or {},
            "filter_variables": {},
            "features": [],
        }

        async with self._client.stream(
            "POST",
            f"{self.base_url}{INFERENCE_STREAM_PATH}",
            json=payload,
            headers={"x-api-key": self.api_key, "Accept": "text/event-stream"},
        ) as response:
            if response.is_error:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise AgentStreamError(
                    f"Agent API returned {response.status_code}: {body[:500]}",
                    code="agent_api_error",
                    status_code=response.status_code,
                )

            async for chunk in response.aiter_bytes():
                yield chunk

    async def aclose(self) -> None:
        await self._client.aclose()
