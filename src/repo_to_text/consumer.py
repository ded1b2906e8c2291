"""Consumer side of the progress channel: reassembling the artifact."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, Field

from repo_to_text.channel import NdjsonDecoder
from repo_to_text.config import COMPLETE_PROGRESS
from repo_to_text.logging import logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

    from repo_to_text.config import ProgressEvent


def now_iso() -> str:
    """Return the current date and time in ISO 8601 format with timezone.

    Returns:
        str: the current date and time in ISO 8601 format with timezone
    """
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


class ConversionResult(BaseModel):
    """State observed by a consumer of the progress channel.

    Attributes:
        progress: last progress value received; it stays frozen on error.
        status: last status message received.
        chunks: `content` chunks in arrival order.
        error: message of the terminal error event, if any.
        logs: timestamped debug lines for diagnostic replay.
    """

    progress: int = 0
    status: str = ""
    chunks: list[str] = Field(default_factory=list)
    error: str | None = None
    logs: list[str] = Field(default_factory=list)

    @property
    def artifact(self) -> str:
        """The concatenated content received so far."""
        return "".join(self.chunks)

    @property
    def ok(self) -> bool:
        """Whether the conversion completed without error."""
        return self.error is None and self.progress == COMPLETE_PROGRESS

    @property
    def finished(self) -> bool:
        return self.error is not None or self.progress == COMPLETE_PROGRESS

    def add_log(self, message: str) -> None:
        self.logs.append(f"{now_iso()}: {message}")

    def fail(self, message: str) -> None:
        self.error = message
        self.status = "Error occurred"
        self.add_log(f"Error in conversion: {message}")

    def apply(self, event: ProgressEvent) -> None:
        """Fold one event into the result.

        Events arriving after a terminal event are ignored.
        """
        if self.finished:
            self.add_log("Ignored event received after the end of the stream")
            return
        if event.error is not None:
            self.fail(event.error)
            return
        if event.progress is not None:
            self.progress = event.progress
        if event.status:
            self.status = event.status
        if event.content:
            self.add_log(f"Received content of {len(event.content)} characters")
            self.chunks.append(event.content)


async def collect(events: AsyncIterable[ProgressEvent], result: ConversionResult | None = None) -> ConversionResult:
    """Consume an in-process event stream.

    Args:
        events (AsyncIterable[ProgressEvent]): the events, typically guarded by the channel
        result (ConversionResult | None): an existing result to fold into

    Returns:
        ConversionResult: the accumulated state
    """
    result = result or ConversionResult()
    async for event in events:
        result.apply(event)
        if event.progress is not None or event.status:
            logger.info("conversion_progress", progress=result.progress, status=result.status)
    if not result.finished:
        result.fail("Stream ended before the conversion completed")
    return result


async def stream_remote_conversion(
    server: str,
    url: str,
    *,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConversionResult:
    """Ask a running service to convert `url` and reassemble its streamed answer.

    Transport failures and non-200 answers are reported through `result.error`
    rather than raised.

    Args:
        server (str): base URL of the service, e.g. `http://127.0.0.1:8000`
        url (str): the repository reference to convert
        timeout (float): HTTP timeout in seconds
        transport (httpx.AsyncBaseTransport | None): optional transport override

    Returns:
        ConversionResult: the accumulated state
    """
    result = ConversionResult()
    decoder = NdjsonDecoder()
    result.add_log("Sending request to API")
    try:
        async with (
            httpx.AsyncClient(base_url=server, timeout=timeout, transport=transport) as client,
            client.stream("POST", "/api/analyze", json={"url": url}) as response,
        ):
            result.add_log(f"API response status: {response.status_code}")
            if response.status_code != httpx.codes.OK:
                body = (await response.aread()).decode("utf-8", errors="replace")
                result.fail(_error_message(body, response.reason_phrase))
                return result
            async for chunk in response.aiter_bytes():
                result.add_log(f"Received chunk of {len(chunk)} bytes")
                for event in decoder.feed(chunk):
                    result.apply(event)
            for event in decoder.close():
                result.apply(event)
    except httpx.HTTPError as e:
        result.fail(f"Request failed: {e}")
        return result

    result.add_log("Stream complete")
    if not result.finished:
        result.fail("Stream ended before the conversion completed")
    return result


def _error_message(body: str, fallback: str) -> str:
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip() or fallback
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return body.strip() or fallback
