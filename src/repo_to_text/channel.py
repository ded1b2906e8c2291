"""Newline-delimited JSON progress channel.

Producer side: `guard_events` turns any failure into a single terminal `error`
event, and `encode_events` serializes events one JSON object per line.
Consumer side: `NdjsonDecoder` reassembles lines from arbitrary byte chunks.
"""

from __future__ import annotations

import codecs
from contextlib import aclosing
from typing import TYPE_CHECKING

from pydantic import ValidationError

from repo_to_text.config import ProgressEvent
from repo_to_text.exceptions import MessageDecodeError
from repo_to_text.logging import logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator


async def guard_events(events: AsyncGenerator[ProgressEvent]) -> AsyncIterator[ProgressEvent]:
    """Forward events until a terminal one, converting failures into an `error` event.

    Nothing is forwarded after the terminal event. Cancellation is not converted:
    it propagates after the wrapped generator has been closed.

    Args:
        events (AsyncGenerator[ProgressEvent]): the pipeline's event stream

    Yields:
        ProgressEvent: the forwarded events, the last one being terminal
    """
    try:
        async with aclosing(events) as stream:
            async for event in stream:
                yield event
                if event.is_terminal:
                    break
    except Exception as e:
        logger.exception("conversion_failed", error=str(e))
        yield ProgressEvent(error=str(e) or e.__class__.__name__)
    finally:
        logger.info("channel_closed")


async def encode_events(events: AsyncIterator[ProgressEvent]) -> AsyncIterator[bytes]:
    """Serialize events as UTF-8 JSON lines."""
    async for event in events:
        line = event.to_line()
        logger.debug("sending_message", size=len(line))
        yield line.encode("utf-8")


def decode_line(line: str) -> ProgressEvent:
    """Parse one channel line.

    Args:
        line (str): a single line, without its delimiter

    Raises:
        MessageDecodeError: if the line is not a valid progress event

    Returns:
        ProgressEvent: the parsed event
    """
    try:
        return ProgressEvent.model_validate_json(line)
    except ValidationError as e:
        raise MessageDecodeError(line=line, message=f"Error parsing message: {e}") from e


class NdjsonDecoder:
    """Incremental decoder for the progress channel.

    Chunks may split a message, or a multi-byte character, anywhere; the
    remainder is kept until the next `feed`. Unparsable lines are logged and
    skipped.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped = 0

    def feed(self, chunk: bytes | str) -> list[ProgressEvent]:
        """Add a chunk and return the events completed by it."""
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse(lines)

    def close(self) -> list[ProgressEvent]:
        """Flush the remaining buffer at end of stream."""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return self._parse([rest])

    def _parse(self, lines: list[str]) -> list[ProgressEvent]:
        events: list[ProgressEvent] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(decode_line(line))
            except MessageDecodeError as e:
                self.skipped += 1
                logger.warning("message_skipped", error=e.message, line=line[:200])
        return events
