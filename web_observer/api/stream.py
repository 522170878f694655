"""
Incremental decoder for the remote service's streamed responses.

The body is a sequence of records separated by a blank line. Records that
start with "data: " carry a JSON envelope: {"type": "log"|"system", "data": {...}}.
Chunks may split a record, or even a UTF-8 character, anywhere.
"""

import codecs
import json
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional

from ..core.config import STREAM_RECORD_PREFIX
from ..core.errors import ResponseParseError, ServerReportedError
from ..core.log import Logger, default_logger
from ..core.types import LogLine

RECORD_SEPARATOR = "\n\n"


class StreamDecoder:
    def __init__(self, prefix: str = STREAM_RECORD_PREFIX):
        self.prefix = prefix
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text of the trailing, not yet complete record."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        self._buffer += self._decoder.decode(chunk)
        records = self._buffer.split(RECORD_SEPARATOR)
        self._buffer = records.pop()
        return [self._parse(r) for r in records if r.startswith(self.prefix)]

    def close(self) -> List[Dict[str, Any]]:
        """Flush the decoder; a final record without a trailing blank line still counts."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail = self._buffer.strip("\n")
        self._buffer = ""
        if tail.startswith(self.prefix):
            return [self._parse(tail)]
        return []

    def _parse(self, record: str) -> Dict[str, Any]:
        try:
            event = json.loads(record[len(self.prefix):])
        except ValueError as e:
            raise ResponseParseError("Failed to parse server response") from e
        if not isinstance(event, dict):
            raise ResponseParseError("Failed to parse server response")
        return event


async def iter_events(chunks: AsyncIterable[bytes], decoder: Optional[StreamDecoder] = None) -> AsyncIterator[Dict[str, Any]]:
    decoder = decoder or StreamDecoder()
    try:
        async for chunk in chunks:
            for event in decoder.feed(chunk):
                yield event
        for event in decoder.close():
            yield event
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()


def _as_log_line(message: Any) -> LogLine:
    if isinstance(message, dict):
        return message  # type: ignore[return-value]
    return {"category": "remote", "message": str(message), "level": 1}


async def consume_stream(chunks: AsyncIterable[bytes], logger: Logger = default_logger) -> Any:
    """Forward log events until a terminal system event; None if the stream just ends."""
    events = iter_events(chunks)
    try:
        async for event in events:
            data = event.get("data") or {}
            if event.get("type") == "system":
                if data.get("status") == "error":
                    raise ServerReportedError(data.get("error") or "Unknown server error")
                if data.get("status") == "finished":
                    return data.get("result")
            elif event.get("type") == "log":
                logger(_as_log_line(data.get("message")))
        return None
    finally:
        # stop reading once a terminal event is seen
        await events.aclose()
