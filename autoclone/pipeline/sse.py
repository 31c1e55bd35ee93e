"""
Line-oriented Server-Sent-Events consumer.

The generation services answer a POST with a text body made of frames like

    data: {"type": "progress", "progress": 40}

    data: {"type": "complete", "script": "..."}

Only `data: ` lines are meaningful. Every other line (blank separators,
comments, `event:` fields) is ignored. Network chunks can split a frame
anywhere, so text is buffered and only complete lines are parsed.
"""

import json
import logging
from typing import Any, AsyncIterable, Callable, Iterable, Optional

from .errors import NoCompleteEvent, StreamError
from .models import CompleteEvent, ErrorEvent, ProgressEvent, SSEEvent

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
EVENT_MODELS = {
    "progress": ProgressEvent,
    "complete": CompleteEvent,
    "error": ErrorEvent,
}

ProgressHandler = Callable[[ProgressEvent], None]


def parse_sse_line(line: str) -> Optional[SSEEvent]:
    """
    Parse one line into an event, or None if it is not a usable frame.

    Malformed JSON, non-object payloads and unknown `type` values are
    skipped, never raised. A known `type` is always dispatched, whatever
    shape its other fields have.
    """
    if not line.startswith(DATA_PREFIX):
        return None

    raw = line[len(DATA_PREFIX):]
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed SSE frame: {raw[:120]!r}")
        return None

    if not isinstance(data, dict):
        return None

    event_type = data.get("type")
    model = EVENT_MODELS.get(event_type) if isinstance(event_type, str) else None
    if model is None:
        return None
    return model.model_validate(data)


class SSELineParser:
    """Re-assembles lines across chunk boundaries."""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> list[SSEEvent]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return [event for event in map(parse_sse_line, lines) if event is not None]

    def flush(self) -> list[SSEEvent]:
        """Treat whatever is left as a final line (producer omitted the newline)."""
        remainder, self._buffer = self._buffer, ""
        event = parse_sse_line(remainder)
        return [event] if event is not None else []


class _StreamDispatcher:
    def __init__(self, endpoint: str, on_progress: Optional[ProgressHandler]):
        self.endpoint = endpoint
        self.on_progress = on_progress
        self.result: Optional[dict[str, Any]] = None
        self.saw_progress = False

    def dispatch(self, events: Iterable[SSEEvent]):
        for event in events:
            if isinstance(event, ErrorEvent):
                logger.warning(f"{self.endpoint} stream error: {event.reason}")
                raise StreamError(event.reason)

            if isinstance(event, ProgressEvent):
                self.saw_progress = True
                if self.on_progress:
                    self.on_progress(event)

            elif isinstance(event, CompleteEvent):
                if self.result is None:
                    self.result = event.payload
                else:
                    logger.debug(f"Ignoring extra complete event from {self.endpoint}")

    def finish(self) -> dict[str, Any]:
        if self.result is None:
            logger.error(f"No complete event received from {self.endpoint}")
            raise NoCompleteEvent(self.endpoint, interrupted=self.saw_progress)
        return self.result


async def consume_event_stream(
    chunks: AsyncIterable[str],
    endpoint: str,
    on_progress: Optional[ProgressHandler] = None,
) -> dict[str, Any]:
    """
    Drain a live text stream and return the `complete` payload.

    The stream is read to its end even after `complete` arrives. An `error`
    frame raises StreamError immediately; a stream that ends without
    `complete` raises NoCompleteEvent.
    """
    parser = SSELineParser()
    dispatcher = _StreamDispatcher(endpoint, on_progress)

    async for chunk in chunks:
        dispatcher.dispatch(parser.feed(chunk))

    dispatcher.dispatch(parser.flush())
    return dispatcher.finish()


def consume_event_text(
    text: str,
    endpoint: str,
    on_progress: Optional[ProgressHandler] = None,
) -> dict[str, Any]:
    """One-pass variant for a body that was read in full before parsing."""
    parser = SSELineParser()
    dispatcher = _StreamDispatcher(endpoint, on_progress)
    dispatcher.dispatch(parser.feed(text))
    dispatcher.dispatch(parser.flush())
    return dispatcher.finish()
