"""
Tests for the line-oriented SSE consumer.
"""

import pytest

from autoclone.pipeline.errors import NoCompleteEvent, StreamError
from autoclone.pipeline.models import CompleteEvent, ProgressEvent
from autoclone.pipeline.sse import (
    SSELineParser,
    consume_event_stream,
    consume_event_text,
    parse_sse_line,
)


async def _chunks(*parts):
    for part in parts:
        yield part


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)


def test_parse_sse_line_ignores_non_data_lines():
    assert parse_sse_line("") is None
    assert parse_sse_line("event: progress") is None
    assert parse_sse_line(": keep-alive") is None


def test_empty_data_payload_is_skipped():
    assert parse_sse_line("data: ") is None


def test_unknown_type_and_non_object_payloads_are_skipped():
    assert parse_sse_line('data: {"type": "heartbeat"}') is None
    assert parse_sse_line("data: [1, 2, 3]") is None
    assert parse_sse_line('data: "complete"') is None


def test_parse_progress_line():
    event = parse_sse_line('data: {"type": "progress", "progress": 40, "wordCount": 900}')
    assert isinstance(event, ProgressEvent)
    assert event.progress == 40
    assert event.model_extra["wordCount"] == 900


def test_parser_reassembles_lines_across_chunks():
    parser = SSELineParser()
    assert parser.feed('data: {"type": "prog') == []
    assert parser.feed('ress", "progress": 10}') == []
    events = parser.feed("\n\ndata: {")
    assert len(events) == 1
    assert events[0].progress == 10
    assert parser.flush() == []


@pytest.mark.asyncio
async def test_complete_split_across_two_chunks():
    result = await consume_event_stream(
        _chunks('data: {"type":"complete","script":"AB', 'C"}\n\n'),
        "/rewrite-script",
    )
    assert result == {"script": "ABC"}


@pytest.mark.asyncio
async def test_complete_split_across_many_chunks():
    frame = 'data: {"type":"complete","videoUrl":"https://cdn.test/final.mp4"}\n\n'
    result = await consume_event_stream(_chunks(*frame), "/render-video")
    assert result["videoUrl"] == "https://cdn.test/final.mp4"


@pytest.mark.asyncio
async def test_malformed_frame_is_skipped():
    recorder = Recorder()
    stream = _chunks(
        'data: {"type":"progress","progress":50}\n\n',
        "data: {not json at all\n\n",
        'data: {"type":"complete","captionsUrl":"https://cdn.test/c.srt"}\n\n',
    )
    result = await consume_event_stream(stream, "/generate-captions", recorder)

    assert result == {"captionsUrl": "https://cdn.test/c.srt"}
    assert len(recorder.events) == 1
    assert recorder.events[0].progress == 50


@pytest.mark.asyncio
async def test_stream_without_complete_fails():
    with pytest.raises(NoCompleteEvent) as exc_info:
        await consume_event_stream(_chunks("data: garbage\n\n"), "/generate-audio")
    assert exc_info.value.endpoint == "/generate-audio"
    assert exc_info.value.interrupted is False
    assert "No complete event" in str(exc_info.value)


@pytest.mark.asyncio
async def test_stream_interrupted_after_progress_uses_generic_message():
    stream = _chunks('data: {"type":"progress","progress":70}\n\n')
    with pytest.raises(NoCompleteEvent) as exc_info:
        await consume_event_stream(stream, "/rewrite-script")
    assert exc_info.value.interrupted is True
    assert "interrupted" in str(exc_info.value)


@pytest.mark.asyncio
async def test_error_frame_stops_consumption():
    recorder = Recorder()
    consumed = []

    async def stream():
        for chunk in [
            'data: {"type":"progress","progress":10}\n\n'
            'data: {"type":"error","error":"GPU out of memory"}\n\n'
            'data: {"type":"progress","progress":20}\n\n',
            'data: {"type":"complete","videoUrl":"x"}\n\n',
        ]:
            consumed.append(chunk)
            yield chunk

    with pytest.raises(StreamError, match="GPU out of memory"):
        await consume_event_stream(stream(), "/render-video", recorder)

    assert [e.progress for e in recorder.events] == [10]
    assert len(consumed) == 1


@pytest.mark.asyncio
async def test_error_frame_discards_pending_complete():
    stream = _chunks(
        'data: {"type":"complete","script":"done"}\n\n',
        'data: {"type":"error","message":"quota exceeded"}\n\n',
    )
    with pytest.raises(StreamError, match="quota exceeded"):
        await consume_event_stream(stream, "/rewrite-script")


@pytest.mark.asyncio
async def test_error_frame_without_text_uses_default_message():
    with pytest.raises(StreamError, match="Stream error"):
        await consume_event_stream(_chunks('data: {"type":"error"}\n'), "/generate-images")


@pytest.mark.asyncio
async def test_stream_is_drained_after_complete():
    recorder = Recorder()
    stream = _chunks(
        'data: {"type":"complete","videoId":"abc"}\n\n',
        'data: {"type":"progress","progress":100}\n\n',
    )
    result = await consume_event_stream(stream, "/youtube-upload", recorder)
    assert result == {"videoId": "abc"}
    assert len(recorder.events) == 1


@pytest.mark.asyncio
async def test_first_complete_wins():
    stream = _chunks(
        'data: {"type":"complete","script":"first"}\n',
        'data: {"type":"complete","script":"second"}\n',
    )
    result = await consume_event_stream(stream, "/rewrite-script")
    assert result["script"] == "first"


@pytest.mark.asyncio
async def test_trailing_frame_without_newline():
    stream = _chunks('data: {"type":"progress","progress":5}\n', 'data: {"type":"complete","audioUrl":"a.mp3"}')
    result = await consume_event_stream(stream, "/generate-audio")
    assert result == {"audioUrl": "a.mp3"}


def test_consume_event_text_one_pass():
    recorder = Recorder()
    body = (
        'data: {"type":"progress","completed":1,"total":4}\n\n'
        'data: {"type":"progress","completed":2,"total":4}\n\n'
        'data: {"type":"complete","images":[{"imageUrl":"i.png"}]}\n\n'
    )
    result = consume_event_text(body, "/generate-images", recorder)

    assert result == {"images": [{"imageUrl": "i.png"}]}
    assert [e.completed for e in recorder.events] == [1, 2]


def test_complete_event_payload_excludes_type():
    event = CompleteEvent(type="complete", clips=[], total=3)
    assert event.payload == {"clips": [], "total": 3}


@pytest.mark.asyncio
async def test_error_frame_with_structured_error_still_stops_consumption():
    recorder = Recorder()
    stream = _chunks(
        'data: {"type":"error","error":{"code":429,"detail":"quota"}}\n\n',
        'data: {"type":"progress","progress":50}\n\n',
        'data: {"type":"complete","script":"too late"}\n\n',
    )
    with pytest.raises(StreamError, match="429"):
        await consume_event_stream(stream, "/rewrite-script", recorder)
    assert recorder.events == []


@pytest.mark.asyncio
async def test_progress_frame_with_odd_fields_reaches_handler():
    recorder = Recorder()
    stream = _chunks(
        'data: {"type":"progress","progress":"n/a","completed":1,"total":2}\n\n',
        'data: {"type":"complete","images":[]}\n\n',
    )
    result = await consume_event_stream(stream, "/generate-images", recorder)

    assert result == {"images": []}
    assert len(recorder.events) == 1
    assert recorder.events[0].progress == "n/a"


def test_non_string_type_is_skipped():
    assert parse_sse_line('data: {"type": ["error"]}') is None
