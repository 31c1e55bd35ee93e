"""
Shared fixtures: a scripted stand-in for ServiceClient and a sample job.
"""

import copy

import pytest

from autoclone import metrics
from autoclone.pipeline.errors import RemoteError, StreamError
from autoclone.pipeline.models import PipelineInput, ProgressEvent
from autoclone.pipeline.orchestrator import PipelineRunner


DEFAULT_RESPONSES = {
    "/get-youtube-transcript": {"transcript": "Once upon a time in Rome."},
    "/rewrite-title": {"recommendedTitle": "The Fall Nobody Saw Coming"},
    "/rewrite-script": {"script": "Rome was not built in a day."},
    "/generate-audio": {"audioUrl": "https://cdn.test/audio.mp3", "totalDuration": 1234.5},
    "/generate-captions": {"captionsUrl": "https://cdn.test/captions.srt"},
    "/generate-clip-prompts": {"prompts": [{"prompt": "legions marching"}, {"prompt": "senate"}]},
    "/generate-video-clips": {"clips": [
        {"index": 1, "videoUrl": "https://cdn.test/clip1.mp4"},
        {"index": 2, "videoUrl": "https://cdn.test/clip2.mp4"},
    ]},
    "/generate-image-prompts": {"prompts": [{"prompt": "forum at dusk"}, {"prompt": "aqueduct"}]},
    "/generate-images": {"images": [
        {"imageUrl": "https://cdn.test/img1.png"},
        {"imageUrl": "https://cdn.test/img2.png"},
    ]},
    "/analyze-thumbnail": {"analysis": "bold yellow text, dark background"},
    "/generate-thumbnails": {"thumbnails": ["https://cdn.test/thumb.png"]},
    "/render-video": {"videoUrl": "https://cdn.test/final.mp4"},
    "/youtube-upload": {"videoId": "abc123", "youtubeUrl": "https://youtube.com/watch?v=abc123"},
}

CAPTIONS_TEXT = "1\n00:00:00,000 --> 00:00:02,000\nRome was not built in a day.\n"


class FakeServiceClient:
    """
    Answers every endpoint from DEFAULT_RESPONSES.

    fail:      endpoints (or "fetch_text" / "fetch_base64") that raise
    responses: per-endpoint overrides
    progress:  endpoint → list of progress-event dicts emitted before answering
    """

    def __init__(self, fail=(), responses=None, progress=None):
        self.fail = set(fail)
        self.responses = {**copy.deepcopy(DEFAULT_RESPONSES), **(responses or {})}
        self.progress = progress or {}
        self.calls: list[tuple[str, dict]] = []

    @property
    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.calls]

    def body(self, endpoint: str) -> dict:
        for called, body in self.calls:
            if called == endpoint:
                return body
        raise KeyError(endpoint)

    async def call(self, endpoint, body, timeout=300):
        self.calls.append((endpoint, body))
        if endpoint in self.fail:
            raise RemoteError(500, f"{endpoint} is down")
        return copy.deepcopy(self.responses[endpoint])

    async def call_streaming(self, endpoint, body, on_progress=None, timeout=600, live=True):
        self.calls.append((endpoint, body))
        for event in self.progress.get(endpoint, []):
            if on_progress:
                on_progress(ProgressEvent(type="progress", **event))
        if endpoint in self.fail:
            raise StreamError(f"{endpoint} stream failed")
        return copy.deepcopy(self.responses[endpoint])

    async def fetch_text(self, url):
        if "fetch_text" in self.fail:
            raise RemoteError(404, f"Failed to download {url}")
        return CAPTIONS_TEXT

    async def fetch_base64(self, url):
        if "fetch_base64" in self.fail:
            raise RemoteError(404, f"Failed to download {url}")
        return "aW1hZ2U="


@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def pipeline_input():
    return PipelineInput(
        source_video_id="dQw4w9WgXcQ",
        source_video_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        original_title="Why Rome Really Fell",
        original_thumbnail_url="https://i.ytimg.com/vi/dQw4w9WgXcQ/maxresdefault.jpg",
        channel_name="History Hub",
        source_duration_seconds=1200,
    )


@pytest.fixture
def make_runner():
    def _make(fail=(), responses=None, progress=None, **kwargs):
        client = FakeServiceClient(fail=fail, responses=responses, progress=progress)
        kwargs.setdefault("settle_delay", 0)
        return PipelineRunner(client=client, **kwargs), client
    return _make
