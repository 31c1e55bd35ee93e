"""
Per-stage policy table: which service a stage calls, how long it may take,
and whether its failure ends the run.
"""

from typing import NamedTuple, Optional

from .models import Stage

# ── Narration pacing ─────────────────────────────────────────────────────────

WORDS_PER_MINUTE = 150       # documentary narration pace
DEFAULT_DURATION_MINUTES = 20


class StagePolicy(NamedTuple):
    endpoint: Optional[str]
    fatal: bool
    timeout: float  # seconds
    label: str


STAGE_POLICIES: dict[Stage, StagePolicy] = {
    Stage.TRANSCRIPT: StagePolicy("/get-youtube-transcript", True, 300, "Fetching source transcript"),
    Stage.TITLE: StagePolicy("/rewrite-title", True, 300, "Preparing title"),
    Stage.SCRIPT: StagePolicy("/rewrite-script", True, 1800, "Generating script"),
    Stage.AUDIO: StagePolicy("/generate-audio", True, 1200, "Generating audio"),
    Stage.CAPTIONS: StagePolicy("/generate-captions", True, 600, "Generating captions"),
    Stage.CLIP_PROMPTS: StagePolicy("/generate-clip-prompts", False, 600, "Generating video clip prompts"),
    Stage.VIDEO_CLIPS: StagePolicy("/generate-video-clips", False, 900, "Generating intro video clips"),
    Stage.IMAGE_PROMPTS: StagePolicy("/generate-image-prompts", True, 600, "Generating image prompts"),
    Stage.IMAGES: StagePolicy("/generate-images", True, 600, "Generating images"),
    Stage.THUMBNAIL: StagePolicy("/generate-thumbnails", False, 120, "Analyzing and generating thumbnail"),
    Stage.RENDER: StagePolicy("/render-video", True, 1800, "Rendering video"),
    Stage.UPLOAD: StagePolicy("/youtube-upload", True, 1200, "Uploading to YouTube"),
}

THUMBNAIL_ANALYSIS_ENDPOINT = "/analyze-thumbnail"
THUMBNAIL_ANALYSIS_TIMEOUT = 300


def target_word_count(
    source_duration_seconds: Optional[float] = None,
    override: Optional[int] = None,
) -> int:
    """
    Script length for the clone.

    An explicit override wins; otherwise whole minutes of source footage
    (20 when unknown) at WORDS_PER_MINUTE.
    """
    if override:
        return override
    if source_duration_seconds:
        minutes = round(source_duration_seconds / 60)
    else:
        minutes = DEFAULT_DURATION_MINUTES
    return minutes * WORDS_PER_MINUTE
