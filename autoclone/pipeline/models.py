"""
Pydantic models and enums for the clone pipeline.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ── Stages ───────────────────────────────────────────────────────────────────

class Stage(str, Enum):
    INIT = "init"
    TRANSCRIPT = "transcript"
    TITLE = "title"
    SCRIPT = "script"
    AUDIO = "audio"
    CAPTIONS = "captions"
    CLIP_PROMPTS = "clip_prompts"
    VIDEO_CLIPS = "video_clips"
    IMAGE_PROMPTS = "image_prompts"
    IMAGES = "images"
    THUMBNAIL = "thumbnail"
    RENDER = "render"
    UPLOAD = "upload"
    COMPLETE = "complete"


# Stages that do work, in execution order (init/complete are markers only).
STAGE_ORDER = [
    Stage.TRANSCRIPT,
    Stage.TITLE,
    Stage.SCRIPT,
    Stage.AUDIO,
    Stage.CAPTIONS,
    Stage.CLIP_PROMPTS,
    Stage.VIDEO_CLIPS,
    Stage.IMAGE_PROMPTS,
    Stage.IMAGES,
    Stage.THUMBNAIL,
    Stage.RENDER,
    Stage.UPLOAD,
]


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ── Pipeline Input ───────────────────────────────────────────────────────────

class PipelineInput(BaseModel):
    """Describes one clone job. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    source_video_id: str
    source_video_url: str
    original_title: str
    original_thumbnail_url: str
    channel_name: Optional[str] = None
    publish_at: Optional[str] = None  # ISO timestamp for scheduled publish
    source_duration_seconds: Optional[float] = None
    target_word_count: Optional[int] = Field(None, gt=0)  # None derives it from duration


# ── Step Ledger Entry ────────────────────────────────────────────────────────

class StepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: str
    success: bool
    duration: int  # milliseconds
    error: Optional[str] = None
    data: Optional[dict[str, Any]] = None


# ── Artifacts ────────────────────────────────────────────────────────────────

class IntroClip(BaseModel):
    url: str
    start_seconds: float
    end_seconds: float


class PipelineArtifacts(BaseModel):
    """Everything a run produced. None means the producing stage never ran."""
    transcript: Optional[str] = None
    cloned_title: Optional[str] = None
    script: Optional[str] = None
    audio_url: Optional[str] = None
    audio_duration: Optional[float] = None
    captions_url: Optional[str] = None
    captions_content: Optional[str] = None
    clip_prompts: Optional[list[Any]] = None
    intro_clips: Optional[list[IntroClip]] = None
    image_prompts: Optional[list[Any]] = None
    image_urls: Optional[list[str]] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None
    youtube_video_id: Optional[str] = None
    youtube_url: Optional[str] = None


class PipelineResult(BaseModel):
    success: bool
    run_id: str
    cloned_title: Optional[str] = None
    youtube_video_id: Optional[str] = None
    youtube_url: Optional[str] = None
    error: Optional[str] = None
    steps: list[StepResult] = Field(default_factory=list)
    artifacts: PipelineArtifacts = Field(default_factory=PipelineArtifacts)


# ── SSE Events ───────────────────────────────────────────────────────────────

class ProgressEvent(BaseModel):
    """
    Any `progress` frame. Fields are passed through untyped; services are
    loose about them and local_percent() ignores what it cannot use.
    """
    model_config = ConfigDict(extra="allow")

    type: Literal["progress"]
    progress: Any = None
    completed: Any = None
    total: Any = None
    message: Any = None


class CompleteEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["complete"]

    @property
    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"type"})


class ErrorEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["error"]
    error: Any = None
    message: Any = None

    @property
    def reason(self) -> str:
        return str(self.error or self.message or "Stream error")


SSEEvent = Annotated[
    Union[ProgressEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]


# ── API Request Models ───────────────────────────────────────────────────────

class PipelineRunRequest(BaseModel):
    """Start one clone run for an already-selected source video."""
    source_video_id: str
    source_video_url: Optional[str] = None
    original_title: str
    original_thumbnail_url: str
    channel_name: Optional[str] = None
    publish_at: Optional[str] = None
    schedule_publish: bool = Field(
        False, description="Compute publish_at as the next 5 PM PST when not given"
    )
    source_duration_seconds: Optional[float] = None
    target_word_count: Optional[int] = Field(None, gt=0)


class PipelineStatusResponse(BaseModel):
    run_id: str
    status: RunStatus
    current_step: str = ""
    progress_pct: int = 0
    result_url: Optional[str] = None
    error: Optional[str] = None
