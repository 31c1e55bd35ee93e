"""
Maps each stage's own 0–100% into one global 0–100 progress bar.
"""

from typing import Any, Optional

from .models import ProgressEvent, Stage

# ── Bands ────────────────────────────────────────────────────────────────────

PROGRESS_BANDS: dict[Stage, tuple[int, int]] = {
    Stage.INIT: (0, 5),
    Stage.TRANSCRIPT: (5, 14),
    Stage.TITLE: (14, 15),
    Stage.SCRIPT: (15, 25),
    Stage.AUDIO: (25, 40),
    Stage.CAPTIONS: (40, 45),
    Stage.CLIP_PROMPTS: (45, 47),
    Stage.VIDEO_CLIPS: (47, 55),
    Stage.IMAGE_PROMPTS: (55, 58),
    Stage.IMAGES: (58, 68),
    Stage.THUMBNAIL: (68, 72),
    Stage.RENDER: (72, 90),
    Stage.UPLOAD: (90, 100),
    Stage.COMPLETE: (100, 100),
}


def global_progress(stage: Stage, local_percent: float) -> int:
    """Interpolate a stage-local percentage into the stage's global band."""
    start, end = PROGRESS_BANDS[Stage(stage)]
    local_percent = min(max(local_percent, 0.0), 100.0)
    return round(start + local_percent / 100 * (end - start))


def stage_start(stage: Stage) -> int:
    return PROGRESS_BANDS[Stage(stage)][0]


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def batch_counts(event: ProgressEvent) -> Optional[tuple[float, float]]:
    """`(completed, total)` when both are usable numbers, else None."""
    completed, total = _number(event.completed), _number(event.total)
    if completed is None or not total:
        return None
    return completed, total


def local_percent(event: ProgressEvent) -> Optional[float]:
    """
    Read a stage-local percentage from a progress event.

    Most services send `progress`; batch generators send `completed`/`total`.
    Non-numeric values are ignored.
    """
    progress = _number(event.progress)
    if progress is not None:
        return progress
    counts = batch_counts(event)
    if counts:
        return counts[0] / counts[1] * 100
    return None
