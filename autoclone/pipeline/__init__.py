"""
Video Clone Pipeline

Sequences the generation services that turn one source video into a
published clone:
  transcript → title → script → audio → captions → clip prompts →
  video clips → image prompts → images → thumbnail → render → upload
"""

from .orchestrator import PipelineRunner, PipelineRun
from .routes import pipeline_router
from .models import PipelineInput, PipelineResult, Stage

__all__ = [
    "PipelineRunner",
    "PipelineRun",
    "pipeline_router",
    "PipelineInput",
    "PipelineResult",
    "Stage",
]
