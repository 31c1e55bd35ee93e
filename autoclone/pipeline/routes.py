"""
FastAPI routes for the clone pipeline.

Pipeline Endpoints:
  POST /pipeline/run            : Start a clone run in the background
  POST /pipeline/auto-clone     : Same, publishing at the next 5 PM PST
  GET  /pipeline/status/{run_id}: Get run status / progress
"""

import logging

from fastapi import APIRouter, HTTPException

from .models import PipelineInput, PipelineRunRequest, PipelineStatusResponse
from .orchestrator import PipelineRunner
from .schedule import next_publish_iso

logger = logging.getLogger(__name__)


pipeline_router = APIRouter(prefix="/pipeline", tags=["pipeline"])

# Singleton runner instance
_runner = PipelineRunner()


def get_runner() -> PipelineRunner:
    return _runner


def _to_input(request: PipelineRunRequest, force_schedule: bool = False) -> PipelineInput:
    publish_at = request.publish_at
    if not publish_at and (request.schedule_publish or force_schedule):
        publish_at = next_publish_iso()

    return PipelineInput(
        source_video_id=request.source_video_id,
        source_video_url=(
            request.source_video_url
            or f"https://www.youtube.com/watch?v={request.source_video_id}"
        ),
        original_title=request.original_title,
        original_thumbnail_url=request.original_thumbnail_url,
        channel_name=request.channel_name,
        publish_at=publish_at,
        source_duration_seconds=request.source_duration_seconds,
        target_word_count=request.target_word_count,
    )


def _start(pipeline_input: PipelineInput) -> PipelineStatusResponse:
    runner = get_runner()
    run_id = runner.run_pipeline_background(
        pipeline_input,
        lambda step, progress, message: logger.debug(f"{step}: {message} ({progress}%)"),
    )
    logger.info(f"Started run {run_id} for {pipeline_input.source_video_id}")
    return runner.get_status(run_id)


@pipeline_router.post("/run", response_model=PipelineStatusResponse)
async def run_pipeline(request: PipelineRunRequest):
    """Start the full clone pipeline (async)."""
    return _start(_to_input(request))


@pipeline_router.post("/auto-clone", response_model=PipelineStatusResponse)
async def auto_clone(request: PipelineRunRequest):
    """Start a run scheduled to go public at the next 5 PM PST."""
    return _start(_to_input(request, force_schedule=True))


@pipeline_router.get("/status/{run_id}", response_model=PipelineStatusResponse)
async def get_pipeline_status(run_id: str):
    """Get the current status of a pipeline run."""
    status = get_runner().get_status(run_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return status
