"""
PipelineRunner: clones a long-form video end to end.

Runs twelve stages strictly in order, each one consuming what earlier
stages produced:
  transcript → title → script → audio → captions → clip_prompts →
  video_clips → image_prompts → images → thumbnail → render → upload

Every stage goes through one executor (_run_stage) that times it, writes
its ledger entry and applies the stage's policy from STAGE_POLICIES:
  fatal    : the run stops and the result carries the error
  non-fatal: a fallback artifact is substituted and the run continues
"""

import os
import uuid
import asyncio
import logging
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from .. import metrics
from .client import ServiceClient
from .errors import StageFailed
from .ledger import StepLedger
from .models import (
    IntroClip,
    PipelineArtifacts,
    PipelineInput,
    PipelineResult,
    PipelineStatusResponse,
    ProgressEvent,
    RunStatus,
    Stage,
)
from .progress import batch_counts, global_progress, local_percent, stage_start
from .stages import (
    STAGE_POLICIES,
    THUMBNAIL_ANALYSIS_ENDPOINT,
    THUMBNAIL_ANALYSIS_TIMEOUT,
    target_word_count,
)

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

DEFAULT_VOICE_SAMPLE = os.getenv(
    "DEFAULT_VOICE_SAMPLE", "https://autoaigen.com/voices/clone_voice.mp3"
)
VOICE_STYLE = "(sincere) (soft tone)"
REWRITE_TITLE = os.getenv("REWRITE_TITLE", "false").lower() in ("1", "true", "yes")
SETTLE_DELAY = float(os.getenv("PIPELINE_SETTLE_DELAY", "0"))
MAX_TRACKED_RUNS = int(os.getenv("PIPELINE_MAX_TRACKED_RUNS", "200"))

# Intro video clips
INTRO_CLIP_COUNT = 5
INTRO_CLIP_DURATION = 12  # seconds each

IMAGE_COUNT = 10
MASTER_STYLE_PROMPT = (
    "Photorealistic historical scene, dramatic cinematic lighting, 8K quality"
)
RENDER_EFFECT = "smoke_embers"

THUMBNAIL_PROMPT = (
    "Create an original thumbnail inspired by this image. Use the same style, "
    "color palette, text placement, and mood - but make it a unique, original "
    "composition. Keep similar visual elements and aesthetic but don't copy directly."
)

UPLOAD_TAGS = ["history", "documentary", "education"]
UPLOAD_CATEGORY_ID = "27"  # Education

SKIPPED_NO_CLIP_PROMPTS = "Skipped - no clip prompts"

ProgressCallback = Callable[[str, int, str], None]


class StageOutcome(NamedTuple):
    artifacts: dict[str, Any]
    data: Optional[dict[str, Any]] = None
    success: bool = True
    error: Optional[str] = None


StageWork = Callable[["PipelineRun"], Awaitable[StageOutcome]]
StageFallback = Callable[["PipelineRun"], StageOutcome]


class PipelineRun:
    """Mutable state of one invocation. Artifacts are write-once."""

    def __init__(self, pipeline_input: PipelineInput):
        self.run_id = str(uuid.uuid4())
        self.input = pipeline_input
        self.ledger = StepLedger()
        self.artifacts = PipelineArtifacts()
        # Progress handler of the stage currently executing
        self.progress_handler: Optional[Callable[[ProgressEvent], None]] = None

    def produce(self, **values: Any):
        for name, value in values.items():
            if getattr(self.artifacts, name) is not None:
                raise RuntimeError(f"Artifact '{name}' already written for run {self.run_id}")
            setattr(self.artifacts, name, value)


class PipelineRunner:
    """
    Usage:
        runner = PipelineRunner()

        # Wait for the whole run
        result = await runner.run_pipeline(pipeline_input)

        # Or start it in the background and poll
        run_id = runner.run_pipeline_background(pipeline_input)
        runner.get_status(run_id)
    """

    def __init__(
        self,
        client: Optional[ServiceClient] = None,
        rewrite_title: Optional[bool] = None,
        settle_delay: Optional[float] = None,
        voice_sample_url: Optional[str] = None,
        max_tracked_runs: Optional[int] = None,
    ):
        self.client = client or ServiceClient()
        self.rewrite_title = REWRITE_TITLE if rewrite_title is None else rewrite_title
        self.settle_delay = SETTLE_DELAY if settle_delay is None else settle_delay
        self.voice_sample_url = voice_sample_url or DEFAULT_VOICE_SAMPLE
        self.max_tracked_runs = max_tracked_runs or MAX_TRACKED_RUNS
        self._runs: dict[str, PipelineStatusResponse] = {}
        self._tasks: set[asyncio.Task] = set()

    # ── Status ───────────────────────────────────────────────────────────

    def get_status(self, run_id: str) -> Optional[PipelineStatusResponse]:
        return self._runs.get(run_id)

    def _update_status(
        self,
        run: PipelineRun,
        status: RunStatus,
        step: str = "",
        progress: int = 0,
        result_url: Optional[str] = None,
        error: Optional[str] = None,
    ):
        self._runs[run.run_id] = PipelineStatusResponse(
            run_id=run.run_id,
            status=status,
            current_step=step,
            progress_pct=progress,
            result_url=result_url,
            error=error,
        )
        if status != RunStatus.RUNNING:
            self._evict_finished(keep=run.run_id)

    def _evict_finished(self, keep: str):
        """Forget the oldest finished runs once more than max_tracked_runs are held."""
        excess = len(self._runs) - self.max_tracked_runs
        if excess <= 0:
            return
        finished = [
            run_id for run_id, status in self._runs.items()
            if status.status != RunStatus.RUNNING and run_id != keep
        ]
        for run_id in finished[:excess]:
            del self._runs[run_id]

    def _last_progress(self, run: PipelineRun) -> int:
        status = self._runs.get(run.run_id)
        return status.progress_pct if status else 0

    def _reporter(self, run: PipelineRun, on_progress: Optional[ProgressCallback]):
        def report(stage: Stage, progress: int, message: str):
            logger.info(f"[{run.run_id}] {stage.value}: {message} ({progress}%)")
            self._update_status(run, RunStatus.RUNNING, message, progress)
            if on_progress:
                on_progress(stage.value, progress, message)
        return report

    # ── Entry points ─────────────────────────────────────────────────────

    async def run_pipeline(
        self,
        pipeline_input: PipelineInput,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        """Run every stage and return the result, successful or not."""
        return await self.execute(PipelineRun(pipeline_input), on_progress)

    def run_pipeline_background(
        self,
        pipeline_input: PipelineInput,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Fire-and-forget wrapper for run_pipeline. Returns the run id."""
        run = PipelineRun(pipeline_input)
        self._update_status(run, RunStatus.RUNNING, "Queued", 0)
        task = asyncio.create_task(self.execute(run, on_progress))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return run.run_id

    async def execute(
        self,
        run: PipelineRun,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        report = self._reporter(run, on_progress)
        report(Stage.INIT, 0, "Starting pipeline...")

        plan: list[tuple[Stage, StageWork, Optional[StageFallback]]] = [
            (Stage.TRANSCRIPT, self._fetch_transcript, None),
            (Stage.TITLE, self._prepare_title, None),
            (Stage.SCRIPT, self._generate_script, None),
            (Stage.AUDIO, self._generate_audio, None),
            (Stage.CAPTIONS, self._generate_captions, None),
            (Stage.CLIP_PROMPTS, self._generate_clip_prompts, _no_clip_prompts),
            (Stage.VIDEO_CLIPS, self._generate_video_clips, _no_intro_clips),
            (Stage.IMAGE_PROMPTS, self._generate_image_prompts, None),
            (Stage.IMAGES, self._generate_images, None),
            (Stage.THUMBNAIL, self._generate_thumbnail, _first_image_thumbnail),
            (Stage.RENDER, self._render_video, None),
            (Stage.UPLOAD, self._upload_video, None),
        ]

        try:
            for stage, work, fallback in plan:
                await self._run_stage(run, stage, work, fallback, report)
        except StageFailed as e:
            logger.error(f"[{run.run_id}] Pipeline failed: {e}")
            self._update_status(
                run, RunStatus.FAILED, e.stage, self._last_progress(run), error=str(e)
            )
            metrics.record_run(success=False)
            return self._result(run, success=False, error=str(e))
        except Exception as e:
            logger.error(f"[{run.run_id}] Pipeline crashed: {e}", exc_info=True)
            self._update_status(
                run, RunStatus.FAILED, progress=self._last_progress(run), error=str(e)
            )
            metrics.record_run(success=False)
            return self._result(run, success=False, error=str(e))

        report(Stage.COMPLETE, 100, "Pipeline complete!")
        self._update_status(
            run, RunStatus.COMPLETED, "Pipeline complete!", 100,
            result_url=run.artifacts.youtube_url,
        )
        metrics.record_run(success=True)
        return self._result(run, success=True)

    def _result(self, run: PipelineRun, success: bool, error: Optional[str] = None) -> PipelineResult:
        artifacts = run.artifacts
        return PipelineResult(
            success=success,
            run_id=run.run_id,
            cloned_title=artifacts.cloned_title,
            youtube_video_id=artifacts.youtube_video_id,
            youtube_url=artifacts.youtube_url,
            error=error,
            steps=run.ledger.entries,
            artifacts=artifacts.model_copy(deep=True),
        )

    # ── Stage executor ───────────────────────────────────────────────────

    async def _run_stage(
        self,
        run: PipelineRun,
        stage: Stage,
        work: StageWork,
        fallback: Optional[StageFallback],
        report,
    ):
        policy = STAGE_POLICIES[stage]
        report(stage, stage_start(stage), f"{policy.label}...")

        def on_stage_progress(event: ProgressEvent):
            percent = local_percent(event)
            if percent is None:
                return
            if batch_counts(event):
                message = f"{policy.label} {event.completed}/{event.total}..."
            else:
                message = f"{policy.label}... {round(percent)}%"
            report(stage, global_progress(stage, percent), message)

        run.progress_handler = on_stage_progress
        handle = run.ledger.begin(stage.value)
        try:
            outcome = await work(run)
        except Exception as e:
            error = str(e) or type(e).__name__
            if policy.fatal or fallback is None:
                entry = run.ledger.commit(handle, success=False, error=error)
                metrics.record_stage(entry.step, False, entry.duration)
                raise StageFailed(stage.value, e) from e

            logger.warning(f"[{run.run_id}] {stage.value} failed, continuing with fallback: {error}")
            degraded = fallback(run)
            run.produce(**degraded.artifacts)
            entry = run.ledger.commit(handle, success=False, error=error, data=degraded.data)
            metrics.record_stage(entry.step, False, entry.duration, fallback=True)
        else:
            run.produce(**outcome.artifacts)
            entry = run.ledger.commit(
                handle, success=outcome.success, error=outcome.error, data=outcome.data
            )
            metrics.record_stage(
                entry.step, entry.success, entry.duration, fallback=not entry.success
            )

        if self.settle_delay:
            await asyncio.sleep(self.settle_delay)

    # ── Stages ───────────────────────────────────────────────────────────

    async def _fetch_transcript(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.TRANSCRIPT]
        res = await self.client.call(
            policy.endpoint, {"url": run.input.source_video_url}, timeout=policy.timeout
        )
        transcript = res.get("transcript")
        if not transcript:
            raise ValueError("Transcript service returned no transcript")
        return StageOutcome({"transcript": transcript}, {"length": len(transcript)})

    async def _prepare_title(self, run: PipelineRun) -> StageOutcome:
        original = run.input.original_title
        if not self.rewrite_title:
            return StageOutcome({"cloned_title": original}, {"rewritten": False})

        policy = STAGE_POLICIES[Stage.TITLE]
        res = await self.client.call(
            policy.endpoint,
            {"originalTitle": original, "channelName": run.input.channel_name},
            timeout=policy.timeout,
        )
        title = res.get("recommendedTitle") or original
        logger.info(f"[{run.run_id}] Cloned title: {title!r}")
        return StageOutcome({"cloned_title": title}, {"rewritten": True, "title": title})

    async def _generate_script(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.SCRIPT]
        word_count = target_word_count(
            run.input.source_duration_seconds, run.input.target_word_count
        )
        source = "manual override" if run.input.target_word_count else "source duration"
        logger.info(f"[{run.run_id}] Target word count: {word_count} ({source})")

        res = await self.client.call_streaming(
            policy.endpoint,
            {
                "transcript": run.artifacts.transcript,
                "projectId": run.run_id,
                "voiceStyle": VOICE_STYLE,
                "wordCount": word_count,
                "stream": True,
            },
            run.progress_handler,
            timeout=policy.timeout,
        )
        script = res.get("script")
        if not script:
            raise ValueError("Script service returned an empty script")
        return StageOutcome({"script": script}, {"wordCount": len(script.split())})

    async def _generate_audio(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.AUDIO]
        res = await self.client.call_streaming(
            policy.endpoint,
            {
                "script": run.artifacts.script,
                "projectId": run.run_id,
                "voiceSampleUrl": self.voice_sample_url,
                "voiceStyle": VOICE_STYLE,
                "stream": True,
            },
            run.progress_handler,
            timeout=policy.timeout,
        )
        audio_url = res.get("audioUrl")
        if not audio_url:
            raise ValueError("Audio service returned no audioUrl")
        duration = res.get("totalDuration")
        return StageOutcome(
            {"audio_url": audio_url, "audio_duration": duration},
            {"audioUrl": audio_url, "audioDuration": duration},
        )

    async def _generate_captions(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.CAPTIONS]
        res = await self.client.call_streaming(
            policy.endpoint,
            {"audioUrl": run.artifacts.audio_url, "projectId": run.run_id, "stream": True},
            run.progress_handler,
            timeout=policy.timeout,
        )
        captions_url = res.get("captionsUrl")
        if not captions_url:
            raise ValueError("Captions service returned no captionsUrl")

        # Fetched once here and reused by both prompt stages
        captions_content = ""
        try:
            captions_content = await self.client.fetch_text(captions_url)
            logger.info(f"[{run.run_id}] Downloaded captions: {len(captions_content)} chars")
        except Exception as e:
            logger.warning(f"[{run.run_id}] Could not download captions, continuing: {e}")

        return StageOutcome(
            {"captions_url": captions_url, "captions_content": captions_content},
            {"captionsUrl": captions_url},
        )

    async def _generate_clip_prompts(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.CLIP_PROMPTS]
        res = await self.client.call_streaming(
            policy.endpoint,
            {
                "script": run.artifacts.script,
                "captionsContent": run.artifacts.captions_content,
                "projectId": run.run_id,
                "count": INTRO_CLIP_COUNT,
                "clipDuration": INTRO_CLIP_DURATION,
                "stream": True,
            },
            run.progress_handler,
            timeout=policy.timeout,
        )
        prompts = _require_list(res, "prompts")
        return StageOutcome({"clip_prompts": prompts}, {"count": len(prompts)})

    async def _generate_video_clips(self, run: PipelineRun) -> StageOutcome:
        clip_prompts = run.artifacts.clip_prompts
        if not clip_prompts:
            return StageOutcome(
                {"intro_clips": []}, success=False, error=SKIPPED_NO_CLIP_PROMPTS
            )

        policy = STAGE_POLICIES[Stage.VIDEO_CLIPS]
        prompts = [
            {
                "index": i + 1,
                "startSeconds": i * INTRO_CLIP_DURATION,
                "endSeconds": (i + 1) * INTRO_CLIP_DURATION,
                "prompt": p.get("prompt", p) if isinstance(p, dict) else p,
            }
            for i, p in enumerate(clip_prompts)
        ]
        res = await self.client.call_streaming(
            policy.endpoint,
            {
                "projectId": run.run_id,
                "prompts": prompts,
                "duration": INTRO_CLIP_DURATION,
                "stream": True,
            },
            run.progress_handler,
            timeout=policy.timeout,
        )

        intro_clips = []
        for position, clip in enumerate(res.get("clips") or [], start=1):
            url = clip.get("videoUrl") or clip.get("url")
            if not url:
                logger.warning(f"[{run.run_id}] Intro clip {position} has no URL, skipping")
                continue
            index = clip.get("index", position)
            intro_clips.append(IntroClip(
                url=url,
                start_seconds=(index - 1) * INTRO_CLIP_DURATION,
                end_seconds=index * INTRO_CLIP_DURATION,
            ))
        return StageOutcome(
            {"intro_clips": intro_clips},
            {"count": len(intro_clips), "totalDuration": len(intro_clips) * INTRO_CLIP_DURATION},
        )

    async def _generate_image_prompts(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.IMAGE_PROMPTS]
        res = await self.client.call_streaming(
            policy.endpoint,
            {
                "script": run.artifacts.script,
                "captionsContent": run.artifacts.captions_content,
                "projectId": run.run_id,
                "count": IMAGE_COUNT,
                "masterStylePrompt": MASTER_STYLE_PROMPT,
                "stream": True,
            },
            run.progress_handler,
            timeout=policy.timeout,
        )
        prompts = _require_list(res, "prompts")
        return StageOutcome({"image_prompts": prompts}, {"count": len(prompts)})

    async def _generate_images(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.IMAGES]
        res = await self.client.call_streaming(
            policy.endpoint,
            {"prompts": run.artifacts.image_prompts, "projectId": run.run_id, "stream": True},
            run.progress_handler,
            timeout=policy.timeout,
        )
        image_urls = [
            img.get("imageUrl") if isinstance(img, dict) else img
            for img in _require_list(res, "images")
        ]
        image_urls = [url for url in image_urls if url]
        if not image_urls:
            raise ValueError("Image service returned no images")
        return StageOutcome({"image_urls": image_urls}, {"count": len(image_urls)})

    async def _generate_thumbnail(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.THUMBNAIL]
        original_url = run.input.original_thumbnail_url

        logger.info(f"[{run.run_id}] Downloading original thumbnail: {original_url}")
        reference_b64 = await self.client.fetch_base64(original_url)

        analysis = await self.client.call(
            THUMBNAIL_ANALYSIS_ENDPOINT,
            {"thumbnailUrl": original_url, "videoTitle": run.input.original_title},
            timeout=THUMBNAIL_ANALYSIS_TIMEOUT,
        )

        res = await self.client.call_streaming(
            policy.endpoint,
            {
                "projectId": run.run_id,
                "referenceImageBase64": reference_b64,
                "analysis": analysis,
                "prompt": THUMBNAIL_PROMPT,
                "count": 1,
                "stream": True,
            },
            run.progress_handler,
            timeout=policy.timeout,
        )
        thumbnails = res.get("thumbnails") or []
        if thumbnails:
            return StageOutcome({"thumbnail_url": thumbnails[0]}, {"thumbnailUrl": thumbnails[0]})

        fallback_url = _first_image(run)
        return StageOutcome(
            {"thumbnail_url": fallback_url}, {"thumbnailUrl": fallback_url, "fallback": True}
        )

    async def _render_video(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.RENDER]
        body = {
            "projectId": run.run_id,
            "audioUrl": run.artifacts.audio_url,
            "captionsUrl": run.artifacts.captions_url,
            "imageUrls": run.artifacts.image_urls,
            "effectType": RENDER_EFFECT,
        }
        if run.artifacts.intro_clips:
            body["introClips"] = [
                {"url": c.url, "startSeconds": c.start_seconds, "endSeconds": c.end_seconds}
                for c in run.artifacts.intro_clips
            ]

        res = await self.client.call_streaming(
            policy.endpoint, body, run.progress_handler, timeout=policy.timeout
        )
        video_url = res.get("videoUrl")
        if not video_url:
            raise ValueError("Render service returned no videoUrl")
        return StageOutcome({"video_url": video_url}, {"videoUrl": video_url})

    async def _upload_video(self, run: PipelineRun) -> StageOutcome:
        policy = STAGE_POLICIES[Stage.UPLOAD]
        title = run.artifacts.cloned_title
        publish_at = run.input.publish_at

        body = {
            "videoUrl": run.artifacts.video_url,
            "title": title,
            "description": f"{title}\n\nGenerated with AI",
            "tags": UPLOAD_TAGS,
            "categoryId": UPLOAD_CATEGORY_ID,
            "privacyStatus": "private" if publish_at else "unlisted",
            "thumbnailUrl": run.artifacts.thumbnail_url,
        }
        if publish_at:
            body["publishAt"] = publish_at

        res = await self.client.call_streaming(
            policy.endpoint, body, run.progress_handler, timeout=policy.timeout
        )
        video_id = res.get("videoId")
        if not video_id:
            raise ValueError("Upload service returned no videoId")
        youtube_url = res.get("youtubeUrl")
        return StageOutcome(
            {"youtube_video_id": video_id, "youtube_url": youtube_url},
            {"youtubeVideoId": video_id, "youtubeUrl": youtube_url, "publishAt": publish_at},
        )


# ── Fallbacks for non-fatal stages ───────────────────────────────────────────

def _no_clip_prompts(run: PipelineRun) -> StageOutcome:
    return StageOutcome({"clip_prompts": []})


def _no_intro_clips(run: PipelineRun) -> StageOutcome:
    return StageOutcome({"intro_clips": []})


def _first_image_thumbnail(run: PipelineRun) -> StageOutcome:
    url = _first_image(run)
    return StageOutcome({"thumbnail_url": url}, {"thumbnailUrl": url, "fallback": True})


def _first_image(run: PipelineRun) -> Optional[str]:
    image_urls = run.artifacts.image_urls or []
    return image_urls[0] if image_urls else None


def _require_list(res: dict, key: str) -> list:
    value = res.get(key)
    if not isinstance(value, list):
        raise ValueError(f"Response is missing '{key}' list")
    return value
