"""Scene video synthesis via Veo first-frame/last-frame interpolation.

Implements the long-running job protocol:
- Submit one job with both keyframes and the directorial prompt
- Poll on a fixed interval, bounded by a maximum poll count
- Stop early when the caller's cancellation event is set
- Fetch the first generated video
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from storyweaver.config import settings
from storyweaver.schemas.storyboard import ImagePayload, Resolution
from storyweaver.services.gateway import GenerationGateway, VideoJob

logger = logging.getLogger(__name__)

VIDEO_PROMPT = """
Cinematic vertical video (9:16). {quality}

STRICT DIRECTORIAL INSTRUCTIONS:

1. ACTION / MOVEMENT:
{movement}

2. CHARACTER EXPRESSION / EMOTION:
{expression}

3. DIALOGUE CONTEXT (Lip-sync & Vibe):
{dialogue}

4. ATMOSPHERE:
{context}

Ensure smooth movement and consistent identity.
"""

# The API tops out at 1080p; 4K is requested through the prompt instead
UHD_QUALITY_HINT = "Ultra High Definition, 4K resolution textures, extremely sharp focus."


class VideoGenerationError(RuntimeError):
    """Raised when a video job fails or yields no video."""


class VideoJobTimeout(VideoGenerationError):
    """Raised when a job is still running after the maximum number of polls."""


class VideoJobCancelled(VideoGenerationError):
    """Raised when the caller cancels while waiting on a job."""


@dataclass
class DirectorControls:
    """Per-scene text steering the video."""

    movement: str = ""
    expression: str = ""
    script: str = ""
    context: str = ""


def build_video_prompt(controls: DirectorControls, resolution: Resolution) -> str:
    """Directorial prompt with defaults for every empty control."""
    if controls.script.strip():
        dialogue = f'Character is saying: "{controls.script.strip()}"'
    else:
        dialogue = "No dialogue."

    return VIDEO_PROMPT.format(
        quality=UHD_QUALITY_HINT if resolution == Resolution.UHD_4K else "",
        movement=controls.movement.strip() or "Smooth, natural transition between start and end frames.",
        expression=controls.expression.strip() or "Neutral, consistent with context.",
        dialogue=dialogue,
        context=controls.context,
    )


async def _sleep_or_cancel(delay: float, cancel_event: Optional[asyncio.Event]) -> None:
    """Sleep for delay seconds, waking early if cancel_event is set."""
    if cancel_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


async def wait_for_video(
    gateway: GenerationGateway,
    job: VideoJob,
    *,
    poll_interval: float,
    max_polls: int,
    cancel_event: Optional[asyncio.Event] = None,
) -> VideoJob:
    """Poll job until it reports done.

    Raises:
        VideoJobCancelled: If cancel_event is set before the job finishes.
        VideoJobTimeout: If the job is not done after max_polls polls.
    """
    for poll_attempt in range(max_polls):
        if job.done:
            return job

        await _sleep_or_cancel(poll_interval, cancel_event)
        if cancel_event is not None and cancel_event.is_set():
            raise VideoJobCancelled(f"Video job {job.name} cancelled")

        job = await gateway.poll_video(job)
        logger.debug(f"Polled {job.name} (attempt {poll_attempt + 1}/{max_polls}): done={job.done}")

    if job.done:
        return job
    raise VideoJobTimeout(
        f"Video job {job.name} did not complete after {max_polls * poll_interval:.0f} seconds"
    )


async def generate_segment(
    gateway: GenerationGateway,
    start_image: ImagePayload,
    end_image: ImagePayload,
    controls: DirectorControls,
    resolution: Resolution = Resolution.HD_1080P,
    *,
    model: Optional[str] = None,
    poll_interval: Optional[float] = None,
    max_polls: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> bytes:
    """Render the video between two keyframes and return its bytes.

    Raises:
        VideoGenerationError: If the finished job carries an error or no video.
        VideoJobTimeout / VideoJobCancelled: See wait_for_video.
    """
    job = await gateway.submit_video(
        build_video_prompt(controls, resolution),
        start_image,
        end_image,
        model or settings.models.video_gen,
        resolution=settings.pipeline.video_resolution,
        aspect_ratio=settings.pipeline.aspect_ratio,
        number_of_videos=1,
    )

    job = await wait_for_video(
        gateway,
        job,
        poll_interval=settings.pipeline.video_poll_interval if poll_interval is None else poll_interval,
        max_polls=settings.pipeline.video_poll_max if max_polls is None else max_polls,
        cancel_event=cancel_event,
    )

    if job.error:
        raise VideoGenerationError(f"Video job {job.name} failed: {job.error}")
    if not job.videos:
        raise VideoGenerationError(f"Video job {job.name} returned no video")

    logger.info(f"Video job {job.name} complete, fetching result")
    return await gateway.fetch_video(job.videos[0])
