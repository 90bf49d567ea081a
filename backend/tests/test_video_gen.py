"""Tests for video prompt building and the bounded polling loop."""

import asyncio

import pytest

from storyweaver.pipeline.video_gen import (
    UHD_QUALITY_HINT,
    DirectorControls,
    VideoGenerationError,
    VideoJobCancelled,
    VideoJobTimeout,
    build_video_prompt,
    generate_segment,
    wait_for_video,
)
from storyweaver.schemas.storyboard import Resolution
from storyweaver.services.gateway import VideoJob


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def test_empty_controls_use_defaults():
    prompt = build_video_prompt(DirectorControls(context="Scene: x. Face: y"), Resolution.HD_1080P)

    assert "Smooth, natural transition between start and end frames." in prompt
    assert "Neutral, consistent with context." in prompt
    assert "No dialogue." in prompt
    assert "Scene: x. Face: y" in prompt
    assert UHD_QUALITY_HINT not in prompt


def test_controls_are_embedded():
    controls = DirectorControls(
        movement="Leans forward",
        expression="Excited",
        script="We did it!",
        context="ctx",
    )
    prompt = build_video_prompt(controls, Resolution.HD_1080P)

    assert "Leans forward" in prompt
    assert "Excited" in prompt
    assert 'Character is saying: "We did it!"' in prompt


def test_uhd_target_adds_quality_hint():
    prompt = build_video_prompt(DirectorControls(), Resolution.UHD_4K)
    assert UHD_QUALITY_HINT in prompt


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_wait_returns_finished_job_without_polling(gateway):
    job = VideoJob(name="op", done=True)

    assert await wait_for_video(gateway, job, poll_interval=0, max_polls=3) is job
    assert gateway.poll_count == 0


@pytest.mark.asyncio
async def test_wait_polls_until_done(gateway):
    gateway.polls_until_done = 3

    job = await wait_for_video(gateway, VideoJob(name="op"), poll_interval=0, max_polls=10)

    assert job.done
    assert gateway.poll_count == 3


@pytest.mark.asyncio
async def test_wait_times_out_after_max_polls(gateway):
    gateway.polls_until_done = 100

    with pytest.raises(VideoJobTimeout):
        await wait_for_video(gateway, VideoJob(name="op"), poll_interval=0, max_polls=4)
    assert gateway.poll_count == 4


@pytest.mark.asyncio
async def test_wait_stops_when_cancelled(gateway):
    gateway.polls_until_done = 100
    cancel = asyncio.Event()

    task = asyncio.create_task(
        wait_for_video(gateway, VideoJob(name="op"), poll_interval=10, max_polls=5, cancel_event=cancel)
    )
    await asyncio.sleep(0)
    cancel.set()

    with pytest.raises(VideoJobCancelled):
        await asyncio.wait_for(task, timeout=1)
    assert gateway.poll_count == 0


# ---------------------------------------------------------------------------
# generate_segment
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_segment_returns_video_bytes(gateway, scene_image, face_image):
    data = await generate_segment(
        gateway, scene_image, face_image, DirectorControls(), Resolution.UHD_4K, model="veo-test",
    )

    assert data == b"fake-mp4"
    call = gateway.video_calls[0]
    assert call["start_image"] == scene_image
    assert call["end_image"] == face_image
    assert call["model"] == "veo-test"
    assert call["number_of_videos"] == 1
    assert call["aspect_ratio"] == "9:16"
    # The API request stays at 1080p; 4K only changes the prompt
    assert call["resolution"] == "1080p"
    assert UHD_QUALITY_HINT in call["prompt"]


@pytest.mark.asyncio
async def test_generate_segment_honours_zero_max_polls(gateway, scene_image, face_image):
    with pytest.raises(VideoJobTimeout):
        await generate_segment(gateway, scene_image, face_image, DirectorControls(), max_polls=0)

    assert gateway.poll_count == 0


@pytest.mark.asyncio
async def test_generate_segment_raises_on_job_error(gateway, scene_image, face_image):
    gateway.video_error = "PERMISSION_DENIED"

    with pytest.raises(VideoGenerationError, match="PERMISSION_DENIED"):
        await generate_segment(gateway, scene_image, face_image, DirectorControls())


@pytest.mark.asyncio
async def test_generate_segment_raises_without_video(gateway, scene_image, face_image):
    gateway.video_empty = True

    with pytest.raises(VideoGenerationError, match="no video"):
        await generate_segment(gateway, scene_image, face_image, DirectorControls())
