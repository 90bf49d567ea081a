"""Tests for concurrent keyframe synthesis and single-frame regeneration."""

import pytest

from storyweaver.pipeline.keyframes import (
    ASPECT_RATIO,
    DEFAULT_POSE,
    build_frame_prompt,
    build_regenerate_prompt,
    regenerate_frame,
    synthesize_frames,
)
from storyweaver.schemas.storyboard import ImageModel


async def _synthesize(gateway, scene_image, face_image, count=9, pose="Sitting at desk", model=ImageModel.GEMINI_3_PRO):
    return await synthesize_frames(
        gateway, scene_image, face_image,
        "Soft light", "Green eyes", pose, count, model,
    )


@pytest.mark.asyncio
async def test_synthesizes_requested_count_in_order(gateway, scene_image, face_image):
    frames = await _synthesize(gateway, scene_image, face_image, count=9)

    assert [f.data for f in frames] == [f"frame-{n}".encode() for n in range(2, 11)]
    assert len(gateway.image_calls) == 9


@pytest.mark.asyncio
async def test_every_request_uses_both_references(gateway, scene_image, face_image):
    await _synthesize(gateway, scene_image, face_image, count=3)

    for call in gateway.image_calls:
        assert call["images"] == [scene_image, face_image]
        assert call["aspect_ratio"] == ASPECT_RATIO
        assert "Scene: Soft light" in call["instruction"]
        assert "Face: Green eyes" in call["instruction"]


@pytest.mark.asyncio
async def test_failed_frames_are_dropped(gateway, scene_image, face_image):
    gateway.fail_frames = {3}
    gateway.empty_frames = {7}

    frames = await _synthesize(gateway, scene_image, face_image, count=9)

    assert len(frames) == 7
    assert b"frame-3" not in [f.data for f in frames]
    assert b"frame-7" not in [f.data for f in frames]


@pytest.mark.asyncio
async def test_all_frames_failing_yields_empty_list(gateway, scene_image, face_image):
    gateway.image_error = RuntimeError("safety block")

    assert await _synthesize(gateway, scene_image, face_image, count=4) == []


@pytest.mark.asyncio
async def test_higher_tier_model_requests_4k(gateway, scene_image, face_image):
    await _synthesize(gateway, scene_image, face_image, count=1, model=ImageModel.GEMINI_3_PRO)
    call = gateway.image_calls[0]

    assert call["image_size"] == "4K"
    assert call["model"] == ImageModel.GEMINI_3_PRO.value
    assert "4K High Definition" in call["instruction"]


@pytest.mark.asyncio
async def test_flash_model_sends_no_size_hint(gateway, scene_image, face_image):
    await _synthesize(gateway, scene_image, face_image, count=1, model=ImageModel.GEMINI_25_FLASH)
    call = gateway.image_calls[0]

    assert call["image_size"] is None
    assert "4K" not in call["instruction"]


def test_blank_pose_uses_default_constraint():
    prompt = build_frame_prompt(2, "scene", "face", "  ", ImageModel.GEMINI_25_FLASH)
    assert DEFAULT_POSE in prompt


def test_frame_prompt_carries_pose_and_label():
    prompt = build_frame_prompt(5, "scene", "face", "Standing by the window", ImageModel.GEMINI_25_FLASH)

    assert "Frame #5" in prompt
    assert "Standing by the window" in prompt
    assert DEFAULT_POSE not in prompt


def test_regenerate_prompt_quotes_action():
    prompt = build_regenerate_prompt("  raise right hand ", "scene", "face", "", ImageModel.GEMINI_3_PRO)

    assert 'USER ACTION REQUEST: "raise right hand"' in prompt


def test_regenerate_prompt_keeps_empty_pose_constraint():
    prompt = build_regenerate_prompt("smile", "scene", "face", "", ImageModel.GEMINI_3_PRO)

    assert "GLOBAL POSE CONSTRAINT: \n" in prompt
    assert DEFAULT_POSE not in prompt


def test_regenerate_prompt_carries_pose_constraint():
    prompt = build_regenerate_prompt("smile", "scene", "face", "Sitting at desk", ImageModel.GEMINI_3_PRO)

    assert "GLOBAL POSE CONSTRAINT: Sitting at desk\n" in prompt


@pytest.mark.asyncio
async def test_regenerate_frame_returns_new_image(gateway, scene_image, face_image):
    image = await regenerate_frame(
        gateway, scene_image, face_image, "smile", "scene", "face", ImageModel.GEMINI_3_PRO,
    )

    assert image is not None
    assert gateway.image_calls[0]["images"] == [scene_image, face_image]
    assert gateway.image_calls[0]["image_size"] == "4K"


@pytest.mark.asyncio
async def test_regenerate_frame_propagates_errors(gateway, scene_image, face_image):
    gateway.image_error = RuntimeError("blocked")

    with pytest.raises(RuntimeError, match="blocked"):
        await regenerate_frame(
            gateway, scene_image, face_image, "smile", "scene", "face", ImageModel.GEMINI_3_PRO,
        )
