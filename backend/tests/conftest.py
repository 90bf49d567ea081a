"""Shared fixtures: an in-memory generation gateway and reference images."""

import asyncio
import io
import re
from typing import Optional

import pytest
from PIL import Image

from storyweaver.config import settings
from storyweaver.pipeline.analysis import FACE_ANALYSIS_PROMPT
from storyweaver.schemas.storyboard import GenerationConfig, ImageModel, ImagePayload
from storyweaver.services.credentials import CredentialProvider
from storyweaver.services.file_manager import FileManager
from storyweaver.services.gateway import GeneratedVideo, GenerationGateway, VideoJob

_FRAME_NUMBER = re.compile(r"Frame #(\d+)")


def make_png(color: str = "white") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (9, 16), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeGateway(GenerationGateway):
    """Records every call and answers from configurable canned values.

    Keyframe requests are told apart by the "Frame #N" label in their prompt;
    frame numbers listed in fail_frames raise and those in empty_frames return
    no image. Video jobs finish after polls_until_done polls.
    """

    def __init__(self, credentials: Optional[CredentialProvider] = None):
        self.credentials = credentials or CredentialProvider(api_key="test-key")

        self.face_text: Optional[str] = "Almond brown eyes, straight nose, short black hair."
        self.scene_text: Optional[str] = "Soft window light from the left, 35mm, seated at a desk."
        self.describe_error: Optional[Exception] = None

        self.duration_text: Optional[str] = "4.5"
        self.text_error: Optional[Exception] = None
        self.text_gate: Optional[asyncio.Event] = None

        self.fail_frames: set[int] = set()
        self.empty_frames: set[int] = set()
        self.image_error: Optional[Exception] = None

        self.polls_until_done = 1
        self.video_error: Optional[str] = None
        self.video_empty = False
        self.video_bytes = b"fake-mp4"
        self.video_gate: Optional[asyncio.Event] = None

        self.describe_calls: list[tuple[ImagePayload, str, str]] = []
        self.text_calls: list[tuple[str, str]] = []
        self.image_calls: list[dict] = []
        self.video_calls: list[dict] = []
        self.poll_count = 0
        self._image_counter = 0

    async def describe_image(self, image, instruction, model):
        self.describe_calls.append((image, instruction, model))
        if self.describe_error:
            raise self.describe_error
        if instruction == FACE_ANALYSIS_PROMPT:
            return self.face_text
        return self.scene_text

    async def generate_text(self, prompt, model):
        self.text_calls.append((prompt, model))
        if self.text_gate is not None:
            await self.text_gate.wait()
        if self.text_error:
            raise self.text_error
        return self.duration_text

    async def generate_image(self, images, instruction, model, *, aspect_ratio="9:16", image_size=None):
        self.image_calls.append({
            "images": images,
            "instruction": instruction,
            "model": model,
            "aspect_ratio": aspect_ratio,
            "image_size": image_size,
        })
        match = _FRAME_NUMBER.search(instruction)
        frame_number = int(match.group(1)) if match else None
        if self.image_error:
            raise self.image_error
        if frame_number in self.fail_frames:
            raise RuntimeError(f"frame {frame_number} blocked")
        if frame_number in self.empty_frames:
            return None
        self._image_counter += 1
        label = f"frame-{frame_number}" if frame_number else f"regen-{self._image_counter}"
        return ImagePayload(data=label.encode(), mime_type="image/png")

    async def submit_video(self, prompt, start_image, end_image, model, *,
                           resolution="1080p", aspect_ratio="9:16", number_of_videos=1):
        self.video_calls.append({
            "prompt": prompt,
            "start_image": start_image,
            "end_image": end_image,
            "model": model,
            "resolution": resolution,
            "aspect_ratio": aspect_ratio,
            "number_of_videos": number_of_videos,
        })
        if self.video_gate is not None:
            await self.video_gate.wait()
        return VideoJob(name=f"operations/video-{len(self.video_calls)}")

    async def poll_video(self, job):
        self.poll_count += 1
        if self.poll_count < self.polls_until_done:
            return VideoJob(name=job.name)
        if self.video_error:
            return VideoJob(name=job.name, done=True, error=self.video_error)
        videos = [] if self.video_empty else [GeneratedVideo(uri=f"https://example.invalid/{job.name}.mp4")]
        return VideoJob(name=job.name, done=True, videos=videos)

    async def fetch_video(self, video):
        return self.video_bytes


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch):
    monkeypatch.setattr(settings.pipeline, "video_poll_interval", 0.0)
    monkeypatch.setattr(settings.pipeline, "video_poll_max", 20)


@pytest.fixture
def no_env_credentials(monkeypatch):
    """Remove every ambient API key so only explicit credentials count."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.setattr(settings.google, "api_key", "")
    monkeypatch.setattr(settings.google, "use_vertex_ai", False)


@pytest.fixture
def credentials():
    return CredentialProvider(api_key="test-key")


@pytest.fixture
def gateway(credentials):
    return FakeGateway(credentials)


@pytest.fixture
def scene_image():
    return ImagePayload.from_bytes(make_png("white"))


@pytest.fixture
def face_image():
    return ImagePayload.from_bytes(make_png("black"))


@pytest.fixture
def generation_config(scene_image, face_image):
    return GenerationConfig(
        scene_image=scene_image,
        face_image=face_image,
        frame_count=10,
        model=ImageModel.GEMINI_3_PRO,
        pose_description="Sitting at desk, hands folded",
    )


@pytest.fixture
def file_manager(tmp_path):
    return FileManager(tmp_path / "artifacts")
