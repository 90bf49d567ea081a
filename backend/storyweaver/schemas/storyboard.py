"""Pydantic models for the storyboard session state.

GenerationConfig is fixed once a storyboard starts generating. SceneState
instances are treated as values: the session replaces a scene wholesale via
model_copy(update=...) instead of mutating fields in place.
"""

import io
import uuid
from enum import Enum
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field


class ImageModel(str, Enum):
    """Keyframe image generation model variants."""

    GEMINI_3_PRO = "gemini-3-pro-image-preview"
    GEMINI_25_FLASH = "gemini-2.5-flash-image"

    @property
    def image_size(self) -> Optional[str]:
        """Resolution hint passed with image requests (higher tier only)."""
        if self is ImageModel.GEMINI_3_PRO:
            return "4K"
        return None


class Resolution(str, Enum):
    """Target resolution a director picks for a scene's video."""

    HD_1080P = "1080p"
    UHD_4K = "4k"


class SceneStatus(str, Enum):
    """Video lifecycle of a single scene."""

    IDLE = "idle"
    GENERATING_VIDEO = "generating_video"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineStep(str, Enum):
    """Top-level storyboard phase."""

    UPLOAD = "upload"
    GENERATING_FRAMES = "generating_frames"
    SEQUENCING = "sequencing"


class ImagePayload(BaseModel):
    """Raw image bytes with their MIME type (no data-URL prefix)."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/jpeg"

    @classmethod
    def from_bytes(cls, data: bytes, default_mime: str = "image/jpeg") -> "ImagePayload":
        """Wrap uploaded bytes, sniffing the MIME type with Pillow.

        Unrecognised data keeps default_mime; the gateway decides whether
        it is acceptable.
        """
        mime_type = default_mime
        try:
            with Image.open(io.BytesIO(data)) as img:
                mime_type = Image.MIME.get(img.format or "", default_mime)
        except (UnidentifiedImageError, OSError):
            pass
        return cls(data=data, mime_type=mime_type)

    @property
    def extension(self) -> str:
        """File extension matching the MIME type."""
        return {
            "image/png": "png",
            "image/webp": "webp",
        }.get(self.mime_type, "jpg")


class GenerationConfig(BaseModel):
    """User inputs for one storyboard. Immutable once generation starts."""

    model_config = ConfigDict(frozen=True)

    scene_image: ImagePayload = Field(description="Master scene reference (becomes frame zero)")
    face_image: ImagePayload = Field(description="Character face reference")
    frame_count: int = Field(default=10, ge=2, description="Total keyframes including frame zero")
    model: ImageModel = Field(default=ImageModel.GEMINI_3_PRO, description="Keyframe image model")
    pose_description: str = Field(default="", description="Global pose constraint for every keyframe")


class SceneState(BaseModel):
    """One scene: the segment between two adjacent keyframes."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    index: int
    start_image: ImagePayload
    end_image: ImagePayload

    # Director controls
    script: str = ""
    movement_description: str = ""
    expression_description: str = ""
    recommended_duration: Optional[str] = None
    target_resolution: Resolution = Resolution.HD_1080P

    # End frame regeneration
    end_frame_action_prompt: str = ""
    is_regenerating_image: bool = False

    is_processing: bool = False
    status: SceneStatus = SceneStatus.IDLE
    generated_video_url: Optional[str] = None
    error_message: Optional[str] = None
