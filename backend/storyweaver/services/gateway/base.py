"""Abstract base class for the generative media gateway.

Defines the async interface every stage talks to: image description, plain
text generation, reference-locked image synthesis, and the long-running
video job protocol (submit, poll, fetch).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from storyweaver.schemas.storyboard import ImagePayload


@dataclass
class GeneratedVideo:
    """One video produced by a finished job.

    Exactly one of uri / video_bytes is normally set.
    """

    uri: Optional[str] = None
    video_bytes: Optional[bytes] = None
    mime_type: str = "video/mp4"


@dataclass
class VideoJob:
    """Handle for a long-running video generation job."""

    name: str
    done: bool = False
    videos: list[GeneratedVideo] = field(default_factory=list)
    error: Optional[str] = None
    operation: Any = None  # SDK operation object, passed back when polling


class GenerationGateway(ABC):
    """Abstract base class for generative model gateways."""

    @abstractmethod
    async def describe_image(
        self,
        image: ImagePayload,
        instruction: str,
        model: str,
    ) -> Optional[str]:
        """Send one image with an instruction and return the response text.

        Returns:
            Free text, or None when the model returned no text.
        """
        ...

    @abstractmethod
    async def generate_text(self, prompt: str, model: str) -> Optional[str]:
        """Return the model's text reply to a text-only prompt."""
        ...

    @abstractmethod
    async def generate_image(
        self,
        images: list[ImagePayload],
        instruction: str,
        model: str,
        *,
        aspect_ratio: str = "9:16",
        image_size: Optional[str] = None,
    ) -> Optional[ImagePayload]:
        """Generate one image conditioned on reference images.

        Args:
            images: Reference images, in the order the instruction names them.
            instruction: Text instruction appended after the images.
            model: Image model identifier.
            aspect_ratio: Output aspect ratio.
            image_size: Optional resolution hint (e.g. "4K").

        Returns:
            The first inline image of the response, or None.
        """
        ...

    @abstractmethod
    async def submit_video(
        self,
        prompt: str,
        start_image: ImagePayload,
        end_image: ImagePayload,
        model: str,
        *,
        resolution: str = "1080p",
        aspect_ratio: str = "9:16",
        number_of_videos: int = 1,
    ) -> VideoJob:
        """Start a first-frame/last-frame video job and return its handle."""
        ...

    @abstractmethod
    async def poll_video(self, job: VideoJob) -> VideoJob:
        """Return a refreshed handle for job."""
        ...

    @abstractmethod
    async def fetch_video(self, video: GeneratedVideo) -> bytes:
        """Materialize a generated video into bytes."""
        ...
