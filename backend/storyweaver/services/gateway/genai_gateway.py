"""google-genai implementation of the generation gateway.

Talks to Gemini image models and Veo through the SDK's async surface.
Only the video status RPC is retried, and only on transient errors; every
other call surfaces its failure to the caller.
"""

import logging
from typing import Optional

import httpx
from google.genai import types
from google.genai.errors import ClientError, ServerError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from storyweaver.config import settings
from storyweaver.schemas.storyboard import ImagePayload
from storyweaver.services.credentials import CredentialProvider
from storyweaver.services.gateway.base import GeneratedVideo, GenerationGateway, VideoJob
from storyweaver.services.genai_client import get_genai_client, location_for_model

logger = logging.getLogger(__name__)


def _is_retriable(exc: BaseException) -> bool:
    """Return True only for transient errors worth retrying (429, 5xx)."""
    if isinstance(exc, ServerError):
        return True
    if isinstance(exc, ClientError):
        return getattr(exc, "code", 0) == 429
    if isinstance(exc, (ConnectionError, TimeoutError, httpx.TransportError)):
        return True
    return False


@retry(
    stop=stop_after_attempt(settings.pipeline.poll_retry_attempts),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception(_is_retriable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _poll_operation_get(client, operation):
    """Fetch operation status with retry on transient HTTP errors (429/5xx)."""
    return await client.aio.operations.get(operation=operation)


def _to_job(operation) -> VideoJob:
    videos: list[GeneratedVideo] = []
    response = getattr(operation, "response", None)
    for generated in (getattr(response, "generated_videos", None) or []):
        video = generated.video
        if video is None:
            continue
        videos.append(GeneratedVideo(
            uri=video.uri,
            video_bytes=video.video_bytes,
            mime_type=video.mime_type or "video/mp4",
        ))

    error = getattr(operation, "error", None)
    return VideoJob(
        name=operation.name,
        done=bool(operation.done),
        videos=videos,
        error=str(error) if error else None,
        operation=operation,
    )


def _image_part(image: ImagePayload) -> types.Part:
    return types.Part.from_bytes(data=image.data, mime_type=image.mime_type)


class GenAIGateway(GenerationGateway):
    """Gateway backed by the google-genai SDK.

    A client is resolved on every call so a credential selected after
    construction is picked up.
    """

    def __init__(self, credentials: Optional[CredentialProvider] = None) -> None:
        self._credentials = credentials or CredentialProvider()

    @property
    def credentials(self) -> CredentialProvider:
        return self._credentials

    def _client(self, model: str):
        if self._credentials.use_vertex_ai:
            return get_genai_client(vertexai=True, location=location_for_model(model))
        return get_genai_client(api_key=self._credentials.api_key)

    async def describe_image(
        self,
        image: ImagePayload,
        instruction: str,
        model: str,
    ) -> Optional[str]:
        response = await self._client(model).aio.models.generate_content(
            model=model,
            contents=[_image_part(image), types.Part.from_text(text=instruction)],
        )
        return response.text

    async def generate_text(self, prompt: str, model: str) -> Optional[str]:
        response = await self._client(model).aio.models.generate_content(
            model=model,
            contents=prompt,
        )
        return response.text

    async def generate_image(
        self,
        images: list[ImagePayload],
        instruction: str,
        model: str,
        *,
        aspect_ratio: str = "9:16",
        image_size: Optional[str] = None,
    ) -> Optional[ImagePayload]:
        contents: list = [_image_part(img) for img in images]
        contents.append(types.Part.from_text(text=instruction))

        response = await self._client(model).aio.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE"],
                image_config=types.ImageConfig(
                    aspect_ratio=aspect_ratio,
                    image_size=image_size,
                ),
            ),
        )

        if not response.candidates:
            return None
        content = response.candidates[0].content
        for part in (content.parts if content and content.parts else []):
            if part.inline_data and part.inline_data.data:
                return ImagePayload(
                    data=part.inline_data.data,
                    mime_type=part.inline_data.mime_type or "image/png",
                )
        return None

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
        operation = await self._client(model).aio.models.generate_videos(
            model=model,
            prompt=prompt,
            image=types.Image(image_bytes=start_image.data, mime_type=start_image.mime_type),
            config=types.GenerateVideosConfig(
                number_of_videos=number_of_videos,
                resolution=resolution,
                aspect_ratio=aspect_ratio,
                last_frame=types.Image(
                    image_bytes=end_image.data, mime_type=end_image.mime_type,
                ),
            ),
        )
        job = _to_job(operation)
        logger.info(f"Submitted video job {job.name} ({model}, {resolution})")
        return job

    async def poll_video(self, job: VideoJob) -> VideoJob:
        operation = job.operation or types.GenerateVideosOperation(name=job.name)
        client = self._client(settings.models.video_gen)
        return _to_job(await _poll_operation_get(client, operation))

    async def fetch_video(self, video: GeneratedVideo) -> bytes:
        """Return inline bytes, or download the URI with the API key appended."""
        if video.video_bytes:
            return video.video_bytes
        if not video.uri:
            raise ValueError("Generated video has neither bytes nor a URI")
        if not video.uri.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported video URI: {video.uri}")

        params = {}
        if self._credentials.api_key and not self._credentials.use_vertex_ai:
            params["key"] = self._credentials.api_key

        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(120.0, connect=30.0),
        ) as client:
            response = await client.get(video.uri, params=params)
            response.raise_for_status()
            return response.content
