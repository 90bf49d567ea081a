"""Generative media gateway.

Every call that leaves the process (image description, keyframe synthesis,
duration estimation, video jobs) goes through a GenerationGateway, so stages
can be exercised against an in-memory fake.

Usage:
    from storyweaver.services.gateway import GenAIGateway, GenerationGateway

    gateway = GenAIGateway()
    text = await gateway.describe_image(image, "Describe the lighting.", model)
"""

from storyweaver.services.gateway.base import GeneratedVideo, GenerationGateway, VideoJob
from storyweaver.services.gateway.genai_gateway import GenAIGateway

__all__ = ["GenerationGateway", "GenAIGateway", "GeneratedVideo", "VideoJob"]
