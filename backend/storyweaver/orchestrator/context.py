"""Explicit inputs shared by the stages of one storyboard session."""

from dataclasses import dataclass

from storyweaver.pipeline.analysis import build_scene_context
from storyweaver.schemas.storyboard import GenerationConfig


@dataclass
class OrchestrationContext:
    """User configuration plus the analysis results later stages reuse.

    Frame synthesis and regeneration read the descriptions and pose
    constraint from here; video synthesis reads scene_context.
    """

    config: GenerationConfig
    face_description: str = ""
    scene_description: str = ""

    @property
    def pose_constraint(self) -> str:
        return self.config.pose_description

    @property
    def scene_context(self) -> str:
        return build_scene_context(self.scene_description, self.face_description)

    @property
    def is_analyzed(self) -> bool:
        return bool(self.face_description and self.scene_description)

    def clear(self) -> None:
        """Drop cached analysis after a failed generation."""
        self.face_description = ""
        self.scene_description = ""
