"""Storyboard orchestrator module.

Provides session coordination for the storyboard pipeline with:
- Pipeline step and per-scene status state machines
- An explicit orchestration context carrying analysis results
- Per-scene leases rejecting concurrent operations on the same scene
- Boundary-frame propagation after single-frame regeneration
"""

from storyweaver.orchestrator.context import OrchestrationContext
from storyweaver.orchestrator.session import (
    VIDEO_ERROR_MESSAGE,
    FrameRegenerationError,
    InvalidTransitionError,
    SceneBusyError,
    SceneNotFoundError,
    StoryboardGenerationError,
    StoryboardSession,
)

__all__ = [
    "OrchestrationContext",
    "StoryboardSession",
    "StoryboardGenerationError",
    "FrameRegenerationError",
    "InvalidTransitionError",
    "SceneBusyError",
    "SceneNotFoundError",
    "VIDEO_ERROR_MESSAGE",
]
