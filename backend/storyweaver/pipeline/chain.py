"""Frame chain to scene list.

A chain of N keyframes yields N-1 scenes; scene i runs from frame i to
frame i+1, so adjacent scenes share a boundary frame.
"""

from storyweaver.schemas.storyboard import ImagePayload, SceneState


class InsufficientFramesError(ValueError):
    """Raised when a chain has fewer than two keyframes."""


class BrokenChainError(ValueError):
    """Raised when adjacent scenes no longer share their boundary frame."""


def build_scene_chain(frames: list[ImagePayload]) -> list[SceneState]:
    """Pair adjacent keyframes into idle scenes with empty director controls.

    Raises:
        InsufficientFramesError: If fewer than two frames are given.
    """
    if len(frames) < 2:
        raise InsufficientFramesError("insufficient frames")

    return [
        SceneState(index=i, start_image=frames[i], end_image=frames[i + 1])
        for i in range(len(frames) - 1)
    ]


def validate_chain(scenes: list[SceneState]) -> None:
    """Check ordering and boundary continuity of a scene list.

    Raises:
        BrokenChainError: On an out-of-order index or a boundary mismatch.
    """
    for i, scene in enumerate(scenes):
        if scene.index != i:
            raise BrokenChainError(f"Scene {scene.id} has index {scene.index}, expected {i}")
        if i + 1 < len(scenes) and scene.end_image != scenes[i + 1].start_image:
            raise BrokenChainError(f"Scenes {i} and {i + 1} do not share a boundary frame")
