"""State machine constants and transition logic for storyboard sessions.

Two independent machines:
- The pipeline step of a session (upload -> generating_frames -> sequencing)
- The video status of each scene
"""

from storyweaver.schemas.storyboard import PipelineStep, SceneStatus

# Forward transitions of the session step; failure returns to upload
STEP_TRANSITIONS = {
    PipelineStep.UPLOAD: {PipelineStep.GENERATING_FRAMES},
    PipelineStep.GENERATING_FRAMES: {PipelineStep.SEQUENCING, PipelineStep.UPLOAD},
    PipelineStep.SEQUENCING: set(),
}

# Video can be (re)generated from any non-running state
SCENE_TRANSITIONS = {
    SceneStatus.IDLE: {SceneStatus.GENERATING_VIDEO},
    SceneStatus.GENERATING_VIDEO: {SceneStatus.COMPLETE, SceneStatus.ERROR},
    SceneStatus.COMPLETE: {SceneStatus.GENERATING_VIDEO},
    SceneStatus.ERROR: {SceneStatus.GENERATING_VIDEO},
}

# States a keyframe change may reset to idle
RESETTABLE_STATES = {
    SceneStatus.IDLE,
    SceneStatus.COMPLETE,
    SceneStatus.ERROR,
}


def can_advance_step(current: PipelineStep, target: PipelineStep) -> bool:
    """Check whether the session may move from current to target."""
    return target in STEP_TRANSITIONS[current]


def can_transition_scene(current: SceneStatus, target: SceneStatus) -> bool:
    """Check whether a scene may move from current to target.

    Resetting to idle is allowed from any resting state.
    """
    if target == SceneStatus.IDLE:
        return current in RESETTABLE_STATES
    return target in SCENE_TRANSITIONS[current]
