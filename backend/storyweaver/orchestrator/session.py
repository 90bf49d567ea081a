"""Storyboard session: the stateful core driving every stage.

A session owns the pipeline step, the explicit orchestration context and the
ordered scene list. Scenes are never reordered or deleted; each change swaps
one scene for an updated copy, looked up by id after every await so edits
made while a request is in flight are kept.

Long-running operations (duration analysis, frame regeneration, video
generation) hold a lease on the scenes they touch. A second operation on a
leased scene fails fast with SceneBusyError instead of racing the first.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from storyweaver.config import settings
from storyweaver.orchestrator.context import OrchestrationContext
from storyweaver.orchestrator.state import can_advance_step, can_transition_scene
from storyweaver.pipeline.analysis import analyze_face, analyze_scene, estimate_speaking_duration
from storyweaver.pipeline.chain import build_scene_chain, validate_chain
from storyweaver.pipeline.keyframes import regenerate_frame, synthesize_frames
from storyweaver.pipeline.video_gen import DirectorControls, generate_segment
from storyweaver.schemas.storyboard import (
    GenerationConfig,
    ImagePayload,
    PipelineStep,
    Resolution,
    SceneState,
    SceneStatus,
)
from storyweaver.services.credentials import CredentialProvider
from storyweaver.services.file_manager import FileManager
from storyweaver.services.gateway import GenerationGateway

logger = logging.getLogger(__name__)

GENERATION_ERROR_MESSAGE = "An error occurred during generation. Please try again."
REGENERATION_ERROR_MESSAGE = "Failed to regenerate image. Try again."
VIDEO_ERROR_MESSAGE = "Veo generation failed. Ensure billing is enabled."


class StoryboardGenerationError(RuntimeError):
    """Raised when analysis or keyframe generation fails as a whole."""


class FrameRegenerationError(RuntimeError):
    """Raised when a single keyframe could not be regenerated."""


class InvalidTransitionError(RuntimeError):
    """Raised on a step or status change the state machine forbids."""


class SceneBusyError(RuntimeError):
    """Raised when a scene is already leased by another operation."""


class SceneNotFoundError(KeyError):
    """Raised when no scene has the requested id."""


class StoryboardSession:
    """One storyboard from upload to rendered scene videos.

    Args:
        config: User inputs, fixed for the life of the session.
        gateway: Generation gateway for every outbound request.
        credentials: Credential provider checked before video generation.
            Defaults to the gateway's provider when it exposes one.
        file_manager: Where rendered clips are written.
        session_id: Identifier, generated when omitted.
        progress_callback: Called with human-readable progress messages.
    """

    def __init__(
        self,
        config: GenerationConfig,
        gateway: GenerationGateway,
        *,
        credentials: Optional[CredentialProvider] = None,
        file_manager: Optional[FileManager] = None,
        session_id: Optional[str] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.config = config
        self.context = OrchestrationContext(config)
        self.step = PipelineStep.UPLOAD
        self.scenes: list[SceneState] = []
        self.last_error: Optional[str] = None

        self._gateway = gateway
        self._credentials = credentials or getattr(gateway, "credentials", None) or CredentialProvider()
        self._file_manager = file_manager
        self._progress_callback = progress_callback
        self._leases: dict[str, asyncio.Lock] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}

    @property
    def file_manager(self) -> FileManager:
        if self._file_manager is None:
            self._file_manager = FileManager()
        return self._file_manager

    # ------------------------------------------------------------------
    # Scene lookup and copy-on-write updates
    # ------------------------------------------------------------------
    def _index_of(self, scene_id: str) -> int:
        for i, scene in enumerate(self.scenes):
            if scene.id == scene_id:
                return i
        raise SceneNotFoundError(scene_id)

    def get_scene(self, scene_id: str) -> SceneState:
        return self.scenes[self._index_of(scene_id)]

    def _replace(self, scene_id: str, **updates) -> SceneState:
        idx = self._index_of(scene_id)
        self.scenes[idx] = self.scenes[idx].model_copy(update=updates)
        return self.scenes[idx]

    def _transition(self, scene_id: str, status: SceneStatus, **updates) -> SceneState:
        current = self.get_scene(scene_id).status
        if not can_transition_scene(current, status):
            raise InvalidTransitionError(
                f"Scene {scene_id}: cannot move from {current.value} to {status.value}"
            )
        return self._replace(scene_id, status=status, **updates)

    def _swap_image(self, scene_id: str, **images: ImagePayload) -> SceneState:
        """Replace a keyframe, invalidating the scene's rendered video."""
        return self._transition(
            scene_id,
            SceneStatus.IDLE,
            generated_video_url=None,
            error_message=None,
            **images,
        )

    def is_busy(self, scene_id: str) -> bool:
        lock = self._leases.get(scene_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def _lease(self, *scene_ids: str):
        """Hold every given scene for the duration of one operation.

        Raises:
            SceneBusyError: If any of the scenes is already held.
        """
        locks = [self._leases.setdefault(sid, asyncio.Lock()) for sid in scene_ids]
        busy = [sid for sid, lock in zip(scene_ids, locks) if lock.locked()]
        if busy:
            raise SceneBusyError(f"Scene {busy[0]} is busy with another operation")

        # Unlocked locks are acquired without suspending, so no one can
        # interleave between the check above and the acquisition below.
        for lock in locks:
            await lock.acquire()
        try:
            yield
        finally:
            for lock in locks:
                lock.release()

    def _report(self, message: str) -> None:
        logger.info(message)
        if self._progress_callback:
            self._progress_callback(message)

    # ------------------------------------------------------------------
    # Storyboard generation
    # ------------------------------------------------------------------
    async def generate_storyboard(self) -> list[SceneState]:
        """Analyze the references, synthesize keyframes and build the scenes.

        The scene reference is frame zero, so frame_count - 1 frames are
        requested. Any failure sends the session back to upload and drops
        the cached analysis.

        Raises:
            InvalidTransitionError: If the session is not at upload.
            StoryboardGenerationError: If any stage fails or fewer than two
                frames are available.
        """
        if not can_advance_step(self.step, PipelineStep.GENERATING_FRAMES):
            raise InvalidTransitionError(f"Cannot generate from step {self.step.value}")

        await self._credentials.ensure()

        self.step = PipelineStep.GENERATING_FRAMES
        self.last_error = None

        try:
            self._report("Analyzing face topology...")
            self.context.face_description = await analyze_face(
                self._gateway, self.config.face_image, settings.models.analysis,
            )

            self._report("Analyzing scene lighting & lens...")
            self.context.scene_description = await analyze_scene(
                self._gateway, self.config.scene_image, settings.models.analysis,
            )

            self._report(f"Generating keyframes using {self.config.model.value}...")
            frames = await synthesize_frames(
                self._gateway,
                self.config.scene_image,
                self.config.face_image,
                self.context.scene_description,
                self.context.face_description,
                self.context.pose_constraint,
                self.config.frame_count - 1,
                self.config.model,
            )

            scenes = build_scene_chain([self.config.scene_image, *frames])
            validate_chain(scenes)

        except Exception as e:
            logger.error(f"Session {self.id}: storyboard generation failed: {e}")
            self.step = PipelineStep.UPLOAD
            self.context.clear()
            self.last_error = GENERATION_ERROR_MESSAGE
            raise StoryboardGenerationError(GENERATION_ERROR_MESSAGE) from e

        self.scenes = scenes
        self.step = PipelineStep.SEQUENCING
        self._report(f"Storyboard ready: {len(scenes)} scenes")
        return list(self.scenes)

    # ------------------------------------------------------------------
    # Director controls
    # ------------------------------------------------------------------
    def update_script(self, scene_id: str, text: str) -> SceneState:
        """Set the dialogue; any previous duration estimate no longer applies."""
        return self._replace(scene_id, script=text, recommended_duration=None)

    def update_movement(self, scene_id: str, text: str) -> SceneState:
        return self._replace(scene_id, movement_description=text)

    def update_expression(self, scene_id: str, text: str) -> SceneState:
        return self._replace(scene_id, expression_description=text)

    def update_action_prompt(self, scene_id: str, text: str) -> SceneState:
        return self._replace(scene_id, end_frame_action_prompt=text)

    def update_resolution(self, scene_id: str, resolution: Resolution | str) -> SceneState:
        return self._replace(scene_id, target_resolution=Resolution(resolution))

    # ------------------------------------------------------------------
    # Per-scene operations
    # ------------------------------------------------------------------
    async def analyze_duration(self, scene_id: str) -> SceneState:
        """Estimate the spoken duration of the scene's script.

        A blank script is a no-op. Failures never surface: the estimate
        falls back to a default and the processing flag is always cleared.
        An estimate for a script edited while the request was in flight is
        discarded. Status is not touched.
        """
        scene = self.get_scene(scene_id)
        if not scene.script.strip():
            return scene

        async with self._lease(scene_id):
            self._replace(scene_id, is_processing=True)
            try:
                duration = await estimate_speaking_duration(
                    self._gateway, scene.script, settings.models.duration,
                )
            except Exception as e:
                logger.warning(f"Scene {scene.index}: duration analysis failed: {e}")
                return self._replace(scene_id, is_processing=False)

            # The estimate only applies to the script it was computed for
            if self.get_scene(scene_id).script != scene.script:
                logger.debug(f"Scene {scene.index}: script changed during analysis, estimate dropped")
                return self._replace(scene_id, is_processing=False)
            return self._replace(scene_id, recommended_duration=duration, is_processing=False)

    async def regenerate_end_frame(self, scene_id: str) -> Optional[ImagePayload]:
        """Regenerate the scene's end keyframe from its action prompt.

        The new frame is also the next scene's start frame, so both scenes
        get the image, lose their rendered videos and return to idle.

        Returns:
            The new frame, or None when the action prompt is blank.

        Raises:
            SceneBusyError: If this scene or the next one is leased.
            FrameRegenerationError: If the request fails or yields no image;
                both scenes are left unchanged.
        """
        idx = self._index_of(scene_id)
        scene = self.scenes[idx]
        action = scene.end_frame_action_prompt
        if not action.strip():
            return None

        next_id = self.scenes[idx + 1].id if idx + 1 < len(self.scenes) else None
        leased = [scene_id] + ([next_id] if next_id else [])

        async with self._lease(*leased):
            self._replace(scene_id, is_regenerating_image=True)
            try:
                new_image = await regenerate_frame(
                    self._gateway,
                    self.config.scene_image,
                    self.config.face_image,
                    action,
                    self.context.scene_description,
                    self.context.face_description,
                    self.config.model,
                    self.context.pose_constraint,
                )
                if new_image is None:
                    raise FrameRegenerationError("Regeneration returned no image")
            except Exception as e:
                logger.error(f"Scene {scene.index}: end frame regeneration failed: {e}")
                self._replace(scene_id, is_regenerating_image=False)
                raise FrameRegenerationError(REGENERATION_ERROR_MESSAGE) from e

            self._replace(scene_id, is_regenerating_image=False)
            self._swap_image(scene_id, end_image=new_image)
            if next_id:
                self._swap_image(next_id, start_image=new_image)
            validate_chain(self.scenes)

        logger.info(f"Scene {scene.index}: end frame regenerated")
        return new_image

    async def generate_video(
        self,
        scene_id: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SceneState:
        """Render the scene's video from its keyframes and director controls.

        A missing credential is requested first (raising CredentialError,
        with the scene untouched, if none can be obtained). Every later
        failure, including timeout and cancellation, ends in the error
        status with a fixed message.

        Raises:
            SceneBusyError: If the scene is leased by another operation.
        """
        self.get_scene(scene_id)
        await self._credentials.ensure()

        async with self._lease(scene_id):
            cancel = cancel_event or asyncio.Event()
            self._cancel_events[scene_id] = cancel
            scene = self._transition(
                scene_id,
                SceneStatus.GENERATING_VIDEO,
                error_message=None,
                generated_video_url=None,
            )
            controls = DirectorControls(
                movement=scene.movement_description,
                expression=scene.expression_description,
                script=scene.script,
                context=self.context.scene_context,
            )

            try:
                video_bytes = await generate_segment(
                    self._gateway,
                    scene.start_image,
                    scene.end_image,
                    controls,
                    scene.target_resolution,
                    cancel_event=cancel,
                )
                path = self.file_manager.save_clip(self.id, scene.index, video_bytes)
            except asyncio.CancelledError:
                self._transition(scene_id, SceneStatus.ERROR, error_message=VIDEO_ERROR_MESSAGE)
                raise
            except Exception as e:
                logger.error(f"Scene {scene.index}: video generation failed: {e}")
                return self._transition(scene_id, SceneStatus.ERROR, error_message=VIDEO_ERROR_MESSAGE)
            finally:
                self._cancel_events.pop(scene_id, None)

            logger.info(f"Scene {scene.index}: video saved to {path}")
            return self._transition(scene_id, SceneStatus.COMPLETE, generated_video_url=str(path))

    def cancel_video(self, scene_id: str) -> bool:
        """Ask an in-flight video generation to stop polling.

        Returns:
            True if a generation was running for the scene.
        """
        self.get_scene(scene_id)
        event = self._cancel_events.get(scene_id)
        if event is None:
            return False
        event.set()
        return True
