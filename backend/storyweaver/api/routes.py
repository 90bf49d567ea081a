"""API route handlers and Pydantic response schemas."""

import logging
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response
from pydantic import BaseModel

from storyweaver.config import settings
from storyweaver.orchestrator import (
    FrameRegenerationError,
    SceneBusyError,
    SceneNotFoundError,
    StoryboardGenerationError,
    StoryboardSession,
)
from storyweaver.schemas.storyboard import (
    GenerationConfig,
    ImageModel,
    ImagePayload,
    PipelineStep,
    Resolution,
    SceneState,
    SceneStatus,
)
from storyweaver.services.credentials import CredentialError, CredentialProvider
from storyweaver.services.file_manager import FileManager
from storyweaver.services.gateway import GenAIGateway, GenerationGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# In-memory only; sessions do not survive a restart
_sessions: dict[str, StoryboardSession] = {}

_credentials: Optional[CredentialProvider] = None
_gateway: Optional[GenerationGateway] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_credentials() -> CredentialProvider:
    global _credentials
    if _credentials is None:
        _credentials = CredentialProvider()
    return _credentials


def get_gateway(credentials: CredentialProvider = Depends(get_credentials)) -> GenerationGateway:
    global _gateway
    if _gateway is None:
        _gateway = GenAIGateway(credentials)
    return _gateway


def get_file_manager() -> FileManager:
    return FileManager()


def _require_credential(credentials: CredentialProvider) -> None:
    if not credentials.has_credential():
        raise HTTPException(
            status_code=401,
            detail="No API key configured. Set GEMINI_API_KEY or STORYWEAVER_GOOGLE__API_KEY.",
        )


def _get_session(session_id: str) -> StoryboardSession:
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


def _get_scene(session: StoryboardSession, scene_id: str) -> SceneState:
    try:
        return session.get_scene(scene_id)
    except SceneNotFoundError:
        raise HTTPException(status_code=404, detail=f"Scene {scene_id} not found")


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------
class SceneResponse(BaseModel):
    """Scene state without image bytes; images are served separately."""

    id: str
    index: int
    script: str
    movement_description: str
    expression_description: str
    recommended_duration: Optional[str]
    target_resolution: Resolution
    end_frame_action_prompt: str
    is_regenerating_image: bool
    is_processing: bool
    status: SceneStatus
    error_message: Optional[str]
    start_image_url: str
    end_image_url: str
    video_url: Optional[str]

    @classmethod
    def from_scene(cls, session_id: str, scene: SceneState) -> "SceneResponse":
        base = f"/api/sessions/{session_id}/scenes/{scene.id}"
        return cls(
            id=scene.id,
            index=scene.index,
            script=scene.script,
            movement_description=scene.movement_description,
            expression_description=scene.expression_description,
            recommended_duration=scene.recommended_duration,
            target_resolution=scene.target_resolution,
            end_frame_action_prompt=scene.end_frame_action_prompt,
            is_regenerating_image=scene.is_regenerating_image,
            is_processing=scene.is_processing,
            status=scene.status,
            error_message=scene.error_message,
            start_image_url=f"{base}/frames/start",
            end_image_url=f"{base}/frames/end",
            video_url=f"{base}/video" if scene.generated_video_url else None,
        )


class SessionResponse(BaseModel):
    id: str
    step: PipelineStep
    frame_count: int
    model: ImageModel
    pose_description: str
    error: Optional[str]
    scenes: list[SceneResponse]

    @classmethod
    def from_session(cls, session: StoryboardSession) -> "SessionResponse":
        return cls(
            id=session.id,
            step=session.step,
            frame_count=session.config.frame_count,
            model=session.config.model,
            pose_description=session.config.pose_description,
            error=session.last_error,
            scenes=[SceneResponse.from_scene(session.id, s) for s in session.scenes],
        )


class SceneUpdateRequest(BaseModel):
    """Director control edits; omitted fields are left unchanged."""

    script: Optional[str] = None
    movement_description: Optional[str] = None
    expression_description: Optional[str] = None
    end_frame_action_prompt: Optional[str] = None
    target_resolution: Optional[Resolution] = None


# ---------------------------------------------------------------------------
# Background tasks
# ---------------------------------------------------------------------------
async def _run_generation(session: StoryboardSession) -> None:
    try:
        await session.generate_storyboard()
    except (StoryboardGenerationError, CredentialError) as e:
        # The session already returned to upload; clients read the error from GET
        session.last_error = session.last_error or str(e)
        logger.error(f"Session {session.id}: {e}")


async def _run_video(session: StoryboardSession, scene_id: str) -> None:
    try:
        await session.generate_video(scene_id)
    except (SceneBusyError, CredentialError) as e:
        logger.error(f"Session {session.id}, scene {scene_id}: {e}")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/sessions", response_model=SessionResponse, status_code=202)
async def create_session(
    background_tasks: BackgroundTasks,
    scene_image: UploadFile = File(..., description="Master scene reference (9:16)"),
    face_image: UploadFile = File(..., description="Character face reference"),
    frame_count: int = Form(settings.pipeline.frame_count),
    model: ImageModel = Form(ImageModel(settings.models.image_gen)),
    pose_description: str = Form(""),
    credentials: CredentialProvider = Depends(get_credentials),
    gateway: GenerationGateway = Depends(get_gateway),
    file_manager: FileManager = Depends(get_file_manager),
):
    """Upload both references and start keyframe generation in the background."""
    _require_credential(credentials)
    if frame_count < 2:
        raise HTTPException(status_code=422, detail="frame_count must be at least 2")

    scene_bytes = await scene_image.read()
    face_bytes = await face_image.read()
    if not scene_bytes or not face_bytes:
        raise HTTPException(status_code=422, detail="Both reference images are required")

    config = GenerationConfig(
        scene_image=ImagePayload.from_bytes(scene_bytes),
        face_image=ImagePayload.from_bytes(face_bytes),
        frame_count=frame_count,
        model=model,
        pose_description=pose_description,
    )
    session = StoryboardSession(
        config, gateway, credentials=credentials, file_manager=file_manager,
    )
    _sessions[session.id] = session
    logger.info(f"Created session {session.id} ({frame_count} frames, {model.value})")

    background_tasks.add_task(_run_generation, session)
    return SessionResponse.from_session(session)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return SessionResponse.from_session(_get_session(session_id))


@router.get("/sessions/{session_id}/scenes/{scene_id}/frames/{position}")
async def get_keyframe(session_id: str, scene_id: str, position: Literal["start", "end"]):
    """Serve a scene's start or end keyframe image."""
    scene = _get_scene(_get_session(session_id), scene_id)
    image = scene.start_image if position == "start" else scene.end_image
    return Response(content=image.data, media_type=image.mime_type)


@router.patch("/sessions/{session_id}/scenes/{scene_id}", response_model=SceneResponse)
async def update_scene(session_id: str, scene_id: str, request: SceneUpdateRequest):
    """Edit director controls of one scene."""
    session = _get_session(session_id)
    _get_scene(session, scene_id)

    if request.script is not None:
        session.update_script(scene_id, request.script)
    if request.movement_description is not None:
        session.update_movement(scene_id, request.movement_description)
    if request.expression_description is not None:
        session.update_expression(scene_id, request.expression_description)
    if request.end_frame_action_prompt is not None:
        session.update_action_prompt(scene_id, request.end_frame_action_prompt)
    if request.target_resolution is not None:
        session.update_resolution(scene_id, request.target_resolution)

    return SceneResponse.from_scene(session_id, session.get_scene(scene_id))


@router.post("/sessions/{session_id}/scenes/{scene_id}/duration", response_model=SceneResponse)
async def analyze_duration(session_id: str, scene_id: str):
    """Estimate the spoken duration of the scene's script."""
    session = _get_session(session_id)
    _get_scene(session, scene_id)
    try:
        scene = await session.analyze_duration(scene_id)
    except SceneBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return SceneResponse.from_scene(session_id, scene)


@router.post("/sessions/{session_id}/scenes/{scene_id}/regenerate", response_model=SessionResponse)
async def regenerate_end_frame(session_id: str, scene_id: str):
    """Regenerate the scene's end keyframe; returns the whole session since
    the next scene's start frame changes too."""
    session = _get_session(session_id)
    _get_scene(session, scene_id)
    try:
        await session.regenerate_end_frame(scene_id)
    except SceneBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FrameRegenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return SessionResponse.from_session(session)


@router.post("/sessions/{session_id}/scenes/{scene_id}/video", response_model=SceneResponse, status_code=202)
async def generate_video(
    session_id: str,
    scene_id: str,
    background_tasks: BackgroundTasks,
    credentials: CredentialProvider = Depends(get_credentials),
):
    """Start rendering the scene's video in the background."""
    session = _get_session(session_id)
    scene = _get_scene(session, scene_id)
    _require_credential(credentials)
    if session.is_busy(scene_id) or scene.status == SceneStatus.GENERATING_VIDEO:
        raise HTTPException(status_code=409, detail=f"Scene {scene_id} is busy")

    background_tasks.add_task(_run_video, session, scene_id)
    return SceneResponse.from_scene(session_id, scene)


@router.post("/sessions/{session_id}/scenes/{scene_id}/video/cancel")
async def cancel_video(session_id: str, scene_id: str):
    session = _get_session(session_id)
    _get_scene(session, scene_id)
    return {"cancelled": session.cancel_video(scene_id)}


@router.get("/sessions/{session_id}/scenes/{scene_id}/video")
async def download_video(session_id: str, scene_id: str):
    """Serve the rendered clip of a completed scene."""
    scene = _get_scene(_get_session(session_id), scene_id)
    if not scene.generated_video_url or not Path(scene.generated_video_url).exists():
        raise HTTPException(status_code=404, detail="Video not available")
    return FileResponse(
        scene.generated_video_url,
        media_type="video/mp4",
        filename=f"scene_{scene.index + 1}.mp4",
    )
