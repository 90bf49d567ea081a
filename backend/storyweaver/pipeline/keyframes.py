"""Reference-locked keyframe synthesis.

Every keyframe is generated from the same two references (master scene and
face) rather than from the previous keyframe, so the requests are independent
and run concurrently. Each request pins three things:
- background, lighting and camera to the scene reference
- facial identity to the face reference
- body posture to the global pose constraint
"""

import asyncio
import logging
from typing import Optional

from storyweaver.schemas.storyboard import ImageModel, ImagePayload
from storyweaver.services.gateway import GenerationGateway

logger = logging.getLogger(__name__)

ASPECT_RATIO = "9:16"

DEFAULT_POSE = "Match the pose in the reference image exactly. If sitting, stay sitting."

FRAME_PROMPT = """
Task: Generate Frame #{frame_number} of a cinematic sequence.

INPUTS:
- Image 1 (Provided): The MASTER SCENE REFERENCE.
- Image 2 (Provided): The CHARACTER FACE ID.

REFERENCE NOTES:
- Scene: {scene_description}
- Face: {face_description}

STRICT VISUAL CONSTRAINTS:
1. BACKGROUND LOCK: The background, lighting, and camera angle MUST be identical to Image 1.
2. FACE LOCK: The character's face must match Image 2 exactly.
3. ASPECT RATIO: 9:16 (Vertical).

CORE POSE & VIBE (CRITICAL):
{pose}

ACTION INSTRUCTION:
The character is positioned in the scene of Image 1.
Do NOT change the core body posture (e.g. if sitting, remain sitting).
Only create subtle, natural variations in hand gestures, head tilt, or slight upper body shifts typical of a speaker/presenter.
Keep the shot scale (distance) identical to Image 1.

Output: {output_quality} Photorealistic Image.
"""

REGENERATE_PROMPT = """
Task: Regenerate a specific frame in a sequence based on user input.

INPUTS:
- Image 1 (Provided): The MASTER SCENE REFERENCE.
- Image 2 (Provided): The CHARACTER FACE ID.

REFERENCE NOTES:
- Scene: {scene_description}
- Face: {face_description}

GLOBAL POSE CONSTRAINT: {pose}
USER ACTION REQUEST: "{action}"

INSTRUCTIONS:
1. Apply the "USER ACTION REQUEST" to the character.
2. STRICT BACKGROUND LOCK: The environment, lighting, props, and camera angle MUST match Image 1 EXACTLY.
3. STRICT FACE LOCK: The character must look exactly like Image 2.
4. CORE POSTURE: Maintain the "GLOBAL POSE CONSTRAINT" (e.g. if sitting, stay sitting). Do not stand up unless explicitly asked in User Action.
5. Aspect Ratio: 9:16 Vertical.

Output: {output_quality} Photorealistic Image.
"""


def _output_quality(model: ImageModel) -> str:
    return "4K High Definition" if model.image_size else "High Definition"


def build_frame_prompt(
    frame_number: int,
    scene_description: str,
    face_description: str,
    pose_constraint: str,
    model: ImageModel,
) -> str:
    """Instruction text for one synthesized keyframe."""
    return FRAME_PROMPT.format(
        frame_number=frame_number,
        scene_description=scene_description,
        face_description=face_description,
        pose=pose_constraint.strip() or DEFAULT_POSE,
        output_quality=_output_quality(model),
    )


def build_regenerate_prompt(
    action_prompt: str,
    scene_description: str,
    face_description: str,
    pose_constraint: str,
    model: ImageModel,
) -> str:
    """Instruction text for regenerating one keyframe from a user action.

    The global pose constraint is passed through as given, even when empty;
    the prompt itself already tells the model to keep the core posture.
    """
    return REGENERATE_PROMPT.format(
        scene_description=scene_description,
        face_description=face_description,
        pose=pose_constraint.strip(),
        action=action_prompt.strip(),
        output_quality=_output_quality(model),
    )


async def _synthesize_one(
    gateway: GenerationGateway,
    references: list[ImagePayload],
    prompt: str,
    model: ImageModel,
    frame_number: int,
) -> Optional[ImagePayload]:
    """Run a single synthesis request; failures become None."""
    try:
        image = await gateway.generate_image(
            references,
            prompt,
            model.value,
            aspect_ratio=ASPECT_RATIO,
            image_size=model.image_size,
        )
    except Exception as e:
        logger.warning(f"Frame #{frame_number} generation failed: {e}")
        return None

    if image is None:
        logger.warning(f"Frame #{frame_number} returned no image")
    return image


async def synthesize_frames(
    gateway: GenerationGateway,
    scene_image: ImagePayload,
    face_image: ImagePayload,
    scene_description: str,
    face_description: str,
    pose_constraint: str,
    count: int,
    model: ImageModel,
) -> list[ImagePayload]:
    """Generate count keyframes concurrently from the two references.

    Frames are labelled from #2 because the scene reference itself is frame
    #1 of the chain. The label only appears in the prompt; requests do not
    depend on each other.

    Returns:
        The successful frames in request order. A request that raised or
        returned no image is dropped, so the list may be shorter than count.
    """
    references = [scene_image, face_image]
    logger.info(f"Synthesizing {count} keyframes with {model.value}")

    results = await asyncio.gather(*(
        _synthesize_one(
            gateway,
            references,
            build_frame_prompt(i + 2, scene_description, face_description, pose_constraint, model),
            model,
            i + 2,
        )
        for i in range(count)
    ))

    frames = [frame for frame in results if frame is not None]
    logger.info(f"Synthesized {len(frames)}/{count} keyframes")
    return frames


async def regenerate_frame(
    gateway: GenerationGateway,
    scene_image: ImagePayload,
    face_image: ImagePayload,
    action_prompt: str,
    scene_description: str,
    face_description: str,
    model: ImageModel,
    pose_constraint: str = "",
) -> Optional[ImagePayload]:
    """Generate a replacement keyframe showing the requested action.

    Gateway errors propagate to the caller.

    Returns:
        The new frame, or None when the model returned no image.
    """
    prompt = build_regenerate_prompt(
        action_prompt, scene_description, face_description, pose_constraint, model,
    )
    logger.info(f"Regenerating keyframe: {action_prompt[:60]}")
    return await gateway.generate_image(
        [scene_image, face_image],
        prompt,
        model.value,
        aspect_ratio=ASPECT_RATIO,
        image_size=model.image_size,
    )
