"""Reference analysis and speaking-duration estimation.

The face and scene references are described separately so later prompts can
restate identity and photography details in words alongside the images.
"""

import logging
import re

from storyweaver.schemas.storyboard import ImagePayload
from storyweaver.services.gateway import GenerationGateway

logger = logging.getLogger(__name__)

FACE_FALLBACK = "Detailed face reference."
SCENE_FALLBACK = "Cinematic scene description."

# Stored when the duration request itself fails
DURATION_FALLBACK = "8"

FACE_ANALYSIS_PROMPT = """
Analyze this face (3-view reference) for identity consistency.
List: Eye shape/color, Nose structure, Lip shape, Jawline, Hair color/style/texture, Skin tone and texture.
Output a precise "Face ID" description.
"""

SCENE_ANALYSIS_PROMPT = """
Analyze this Scene Image for photographic reproduction.
Describe:
1. Lighting (Direction, Softness/Hardness, Color Temperature).
2. Environment Details (Background objects, textures, depth of field).
3. Camera Lens (Focal length estimation, angle, shot scale).
4. Color Palette.
5. CRITICAL: Analyze the specific pose/position of the character placeholder if visible (e.g. Sitting, Standing, Leaning).

This description will be used to generate a new image that looks IDENTICAL to this one.
"""

DURATION_PROMPT = """
Act as a video director. Read this script: "{script}".
Calculate the natural speaking duration in seconds for a broadcast/storytelling pace.
Return ONLY the number of seconds (e.g. "4.5"). Do not add text.
"""

_NON_NUMERIC = re.compile(r"[^0-9.]")


async def analyze_face(gateway: GenerationGateway, image: ImagePayload, model: str) -> str:
    """Describe the character's facial identity ("Face ID").

    Gateway errors propagate; an empty reply becomes FACE_FALLBACK.
    """
    logger.info("Analyzing face reference")
    text = await gateway.describe_image(image, FACE_ANALYSIS_PROMPT, model)
    if not text or not text.strip():
        logger.warning("Face analysis returned no text, using fallback description")
        return FACE_FALLBACK
    return text.strip()


async def analyze_scene(gateway: GenerationGateway, image: ImagePayload, model: str) -> str:
    """Describe lighting, environment, lens, palette and pose of the scene.

    Gateway errors propagate; an empty reply becomes SCENE_FALLBACK.
    """
    logger.info("Analyzing scene reference")
    text = await gateway.describe_image(image, SCENE_ANALYSIS_PROMPT, model)
    if not text or not text.strip():
        logger.warning("Scene analysis returned no text, using fallback description")
        return SCENE_FALLBACK
    return text.strip()


def build_scene_context(scene_description: str, face_description: str) -> str:
    """Combine both analyses into the atmosphere text used for video prompts."""
    return f"Scene: {scene_description}. Face: {face_description}"


def parse_duration(text: str) -> str:
    """Keep only digits and decimal points ("approx. 4.5 seconds" -> "4.5").

    Dots left dangling at either end by stripped words are dropped too.
    """
    return _NON_NUMERIC.sub("", text).strip(".")


async def estimate_speaking_duration(
    gateway: GenerationGateway,
    script: str,
    model: str,
) -> str:
    """Estimate how long the script takes to say, in seconds, as a string.

    Duration is advisory: a failed request degrades to DURATION_FALLBACK
    instead of interrupting the director's editing.

    Returns:
        "0s" for an empty script (no request is made), otherwise the
        numeric characters of the model's reply.
    """
    if not script or not script.strip():
        return "0s"

    try:
        text = await gateway.generate_text(DURATION_PROMPT.format(script=script), model)
    except Exception as e:
        logger.warning(f"Duration analysis failed, using {DURATION_FALLBACK}s: {e}")
        return DURATION_FALLBACK

    return parse_duration(text or "")
