"""google-genai client factory.

Clients are cached per credential so a key selected mid-session gets a fresh
client while repeated calls with the same key stay cheap.

Usage:
    from storyweaver.services.genai_client import get_genai_client

    client = get_genai_client(api_key="...")      # Gemini API
    client = get_genai_client(vertexai=True)      # Vertex AI via ADC
"""

from google import genai

from storyweaver.config import settings

# Per-credential client cache
_clients: dict[tuple, genai.Client] = {}

# Models that must use the global endpoint on Vertex AI
GLOBAL_REGION_MODELS = {
    "gemini-3-pro-image-preview",
}


def location_for_model(model_id: str) -> str:
    """Return the Vertex AI location needed for a given model ID."""
    if model_id in GLOBAL_REGION_MODELS:
        return "global"
    return settings.google.location


def get_genai_client(
    api_key: str | None = None,
    vertexai: bool = False,
    location: str | None = None,
) -> genai.Client:
    """Get or create a client for the Gemini API or Vertex AI.

    Args:
        api_key: Gemini API key (ignored in Vertex AI mode).
        vertexai: Use Vertex AI with Application Default Credentials.
        location: Vertex AI region. Defaults to settings.google.location.

    Returns:
        genai.Client: Configured client instance
    """
    if vertexai:
        loc = location or settings.google.location
        cache_key = ("vertex", settings.google.project_id, loc)
        if cache_key not in _clients:
            _clients[cache_key] = genai.Client(
                vertexai=True,
                project=settings.google.project_id,
                location=loc,
            )
        return _clients[cache_key]

    cache_key = ("api_key", api_key)
    if cache_key not in _clients:
        _clients[cache_key] = genai.Client(api_key=api_key)
    return _clients[cache_key]
