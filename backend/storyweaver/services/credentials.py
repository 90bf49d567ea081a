"""API credential selection.

A credential is either a Gemini API key (from settings, GEMINI_API_KEY or
GOOGLE_API_KEY) or, in Vertex AI mode, a configured project whose
Application Default Credentials the SDK resolves itself. When neither is
available the provider can ask interactively; there is no other fallback.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from dotenv import load_dotenv

from storyweaver.config import settings

# Load .env so GEMINI_API_KEY / GOOGLE_API_KEY are visible
load_dotenv(Path.cwd() / ".env")

logger = logging.getLogger(__name__)

_ENV_KEYS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


class CredentialError(RuntimeError):
    """Raised when no credential is configured and none could be obtained."""


def rich_key_prompt() -> str:
    """Ask for an API key on the terminal without echoing it."""
    from rich.console import Console

    return Console().input("[bold]Gemini API key:[/bold] ", password=True)


class CredentialProvider:
    """Holds the credential used for every gateway call.

    Args:
        api_key: Explicit key. Defaults to settings, then environment.
        prompt: Interactive prompt returning a key. None means the host
            environment cannot ask (e.g. the API server).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        prompt: Optional[Callable[[], str]] = None,
    ) -> None:
        self._api_key = api_key or settings.google.api_key or _key_from_env()
        self._prompt = prompt

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def use_vertex_ai(self) -> bool:
        return settings.google.use_vertex_ai

    def has_credential(self) -> bool:
        if self.use_vertex_ai:
            return bool(settings.google.project_id)
        return bool(self._api_key)

    async def request_credential(self) -> None:
        """Interactively obtain a key.

        Raises:
            CredentialError: If no prompt is available or nothing was entered.
        """
        if self._prompt is None:
            raise CredentialError(
                "No API key configured. Set GEMINI_API_KEY or STORYWEAVER_GOOGLE__API_KEY."
            )
        key = (await asyncio.to_thread(self._prompt)).strip()
        if not key:
            raise CredentialError("No API key entered")
        self._api_key = key
        logger.info("API key selected interactively")

    async def ensure(self) -> None:
        """Request a credential only when none is available."""
        if not self.has_credential():
            await self.request_credential()


def _key_from_env() -> str:
    for name in _ENV_KEYS:
        value = os.environ.get(name)
        if value:
            return value
    return ""
