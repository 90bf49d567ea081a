"""
File management service for storyweaver.

Materializes keyframes and rendered clips for a storyboard session with path
traversal protection. Nothing here is reloaded on restart; the directories
only make artifacts playable and downloadable.
"""
from pathlib import Path

from storyweaver.config import settings


class FileManager:
    """
    Manage filesystem artifacts for storyboard sessions.

    Creates structured directories:
    - {base_dir}/{session_id}/keyframes/ - Keyframe images
    - {base_dir}/{session_id}/clips/ - Rendered scene video clips
    """

    def __init__(self, base_dir: str | Path | None = None):
        """
        Initialize FileManager with base directory.

        Args:
            base_dir: Root directory for all session artifacts.
                     If None, uses settings.storage.tmp_dir
        """
        if base_dir is None:
            base_dir = settings.storage.tmp_dir

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def get_session_dir(self, session_id: str) -> Path:
        """
        Get or create session directory with subdirectories.

        Raises:
            ValueError: If session_id creates path outside base_dir
        """
        session_dir = (self.base_dir / str(session_id)).resolve()

        if not session_dir.is_relative_to(self.base_dir) or session_dir == self.base_dir:
            raise ValueError("Invalid session path")

        session_dir.mkdir(exist_ok=True)
        (session_dir / "keyframes").mkdir(exist_ok=True)
        (session_dir / "clips").mkdir(exist_ok=True)

        return session_dir

    def save_keyframe(
        self, session_id: str, frame_idx: int, data: bytes, extension: str = "jpg"
    ) -> Path:
        """
        Save a keyframe image.

        Args:
            session_id: Storyboard session identifier
            frame_idx: Position in the frame chain (0 is the scene reference)
            data: Encoded image bytes
            extension: File extension matching the image MIME type

        Returns:
            Path to saved keyframe file
        """
        session_dir = self.get_session_dir(session_id)
        filepath = session_dir / "keyframes" / f"frame_{frame_idx:02d}.{extension}"
        filepath.write_bytes(data)
        return filepath

    def save_clip(self, session_id: str, scene_idx: int, data: bytes) -> Path:
        """
        Save video clip for a scene.

        Clips are written under a new name on every render so a stale
        reference never points at a newer video.

        Args:
            session_id: Storyboard session identifier
            scene_idx: Scene index (0-based)
            data: MP4 video data

        Returns:
            Path to saved clip file
        """
        session_dir = self.get_session_dir(session_id)
        clips_dir = session_dir / "clips"
        prefix = f"scene_{scene_idx:02d}_take"
        takes = [
            int(path.stem[len(prefix):])
            for path in clips_dir.glob(f"{prefix}*.mp4")
            if path.stem[len(prefix):].isdigit()
        ]
        take = max(takes, default=0) + 1
        filepath = clips_dir / f"scene_{scene_idx:02d}_take{take}.mp4"
        filepath.write_bytes(data)
        return filepath
