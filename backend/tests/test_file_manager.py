"""Tests for session artifact storage."""

import pytest

from storyweaver.services.file_manager import FileManager


def test_session_dir_has_keyframes_and_clips(tmp_path):
    manager = FileManager(tmp_path)

    session_dir = manager.get_session_dir("abc123")

    assert (session_dir / "keyframes").is_dir()
    assert (session_dir / "clips").is_dir()


@pytest.mark.parametrize("session_id", ["../escape", ".", "a/../.."])
def test_session_dir_rejects_traversal(tmp_path, session_id):
    with pytest.raises(ValueError):
        FileManager(tmp_path / "base").get_session_dir(session_id)


def test_save_keyframe_names_by_chain_position(tmp_path):
    path = FileManager(tmp_path).save_keyframe("s1", 3, b"png", "png")

    assert path.name == "frame_03.png"
    assert path.read_bytes() == b"png"


def test_each_clip_render_gets_a_new_take(tmp_path):
    manager = FileManager(tmp_path)

    first = manager.save_clip("s1", 0, b"one")
    second = manager.save_clip("s1", 0, b"two")
    other_scene = manager.save_clip("s1", 1, b"other")

    assert first.name == "scene_00_take1.mp4"
    assert second.name == "scene_00_take2.mp4"
    assert other_scene.name == "scene_01_take1.mp4"


def test_deleted_take_does_not_cause_overwrite(tmp_path):
    manager = FileManager(tmp_path)
    first = manager.save_clip("s1", 0, b"one")
    manager.save_clip("s1", 0, b"two")
    third = manager.save_clip("s1", 0, b"three")
    first.unlink()

    newest = manager.save_clip("s1", 0, b"four")

    assert newest.name == "scene_00_take4.mp4"
    assert third.read_bytes() == b"three"
    assert newest.read_bytes() == b"four"
