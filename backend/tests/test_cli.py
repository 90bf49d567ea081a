"""CLI tests with the Typer runner and the in-memory gateway."""

import pytest
from typer.testing import CliRunner

from conftest import FakeGateway, make_png
from storyweaver.cli import commands
from storyweaver.services.credentials import CredentialProvider

runner = CliRunner()


@pytest.fixture
def fake_gateway(monkeypatch):
    gateway = FakeGateway(CredentialProvider(api_key="test-key"))
    monkeypatch.setattr(commands, "GenAIGateway", lambda credentials: gateway)
    monkeypatch.setattr(commands, "CredentialProvider", lambda prompt=None: gateway.credentials)
    return gateway


@pytest.fixture
def reference_files(tmp_path):
    scene = tmp_path / "scene.png"
    face = tmp_path / "face.png"
    scene.write_bytes(make_png("white"))
    face.write_bytes(make_png("black"))
    return scene, face


def test_generate_saves_keyframes(fake_gateway, reference_files, tmp_path):
    scene, face = reference_files
    output = tmp_path / "out"

    result = runner.invoke(commands.app, [
        "generate", str(scene), str(face), "--frames", "4", "--output", str(output),
    ])

    assert result.exit_code == 0, result.output
    keyframes = sorted(output.glob("*/keyframes/*.png"))
    assert [p.name for p in keyframes] == ["frame_00.png", "frame_01.png", "frame_02.png", "frame_03.png"]
    assert fake_gateway.video_calls == []


def test_generate_can_render_videos(fake_gateway, reference_files, tmp_path):
    scene, face = reference_files
    output = tmp_path / "out"

    result = runner.invoke(commands.app, [
        "generate", str(scene), str(face), "--frames", "3", "--output", str(output), "--render-videos",
    ])

    assert result.exit_code == 0, result.output
    assert len(fake_gateway.video_calls) == 2
    assert len(list(output.glob("*/clips/*.mp4"))) == 2


def test_generate_failure_exits_nonzero(fake_gateway, reference_files, tmp_path):
    scene, face = reference_files
    fake_gateway.describe_error = RuntimeError("quota")

    result = runner.invoke(commands.app, [
        "generate", str(scene), str(face), "--output", str(tmp_path / "out"),
    ])

    assert result.exit_code == 1
    assert "Error" in result.output


def test_estimate_prints_duration(fake_gateway):
    fake_gateway.duration_text = "approx. 4.5 seconds"

    result = runner.invoke(commands.app, ["estimate", "Hello and welcome back"])

    assert result.exit_code == 0, result.output
    assert "4.5s" in result.output


def test_estimate_blank_script_makes_no_request(fake_gateway):
    result = runner.invoke(commands.app, ["estimate", "   "])

    assert result.exit_code == 0, result.output
    assert "blank" in result.output
    assert "0ss" not in result.output
    assert fake_gateway.text_calls == []
