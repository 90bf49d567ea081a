"""CLI commands for storyweaver using Typer and Rich.

Implements 3 CLI commands:
- generate: Build a storyboard from two reference images, optionally render videos
- estimate: Estimate the spoken duration of a line of dialogue
- serve: Run the HTTP API
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from storyweaver import __version__
from storyweaver.config import settings
from storyweaver.orchestrator import StoryboardGenerationError, StoryboardSession
from storyweaver.pipeline.analysis import estimate_speaking_duration
from storyweaver.schemas.storyboard import GenerationConfig, ImageModel, ImagePayload, Resolution, SceneStatus
from storyweaver.services.credentials import CredentialError, CredentialProvider, rich_key_prompt
from storyweaver.services.file_manager import FileManager
from storyweaver.services.gateway import GenAIGateway

app = typer.Typer(name="storyweaver", help="Keyframe-chained vertical storyboard generation")
console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    if value:
        console.print(f"storyweaver version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="Show version and exit",
    ),
) -> None:
    """Storyweaver - identity-locked keyframes and Veo scene videos."""
    setup_logging(verbose)


@app.command()
def generate(
    scene_image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Master scene reference (9:16)"),
    face_image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Character face reference"),
    frames: int = typer.Option(settings.pipeline.frame_count, "--frames", "-n", min=2, help="Total keyframes including the scene reference"),
    model: ImageModel = typer.Option(ImageModel(settings.models.image_gen), "--model", "-m", help="Keyframe image model"),
    pose: str = typer.Option("", "--pose", "-p", help="Global pose constraint, e.g. 'Sitting at desk, hands folded'"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Artifact directory (default: storage.tmp_dir)"),
    render_videos: bool = typer.Option(False, "--render-videos", help="Render every scene video after the storyboard"),
    resolution: Resolution = typer.Option(Resolution.HD_1080P, "--resolution", "-r", help="Target resolution for rendered videos"),
):
    """Generate a storyboard from a scene photo and a face reference.

    Keyframes are saved under the artifact directory. With --render-videos
    each scene is rendered in order; a failed scene does not stop the rest.
    """
    config = GenerationConfig(
        scene_image=ImagePayload.from_bytes(scene_image.read_bytes()),
        face_image=ImagePayload.from_bytes(face_image.read_bytes()),
        frame_count=frames,
        model=model,
        pose_description=pose,
    )
    file_manager = FileManager(output)

    try:
        asyncio.run(_generate_async(config, file_manager, render_videos, resolution))
    except CredentialError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except StoryboardGenerationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


async def _generate_async(
    config: GenerationConfig,
    file_manager: FileManager,
    render_videos: bool,
    resolution: Resolution,
) -> None:
    """Async implementation of generate command."""
    credentials = CredentialProvider(prompt=rich_key_prompt)
    gateway = GenAIGateway(credentials)

    with console.status("[bold green]Starting storyboard...") as status:
        session = StoryboardSession(
            config,
            gateway,
            credentials=credentials,
            file_manager=file_manager,
            progress_callback=lambda msg: status.update(f"[bold green]{msg}"),
        )
        scenes = await session.generate_storyboard()

    frame_paths = [
        file_manager.save_keyframe(session.id, 0, scenes[0].start_image.data, scenes[0].start_image.extension)
    ]
    for scene in scenes:
        frame_paths.append(file_manager.save_keyframe(
            session.id, scene.index + 1, scene.end_image.data, scene.end_image.extension,
        ))

    console.print(Panel(
        f"[bold]Session:[/bold] {session.id}\n"
        f"[bold]Scenes:[/bold] {len(scenes)} (requested {config.frame_count - 1})\n"
        f"[bold]Keyframes:[/bold] {frame_paths[0].parent}",
        title="Storyboard ready",
    ))

    if render_videos:
        for scene in scenes:
            session.update_resolution(scene.id, resolution)
            with console.status(f"[bold green]Rendering scene {scene.index + 1}/{len(scenes)}..."):
                await session.generate_video(scene.id)

    _print_scenes(session)


def _print_scenes(session: StoryboardSession) -> None:
    table = Table(title="Scenes")
    table.add_column("Scene", justify="right")
    table.add_column("Status")
    table.add_column("Resolution")
    table.add_column("Video")

    status_style = {
        SceneStatus.COMPLETE: "green",
        SceneStatus.ERROR: "red",
        SceneStatus.GENERATING_VIDEO: "yellow",
    }
    for scene in session.scenes:
        style = status_style.get(scene.status, "white")
        table.add_row(
            str(scene.index + 1),
            f"[{style}]{scene.status.value}[/{style}]",
            scene.target_resolution.value,
            scene.generated_video_url or scene.error_message or "-",
        )
    console.print(table)


@app.command()
def estimate(
    script: str = typer.Argument(..., help="Dialogue to time"),
):
    """Estimate the natural spoken duration of a line of dialogue."""
    if not script.strip():
        console.print("[yellow]Nothing to estimate:[/yellow] the script is blank")
        raise typer.Exit()

    gateway = GenAIGateway(CredentialProvider(prompt=rich_key_prompt))

    async def _estimate() -> str:
        await gateway.credentials.ensure()
        return await estimate_speaking_duration(gateway, script, settings.models.duration)

    try:
        duration = asyncio.run(_estimate())
    except CredentialError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]Estimated duration:[/green] {duration}s")


@app.command()
def serve(
    host: str = typer.Option(settings.server.host, "--host", help="Bind address"),
    port: int = typer.Option(settings.server.port, "--port", help="Bind port"),
):
    """Run the Storyweaver HTTP API."""
    import uvicorn

    uvicorn.run("storyweaver.api.app:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    app()
