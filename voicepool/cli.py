"""Command line interface for the Voicepool application."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import contextmanager
from dataclasses import asdict, replace
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

import httpx
import typer

from . import __version__
from . import config as config_mod
from .config import ConfigError
from .llm import LanguageModelError
from .models import Artifact, Config, Notice, PLATFORM_NAMES, UserPrincipal
from .pipeline import CapturePipeline
from .recorder import CaptureSettings, SoundDeviceMicrophone, encode_data_uri
from .remote import RemoteBlobStore, RemoteStorage, build_client, describe_http_error
from .storage import ArtifactStore, BlobStore, LocalBlobStore, Storage, StorageError
from .summarizer import Summarizer
from .transcriber import get_backend

app = typer.Typer(add_completion=False, help="Push-to-talk sessions, transcripts and summaries.")

_AUDIO_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
}


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _load_config() -> Config:
    try:
        return config_mod.load_config()
    except ConfigError as exc:
        raise _fail(str(exc)) from exc


def _current_user(cfg: Config) -> UserPrincipal:
    try:
        return config_mod.current_user(cfg)
    except ConfigError as exc:
        raise _fail(str(exc)) from exc


@contextmanager
def _open_storage(cfg: Config, offline: bool = False) -> Iterator[Tuple[ArtifactStore, BlobStore]]:
    if offline or not cfg.server_url:
        yield Storage(), LocalBlobStore()
        return

    with build_client(cfg) as client:
        yield RemoteStorage(client), RemoteBlobStore(client)


def _show_notice(notice: Notice) -> None:
    colour = typer.colors.RED if notice.destructive else typer.colors.BLUE
    typer.secho(f"{notice.title}: {notice.description}", fg=colour, err=notice.destructive)


def _print_artifact(artifact: Artifact) -> None:
    typer.secho(f"Artifact: {artifact.id}", fg=typer.colors.BLUE)
    typer.echo(f"Created: {artifact.created_at:%Y-%m-%d %H:%M}")
    if artifact.emotion:
        typer.echo(f"Emotion: {artifact.emotion}")
    typer.secho("\nSummary:\n" + artifact.summary, fg=typer.colors.GREEN)
    typer.echo("\nTranscript:")
    for segment in artifact.transcript:
        typer.echo(f"[{segment.timestamp:%H:%M:%S}] {segment.speaker_name}: {segment.text}")
    if artifact.social_media_posts:
        _print_posts(artifact)


def _print_posts(artifact: Artifact) -> None:
    for platform, post in artifact.social_media_posts.items():
        typer.secho(f"\n{PLATFORM_NAMES[platform]}", fg=typer.colors.BLUE, bold=True)
        if post.title:
            typer.secho(post.title, bold=True)
        typer.echo(post.content)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Log pipeline activity to stderr."),
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if version:
        typer.echo(f"voicepool v{__version__}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


async def _run_session(pipeline: CapturePipeline) -> None:
    typer.secho(
        "Press Enter to start talking and Enter again to stop. Type 's' to save the session, 'q' to quit.",
        fg=typer.colors.BLUE,
    )
    while True:
        if pipeline.is_recording:
            prompt = "● Recording… press Enter to finish "
        else:
            prompt = f"[{len(pipeline.session)} segment(s)] > "
        try:
            command = (await asyncio.to_thread(input, prompt)).strip().lower()
        except EOFError:
            command = "q"

        if pipeline.is_recording:
            segment = await pipeline.stop_recording()
            if segment is not None:
                typer.echo(f"{segment.speaker_name}: {segment.text}")
            if command != "q":
                continue

        if command == "":
            await pipeline.start_recording()
        elif command == "s":
            artifact = await pipeline.end_session()
            if artifact is not None:
                typer.secho(f"Saved artifact {artifact.id}.", fg=typer.colors.BLUE)
                typer.secho("\nSummary:\n" + artifact.summary, fg=typer.colors.GREEN)
        elif command == "q":
            unsaved = len(pipeline.session)
            if unsaved and not typer.confirm(f"Discard {unsaved} unsaved segment(s)?", default=False):
                continue
            await pipeline.close()
            return
        else:
            typer.echo("Unknown command. Use Enter, 's' or 'q'.")


@app.command()
def record(
    offline: bool = typer.Option(False, "--offline", help="Use local storage instead of the API server."),
    social_posts: Optional[bool] = typer.Option(
        None,
        "--social-posts/--no-social-posts",
        help="Generate social media posts when saving the session.",
    ),
    upload_audio: Optional[bool] = typer.Option(
        None,
        "--upload-audio/--no-upload-audio",
        help="Keep the raw audio of every segment in the blob store.",
    ),
    emotion: Optional[bool] = typer.Option(
        None,
        "--emotion/--no-emotion",
        help="Detect the overall emotion, or save a plain summary only.",
    ),
) -> None:
    """Start an interactive push-to-talk session."""

    cfg = _load_config()
    user = _current_user(cfg)

    try:
        summarizer = Summarizer.from_config(cfg)
        transcriber = get_backend(cfg)
    except LanguageModelError as exc:
        raise _fail(str(exc)) from exc

    settings = CaptureSettings(
        sample_rate=cfg.sample_rate,
        channels=cfg.channels,
        noise_suppression=cfg.noise_suppression,
    )
    keep_audio = cfg.upload_audio if upload_audio is None else upload_audio

    try:
        with _open_storage(cfg, offline) as (store, blob_store):
            try:
                store.create_user_profile(user)
            except StorageError as exc:
                typer.secho(f"Could not create user profile: {exc}", fg=typer.colors.YELLOW, err=True)

            pipeline = CapturePipeline(
                user=user,
                microphone=SoundDeviceMicrophone(),
                transcriber=transcriber,
                summarizer=summarizer,
                store=store,
                blob_store=blob_store if keep_audio else None,
                settings=settings,
                notify=_show_notice,
                generate_social_posts=cfg.generate_social_posts if social_posts is None else social_posts,
                detect_emotion=cfg.detect_emotion if emotion is None else emotion,
            )
            asyncio.run(_run_session(pipeline))
    except StorageError as exc:
        raise _fail(str(exc)) from exc


@app.command()
def transcribe(
    audio: Path = typer.Argument(..., exists=True, readable=True, help="Path to the audio file."),
) -> None:
    """Transcribe a single audio file without saving it."""

    cfg = _load_config()
    mime_type = _AUDIO_TYPES.get(audio.suffix.lower(), "audio/wav")
    try:
        text = get_backend(cfg).transcribe(encode_data_uri(audio.read_bytes(), mime_type))
    except LanguageModelError as exc:
        raise _fail(str(exc)) from exc
    typer.echo(text)


@app.command("list")
def list_command(
    offline: bool = typer.Option(False, "--offline", help="Use local storage instead of the API server."),
) -> None:
    """List saved session artifacts, newest first."""

    cfg = _load_config()
    user = _current_user(cfg)
    try:
        with _open_storage(cfg, offline) as (store, _blobs):
            rows = list(store.list_artifacts(user.uid))
    except StorageError as exc:
        raise _fail(str(exc)) from exc

    if not rows:
        typer.echo("No artifacts found. Use `voicepool record` to create one.")
        return
    header = f"{'ID':<32}  {'Created':<16}  {'Segments':>8}  Summary"
    typer.echo(header)
    typer.echo("-" * len(header))
    for artifact in rows:
        summary = artifact.summary.replace("\n", " ")
        if len(summary) > 40:
            summary = summary[:39] + "…"
        created = artifact.created_at.strftime("%Y-%m-%d %H:%M")
        typer.echo(f"{artifact.id:<32}  {created:<16}  {len(artifact.transcript):>8}  {summary}")


@app.command()
def show(
    artifact_id: str = typer.Argument(..., help="Identifier of the artifact to display."),
    offline: bool = typer.Option(False, "--offline", help="Use local storage instead of the API server."),
) -> None:
    """Show a saved artifact."""

    cfg = _load_config()
    user = _current_user(cfg)
    try:
        with _open_storage(cfg, offline) as (store, _blobs):
            artifact = store.get_artifact(user.uid, artifact_id)
    except StorageError as exc:
        raise _fail(str(exc)) from exc
    _print_artifact(artifact)


@app.command()
def share(
    artifact_id: str = typer.Argument(..., help="Identifier of the artifact to share."),
    regenerate: bool = typer.Option(False, "--regenerate", help="Ignore posts stored with the artifact."),
    offline: bool = typer.Option(False, "--offline", help="Use local storage instead of the API server."),
) -> None:
    """Print social media posts for a saved artifact."""

    cfg = _load_config()
    user = _current_user(cfg)
    try:
        with _open_storage(cfg, offline) as (store, _blobs):
            artifact = store.get_artifact(user.uid, artifact_id)
    except StorageError as exc:
        raise _fail(str(exc)) from exc

    if artifact.social_media_posts is None or regenerate:
        try:
            posts = Summarizer.from_config(cfg).generate_social_media_posts(artifact.full_text, artifact.summary)
        except LanguageModelError as exc:
            raise _fail(str(exc)) from exc
        artifact = replace(artifact, social_media_posts=posts)
    _print_posts(artifact)


@app.command()
def config(
    openai_api_key: Optional[str] = typer.Option(None, help="API key for the OpenAI backend."),
    transcription_model: Optional[str] = typer.Option(None, help="OpenAI model id used for transcription."),
    summary_model: Optional[str] = typer.Option(None, help="OpenAI model id used for summaries and posts."),
    sample_rate: Optional[int] = typer.Option(None, help="Microphone sample rate in Hz."),
    noise_suppression: Optional[bool] = typer.Option(
        None,
        "--noise-suppression/--no-noise-suppression",
        help="Gate background noise in recorded segments.",
    ),
    upload_audio: Optional[bool] = typer.Option(
        None,
        "--upload-audio/--no-upload-audio",
        help="Keep raw audio for every segment.",
    ),
    generate_social_posts: Optional[bool] = typer.Option(
        None,
        "--social-posts/--no-social-posts",
        help="Generate social media posts when saving a session.",
    ),
    detect_emotion: Optional[bool] = typer.Option(
        None,
        "--emotion/--no-emotion",
        help="Detect the overall emotion when summarising a session.",
    ),
    server_url: Optional[str] = typer.Option(None, help="Base URL of the Voicepool API server."),
    verify_ssl: Optional[bool] = typer.Option(
        None,
        "--verify-ssl/--no-verify-ssl",
        help="Toggle TLS certificate verification for API calls.",
    ),
    api_timeout: Optional[float] = typer.Option(None, help="Timeout (seconds) for API and model calls."),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, object] = {
        key: value
        for key, value in {
            "openai_api_key": openai_api_key,
            "transcription_model": transcription_model,
            "summary_model": summary_model,
            "sample_rate": sample_rate,
            "noise_suppression": noise_suppression,
            "upload_audio": upload_audio,
            "generate_social_posts": generate_social_posts,
            "detect_emotion": detect_emotion,
            "server_url": server_url,
            "verify_ssl": verify_ssl,
            "api_timeout": api_timeout,
        }.items()
        if value is not None
    }

    if show or not updates:
        cfg = _load_config()
        data = asdict(cfg)
        for secret in ("openai_api_key", "server_token"):
            if data.get(secret):
                data[secret] = "********"
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    try:
        config_mod.update_config(**updates)
    except ConfigError as exc:
        raise _fail(str(exc)) from exc
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


@app.command()
def login(
    user_id: str = typer.Option(..., "--user-id", prompt=True, help="Identifier recordings are attributed to."),
    display_name: Optional[str] = typer.Option(None, "--display-name", help="Speaker name shown in transcripts."),
    email: Optional[str] = typer.Option(None, "--email", help="Contact email stored with the profile."),
    token: Optional[str] = typer.Option(None, "--token", help="Bearer token for the API server."),
    offline: bool = typer.Option(False, "--offline", help="Create the profile in local storage."),
) -> None:
    """Store the active identity and make sure a profile exists for it."""

    updates: Dict[str, object] = {"user_id": user_id}
    if display_name is not None:
        updates["display_name"] = display_name or None
    if email is not None:
        updates["email"] = email or None
    if token is not None:
        updates["server_token"] = token or None
    try:
        cfg = config_mod.update_config(**updates)
    except ConfigError as exc:
        raise _fail(str(exc)) from exc

    try:
        with _open_storage(cfg, offline) as (store, _blobs):
            created = store.create_user_profile(_current_user(cfg))
    except StorageError as exc:
        raise _fail(str(exc)) from exc

    if created:
        typer.secho(f"Profile created for {user_id}.", fg=typer.colors.BLUE)
    else:
        typer.secho(f"Signed in as {user_id}.", fg=typer.colors.BLUE)


@app.command()
def health() -> None:
    """Check connectivity to the configured API server."""

    cfg = _load_config()
    try:
        with build_client(cfg) as client:
            response = client.get("/health")
            response.raise_for_status()
    except StorageError as exc:
        raise _fail(str(exc)) from exc
    except httpx.HTTPError as exc:
        raise _fail(describe_http_error(exc)) from exc

    payload = response.json()
    typer.echo(f"Status: {payload.get('status', 'unknown')}")
    typer.echo(f"Version: {payload.get('version', 'unknown')}")


@app.command()
def setup() -> None:
    """Run the interactive setup wizard."""

    from .onboarding import run_onboarding

    try:
        run_onboarding()
    except ConfigError as exc:
        raise _fail(f"Setup failed: {exc}") from exc


if __name__ == "__main__":  # pragma: no cover
    app()
