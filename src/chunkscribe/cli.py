"""CLI entry point for chunkscribe."""

from __future__ import annotations

import functools
import logging
import os
import subprocess

import click

from chunkscribe.config import Config, ensure_config_file
from chunkscribe.errors import ChunkscribeError
from chunkscribe.output.formats import FORMATS
from chunkscribe.transcription.models import KNOWN_MODELS


def _handle_errors(f):
    """Turn library errors into a message on stderr and exit code 1."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ChunkscribeError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1) from None

    return wrapper


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--data-dir", default=None, help="Directory holding transcripts and metadata.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, data_dir: str | None) -> None:
    """Chunked audio transcription with a compressed local transcript library."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    config = Config.load()
    if data_dir:
        config.storage.data_dir = data_dir
    ctx.obj["config"] = config


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--model", default=None, help=f"Transcription model ({', '.join(KNOWN_MODELS)}).")
@click.option("--name", default=None, help="Display name (single file only).")
@click.option("--prompt", default=None, help="Context hint passed with the first chunk.")
@click.option("--speaker", "speakers", multiple=True, metavar="LABEL=PATH", help="Known speaker voice sample.")
@click.option("--speed", type=click.FloatRange(1.0, 3.0), default=None, help="Speed audio up before upload.")
@click.option("--compress/--no-compress", default=None, help="Re-encode as low-bitrate Opus before upload.")
@click.option("--chunk-size", type=click.FloatRange(1, 25), default=None, help="Target chunk size in MB.")
@click.pass_context
@_handle_errors
def transcribe(
    ctx: click.Context,
    files: tuple[str, ...],
    model: str | None,
    name: str | None,
    prompt: str | None,
    speakers: tuple[str, ...],
    speed: float | None,
    compress: bool | None,
    chunk_size: float | None,
) -> None:
    """Transcribe audio files and store them in the library."""
    config = ctx.obj["config"]
    if model:
        config.transcription.model = model
    if prompt is not None:
        config.transcription.prompt = prompt
    if speed is not None:
        config.transcription.speed = speed
    if compress is not None:
        config.transcription.compress = compress
    if chunk_size is not None:
        config.transcription.target_chunk_size_mb = chunk_size

    from chunkscribe.pipeline import parse_speaker, run_transcribe

    refs = [parse_speaker(s) for s in speakers]
    run_transcribe(config, list(files), name=name, speakers=refs)


@cli.command("list")
@click.option("--starred", is_flag=True, help="Only starred transcripts.")
@click.option("--search", "query", default=None, help="Filter by name or tag.")
@click.pass_context
@_handle_errors
def list_cmd(ctx: click.Context, starred: bool, query: str | None) -> None:
    """List stored transcripts, newest first."""
    from chunkscribe.pipeline import format_record_line, open_library

    library = open_library(ctx.obj["config"])
    records = library.search(query) if query else library.list()
    if starred:
        records = [r for r in records if r.starred]
    if not records:
        click.echo("No transcripts found.")
        return
    for record in records:
        click.echo(format_record_line(record))


@cli.command()
@click.argument("transcript_id")
@click.option("--plain", is_flag=True, help="Show plain text instead of WebVTT.")
@click.pass_context
@_handle_errors
def show(ctx: click.Context, transcript_id: str, plain: bool) -> None:
    """Print a transcript."""
    from chunkscribe.pipeline import run_export

    run_export(ctx.obj["config"], transcript_id, "text" if plain else "vtt")


@cli.command()
@click.argument("transcript_id")
@click.option("--format", "fmt", type=click.Choice(FORMATS), default="markdown", show_default=True)
@click.option("--output", "-o", default=None, type=click.Path(), help="File or directory to write to.")
@click.pass_context
@_handle_errors
def export(ctx: click.Context, transcript_id: str, fmt: str, output: str | None) -> None:
    """Export a transcript as VTT, Markdown, text or JSON."""
    from chunkscribe.pipeline import run_export

    run_export(ctx.obj["config"], transcript_id, fmt, output)


@cli.command()
@click.argument("transcript_id")
@click.pass_context
@_handle_errors
def star(ctx: click.Context, transcript_id: str) -> None:
    """Toggle the star on a transcript."""
    from chunkscribe.pipeline import open_library

    record = open_library(ctx.obj["config"]).toggle_star(transcript_id)
    if record is None:
        click.echo(f"Error: No transcript with id {transcript_id}", err=True)
        raise SystemExit(1)
    click.echo(f"{'Starred' if record.starred else 'Unstarred'} {record.id}")


@cli.command()
@click.argument("transcript_id")
@click.argument("tags", nargs=-1)
@click.pass_context
@_handle_errors
def tag(ctx: click.Context, transcript_id: str, tags: tuple[str, ...]) -> None:
    """Replace a transcript's tags (no tags clears them)."""
    from chunkscribe.pipeline import open_library

    record = open_library(ctx.obj["config"]).set_tags(transcript_id, list(tags))
    if record is None:
        click.echo(f"Error: No transcript with id {transcript_id}", err=True)
        raise SystemExit(1)
    click.echo(f"Tags for {record.id}: {', '.join(record.tags) or '(none)'}")


@cli.command()
@click.argument("transcript_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
@_handle_errors
def delete(ctx: click.Context, transcript_id: str, yes: bool) -> None:
    """Delete a transcript, its content file and cached copy."""
    from chunkscribe.pipeline import open_library

    library = open_library(ctx.obj["config"])
    record = library.get(transcript_id)
    if record is None:
        click.echo(f"Transcript {transcript_id} not found (already deleted?).")
        return
    if not yes and not click.confirm(f"Delete {record.name} ({record.id})?"):
        click.echo("Aborted.")
        return
    library.delete(transcript_id)
    click.echo(f"Deleted {transcript_id}")


@cli.command()
@click.argument("transcript_id")
@click.argument("question")
@click.option("--model", default=None, help="Chat model name.")
@click.pass_context
@_handle_errors
def ask(ctx: click.Context, transcript_id: str, question: str, model: str | None) -> None:
    """Ask an LLM a question about a stored transcript."""
    config = ctx.obj["config"]
    if model:
        config.chat.model = model

    from chunkscribe.pipeline import run_ask

    run_ask(config, transcript_id, question)


@cli.command()
@click.pass_context
@_handle_errors
def migrate(ctx: click.Context) -> None:
    """Move inline transcript content into compressed files."""
    from chunkscribe.pipeline import run_migrate

    run_migrate(ctx.obj["config"])


@cli.command()
@click.pass_context
@_handle_errors
def stats(ctx: click.Context) -> None:
    """Show library and storage statistics."""
    from chunkscribe.pipeline import run_stats

    run_stats(ctx.obj["config"])


@cli.command("config")
def config_cmd() -> None:
    """Open the configuration file in your editor."""
    path = ensure_config_file()
    editor = os.environ.get("EDITOR", "nano")
    click.echo(f"Opening {path} with {editor}...")
    subprocess.run([editor, str(path)])
