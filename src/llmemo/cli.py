from __future__ import annotations

import asyncio
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from llmemo.audio.capture import MicrophoneStream
from llmemo.config import get_settings
from llmemo.doctor import run_doctor
from llmemo.errors import ConfigError, LlmemoError, PersistenceError
from llmemo.export.csv import format_created_at
from llmemo.export.md import render_markdown
from llmemo.logging_setup import configure_logging
from llmemo.scribe.base import TranscriptSegment
from llmemo.services import LlmemoService, RecordingOutcome
from llmemo.session import SessionSnapshot

app = typer.Typer(help="llmemo - realtime voice transcription with a local archive")
archive_app = typer.Typer(help="Browse and manage archived transcripts.")
app.add_typer(archive_app, name="archive")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, console=console)


def _service(language: str | None = None) -> LlmemoService:
    try:
        service = LlmemoService(language_code=language)
    except LlmemoError as exc:
        console.print(f"[red]startup failed:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    if service.archive.load_error is not None:
        console.print(f"[yellow]archive unavailable:[/yellow] {escape(str(service.archive.load_error))}")
    return service


@app.command()
def doctor() -> None:
    """Check credentials, storage and microphone."""

    checks = run_doctor(get_settings())

    table = Table(title="llmemo doctor")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")

    failed = False
    for check in checks:
        status = check.status.upper()
        color = {"ok": "green", "warn": "yellow", "fail": "red"}.get(check.status, "white")
        table.add_row(check.name, f"[{color}]{status}[/{color}]", escape(check.detail))
        if check.status == "fail":
            failed = True

    console.print(table)
    if failed:
        raise typer.Exit(code=1)


def _print_segments(service: LlmemoService) -> None:
    printed = 0
    announced = False

    def on_snapshot(snapshot: SessionSnapshot) -> None:
        nonlocal printed, announced
        if snapshot.is_connected and not announced:
            console.print("[green]Listening.[/green]")
            announced = True
        for segment in snapshot.segments[printed:]:
            _print_segment(service, segment)
        printed = len(snapshot.segments)

    service.session.subscribe(on_snapshot)


def _print_segment(service: LlmemoService, segment: TranscriptSegment) -> None:
    # Provider text may contain bracketed tags such as "[laughter]".
    text = escape(segment.text)
    if segment.speaker_id is None:
        console.print(text)
        return
    identity = service.session.speakers.identity_for(segment.speaker_id)
    console.print(f"[bold {identity.color.hex}]{escape(identity.name)}:[/] {text}")


async def _record(
    service: LlmemoService,
    *,
    title: str,
    archive: bool,
    consent: bool,
) -> RecordingOutcome:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop.set)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers; Ctrl+C raises instead.
        pass
    stream = MicrophoneStream(
        sample_rate=service.settings.sample_rate,
        device=service.settings.input_device,
    )
    return await service.record(stream, stop, title=title, archive=archive, has_consent=consent)


@app.command()
def record(
    language: str | None = typer.Option(None, "--language", help="Spoken language ISO code (default: LLMEMO_LANGUAGE_CODE)"),
    title: str = typer.Option("", "--title", help="Title stored with the archived transcript"),
    archive: bool = typer.Option(True, "--archive/--no-archive", help="Archive when recording stops"),
    consent: bool = typer.Option(True, "--consent/--no-consent", help="Participants consented to recording"),
) -> None:
    """Transcribe the microphone live until Ctrl+C."""

    try:
        language_code = get_settings().resolve_language(language)
    except ConfigError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=2) from exc

    service = _service(language_code)
    _print_segments(service)
    console.print("[green]Connecting... press Ctrl+C to stop.[/green]")
    try:
        outcome = asyncio.run(_record(service, title=title, archive=archive, consent=consent))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130)
    except LlmemoError as exc:
        console.print(f"[red]record failed:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc

    error = service.session.error
    if error is not None:
        console.print(f"[red]session error:[/red] {escape(str(error))}")
    console.print(f"[green]Segments:[/green] {outcome.segment_count}")
    console.print(f"[green]Speakers:[/green] {outcome.speaker_count}")
    if outcome.archived is not None:
        console.print(f"[green]Archived as:[/green] {outcome.archived.id}")
    elif archive and outcome.segment_count == 0:
        console.print("[yellow]Nothing to archive.[/yellow]")


@archive_app.command("list")
def archive_list(
    query: str = typer.Option("", "--query", "-q", help="Match text, title or category"),
    important: bool = typer.Option(False, "--important", help="Only transcripts marked important"),
) -> None:
    """List archived transcripts, newest first."""

    service = _service()
    transcripts = service.archive.search(query, important_only=important)
    if not transcripts:
        console.print("[yellow]No archived transcripts.[/yellow]")
        raise typer.Exit(code=0)

    table = Table(title="Archived transcripts")
    table.add_column("ID")
    table.add_column("Created")
    table.add_column("Title")
    table.add_column("Words")
    table.add_column("Flags")
    for item in transcripts:
        flags = []
        if item.is_important:
            flags.append("*")
        if item.category:
            flags.append(escape(item.category))
        if not item.has_consent:
            flags.append("no consent")
        table.add_row(
            item.id,
            format_created_at(item.created_at),
            escape(item.title),
            str(len(item.text.split())),
            ", ".join(flags),
        )
    console.print(table)


@archive_app.command("show")
def archive_show(transcript_id: str = typer.Argument(..., help="Transcript ID")) -> None:
    """Print one archived transcript as Markdown."""

    service = _service()
    transcript = service.archive.get(transcript_id)
    if transcript is None:
        console.print(f"[red]Not found:[/red] {escape(transcript_id)}")
        raise typer.Exit(code=2)
    console.print(render_markdown(transcript), markup=False)


def _apply_update(transcript_id: str, **changes: object) -> None:
    service = _service()
    try:
        updated = asyncio.run(service.archive.update(transcript_id, **changes))
    except PersistenceError as exc:
        console.print(f"[red]update not saved:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    if updated is None:
        console.print(f"[yellow]Not found:[/yellow] {escape(transcript_id)}")
        raise typer.Exit(code=0)
    console.print(f"[green]Updated:[/green] {updated.id}")


@archive_app.command("rename")
def archive_rename(
    transcript_id: str = typer.Argument(..., help="Transcript ID"),
    title: str = typer.Argument(..., help="New title"),
) -> None:
    """Change the title of an archived transcript."""

    _apply_update(transcript_id, title=title)


@archive_app.command("mark")
def archive_mark(
    transcript_id: str = typer.Argument(..., help="Transcript ID"),
    important: bool = typer.Option(True, "--important/--not-important"),
    category: str | None = typer.Option(None, "--category", help="Free-text category"),
) -> None:
    """Flag a transcript as important and/or set its category."""

    changes: dict[str, object] = {"is_important": important}
    if category is not None:
        changes["category"] = category.strip() or None
    _apply_update(transcript_id, **changes)


@archive_app.command("delete")
def archive_delete(transcript_id: str = typer.Argument(..., help="Transcript ID")) -> None:
    """Delete an archived transcript."""

    service = _service()
    try:
        removed = asyncio.run(service.archive.delete(transcript_id))
    except PersistenceError as exc:
        console.print(f"[red]delete not saved:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    if removed:
        console.print(f"[green]Deleted:[/green] {escape(transcript_id)}")
    else:
        console.print(f"[yellow]Not found:[/yellow] {escape(transcript_id)}")


@archive_app.command("export")
def archive_export(
    output: Path | None = typer.Argument(None, help="CSV path (default: exports dir)"),
) -> None:
    """Export every archived transcript to CSV."""

    service = _service()
    try:
        path = service.export_archive(output)
    except OSError as exc:
        console.print(f"[red]export failed:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    console.print(f"[green]Export written:[/green] {escape(str(path))}")


if __name__ == "__main__":
    app()
