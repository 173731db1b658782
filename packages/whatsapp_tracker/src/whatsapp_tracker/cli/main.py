"""
WhatsApp Tracker CLI

Command-line interface for the conversation tracker.

Commands:
- start: Run the tracker until SIGINT/SIGTERM
- list-contacts: List tracked contacts and groups
- history: Show message history for a chat
- media: Show media details for a message
- export-media: Copy a chat's media files to a directory
- send: Send a text message
- logout: Unlink the WhatsApp session
- qr: Print the pending pairing QR payload
- init-db: Create the database and tables
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from basecore.logging import setup_logging
from basecore.settings import get_settings
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from whatsapp_tracker.media.store import FileStatus
from whatsapp_tracker.persistence.repo import DatabaseUnavailable
from whatsapp_tracker.runtime import TrackerRuntime

app = typer.Typer(
    name="whatsapp-tracker",
    help="WhatsApp conversation tracker",
)

console = Console()

T = TypeVar("T")

BYTE_UNITS = ["Bytes", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]

FILE_STATUS_LABELS = {
    FileStatus.EXISTS: "[green]File exists[/green]",
    FileStatus.MISSING: "[yellow]File not found (may have been moved or deleted)[/yellow]",
    FileStatus.NOT_SAVED: "[yellow]Media file was not saved[/yellow]",
}


def format_bytes(size: int | None, decimals: int = 2) -> str:
    """Human-readable size: 1536 -> '1.5 KB'."""
    if not size:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, max(decimals, 0)):g} {BYTE_UNITS[unit]}"


def format_timestamp(timestamp_ms: int | None) -> str:
    if not timestamp_ms:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def run_with_runtime(fn: Callable[[TrackerRuntime], Awaitable[T]], use_gateway: bool = False) -> T:
    """
    Open the runtime, run fn against it and close everything again.

    Exits with code 1 when the database is unavailable.
    """
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    async def _run() -> T:
        runtime = TrackerRuntime(settings)
        try:
            await runtime.open()
        except DatabaseUnavailable as e:
            rprint(f"[red]Database unavailable: {e}[/red]")
            raise typer.Exit(1)

        try:
            return await fn(runtime)
        finally:
            if use_gateway:
                await runtime.gateway.destroy()
            await runtime.close()

    return asyncio.run(_run())


@app.command()
def start():
    """
    Start tracking.

    Connects the session gateway and records every message until stopped
    with Ctrl+C or SIGTERM.
    """
    from whatsapp_tracker.worker import run_worker

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    try:
        processed = asyncio.run(run_worker(settings))
    except DatabaseUnavailable as e:
        rprint(f"[red]Database unavailable: {e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]Tracker stopped after {processed} events[/green]")


@app.command()
def list_contacts():
    """
    List contacts and groups seen so far, most recently active first.
    """
    contacts = run_with_runtime(lambda runtime: runtime.history.list_contacts())

    if not contacts:
        rprint("[yellow]No contacts found[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Contacts")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Number")
    table.add_column("Push name")
    table.add_column("Last Updated")

    for contact in contacts:
        table.add_row(
            contact.id,
            contact.name or "Unknown",
            "Group" if contact.is_group else "Individual",
            contact.number or "-",
            contact.pushname or "-",
            format_timestamp(contact.last_updated),
        )

    console.print(table)


@app.command()
def history(
    chat_id: str = typer.Argument(..., help="Chat ID (e.g., 5511999999999@c.us)"),
    limit: int = typer.Argument(20, help="Maximum number of messages to show"),
):
    """
    Show message history for a chat, newest first.
    """
    messages = run_with_runtime(lambda runtime: runtime.history.message_history(chat_id, limit))

    if not messages:
        rprint("[yellow]No messages found[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Message History ({chat_id})")
    table.add_column("Time", style="dim")
    table.add_column("Direction")
    table.add_column("From")
    table.add_column("Message")
    table.add_column("Media")

    for message in messages:
        table.add_row(
            format_timestamp(message.timestamp),
            "Outgoing" if message.from_me else "Incoming",
            message.author or "-",
            message.body or "",
            f"Yes ({message.id})" if message.has_media else "-",
        )

    console.print(table)

    if any(message.has_media for message in messages):
        rprint("Use [bold]media <message_id>[/bold] to view media details")


@app.command()
def media(
    message_id: str = typer.Argument(..., help="Message ID"),
):
    """
    Show media details for a message.
    """
    info = run_with_runtime(lambda runtime: runtime.history.media_info(message_id))

    if info is None:
        rprint(f"[yellow]Message not found: {message_id}[/yellow]")
        raise typer.Exit(0)

    if info.media is None:
        if info.message.has_media:
            rprint(f"  Status: {FILE_STATUS_LABELS[info.file_status]}")
        else:
            rprint("[yellow]No media found for this message ID[/yellow]")
        raise typer.Exit(0)

    row = info.media
    rprint("[bold]Media Information[/bold]")
    rprint(f"  Message ID: {row.message_id}")
    rprint(f"  Type: {row.mimetype}")
    rprint(f"  File: {row.filename or 'Unnamed'}")
    rprint(f"  Size: {format_bytes(row.filesize)}")
    if row.caption:
        rprint(f"  Caption: {row.caption}")
    if row.file_path:
        rprint(f"  Stored at: {row.file_path}")
    rprint(f"  Status: {FILE_STATUS_LABELS[info.file_status]}")


@app.command()
def export_media(
    chat_id: str = typer.Argument(..., help="Chat ID"),
    target_dir: Path = typer.Argument(..., help="Directory to copy the files into"),
):
    """
    Export all media files of a chat to a directory.

    Files are named <ISO timestamp>_<original filename>.
    """
    result = run_with_runtime(lambda runtime: runtime.history.export_media(chat_id, target_dir))

    if result.count == 0:
        rprint(f"[yellow]No media files to export for {chat_id}[/yellow]")
        raise typer.Exit(0)

    for path in result.files:
        rprint(f"  [dim]{path.name}[/dim]")
    rprint(f"[green]Exported {result.count} media files to {target_dir}[/green]")
    if result.skipped:
        rprint(f"[yellow]Skipped {len(result.skipped)} messages without a stored file[/yellow]")


@app.command()
def send(
    chat_id: str = typer.Argument(..., help="Chat ID"),
    message: List[str] = typer.Argument(..., help="Message text"),
):
    """
    Send a text message to a chat.
    """
    text = " ".join(message)
    sent = run_with_runtime(
        lambda runtime: runtime.history.send_message(chat_id, text),
        use_gateway=True,
    )

    if sent:
        rprint(f"[green]Message sent to {chat_id}[/green]")
    else:
        rprint(f"[red]Failed to send message to {chat_id}[/red]")
        raise typer.Exit(1)


@app.command()
def logout():
    """
    Unlink the WhatsApp session. The next start asks for a new QR scan.
    """
    ok = run_with_runtime(lambda runtime: runtime.history.logout(), use_gateway=True)

    if ok:
        rprint("[green]Logged out successfully[/green]")
    else:
        rprint("[red]Logout failed[/red]")
        raise typer.Exit(1)


@app.command()
def qr(
    qr_file: Optional[Path] = typer.Option(None, help="QR file path (defaults to QR_FILE_PATH)"),
):
    """
    Print the pending pairing QR payload written by a headless tracker.
    """
    from whatsapp_tracker.service.qr_file import read_qr_payload

    path = qr_file or Path(get_settings().QR_FILE_PATH)
    payload = read_qr_payload(path)

    if payload is None:
        rprint(f"[yellow]No QR code pending ({path})[/yellow]")
        raise typer.Exit(1)

    rprint("Scan this payload with WhatsApp > Linked devices > Link a device:")
    console.print(payload, soft_wrap=True, highlight=False)


@app.command()
def init_db():
    """
    Create the tracker database and tables if they do not exist.
    """

    async def _noop(runtime: TrackerRuntime) -> None:
        return None

    run_with_runtime(_noop)
    rprint("[green]Database initialized[/green]")


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
