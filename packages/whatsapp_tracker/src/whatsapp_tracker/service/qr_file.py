"""
Persisted QR File

Pairing QR payloads are written to a text file so a headless deployment can
be paired from another terminal (`whatsapp-tracker qr`).
"""

import asyncio
import re
from datetime import datetime
from pathlib import Path

QR_PAYLOAD_PATTERN = re.compile(r"\d@[A-Za-z0-9+/=,]+")


def render_qr_file(payload: str, generated_at: datetime | None = None) -> str:
    generated_at = generated_at or datetime.now()
    return (
        f"QR Code generated at {generated_at.strftime('%Y-%m-%d %H:%M:%S')}\n"
        "Scan this code with WhatsApp > Linked devices > Link a device\n"
        "\n"
        f"{payload}\n"
        "\n"
        "Render the line above as a QR code if no terminal rendering is available.\n"
        "This file is removed once the session is authenticated.\n"
    )


def extract_qr_payload(text: str) -> str | None:
    """Recover the raw QR payload from the file contents."""
    match = QR_PAYLOAD_PATTERN.search(text)
    return match.group(0) if match else None


async def write_qr_file(path: str | Path, payload: str) -> Path:
    """
    Write the QR file.

    Raises:
        OSError: the file could not be written
    """
    path = Path(path)
    await asyncio.to_thread(path.write_text, render_qr_file(payload), "utf-8")
    return path


async def remove_qr_file(path: str | Path) -> bool:
    """Delete the QR file. Returns True if a file was removed."""
    path = Path(path)

    def _remove() -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    return await asyncio.to_thread(_remove)


def read_qr_payload(path: str | Path) -> str | None:
    """Payload cached in the QR file, or None when there is no file."""
    path = Path(path)
    if not path.is_file():
        return None
    return extract_qr_payload(path.read_text(encoding="utf-8"))
