from __future__ import annotations

import base64
import binascii

from ..shard import constants as C

_PNG_SIG = b"\x89PNG\r\n\x1a\x0a"
_JPEG_SIG = b"\xff\xd8\xff"
_GIF_SIGS = (b"GIF87a", b"GIF89a")


# --------------------------- source classifiers --------------------------- #
def is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def is_data_url(value: str) -> bool:
    return value.startswith("data:")


# --------------------------- validation ---------------------------------- #
def sniff_mime(data: bytes) -> str | None:
    """Identify PNG/JPEG/GIF/WEBP from magic numbers; None when unrecognized."""
    if data.startswith(_PNG_SIG):
        return "image/png"
    if data.startswith(_JPEG_SIG):
        return "image/jpeg"
    if data.startswith(_GIF_SIGS):
        return "image/gif"
    if data.startswith(b"RIFF") and b"WEBP" in data[:32]:
        return "image/webp"
    return None


def validate_image_bytes(data: bytes) -> str:
    """Ensure the bytes look like an image and return the sniffed MIME type.

    Raises ValueError if validation fails.
    """
    if not data or len(data) < 16:
        raise ValueError("Image data is empty or too small")
    mime = sniff_mime(data)
    if mime is None:
        raise ValueError("Unsupported or corrupt image data; expected PNG/JPEG/GIF/WEBP")
    return mime


# --------------------------- conversion ---------------------------------- #
def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """Split a ``data:<mime>;base64,<payload>`` URL into (bytes, mime)."""
    try:
        header, payload = data_url.split(",", 1)
    except ValueError:
        raise ValueError("Invalid data URL format")

    mime = C.DEFAULT_MIME
    try:
        mime = header.split(";")[0].split(":", 1)[1] or C.DEFAULT_MIME
    except IndexError:
        pass

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Cannot decode base64 data: {e}") from e
    return data, mime


def to_data_url(data: bytes, mime: str = C.DEFAULT_MIME) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('utf-8')}"


def guess_extension_from_mime(mime: str) -> str:
    """Guess file extension (without the dot) from MIME type."""
    lower = mime.lower()
    if lower.endswith("/png"):
        return "png"
    if lower.endswith("/jpeg") or lower.endswith("/jpg"):
        return "jpg"
    if lower.endswith("/webp"):
        return "webp"
    if lower.endswith("/gif"):
        return "gif"
    return "png"  # Default fallback


__all__ = [
    "is_url",
    "is_data_url",
    "sniff_mime",
    "validate_image_bytes",
    "decode_data_url",
    "to_data_url",
    "guess_extension_from_mime",
]
