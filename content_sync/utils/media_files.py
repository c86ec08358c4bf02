"""Media file helpers: magic-byte MIME detection and resized copies.

Resized copies follow the ``name-{w}x{h}.ext`` convention used in content
markup, so a size hint taken from a URL maps directly to a file name.
"""
import logging
import mimetypes
import os

from PIL import Image

logger = logging.getLogger(__name__)

# Magic byte signatures for file type detection
MAGIC_SIGNATURES: dict[str, list[tuple[bytes, int]]] = {
    "image/jpeg": [(b"\xff\xd8\xff", 0)],
    "image/png": [(b"\x89PNG\r\n\x1a\n", 0)],
    "image/gif": [(b"GIF87a", 0), (b"GIF89a", 0)],
    "image/webp": [(b"RIFF", 0)],  # RIFF....WEBP
    "video/mp4": [(b"ftyp", 4)],   # ....ftyp
    "application/pdf": [(b"%PDF", 0)],
}


class MediaFileError(OSError):
    """Raised when a source blob cannot be used."""
    pass


def detect_mime_by_magic(file_bytes: bytes) -> str | None:
    """Detect MIME type by examining magic bytes."""
    if len(file_bytes) < 12:
        return None

    for mime, signatures in MAGIC_SIGNATURES.items():
        for magic_bytes, offset in signatures:
            end = offset + len(magic_bytes)
            if len(file_bytes) >= end and file_bytes[offset:end] == magic_bytes:
                if mime == "image/webp":
                    if file_bytes[8:12] == b"WEBP":
                        return "image/webp"
                    continue
                return mime

    return None


def detect_mime(path: str) -> str:
    """MIME type from the file header, falling back to the extension."""
    with open(path, "rb") as fh:
        detected = detect_mime_by_magic(fh.read(64))
    if detected:
        return detected
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


def sized_filename(path: str, width: int, height: int) -> str:
    root, ext = os.path.splitext(path)
    return f"{root}-{width}x{height}{ext}"


def generate_sub_size(path: str, width: int, height: int) -> str | None:
    """Write a copy of the image scaled to fit width x height.

    Returns the new file's base name, or None if the file is not a
    resizable image.
    """
    target = sized_filename(path, width, height)
    if os.path.exists(target):
        return os.path.basename(target)
    try:
        with Image.open(path) as img:
            img.thumbnail((width, height))
            img.save(target)
    except (OSError, ValueError) as exc:
        logger.warning("Could not create %dx%d copy of %s: %s", width, height, path, exc)
        return None
    return os.path.basename(target)
