"""Uploaded files: size and content-sniffed MIME checks before anything is written."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, Union

from rebrand.core.errors import InvalidArgument
from rebrand.core.imaging import sniff_mime

logger = logging.getLogger(__name__)

IMAGE_MIMES = ("image/png", "image/jpeg", "image/webp")
PNG_MIMES = ("image/png",)


@dataclass(frozen=True)
class UploadedFile:
    """A file the web layer already stored in a temp location. mime is what the client claimed."""

    temp_path: Union[str, Path]
    filename: str
    size: int
    mime: str = ""


def validate_upload(upload: UploadedFile, max_bytes: int, allowed_mimes: Collection[str]) -> bytes:
    """Return the file content when it passes; raise InvalidArgument otherwise.

    The MIME type is sniffed from the content; the client-supplied one is ignored.
    """
    path = Path(upload.temp_path)
    if not path.is_file():
        raise InvalidArgument(f"Upload {upload.filename!r} is missing.")
    actual = path.stat().st_size
    if actual == 0:
        raise InvalidArgument(f"Upload {upload.filename!r} is empty.")
    if actual > max_bytes or upload.size > max_bytes:
        raise InvalidArgument(f"Upload {upload.filename!r} exceeds the {max_bytes} byte limit.")
    data = path.read_bytes()
    sniffed = sniff_mime(data)
    if sniffed not in allowed_mimes:
        logger.warning("Rejected upload %s: sniffed %s, claimed %s", upload.filename, sniffed, upload.mime)
        raise InvalidArgument(
            f"Upload {upload.filename!r} has type {sniffed}; allowed: {', '.join(allowed_mimes)}."
        )
    return data
