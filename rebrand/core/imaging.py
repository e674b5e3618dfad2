"""Pillow helpers: MIME sniffing, aspect-preserving fit, square PNG renders, logo resize."""

from __future__ import annotations

import io
import logging
from typing import Union

from PIL import Image, UnidentifiedImageError

from rebrand.core.errors import InvalidArgument

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"


def open_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidArgument(f"Not a readable image: {e}") from e
    return img


def sniff_mime(data: Union[bytes, str]) -> str:
    """MIME type from content (bytes or a file path). Unknown content gives application/octet-stream."""
    try:
        src = io.BytesIO(data) if isinstance(data, bytes) else data
        with Image.open(src) as img:
            return Image.MIME.get(img.format or "", OCTET_STREAM)
    except (UnidentifiedImageError, OSError):
        return OCTET_STREAM


def fit_within(w: int, h: int, max_w: int = 0, max_h: int = 0) -> tuple[int, int]:
    """Size that fits (w, h) into the bounds keeping aspect. 0 means unbounded; never upscales when both are set."""
    if w <= 0 or h <= 0:
        raise InvalidArgument("Invalid image dimensions.")
    max_w = max(0, int(max_w))
    max_h = max(0, int(max_h))
    if max_w == 0 and max_h == 0:
        return w, h
    if max_w == 0:
        return max(1, round(w * max_h / h)), max_h
    if max_h == 0:
        return max_w, max(1, round(h * max_w / w))
    scale = min(max_w / w, max_h / h)
    if scale >= 1:
        return w, h
    return max(1, int(w * scale)), max(1, int(h * scale))


def render_square_png(img: Image.Image, size: int) -> bytes:
    """Fit img inside a transparent size x size canvas, centered."""
    src = img.convert("RGBA")
    tw, th = fit_within(src.width, src.height, size, size)
    if (tw, th) != (src.width, src.height):
        src = src.resize((tw, th), Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    canvas.paste(src, ((size - tw) // 2, (size - th) // 2), src)
    buf = io.BytesIO()
    canvas.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def resize_image(data: bytes, max_w: int, max_h: int, fmt: str = "PNG") -> bytes:
    """Resize to fit the bounds and encode as fmt (PNG keeps alpha, JPEG flattens on white).

    Returns the input untouched when no resize or re-encode is needed.
    """
    img = open_image(data)
    fmt = fmt.upper()
    tw, th = fit_within(img.width, img.height, max_w, max_h)
    if (tw, th) == (img.width, img.height) and (img.format or "").upper() == fmt:
        return data
    if (tw, th) != (img.width, img.height):
        img = img.resize((tw, th), Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    if fmt == "PNG":
        img.convert("RGBA").save(buf, format="PNG", optimize=True)
    else:
        rgba = img.convert("RGBA")
        flat = Image.new("RGB", rgba.size, (255, 255, 255))
        flat.paste(rgba, mask=rgba.split()[3])
        flat.save(buf, format="JPEG", quality=90)
    logger.debug("Resized image to %sx%s (%s)", tw, th, fmt)
    return buf.getvalue()
