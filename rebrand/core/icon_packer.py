"""Pack PNG payloads into a multi-resolution .ico container (PNG-compressed entries)."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Sequence

from rebrand.core.errors import InvalidArgument

# ICONDIR: reserved(2)=0, type(2)=1, count(2)
ICO_HEADER_SIZE = 6
# ICONDIRENTRY: w, h, colors, reserved (1 byte each), planes(2), bitcount(2), length(4), offset(4)
ICO_ENTRY_SIZE = 16
ICO_TYPE_ICON = 1
MAX_ICON_SIZE = 256

_HEADER = struct.Struct("<HHH")
_ENTRY = struct.Struct("<BBBBHHII")


@dataclass(frozen=True)
class IconImage:
    """One layer of the container. The caller guarantees data really is a size x size image."""

    size: int
    data: bytes


@dataclass(frozen=True)
class IconDirEntry:
    width: int
    height: int
    colors: int
    reserved: int
    planes: int
    bitcount: int
    length: int
    offset: int


def _dimension_byte(size: int) -> int:
    # 0 means 256 in the ICO directory
    return 0 if size == MAX_ICON_SIZE else size


def pack_icon_container(images: Sequence[IconImage]) -> bytes:
    """Return header + directory + payloads. Offsets are computed from the input order."""
    if not images:
        raise InvalidArgument("Icon container needs at least one image.")
    for img in images:
        if not isinstance(img.size, int) or not (1 <= img.size <= MAX_ICON_SIZE):
            raise InvalidArgument(f"Icon size out of range for ICO: {img.size!r} (1..{MAX_ICON_SIZE}).")

    count = len(images)
    offset = ICO_HEADER_SIZE + ICO_ENTRY_SIZE * count
    entries: list[bytes] = []
    for img in images:
        dim = _dimension_byte(img.size)
        entries.append(_ENTRY.pack(dim, dim, 0, 0, 1, 32, len(img.data), offset))
        offset += len(img.data)

    return _HEADER.pack(0, ICO_TYPE_ICON, count) + b"".join(entries) + b"".join(i.data for i in images)


def read_icon_directory(blob: bytes) -> list[IconDirEntry]:
    """Parse the directory of an .ico blob. Raises InvalidArgument on a truncated or foreign blob."""
    if len(blob) < ICO_HEADER_SIZE:
        raise InvalidArgument("Blob too short for an ICO header.")
    reserved, kind, count = _HEADER.unpack_from(blob, 0)
    if reserved != 0 or kind != ICO_TYPE_ICON:
        raise InvalidArgument("Not an ICO container.")
    if len(blob) < ICO_HEADER_SIZE + ICO_ENTRY_SIZE * count:
        raise InvalidArgument("ICO directory is truncated.")
    out = []
    for i in range(count):
        entry = IconDirEntry(*_ENTRY.unpack_from(blob, ICO_HEADER_SIZE + ICO_ENTRY_SIZE * i))
        if entry.offset + entry.length > len(blob):
            raise InvalidArgument(f"ICO entry {i} points past the end of the blob.")
        out.append(entry)
    return out
