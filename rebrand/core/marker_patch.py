"""Marker-delimited region patching for text targets (head include file, menu brand_html).

Only the first begin...end region is authoritative; it is matched non-greedily up to
the nearest end marker. Markers are searched both as literal strings and in their
HTML-entity-encoded form, and the form that is found decides how the replacement
is written back.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rebrand.core.errors import InvalidArgument


class EncodingMode(str, Enum):
    """How a target stores markup. HTML: the column is rendered unescaped downstream, store it pre-escaped."""

    PLAIN = "plain"
    HTML = "html"


@dataclass(frozen=True)
class MarkerPair:
    begin: str
    end: str

    def encoded(self) -> "MarkerPair":
        return MarkerPair(html.escape(self.begin, quote=True), html.escape(self.end, quote=True))


DEFAULT_MARKERS = MarkerPair("<!-- ReBrand START -->", "<!-- ReBrand END -->")


@dataclass(frozen=True)
class Region:
    start: int
    inner_start: int
    inner_stop: int
    stop: int
    encoded: bool


@dataclass(frozen=True)
class PatchResult:
    text: str
    changed: bool


def _encode(text: str, encoded: bool) -> str:
    return html.escape(text, quote=True) if encoded else text


def _check_markers(markers: MarkerPair) -> None:
    if not markers.begin or not markers.end:
        raise InvalidArgument("Marker pair needs a non-empty begin and end.")


def _find_literal(current: str, markers: MarkerPair, encoded: bool) -> Optional[Region]:
    start = current.find(markers.begin)
    if start < 0:
        return None
    inner_start = start + len(markers.begin)
    inner_stop = current.find(markers.end, inner_start)
    if inner_stop < 0:
        return None
    return Region(start, inner_start, inner_stop, inner_stop + len(markers.end), encoded)


def find_region(
    current: str, markers: MarkerPair, encoding: EncodingMode = EncodingMode.PLAIN
) -> Optional[Region]:
    """First complete region in either form, or None."""
    _check_markers(markers)
    enc_markers = markers.encoded()
    if enc_markers == markers:
        # Both forms look the same; the target's declared mode decides.
        return _find_literal(current, markers, encoding is EncodingMode.HTML)
    found = [
        r
        for r in (_find_literal(current, markers, False), _find_literal(current, enc_markers, True))
        if r is not None
    ]
    if not found:
        return None
    return min(found, key=lambda r: r.start)


def _find_anchor(current: str, anchor: Optional[str], encoded: bool) -> Optional[int]:
    if not anchor:
        return None
    needles = [anchor]
    if encoded and html.escape(anchor, quote=True) != anchor:
        needles.append(html.escape(anchor, quote=True))
    positions = []
    for needle in needles:
        m = re.search(re.escape(needle), current, re.IGNORECASE)
        if m:
            positions.append(m.start())
    return min(positions) if positions else None


def apply_patch(
    current: str,
    fragment: str,
    markers: MarkerPair = DEFAULT_MARKERS,
    encoding: EncodingMode = EncodingMode.PLAIN,
    anchor: Optional[str] = None,
) -> PatchResult:
    """Replace the marked region with fragment, or insert a new region when none exists.

    Insertion goes right before the first case-insensitive occurrence of anchor when one
    is given and present; otherwise the block is appended on its own line.
    """
    region = find_region(current, markers, encoding)
    encoded = region.encoded if region is not None else encoding is EncodingMode.HTML
    wrap = markers.encoded() if encoded else markers
    body = _encode(fragment, encoded)
    if markers.end in fragment or wrap.end in body:
        raise InvalidArgument("Fragment contains the end marker; refusing to corrupt the region boundary.")
    block = wrap.begin + body + wrap.end

    if region is not None:
        nxt = current[: region.start] + block + current[region.stop :]
    else:
        pos = _find_anchor(current, anchor, encoded)
        if pos is not None:
            nxt = current[:pos] + block + current[pos:]
        else:
            sep = "" if current.endswith("\n") else "\n"
            nxt = current + sep + block + "\n"

    if nxt == current:
        return PatchResult(current, False)
    return PatchResult(nxt, True)


def extract_patched_region(
    current: str, markers: MarkerPair = DEFAULT_MARKERS, encoding: EncodingMode = EncodingMode.PLAIN
) -> str:
    """Decoded inner content of the first region, or "" when there is none."""
    region = find_region(current, markers, encoding)
    if region is None:
        return ""
    inner = current[region.inner_start : region.inner_stop]
    return html.unescape(inner) if region.encoded else inner


def format_diff(old: str, new: str) -> str:
    """Line-by-line diff for previews: '  ' same, '- ' old only, '+ ' new only."""
    a = old.split("\n")
    b = new.split("\n")
    out = []
    for i in range(max(len(a), len(b))):
        la = a[i] if i < len(a) else ""
        lb = b[i] if i < len(b) else ""
        if la == lb:
            out.append("  " + la)
            continue
        if la:
            out.append("- " + la)
        if lb:
            out.append("+ " + lb)
    return "\n".join(out)
