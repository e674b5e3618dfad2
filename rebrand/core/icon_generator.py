"""Favicon set from one master PNG: PNG sizes, optional maskable icon, packed favicon.ico, head snippet."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence, Union

from rebrand.core.errors import InvalidArgument
from rebrand.core.icon_packer import IconImage, pack_icon_container
from rebrand.core.imaging import open_image, render_square_png

logger = logging.getLogger(__name__)

PNG_SIZES = (16, 32, 48, 64, 180, 192, 256, 384, 512)
ICO_SIZES = (16, 32, 48, 64)
ICO_NAME = "favicon.ico"
MASKABLE_NAME = "maskable-icon-512x512.png"
MIN_MASTER_SIZE = 64


def png_name(size: int) -> str:
    return f"favicon-{size}x{size}.png"


def detect_assets(icons_dir: Union[str, Path], png_sizes: Sequence[int] = PNG_SIZES) -> dict[str, bool]:
    """Which generated icon files are present, by file name, in generation order."""
    root = Path(icons_dir)
    names = [png_name(s) for s in png_sizes] + [MASKABLE_NAME, ICO_NAME]
    return {name: (root / name).is_file() for name in names}


@dataclass
class GeneratedIcons:
    files: list[str] = field(default_factory=list)
    snippet: str = ""


class IconGenerator:
    """Renders everything in memory first; nothing is written if the master is rejected."""

    def __init__(
        self,
        icons_url: str = "/users/images/rebrand/icons/",
        png_sizes: Sequence[int] = PNG_SIZES,
        ico_sizes: Sequence[int] = ICO_SIZES,
    ) -> None:
        missing = set(ico_sizes) - set(png_sizes)
        if missing:
            raise InvalidArgument(f"ICO sizes must be rendered as PNG too: {sorted(missing)}")
        self.icons_url = icons_url if icons_url.endswith("/") else icons_url + "/"
        self.png_sizes = tuple(png_sizes)
        self.ico_sizes = tuple(ico_sizes)

    def render(self, master: bytes, include_maskable: bool = False) -> dict[str, bytes]:
        """filename -> bytes for the PNG set, the maskable icon and favicon.ico."""
        img = open_image(master)
        if img.format != "PNG":
            raise InvalidArgument("Master image must be a valid PNG.")
        if img.width < MIN_MASTER_SIZE or img.height < MIN_MASTER_SIZE:
            raise InvalidArgument(
                f"Master PNG is too small ({img.width}x{img.height}); provide at least 1024x1024 for best results."
            )
        out = {png_name(sz): render_square_png(img, sz) for sz in self.png_sizes}
        if include_maskable:
            out[MASKABLE_NAME] = render_square_png(img, 512)
        out[ICO_NAME] = pack_icon_container([IconImage(sz, out[png_name(sz)]) for sz in self.ico_sizes])
        return out

    def build_head_snippet(self, include_maskable: bool = False, theme_color: str = "") -> str:
        """<link> tags for the set. No ?v= here; the head patcher adds the asset version."""
        url = lambda name: self.icons_url + name  # noqa: E731
        lines = [
            f'<link rel="icon" type="image/x-icon" href="{url(ICO_NAME)}">',
            f'<link rel="icon" type="image/png" sizes="32x32" href="{url(png_name(32))}">',
            f'<link rel="icon" type="image/png" sizes="16x16" href="{url(png_name(16))}">',
            f'<link rel="apple-touch-icon" sizes="180x180" href="{url(png_name(180))}">',
        ]
        for sz in (192, 256, 384, 512):
            if sz in self.png_sizes:
                lines.append(f'<link rel="icon" type="image/png" sizes="{sz}x{sz}" href="{url(png_name(sz))}">')
        if include_maskable:
            lines.append("<!-- Maskable icon (Android adaptive icons) -->")
            lines.append(f'<link rel="icon" type="image/png" sizes="512x512" href="{url(MASKABLE_NAME)}" purpose="maskable">')
        # PWA lines stay commented until a manifest exists
        lines.append("<!--")
        lines.append("  PWA manifest & theme-color (commented by ReBrand; enable when ready)")
        lines.append('  <link rel="manifest" href="/manifest.webmanifest">')
        if theme_color.strip():
            lines.append(f'  <meta name="theme-color" content="{html.escape(theme_color.strip(), quote=True)}">')
        lines.append("-->")
        return "\n".join(lines) + "\n"

    def generate(
        self,
        master: bytes,
        write: Callable[[str, bytes], None],
        *,
        include_maskable: bool = False,
        theme_color: str = "",
    ) -> GeneratedIcons:
        """Render the set, then hand each file to write(filename, data) in a fixed order, ICO last."""
        rendered = self.render(master, include_maskable=include_maskable)
        result = GeneratedIcons()
        for name, data in rendered.items():
            write(name, data)
            result.files.append(name)
        result.snippet = self.build_head_snippet(include_maskable, theme_color)
        logger.info("Generated %d icon files", len(result.files))
        return result
