"""Tests for favicon set generation and image helpers."""

import io

import pytest
from PIL import Image

from rebrand.core.errors import InvalidArgument
from rebrand.core.icon_generator import ICO_NAME, MASKABLE_NAME, PNG_SIZES, IconGenerator, detect_assets, png_name
from rebrand.core.icon_packer import read_icon_directory
from rebrand.core.imaging import fit_within, render_square_png, resize_image, sniff_mime


def test_fit_within():
    assert fit_within(1000, 500, 200, 200) == (200, 100)
    assert fit_within(100, 50, 200, 200) == (100, 50)
    assert fit_within(1000, 500, 0, 100) == (200, 100)
    assert fit_within(1000, 500, 250, 0) == (250, 125)
    assert fit_within(10, 10) == (10, 10)
    # a single bound scales up as well
    assert fit_within(50, 25, 0, 100) == (200, 100)
    with pytest.raises(InvalidArgument):
        fit_within(0, 10, 5, 5)


def test_render_square_png_centers(png_factory):
    img = Image.open(io.BytesIO(png_factory(200, 100)))
    out = Image.open(io.BytesIO(render_square_png(img, 64)))
    assert out.size == (64, 64)
    assert out.mode == "RGBA"
    assert out.getpixel((0, 0))[3] == 0
    assert out.getpixel((32, 32))[3] == 255


def test_resize_image_to_jpeg_and_passthrough(png_factory):
    src = png_factory(800, 400)
    jpeg = resize_image(src, 400, 400, "JPEG")
    img = Image.open(io.BytesIO(jpeg))
    assert img.format == "JPEG" and img.size == (400, 200)
    small = png_factory(100, 50)
    assert resize_image(small, 400, 400, "PNG") is small


def test_sniff_mime(png_factory, jpeg_factory):
    assert sniff_mime(png_factory(8, 8)) == "image/png"
    assert sniff_mime(jpeg_factory(8, 8)) == "image/jpeg"
    assert sniff_mime(b"<?php echo 1;") == "application/octet-stream"


def test_render_full_set(png_factory):
    files = IconGenerator().render(png_factory(512, 512), include_maskable=True)
    assert set(files) == {png_name(s) for s in PNG_SIZES} | {MASKABLE_NAME, ICO_NAME}
    assert Image.open(io.BytesIO(files[png_name(180)])).size == (180, 180)
    entries = read_icon_directory(files[ICO_NAME])
    assert [e.width for e in entries] == [16, 32, 48, 64]
    ico = files[ICO_NAME]
    first = entries[0]
    assert ico[first.offset : first.offset + first.length] == files[png_name(16)]


def test_rejects_non_png_master(jpeg_factory):
    with pytest.raises(InvalidArgument):
        IconGenerator().render(jpeg_factory(512, 512))


def test_rejects_small_master(png_factory):
    with pytest.raises(InvalidArgument, match="too small"):
        IconGenerator().render(png_factory(32, 32))


def test_ico_sizes_must_be_rendered():
    with pytest.raises(InvalidArgument):
        IconGenerator(png_sizes=(32, 64), ico_sizes=(16, 32))


def test_generate_writes_every_file_and_snippet(png_factory):
    written = {}
    gen = IconGenerator("/icons")
    result = gen.generate(png_factory(256, 256), written.__setitem__, theme_color="#112233")
    assert result.files == list(written)
    assert result.files[-1] == ICO_NAME
    assert MASKABLE_NAME not in written
    assert '<link rel="icon" type="image/x-icon" href="/icons/favicon.ico">' in result.snippet
    assert '<link rel="apple-touch-icon" sizes="180x180" href="/icons/favicon-180x180.png">' in result.snippet
    assert '<meta name="theme-color" content="#112233">' in result.snippet
    assert "?v=" not in result.snippet


def test_generate_writes_nothing_on_bad_master(jpeg_factory):
    written = {}
    with pytest.raises(InvalidArgument):
        IconGenerator().generate(jpeg_factory(300, 300), written.__setitem__)
    assert written == {}


def test_detect_assets(tmp_path, png_factory):
    assert not any(detect_assets(tmp_path / "missing").values())
    written = {}
    IconGenerator().generate(png_factory(64, 64), written.__setitem__)
    for name, data in written.items():
        (tmp_path / name).write_bytes(data)
    found = detect_assets(tmp_path)
    assert list(found)[-1] == ICO_NAME
    assert found[ICO_NAME] and found[png_name(512)]
    assert found[MASKABLE_NAME] is False
