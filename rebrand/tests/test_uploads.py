"""Tests for upload validation."""

import pytest

from rebrand.core.errors import InvalidArgument
from rebrand.core.uploads import IMAGE_MIMES, PNG_MIMES, UploadedFile, validate_upload


def _upload(tmp_path, data: bytes, name="logo.png", mime="image/png"):
    path = tmp_path / "upload.tmp"
    path.write_bytes(data)
    return UploadedFile(temp_path=path, filename=name, size=len(data), mime=mime)


def test_accepts_png(tmp_path, png_factory):
    data = png_factory(10, 10)
    assert validate_upload(_upload(tmp_path, data), 1024 * 1024, PNG_MIMES) == data


def test_rejects_oversize(tmp_path, png_factory):
    data = png_factory(10, 10)
    with pytest.raises(InvalidArgument, match="limit"):
        validate_upload(_upload(tmp_path, data), len(data) - 1, PNG_MIMES)


def test_claimed_mime_is_ignored(tmp_path):
    up = _upload(tmp_path, b"<?php system($_GET['c']);", name="evil.png", mime="image/png")
    with pytest.raises(InvalidArgument, match="application/octet-stream"):
        validate_upload(up, 1024, IMAGE_MIMES)


def test_jpeg_not_allowed_for_icons(tmp_path, jpeg_factory):
    with pytest.raises(InvalidArgument):
        validate_upload(_upload(tmp_path, jpeg_factory(10, 10), mime="image/png"), 1024 * 1024, PNG_MIMES)


def test_missing_and_empty(tmp_path):
    missing = UploadedFile(temp_path=tmp_path / "nope", filename="x.png", size=0)
    with pytest.raises(InvalidArgument, match="missing"):
        validate_upload(missing, 10, PNG_MIMES)
    with pytest.raises(InvalidArgument, match="empty"):
        validate_upload(_upload(tmp_path, b""), 10, PNG_MIMES)
