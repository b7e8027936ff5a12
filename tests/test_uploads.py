"""Tests for screenshot upload validation."""
from __future__ import annotations

import base64

import pytest

from misfit_alliance.config import UploadSettings
from misfit_alliance.uploads import InvalidUploadError, to_data_url, validate_image


@pytest.mark.parametrize("content_type", ["image/png", "image/jpeg", "IMAGE/WEBP"])
def test_accepts_supported_images(content_type):
    validate_image(content_type, 2048)


def test_rejects_empty_upload():
    with pytest.raises(InvalidUploadError, match="choose a screenshot"):
        validate_image("image/png", 0)
    with pytest.raises(InvalidUploadError):
        validate_image(None, 100)


def test_rejects_unsupported_type():
    with pytest.raises(InvalidUploadError, match="JPG, PNG and WEBP"):
        validate_image("application/pdf", 100)


def test_rejects_oversized_upload():
    settings = UploadSettings(max_bytes=1024 * 1024)
    validate_image("image/png", 1024 * 1024, settings)
    with pytest.raises(InvalidUploadError, match="1MB or smaller"):
        validate_image("image/png", 1024 * 1024 + 1, settings)


def test_data_url_encoding():
    url = to_data_url(b"\x89PNG", "image/PNG")
    assert url.startswith("data:image/png;base64,")
    assert base64.b64decode(url.split(",", 1)[1]) == b"\x89PNG"
