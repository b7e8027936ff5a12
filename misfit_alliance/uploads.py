"""Screenshot upload validation."""
from __future__ import annotations

import base64

from .config import UploadSettings


class InvalidUploadError(ValueError):
    """Raised when an uploaded screenshot cannot be accepted."""


def validate_image(content_type: str | None, size: int, settings: UploadSettings | None = None) -> None:
    """Reject unsupported or oversized screenshots before anything else runs."""

    settings = settings or UploadSettings()
    if not content_type or size <= 0:
        raise InvalidUploadError("Please choose a screenshot to upload")
    if content_type.lower() not in settings.allowed_types:
        raise InvalidUploadError("Only JPG, PNG and WEBP screenshots are supported")
    if size > settings.max_bytes:
        limit_mb = settings.max_bytes // (1024 * 1024)
        raise InvalidUploadError(f"Screenshots must be {limit_mb}MB or smaller")


def to_data_url(data: bytes, content_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type.lower()};base64,{encoded}"


__all__ = ["InvalidUploadError", "to_data_url", "validate_image"]
