"""Artwork image handling backed by Firebase Storage."""

from __future__ import annotations

import io
import logging
import re
import time
import uuid
from typing import Optional, Tuple
from urllib.parse import quote, unquote, urlparse

from google.api_core import exceptions as gcp_exceptions
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IMAGE_PATH_PREFIX = "student-reports"
DOWNLOAD_URL_TEMPLATE = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}?alt=media&token={token}"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class InvalidImageError(ValueError):
    """Raised when uploaded artwork cannot be decoded as an image."""


def generate_image_path(student_id: str, filename: str, *, timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    sanitized = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    return f"{IMAGE_PATH_PREFIX}/{student_id}/{timestamp_ms}_{sanitized}"


def compress_image(data: bytes, max_width: int = 800, quality: float = 0.8) -> Tuple[bytes, str]:
    """Downscale ``data`` to ``max_width`` and re-encode it as JPEG.

    Returns the encoded bytes and their content type.
    """

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            width, height = image.size
            if width > max_width:
                new_height = max(1, round(height * max_width / width))
                image = image.resize((max_width, new_height), Image.LANCZOS)
            if image.mode != "RGB":
                image = image.convert("RGB")

            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=int(round(quality * 100)), optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError("Uploaded artwork is not a readable image") from exc

    return buffer.getvalue(), "image/jpeg"


def upload_image(bucket, data: bytes, path: str, content_type: str) -> str:
    """Upload ``data`` to ``path`` and return a Firebase download URL."""

    token = uuid.uuid4().hex
    blob = bucket.blob(path)
    blob.metadata = {"firebaseStorageDownloadTokens": token}
    blob.upload_from_string(data, content_type=content_type)
    logger.info("Uploaded artwork to %s (%s bytes)", path, len(data))
    return DOWNLOAD_URL_TEMPLATE.format(bucket=bucket.name, path=quote(path, safe=""), token=token)


def storage_path_from_url(url: str) -> Optional[str]:
    """Extract the object path from a Firebase Storage download URL."""

    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    _, marker, encoded_path = parsed.path.partition("/o/")
    if not marker or not encoded_path:
        return None
    return unquote(encoded_path)


def delete_image_by_url(bucket, url: Optional[str]) -> None:
    """Delete the object behind ``url``; failures never propagate."""

    if not url:
        return

    path = storage_path_from_url(url)
    if not path:
        logger.error("Error deleting from Firebase Storage: invalid storage URL %s", url)
        return

    try:
        bucket.blob(path).delete()
        logger.info("Deleted artwork %s", path)
    except gcp_exceptions.NotFound:
        return
    except Exception as exc:  # pragma: no cover - network and permission failures vary
        logger.error("Error deleting from Firebase Storage: %s", exc)
