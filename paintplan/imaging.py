"""
imaging.py — Reference-image loading and downsampling.

The plan always keeps the caller's original image; downsampled copies are
only what gets sent to a model (local backend, part discovery).
"""

from __future__ import annotations

import base64
import io
import logging
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image

from .models import ReferenceImage

logger = logging.getLogger(__name__)

MIME_BY_SUFFIX = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
}


def load_reference_image(path: Path) -> ReferenceImage:
    path = Path(path)
    mime = MIME_BY_SUFFIX.get(path.suffix.lower(), "image/jpeg")
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return ReferenceImage(data=data, type=mime)


def downsample_image(image_bytes: bytes, max_dim: int, quality: int = 85) -> bytes:
    """
    Shrink so the longest side is at most max_dim and re-encode as RGB JPEG.

    Images already within bounds are still re-encoded (strips alpha and
    metadata, normalizes the format for the local server).
    """
    img = Image.open(io.BytesIO(image_bytes))
    original = img.size
    img = img.convert("RGB")
    img.thumbnail((max_dim, max_dim), Image.LANCZOS)
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    out = buf.getvalue()
    logger.info(
        f"Downsampled image {original[0]}x{original[1]} → {img.size[0]}x{img.size[1]} "
        f"({len(image_bytes) // 1024} KB → {len(out) // 1024} KB)"
    )
    return out


def prepare_for_model(
    image: ReferenceImage,
    max_dim: Optional[int],
    quality: int = 85,
) -> Tuple[bytes, str]:
    """Bytes and MIME type to send to a model: the original, or a JPEG copy capped at max_dim."""
    raw = image.to_bytes()
    if not max_dim:
        return raw, image.type
    return downsample_image(raw, max_dim, quality), "image/jpeg"
