from __future__ import annotations

import io
import logging
import re
from typing import Callable, Dict, List, Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

URL_IMAGE_REGEX = re.compile(r"\.(?:jpe?g|png|gif|svg)(?:\?.*)?$", re.IGNORECASE)
MIME_IMAGE_REGEX = re.compile(r"^image[/\-\w.+]+$")

Compressor = Callable[[bytes], bytes]


def is_image_url(url: str) -> bool:
    return bool(URL_IMAGE_REGEX.search(url))


def is_image_mime(mime: Optional[str]) -> bool:
    if not mime:
        return False
    return bool(MIME_IMAGE_REGEX.match(mime.split(";")[0].strip()))


def jpeg_lossy(data: bytes) -> bytes:
    """Re-encode at quality 60 without metadata."""
    with Image.open(io.BytesIO(data)) as img:
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=60, optimize=True)
    return out.getvalue()


def png_lossy(data: bytes) -> bytes:
    """Reduce to a 256 colour palette."""
    with Image.open(io.BytesIO(data)) as img:
        if img.mode == "P":
            return data
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        quantized = img.quantize(colors=256, method=Image.Quantize.FASTOCTREE)
        out = io.BytesIO()
        quantized.save(out, format="PNG", optimize=True)
    return out.getvalue()


def png_lossless(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as img:
        out = io.BytesIO()
        img.save(out, format="PNG", optimize=True)
    return out.getvalue()


def gif_optimize(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as img:
        out = io.BytesIO()
        img.save(out, format="GIF", optimize=True, save_all=getattr(img, "is_animated", False))
    return out.getvalue()


DEFAULT_COMPRESSORS: Dict[str, List[Compressor]] = {
    "image/jpeg": [jpeg_lossy],
    "image/png": [png_lossy, png_lossless],
    "image/gif": [gif_optimize],
}


class ImageCompressor:
    """Runs the compressor chain registered for an image MIME type.

    Each step receives the current best bytes; its output is kept only when
    it is smaller. Formats without compressors pass through unchanged.
    """

    def __init__(self, compressors: Optional[Dict[str, List[Compressor]]] = None) -> None:
        source = DEFAULT_COMPRESSORS if compressors is None else compressors
        self._compressors = {mime: list(chain) for mime, chain in source.items()}

    def register(self, mime: str, compressor: Compressor) -> None:
        self._compressors.setdefault(mime, []).append(compressor)

    def compress(self, data: bytes, mime: Optional[str]) -> bytes:
        if not mime:
            return data
        chain = self._compressors.get(mime.split(";")[0].strip().lower(), [])
        best = data
        for step in chain:
            try:
                candidate = step(best)
            except (UnidentifiedImageError, OSError, ValueError) as exc:
                logger.warning("Image compression step %s failed for %s: %s", getattr(step, "__name__", step), mime, exc)
                continue
            if len(candidate) < len(best):
                best = candidate
        return best
