"""
Image utilities for system_utils package.
Decodes downloaded artwork and normalizes it to PNG.

Dependencies: none inside the package
"""
from __future__ import annotations
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from logging_config import get_logger

logger = get_logger(__name__)

# Bytes per pixel used to estimate decoded memory (RGBA)
BYTES_PER_PIXEL = 4


@dataclass(frozen=True)
class ArtworkImage:
    """PNG-encoded album art plus the pixel size needed for cost accounting."""
    png_data: bytes
    width: int
    height: int

    @property
    def cost(self) -> int:
        """Estimated uncompressed size, not the encoded size."""
        return self.width * self.height * BYTES_PER_PIXEL


def decode_image(raw: bytes) -> Optional[ArtworkImage]:
    """
    Decode arbitrary image bytes (JPEG from the CDN, PNG from disk) into an ArtworkImage.

    PNG input is kept byte-for-byte; anything else is re-encoded as PNG.
    Returns None for empty, truncated or unrecognized data.
    """
    if not raw:
        return None
    try:
        with Image.open(BytesIO(raw)) as img:
            img.load()
            width, height = img.size
            if img.format == "PNG":
                return ArtworkImage(png_data=bytes(raw), width=width, height=height)
            return ArtworkImage(png_data=encode_png(img), width=width, height=height)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug(f"Image decode failed: {e}")
        return None


def encode_png(img: Image.Image) -> bytes:
    """Encode a Pillow image as PNG, converting palette/CMYK modes first."""
    if img.mode not in ("RGB", "RGBA", "L", "LA"):
        img = img.convert("RGBA")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
