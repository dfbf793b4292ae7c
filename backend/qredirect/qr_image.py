import logging
import os
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import segno
from PIL import Image

from .errors import ValidationError

logger = logging.getLogger(__name__)

MEDIA_TYPES = {"png": "image/png", "svg": "image/svg+xml"}

# Fraction of the symbol width the logo may cover; error level H recovers ~30%
LOGO_RATIO = 0.22


@dataclass
class ImageOptions:
    format: str = "png"
    size: int = 500
    dark: str = "#000000"
    light: str = "#ffffff"
    border: int = 1
    logo_path: Optional[str] = None


def get_logo_path() -> Optional[str]:
    return os.getenv("QR_LOGO_PATH") or None


def _make(address: str, options: ImageOptions):
    # Logos hide modules, so use the highest error correction level
    error = "h" if options.logo_path else "m"
    return segno.make(address, error=error, micro=False)


def _scale_for(qr, options: ImageOptions) -> int:
    width, height = qr.symbol_size(border=options.border)
    return max(1, int(options.size // max(width, height)))


def _overlay_logo(png: bytes, logo_path: str) -> bytes:
    base = Image.open(BytesIO(png)).convert("RGBA")
    try:
        logo = Image.open(logo_path).convert("RGBA")
    except (OSError, ValueError) as e:
        raise ValidationError("Logo image could not be read", context={"logo": logo_path}) from e

    side = max(1, int(base.width * LOGO_RATIO))
    logo.thumbnail((side, side))
    offset = ((base.width - logo.width) // 2, (base.height - logo.height) // 2)
    base.alpha_composite(logo, dest=offset)

    out = BytesIO()
    base.save(out, format="PNG")
    return out.getvalue()


def render(address: str, options: ImageOptions) -> bytes:
    """Render the public address of a QR code as PNG or SVG bytes."""
    if options.format not in MEDIA_TYPES:
        raise ValidationError(f"Unsupported image format '{options.format}'", context={"field": "format"})
    if options.format == "svg" and options.logo_path:
        raise ValidationError("Logos are only supported for PNG images", context={"field": "format"})

    qr = _make(address, options)
    out = BytesIO()
    try:
        qr.save(out, kind=options.format, dark=options.dark, light=options.light,
                border=options.border, scale=_scale_for(qr, options))
    except ValueError as e:
        raise ValidationError(f"Invalid image options: {e}") from e

    data = out.getvalue()
    if options.logo_path:
        data = _overlay_logo(data, options.logo_path)
    logger.debug("rendered %s image for %s", options.format, address)
    return data
