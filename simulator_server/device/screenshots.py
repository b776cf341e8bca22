"""Screenshot post-processing: scaling and format conversion."""

from __future__ import annotations

import io

from PIL import Image

SUPPORTED_FORMATS = ("png", "jpeg")


def process_screenshot(
    raw_png: bytes,
    format: str = "png",
    scale: float = 1.0,
    quality: int = 85,
) -> tuple[bytes, str]:
    """Scale a raw PNG screenshot and optionally convert it to JPEG.

    Args:
        raw_png: Raw PNG bytes from simctl screenshot.
        format: Output format, "png" or "jpeg".
        scale: Scale factor (0.1 to 1.0). 1.0 keeps the original size.
        quality: JPEG quality (1 to 100). Ignored for PNG.

    Returns:
        Tuple of (processed_bytes, media_type_string).

    Raises:
        ValueError: unsupported format or scale out of range.
        OSError: the capture could not be decoded (PIL.UnidentifiedImageError).
    """
    fmt = format.lower()
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported screenshot format: {format!r}")
    if not 0.1 <= scale <= 1.0:
        raise ValueError(f"Scale must be between 0.1 and 1.0, got {scale}")

    if fmt == "png" and scale == 1.0:
        return raw_png, "image/png"

    img = Image.open(io.BytesIO(raw_png))

    if scale != 1.0:
        new_w = max(1, int(img.width * scale))
        new_h = max(1, int(img.height * scale))
        img = img.resize((new_w, new_h), Image.LANCZOS)

    buf = io.BytesIO()
    if fmt == "jpeg":
        # JPEG has no alpha channel
        if img.mode in ("RGBA", "LA", "P"):
            img = img.convert("RGB")
        img.save(buf, format="JPEG", quality=quality)
        media_type = "image/jpeg"
    else:
        img.save(buf, format="PNG")
        media_type = "image/png"

    return buf.getvalue(), media_type
