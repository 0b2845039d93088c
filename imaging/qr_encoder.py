from __future__ import annotations

from typing import Tuple, Union

import qrcode
from PIL import Image, ImageColor, ImageOps
from qrcode.exceptions import DataOverflowError

from imaging.compositor import encode_png
from imaging.print_errors import QrEncodingError

Color = Union[str, Tuple[int, int, int], Tuple[int, int, int, int]]

BLACK = "#000000ff"
TRANSPARENT_WHITE = "#ffffff00"
OPAQUE_WHITE = "#ffffffff"

_ERROR_CORRECTION = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}


def _rgba(color: Color) -> Tuple[int, int, int, int]:
    try:
        rgb = ImageColor.getrgb(color) if isinstance(color, str) else tuple(color)
    except ValueError as e:
        raise QrEncodingError(f"Invalid QR color: {color!r}") from e
    if len(rgb) == 3:
        return (*rgb, 255)
    if len(rgb) == 4:
        return rgb
    raise QrEncodingError(f"Invalid QR color: {color!r}")


def encode_qr_image(
        target_url: str,
        pixel_width: int,
        margin: int = 0,
        dark_color: Color = BLACK,
        light_color: Color = TRANSPARENT_WHITE,
        error_correction: str = "M",
) -> Image.Image:
    if not target_url:
        raise QrEncodingError("QR target URL is empty")
    if pixel_width <= 0:
        raise QrEncodingError(f"pixel_width must be > 0 (got {pixel_width})")
    if margin < 0:
        raise QrEncodingError(f"margin must be >= 0 (got {margin})")
    if error_correction not in _ERROR_CORRECTION:
        raise QrEncodingError(f"Unknown error correction level: {error_correction!r}")

    qr = qrcode.QRCode(
        error_correction=_ERROR_CORRECTION[error_correction],
        border=margin,
    )
    qr.add_data(target_url)
    try:
        qr.make(fit=True)
    except (DataOverflowError, ValueError) as e:
        raise QrEncodingError(
            f"QR payload of {len(target_url)} characters exceeds capacity at level "
            f"{error_correction}; use a short identifier instead of a full URL"
        ) from e

    needed = qr.modules_count + 2 * margin
    if pixel_width < needed:
        raise QrEncodingError(
            f"QR needs at least {needed}px for {qr.modules_count} modules plus margin "
            f"(got {pixel_width}px); raise QR_MIN_PIXELS"
        )

    # Dark modules become 255 so the bitmap doubles as a paste mask.
    modules = ImageOps.invert(qr.make_image(fill_color="black", back_color="white").convert("L"))

    # Ensure deterministic size + crisp pixels (avoid antialiasing).
    mask = modules.resize((pixel_width, pixel_width), resample=Image.Resampling.NEAREST)

    img = Image.new("RGBA", (pixel_width, pixel_width), _rgba(light_color))
    img.paste(Image.new("RGBA", img.size, _rgba(dark_color)), (0, 0), mask)
    return img


def encode_qr(
        target_url: str,
        pixel_width: int,
        margin: int = 0,
        dark_color: Color = BLACK,
        light_color: Color = TRANSPARENT_WHITE,
        error_correction: str = "M",
) -> bytes:
    """Encode `target_url` as a square PNG QR code of `pixel_width` px.

    `margin` is the quiet zone in modules. Pass a transparent `light_color` for
    a QR that is composited onto artwork, or an opaque one for a standalone
    printable asset.
    """
    return encode_png(
        encode_qr_image(
            target_url,
            pixel_width,
            margin=margin,
            dark_color=dark_color,
            light_color=light_color,
            error_correction=error_correction,
        )
    )
