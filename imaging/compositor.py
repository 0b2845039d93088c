from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from imaging.print_errors import CompositingError, InvalidLayoutParameters, UnsupportedImageFormat
from imaging.print_geometry import Rect, contain_rect

logger = logging.getLogger(__name__)

TRANSPARENT = (0, 0, 0, 0)


@dataclass(frozen=True)
class Layer:
    image_bytes: bytes
    left: int
    top: int
    name: str = "layer"


def decode_image(image_bytes: bytes, *, asset: str = "image") -> Image.Image:
    """Decode raster bytes into an RGBA image, forcing a full load."""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    # PIL reports corrupt chunks as SyntaxError and truncation as OSError.
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise UnsupportedImageFormat(f"Cannot decode {asset} as a raster image", asset=asset) from e
    return img.convert("RGBA")


def encode_png(img: Image.Image) -> bytes:
    out = io.BytesIO()
    img.save(out, format="PNG")
    return out.getvalue()


def fit_contain(
        img: Image.Image,
        target_size: Tuple[int, int],
        resample: Image.Resampling = Image.Resampling.LANCZOS,
) -> Image.Image:
    """Resize `img` to fit within `target_size` without cropping or distortion.

    The result is exactly `target_size`; space not covered by the scaled image
    is fully transparent.
    """
    target_w, target_h = target_size
    placed = contain_rect(img.size, Rect(0, 0, target_w, target_h))

    resized = img if img.size == placed.size else img.resize(placed.size, resample=resample)
    canvas = Image.new("RGBA", (target_w, target_h), TRANSPARENT)
    canvas.paste(resized, (placed.left, placed.top))
    return canvas


def resize_contain(
        source_image_bytes: bytes,
        target_width: int,
        target_height: int,
        *,
        asset: str = "image",
        resample: Image.Resampling = Image.Resampling.LANCZOS,
) -> bytes:
    if target_width <= 0 or target_height <= 0:
        raise InvalidLayoutParameters(f"Invalid target box {target_width}x{target_height}")
    img = decode_image(source_image_bytes, asset=asset)
    return encode_png(fit_contain(img, (target_width, target_height), resample=resample))


def composite_on_transparent_canvas(canvas_size: int, layers: Sequence[Layer]) -> bytes:
    """Draw `layers` in order onto a transparent square canvas and return PNG bytes."""
    if canvas_size <= 0:
        raise InvalidLayoutParameters(f"canvas_size must be > 0 (got {canvas_size})")

    canvas = Image.new("RGBA", (canvas_size, canvas_size), TRANSPARENT)

    for layer in layers:
        img = decode_image(layer.image_bytes, asset=layer.name)
        placement = Rect(layer.left, layer.top, img.width, img.height)

        if placement.left < 0 or placement.top < 0 or placement.right > canvas_size or placement.bottom > canvas_size:
            logger.error(
                "Layer %r at %s exceeds %dx%d canvas; refusing to clip",
                layer.name,
                placement.to_dict(),
                canvas_size,
                canvas_size,
            )
            raise CompositingError(
                f"Layer {layer.name!r} at {placement.box} exceeds {canvas_size}x{canvas_size} canvas",
                asset=layer.name,
            )

        canvas.alpha_composite(img, dest=(placement.left, placement.top))

    return encode_png(canvas)
