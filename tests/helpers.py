import io
from typing import Tuple

from PIL import Image


def make_png(
        size: Tuple[int, int] = (50, 50),
        color: Tuple[int, ...] = (255, 0, 0, 255),
) -> bytes:
    """Solid-color RGBA PNG bytes."""
    out = io.BytesIO()
    Image.new("RGBA", size, color).save(out, format="PNG")
    return out.getvalue()


def open_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def alpha_bbox(img: Image.Image):
    """Bounding box of the non-transparent pixels, or None."""
    return img.getchannel("A").getbbox()
