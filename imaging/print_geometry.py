from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict

from imaging.print_errors import InvalidLayoutParameters


@dataclass(frozen=True)
class Rect:
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def box(self) -> tuple[int, int, int, int]:
        """PIL-style (left, upper, right, lower) box."""
        return self.left, self.top, self.right, self.bottom

    def to_dict(self) -> Dict[str, int]:
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
        }


def round_half_up(value: float) -> int:
    # Matches Math.round in the browser preview; built-in round() is half-to-even.
    return int(math.floor(value + 0.5))


def compute_print_area_rect(canvas_size: int, width_percent: float, height_percent: float) -> Rect:
    """Centered print area as a percentage of a square canvas."""
    if canvas_size <= 0:
        raise InvalidLayoutParameters(f"canvas_size must be > 0 (got {canvas_size})")
    for name, percent in (("width_percent", width_percent), ("height_percent", height_percent)):
        if not 0 < percent <= 100:
            raise InvalidLayoutParameters(f"{name} must be in (0, 100] (got {percent})")

    width = round_half_up(canvas_size * width_percent / 100)
    height = round_half_up(canvas_size * height_percent / 100)
    if width < 1 or height < 1:
        raise InvalidLayoutParameters(
            f"Print area {width}x{height} is empty on a {canvas_size}px canvas"
        )

    left = round_half_up((canvas_size - width) / 2)
    top = round_half_up((canvas_size - height) / 2)
    return Rect(left=left, top=top, width=width, height=height)


def compute_combined_rects(
        print_area: Rect,
        art_band_fraction: float = 0.8,
        qr_size_fraction: float = 0.55,
        qr_min_pixels: int = 0,
) -> Dict[str, Rect]:
    """Split the print area into an artwork band on top and a QR band below.

    The QR is a square of `qr_size_fraction` of the smaller of (print width,
    band height), centered in the band. `qr_min_pixels` is a floor for scan
    reliability and wins over the fraction when larger.
    """
    if not 0 < art_band_fraction < 1:
        raise InvalidLayoutParameters(
            f"art_band_fraction must be in (0, 1) (got {art_band_fraction})"
        )
    if not 0 < qr_size_fraction <= 1:
        raise InvalidLayoutParameters(
            f"qr_size_fraction must be in (0, 1] (got {qr_size_fraction})"
        )
    if qr_min_pixels < 0:
        raise InvalidLayoutParameters(f"qr_min_pixels must be >= 0 (got {qr_min_pixels})")

    art_height = round_half_up(print_area.height * art_band_fraction)
    qr_band_height = print_area.height - art_height
    if art_height < 1 or qr_band_height < 1:
        raise InvalidLayoutParameters(
            f"Print area height {print_area.height} leaves no room for both bands"
        )

    art = Rect(
        left=print_area.left,
        top=print_area.top,
        width=print_area.width,
        height=art_height,
    )

    qr_size = max(
        qr_min_pixels,
        round_half_up(min(print_area.width, qr_band_height) * qr_size_fraction),
    )
    qr = Rect(
        left=round_half_up(print_area.left + (print_area.width - qr_size) / 2),
        top=round_half_up(print_area.top + art_height + (qr_band_height - qr_size) / 2),
        width=qr_size,
        height=qr_size,
    )
    return {"art": art, "qr": qr}


def compute_art_only_rect(print_area: Rect) -> Rect:
    return print_area


def contain_rect(source_size: tuple[int, int], slot: Rect) -> Rect:
    """Where a source of `source_size` lands when contain-fitted into `slot`.

    Uniform scale, centered, and never larger than the slot on either axis.
    """
    src_w, src_h = source_size
    if src_w <= 0 or src_h <= 0:
        raise InvalidLayoutParameters(f"Invalid source dimensions {src_w}x{src_h}")
    if slot.width <= 0 or slot.height <= 0:
        raise InvalidLayoutParameters(f"Invalid slot dimensions {slot.width}x{slot.height}")

    scale = min(slot.width / src_w, slot.height / src_h)
    new_w = min(slot.width, max(1, round_half_up(src_w * scale)))
    new_h = min(slot.height, max(1, round_half_up(src_h * scale)))

    return Rect(
        left=slot.left + (slot.width - new_w) // 2,
        top=slot.top + (slot.height - new_h) // 2,
        width=new_w,
        height=new_h,
    )
