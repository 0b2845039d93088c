from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Dict, Mapping, Optional

from imaging.print_errors import InvalidLayoutParameters
from imaging.print_geometry import (
    Rect,
    compute_art_only_rect,
    compute_combined_rects,
    compute_print_area_rect,
)

# Bump whenever a constant below changes so cached client previews can tell.
LAYOUT_VERSION = "2"

QR_ERROR_CORRECTION_LEVELS = ("L", "M", "Q", "H")


class LayoutVariant(Enum):
    COMBINED_ART_AND_QR = "CombinedArtAndQr"
    ART_ONLY = "ArtOnly"

    @classmethod
    def parse(cls, value: str | "LayoutVariant") -> "LayoutVariant":
        if isinstance(value, cls):
            return value
        for variant in cls:
            if value in (variant.value, variant.name):
                return variant
        raise InvalidLayoutParameters(f"Unknown layout variant: {value!r}")


@dataclass(frozen=True)
class PrintLayout:
    """Layout settings for the flask print file, shared with the live preview."""

    canvas_size: int = 5000  # square, px
    print_area_width_percent: float = 44.0
    print_area_height_percent: float = 33.0

    # Combined variant only: artwork on top, QR band below
    art_band_fraction: float = 0.8
    qr_size_fraction: float = 0.55
    qr_min_pixels: int = 0

    layout_variant: LayoutVariant = LayoutVariant.COMBINED_ART_AND_QR
    qr_error_correction: str = "M"

    # Art-only variant: the QR ships as its own opaque, printable asset
    standalone_qr_size: int = 1024
    standalone_qr_margin: int = 4

    version: str = LAYOUT_VERSION

    def validate(self) -> "PrintLayout":
        if self.qr_error_correction not in QR_ERROR_CORRECTION_LEVELS:
            raise InvalidLayoutParameters(
                f"qr_error_correction must be one of {QR_ERROR_CORRECTION_LEVELS} "
                f"(got {self.qr_error_correction!r})"
            )
        if self.standalone_qr_size <= 0:
            raise InvalidLayoutParameters(
                f"standalone_qr_size must be > 0 (got {self.standalone_qr_size})"
            )
        if self.standalone_qr_margin < 0:
            raise InvalidLayoutParameters(
                f"standalone_qr_margin must be >= 0 (got {self.standalone_qr_margin})"
            )
        # Geometry checks the remaining ranges.
        self.resolve_rects(LayoutVariant.COMBINED_ART_AND_QR)
        return self

    def print_area_rect(self) -> Rect:
        return compute_print_area_rect(
            self.canvas_size,
            self.print_area_width_percent,
            self.print_area_height_percent,
        )

    def resolve_rects(self, variant: Optional[LayoutVariant] = None) -> Dict[str, Rect]:
        """Pixel rects for one variant: always `print_area` and `art`, plus `qr` when combined."""
        variant = variant or self.layout_variant
        print_area = self.print_area_rect()

        if variant is LayoutVariant.ART_ONLY:
            return {"print_area": print_area, "art": compute_art_only_rect(print_area)}

        rects = compute_combined_rects(
            print_area,
            art_band_fraction=self.art_band_fraction,
            qr_size_fraction=self.qr_size_fraction,
            qr_min_pixels=self.qr_min_pixels,
        )
        return {"print_area": print_area, **rects}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PrintLayout":
        """Build a layout from CANVAS_SIZE, PRINT_AREA_WIDTH_PERCENT, ... overrides."""
        environ = os.environ if environ is None else environ
        overrides = {}

        for field in fields(cls):
            if field.name == "version":
                continue
            raw = environ.get(field.name.upper())
            if raw is None or raw.strip() == "":
                continue
            overrides[field.name] = _parse_field(field.name, raw)

        return replace(cls(), **overrides).validate()


_INT_FIELDS = {"canvas_size", "qr_min_pixels", "standalone_qr_size", "standalone_qr_margin"}
_FLOAT_FIELDS = {
    "print_area_width_percent",
    "print_area_height_percent",
    "art_band_fraction",
    "qr_size_fraction",
}


def _parse_field(name: str, raw: str):
    raw = raw.strip()
    try:
        if name in _INT_FIELDS:
            return int(raw)
        if name in _FLOAT_FIELDS:
            return float(raw)
    except ValueError as e:
        raise InvalidLayoutParameters(f"{name.upper()} is not a number: {raw!r}") from e

    if name == "layout_variant":
        return LayoutVariant.parse(raw)
    return raw.upper()
