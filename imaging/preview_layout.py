"""
Percent-based layout consumed by the browser preview.

The preview positions the print area and its bands with CSS percentages. The
numbers are derived from the same integer rects the print file is composited
with, so preview and physical print cannot drift apart.
"""
from __future__ import annotations

from typing import Dict, Optional

from imaging.print_geometry import Rect
from imaging.print_layout import LayoutVariant, PrintLayout


def _percent(part: int, whole: int) -> float:
    return round(part * 100 / whole, 4)


def _relative(rect: Rect, parent: Rect) -> Dict[str, float]:
    return {
        "left": _percent(rect.left - parent.left, parent.width),
        "top": _percent(rect.top - parent.top, parent.height),
        "width": _percent(rect.width, parent.width),
        "height": _percent(rect.height, parent.height),
    }


def preview_layout(layout: PrintLayout, variant: Optional[LayoutVariant] = None) -> dict:
    variant = variant or layout.layout_variant
    rects = layout.resolve_rects(variant)
    canvas = Rect(0, 0, layout.canvas_size, layout.canvas_size)
    print_area = rects["print_area"]

    preview = {
        "version": layout.version,
        "layoutVariant": variant.value,
        "canvasSize": layout.canvas_size,
        # Relative to the whole canvas / product mockup
        "printArea": _relative(print_area, canvas),
        # Relative to the print area box
        "art": _relative(rects["art"], print_area),
    }
    if "qr" in rects:
        preview["qr"] = _relative(rects["qr"], print_area)
    return preview
