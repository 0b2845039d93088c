from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from PIL import Image

from imaging.compositor import Layer, composite_on_transparent_canvas, resize_contain
from imaging.print_geometry import Rect
from imaging.print_layout import LayoutVariant, PrintLayout
from imaging.qr_encoder import BLACK, OPAQUE_WHITE, TRANSPARENT_WHITE, encode_qr

PNG = "image/png"

_STORAGE_PREFIXES = {
    "print_file": "print-files",
    "qr": "qr-codes",
}


@dataclass(frozen=True)
class GeneratedAsset:
    kind: str  # "print_file" | "qr"
    data: bytes
    content_type: str = PNG

    def storage_path(self, key: str) -> str:
        return f"{_STORAGE_PREFIXES[self.kind]}/{key}.png"


@dataclass(frozen=True)
class RenderedPrintFile:
    variant: LayoutVariant
    canvas_size: int
    rects: Dict[str, Rect]
    print_file: GeneratedAsset
    qr: Optional[GeneratedAsset] = None

    @property
    def assets(self) -> Tuple[GeneratedAsset, ...]:
        return (self.print_file,) if self.qr is None else (self.print_file, self.qr)


def _slot_layer(image_bytes: bytes, slot: Rect, *, name: str, resample: Image.Resampling) -> Layer:
    fitted = resize_contain(image_bytes, slot.width, slot.height, asset=name, resample=resample)
    return Layer(image_bytes=fitted, left=slot.left, top=slot.top, name=name)


def render_print_file(
        *,
        artwork: bytes,
        qr_target_url: str,
        layout: PrintLayout,
        variant: Optional[LayoutVariant] = None,
        on_step: Optional[Callable[[str], None]] = None,
) -> RenderedPrintFile:
    """Lay out and rasterise the print file for one artwork.

    Combined: artwork in the top band, transparent QR centered in the bottom
    band, both on one canvas. Art-only: artwork fills the print area and the
    QR is returned as a separate opaque asset.
    """
    variant = variant or layout.layout_variant
    step = on_step or (lambda _name: None)

    rects = layout.resolve_rects(variant)
    step("GEOMETRY_COMPUTED")

    step("ENCODING_QR")
    if variant is LayoutVariant.COMBINED_ART_AND_QR:
        qr_slot = rects["qr"]
        qr_bytes = encode_qr(
            qr_target_url,
            qr_slot.width,
            margin=0,
            dark_color=BLACK,
            light_color=TRANSPARENT_WHITE,
            error_correction=layout.qr_error_correction,
        )
    else:
        qr_bytes = encode_qr(
            qr_target_url,
            layout.standalone_qr_size,
            margin=layout.standalone_qr_margin,
            dark_color=BLACK,
            light_color=OPAQUE_WHITE,
            error_correction=layout.qr_error_correction,
        )

    step("COMPOSITING")
    layers = [_slot_layer(artwork, rects["art"], name="artwork", resample=Image.Resampling.LANCZOS)]
    if variant is LayoutVariant.COMBINED_ART_AND_QR:
        # QR modules must stay crisp, so never antialias.
        layers.append(_slot_layer(qr_bytes, rects["qr"], name="qr", resample=Image.Resampling.NEAREST))

    print_file = GeneratedAsset(
        kind="print_file",
        data=composite_on_transparent_canvas(layout.canvas_size, layers),
    )
    return RenderedPrintFile(
        variant=variant,
        canvas_size=layout.canvas_size,
        rects=rects,
        print_file=print_file,
        qr=None if variant is LayoutVariant.COMBINED_ART_AND_QR else GeneratedAsset(kind="qr", data=qr_bytes),
    )
