#!/usr/bin/env python
"""
Render a print file from a local artwork image, without touching the network.

    python main.py artwork.png --artwork-id abc123 --out ./out
"""
import argparse
import logging
import sys
from pathlib import Path

from controller.print_file_orchestrator import short_link_builder
from imaging.print_errors import PrintFileError
from imaging.print_layout import LayoutVariant, PrintLayout
from imaging.print_renderer import render_print_file

logger = logging.getLogger("print_file")

DEFAULT_APP_URL = "http://localhost:3000"


def build_parser():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("artwork", type=Path, help="artwork image file")
    parser.add_argument("--artwork-id", required=True, help="id encoded in the QR short link")
    parser.add_argument("--order-id", default=None, help="names the output files when given")
    parser.add_argument("--app-url", default=DEFAULT_APP_URL, help="base URL of the QR redirect page")
    parser.add_argument(
        "--variant",
        choices=[variant.value for variant in LayoutVariant],
        default=None,
        help="override LAYOUT_VARIANT",
    )
    parser.add_argument("--out", type=Path, default=Path("."), help="output directory")
    return parser


def render_to_directory(artwork_path, artwork_id, out_dir, *, order_id=None, app_url=DEFAULT_APP_URL,
                        variant=None, layout=None):
    """Render and write every asset; returns the written paths."""
    layout = layout or PrintLayout.from_env()
    rendered = render_print_file(
        artwork=artwork_path.read_bytes(),
        qr_target_url=short_link_builder(app_url)(artwork_id),
        layout=layout,
        variant=LayoutVariant.parse(variant) if variant else None,
    )

    key = order_id or artwork_id
    written = []
    for asset in rendered.assets:
        path = out_dir / asset.storage_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(asset.data)
        written.append(path)

    for name, rect in rendered.rects.items():
        logger.info("%s: %s", name, rect.to_dict())
    return written


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    if not args.artwork.is_file():
        logger.error("Artwork file does not exist: %s", args.artwork)
        return 2

    try:
        written = render_to_directory(
            args.artwork,
            args.artwork_id,
            args.out,
            order_id=args.order_id,
            app_url=args.app_url,
            variant=args.variant,
        )
    except PrintFileError as e:
        logger.error("%s: %s", e.code, e.message)
        return 1

    for path in written:
        print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
