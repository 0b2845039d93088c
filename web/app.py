"""
Flask application exposing the print-file pipeline to the storefront.
"""
from __future__ import annotations

import base64
import logging
import os
from typing import Optional

from flask import Flask, jsonify, request

from controller.blob_store import DEFAULT_TIMEOUT_SECONDS, SupabaseBlobStore
from controller.order_ledger import OrderLedger
from controller.print_file_orchestrator import (
    PrintFileOrchestrator,
    PrintFileRequest,
    short_link_builder,
)
from imaging.print_errors import ArtworkUnavailable, PrintFileError, UploadFailed
from imaging.print_layout import LayoutVariant, PrintLayout
from imaging.preview_layout import preview_layout
from imaging.qr_encoder import TRANSPARENT_WHITE, encode_qr

logger = logging.getLogger(__name__)

# Upstream services we depend on, as opposed to our own bugs.
_BAD_GATEWAY_CODES = {ArtworkUnavailable.code, UploadFailed.code}

GENERATE_QR_SIZE = 400


def _orchestrator_from_env(layout: PrintLayout, app_url: str, order_ledger: Optional[OrderLedger]):
    timeout = float(os.environ.get("HTTP_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
    blob_store = SupabaseBlobStore(
        base_url=os.environ["SUPABASE_URL"],
        bucket=os.environ.get("STORAGE_BUCKET", "artworks"),
        service_key=os.environ["SUPABASE_SERVICE_ROLE_KEY"],
        timeout=timeout,
    )
    return PrintFileOrchestrator(
        blob_store,
        layout=layout,
        qr_target_url_builder=short_link_builder(app_url),
        order_ledger=order_ledger,
        fetch_timeout=timeout,
        upload_timeout=timeout,
    )


def create_app(
        orchestrator: Optional[PrintFileOrchestrator] = None,
        layout: Optional[PrintLayout] = None,
        app_url: Optional[str] = None,
        order_ledger: Optional[OrderLedger] = None,
):
    if app_url is None:
        app_url = os.environ.get("APP_URL", "http://localhost:3000")

    if orchestrator is None:
        layout = layout or PrintLayout.from_env()
        orchestrator = _orchestrator_from_env(layout, app_url, order_ledger)
    layout = orchestrator.layout

    app = Flask(__name__)
    app.config["APP_URL"] = app_url
    app.orchestrator = orchestrator

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"ok": True, "layoutVersion": layout.version})

    @app.route("/print-layout", methods=["GET"])
    def print_layout():
        variant = request.args.get("variant")
        try:
            parsed = LayoutVariant.parse(variant) if variant else None
        except PrintFileError as e:
            return jsonify({"ok": False, "error": e.code, "message": e.message}), 400
        return jsonify(preview_layout(layout, parsed))

    @app.route("/api/orders/generate-print-file", methods=["GET"])
    def describe_generate_print_file():
        return jsonify({
            "ok": True,
            "route": "/api/orders/generate-print-file",
            "methods": ["POST"],
        })

    @app.route("/api/orders/generate-print-file", methods=["POST"])
    async def generate_print_file():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        artwork_id = data.get("artworkId")
        artwork_url = data.get("artworkUrl")

        if not artwork_id or not artwork_url:
            return jsonify({"ok": False, "error": "artworkId and artworkUrl are required"}), 400

        try:
            variant = LayoutVariant.parse(data["layoutVariant"]) if data.get("layoutVariant") else None
        except PrintFileError as e:
            return jsonify({"ok": False, "error": e.code, "message": e.message}), 400

        outcome = await app.orchestrator.generate_print_file(
            PrintFileRequest(
                artwork_id=str(artwork_id),
                artwork_url=str(artwork_url),
                order_id=str(data["orderId"]) if data.get("orderId") else None,
                layout_variant=variant,
            )
        )

        if outcome.ok:
            return jsonify(outcome.to_dict())

        status = 502 if outcome.code in _BAD_GATEWAY_CODES else 500
        return jsonify(outcome.to_dict()), status

    @app.route("/api/generate-qr", methods=["POST"])
    def generate_qr():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        target_id = data.get("artworkId") or data.get("orderId")
        if not target_id:
            return jsonify({"ok": False, "error": "artworkId or orderId is required"}), 400

        target_url = app.orchestrator.qr_target_url_builder(str(target_id))
        try:
            png = encode_qr(
                target_url,
                GENERATE_QR_SIZE,
                margin=0,
                light_color=TRANSPARENT_WHITE,
                error_correction=layout.qr_error_correction,
            )
        except PrintFileError as e:
            logger.warning("QR generation for %s failed: %s", target_id, e.message)
            return jsonify({"ok": False, "error": e.code, "message": e.message}), 500

        return jsonify({
            "ok": True,
            "targetUrl": target_url,
            "qrDataUrl": "data:image/png;base64," + base64.b64encode(png).decode("ascii"),
        })

    return app
