"""
Print-file orchestrator

Sequences one print-file request: fetch the artwork, resolve the layout,
encode the QR, composite, upload, and report back.

Goals:
- Every request is independent; nothing is cached between requests
- Fetch and upload are the only suspension points and both are time-bounded
- Failures come back as a structured result naming the failed step, never as
  a substituted default image
- Re-running the same order overwrites the same storage keys
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

from controller.blob_store import DEFAULT_TIMEOUT_SECONDS, BlobStore, BlobStoreError
from controller.order_ledger import OrderLedger
from imaging.print_errors import ArtworkUnavailable, PrintFileError, UploadFailed
from imaging.print_geometry import Rect
from imaging.print_layout import LayoutVariant, PrintLayout
from imaging.print_renderer import GeneratedAsset, RenderedPrintFile, render_print_file

logger = logging.getLogger(__name__)

QrTargetUrlBuilder = Callable[[str], str]


class PrintFileState(Enum):
    RECEIVED = auto()
    FETCHING_ARTWORK = auto()
    FETCH_FAILED = auto()
    GEOMETRY_COMPUTED = auto()
    ENCODING_QR = auto()
    COMPOSITING = auto()
    UPLOADING = auto()
    DONE = auto()
    FAILED = auto()


def short_link_builder(app_url: str) -> QrTargetUrlBuilder:
    """QR payloads point at a short redirect page instead of embedding the artwork URL."""
    base = app_url.rstrip("/")

    def build(artwork_id: str) -> str:
        return f"{base}/p/{quote(artwork_id, safe='')}"

    return build


@dataclass(frozen=True)
class PrintFileRequest:
    artwork_id: str
    artwork_url: str
    order_id: Optional[str] = None
    layout_variant: Optional[LayoutVariant] = None
    qr_target_url_builder: Optional[QrTargetUrlBuilder] = None

    @property
    def storage_key(self) -> str:
        # Prefer the order so regeneration overwrites rather than duplicates.
        return self.order_id or self.artwork_id


@dataclass(frozen=True)
class PrintFileResult:
    print_file_url: str
    qr_url: Optional[str]
    qr_target_url: str
    canvas_size: int
    rects_used: Dict[str, Rect]
    layout_variant: LayoutVariant
    storage_key: str
    order_recorded: Optional[bool] = None
    states: Tuple[PrintFileState, ...] = ()

    ok = True

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "printFileUrl": self.print_file_url,
            "qrUrl": self.qr_url,
            "qrTargetUrl": self.qr_target_url,
            "canvasSize": self.canvas_size,
            "rectsUsed": {name: rect.to_dict() for name, rect in self.rects_used.items()},
            "layoutVariant": self.layout_variant.value,
            "storageKey": self.storage_key,
            "orderRecorded": self.order_recorded,
        }


@dataclass(frozen=True)
class PrintFileFailure:
    code: str
    message: str
    state: PrintFileState  # terminal: FETCH_FAILED or FAILED
    failed_step: PrintFileState
    asset: Optional[str] = None
    states: Tuple[PrintFileState, ...] = ()

    ok = False

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "state": self.state.name,
            "failedStep": self.failed_step.name,
            "asset": self.asset,
        }


PrintFileOutcome = Union[PrintFileResult, PrintFileFailure]


@dataclass
class _StateTracker:
    request_key: str
    history: List[PrintFileState] = field(default_factory=list)

    @property
    def current(self) -> PrintFileState:
        return self.history[-1]

    def enter(self, state: PrintFileState) -> None:
        self.history.append(state)
        logger.debug("print file %s -> %s", self.request_key, state.name)


def _cache_busted(url: str, data: bytes) -> str:
    # Same key, new content => new URL, so CDNs never serve a stale print file.
    digest = hashlib.sha256(data).hexdigest()[:12]
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}v={digest}"


class PrintFileOrchestrator:
    def __init__(
            self,
            blob_store: BlobStore,
            *,
            qr_target_url_builder: QrTargetUrlBuilder,
            layout: Optional[PrintLayout] = None,
            order_ledger: Optional[OrderLedger] = None,
            fetch_timeout: float = DEFAULT_TIMEOUT_SECONDS,
            upload_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.blob_store = blob_store
        self.layout = (layout or PrintLayout()).validate()
        self.order_ledger = order_ledger
        self.qr_target_url_builder = qr_target_url_builder
        self.fetch_timeout = fetch_timeout
        self.upload_timeout = upload_timeout

    # ---------- Public API ----------

    async def generate_print_file(self, request: PrintFileRequest) -> PrintFileOutcome:
        tracker = _StateTracker(request_key=request.storage_key)
        tracker.enter(PrintFileState.RECEIVED)

        try:
            return await self._run(request, tracker)

        except PrintFileError as e:
            failed_step = tracker.current
            terminal = (
                PrintFileState.FETCH_FAILED
                if failed_step is PrintFileState.FETCHING_ARTWORK
                else PrintFileState.FAILED
            )
            logger.warning(
                "print file %s failed during %s: %s (%s)",
                request.storage_key,
                failed_step.name,
                e.message,
                e.code,
            )
            tracker.enter(terminal)
            return PrintFileFailure(
                code=e.code,
                message=e.message,
                state=terminal,
                failed_step=failed_step,
                asset=e.asset,
                states=tuple(tracker.history),
            )

        except Exception as e:
            failed_step = tracker.current
            logger.exception("print file %s crashed during %s", request.storage_key, failed_step.name)
            tracker.enter(PrintFileState.FAILED)
            return PrintFileFailure(
                code="INTERNAL_ERROR",
                message=str(e) or e.__class__.__name__,
                state=PrintFileState.FAILED,
                failed_step=failed_step,
                states=tuple(tracker.history),
            )

    # ---------- Steps ----------

    async def _run(self, request: PrintFileRequest, tracker: _StateTracker) -> PrintFileResult:
        variant = request.layout_variant or self.layout.layout_variant
        build_target = request.qr_target_url_builder or self.qr_target_url_builder
        qr_target_url = build_target(request.artwork_id)

        tracker.enter(PrintFileState.FETCHING_ARTWORK)
        artwork = await self._fetch_artwork(request.artwork_url)

        # CPU-bound; keep the event loop free for other orders.
        rendered: RenderedPrintFile = await asyncio.to_thread(
            render_print_file,
            artwork=artwork,
            qr_target_url=qr_target_url,
            layout=self.layout,
            variant=variant,
            on_step=lambda name: tracker.enter(PrintFileState[name]),
        )

        tracker.enter(PrintFileState.UPLOADING)
        key = request.storage_key
        print_file_url = await self._upload(rendered.print_file, key)
        qr_url = await self._upload(rendered.qr, key) if rendered.qr is not None else None

        order_recorded = None
        if request.order_id and self.order_ledger is not None:
            order_recorded = await self.order_ledger.record_print_file(
                request.order_id,
                print_file_url,
                qr_url,
                qr_target_url,
            )
            if not order_recorded:
                logger.warning("order %s not found; print file %s not recorded", request.order_id, key)

        tracker.enter(PrintFileState.DONE)
        logger.info(
            "print file %s generated (%s, %d assets)",
            key,
            rendered.variant.value,
            len(rendered.assets),
        )
        return PrintFileResult(
            print_file_url=print_file_url,
            qr_url=qr_url,
            qr_target_url=qr_target_url,
            canvas_size=rendered.canvas_size,
            rects_used=rendered.rects,
            layout_variant=rendered.variant,
            storage_key=key,
            order_recorded=order_recorded,
            states=tuple(tracker.history),
        )

    async def _fetch_artwork(self, artwork_url: str) -> bytes:
        try:
            return await asyncio.wait_for(self.blob_store.fetch(artwork_url), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as e:
            raise ArtworkUnavailable(
                f"Timed out after {self.fetch_timeout}s fetching artwork", asset="artwork"
            ) from e
        except BlobStoreError as e:
            raise ArtworkUnavailable(f"Failed to fetch artwork: {e}", asset="artwork") from e

    async def _upload(self, asset: GeneratedAsset, key: str) -> str:
        path = asset.storage_path(key)
        try:
            url = await asyncio.wait_for(
                self.blob_store.upload(path, asset.data, asset.content_type, upsert=True),
                timeout=self.upload_timeout,
            )
        except asyncio.TimeoutError as e:
            raise UploadFailed(f"Timed out after {self.upload_timeout}s uploading {path}", asset=asset.kind) from e
        except BlobStoreError as e:
            raise UploadFailed(f"Failed to upload {path}: {e}", asset=asset.kind) from e
        return _cache_busted(url, asset.data)
