import asyncio
import hashlib
import logging

import pytest

from controller.print_file_orchestrator import (
    PrintFileFailure,
    PrintFileOrchestrator,
    PrintFileRequest,
    PrintFileResult,
    PrintFileState,
    short_link_builder,
)
from imaging.print_errors import InvalidLayoutParameters
from imaging.print_layout import LayoutVariant, PrintLayout
from tests.fakes.fake_blob_store import PUBLIC_BASE, FakeBlobStore
from tests.fakes.fake_order_ledger import FakeOrderLedger
from tests.helpers import make_png, open_png

ARTWORK_URL = "https://blobs.test/public/artworks/art_1.png"
SMALL = PrintLayout(canvas_size=600, qr_min_pixels=40)


def _orchestrator(store, **kwargs):
    kwargs.setdefault("layout", SMALL)
    kwargs.setdefault("qr_target_url_builder", short_link_builder("https://app.test/"))
    return PrintFileOrchestrator(store, **kwargs)


def _store(artwork=None):
    return FakeBlobStore({ARTWORK_URL: artwork or make_png((264, 158))})


def _run(orchestrator, **request_kwargs):
    request_kwargs.setdefault("artwork_id", "art_1")
    request_kwargs.setdefault("artwork_url", ARTWORK_URL)
    return asyncio.run(orchestrator.generate_print_file(PrintFileRequest(**request_kwargs)))


def test_combined_print_file_is_uploaded_under_order_key():
    store = _store()

    result = _run(_orchestrator(store), order_id="ord_1")

    assert isinstance(result, PrintFileResult)
    assert result.ok
    assert result.print_file_url.startswith(f"{PUBLIC_BASE}/print-files/ord_1.png?v=")
    assert result.qr_url is None
    assert result.qr_target_url == "https://app.test/p/art_1"
    assert result.canvas_size == 600
    assert set(result.rects_used) == {"print_area", "art", "qr"}
    assert result.layout_variant is LayoutVariant.COMBINED_ART_AND_QR
    assert result.states == (
        PrintFileState.RECEIVED,
        PrintFileState.FETCHING_ARTWORK,
        PrintFileState.GEOMETRY_COMPUTED,
        PrintFileState.ENCODING_QR,
        PrintFileState.COMPOSITING,
        PrintFileState.UPLOADING,
        PrintFileState.DONE,
    )

    assert store.fetches == [ARTWORK_URL]
    assert len(store.uploads) == 1
    upload = store.uploads[0]
    assert upload["path"] == "print-files/ord_1.png"
    assert upload["content_type"] == "image/png"
    assert upload["upsert"] is True
    assert open_png(upload["data"]).size == (600, 600)


def test_art_only_uploads_separate_qr_under_artwork_key():
    store = _store()

    result = _run(_orchestrator(store), layout_variant=LayoutVariant.ART_ONLY)

    assert result.ok
    assert [u["path"] for u in store.uploads] == ["print-files/art_1.png", "qr-codes/art_1.png"]
    assert result.qr_url.startswith(f"{PUBLIC_BASE}/qr-codes/art_1.png?v=")
    assert set(result.rects_used) == {"print_area", "art"}
    assert result.storage_key == "art_1"


def test_request_can_override_qr_target_builder():
    store = _store()

    result = _run(_orchestrator(store), qr_target_url_builder=lambda artwork_id: f"https://short.test/{artwork_id}")

    assert result.qr_target_url == "https://short.test/art_1"


def test_short_link_builder_escapes_identifier():
    build = short_link_builder("https://app.test")
    assert build("a b/c") == "https://app.test/p/a%20b%2Fc"


def test_missing_artwork_is_fetch_failed():
    store = FakeBlobStore()

    result = _run(_orchestrator(store), order_id="ord_1")

    assert isinstance(result, PrintFileFailure)
    assert not result.ok
    assert result.code == "ARTWORK_UNAVAILABLE"
    assert result.state is PrintFileState.FETCH_FAILED
    assert result.failed_step is PrintFileState.FETCHING_ARTWORK
    assert result.asset == "artwork"
    assert store.uploads == []


def test_artwork_fetch_timeout_is_artwork_unavailable():
    store = _store()
    store.fetch_delay = 1.0

    result = _run(_orchestrator(store, fetch_timeout=0.05))

    assert result.code == "ARTWORK_UNAVAILABLE"
    assert "Timed out" in result.message
    assert result.state is PrintFileState.FETCH_FAILED


def test_upload_error_is_upload_failed():
    store = _store()
    store.upload_status = 503

    result = _run(_orchestrator(store), order_id="ord_1")

    assert result.code == "UPLOAD_FAILED"
    assert result.state is PrintFileState.FAILED
    assert result.failed_step is PrintFileState.UPLOADING
    assert result.asset == "print_file"


def test_upload_timeout_is_upload_failed():
    store = _store()
    store.upload_delay = 1.0

    result = _run(_orchestrator(store, upload_timeout=0.05))

    assert result.code == "UPLOAD_FAILED"
    assert result.failed_step is PrintFileState.UPLOADING


def test_corrupt_artwork_fails_without_uploading_anything():
    store = _store(artwork=b"\x89PNG\r\n\x1a\n garbage")

    result = _run(_orchestrator(store))

    assert result.code == "UNSUPPORTED_IMAGE_FORMAT"
    assert result.failed_step is PrintFileState.COMPOSITING
    assert result.asset == "artwork"
    assert store.uploads == []


def test_oversized_qr_payload_fails_during_encoding():
    store = _store()

    result = _run(
        _orchestrator(store),
        qr_target_url_builder=lambda _id: "https://app.test/p?img=" + "y" * 3000,
    )

    assert result.code == "QR_ENCODING_ERROR"
    assert result.failed_step is PrintFileState.ENCODING_QR
    assert result.states[-1] is PrintFileState.FAILED



def test_qr_slot_below_module_grid_fails_during_encoding():
    store = _store()

    result = _run(_orchestrator(store, layout=PrintLayout(canvas_size=600)), order_id="ord_1")

    assert result.code == "QR_ENCODING_ERROR"
    assert "QR_MIN_PIXELS" in result.message
    assert result.failed_step is PrintFileState.ENCODING_QR
    assert store.uploads == []

def test_regenerating_an_order_overwrites_the_same_key():
    store = _store()
    orchestrator = _orchestrator(store)

    first = _run(orchestrator, order_id="ord_7")
    store.objects[ARTWORK_URL] = make_png((264, 158), (0, 0, 255, 255))
    second = _run(orchestrator, order_id="ord_7")

    assert [u["path"] for u in store.uploads] == ["print-files/ord_7.png", "print-files/ord_7.png"]
    assert all(u["upsert"] for u in store.uploads)

    # New content => new URL, so the second file is never served from a stale cache
    assert first.print_file_url != second.print_file_url
    digest = hashlib.sha256(store.uploads[-1]["data"]).hexdigest()[:12]
    assert second.print_file_url.endswith(f"?v={digest}")
    assert store.objects[f"{PUBLIC_BASE}/print-files/ord_7.png"] == store.uploads[-1]["data"]


def test_identical_regeneration_returns_identical_url():
    store = _store()
    orchestrator = _orchestrator(store)

    first = _run(orchestrator, order_id="ord_8")
    second = _run(orchestrator, order_id="ord_8")

    assert first.print_file_url == second.print_file_url


def test_order_ledger_records_urls_for_known_order():
    store = _store()
    ledger = FakeOrderLedger(known_orders={"ord_1"})

    result = _run(_orchestrator(store, order_ledger=ledger), order_id="ord_1", layout_variant=LayoutVariant.ART_ONLY)

    assert result.order_recorded is True
    assert ledger.records["ord_1"] == {
        "print_file_url": result.print_file_url,
        "qr_url": result.qr_url,
        "qr_target_url": "https://app.test/p/art_1",
        "status": "READY_FOR_FULFILMENT",
    }


def test_unknown_order_is_logged_but_assets_are_kept(caplog):
    store = _store()
    ledger = FakeOrderLedger()

    with caplog.at_level(logging.WARNING, logger="controller.print_file_orchestrator"):
        result = _run(_orchestrator(store, order_ledger=ledger), order_id="ord_missing")

    assert result.ok
    assert result.order_recorded is False
    assert "ord_missing not found" in caplog.text
    assert len(store.uploads) == 1


def test_ledger_is_not_called_without_order_id():
    ledger = FakeOrderLedger(known_orders={"ord_1"})

    result = _run(_orchestrator(_store(), order_ledger=ledger))

    assert result.order_recorded is None
    assert ledger.calls == []


def test_unexpected_collaborator_error_becomes_internal_error(caplog):
    class BrokenLedger(FakeOrderLedger):
        async def record_print_file(self, *args):
            raise RuntimeError("ledger offline")

    with caplog.at_level(logging.ERROR, logger="controller.print_file_orchestrator"):
        result = _run(_orchestrator(_store(), order_ledger=BrokenLedger()), order_id="ord_1")

    assert result.code == "INTERNAL_ERROR"
    assert result.message == "ledger offline"
    assert result.failed_step is PrintFileState.UPLOADING
    assert "crashed" in caplog.text


def test_invalid_layout_is_rejected_at_construction():
    with pytest.raises(InvalidLayoutParameters):
        _orchestrator(FakeBlobStore(), layout=PrintLayout(print_area_width_percent=0))


def test_concurrent_orders_do_not_share_state():
    store = _store()
    orchestrator = _orchestrator(store)

    async def scenario():
        return await asyncio.gather(*(
            orchestrator.generate_print_file(
                PrintFileRequest(artwork_id="art_1", artwork_url=ARTWORK_URL, order_id=f"ord_{i}")
            )
            for i in range(5)
        ))

    results = asyncio.run(scenario())

    assert all(r.ok for r in results)
    assert sorted(u["path"] for u in store.uploads) == [f"print-files/ord_{i}.png" for i in range(5)]


def test_cancellation_propagates_and_nothing_is_uploaded():
    store = _store()
    store.fetch_delay = 10.0
    orchestrator = _orchestrator(store)

    async def scenario():
        task = asyncio.create_task(
            orchestrator.generate_print_file(PrintFileRequest(artwork_id="art_1", artwork_url=ARTWORK_URL))
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert store.uploads == []


def test_outcomes_serialise_for_the_api():
    store = _store()
    ok = _run(_orchestrator(store), order_id="ord_1").to_dict()
    failed = _run(_orchestrator(FakeBlobStore())).to_dict()

    assert ok["ok"] is True
    assert ok["layoutVariant"] == "CombinedArtAndQr"
    assert ok["rectsUsed"]["qr"] == {"left": 280, "top": 359, "width": 40, "height": 40}
    assert ok["storageKey"] == "ord_1"

    assert failed == {
        "ok": False,
        "error": "ARTWORK_UNAVAILABLE",
        "message": failed["message"],
        "state": "FETCH_FAILED",
        "failedStep": "FETCHING_ARTWORK",
        "asset": "artwork",
    }
