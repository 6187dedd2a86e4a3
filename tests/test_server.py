"""End-to-end tests for the /scan.pdf endpoint."""

import io
from unittest.mock import patch

import pikepdf
import pytest

from scansnap import pipeline
from scansnap.config import ServerSettings
from scansnap.errors import EncodeError
from scansnap.pdf_writer import mm_to_pt
from scansnap.server import HandlerState, create_app

from conftest import FakeBackend, FakeDevice, make_image


def make_client(backend, config, settings, **server):
    app = create_app(
        config,
        settings,
        ServerSettings(**server),
        backend_factory=lambda: backend,
    )
    app.config["TESTING"] = True
    return app, app.test_client()


def test_two_a4_pages(config, settings):
    """Two 300 DPI A4 scans become a two page 150 DPI PDF."""
    images = [make_image(2480, 3508, color=(250, 250, 250)) for _ in range(2)]
    backend = FakeBackend(FakeDevice(images))
    app, client = make_client(backend, config, settings)

    response = client.get("/scan.pdf")

    assert response.status_code == 200
    assert response.headers["Content-Type"] == "application/pdf"
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.headers["X-Generation-Time"].endswith("s")

    pdf = pikepdf.open(io.BytesIO(response.data))
    assert len(pdf.pages) == 2
    for page in pdf.pages:
        image = page.Resources.XObject["/Im0"]
        assert (int(image.Width), int(image.Height)) == (1240, 1754)
        for operands, operator in pikepdf.parse_content_stream(page):
            if str(operator) == "cm":
                assert float(operands[0]) == pytest.approx(mm_to_pt(210.0), abs=1e-3)

    assert backend.count("close") == 1
    assert app.extensions["scan_handler"].state is HandlerState.IDLE


def test_empty_feeder(config, settings):
    backend = FakeBackend(FakeDevice([]))
    _, client = make_client(backend, config, settings)

    response = client.get("/scan.pdf")

    assert response.status_code == 500
    assert response.mimetype == "text/plain"
    assert response.get_data(as_text=True).strip() == "No pages were scanned"


def test_open_failure(config, settings):
    backend = FakeBackend(fail_open=True)
    app, client = make_client(backend, config, settings)

    response = client.get("/scan.pdf")

    assert response.status_code == 500
    assert response.get_data(as_text=True).strip() == "Unable to fetch pages"
    assert b"%PDF" not in response.data
    assert app.extensions["scan_handler"].state is HandlerState.IDLE


def test_rejected_option(config, settings):
    backend = FakeBackend(FakeDevice([make_image(50, 50)], reject_option="mode"))
    _, client = make_client(backend, config, settings)

    response = client.get("/scan.pdf")

    assert response.status_code == 500
    assert backend.count("close") == 1
    assert backend.count("exit") == 1


def test_encode_failure_returns_no_document(config, settings):
    images = [make_image(50, 50) for _ in range(3)]
    backend = FakeBackend(FakeDevice(images))
    _, client = make_client(backend, config, settings)
    real_encode = pipeline.encode_page

    def encode(page, **kwargs):
        if page.index == 2:
            raise EncodeError(page.index, ValueError("bad pixel buffer"))
        return real_encode(page, **kwargs)

    with patch.object(pipeline, "encode_page", side_effect=encode):
        response = client.get("/scan.pdf")

    assert response.status_code == 500
    assert response.get_data(as_text=True).strip() == "Unable to encode page 2"


@pytest.mark.parametrize("method", ["post", "put", "delete", "options"])
def test_any_method_scans(method, config, settings):
    backend = FakeBackend(FakeDevice([make_image(40, 40)]))
    _, client = make_client(backend, config, settings)

    response = getattr(client, method)("/scan.pdf")

    assert response.status_code == 200
    assert backend.opened


def test_busy_scanner_is_rejected(config, settings):
    backend = FakeBackend(FakeDevice([make_image(40, 40)]))
    app, client = make_client(backend, config, settings)
    handler = app.extensions["scan_handler"]

    handler._gate.acquire()
    try:
        response = client.get("/scan.pdf")
    finally:
        handler._gate.release()

    assert response.status_code == 503
    assert backend.calls == []


def test_gate_released_after_failure(config, settings):
    backend = FakeBackend(fail_open=True)
    app, client = make_client(backend, config, settings)

    assert client.get("/scan.pdf").status_code == 500
    assert client.get("/scan.pdf").status_code == 500
    assert backend.calls.count("open") == 2


def test_unknown_route(config, settings):
    _, client = make_client(FakeBackend(), config, settings)
    assert client.get("/scan.png").status_code == 404


def test_encode_failure_never_creates_writer(config, settings):
    images = [make_image(50, 50) for _ in range(3)]
    _, client = make_client(FakeBackend(FakeDevice(images)), config, settings)
    real_encode = pipeline.encode_page

    def encode(page, **kwargs):
        if page.index == 1:
            raise EncodeError(page.index, ValueError("bad pixel buffer"))
        return real_encode(page, **kwargs)

    with patch.object(pipeline, "encode_page", side_effect=encode), \
            patch.object(pipeline, "PDFWriter") as writer_cls:
        response = client.get("/scan.pdf")

    assert response.status_code == 500
    writer_cls.assert_not_called()


def test_short_strip_page(config, settings):
    """A strip thinner than the DPI ratio still makes a page."""
    backend = FakeBackend(FakeDevice([make_image(100, 1)]))
    _, client = make_client(backend, config, settings)

    response = client.get("/scan.pdf")

    assert response.status_code == 200
    assert len(pikepdf.open(io.BytesIO(response.data)).pages) == 1


def test_close_failure_is_plain_text_error(config, settings):
    backend = FakeBackend(FakeDevice([make_image(40, 40)], fail_close=True))
    app, client = make_client(backend, config, settings)

    response = client.get("/scan.pdf")

    assert response.status_code == 500
    assert response.mimetype == "text/plain"
    assert response.get_data(as_text=True).strip() == "Unable to fetch pages"
    assert app.extensions["scan_handler"].state is HandlerState.IDLE


def test_unexpected_error_names_stage(config, settings, caplog):
    backend = FakeBackend(FakeDevice([make_image(40, 40)]))
    app, client = make_client(backend, config, settings)

    with patch.object(pipeline, "resample_page", side_effect=ZeroDivisionError):
        response = client.get("/scan.pdf")

    assert response.status_code == 500
    assert response.mimetype == "text/plain"
    assert response.get_data(as_text=True).strip() == "Scan failed while resampling"
    assert any(r.exc_info for r in caplog.records if r.levelname == "ERROR")
    # Gate is free again
    assert client.get("/scan.pdf").status_code == 200


def test_failure_is_logged_with_traceback(config, settings, caplog):
    _, client = make_client(FakeBackend(fail_open=True), config, settings)

    client.get("/scan.pdf")

    errors = [r for r in caplog.records if r.levelname == "ERROR"]
    assert errors and errors[0].exc_info is not None
    assert "Unable to fetch pages" in errors[0].getMessage()


def test_state_transitions(config, settings):
    backend = FakeBackend(FakeDevice([make_image(40, 40)]))
    app, client = make_client(backend, config, settings)
    handler = app.extensions["scan_handler"]
    seen = []
    real_enter = handler._enter

    def enter(state):
        seen.append(state)
        real_enter(state)

    handler._enter = enter
    client.get("/scan.pdf")

    assert seen == [
        HandlerState.ACQUIRING,
        HandlerState.RESAMPLING,
        HandlerState.ASSEMBLING,
        HandlerState.RESPONDING,
        HandlerState.IDLE,
    ]
