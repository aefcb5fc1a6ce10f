"""HTTP surface tests against a generated three-page PDF."""

from contextlib import asynccontextmanager

import fitz
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from pagewise.api import routes
from pagewise.reader.pdf_handler import PDFHandler


def make_pdf() -> bytes:
    doc = fitz.open()
    for title, body in [
        ("Introduction", "Why reading behaviour matters."),
        ("Methods", "Participants read three chapters."),
        ("Findings", "Readers skipped ahead often."),
    ]:
        page = doc.new_page()
        page.insert_text((72, 72), title, fontsize=18)
        page.insert_text((72, 110), body, fontsize=11)
    doc.set_toc([[1, "Introduction", 1], [1, "Methods", 2]])
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture(scope="module")
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(routes, "_session", None)
    monkeypatch.setattr(routes, "_signals", None)
    monkeypatch.setattr(routes, "_config", {})
    monkeypatch.setattr(routes, "_store", None)
    routes.init_store({"storage": {"db_path": str(tmp_path / "analytics.db")}})

    @asynccontextmanager
    async def lifespan(app):
        yield
        await routes.shutdown()

    app = FastAPI(lifespan=lifespan)
    app.include_router(routes.router)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def loaded(client, pdf_bytes):
    resp = client.post("/api/upload", files={"file": ("study.pdf", pdf_bytes, "application/pdf")})
    assert resp.status_code == 200
    return client


class TestUpload:
    def test_upload_pdf(self, client, pdf_bytes):
        resp = client.post("/api/upload", files={"file": ("study.pdf", pdf_bytes, "application/pdf")})
        body = resp.json()
        assert resp.status_code == 200
        assert body["filename"] == "study.pdf"
        assert body["total_pages"] == 3
        assert body["sections_found"] == 2
        assert body["resumed"] is False
        assert len(body["fingerprint"]) == 64

    def test_rejects_non_pdf(self, client):
        resp = client.post("/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert resp.status_code == 400

    def test_rejects_unreadable_pdf(self, client):
        resp = client.post("/api/upload", files={"file": ("broken.pdf", b"not a pdf", "application/pdf")})
        assert resp.status_code == 400

    def test_rejects_large_upload(self, client, pdf_bytes, monkeypatch):
        monkeypatch.setattr(routes, "_config", {"reader": {"max_upload_mb": 0}})
        resp = client.post("/api/upload", files={"file": ("study.pdf", pdf_bytes, "application/pdf")})
        assert resp.status_code == 413

    def test_requires_document(self, client):
        assert client.get("/api/analytics").status_code == 400
        assert client.get("/api/sections").status_code == 400

    def test_reupload_resumes(self, loaded, pdf_bytes):
        loaded.post("/api/signal", json={"event_type": "page_view", "page": 2})
        resp = loaded.post("/api/upload", files={"file": ("study.pdf", pdf_bytes, "application/pdf")})
        assert resp.json()["resumed"] is True


class TestDocument:
    def test_sections(self, loaded):
        sections = loaded.get("/api/sections").json()["sections"]
        assert [(s["title"], s["start_page"], s["end_page"]) for s in sections] == [
            ("Introduction", 1, 1),
            ("Methods", 2, 3),
        ]

    def test_page(self, loaded):
        body = loaded.get("/api/page/2").json()
        assert "Participants read three chapters." in body["text"]
        assert body["headings"] == ["Methods"]
        assert [s["title"] for s in body["sections"]] == ["Methods"]

    def test_missing_page(self, loaded):
        assert loaded.get("/api/page/9").status_code == 404


class TestSignals:
    def test_page_view_moves_section(self, loaded):
        resp = loaded.post("/api/signal", json={"event_type": "page_view", "page": 2})
        assert resp.json() == {"status": "ok", "accepted": True}
        analytics = loaded.get("/api/analytics").json()
        assert analytics["current_page"] == 2
        assert analytics["current_section_title"] == "Methods"

    def test_unknown_signal(self, loaded):
        resp = loaded.post("/api/signal", json={"event_type": "teleport", "page": 1})
        assert resp.json()["accepted"] is False

    def test_viewport(self, loaded):
        resp = loaded.post("/api/viewport", json={
            "pages": [{"page": 1, "ratio": 0.3}, {"page": 3, "ratio": 0.7}],
        })
        body = resp.json()
        assert body["detection"]["method"] == "page_mapping"
        assert loaded.get("/api/analytics").json()["current_section_title"] == "Methods"

    def test_malformed_viewport_signal(self, loaded):
        resp = loaded.post("/api/signal", json={"event_type": "viewport", "data": {"pages": [{"page": 1}]}})
        assert resp.status_code == 200
        assert resp.json()["accepted"] is False

    def test_hover_position_uses_reported_layout(self, loaded):
        page_height = 842
        loaded.post("/api/viewport", json={
            "pages": [{"page": 3, "ratio": 1.0}], "scroll_top": 2 * page_height, "page_height": page_height,
        })
        resp = loaded.post("/api/signal", json={
            "event_type": "hover", "data": {"position": {"x": 100, "y": 115}},
        })
        assert resp.json()["accepted"] is True
        activity = [e["message"] for e in loaded.get("/api/activity").json()["activity"]]
        assert "Detected new section: Findings" in activity

    def test_detect_is_dry_run(self, loaded):
        loaded.post("/api/signal", json={"event_type": "page_view", "page": 2})
        body = loaded.post("/api/detect", json={"text": "Introduction", "page": 1}).json()
        assert body["detected"] is True
        assert body["title"] == "Introduction"
        assert body["method"] == "title_pattern"
        assert loaded.get("/api/analytics").json()["current_section_title"] == "Methods"

    def test_detect_nothing(self, loaded):
        body = loaded.post("/api/detect", json={"text": "anything", "page": 7}).json()
        assert body == {"detected": False, "section_id": None, "title": None, "confidence": 0.0, "method": None}


class TestReporting:
    def test_export(self, loaded):
        loaded.post("/api/signal", json={"event_type": "page_view", "page": 1})
        body = loaded.get("/api/export").json()
        assert body["document_info"]["filename"] == "study.pdf"
        assert body["document_info"]["total_pages"] == 3
        assert "export_date" in body

    def test_save_and_reset(self, loaded):
        loaded.post("/api/signal", json={"event_type": "page_view", "page": 1})
        assert loaded.post("/api/save").json() == {"status": "ok"}
        assert loaded.post("/api/reset").json() == {"status": "ok"}
        assert loaded.get("/api/analytics").json()["page_changes"] == 0
        assert [e["message"] for e in loaded.get("/api/activity").json()["activity"]] == ["Analytics reset"]

    def test_health(self, client, pdf_bytes):
        assert client.get("/api/health").json() == {
            "status": "ok", "session_active": False, "store_ready": True,
        }
        client.post("/api/upload", files={"file": ("study.pdf", pdf_bytes, "application/pdf")})
        assert client.get("/api/health").json()["session_active"] is True


class TestPdfHandler:
    def test_extract_from_file(self, tmp_path, pdf_bytes):
        path = tmp_path / "study.pdf"
        path.write_bytes(pdf_bytes)
        document = PDFHandler().extract(path)

        assert document.filename == "study.pdf"
        assert document.total_pages == 3
        assert [node.title for node in document.outline] == ["Introduction", "Methods"]
        assert document.resolve_destination(2) == 2
        assert document.resolve_destination(-1) is None
        assert any(t.text == "Findings" and t.height == 18 for t in document.get_page_tokens(3))
        with pytest.raises(IndexError):
            document.get_page_tokens(4)
