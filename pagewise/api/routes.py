import logging

from fastapi import APIRouter, UploadFile, File, HTTPException
from pydantic import BaseModel

from ..config import AnalyticsConfig, load_config as read_config_file
from ..core.section_detector import DetectionContext
from ..memory.snapshot_store import SnapshotStore
from ..reader.geometry import VisiblePage
from ..reader.pdf_handler import PDFHandler
from ..reader.session import ReadingSession
from ..reader.signals import SignalEvent, SignalRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# ── Global state (single-user) ─────────────────────────────────────────────

_session: ReadingSession | None = None
_signals: SignalRouter | None = None
_store: SnapshotStore | None = None
_config: dict = {}
_analytics_config = AnalyticsConfig()


def load_config(config_path: str = "config.yaml") -> dict:
    global _config, _analytics_config
    _config = read_config_file(config_path)
    _analytics_config = AnalyticsConfig.from_dict(_config)
    return _config


def init_store(config: dict) -> SnapshotStore:
    global _store
    db_path = config.get("storage", {}).get("db_path", "data/analytics.db")
    _store = SnapshotStore(db_path=db_path)
    return _store


async def shutdown() -> None:
    """Stop the active session's timers and persist its last state."""
    global _session, _signals
    if _session:
        await _session.stop(flush=True)
    _session = None
    _signals = None
    if _store:
        _store.close()


def _require_session() -> ReadingSession:
    if not _session:
        raise HTTPException(400, "No document loaded.")
    return _session


# ── Request/Response models ────────────────────────────────────────────────

class SignalRequest(BaseModel):
    event_type: str
    page: int = 0
    data: dict = {}

class VisiblePageModel(BaseModel):
    page: int
    ratio: float

class ViewportRequest(BaseModel):
    pages: list[VisiblePageModel]
    texts: dict[int, str] = {}
    scroll_top: float | None = None
    page_height: float | None = None

class DetectRequest(BaseModel):
    text: str
    page: int
    font_size: float | None = None
    bold: bool = False
    y: float | None = None

class DetectResponse(BaseModel):
    detected: bool
    section_id: str | None = None
    title: str | None = None
    confidence: float = 0.0
    method: str | None = None

class SessionInfo(BaseModel):
    session_id: str
    filename: str
    fingerprint: str
    total_pages: int
    sections_found: int
    resumed: bool = False


# ── Routes ─────────────────────────────────────────────────────────────────

@router.post("/upload")
async def upload_pdf(file: UploadFile = File(...)) -> SessionInfo:
    global _session, _signals

    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(400, "Only PDF files are supported.")

    max_mb = _config.get("reader", {}).get("max_upload_mb", 50)
    data = await file.read()
    if len(data) > max_mb * 1024 * 1024:
        raise HTTPException(413, f"File too large (max {max_mb}MB).")

    try:
        document = PDFHandler().extract_from_bytes(data, filename=file.filename)
    except RuntimeError as e:
        logger.error("Could not open %s: %s", file.filename, e)
        raise HTTPException(400, "Could not read PDF.")

    if _session:
        await _session.stop(flush=True)

    _session = ReadingSession.from_document(document, config=_analytics_config, store=_store)
    _signals = SignalRouter(_session)
    _session.start()
    resumed = _session.resumed

    logger.info("New session %s: %s (%d pages)", _session.session_id, document.filename, document.total_pages)

    return SessionInfo(
        session_id=_session.session_id,
        filename=document.filename,
        fingerprint=document.fingerprint,
        total_pages=document.total_pages,
        sections_found=len(_session.index),
        resumed=resumed,
    )


@router.get("/sections")
async def get_sections() -> dict:
    session = _require_session()
    return {"sections": [s.to_dict() for s in session.index.roots]}


@router.get("/page/{page_num}")
async def get_page(page_num: int) -> dict:
    session = _require_session()
    if not session.index.has_page(page_num):
        raise HTTPException(404, "Page not found.")

    structure = session.structurer.ensure(page_num, session.text_provider)
    return {
        "page": page_num,
        "text": structure.raw if structure else "",
        "headings": [h.text for h in structure.headings] if structure else [],
        "total_pages": session.total_pages,
        "sections": [s.to_dict(with_children=False) for s in session.index.sections_for_page(page_num)],
    }


@router.post("/signal")
async def receive_signal(req: SignalRequest) -> dict:
    _require_session()
    event = SignalEvent(
        event_type=req.event_type,
        page=req.page,
        data=req.data,
    )
    accepted = _signals.record(event)
    return {"status": "ok", "accepted": accepted}


@router.post("/viewport")
async def receive_viewport(req: ViewportRequest) -> dict:
    session = _require_session()
    pages = [VisiblePage(page=p.page, ratio=p.ratio) for p in req.pages]
    candidate = session.handle_viewport(pages, req.texts, scroll_top=req.scroll_top, page_height=req.page_height)
    return {
        "status": "ok",
        "current_section_id": session.tracker.current_section_id,
        "detection": candidate.to_dict() if candidate else None,
    }


@router.post("/detect")
async def detect_section(req: DetectRequest) -> DetectResponse:
    """Dry-run detection; the tracker's current section is left untouched."""
    session = _require_session()
    context = DetectionContext(font_size=req.font_size, bold=req.bold, y=req.y)
    candidate = session.detector.detect(req.text, req.page, context)
    if not candidate:
        return DetectResponse(detected=False)
    return DetectResponse(
        detected=True,
        section_id=candidate.section.id,
        title=candidate.section.title,
        confidence=candidate.confidence,
        method=candidate.method.value,
    )


@router.get("/analytics")
async def get_analytics() -> dict:
    return _require_session().analytics()


@router.get("/export")
async def export_analytics() -> dict:
    return _require_session().export()


@router.post("/reset")
async def reset_analytics() -> dict:
    _require_session().reset()
    return {"status": "ok"}


@router.post("/save")
async def save_analytics() -> dict:
    saved = _require_session().save()
    return {"status": "ok" if saved else "not_saved"}


@router.get("/activity")
async def get_activity() -> dict:
    return {"activity": _require_session().activity.to_list()}


@router.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "session_active": _session is not None,
        "store_ready": _store is not None,
    }
