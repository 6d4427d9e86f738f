from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response

from models import AnalyzeRequest, SampleResponse, SessionResponse, TopicsResponse
from services.export import XLSX_MEDIA_TYPE, export_filename, write_workbook
from services.models import AnalysisResult
from services.orchestrator import OrchestratorState
from services.samples import SAMPLE_COMMENTS, sample_text
from services.session import AnalysisSession, SessionRegistry
from services.validation import validate_text_input

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])

_registry: SessionRegistry | None = None


def get_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry


def reset_registry(registry: SessionRegistry | None = None) -> None:
    global _registry
    _registry = registry


def _session_or_404(session_id: str) -> AnalysisSession:
    session = get_registry().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="session_id not found")
    return session


@router.post("", response_model=SessionResponse)
async def create_session():
    session = await get_registry().create()
    return SessionResponse.model_validate(session.snapshot())


@router.get("", response_model=list[SessionResponse])
async def list_sessions(limit: int = 20):
    capped_limit = max(1, min(100, int(limit)))
    return [SessionResponse.model_validate(s.snapshot()) for s in get_registry().recent(capped_limit)]


@router.get("/sample", response_model=SampleResponse)
async def get_sample():
    return SampleResponse(text=sample_text(), comment_count=len(SAMPLE_COMMENTS))


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    registry = get_registry()
    session = registry.get(session_id)
    if session is not None:
        return SessionResponse.model_validate(session.snapshot())
    archived = registry.archived_status(session_id)
    if archived is None:
        raise HTTPException(status_code=404, detail="session_id not found")
    return SessionResponse.model_validate({**archived, "archived": True})


@router.delete("/{session_id}")
async def delete_session(session_id: str):
    if not await get_registry().delete(session_id):
        raise HTTPException(status_code=404, detail="session_id not found")
    return {"session_id": session_id, "status": "deleted"}


@router.post("/{session_id}/analyze", response_model=SessionResponse)
async def analyze(session_id: str, body: AnalyzeRequest, wait: bool = False):
    session = _session_or_404(session_id)
    text = validate_text_input(body.text)
    session.submit(text)
    if wait:
        await session.wait_until_idle()
    return SessionResponse.model_validate(session.snapshot())


@router.delete("/{session_id}/text", response_model=SessionResponse)
async def clear_text(session_id: str):
    session = _session_or_404(session_id)
    session.clear()
    return SessionResponse.model_validate(session.snapshot())


@router.get("/{session_id}/result", response_model=AnalysisResult)
async def get_result(session_id: str):
    session = _session_or_404(session_id)
    orch = session.orchestrator
    if orch.result is not None:
        return orch.result
    if orch.error:
        raise HTTPException(status_code=400, detail=orch.error)
    if orch.state is OrchestratorState.REQUESTING or orch.pending_generation is not None:
        raise HTTPException(status_code=409, detail="analysis is still processing")
    raise HTTPException(status_code=404, detail="no analysis results yet")


@router.get("/{session_id}/topics", response_model=TopicsResponse)
async def get_topics(session_id: str):
    session = _session_or_404(session_id)
    return TopicsResponse(
        status=session.topics_status,
        generation=session.topics_generation,
        error=session.topics_error,
        topics=session.topics,
    )


@router.get("/{session_id}/export")
async def export_results(session_id: str):
    session = _session_or_404(session_id)
    try:
        rows = session.export_rows()
    except LookupError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    filename = export_filename()
    return Response(
        content=write_workbook(rows),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
