import json
import asyncio
import logging

from fastapi import APIRouter, HTTPException, UploadFile, File
from fastapi.responses import Response, StreamingResponse

from mapstudio.ai_engine import generate_structure, generate_structure_stream
from mapstudio.core.config import settings
from mapstudio.core.errors import GenerationTimeoutError, MindMapError
from mapstudio.schemas.api import (
    MindMapResponse,
    OutlineResponse,
    SearchResponse,
    UploadResponse,
)
from mapstudio.schemas.mindmap import LayoutRequest, MindMapRequest, SearchRequest
from mapstudio.services.export import export_pdf, format_outline
from mapstudio.services.file_service import extract_text_from_file
from mapstudio.services.render import build_mindmap_response
from mapstudio.services.search import search
from mapstudio.services.session import SessionStore
from mapstudio.services.tree_builder import normalize

logger = logging.getLogger(__name__)

router = APIRouter()
sessions = SessionStore(capacity=settings.MAX_SESSIONS)


async def _generate_with_timeout(text: str):
    try:
        return await asyncio.wait_for(
            generate_structure(text),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise GenerationTimeoutError(f"AI processing timed out after {settings.AI_TIMEOUT_SECONDS}s.")


# ── Helper: SSE Event Stream ─────────────────────────────────────────────────

async def _sse_wrapper(generator):
    """Wraps an async generator into SSE format."""
    try:
        async for chunk in generator:
            yield f"data: {chunk}\n\n"
        yield "data: [DONE]\n\n"
    except Exception as e:
        logger.error(f"SSE stream error: {e}")
        yield f"data: {json.dumps({'type': 'error', 'message': str(e)})}\n\n"
        yield "data: [DONE]\n\n"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. GENERATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap", response_model=MindMapResponse)
async def create_mindmap(request: MindMapRequest):
    """
    Generate a positioned mind map from free-form text.

    With a ``session_id`` only the newest request of that session gets the
    map; an older one still in flight answers 409 once it completes.
    """
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text cannot be empty.")
    try:
        if request.session_id:
            session = sessions.get(request.session_id, generate=_generate_with_timeout)
            tree = await session.submit(request.text)
        else:
            tree = await _generate_with_timeout(request.text)
    except MindMapError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return build_mindmap_response(tree)


@router.post("/mindmap/stream")
async def create_mindmap_stream(request: MindMapRequest):
    """Stream mind map generation via Server-Sent Events."""
    return StreamingResponse(
        _sse_wrapper(generate_structure_stream(request.text)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. LAYOUT + SEARCH (no AI involved)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap/layout", response_model=MindMapResponse)
async def layout_mindmap(request: LayoutRequest):
    """Lay out an existing tree and fit a view box to it."""
    return build_mindmap_response(normalize(request.root))


@router.post("/mindmap/search", response_model=SearchResponse)
async def search_mindmap(request: SearchRequest):
    """Ids of nodes matching the query, root-to-leaf, left-to-right."""
    return SearchResponse(matches=[node.id for node in search(request.query, normalize(request.root))])


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 3. EXPORT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap/outline", response_model=OutlineResponse)
async def outline_mindmap(request: LayoutRequest):
    """Indented Topic/Content outline of a tree."""
    return OutlineResponse(lines=format_outline(normalize(request.root)))


@router.post("/mindmap/export")
async def export_mindmap(request: LayoutRequest):
    """Render the outline of a tree as a paginated PDF."""
    pdf = await asyncio.to_thread(export_pdf, normalize(request.root))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="mind-map.pdf"'},
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 4. FILE UPLOAD
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/upload", response_model=UploadResponse)
async def upload_file(file: UploadFile = File(...)):
    """Upload a file (.txt/.pdf/.docx/image) and extract text from it."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided.")

    content = await file.read()

    # Validate size (server-side)
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.MAX_FILE_SIZE_MB}MB.",
        )

    try:
        result = await extract_text_from_file(content, file.filename)
    except MindMapError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return UploadResponse(text=result["text"], success=True)
