"""
MapStudio — Mind Map Engine
============================
FastAPI entry point.
  • Global exception handler: never crashes, always returns JSON
  • /api/v1/process: one upload → text → positioned mind map + view box
  • /api/v1/...: text, layout, search, outline, PDF export, upload
  • Async timeout protection (configurable, default 5 min)
"""

import time
import asyncio
import logging

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mapstudio.core.config import settings
from mapstudio.core.errors import MindMapError
from mapstudio.schemas.api import APIResponse, ErrorResponse, ProcessingMeta
from mapstudio.ai_engine import generate_structure
from mapstudio.api.v1.endpoints.mindmap import router as mindmap_router
from mapstudio.services.file_service import (
    count_pdf_pages,
    extract_text_from_file,
    file_extension,
)
from mapstudio.services.render import build_mindmap_response
from mapstudio.services.tree_builder import count_nodes

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="MapStudio — Mind Map Engine",
    description=(
        "Turns free-form text into a hierarchical mind map.\n"
        "Upload a document → receive a positioned tree, connectors and a fitted view box."
    ),
    version="1.0.0",
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(MindMapError)
async def mindmap_error_handler(request: Request, exc: MindMapError):
    """Typed core errors keep their status code and user-facing message."""
    logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    body = ErrorResponse(status="error", message=exc.message, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(
        status="error",
        message="An internal server error occurred.",
        detail=str(exc),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(mindmap_router, prefix="/api/v1", tags=["Mind Map"])


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "MapStudio Mind Map Engine",
        "version": app.version,
        "ai_provider": settings.AI_PROVIDER,
    }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN ENDPOINT — /api/v1/process
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.post(
    "/api/v1/process",
    response_model=APIResponse,
    tags=["Processing"],
    summary="Upload a document and receive a positioned mind map",
)
async def process_document(file: UploadFile = File(...)):
    """
    Single endpoint that:
    1. Extracts text from the upload (.txt, .pdf, .docx, image)
    2. Generates the mind map structure (retrying transient failures)
    3. Lays it out and fits a view box around it
    4. Returns a unified APIResponse JSON envelope
    """
    start = time.perf_counter()

    # ── 1. Read file bytes ───────────────────────────────────────────────────
    content = await file.read()
    filename = file.filename or "unknown.txt"

    # ── 2. Extract text ──────────────────────────────────────────────────────
    try:
        result = await extract_text_from_file(content, filename)
    except MindMapError as e:
        body = ErrorResponse(status="error", message=f"Text extraction failed: {e.message}", detail=e.detail)
        return JSONResponse(status_code=e.status_code, content=body.model_dump())

    # ── 3. AI Processing with timeout ────────────────────────────────────────
    try:
        tree = await asyncio.wait_for(
            generate_structure(result["text"]),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        body = ErrorResponse(
            status="error",
            message=f"AI processing timed out after {settings.AI_TIMEOUT_SECONDS}s.",
            detail="The document may be too long. Try a shorter one.",
        )
        return JSONResponse(status_code=504, content=body.model_dump())
    except MindMapError as e:
        body = ErrorResponse(status="error", message=e.message, detail=e.detail)
        return JSONResponse(status_code=e.status_code, content=body.model_dump())

    # ── 4. Build response ────────────────────────────────────────────────────
    elapsed = time.perf_counter() - start
    total_pages = count_pdf_pages(content) if file_extension(filename) == "pdf" else 1
    node_count = count_nodes(tree)

    response = APIResponse(
        status="success",
        meta=ProcessingMeta(
            processing_time=f"{elapsed:.1f}s",
            file_name=filename,
            total_pages=total_pages,
            node_count=node_count,
        ),
        data=build_mindmap_response(tree),
    )

    logger.info(
        f"[PROCESS] ✓ {filename} — {total_pages} pages — "
        f"{node_count} nodes — {elapsed:.1f}s"
    )

    return response
