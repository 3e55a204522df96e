import io
import logging
import asyncio

import docx  # python-docx
import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError
import google.generativeai as genai

from mapstudio.core.config import settings
from mapstudio.core.errors import ReadFailureError, UnsupportedFormatError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "webp")
NOT_YET_SUPPORTED = ("doc", "ppt", "pptx")
SUPPORTED_EXTENSIONS = ("txt", "pdf", "docx") + IMAGE_EXTENSIONS


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


async def extract_text_from_file(file_content: bytes, filename: str) -> dict:
    """
    Extract plain text from an uploaded file.
    .txt as UTF-8, .pdf with PyMuPDF, .docx with python-docx, images with
    Gemini Vision.
    Returns: {"text": str, "success": bool}
    Raises UnsupportedFormatError or ReadFailureError.
    """
    extension = file_extension(filename or "")

    if extension in NOT_YET_SUPPORTED:
        raise UnsupportedFormatError(f".{extension} files are not supported for direct import yet.")
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f"Unsupported file type: .{extension}")

    # ── Validate file size ────────────────────────────
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(file_content) > max_bytes:
        raise ReadFailureError(f"File exceeds {settings.MAX_FILE_SIZE_MB}MB limit.")

    if len(file_content) == 0:
        raise ReadFailureError("File is empty.")

    try:
        if extension == "txt":
            text = _extract_from_txt(file_content)
        elif extension == "pdf":
            text = await _extract_from_pdf(file_content)
        elif extension == "docx":
            text = await _extract_from_docx(file_content)
        else:
            text = await _extract_from_image(file_content)
    except ReadFailureError:
        raise
    except Exception as e:
        logger.error(f"[FILE] Processing failed for {filename}: {str(e)}")
        raise ReadFailureError(f"Failed to read the {extension} file.", detail=str(e)) from e

    if not text or not text.strip():
        raise ReadFailureError("No text found in file.")

    logger.info(f"[FILE] ✓ {filename}: {len(text)} characters extracted")
    return {"text": text.strip(), "success": True}


def _extract_from_txt(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ReadFailureError("Failed to read the text file (not UTF-8).", detail=str(e)) from e


async def _extract_from_pdf(content: bytes) -> str:
    """
    Extract text from PDF using PyMuPDF (fitz), one blank line between pages.
    Runs in a thread pool to avoid blocking the async event loop.
    """
    def _process_pdf(data: bytes) -> str:
        with fitz.open(stream=data, filetype="pdf") as doc:
            if doc.page_count == 0:
                raise ReadFailureError("PDF has no pages.")

            text_blocks = []
            for page in doc:
                page_text = page.get_text("text")
                if page_text.strip():
                    text_blocks.append(page_text)

            return "\n\n".join(text_blocks)

    return await asyncio.to_thread(_process_pdf, content)


def count_pdf_pages(content: bytes) -> int:
    """Return page count using PyMuPDF (zero-cost, no text extraction)."""
    try:
        with fitz.open(stream=content, filetype="pdf") as doc:
            return doc.page_count
    except Exception:
        return 0


async def _extract_from_docx(content: bytes) -> str:
    def _process_docx(data: bytes) -> str:
        document = docx.Document(io.BytesIO(data))
        return "\n".join(p.text for p in document.paragraphs)

    return await asyncio.to_thread(_process_docx, content)


async def _extract_from_image(content: bytes) -> str:
    """
    Extract text from images using Gemini Vision.
    OCR with structure preservation.
    """
    if not settings.GOOGLE_API_KEY:
        raise ReadFailureError("Image import needs GOOGLE_API_KEY for OCR.")

    try:
        image = Image.open(io.BytesIO(content))
    except UnidentifiedImageError as e:
        raise ReadFailureError("File is not a readable image.", detail=str(e)) from e

    # Validate dimensions
    w, h = image.size
    if w < 50 or h < 50:
        raise ReadFailureError("Image too small to contain readable text.")

    model = genai.GenerativeModel(
        settings.GEMINI_VISION_MODEL,
        generation_config={"temperature": 0},
    )

    prompt = (
        "Extract all legible text from this image accurately. "
        "Maintain the structure where possible."
    )

    response = await asyncio.to_thread(model.generate_content, [prompt, image])
    result = response.text.strip()

    if not result or result.lower() in ["no text found", "no_text_found"]:
        raise ReadFailureError("No readable text in image.")

    return result
