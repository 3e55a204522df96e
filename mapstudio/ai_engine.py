"""
MapStudio — AI Engine
======================
Handles all interactions with AI providers (Gemini + Groq) for turning
free-form text into a mind map.

Features:
  - Flat node-list output (id / parentId) instead of a nested tree, so the
    provider's schema depth limits never apply; the tree is rebuilt locally
  - Multi-provider hybrid call with automatic failover
  - Transient/permanent error classification with exponential backoff
  - Robust JSON extraction from chatty responses
"""

import json
import re
import logging
import asyncio
from typing import Any, AsyncGenerator, List, Optional

import google.generativeai as genai
from groq import AsyncGroq

from mapstudio.core.config import settings
from mapstudio.core.errors import (
    GENERATION_FAILED_MESSAGE,
    SERVICE_UNREACHABLE_MESSAGE,
    MindMapError,
    PermanentServiceError,
    TransientServiceError,
)
from mapstudio.schemas.mindmap import MindMapNode
from mapstudio.services.render import build_mindmap_response
from mapstudio.services.retry import is_transient_error, with_retry
from mapstudio.services.tree_builder import build

logger = logging.getLogger(__name__)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLIENT INITIALIZATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

logger.info(f"[AI-ENGINE] Provider mode: {settings.AI_PROVIDER}")

groq_client: Optional[AsyncGroq] = None
if settings.GROQ_API_KEY:
    groq_client = AsyncGroq(api_key=settings.GROQ_API_KEY)
    logger.info("[AI-ENGINE] ✓ Groq client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Groq API key missing")

if settings.GOOGLE_API_KEY:
    genai.configure(api_key=settings.GOOGLE_API_KEY, transport="rest")
    logger.info("[AI-ENGINE] ✓ Gemini client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Google API key missing")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROMPTS + RESPONSE SCHEMA
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

MINDMAP_SYSTEM_PROMPT = (
    "You are a knowledge-structuring expert.\n"
    "Analyze the user's text and produce a FLAT ARRAY of nodes representing a mind map.\n\n"
    "Requirements:\n"
    "- Each node must include: id (short unique), parentId (empty string for the single root), "
    "topic (concise), content (brief).\n"
    "- Use parentId to reference the node's parent by id.\n"
    '- There must be exactly ONE root node with parentId = "" (empty string).\n'
    "- Include as many levels (children, grandchildren, etc.) as needed to represent the hierarchy.\n"
    "- Keep topics and contents concise.\n"
    "- Topics and contents must be in the SAME language as the source text.\n"
)

# Groq's JSON mode only returns objects, so the list is wrapped.
GROQ_FORMAT_SUFFIX = (
    "\nOutput ONLY valid JSON matching this EXACT shape:\n"
    '{"nodes": [{"id": "n1", "parentId": "", "topic": "...", "content": "..."}]}\n'
)

FLAT_MINDMAP_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "parentId": {
                "type": "STRING",
                "description": "Parent node id. Use empty string for the root node.",
            },
            "topic": {"type": "STRING"},
            "content": {"type": "STRING"},
        },
        "required": ["id", "parentId", "topic", "content"],
    },
}


def build_user_prompt(document_text: str) -> str:
    return f'Text: """{document_text}"""'


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON RECOVERY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def clean_and_parse_json(raw_text: str) -> Any:
    """
    Robust JSON extractor:
    1. Strip markdown code fences (```json ... ```)
    2. Extract the outermost [ ... ] or { ... } block
    3. Parse with json.loads
    Raises ValueError on failure with diagnostic info.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Empty AI response received")

    cleaned = raw_text.strip()

    # Strategy 1: Remove ```json ... ``` wrapper
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", cleaned, re.DOTALL)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    # Strategy 2: Find the first [ ... ] or { ... } block, whichever opens first
    if not cleaned.startswith(("[", "{")):
        block_match = re.search(r"\[.*\]|\{.*\}", cleaned, re.DOTALL)
        if block_match:
            cleaned = block_match.group(0)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed. Raw (first 500 chars): {raw_text[:500]}")
        raise ValueError(f"AI returned invalid JSON: {e}")


def parse_flat_records(raw_text: str) -> List[Any]:
    """Parse a provider response into the raw flat record list."""
    parsed = clean_and_parse_json(raw_text)
    if isinstance(parsed, dict) and isinstance(parsed.get("nodes"), list):
        parsed = parsed["nodes"]
    if not isinstance(parsed, list):
        raise ValueError(
            f"AI response is not a node list (got {type(parsed).__name__})"
        )
    return parsed


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROVIDER CALLS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _call_groq(system_prompt: str, user_prompt: str) -> str:
    """Call Groq (Llama 3) with JSON mode and temperature=0."""
    if not groq_client:
        raise PermanentServiceError("Groq API Key missing")

    logger.info(f"[AI-ENGINE] Calling Groq ({settings.GROQ_MODEL})...")
    completion = await groq_client.chat.completions.create(
        model=settings.GROQ_MODEL,
        messages=[
            {"role": "system", "content": system_prompt + GROQ_FORMAT_SUFFIX},
            {"role": "user", "content": user_prompt},
        ],
        response_format={"type": "json_object"},
        temperature=0,
        max_tokens=8000,
    )
    result = completion.choices[0].message.content
    logger.info("[AI-ENGINE] ✓ Groq call succeeded")
    return result


async def _call_gemini(system_prompt: str, user_prompt: str) -> str:
    """Call Gemini with a flat-array response schema and temperature=0."""
    if not settings.GOOGLE_API_KEY:
        raise PermanentServiceError("Google API Key missing")

    logger.info(f"[AI-ENGINE] Calling Gemini ({settings.GEMINI_MODEL})...")
    model = genai.GenerativeModel(
        model_name=settings.GEMINI_MODEL,
        generation_config={
            "response_mime_type": "application/json",
            "response_schema": FLAT_MINDMAP_SCHEMA,
            "temperature": 0,
        },
    )
    full_prompt = f"{system_prompt}\n\n{user_prompt}"
    response = await asyncio.to_thread(model.generate_content, full_prompt)
    logger.info("[AI-ENGINE] ✓ Gemini call succeeded")
    return response.text


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HYBRID CALL WITH FAILOVER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _hybrid_call(
    system_prompt: str,
    user_prompt: str,
    primary: str = "gemini",
) -> str:
    """
    Execute AI call with automatic failover.
    In 'hybrid' mode: tries primary first, then the other.
    The last provider error is re-raised as is so it can be classified.
    """
    provider = settings.AI_PROVIDER

    if provider == "groq":
        callers = [("Groq", _call_groq)]
    elif provider == "gemini":
        callers = [("Gemini", _call_gemini)]
    else:  # hybrid: only providers with a key take part
        configured = {"groq": bool(groq_client), "gemini": bool(settings.GOOGLE_API_KEY)}
        order = ["groq", "gemini"] if primary == "groq" else ["gemini", "groq"]
        callers = [
            (name.capitalize(), _call_groq if name == "groq" else _call_gemini)
            for name in order
            if configured[name]
        ]
        if not callers:
            raise PermanentServiceError("No AI provider configured (set GOOGLE_API_KEY or GROQ_API_KEY)")

    last_error: Optional[Exception] = None
    for name, caller in callers:
        try:
            return await caller(system_prompt, user_prompt)
        except Exception as e:
            last_error = e
            logger.warning(f"[AI-ENGINE] {name} failed: {str(e)[:200]}. Trying next...")

    logger.error(f"[AI-ENGINE] All AI providers failed. Last error: {last_error}")
    raise last_error


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# GENERATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def generate_structure(document_text: str) -> MindMapNode:
    """
    Turn free-form text into a mind map tree.

    Transient provider failures are retried (MAX_RETRIES, exponential
    backoff from RETRY_BASE_DELAY_MS).  Raises TransientServiceError when the
    service stayed unreachable and PermanentServiceError for every other
    failure, including unparseable or malformed node lists.
    """
    logger.info("[MINDMAP] Starting generation...")
    user_prompt = build_user_prompt(document_text)

    try:
        raw = await with_retry(
            lambda: _hybrid_call(MINDMAP_SYSTEM_PROMPT, user_prompt, primary="gemini")
        )
        records = parse_flat_records(raw)
        tree = build(records)
    except Exception as e:
        logger.error(f"[MINDMAP] Error generating mind map structure: {e}")
        if is_transient_error(e):
            raise TransientServiceError(SERVICE_UNREACHABLE_MESSAGE, detail=str(e)) from e
        raise PermanentServiceError(GENERATION_FAILED_MESSAGE, detail=str(e)) from e

    logger.info(f"[MINDMAP] ✓ Generated tree rooted at '{tree.id}' ({len(records)} records)")
    return tree


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SSE STREAMING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

STREAM_STAGES = [
    "Reading the text...",
    "The AI is analyzing the concepts...",
    "Drawing the mind map...",
]


async def generate_structure_stream(
    document_text: str,
    stage_delay: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Stream mind map generation progress as JSON events."""
    for i, stage in enumerate(STREAM_STAGES):
        yield json.dumps({"type": "status", "message": stage, "progress": int((i + 1) / len(STREAM_STAGES) * 70)})
        await asyncio.sleep(stage_delay)

    try:
        tree = await generate_structure(document_text)
    except MindMapError as e:
        yield json.dumps({"type": "error", "message": e.message, "detail": e.detail})
        return

    payload = build_mindmap_response(tree)
    yield json.dumps({"type": "status", "message": "Done! ✓", "progress": 100})
    yield json.dumps({"type": "result", "data": payload.model_dump()})
