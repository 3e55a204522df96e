"""
MapStudio — Map Session
========================
State behind one rendered map: the current tree, its layout, its viewport
and the single error message shown to the user.

Only the newest generation request may replace the map.  Requests are not
cancelled; a completion that arrives after a newer request started is
dropped when it lands.
"""

import logging
from collections import OrderedDict
from typing import Awaitable, Callable, List, Optional

from mapstudio.ai_engine import generate_structure
from mapstudio.core.errors import MindMapError, SupersededError, ValidationError
from mapstudio.schemas.mindmap import MindMapNode, PositionedNode
from mapstudio.services.export import export_pdf, format_outline
from mapstudio.services.file_service import extract_text_from_file
from mapstudio.services.layout import LayoutConfig, layout
from mapstudio.services.search import search
from mapstudio.services.viewport import ViewportController

logger = logging.getLogger(__name__)

EMPTY_TEXT_MESSAGE = "Please enter some text to generate a mind map."
NO_MAP_MESSAGE = "Please generate a mind map first."
SUPERSEDED_MESSAGE = "A newer request replaced this one."


class RequestTracker:
    """Monotonic request counter; only the latest token is current."""

    def __init__(self) -> None:
        self._latest = 0

    def begin(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest


class MindMapSession:
    def __init__(
        self,
        generate: Callable[[str], Awaitable[MindMapNode]] = generate_structure,
        surface_width: Optional[float] = None,
        surface_height: Optional[float] = None,
        cfg: Optional[LayoutConfig] = None,
    ):
        self._generate = generate
        self._requests = RequestTracker()
        self.cfg = cfg or LayoutConfig.from_settings()
        self.surface_width = surface_width
        self.surface_height = surface_height

        self.document_text = ""
        self.tree: Optional[MindMapNode] = None
        self.positioned: Optional[PositionedNode] = None
        self.viewport = ViewportController(surface_width, surface_height, cfg=self.cfg)
        self.error: Optional[str] = None
        self.is_loading = False

    # ── Generation ───────────────────────────────────────────────────────────

    async def submit(self, text: Optional[str] = None) -> MindMapNode:
        """
        Generate a map from ``text`` (or the current document text) and show it.

        Raises the generation error (also kept in ``error``), or
        SupersededError when a newer request started while this one was in
        flight; a superseded request leaves the session untouched.
        """
        if text is not None:
            self.document_text = text
        if not self.document_text.strip():
            self.error = EMPTY_TEXT_MESSAGE
            raise ValidationError(EMPTY_TEXT_MESSAGE)

        token = self._requests.begin()
        self.error = None
        self.is_loading = True
        self.tree = None
        self.positioned = None
        try:
            tree = await self._generate(self.document_text)
        except MindMapError as e:
            if not self._requests.is_current(token):
                raise SupersededError(SUPERSEDED_MESSAGE) from e
            self.error = e.message
            self.is_loading = False
            raise

        if not self._requests.is_current(token):
            logger.info(f"[SESSION] Dropping stale result of request #{token}")
            raise SupersededError(SUPERSEDED_MESSAGE)

        self.is_loading = False
        self.show(tree)
        return tree

    async def generate(self, text: Optional[str] = None) -> Optional[MindMapNode]:
        """Like ``submit``, but returns None when the attempt failed or was superseded."""
        try:
            return await self.submit(text)
        except MindMapError:
            return None

    def show(self, tree: MindMapNode) -> PositionedNode:
        """Replace the map: lay it out and fit a fresh viewport to it."""
        self.tree = tree
        self.positioned = layout(tree, self.cfg)
        self.viewport = ViewportController(self.surface_width, self.surface_height, cfg=self.cfg)
        self.viewport.fit_to_content(self.positioned)
        return self.positioned

    def resize(self, width: float, height: float) -> None:
        self.surface_width = width
        self.surface_height = height
        self.viewport.resize(width, height)

    # ── File import ──────────────────────────────────────────────────────────

    async def load_file(self, content: bytes, filename: str) -> Optional[str]:
        self.error = None
        self.document_text = ""
        self.is_loading = True
        try:
            result = await extract_text_from_file(content, filename)
        except MindMapError as e:
            self.error = e.message
            return None
        finally:
            self.is_loading = False
        self.document_text = result["text"]
        return self.document_text

    # ── Search + export ──────────────────────────────────────────────────────

    def search(self, query: str) -> List[PositionedNode]:
        if self.positioned is None:
            return []
        return search(query, self.positioned)

    def export_outline(self) -> Optional[List[str]]:
        if self.tree is None:
            self.error = NO_MAP_MESSAGE
            return None
        self.error = None
        return format_outline(self.tree)

    def export_pdf(self) -> Optional[bytes]:
        if self.tree is None:
            self.error = NO_MAP_MESSAGE
            return None
        self.error = None
        return export_pdf(self.tree)


class SessionStore:
    """Sessions keyed by client id; the least recently used one is evicted past ``capacity``."""

    def __init__(self, capacity: int = 256):
        self.capacity = capacity
        self._sessions: "OrderedDict[str, MindMapSession]" = OrderedDict()

    def get(
        self,
        session_id: str,
        generate: Callable[[str], Awaitable[MindMapNode]] = generate_structure,
    ) -> MindMapSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = MindMapSession(generate=generate)
            self._sessions[session_id] = session
            if len(self._sessions) > self.capacity:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"[SESSION] Evicted session {evicted}")
        else:
            self._sessions.move_to_end(session_id)
        return session

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
