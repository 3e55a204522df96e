"""
MapStudio — Export
===================
Plain-text outline of a mind map and a paginated PDF of that outline.
"""

import logging
from typing import List, Sequence

import fitz  # PyMuPDF

from mapstudio.schemas.mindmap import MindMapNode

logger = logging.getLogger(__name__)

MM_TO_PT = 72 / 25.4

PAGE_MARGIN_MM = 15
LINE_HEIGHT_MM = 7
FONT_NAME = "cour"  # base-14 Courier: Latin glyphs only, nothing to embed
FONT_SIZE = 10


def format_outline(node: MindMapNode, depth: int = 0) -> List[str]:
    """
    Depth-first outline, two spaces of indent per level:

        Topic: Solar System
        Content: The Sun and the objects that orbit it.

          Topic: Planets
          ...

    Content (and the blank line after it) is skipped when empty.
    """
    lines: List[str] = []
    stack = [(node, depth)]
    while stack:
        current, level = stack.pop()
        indent = "  " * level
        lines.append(f"{indent}Topic: {current.topic}")
        if current.content:
            lines.append(f"{indent}Content: {current.content}")
            lines.append("")
        stack.extend((child, level + 1) for child in reversed(current.children))
    return lines


def _text_width(text: str) -> float:
    return fitz.get_text_length(text, fontname=FONT_NAME, fontsize=FONT_SIZE)


def _wrap(line: str, max_width: float) -> List[str]:
    """
    Greedy word wrap by measured width; continuation lines keep the indent.
    A word wider than a whole line is split between characters.
    """
    if _text_width(line) <= max_width:
        return [line]
    indent = line[: len(line) - len(line.lstrip(" "))]

    wrapped: List[str] = []
    current = ""
    for word in line.split():
        candidate = f"{current} {word}" if current else f"{indent}{word}"
        if _text_width(candidate) <= max_width:
            current = candidate
            continue
        if current:
            wrapped.append(current)
        current = f"{indent}{word}"
        while _text_width(current) > max_width and len(current) > len(indent) + 1:
            cut = len(current) - 1
            while cut > len(indent) + 1 and _text_width(current[:cut]) > max_width:
                cut -= 1
            wrapped.append(current[:cut])
            current = indent + current[cut:]
    if current:
        wrapped.append(current)
    return wrapped or [line]


def render_pdf(lines: Sequence[str]) -> bytes:
    """Lay ``lines`` out on A4 pages in Courier and return the PDF bytes."""
    margin = PAGE_MARGIN_MM * MM_TO_PT
    line_height = LINE_HEIGHT_MM * MM_TO_PT
    page_width, page_height = fitz.paper_size("a4")
    max_width = page_width - 2 * margin

    doc = fitz.open()
    try:
        page = doc.new_page(width=page_width, height=page_height)
        y = margin
        for raw_line in lines:
            for line in _wrap(raw_line, max_width):
                if y + line_height > page_height - margin:
                    page = doc.new_page(width=page_width, height=page_height)
                    y = margin
                if line.strip():
                    # insert_text positions the baseline; shift down one font size
                    page.insert_text((margin, y + FONT_SIZE), line, fontname=FONT_NAME, fontsize=FONT_SIZE)
                y += line_height

        data = doc.tobytes()
        logger.info(f"[EXPORT] ✓ {len(lines)} outline lines → {doc.page_count} page(s)")
        return data
    finally:
        doc.close()


def export_pdf(root: MindMapNode) -> bytes:
    return render_pdf(format_outline(root))
