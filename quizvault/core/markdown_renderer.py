"""Markdown rendering of question text for student-facing payloads.

LaTeX delimiters (`$...$`, `$$...$$`) pass through untouched so the client can
typeset them. FastAPI serves requests from a thread pool, so each thread
builds its own MarkdownIt instance.
"""

from __future__ import annotations

import threading

from markdown_it import MarkdownIt


class QuestionTextRenderer:
    """Converts markdown question text into HTML fragments."""

    def __init__(self, enable_html: bool = False) -> None:
        self._enable_html = enable_html
        self._local = threading.local()

    def _markdown(self) -> MarkdownIt:
        markdown = getattr(self._local, "markdown", None)
        if markdown is None:
            markdown = (
                MarkdownIt("commonmark", {"html": self._enable_html})
                .enable("table")
                .enable("strikethrough")
            )
            self._local.markdown = markdown
        return markdown

    def render_fragment(self, markdown_text: str) -> str:
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown().render(sanitized)


renderer = QuestionTextRenderer()
