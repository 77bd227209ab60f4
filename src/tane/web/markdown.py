"""Minimal markdown-to-HTML rendering for agent reports.

Covers what research reports use: ``#``/``##``/``###`` headings, ``-``/``*``
bullets, ``**bold**``, ``*italic*``, inline code and ``[text](url)`` links.
Input is HTML-escaped first; only the tags produced here reach the page.
"""

from __future__ import annotations

import re

from markupsafe import Markup, escape

_HEADING = re.compile(r"^(#{1,3})\s+(.*)$")
_BULLET = re.compile(r"^\s*[-*]\s+(.*)$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"(?<![*\w])\*(?!\s)(.+?)(?<!\s)\*(?![*\w])")
_CODE = re.compile(r"`([^`]+)`")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_SAFE_SCHEMES = ("http://", "https://", "mailto:")


def render_markdown(text: str | None) -> Markup:
    if not text:
        return Markup("")

    html: list[str] = []
    paragraph: list[str] = []
    in_list = False

    def flush_paragraph() -> None:
        if paragraph:
            html.append(f"<p>{' '.join(paragraph)}</p>")
            paragraph.clear()

    def close_list() -> None:
        nonlocal in_list
        if in_list:
            html.append("</ul>")
            in_list = False

    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        if not line.strip():
            flush_paragraph()
            close_list()
            continue

        heading = _HEADING.match(line)
        if heading is not None:
            flush_paragraph()
            close_list()
            level = len(heading.group(1))
            html.append(f"<h{level}>{_inline(heading.group(2))}</h{level}>")
            continue

        bullet = _BULLET.match(line)
        if bullet is not None:
            flush_paragraph()
            if not in_list:
                html.append("<ul>")
                in_list = True
            html.append(f"<li>{_inline(bullet.group(1))}</li>")
            continue

        close_list()
        paragraph.append(_inline(line.strip()))

    flush_paragraph()
    close_list()
    return Markup("\n".join(html))


def _inline(text: str) -> str:
    rendered = str(escape(text))
    rendered = _CODE.sub(r"<code>\1</code>", rendered)
    rendered = _LINK.sub(_render_link, rendered)
    rendered = _BOLD.sub(r"<strong>\1</strong>", rendered)
    return _ITALIC.sub(r"<em>\1</em>", rendered)


def _render_link(match: re.Match[str]) -> str:
    label, href = match.group(1), match.group(2)
    if not href.startswith(_SAFE_SCHEMES):
        return label
    return f'<a href="{href}" target="_blank" rel="noopener noreferrer">{label}</a>'
