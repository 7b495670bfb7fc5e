"""Render Editor.js block documents to the HTML stored in content fragments."""
from __future__ import annotations

import html
import logging
from typing import Callable, Optional

from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)


def code_language(code: Optional[str]) -> str:
    """Resolve an editor language code (``js``, ``py``...) to its canonical Prism/Pygments name."""
    if not code:
        return ""
    try:
        lexer = get_lexer_by_name(code.strip().lower())
    except ClassNotFound:
        return ""
    return lexer.aliases[0] if lexer.aliases else ""


def render_paragraph(data: dict) -> str:
    return f"<p>{data.get('text', '')}</p>"


def render_header(data: dict) -> str:
    level = min(max(int(data.get("level") or 2), 1), 6)
    return f"<h{level}>{data.get('text', '')}</h{level}>"


def _list_items(items: list) -> str:
    rendered = []
    for item in items:
        if isinstance(item, dict):
            nested = item.get("items") or []
            children = _render_list(nested, "ul") if nested else ""
            rendered.append(f"<li>{item.get('content', '')}{children}</li>")
        else:
            rendered.append(f"<li>{item}</li>")
    return "".join(rendered)


def _render_list(items: list, tag: str) -> str:
    return f"<{tag}>{_list_items(items)}</{tag}>"


def render_list(data: dict) -> str:
    tag = "ol" if data.get("style") == "ordered" else "ul"
    return _render_list(data.get("items") or [], tag)


def render_checklist(data: dict) -> str:
    rows = []
    for item in data.get("items") or []:
        checked = " checked" if item.get("checked") else ""
        rows.append(f'<li><input type="checkbox" disabled{checked}> {item.get("text", "")}</li>')
    return f'<ul class="checklist">{"".join(rows)}</ul>'


def render_quote(data: dict) -> str:
    caption = data.get("caption") or ""
    cite = f"<cite>{caption}</cite>" if caption else ""
    return f"<blockquote><p>{data.get('text', '')}</p>{cite}</blockquote>"


def render_image(data: dict) -> str:
    url = (data.get("file") or {}).get("url") or data.get("url") or ""
    caption = data.get("caption") or ""
    classes = ["img"]
    for flag in ("withBorder", "withBackground", "stretched"):
        if data.get(flag):
            classes.append(f"img-{flag.lower()}")
    alt = html.escape(html.unescape(caption))
    figcaption = f"<figcaption>{caption}</figcaption>" if caption else ""
    return (
        f'<figure class="{" ".join(classes)}">'
        f'<img src="{html.escape(url)}" alt="{alt}">'
        f"{figcaption}</figure>"
    )


def render_code(data: dict) -> str:
    if not data:
        return ""
    language = code_language(data.get("languageCode") or data.get("language"))
    code = html.escape(data.get("code") or "", quote=False)
    if language:
        return f'<pre><code class="language-{language}">{code}</code></pre>'
    return f"<pre><code>{code}</code></pre>"


def render_delimiter(data: dict) -> str:
    return "<hr>"


def render_raw(data: dict) -> str:
    return data.get("html") or ""


def render_table(data: dict) -> str:
    rows = data.get("content") or []
    with_headings = bool(data.get("withHeadings"))
    parts = []
    for index, row in enumerate(rows):
        cell = "th" if with_headings and index == 0 else "td"
        parts.append("<tr>" + "".join(f"<{cell}>{value}</{cell}>" for value in row) + "</tr>")
    return f'<table>{"".join(parts)}</table>'


RENDERERS: dict[str, Callable[[dict], str]] = {
    "paragraph": render_paragraph,
    "header": render_header,
    "list": render_list,
    "checklist": render_checklist,
    "quote": render_quote,
    "image": render_image,
    "code": render_code,
    "delimiter": render_delimiter,
    "raw": render_raw,
    "table": render_table,
}


def render_blocks(document: dict) -> str:
    output = []
    for block in document.get("blocks") or []:
        renderer = RENDERERS.get(block.get("type", ""))
        if renderer is None:
            logger.warning("Skipping unsupported block type %r", block.get("type"))
            continue
        output.append(renderer(block.get("data") or {}))
    return "".join(output)
