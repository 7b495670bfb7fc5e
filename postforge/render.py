from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

WHITESPACE_RE = re.compile(r"\s+")
PRESERVE_WHITESPACE = {"pre", "textarea", "script", "style"}
BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "body", "dd", "details", "div", "dl", "dt",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6",
    "head", "header", "hr", "html", "li", "link", "main", "meta", "nav", "noscript", "ol", "p",
    "picture", "pre", "script", "section", "source", "style", "summary", "table", "tbody", "td",
    "tfoot", "th", "thead", "title", "tr", "ul",
}

FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)


def read_template(templates_dir: Path, name: str) -> str:
    return (templates_dir / f"{name}.html").read_text(encoding="utf-8")


def parse_html(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


def root_element(document: BeautifulSoup) -> Tag:
    return document.find("html") or document


def inner_html(document: BeautifulSoup) -> str:
    """Return the markup inside ``<body>``, or the whole document minus its doctype."""
    for node in document.find_all(string=lambda text: isinstance(text, Doctype)):
        node.extract()
    body = document.find("body")
    node = body if body is not None else root_element(document)
    return node.decode_contents(formatter=FORMATTER)


def body_html(markup: str) -> str:
    return inner_html(parse_html(markup))


def compose_shell(shell: str, template: str) -> str:
    """Place a page template inside the shell's ``#mainContent`` region."""
    document = parse_html(shell)
    set_inner_html(document.find(id="mainContent"), body_html(template))
    return document.decode(formatter=FORMATTER)


def set_inner_html(element: Optional[Tag], markup: str) -> None:
    if element is None:
        return
    element.clear()
    if markup:
        element.append(parse_html(markup))


def set_text(element: Optional[Tag], text: str) -> None:
    if element is None:
        return
    element.clear()
    if text:
        element.append(NavigableString(text))


def set_meta_content(document: BeautifulSoup, class_name: str, content: str) -> None:
    # All tags sharing a marker class (og:, twitter:, ...) get the same value.
    for element in document.find_all(class_=class_name):
        if content:
            element["content"] = content
            del element["class"]
        else:
            element.decompose()


def _is_block(node: object) -> bool:
    return node is None or (isinstance(node, Tag) and node.name in BLOCK_TAGS)


def minify_html(node: Tag) -> str:
    """Drop comments and collapse insignificant whitespace in place, then serialize the contents."""
    for comment in node.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    for text in node.find_all(string=True):
        if isinstance(text, Doctype):
            text.extract()
            continue
        if any(parent.name in PRESERVE_WHITESPACE for parent in text.parents):
            continue
        collapsed = WHITESPACE_RE.sub(" ", str(text))
        if not collapsed.strip() and (_is_block(text.previous_sibling) or _is_block(text.next_sibling)):
            text.extract()
        elif collapsed != text:
            text.replace_with(collapsed)
    return node.decode_contents(formatter=FORMATTER)


def create_root_html(document: BeautifulSoup) -> str:
    html = minify_html(root_element(document))
    return f'<!DOCTYPE html>\n<html lang="en">{html}\n</html>'
