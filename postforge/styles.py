"""Track which CSS selectors the generated site uses and prune the rest.

Usage is decided by matching each selector of the compiled stylesheet
against rendered HTML with BeautifulSoup's CSS engine. Since pruning is
global, the whitelist grows across every page of a build and the
stylesheet is cut only once everything has been scanned.
"""
from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator

import sass
import tinycss2
from soupsieve import SelectorSyntaxError

from .render import parse_html

logger = logging.getLogger(__name__)

# Used by the templates and the client-side search renderer, invisible to static scanning.
SEED_WHITELIST = frozenset({".post-tags", ".mt-30"})
BLOCK_AT_RULES = {"media", "supports", "document", "layer", "container"}
WHITESPACE_RE = re.compile(r"\s+")
STATE_PSEUDO_RE = re.compile(
    r"::[\w-]+(?:\([^)]*\))?"
    r"|:(?:hover|active|focus-within|focus-visible|focus|visited|target"
    r"|before|after|first-line|first-letter|-(?:webkit|moz|ms)-[\w-]+)(?:\([^)]*\))?",
    re.IGNORECASE,
)


def compile_scss(path: Path) -> str:
    return sass.compile(filename=str(path), output_style="expanded")


def _parse_rules(css: str | list) -> list:
    return tinycss2.parse_rule_list(css, skip_comments=True, skip_whitespace=True)


def split_selectors(prelude: list) -> list[str]:
    selectors = []
    current: list = []
    for token in prelude + [None]:
        if token is None or (token.type == "literal" and token.value == ","):
            text = WHITESPACE_RE.sub(" ", tinycss2.serialize(current)).strip()
            if text:
                selectors.append(text)
            current = []
        else:
            current.append(token)
    return selectors


def iter_selectors(rules: Iterable) -> Iterator[str]:
    for rule in rules:
        if rule.type == "qualified-rule":
            yield from split_selectors(rule.prelude)
        elif rule.type == "at-rule" and rule.lower_at_keyword in BLOCK_AT_RULES and rule.content is not None:
            yield from iter_selectors(_parse_rules(rule.content))


@lru_cache(maxsize=8)
def stylesheet_selectors(css: str) -> tuple[str, ...]:
    return tuple(dict.fromkeys(iter_selectors(tinycss2.parse_stylesheet(css, skip_comments=True, skip_whitespace=True))))


def matchable(selector: str) -> str:
    """Strip the parts of a selector that depend on user interaction or generated content."""
    stripped = STATE_PSEUDO_RE.sub("", selector).strip()
    if not stripped or stripped[-1] in ">+~":
        stripped += "*"
    return stripped


def used_selectors(css: str, html: str) -> set[str]:
    document = parse_html(html)
    used = set()
    for selector in stylesheet_selectors(css):
        try:
            if document.select_one(matchable(selector)) is not None:
                used.add(selector)
        except (SelectorSyntaxError, NotImplementedError, ValueError):
            # Unknown syntax is kept rather than risk dropping a live rule.
            logger.debug("Keeping unparsable selector %r", selector)
            used.add(selector)
    return used


def _prune_rules(rules: Iterable, whitelist: set[str] | frozenset[str]) -> list[str]:
    output = []
    for rule in rules:
        if rule.type == "qualified-rule":
            kept = [selector for selector in split_selectors(rule.prelude) if selector in whitelist]
            if kept:
                body = tinycss2.serialize(rule.content).strip()
                output.append(f"{', '.join(kept)} {{ {body} }}")
        elif rule.type == "at-rule":
            if rule.lower_at_keyword in BLOCK_AT_RULES and rule.content is not None:
                inner = _prune_rules(_parse_rules(rule.content), whitelist)
                if inner:
                    prelude = WHITESPACE_RE.sub(" ", tinycss2.serialize(rule.prelude)).strip()
                    output.append(f"@{rule.at_keyword} {prelude} {{\n" + "\n".join(inner) + "\n}")
            else:
                output.append(rule.serialize())
    return output


def prune_css(css: str, whitelist: set[str] | frozenset[str]) -> str:
    rules = tinycss2.parse_stylesheet(css, skip_comments=True, skip_whitespace=True)
    return "\n".join(_prune_rules(rules, whitelist)) + "\n"


def minify_css(css_path: Path, min_path: Path, map_path: Path) -> tuple[str, str]:
    """Compress an already written stylesheet, returning ``(css, source_map)``."""
    return sass.compile(
        filename=str(css_path),
        output_style="compressed",
        source_map_filename=str(map_path),
        output_filename_hint=str(min_path),
    )
