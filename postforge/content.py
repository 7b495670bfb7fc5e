from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Optional

from bs4 import BeautifulSoup, Tag

from .utils import absolute_url, iso_date, parse_iso

BOUNDARY_JUNK_RE = re.compile(r"(?:^|(?<=\s))[^a-z\s]+|[^a-z\s]+(?=\s|$)")
NON_LETTER_RE = re.compile(r"[^a-z\s]+")


class ContentError(ValueError):
    """A fragment that cannot be turned into a post; it is skipped."""


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: str) -> list[str]:
    items = [item.strip() for item in (value or "").split(",")]
    return [item for item in items if item]


def search_body(text: str) -> str:
    """Normalize plain text into a deduplicated bag of lowercase words."""
    text = text.lower().replace(".", " ")
    text = BOUNDARY_JUNK_RE.sub(" ", text)
    text = NON_LETTER_RE.sub("", text)
    words = text.split()
    return " ".join(dict.fromkeys(words))


@dataclass
class PostAuthor:
    name: str = ""
    url: str = ""


@dataclass
class Thumbnail:
    html: str
    sources: list[str]

    def variant(self, index: int) -> str:
        # Fewer declared sources than requested falls back to the last one.
        return self.sources[min(index, len(self.sources) - 1)]


@dataclass
class PostMeta:
    file: str
    slug: str
    search_body: str
    post_date: dt.datetime
    update_date: Optional[dt.datetime] = None
    title: str = ""
    excerpt: str = ""
    tags: list[str] = field(default_factory=list)
    author: PostAuthor = field(default_factory=PostAuthor)
    thumbnail: Optional[Thumbnail] = None

    def __post_init__(self) -> None:
        if self.update_date is None:
            self.update_date = self.post_date

    def to_dict(self, base_url: str) -> dict:
        thumbnail = absolute_url(base_url, self.thumbnail.variant(3)) if self.thumbnail else None
        return {
            "file": self.file,
            "slug": self.slug,
            "title": self.title,
            "excerpt": self.excerpt,
            "tags": self.tags,
            "author": {"name": self.author.name, "url": self.author.url},
            "thumbnail": thumbnail,
            "postDate": iso_date(self.post_date),
            "updateDate": iso_date(self.update_date),
            "searchBody": self.search_body,
        }


def _meta_element(block: Tag, key: str) -> Optional[Tag]:
    return block.find(attrs={"data-meta": key})


def _meta_text(block: Tag, key: str) -> str:
    element = _meta_element(block, key)
    return element.get_text(" ", strip=True) if element is not None else ""


def _meta_date(block: Tag, key: str) -> Optional[dt.datetime]:
    element = _meta_element(block, key)
    if element is None:
        return None
    return parse_iso(element.get("datetime") or element.get_text(strip=True))


def parse_thumbnail(element: Optional[Tag]) -> Optional[Thumbnail]:
    if element is None:
        return None
    sources = []
    for source in element.find_all("source"):
        candidate = (source.get("srcset") or "").strip()
        if candidate:
            sources.append(candidate.split()[0])
    if not sources:
        img = element.find("img")
        src = (img.get("src") or "").strip() if img is not None else ""
        if src:
            sources.append(src)
    if not sources:
        return None
    return Thumbnail(html=element.decode_contents(), sources=sources)


def parse_post_meta(
    block: Optional[Tag],
    file: str,
    slug: str,
    search_body: str,
    post_date: dt.datetime,
    update_date: dt.datetime,
) -> PostMeta:
    if block is None:
        return PostMeta(
            file=file,
            slug=slug,
            search_body=search_body,
            post_date=post_date,
            update_date=update_date,
            title=slug,
        )
    parsed_post_date = _meta_date(block, "post-date")
    if parsed_post_date is not None:
        post_date = parsed_post_date
        update_date = _meta_date(block, "update-date") or post_date
    else:
        update_date = _meta_date(block, "update-date") or update_date
    author_element = _meta_element(block, "author")
    author = PostAuthor()
    if author_element is not None:
        author = PostAuthor(
            name=author_element.get_text(" ", strip=True),
            url=(author_element.get("href") or "").strip(),
        )
    return PostMeta(
        file=file,
        slug=slug,
        search_body=search_body,
        post_date=post_date,
        update_date=update_date,
        title=_meta_text(block, "title") or slug,
        excerpt=_meta_text(block, "excerpt"),
        tags=parse_list(_meta_text(block, "tags")),
        author=author,
        thumbnail=parse_thumbnail(_meta_element(block, "thumbnail")),
    )


def extract_post(document: BeautifulSoup, file: str, modified: dt.datetime) -> tuple[Tag, PostMeta]:
    """Find the article body of a fragment and read its metadata block.

    ``modified`` seeds both dates when the block does not declare them.
    Raises ``ContentError`` when the fragment has no ``<article>``.
    """
    article = document.find("article")
    if article is None:
        raise ContentError(f"failed to read article body for {file}")
    slug = PurePath(file).stem
    return article, parse_post_meta(
        document.find(id="post-meta"),
        file=file,
        slug=slug,
        search_body=search_body(article.get_text(" ")),
        post_date=modified,
        update_date=modified,
    )
