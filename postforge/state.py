from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Iterable, TypeVar

from .content import PostMeta

POST_PRIORITY = "0.80"
ROOT_PRIORITY = "1.00"


@dataclass(frozen=True)
class HomepageEntry:
    html: str
    post_date: dt.datetime
    file: str


@dataclass(frozen=True)
class SitemapEntry:
    loc: str
    lastmod: str
    priority: str = POST_PRIORITY


@dataclass
class BuildState:
    """Everything one aggregate run collects; replaced, never merged, per run."""

    whitelist: set[str] = field(default_factory=set)
    posts: list[PostMeta] = field(default_factory=list)
    homepage: list[HomepageEntry] = field(default_factory=list)
    sitemap: list[SitemapEntry] = field(default_factory=list)


T = TypeVar("T", PostMeta, HomepageEntry)


def newest_first(items: Iterable[T]) -> list[T]:
    # Two stable passes: ties on the date keep ascending file order.
    ordered = sorted(items, key=lambda item: item.file)
    ordered.sort(key=lambda item: item.post_date, reverse=True)
    return ordered
