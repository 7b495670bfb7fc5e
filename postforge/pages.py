from __future__ import annotations

import datetime as dt
import html
import json
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote

from bs4 import BeautifulSoup, Tag

from .config import SiteConfig
from .content import PostMeta, extract_post
from .render import (
    compose_shell,
    create_root_html,
    inner_html,
    parse_html,
    set_inner_html,
    set_meta_content,
    set_text,
)
from .state import ROOT_PRIORITY, HomepageEntry, SitemapEntry
from .utils import absolute_url, human_date, iso_date

PWA_UPDATE_SCRIPT = "import 'https://cdn.jsdelivr.net/npm/@pwabuilder/pwaupdate';"
# Full-size responsive breakpoint used for homepage cards.
HOMEPAGE_THUMBNAIL_SOURCE = 3
META_IMAGE_SOURCE = 0


@dataclass(frozen=True)
class AssembledPost:
    meta: PostMeta
    html: str
    homepage: HomepageEntry
    sitemap: SitemapEntry


def build_tag_list(document: BeautifulSoup, tags: list[str], base_url: str) -> Tag:
    container = document.new_tag("div", attrs={"class": "post-tags mt-30"})
    tag_list = document.new_tag("ul")
    for tag in tags:
        item = document.new_tag("li")
        link = document.new_tag("a", href=f"{base_url}?search=tag:{quote(tag, safe='')}")
        link.string = tag
        item.append(link)
        tag_list.append(item)
    container.append(tag_list)
    return container


def _set_if(structure: dict, key: str, value: object) -> None:
    if value:
        structure[key] = value


def structured_data_script(document: BeautifulSoup, structure: dict) -> Tag:
    script = document.new_tag("script", type="application/ld+json")
    script.string = json.dumps(structure, indent=2, ensure_ascii=False).replace("</", "<\\/")
    return script


def assemble_post(
    post_template: str,
    loop_template: str,
    fragment: str,
    file: str,
    modified: dt.datetime,
    config: SiteConfig,
) -> AssembledPost:
    """Merge one content fragment into the post page and its homepage card.

    Both templates are parsed fresh so nothing leaks between posts. Raises
    ``ContentError`` when the fragment has no article body.
    """
    source = parse_html(fragment)
    article, meta = extract_post(source, file, modified)
    page = parse_html(post_template)
    loop = parse_html(loop_template)
    base_url = config.base_url
    url = config.post_url(file)

    article.append(build_tag_list(source, meta.tags, base_url))
    set_inner_html(page.find(id="post-inner"), article.decode_contents())

    structure = {
        "@context": "https://schema.org",
        "@type": "BlogPosting",
        "author": {
            "@type": "Person",
            "name": meta.author.name,
            "url": meta.author.url,
        },
    }

    if page.title is not None:
        page.title.string = meta.title

    if meta.thumbnail:
        set_inner_html(page.find(id="post-thumbnail"), meta.thumbnail.html)
        full_size = absolute_url(base_url, meta.thumbnail.variant(HOMEPAGE_THUMBNAIL_SOURCE))
        set_inner_html(
            loop.find(class_="post-thumbnail"),
            f'<img src="{html.escape(full_size)}" alt="{html.escape(meta.title)}" class="img-fluid" width="530">',
        )
        image = absolute_url(base_url, meta.thumbnail.variant(META_IMAGE_SOURCE))
        set_meta_content(page, "metaImage", image)
        _set_if(structure, "image", [image])
    else:
        set_inner_html(page.find(id="post-thumbnail"), "")
        set_inner_html(loop.find(class_="post-thumbnail"), "")
        set_meta_content(page, "metaImage", "")

    set_meta_content(page, "metaTitle", meta.title)
    _set_if(structure, "headline", meta.title)
    set_text(loop.find(class_="post-title"), meta.title)
    link = loop.find(class_="post-link")
    if link is not None:
        link["href"] = config.post_path(meta.file)

    set_meta_content(page, "metaDescription", meta.excerpt)
    set_meta_content(page, "metaUrl", url)
    _set_if(structure, "mainEntityOfPage", url)

    published = iso_date(meta.post_date)
    set_meta_content(page, "metaPublishedTime", published)
    _set_if(structure, "datePublished", published)
    set_text(loop.find(class_="post-date"), human_date(meta.post_date))

    modified_iso = iso_date(meta.update_date)
    set_meta_content(page, "metaModifiedTime", modified_iso)
    _set_if(structure, "dateModified", modified_iso)

    set_meta_content(page, "metaTag", ", ".join(meta.tags))
    _set_if(structure, "keywords", meta.tags)

    set_text(loop.find(class_="post-author"), meta.author.name)
    set_text(loop.find(class_="post-excerpt"), meta.excerpt)

    body = page.find("body") or page
    body.append(structured_data_script(page, structure))

    return AssembledPost(
        meta=meta,
        html=create_root_html(page),
        homepage=HomepageEntry(html=inner_html(loop), post_date=meta.post_date, file=meta.file),
        sitemap=SitemapEntry(loc=url, lastmod=modified_iso),
    )


def build_page(shell: str, template: str) -> str:
    return create_root_html(parse_html(compose_shell(shell, template)))


def build_homepage(shell: str, index_template: str, entries: Iterable[HomepageEntry], pwa: bool = False) -> str:
    index = parse_html(index_template)
    set_inner_html(index.find(id="post-container"), " ".join(entry.html for entry in entries))
    document = parse_html(shell)
    set_inner_html(document.find(id="mainContent"), inner_html(index))
    if pwa:
        head = document.find("head")
        if head is not None:
            script = document.new_tag("script", type="module")
            script.string = PWA_UPDATE_SCRIPT
            head.append(script)
        (document.find("body") or document).append(document.new_tag("pwa-update"))
    return create_root_html(document)


def build_sitemap(base_url: str, entries: Iterable[SitemapEntry], built_at: dt.datetime) -> str:
    urls = [SitemapEntry(loc=base_url, lastmod=iso_date(built_at), priority=ROOT_PRIORITY), *entries]
    items = [
        "\n".join(
            [
                "<url>",
                f"<loc>{html.escape(entry.loc, quote=False)}</loc>",
                f"<lastmod>{entry.lastmod}</lastmod>",
                f"<priority>{entry.priority}</priority>",
                "</url>",
            ]
        )
        for entry in urls
    ]
    return "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    )


def build_search_index(posts: Iterable[PostMeta], base_url: str) -> str:
    return json.dumps([post.to_dict(base_url) for post in posts], indent=2, ensure_ascii=False)
