"""Turn authored editor documents into content fragments."""
from __future__ import annotations

import copy
import datetime as dt
import html
import json
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from .blocks import render_blocks
from .config import SiteConfig
from .content import PostAuthor, slugify
from .render import read_template
from .utils import human_date, iso_date, parse_iso, remove_directory, remove_file, write_text

logger = logging.getLogger(__name__)

EXISTS_ERROR = "Post with the same path already exists."
TEMP_URL_PREFIX = "/img_temp/"


@dataclass
class NewPost:
    slug: str
    title: str
    post_date: dt.datetime
    excerpt: str = ""
    tags: str = ""
    author: PostAuthor = field(default_factory=PostAuthor)
    thumbnail: Optional[Path] = None


def fill_template(template: str, **values: str) -> str:
    output = template
    late_keys = {"body"}
    for key, value in values.items():
        if key in late_keys:
            continue
        output = output.replace(f"=={key}==", value)
    for key in late_keys:
        if key in values:
            output = output.replace(f"=={key}==", values[key])
    return output


def store_upload(config: SiteConfig, filename: str, data: bytes) -> Path:
    """Write an uploaded file into the staging directory under a random name."""
    suffix = PurePosixPath(filename or "").suffix.lower()
    target = config.temp_images_dir / f"{uuid.uuid4().hex}{suffix}"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return target


def staged_image(config: SiteConfig, url: str) -> Path:
    if not url.startswith(TEMP_URL_PREFIX):
        raise ValueError(f"Image is not a staged upload: {url}")
    path = (config.temp_images_dir / url[len(TEMP_URL_PREFIX):]).resolve()
    if not path.is_relative_to(config.temp_images_dir.resolve()):
        raise ValueError(f"Image outside the upload directory: {url}")
    return path


def save_post(config: SiteConfig, post: NewPost, document: dict) -> dict:
    """Write a new fragment and move its images into place, all or nothing.

    Nothing is touched when the post's image directory or fragment already
    exists. Once work has started, any failure removes the image directory
    and the fragment again before the error is reported.
    """
    image_dir = config.output_dir / "img" / post.slug
    partial_path = config.partials_dir / f"{post.slug}.html"
    if image_dir.exists() or partial_path.exists():
        return {"success": False, "error": EXISTS_ERROR}

    document = copy.deepcopy(document)
    try:
        image_dir.mkdir(parents=True)

        for block in document.get("blocks") or []:
            if block.get("type") != "image":
                continue
            file_info = block.setdefault("data", {}).setdefault("file", {})
            staged = staged_image(config, file_info.get("url") or "")
            target = image_dir / staged.name
            shutil.move(str(staged), str(target))
            file_info["url"] = f"/{config.sub_folder}img/{post.slug}/{target.name}"

        body = render_blocks(document)

        thumbnail = ""
        if post.thumbnail is not None:
            target = image_dir / post.thumbnail.name
            shutil.move(str(post.thumbnail), str(target))
            thumbnail = f"img/{post.slug}/{target.name}"

        fragment = fill_template(
            read_template(config.templates_dir, "empty-post"),
            title=html.escape(post.title),
            **{
                "author-name": html.escape(post.author.name),
                "formatted-date": human_date(post.post_date),
                "thumbnail": html.escape(thumbnail),
                "raw-post-date": iso_date(post.post_date),
                "tags": html.escape(post.tags),
                "excerpt": html.escape(post.excerpt),
                "author-url": html.escape(post.author.url),
            },
            body=body,
        )
        write_text(partial_path, fragment)

        remove_directory(config.temp_images_dir, remove_self=False)
    except Exception as exc:
        logger.exception("Saving post %s failed, rolling back", post.slug)
        remove_directory(image_dir)
        remove_file(partial_path)
        return {"success": False, "error": str(exc)}

    logger.info("Saved post %s", post.slug)
    return {"success": True, "post": config.post_path(f"{post.slug}.html")}


def post_from_form(fields: dict[str, str], files: dict[str, Path]) -> tuple[NewPost, dict]:
    title = (fields.get("title") or "").strip()
    if not title:
        raise ValueError("A title is required.")
    post_date = parse_iso(fields.get("postDate") or "") or dt.datetime.now(dt.timezone.utc)
    document = json.loads(fields.get("editor") or "{}")
    if not isinstance(document, dict):
        raise ValueError("Editor data must be a JSON object.")
    post = NewPost(
        slug=slugify(title),
        title=title,
        post_date=post_date,
        excerpt=(fields.get("excerpt") or "").strip(),
        tags=(fields.get("tags") or "").strip(),
        author=PostAuthor(
            name=(fields.get("postAuthorName") or "").strip(),
            url=(fields.get("postAuthorUrl") or "").strip(),
        ),
        thumbnail=files.get("thumbnail"),
    )
    return post, document


def handle_save(config: SiteConfig, fields: dict[str, str], files: dict[str, Path]) -> dict:
    try:
        post, document = post_from_form(fields, files)
    except ValueError as exc:
        result = {"success": False, "error": str(exc)}
    else:
        result = save_post(config, post, document)
    if not result["success"]:
        # Only this form's uploads; staged editor images stay for a retry.
        for staged in files.values():
            remove_file(staged)
    return result


def handle_upload(config: SiteConfig, filename: str, data: bytes) -> dict:
    stored = store_upload(config, filename, data)
    return {"success": 1, "file": {"url": f"{TEMP_URL_PREFIX}{stored.name}"}}
