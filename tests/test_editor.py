from __future__ import annotations

import datetime as dt
import json

from postforge.builder import Builder
from postforge.content import PostAuthor
from postforge.editor import EXISTS_ERROR, NewPost, fill_template, handle_save, handle_upload, save_post, store_upload

from conftest import write

POST_DATE = dt.datetime(2023, 9, 1, 12, 0, tzinfo=dt.timezone.utc)


def new_post(**changes) -> NewPost:
    values = dict(
        slug="fresh-post",
        title="Fresh & New",
        post_date=POST_DATE,
        excerpt="Just saved",
        tags="python, web",
        author=PostAuthor(name="Jo Writer", url="https://example.com/jo"),
    )
    values.update(changes)
    return NewPost(**values)


def test_fill_template_substitutes_body_last():
    output = fill_template("<h1>==title==</h1>==body==", title="T", body="<p>==title==</p>")
    assert output == "<h1>T</h1><p>==title==</p>"


def test_save_post_writes_fragment_and_moves_images(config):
    staged = store_upload(config, "photo.JPG", b"jpeg-bytes")
    thumb = store_upload(config, "thumb.png", b"png-bytes")
    document = {
        "blocks": [
            {"type": "header", "data": {"text": "Intro", "level": 2}},
            {"type": "paragraph", "data": {"text": "Some text."}},
            {"type": "image", "data": {"file": {"url": f"/img_temp/{staged.name}"}, "caption": "A photo"}},
        ]
    }

    result = save_post(config, new_post(thumbnail=thumb), document)

    assert result == {"success": True, "post": "/posts/fresh-post.html"}
    image_dir = config.output_dir / "img" / "fresh-post"
    assert (image_dir / staged.name).read_bytes() == b"jpeg-bytes"
    assert (image_dir / thumb.name).read_bytes() == b"png-bytes"
    assert staged.name.endswith(".jpg")
    assert list(config.temp_images_dir.iterdir()) == []

    partial = (config.partials_dir / "fresh-post.html").read_text(encoding="utf-8")
    assert "Fresh &amp; New" in partial
    assert f'src="/img/fresh-post/{staged.name}"' in partial
    assert f'src="img/fresh-post/{thumb.name}"' in partial
    assert "2023-09-01T12:00:00.000Z" in partial
    assert "September 1, 2023" in partial
    assert "==" not in partial


def test_saved_post_is_built(config):
    result = save_post(config, new_post(), {"blocks": [{"type": "paragraph", "data": {"text": "Built soon."}}]})
    assert result["success"] is True

    builder = Builder(config)
    try:
        builder.update_all().result(timeout=30)
    finally:
        builder.close()

    files = [meta.file for meta in builder.state.posts]
    assert files[0] == "fresh-post.html"
    meta = builder.state.posts[0]
    assert meta.title == "Fresh & New"
    assert meta.tags == ["python", "web"]
    assert meta.post_date == POST_DATE
    assert meta.thumbnail is None


def test_save_post_refuses_existing_image_dir(config):
    existing = config.output_dir / "img" / "fresh-post" / "keep.jpg"
    write(existing, "x")

    result = save_post(config, new_post(), {"blocks": []})

    assert result == {"success": False, "error": EXISTS_ERROR}
    assert existing.is_file()
    assert not (config.partials_dir / "fresh-post.html").exists()


def test_save_post_refuses_existing_fragment(config):
    write(config.partials_dir / "fresh-post.html", "<article>old</article>")

    result = save_post(config, new_post(), {"blocks": []})

    assert result == {"success": False, "error": EXISTS_ERROR}
    assert (config.partials_dir / "fresh-post.html").read_text(encoding="utf-8") == "<article>old</article>"
    assert not (config.output_dir / "img" / "fresh-post").exists()


def test_save_post_rolls_back_on_missing_upload(config):
    kept = store_upload(config, "other.png", b"png")
    document = {
        "blocks": [
            {"type": "paragraph", "data": {"text": "x"}},
            {"type": "image", "data": {"file": {"url": "/img_temp/missing.jpg"}}},
        ]
    }

    result = save_post(config, new_post(), document)

    assert result["success"] is False
    assert result["error"]
    assert not (config.output_dir / "img" / "fresh-post").exists()
    assert not (config.partials_dir / "fresh-post.html").exists()
    assert kept.is_file()


def test_save_post_rejects_images_outside_staging(config):
    document = {"blocks": [{"type": "image", "data": {"file": {"url": "/img_temp/../site.toml"}}}]}

    result = save_post(config, new_post(), document)

    assert result["success"] is False
    assert (config.root / "site.toml").is_file()
    assert not (config.output_dir / "img" / "fresh-post").exists()


def test_handle_save_reads_form_fields(config):
    fields = {
        "title": "Form Post",
        "postDate": "2023-10-05T09:00:00.000Z",
        "excerpt": "From the form",
        "tags": "a, b",
        "postAuthorName": "Jo",
        "postAuthorUrl": "https://example.com",
        "editor": json.dumps({"blocks": [{"type": "paragraph", "data": {"text": "Body"}}]}),
    }

    result = handle_save(config, fields, {})

    assert result == {"success": True, "post": "/posts/form-post.html"}
    partial = (config.partials_dir / "form-post.html").read_text(encoding="utf-8")
    assert "<p>Body</p>" in partial
    assert "2023-10-05T09:00:00.000Z" in partial


def test_handle_save_requires_title(config):
    assert handle_save(config, {"title": "  "}, {}) == {"success": False, "error": "A title is required."}


def test_handle_upload_returns_staging_url(config):
    result = handle_upload(config, "pic.webp", b"data")

    assert result["success"] == 1
    url = result["file"]["url"]
    assert url.startswith("/img_temp/") and url.endswith(".webp")
    assert (config.temp_images_dir / url.rsplit("/", 1)[1]).read_bytes() == b"data"


def test_refused_save_discards_staged_thumbnail(config):
    write(config.partials_dir / "form-post.html", "<article>old</article>")
    thumbnail = store_upload(config, "thumb.png", b"png")
    editor_image = store_upload(config, "inline.png", b"png")

    result = handle_save(config, {"title": "Form Post"}, {"thumbnail": thumbnail})

    assert result == {"success": False, "error": EXISTS_ERROR}
    assert not thumbnail.exists()
    assert editor_image.is_file()


def test_invalid_form_discards_staged_thumbnail(config):
    thumbnail = store_upload(config, "thumb.png", b"png")

    result = handle_save(config, {"title": ""}, {"thumbnail": thumbnail})

    assert result["success"] is False
    assert not thumbnail.exists()
