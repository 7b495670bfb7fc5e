from __future__ import annotations

from pathlib import Path

import rjsmin

POSTLOOP_MARKER = "[POSTLOOP]"


def script_sources(js_dir: Path) -> list[Path]:
    if not js_dir.is_dir():
        return []
    return sorted(
        (path for path in js_dir.iterdir() if path.suffix.lower() == ".js" and ".min." not in path.name),
        key=lambda p: p.name,
    )


def bundle_scripts(js_dir: Path, post_loop_html: str) -> str:
    """Concatenate the site scripts, inline the post-loop snippet, and minify."""
    output = ""
    for path in script_sources(js_dir):
        output += path.read_text(encoding="utf-8") + "\r\n"
    output = output.replace(POSTLOOP_MARKER, post_loop_html, 1)
    return rjsmin.jsmin(output)
