from __future__ import annotations

import datetime as dt
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from .config import SiteConfig
from .content import ContentError
from .pages import assemble_post, build_homepage, build_page, build_search_index, build_sitemap
from .render import body_html, compose_shell, read_template
from .scripts import bundle_scripts
from .state import BuildState, newest_first
from .styles import SEED_WHITELIST, compile_scss, minify_css, prune_css, used_selectors
from .utils import copy_file, copy_tree, file_mtime, remove_directory, remove_file, write_text

logger = logging.getLogger(__name__)


def html_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        (path for path in directory.iterdir() if path.is_file() and path.suffix.lower() == ".html"),
        key=lambda p: p.name,
    )


class Builder:
    """Runs full and partial builds of one site.

    Templates and the compiled stylesheet are cached between runs; every
    aggregate run starts from a fresh ``BuildState``. Methods are blocking
    and must not be called concurrently.
    """

    def __init__(self, config: SiteConfig):
        self.config = config
        self.shell_template = ""
        self.post_template = ""
        self.loop_template = ""
        self.css = ""
        self.page_selectors: set[str] = set()
        self.state = BuildState()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="postforge-scripts")

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def load_templates(self) -> None:
        templates_dir = self.config.templates_dir
        self.shell_template = read_template(templates_dir, "shell")
        self.post_template = compose_shell(self.shell_template, read_template(templates_dir, "post-template"))
        self.loop_template = read_template(templates_dir, "post-loop")

    def update_all(self) -> Future:
        """Rebuild the whole site.

        Script bundling runs in the background; the returned future resolves
        to the bundle path once it is written.
        """
        self.load_templates()
        self.state = BuildState()
        # Saved post images live only in the output tree.
        remove_directory(self.config.output_dir, remove_self=False, keep=("img",))
        self.copy_static()
        self.prepare_css()
        self.update_404()
        self.update_posts()
        return self.submit_minify_js()

    def copy_static(self) -> None:
        copy_tree(self.config.copy_dir, self.config.output_dir)

    def mirror_path(self, path: Path) -> Path:
        return self.config.output_dir / path.relative_to(self.config.copy_dir)

    def copy_static_file(self, path: Path) -> Path:
        destination = self.mirror_path(path)
        copy_file(path, destination)
        return destination

    def remove_static_file(self, path: Path) -> Path:
        destination = self.mirror_path(path)
        remove_file(destination)
        return destination

    def prepare_css(self) -> None:
        self.css = compile_scss(self.config.styles_dir / "style.scss")

    def update_404(self) -> None:
        html = build_page(self.shell_template, read_template(self.config.templates_dir, "404"))
        write_text(self.config.output_dir / "404.html", html)
        self.page_selectors = used_selectors(self.css, html)

    def rescan_pages(self) -> None:
        # The 404 page is only rebuilt by update_all.
        not_found = self.config.output_dir / "404.html"
        if not_found.is_file():
            self.page_selectors = used_selectors(self.css, not_found.read_text(encoding="utf-8"))

    def _build_post(self, path: Path, state: BuildState) -> None:
        assembled = assemble_post(
            self.post_template,
            self.loop_template,
            path.read_text(encoding="utf-8"),
            path.name,
            file_mtime(path),
            self.config,
        )
        write_text(self.config.posts_output_dir / path.name, assembled.html)
        state.whitelist |= used_selectors(self.css, assembled.html)
        state.posts.append(assembled.meta)
        state.homepage.append(assembled.homepage)
        state.sitemap.append(assembled.sitemap)

    def update_posts(self) -> BuildState:
        """Regenerate every post page plus the homepage, sitemap, search index and stylesheet."""
        state = BuildState(whitelist=set(SEED_WHITELIST) | self.page_selectors)
        remove_directory(self.config.posts_output_dir, remove_self=False)

        for path in html_files(self.config.partials_dir):
            try:
                self._build_post(path, state)
            except ContentError as exc:
                logger.error("%s", exc)
            except Exception:
                logger.exception("Skipping %s: post could not be built", path.name)

        state.posts = newest_first(state.posts)
        state.homepage = newest_first(state.homepage)
        output_dir = self.config.output_dir
        write_text(output_dir / "js" / "search.json", build_search_index(state.posts, self.config.base_url))
        write_text(
            output_dir / "sitemap.xml",
            build_sitemap(self.config.base_url, state.sitemap, dt.datetime.now(dt.timezone.utc)),
        )
        homepage = build_homepage(
            self.shell_template,
            read_template(self.config.templates_dir, "index"),
            state.homepage,
            pwa=self.config.pwa,
        )
        write_text(output_dir / "index.html", homepage)
        state.whitelist |= used_selectors(self.css, homepage)

        self.state = state
        self.clean_css(state.whitelist)
        logger.info("Built %d posts", len(state.posts))
        return state

    def update_css(self) -> set[str]:
        """Recompile the stylesheet and rescan every source page for selectors."""
        self.prepare_css()
        self.rescan_pages()
        whitelist = set(SEED_WHITELIST) | self.page_selectors
        for path in html_files(self.config.partials_dir) + html_files(self.config.templates_dir):
            whitelist |= used_selectors(self.css, path.read_text(encoding="utf-8"))
        self.state.whitelist = whitelist
        self.clean_css(whitelist)
        return whitelist

    def clean_css(self, whitelist: set[str]) -> None:
        css_dir = self.config.output_dir / "css"
        css_path = css_dir / "style.css"
        min_path = css_dir / "style.min.css"
        map_path = css_dir / "style.css.map"
        write_text(css_path, prune_css(self.css, whitelist))
        minified, source_map = minify_css(css_path, min_path, map_path)
        write_text(min_path, minified)
        write_text(map_path, source_map)

    def submit_minify_js(self) -> Future:
        """Queue a script bundle on the builder's single bundling thread."""
        return self._executor.submit(self.minify_js)

    def minify_js(self) -> Path:
        bundle_path = self.config.output_dir / "js" / "bundle.min.js"
        write_text(bundle_path, bundle_scripts(self.config.js_dir, body_html(self.loop_template)))
        return bundle_path
