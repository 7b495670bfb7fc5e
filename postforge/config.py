from __future__ import annotations

import json
import sys
from dataclasses import dataclass, replace
from pathlib import Path

import yaml

try:
    import tomllib as toml
except ImportError:  # pragma: no cover - Python < 3.11
    import tomli as toml

from .utils import parse_bool, parse_int

DEFAULT_PORT = 8080


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            print(f"Invalid TOML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        return data
    if suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            print(f"Invalid YAML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        if data is None:
            return {}
        if not isinstance(data, dict):
            print(f"YAML config must be a mapping: {path}", file=sys.stderr)
            sys.exit(1)
        return data
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON in config file {path}: {exc}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, dict):
        print(f"JSON config must be an object: {path}", file=sys.stderr)
        sys.exit(1)
    return data


def _section(config: dict, key: str) -> dict:
    value = config.get(key)
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class SiteConfig:
    """Process-wide settings, read once at startup and never mutated."""

    root: Path
    source: str = "src"
    output_main: str = "docs"
    output_posts: str = "posts"
    site_root: str = ""
    subfolder: str = ""
    port: int = DEFAULT_PORT
    serve_from: str = "docs"
    pwa: bool = False

    @classmethod
    def from_mapping(cls, config: dict, root: Path) -> "SiteConfig":
        output = _section(config, "output")
        site = _section(config, "site")
        server = _section(config, "server")
        output_main = str(output.get("main") or "docs")
        return cls(
            root=root,
            source=str(config.get("source") or "src"),
            output_main=output_main,
            output_posts=str(output.get("posts") or "posts").strip("/"),
            site_root=str(site.get("root") or "").rstrip("/"),
            subfolder=str(site.get("subfolder") or "").strip("/"),
            port=parse_int(server.get("port"), DEFAULT_PORT),
            serve_from=str(server.get("serveFrom") or output_main),
            pwa=parse_bool(config.get("pwa", config.get("usePwa"))),
        )

    @classmethod
    def load(cls, path: Path) -> "SiteConfig":
        path = path.resolve()
        return cls.from_mapping(load_config(path), path.parent)

    def with_overrides(self, **changes: object) -> "SiteConfig":
        changes = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **changes)

    @property
    def sub_folder(self) -> str:
        return f"{self.subfolder}/" if self.subfolder else ""

    @property
    def base_url(self) -> str:
        return f"{self.site_root}/{self.sub_folder}"

    @property
    def source_dir(self) -> Path:
        return self.root / self.source

    @property
    def partials_dir(self) -> Path:
        return self.source_dir / "partials"

    @property
    def templates_dir(self) -> Path:
        return self.source_dir / "templates"

    @property
    def styles_dir(self) -> Path:
        return self.source_dir / "styles"

    @property
    def js_dir(self) -> Path:
        return self.source_dir / "js"

    @property
    def copy_dir(self) -> Path:
        return self.source_dir / "copy"

    @property
    def output_dir(self) -> Path:
        return self.root / self.output_main

    @property
    def posts_output_dir(self) -> Path:
        return self.output_dir / self.output_posts

    @property
    def serve_dir(self) -> Path:
        return self.root / self.serve_from

    @property
    def temp_images_dir(self) -> Path:
        return self.root / "img_temp"

    def post_url(self, file: str) -> str:
        return f"{self.base_url}{self.output_posts}/{file}"

    def post_path(self, file: str) -> str:
        return f"/{self.sub_folder}{self.output_posts}/{file}"
