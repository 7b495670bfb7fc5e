"""Development server: static files, editor endpoints and live reload."""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlsplit

from python_multipart import parse_form
from websockets.asyncio.server import broadcast, serve

from .builder import Builder
from .config import SiteConfig
from .editor import handle_save, handle_upload, store_upload
from .watcher import Dispatcher, start_observer

logger = logging.getLogger(__name__)

PASSTHROUGH_PREFIXES = ("/editor/", "/img_temp/")
RELOAD_SCRIPT = (
    "<script>(function(){{function c(){{var s=new WebSocket('ws://'+location.hostname+':{port}');"
    "s.onmessage=function(e){{if(e.data==='reload')location.reload();}};"
    "s.onclose=function(){{setTimeout(c,2000);}};}}c();}})();</script>"
)


def read_multipart(handler: SimpleHTTPRequestHandler) -> tuple[dict[str, str], dict[str, tuple[str, bytes]]]:
    fields: dict[str, str] = {}
    files: dict[str, tuple[str, bytes]] = {}

    def on_field(field) -> None:
        value = field.value or b""
        fields[field.field_name.decode("utf-8")] = value.decode("utf-8")

    def on_file(file) -> None:
        file.file_object.seek(0)
        name = (file.file_name or b"").decode("utf-8")
        files[file.field_name.decode("utf-8")] = (name, file.file_object.read())

    headers = {
        "Content-Type": handler.headers.get("Content-Type"),
        "Content-Length": handler.headers.get("Content-Length"),
    }
    parse_form(headers, handler.rfile, on_field, on_file)
    return fields, files


class DevRequestHandler(SimpleHTTPRequestHandler):
    config: SiteConfig
    reload_port: int

    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def translate_path(self, path: str) -> str:
        route = unquote(urlsplit(path).path)
        if route.startswith(PASSTHROUGH_PREFIXES):
            self.directory = str(self.config.root)
        else:
            self.directory = str(self.config.serve_dir)
            prefix = f"/{self.config.subfolder}"
            if self.config.subfolder and route.startswith(prefix):
                path = path[len(prefix):] or "/"
        return super().translate_path(path)

    def send_json(self, payload: dict, status: int = 200) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def send_error_text(self, status: int, message: str) -> None:
        body = message.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_POST(self) -> None:
        route = urlsplit(self.path).path
        if route not in ("/editor/save", "/editor/uploadFile"):
            self.send_error(404)
            return
        try:
            fields, uploads = read_multipart(self)
        except ValueError as exc:
            self.send_error_text(400, str(exc))
            return
        if route == "/editor/uploadFile":
            if "image" not in uploads:
                self.send_error_text(400, "No image uploaded.")
                return
            filename, data = uploads["image"]
            self.send_json(handle_upload(self.config, filename, data))
            return
        files: dict[str, Path] = {}
        if "thumbnail" in uploads and uploads["thumbnail"][1]:
            filename, data = uploads["thumbnail"]
            files["thumbnail"] = store_upload(self.config, filename, data)
        self.send_json(handle_save(self.config, fields, files))

    def do_GET(self) -> None:
        path = Path(self.translate_path(self.path))
        if path.is_dir():
            path = path / "index.html"
        if path.suffix != ".html" or not path.is_file():
            super().do_GET()
            return
        content = path.read_bytes()
        script = RELOAD_SCRIPT.format(port=self.reload_port).encode("utf-8")
        if b"</body>" in content:
            content = content.replace(b"</body>", script + b"</body>", 1)
        else:
            content += script
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)


def make_handler(config: SiteConfig, reload_port: int) -> type[DevRequestHandler]:
    return type("BoundDevRequestHandler", (DevRequestHandler,), {"config": config, "reload_port": reload_port})


async def _reload_client(connection) -> None:
    await connection.wait_closed()


async def watch(config: SiteConfig, host: str = "localhost") -> None:
    """Build once, then serve the site and rebuild on every source change."""
    builder = Builder(config)
    try:
        await asyncio.to_thread(builder.update_all)
        reload_port = config.port + 1
        httpd = ThreadingHTTPServer((host, config.port), make_handler(config, reload_port))
        threading.Thread(target=httpd.serve_forever, name="postforge-http", daemon=True).start()
        logger.info("[Make] Serving %s at http://%s:%d/%s", config.serve_dir, host, config.port, config.sub_folder)
        async with serve(_reload_client, host, reload_port) as reload_server:
            dispatcher = Dispatcher(builder, lambda: broadcast(reload_server.connections, "reload"))
            queue: asyncio.Queue = asyncio.Queue()
            observer = start_observer(config, asyncio.get_running_loop(), queue)
            logger.info("[Make] Watching files...")
            try:
                await dispatcher.run(queue)
            finally:
                observer.stop()
                observer.join()
                httpd.shutdown()
                httpd.server_close()
    finally:
        builder.close()
