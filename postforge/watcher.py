"""Map source changes to the smallest rebuild and signal the browser afterwards."""
from __future__ import annotations

import asyncio
import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .builder import Builder
from .config import SiteConfig

logger = logging.getLogger(__name__)

RELOAD_DELAY = 1.0


class RebuildKind(enum.Enum):
    POSTS = "partials"
    STYLES = "styles"
    TEMPLATES = "templates"
    SCRIPTS = "js"
    COPY = "copy"


@dataclass(frozen=True)
class Change:
    kind: str  # add, change or unlink
    path: Path


def classify(config: SiteConfig, path: Path) -> Optional[RebuildKind]:
    path = Path(path).resolve()
    for kind in RebuildKind:
        directory = (config.source_dir / kind.value).resolve()
        if not path.is_relative_to(directory):
            continue
        if any(part.startswith(".") for part in path.relative_to(directory).parts):
            return None
        return kind
    return None


class SingleFlight:
    """Run a job at most once at a time.

    Triggers that arrive while the job runs are folded into a single
    follow-up run, started as soon as the current one finishes.
    """

    def __init__(self, job: Callable[[], Awaitable[object]]):
        self._job = job
        self._running = False
        self._pending = False
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._running

    async def trigger(self) -> bool:
        if self._running:
            self._pending = True
            return False
        self._running = True
        try:
            while True:
                self._pending = False
                self.runs += 1
                try:
                    await self._job()
                except Exception:
                    if not self._pending:
                        raise
                    logger.exception("Rebuild failed, running again for newer changes")
                    continue
                if not self._pending:
                    return True
        finally:
            self._running = False


class Debouncer:
    """Call ``callback`` once, ``delay`` seconds after the last trigger."""

    def __init__(self, callback: Callable[[], object], delay: float = RELOAD_DELAY):
        self.callback = callback
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = asyncio.get_running_loop().call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.callback()


class Dispatcher:
    def __init__(self, builder: Builder, notify: Callable[[], object], delay: float = RELOAD_DELAY):
        self.builder = builder
        self.config = builder.config
        self.reload = Debouncer(notify, delay)
        self.script_task: Optional[asyncio.Future] = None
        # Posts, styles and full rebuilds share builder state and the output tree.
        self._aggregate_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self.flights = {
            RebuildKind.POSTS: SingleFlight(lambda: self._aggregate(builder.update_posts)),
            RebuildKind.STYLES: SingleFlight(lambda: self._aggregate(builder.update_css)),
            RebuildKind.TEMPLATES: SingleFlight(self._rebuild_all),
            RebuildKind.SCRIPTS: SingleFlight(self._bundle_scripts),
        }

    async def _aggregate(self, operation: Callable[[], object]) -> None:
        async with self._aggregate_lock:
            await asyncio.to_thread(operation)

    async def _rebuild_all(self) -> None:
        async with self._aggregate_lock:
            # The previous bundle must finish before the output tree is cleared.
            if self.script_task is not None:
                await asyncio.wait([self.script_task])
            bundle = await asyncio.to_thread(self.builder.update_all)
        self.script_task = asyncio.wrap_future(bundle)

    async def _bundle_scripts(self) -> None:
        # Bundles share the builder's single bundling thread with full rebuilds.
        async with self._aggregate_lock:
            await asyncio.wrap_future(self.builder.submit_minify_js())

    def _mirror(self, change: Change) -> None:
        if change.kind in ("add", "change"):
            self.builder.copy_static_file(change.path)
        elif change.kind == "unlink":
            self.builder.remove_static_file(change.path)

    async def handle(self, change: Change) -> Optional[RebuildKind]:
        kind = classify(self.config, change.path)
        if kind is None:
            return None
        logger.info("[Make] %s: %s", change.kind, change.path)
        try:
            if kind is RebuildKind.COPY:
                await asyncio.to_thread(self._mirror, change)
            elif not await self.flights[kind].trigger():
                logger.debug("[Make] %s rebuild already running, queued", kind.value)
                return kind
        except Exception:
            logger.exception("[Make] Update failed")
            return kind
        logger.info("[Make] Update successful")
        self.reload.trigger()
        return kind

    def submit(self, change: Change) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.handle(change))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self, queue: "asyncio.Queue[Change]") -> None:
        while True:
            self.submit(await queue.get())


class ChangeHandler(FileSystemEventHandler):
    """Forward watchdog events from the observer thread into the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Change]"):
        self.loop = loop
        self.queue = queue

    def _put(self, kind: str, path: object) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, Change(kind, Path(os.fsdecode(path))))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put("add", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put("change", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put("unlink", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put("unlink", event.src_path)
            self._put("add", event.dest_path)


def start_observer(config: SiteConfig, loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Change]") -> Observer:
    observer = Observer()
    handler = ChangeHandler(loop, queue)
    for kind in RebuildKind:
        directory = config.source_dir / kind.value
        if directory.is_dir():
            observer.schedule(handler, str(directory), recursive=True)
    observer.start()
    return observer
