"""Debounced watchdog observer that triggers project re-scans."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Callable

from watchdog.events import EVENT_TYPE_CLOSED_NO_WRITE, EVENT_TYPE_OPENED, FileSystemEventHandler
from watchdog.observers import Observer

from ctxtree.runtime_logging import get_runtime_logger

# Plain reads under the root (editors, exports) must not trigger a re-scan.
READ_ONLY_EVENTS = frozenset({EVENT_TYPE_OPENED, EVENT_TYPE_CLOSED_NO_WRITE})


class _DebouncedHandler(FileSystemEventHandler):
    def __init__(
        self,
        callback: Callable[[], None],
        *,
        root: Path,
        debounce_s: float,
        ignored_dirs: frozenset[str],
    ) -> None:
        super().__init__()
        self.callback = callback
        self.root = root
        self.debounce_s = debounce_s
        self.ignored_dirs = ignored_dirs
        self._lock = threading.Lock()
        self._last_event_at = 0.0
        self._timer: threading.Timer | None = None
        self._logger = get_runtime_logger()

    def relevant(self, src_path: str) -> bool:
        try:
            rel = Path(src_path).resolve().relative_to(self.root)
        except (OSError, ValueError):
            return False
        return not any(part.startswith(".") or part in self.ignored_dirs for part in rel.parts)

    def on_any_event(self, event) -> None:  # type: ignore[override]
        if getattr(event, "event_type", None) in READ_ONLY_EVENTS:
            return
        src_path = str(getattr(event, "src_path", ""))
        if not self.relevant(src_path):
            return
        with self._lock:
            self._last_event_at = time.monotonic()
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_s, self._fire_if_stable)
            self._timer.daemon = True
            self._timer.start()
        self._logger.debug(
            "watch.event",
            event_type=getattr(event, "event_type", "unknown"),
            src_path=src_path,
        )

    def cancel_pending(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire_if_stable(self) -> None:
        with self._lock:
            elapsed = time.monotonic() - self._last_event_at
            if elapsed < self.debounce_s:
                return
            self._timer = None
        try:
            self.callback()
            self._logger.debug("watch.callback.fired", root=str(self.root))
        except Exception as exc:
            self._logger.error("watch.callback.failed", root=str(self.root), error=str(exc))


class ProjectWatcher:
    """Watch ``root`` recursively and call ``callback`` once changes settle.

    Events under dot-directories (VCS metadata, editor state) and under any
    name in ``ignored_dirs`` never trigger the callback.
    """

    def __init__(
        self,
        root: Path,
        callback: Callable[[], None],
        *,
        debounce_s: float = 0.4,
        ignored_dirs: Iterable[str] = (),
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.root = root.expanduser().resolve()
        self.handler = _DebouncedHandler(
            callback,
            root=self.root,
            debounce_s=debounce_s,
            ignored_dirs=frozenset(ignored_dirs),
        )
        self._observer_factory = observer_factory
        self._observer: Any | None = None
        self._logger = get_runtime_logger()

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = self._observer_factory()
        observer.schedule(self.handler, str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        self._logger.info("watch.started", root=str(self.root))

    def stop(self) -> None:
        self.handler.cancel_pending()
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=2)
        self._observer = None
        self._logger.info("watch.stopped", root=str(self.root))

    def __enter__(self) -> "ProjectWatcher":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
