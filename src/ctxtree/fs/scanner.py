"""Cancellable, concurrency-bounded project scanning.

Both public operations share one breadth-first walk (:meth:`FileScanner._walk`)
and one set of exclusion rules; they differ only in what they do with each
eligible file. Blocking filesystem calls run in worker threads, everything
else runs on the event loop, so appends to a directory's children are
serialized by the loop itself.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal

from ctxtree.config.models import ScanConfig
from ctxtree.constants import BINARY_EXTS, COUNT_PROGRESS_EVERY, MAX_FILES_SOFT, STAT_CONCURRENCY
from ctxtree.formatting import format_number
from ctxtree.fs.filtering import ExclusionFilter, extension_of, join_rel, list_directory, parent_rel, sort_entries
from ctxtree.fs.notices import NoticeReporter, NoticeSink
from ctxtree.fs.pool import BoundedTaskPool
from ctxtree.fs.tree import (
    DirNode,
    FileNode,
    TreeNode,
    finalize_tree,
    measured_file,
    skipped_file,
    unreadable_file,
)
from ctxtree.runtime_logging import get_runtime_logger

ProgressHandler = Callable[[int, str], None]
CancelCheck = Callable[[], bool]

SOFT_CAP_NOTICE = "softcap"


@dataclass(frozen=True, slots=True)
class _Found:
    kind: Literal["dir", "file"]
    name: str
    rel: str
    path: Path


def file_size(path: Path) -> int:
    return path.stat().st_size


class FileScanner:
    def __init__(
        self,
        root: Path,
        *,
        config: ScanConfig | None = None,
        on_notice: NoticeSink | None = None,
        is_cancelled: CancelCheck | None = None,
        soft_cap: int = MAX_FILES_SOFT,
        max_in_flight: int = STAT_CONCURRENCY,
    ) -> None:
        self.root = Path(root)
        self.config = config or ScanConfig.default()
        self.soft_cap = soft_cap
        self.max_in_flight = max_in_flight
        self.processed = 0
        self.peak_in_flight = 0
        self._is_cancelled = is_cancelled
        self._filter = ExclusionFilter(self.config)
        self.logger = get_runtime_logger().bind(root=str(self.root))
        self.notices = NoticeReporter(sink=on_notice, logger=self.logger)

    def is_cancelled(self) -> bool:
        return self._is_cancelled is not None and bool(self._is_cancelled())

    async def count_files(self, on_progress: ProgressHandler | None = None) -> int:
        started = time.monotonic()
        total = 0

        async with aclosing(self._walk()) as discoveries:
            async for found in discoveries:
                if found.kind != "file":
                    continue
                total += 1
                if on_progress is not None and (total == 1 or total % COUNT_PROGRESS_EVERY == 0):
                    on_progress(total, found.rel)
                if total >= self.soft_cap:
                    self.notices.emit(
                        SOFT_CAP_NOTICE,
                        "warning",
                        f"Large workspace detected. Showing first {format_number(self.soft_cap)} "
                        "files for performance.",
                    )
                    break

        self.logger.info(
            "scan.count.finished",
            total=total,
            cancelled=self.is_cancelled(),
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        return total

    async def build_tree(self, on_progress: ProgressHandler) -> list[TreeNode]:
        started = time.monotonic()
        directories: dict[str, DirNode] = {}
        _ensure_dir(directories, "")
        pool = BoundedTaskPool(self.max_in_flight, logger=self.logger)
        self.processed = 0
        admitted = 0
        capped = False

        try:
            async with aclosing(self._walk()) as discoveries:
                async for found in discoveries:
                    if found.kind == "dir":
                        _ensure_dir(directories, found.rel, found.name)
                        continue
                    await pool.submit(self._measure(found, directories, on_progress))
                    admitted += 1
                    if admitted >= self.soft_cap:
                        capped = True
                        break
        finally:
            await pool.drain()
            self.peak_in_flight = pool.peak

        if self.is_cancelled():
            self.logger.info("scan.build.cancelled", processed=self.processed)
            return []

        # One soft-cap warning per scanner; the cut itself always applies.
        if capped:
            self.notices.emit(
                SOFT_CAP_NOTICE,
                "warning",
                f"Stopped at {format_number(self.soft_cap)} files for performance.",
            )

        tree = finalize_tree(directories)
        self.logger.info(
            "scan.build.finished",
            processed=self.processed,
            directories=len(directories),
            capped=capped,
            peak_in_flight=self.peak_in_flight,
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        return tree

    async def _walk(self) -> AsyncIterator[_Found]:
        queue: deque[tuple[Path, str]] = deque([(self.root, "")])
        visited: set[str] = set()

        while queue and not self.is_cancelled():
            path, rel = queue.popleft()
            if rel in visited:
                continue
            visited.add(rel)

            try:
                entries = await asyncio.to_thread(list_directory, path)
            except OSError as exc:
                self.logger.debug("scan.directory.unreadable", rel=rel, error=str(exc))
                continue

            if self._filter.is_oversized(rel, len(entries)):
                self.notices.emit(
                    f"skip-large:{rel}",
                    "info",
                    f"Skipping large folder: {rel} ({len(entries)} items)",
                )
                continue

            for entry in sort_entries(entries):
                if self.is_cancelled():
                    return
                child_rel = join_rel(rel, entry.name)
                decision = self._filter.decide(entry, child_rel)

                if decision == "descend":
                    yield _Found("dir", entry.name, child_rel, path / entry.name)
                    queue.append((path / entry.name, child_rel))
                elif decision == "include":
                    yield _Found("file", entry.name, child_rel, path / entry.name)
                elif decision == "skip-heavy":
                    self.notices.emit(f"skip-heavy:{child_rel}", "info", f"Skipping folder: {child_rel}")
                elif decision == "skip-blacklist":
                    self.notices.emit(
                        f"skip-blacklist:{child_rel}",
                        "info",
                        f"Skipping blacklisted folder: {child_rel}",
                    )

    async def _measure(
        self,
        found: _Found,
        directories: dict[str, DirNode],
        on_progress: ProgressHandler,
    ) -> None:
        try:
            node = await self._describe(found)
        except Exception as exc:
            self.logger.debug("scan.file.unreadable", rel=found.rel, error=str(exc))
            node = unreadable_file(found.name, found.rel)

        _ensure_dir(directories, parent_rel(found.rel)).children.append(node)
        self.processed += 1
        on_progress(self.processed, found.rel)

    async def _describe(self, found: _Found) -> FileNode:
        if self.config.skip_binaries and extension_of(found.name) in BINARY_EXTS:
            return skipped_file(found.name, found.rel)
        size = await asyncio.to_thread(file_size, found.path)
        return measured_file(found.name, found.rel, size, self.config.max_bytes)


def _ensure_dir(directories: dict[str, DirNode], rel: str, name: str | None = None) -> DirNode:
    node = directories.get(rel)
    if node is not None:
        return node

    node = DirNode(name=name if name is not None else rel.rpartition("/")[2], path=rel)
    directories[rel] = node
    if rel:
        _ensure_dir(directories, parent_rel(rel)).children.append(node)
    return node
