"""Scan orchestration: settings snapshot, generations, progress throttling."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal

from ctxtree.config.store import SettingsStore
from ctxtree.constants import PROGRESS_EVERY_N_FILES, PROGRESS_THROTTLE_MS
from ctxtree.fs.notices import Notice
from ctxtree.fs.scanner import FileScanner
from ctxtree.fs.tree import TreeNode
from ctxtree.runtime_logging import get_runtime_logger

ScanPhase = Literal["count", "scan"]


@dataclass(frozen=True, slots=True)
class ScanProgress:
    phase: ScanPhase
    current: int
    total: int
    rel: str = ""


@dataclass(slots=True)
class ScanOutcome:
    generation: int
    root: Path
    total: int
    tree: list[TreeNode]
    notices: list[Notice] = field(default_factory=list)
    elapsed_s: float = 0.0


class ScanSession:
    """Runs count-then-build scans of one project root.

    Every :meth:`refresh` starts a new generation; a scan whose generation is
    no longer current is cancelled cooperatively and its result discarded.
    """

    def __init__(
        self,
        project_root: Path,
        *,
        store: SettingsStore | None = None,
        on_progress: Callable[[ScanProgress], None] | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.project_root = project_root.expanduser().resolve()
        self.store = store or SettingsStore()
        self.on_progress = on_progress
        self.on_notice = on_notice
        self._clock = clock
        self._generation = 0
        self.logger = get_runtime_logger().bind(root=str(self.project_root))

    @property
    def generation(self) -> int:
        return self._generation

    def cancel(self) -> None:
        self._generation += 1
        self.logger.debug("session.cancelled", generation=self._generation)

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def refresh(self) -> ScanOutcome | None:
        self._generation += 1
        generation = self._generation
        started = self._clock()
        config = self.store.load().scan.resolve()
        notices: list[Notice] = []

        def forward_notice(notice: Notice) -> None:
            if not self.is_current(generation):
                return
            notices.append(notice)
            if self.on_notice is not None:
                self.on_notice(notice)

        def emit(event: ScanProgress) -> None:
            if self.on_progress is not None and self.is_current(generation):
                self.on_progress(event)

        self.logger.info("session.refresh.started", generation=generation)
        if not self.project_root.is_dir():
            self.logger.warning("session.refresh.missing_root", generation=generation)
            return ScanOutcome(generation=generation, root=self.project_root, total=0, tree=[])

        scanner = FileScanner(
            self.project_root,
            config=config,
            on_notice=forward_notice,
            is_cancelled=lambda: not self.is_current(generation),
        )

        emit(ScanProgress("count", 0, 0))
        total = await scanner.count_files(lambda count, rel: emit(ScanProgress("count", count, 0, rel)))
        if not self.is_current(generation):
            return None

        emit(ScanProgress("scan", 0, total))
        last_sent = 0.0

        def on_scan_progress(processed: int, rel: str) -> None:
            nonlocal last_sent
            now = self._clock()
            if (
                (now - last_sent) * 1000 > PROGRESS_THROTTLE_MS
                or processed % PROGRESS_EVERY_N_FILES == 0
                or processed == total
            ):
                last_sent = now
                emit(ScanProgress("scan", processed, total, rel))

        tree = await scanner.build_tree(on_scan_progress)
        if not self.is_current(generation):
            self.logger.info("session.refresh.superseded", generation=generation)
            return None

        outcome = ScanOutcome(
            generation=generation,
            root=self.project_root,
            total=total,
            tree=tree,
            notices=notices,
            elapsed_s=self._clock() - started,
        )
        self.logger.info(
            "session.refresh.finished",
            generation=generation,
            total=total,
            root_nodes=len(tree),
            notice_count=len(notices),
        )
        return outcome
