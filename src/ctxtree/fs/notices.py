"""Scan notices, deduplicated per scanner instance."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Literal

from ctxtree.runtime_logging import RuntimeLogger, get_runtime_logger

NoticeLevel = Literal["info", "warning", "error"]


@dataclass(frozen=True, slots=True)
class Notice:
    level: NoticeLevel
    message: str


NoticeSink = Callable[[Notice], None]


@dataclass(slots=True)
class NoticeReporter:
    sink: NoticeSink | None = None
    logger: RuntimeLogger = field(default_factory=get_runtime_logger)
    _reported: set[str] = field(default_factory=set)

    def emit(self, key: str, level: NoticeLevel, message: str) -> bool:
        """Forward a notice unless ``key`` was already reported. Returns True if sent."""

        if key in self._reported:
            return False
        self._reported.add(key)
        self.logger.info("scan.notice", key=key, notice_level=level, message=message)
        if self.sink is not None:
            self.sink(Notice(level=level, message=message))
        return True

    def reported(self, key: str) -> bool:
        return key in self._reported
