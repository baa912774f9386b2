"""Exclusion rules shared by the counting and tree-building walks."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import pathspec

from ctxtree.config.models import ScanConfig
from ctxtree.constants import HEAVY_DIR_NAMES

EntryKind = Literal["dir", "file", "symlink", "other"]

# "skip-*" decisions are directory skips worth telling the user about.
Decision = Literal["descend", "include", "exclude", "skip-heavy", "skip-blacklist"]


@dataclass(frozen=True, slots=True)
class DirEntry:
    name: str
    kind: EntryKind


def list_directory(path: Path) -> list[DirEntry]:
    """Blocking listing of ``path``; symlinks are reported as such, never followed."""

    entries: list[DirEntry] = []
    with os.scandir(path) as it:
        for item in it:
            if item.is_symlink():
                kind: EntryKind = "symlink"
            elif item.is_dir(follow_symlinks=False):
                kind = "dir"
            elif item.is_file(follow_symlinks=False):
                kind = "file"
            else:
                kind = "other"
            entries.append(DirEntry(name=item.name, kind=kind))
    return entries


def sort_entries(entries: list[DirEntry]) -> list[DirEntry]:
    return sorted(entries, key=lambda entry: (entry.kind != "dir", entry.name))


def extension_of(name: str) -> str:
    return os.path.splitext(name)[1].lower()


def join_rel(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def parent_rel(rel: str) -> str:
    head, sep, _ = rel.rpartition("/")
    return head if sep else ""


class ExclusionFilter:
    def __init__(self, config: ScanConfig) -> None:
        self.config = config
        self._spec: pathspec.PathSpec | None = None
        if config.ignore_globs:
            self._spec = pathspec.PathSpec.from_lines("gitwildmatch", config.ignore_globs)

    def decide(self, entry: DirEntry, rel: str) -> Decision:
        """Decide what a walk does with one directory entry at relative path ``rel``."""

        if entry.name.startswith("."):
            return "exclude"
        if entry.kind == "dir":
            return self._decide_directory(entry.name, rel)
        if entry.kind == "file":
            return "include" if self._admits_file(entry.name, rel) else "exclude"
        # symlinks, sockets, fifos, devices
        return "exclude"

    def is_oversized(self, rel: str, entry_count: int) -> bool:
        """True when a non-root directory has too many entries to be worth descending."""

        return (
            self.config.smart_ignore
            and bool(rel)
            and entry_count > self.config.dir_entry_skip_threshold
        )

    def _decide_directory(self, name: str, rel: str) -> Decision:
        if self.config.smart_ignore and name in HEAVY_DIR_NAMES:
            return "skip-heavy"
        if name.lower() in self.config.blacklist_names:
            return "skip-blacklist"
        if self._spec is not None and self._spec.match_file(f"{rel}/"):
            return "exclude"
        return "descend"

    def _admits_file(self, name: str, rel: str) -> bool:
        if name.lower() in self.config.blacklist_names:
            return False
        if extension_of(name) in self.config.blacklist_extensions:
            return False
        if self._spec is not None and self._spec.match_file(rel):
            return False
        return True
