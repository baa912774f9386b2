"""Tree node types and the bottom-up finalization pass."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from ctxtree.constants import CHARS_PER_TOKEN, NON_IMPORTANT_DIRS, NON_IMPORTANT_FILE_EXTS
from ctxtree.fs.filtering import extension_of


@dataclass(frozen=True, slots=True)
class Totals:
    chars: int = 0
    tokens: int = 0
    files: int = 0
    skipped: int = 0
    truncated: int = 0

    def __add__(self, other: "Totals") -> "Totals":
        return Totals(
            chars=self.chars + other.chars,
            tokens=self.tokens + other.tokens,
            files=self.files + other.files,
            skipped=self.skipped + other.skipped,
            truncated=self.truncated + other.truncated,
        )


@dataclass(slots=True)
class FileNode:
    kind: ClassVar[str] = "file"

    name: str
    path: str
    important: bool
    chars: int = 0
    tokens: int = 0
    truncated: bool = False
    skipped: bool = False

    def totals(self) -> Totals:
        return Totals(
            chars=self.chars,
            tokens=self.tokens,
            files=1,
            skipped=int(self.skipped),
            truncated=int(self.truncated),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "name": self.name,
            "path": self.path,
            "important": self.important,
            "chars": self.chars,
            "tokens": self.tokens,
            "truncated": self.truncated,
            "skipped": self.skipped,
        }


@dataclass(slots=True)
class DirNode:
    kind: ClassVar[str] = "dir"

    name: str
    path: str
    children: list["TreeNode"] = field(default_factory=list)
    important: bool = True
    agg_chars: int = 0
    agg_tokens: int = 0
    agg_files: int = 0
    agg_skipped: int = 0
    agg_truncated: int = 0

    def totals(self) -> Totals:
        return Totals(
            chars=self.agg_chars,
            tokens=self.agg_tokens,
            files=self.agg_files,
            skipped=self.agg_skipped,
            truncated=self.agg_truncated,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "name": self.name,
            "path": self.path,
            "important": self.important,
            "aggChars": self.agg_chars,
            "aggTokens": self.agg_tokens,
            "aggFiles": self.agg_files,
            "aggSkipped": self.agg_skipped,
            "aggTruncated": self.agg_truncated,
            "children": [child.to_payload() for child in self.children],
        }


TreeNode = Union[DirNode, FileNode]


def estimate_tokens(chars: int) -> int:
    return math.ceil(chars / CHARS_PER_TOKEN)


def is_important_file(name: str) -> bool:
    return extension_of(name) not in NON_IMPORTANT_FILE_EXTS


def measured_file(name: str, rel: str, size: int, max_bytes: int) -> FileNode:
    chars = min(size, max_bytes)
    return FileNode(
        name=name,
        path=rel,
        important=is_important_file(name),
        chars=chars,
        tokens=estimate_tokens(chars),
        truncated=size > max_bytes,
    )


def skipped_file(name: str, rel: str) -> FileNode:
    return FileNode(name=name, path=rel, important=is_important_file(name), skipped=True)


def unreadable_file(name: str, rel: str) -> FileNode:
    # Size unknown: keep the file visible and selectable.
    return FileNode(name=name, path=rel, important=True)


def payload(nodes: Iterable[TreeNode]) -> list[dict[str, Any]]:
    return [node.to_payload() for node in nodes]


def index_directories(nodes: Iterable[TreeNode]) -> dict[str, DirNode]:
    """Rebuild the path -> directory map for a finalized forest of root children."""

    root = DirNode(name="", path="", children=list(nodes))
    directories: dict[str, DirNode] = {"": root}
    stack = [root]
    while stack:
        node = stack.pop()
        for child in node.children:
            if isinstance(child, DirNode) and child.path not in directories:
                directories[child.path] = child
                stack.append(child)
    return directories


@dataclass(slots=True)
class _Frame:
    source: DirNode
    children: list[TreeNode] | None = None


def finalize_tree(directories: Mapping[str, DirNode]) -> list[TreeNode]:
    """Aggregate, classify and sort the tree rooted at ``directories[""]``.

    The input graph is left untouched; the returned nodes are new objects.
    Traversal is iterative so deep trees never hit the recursion limit.
    """

    root = directories.get("")
    if root is None:
        return []

    # A directory belongs to the first parent that reaches it. Anything
    # reached a second time (a cycle, a self link, a double link) is dropped.
    claimed: set[int] = {id(root)}
    built: dict[int, DirNode] = {}
    stack = [_Frame(root)]

    while stack:
        frame = stack[-1]
        if frame.children is None:
            frame.children = _admit_children(frame.source, claimed)
            pending = [child for child in frame.children if isinstance(child, DirNode)]
            if pending:
                stack.extend(_Frame(child) for child in reversed(pending))
                continue

        stack.pop()
        children: list[TreeNode] = [
            built.pop(id(child)) if isinstance(child, DirNode) else _copy_file(child)
            for child in frame.children
        ]
        built[id(frame.source)] = _aggregate(frame.source, children)

    result = built[id(root)]
    _sort_in_place(result)
    return result.children


def _admit_children(parent: DirNode, claimed: set[int]) -> list[TreeNode]:
    seen: set[tuple[str, str]] = set()
    admitted: list[TreeNode] = []
    for child in parent.children:
        identity = (child.kind, child.path)
        if identity in seen:
            continue
        if isinstance(child, DirNode):
            if child is parent or id(child) in claimed:
                continue
            claimed.add(id(child))
        seen.add(identity)
        admitted.append(child)
    return admitted


def _copy_file(node: FileNode) -> FileNode:
    return FileNode(
        name=node.name,
        path=node.path,
        important=node.important,
        chars=node.chars,
        tokens=node.tokens,
        truncated=node.truncated,
        skipped=node.skipped,
    )


def _aggregate(source: DirNode, children: list[TreeNode]) -> DirNode:
    totals = sum((child.totals() for child in children), Totals())
    return DirNode(
        name=source.name,
        path=source.path,
        children=children,
        important=source.name not in NON_IMPORTANT_DIRS and any(child.important for child in children),
        agg_chars=totals.chars,
        agg_tokens=totals.tokens,
        agg_files=totals.files,
        agg_skipped=totals.skipped,
        agg_truncated=totals.truncated,
    )


def _sort_key(node: TreeNode) -> tuple[int, str, str]:
    return (0 if isinstance(node, DirNode) else 1, node.name, node.path)


def _sort_in_place(root: DirNode) -> None:
    stack = [root]
    while stack:
        node = stack.pop()
        node.children.sort(key=_sort_key)
        stack.extend(child for child in node.children if isinstance(child, DirNode))


def walk(nodes: Iterable[TreeNode]) -> Iterable[TreeNode]:
    """Yield every node of a forest in depth-first pre-order."""

    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, DirNode):
            stack.extend(reversed(node.children))
