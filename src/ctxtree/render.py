"""Plain-text rendering of a finished scan for the CLI."""

from __future__ import annotations

from collections.abc import Sequence

from ctxtree.formatting import format_number, format_size, format_tokens
from ctxtree.fs.tree import DirNode, Totals, TreeNode


def summarize(nodes: Sequence[TreeNode]) -> Totals:
    return sum((node.totals() for node in nodes), Totals())


def describe(node: TreeNode) -> str:
    if isinstance(node, DirNode):
        parts = [f"{format_number(node.agg_files)} files", format_tokens(node.agg_tokens)]
        if node.agg_truncated:
            parts.append(f"{format_number(node.agg_truncated)} truncated")
        if node.agg_skipped:
            parts.append(f"{format_number(node.agg_skipped)} skipped")
        return f"{node.name}/ ({', '.join(parts)})"

    if node.skipped:
        return f"{node.name} (binary skipped)"
    detail = f"{format_size(node.chars)}, {format_tokens(node.tokens)}"
    if node.truncated:
        detail += ", truncated"
    return f"{node.name} ({detail})"


def render_lines(
    nodes: Sequence[TreeNode],
    *,
    important_only: bool = False,
    prefix: str = "",
) -> list[str]:
    def frames(children: Sequence[TreeNode], indent: str) -> list[tuple[TreeNode, str, bool]]:
        visible = [node for node in children if node.important or not important_only]
        return [(node, indent, index == len(visible) - 1) for index, node in enumerate(visible)]

    lines: list[str] = []
    stack = frames(nodes, prefix)[::-1]
    while stack:
        node, indent, last = stack.pop()
        lines.append(f"{indent}{'`-- ' if last else '|-- '}{describe(node)}")
        if isinstance(node, DirNode):
            stack.extend(reversed(frames(node.children, indent + ("    " if last else "|   "))))
    return lines


def render_summary(root_name: str, nodes: Sequence[TreeNode]) -> str:
    totals = summarize(nodes)
    return (
        f"{root_name}/: {format_number(totals.files)} files, {format_tokens(totals.tokens)}"
        f" ({format_number(totals.truncated)} truncated, {format_number(totals.skipped)} skipped)"
    )
