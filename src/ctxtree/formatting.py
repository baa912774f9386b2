"""Human-readable number formatting for notices and CLI output."""

from __future__ import annotations


def format_number(value: int) -> str:
    return f"{value:,}"


def format_tokens(tokens: int) -> str:
    return f"{format_number(tokens)} tokens"


def format_size(chars: int) -> str:
    if chars < 1024:
        return f"{chars} B"
    kb = chars / 1024
    if kb < 1024:
        return f"{kb:.1f} KB"
    return f"{kb / 1024:.1f} MB"
