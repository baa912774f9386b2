"""Settings schema for ctxtree and the per-scan configuration snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field, field_validator

BlacklistKind = Literal["blacklist_names", "blacklist_extensions"]


def normalize_extension(value: str) -> str:
    """Lowercase ``value`` and make sure it carries a leading dot."""

    ext = value.strip().lower()
    if not ext:
        return ""
    return ext if ext.startswith(".") else f".{ext}"


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Immutable settings snapshot read once at the start of a scan."""

    max_bytes: int
    skip_binaries: bool
    smart_ignore: bool
    dir_entry_skip_threshold: int
    blacklist_names: frozenset[str]
    blacklist_extensions: frozenset[str]
    ignore_globs: tuple[str, ...] = ()

    @classmethod
    def default(cls) -> "ScanConfig":
        return ScanSettings().resolve()


class ScanSettings(BaseModel):
    max_file_size_kb: int = Field(default=1024, description="Per-file read cap in KB, floored at 1")
    skip_binaries: bool = Field(default=True)
    smart_ignore: bool = Field(default=True)
    dir_entry_skip_threshold: int = Field(default=2000, ge=0)
    blacklist_names: list[str] = Field(default_factory=list)
    blacklist_extensions: list[str] = Field(default_factory=list)
    ignore_globs: list[str] = Field(default_factory=list, description="Extra gitignore-style patterns")

    @field_validator("blacklist_names", "blacklist_extensions", "ignore_globs")
    @classmethod
    def strip_entries(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item and item.strip()]

    def resolve(self) -> ScanConfig:
        extensions = (normalize_extension(ext) for ext in self.blacklist_extensions)
        return ScanConfig(
            max_bytes=max(1, self.max_file_size_kb) * 1024,
            skip_binaries=self.skip_binaries,
            smart_ignore=self.smart_ignore,
            dir_entry_skip_threshold=self.dir_entry_skip_threshold,
            blacklist_names=frozenset(name.lower() for name in self.blacklist_names),
            blacklist_extensions=frozenset(ext for ext in extensions if ext),
            ignore_globs=tuple(self.ignore_globs),
        )


class WatchSettings(BaseModel):
    auto_refresh: bool = Field(default=True)
    debounce_ms: int = Field(default=400, ge=0, le=60_000)


class AppSettings(BaseModel):
    schema_version: int = Field(default=1)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    def setting_items(self) -> list[tuple[str, str]]:
        """Flatten to dotted key/value pairs for ``ctxtree settings show``."""

        result: list[tuple[str, str]] = []

        def walk(prefix: str, value: object) -> None:
            if isinstance(value, BaseModel):
                for key in type(value).model_fields:
                    walk(f"{prefix}.{key}" if prefix else key, getattr(value, key))
            else:
                result.append((prefix, str(value)))

        walk("", self)
        return result
