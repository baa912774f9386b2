"""CLI entrypoint for ctxtree."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path

import click
from pydantic import ValidationError

from ctxtree.config.models import BlacklistKind
from ctxtree.config.store import SettingsStore
from ctxtree.constants import HEAVY_DIR_NAMES
from ctxtree.fs.notices import Notice
from ctxtree.fs.scanner import FileScanner
from ctxtree.fs.tree import payload as tree_payload
from ctxtree.fs.watch import ProjectWatcher
from ctxtree.render import render_lines, render_summary
from ctxtree.runtime_logging import configure_runtime_logging
from ctxtree.sessions.scan import ScanOutcome, ScanSession
from ctxtree.version import __version__

ROOT_ARGUMENT = click.Path(exists=True, file_okay=False, path_type=Path)


@dataclass(slots=True)
class CliState:
    store: SettingsStore


def _echo_notice(notice: Notice) -> None:
    click.echo(f"[{notice.level}] {notice.message}", err=True)


def _print_outcome(outcome: ScanOutcome, *, as_json: bool, important_only: bool) -> None:
    if as_json:
        document = {
            "root": str(outcome.root),
            "total": outcome.total,
            "tree": tree_payload(outcome.tree),
            "notices": [{"level": n.level, "message": n.message} for n in outcome.notices],
        }
        click.echo(json.dumps(document, indent=2))
        return

    click.echo(render_summary(outcome.root.name or str(outcome.root), outcome.tree))
    for line in render_lines(outcome.tree, important_only=important_only):
        click.echo(line)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--settings",
    "settings_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settings file to use instead of the per-user one",
)
@click.option("--log-level", default=None, help="off, error, warning, info or debug")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def main(ctx: click.Context, settings_file: Path | None, log_level: str | None, log_file: Path | None) -> None:
    """ctxtree: size and token aware project trees for AI context export."""
    configure_runtime_logging(level=log_level, log_file=log_file)
    ctx.obj = CliState(store=SettingsStore(settings_file))


@main.command()
@click.argument("root", required=False, default=".", type=ROOT_ARGUMENT)
@click.option("--json", "as_json", is_flag=True, help="Print the tree as JSON")
@click.option("--important-only", is_flag=True, help="Hide nodes classified as unimportant")
@click.pass_obj
def scan(state: CliState, root: Path, as_json: bool, important_only: bool) -> None:
    """Scan ROOT and print its annotated tree."""
    session = ScanSession(root, store=state.store, on_notice=_echo_notice)
    outcome = asyncio.run(session.refresh())
    if outcome is None:
        raise click.ClickException("Scan was cancelled")
    _print_outcome(outcome, as_json=as_json, important_only=important_only)


@main.command()
@click.argument("root", required=False, default=".", type=ROOT_ARGUMENT)
@click.pass_obj
def count(state: CliState, root: Path) -> None:
    """Count the files a scan of ROOT would include."""
    config = state.store.load().scan.resolve()
    scanner = FileScanner(root.resolve(), config=config, on_notice=_echo_notice)
    click.echo(str(asyncio.run(scanner.count_files())))


@main.command()
@click.argument("root", required=False, default=".", type=ROOT_ARGUMENT)
@click.option("--important-only", is_flag=True)
@click.option("--max-refreshes", type=int, default=None, hidden=True)
@click.pass_obj
def watch(state: CliState, root: Path, important_only: bool, max_refreshes: int | None) -> None:
    """Re-scan ROOT whenever files under it change."""
    settings = state.store.load()
    if not settings.watch.auto_refresh:
        raise click.ClickException("Automatic refresh is disabled (watch.auto_refresh)")
    ignored = HEAVY_DIR_NAMES if settings.scan.smart_ignore else frozenset()
    session = ScanSession(root, store=state.store, on_notice=_echo_notice)

    async def run() -> None:
        loop = asyncio.get_running_loop()
        changed = asyncio.Event()
        watcher = ProjectWatcher(
            session.project_root,
            lambda: loop.call_soon_threadsafe(changed.set),
            debounce_s=settings.watch.debounce_ms / 1000,
            ignored_dirs=ignored,
        )
        refreshes = 0
        with watcher:
            while True:
                outcome = await session.refresh()
                if outcome is not None:
                    _print_outcome(outcome, as_json=False, important_only=important_only)
                refreshes += 1
                if max_refreshes is not None and refreshes >= max_refreshes:
                    return
                await changed.wait()
                changed.clear()
                click.echo("")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        return


@main.group()
def blacklist() -> None:
    """Inspect or edit the name and extension blacklists."""


def _blacklist_kind(ext: bool) -> BlacklistKind:
    return "blacklist_extensions" if ext else "blacklist_names"


@blacklist.command("show")
@click.pass_obj
def blacklist_show(state: CliState) -> None:
    """Print both blacklists."""
    scan_settings = state.store.load().scan
    lists = {
        "names": scan_settings.blacklist_names,
        "extensions": scan_settings.blacklist_extensions,
    }
    click.echo(json.dumps(lists, indent=2))


@blacklist.command("add")
@click.argument("value")
@click.option("--ext", is_flag=True, help="Treat VALUE as a file extension")
@click.pass_obj
def blacklist_add(state: CliState, value: str, ext: bool) -> None:
    """Add VALUE to a blacklist."""
    if not value.strip():
        raise click.ClickException("Value must not be empty")
    kind = _blacklist_kind(ext)
    updated = state.store.update_blacklist(kind, add=value)
    click.echo(", ".join(getattr(updated.scan, kind)))


@blacklist.command("remove")
@click.argument("value")
@click.option("--ext", is_flag=True, help="Treat VALUE as a file extension")
@click.pass_obj
def blacklist_remove(state: CliState, value: str, ext: bool) -> None:
    """Remove VALUE from a blacklist."""
    kind = _blacklist_kind(ext)
    updated = state.store.update_blacklist(kind, remove=value)
    click.echo(", ".join(getattr(updated.scan, kind)))


@main.group("settings")
def settings_group() -> None:
    """Inspect or edit scan and watch settings."""


@settings_group.command("show")
@click.pass_obj
def settings_show(state: CliState) -> None:
    """Print every setting as KEY = VALUE."""
    for key, value in state.store.load().setting_items():
        click.echo(f"{key} = {value}")


@settings_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def settings_set(state: CliState, key: str, value: str) -> None:
    """Set KEY (e.g. scan.max_file_size_kb) to VALUE, given as JSON or plain text."""
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    try:
        updated = state.store.update(key, parsed)
    except KeyError as exc:
        raise click.ClickException(f"Unknown setting: {key}") from exc
    except ValidationError as exc:
        raise click.ClickException(f"Invalid value for {key}: {value}") from exc
    click.echo(f"{key} = {dict(updated.setting_items())[key]}")


@main.command("settings-path")
@click.pass_obj
def settings_path_command(state: CliState) -> None:
    """Print settings file path."""
    click.echo(str(state.store.path))


@main.command()
def about() -> None:
    """Show version and project summary."""
    info = {
        "name": "ctxtree",
        "version": __version__,
        "description": "Size and token aware project trees for AI context export",
    }
    click.echo(json.dumps(info, indent=2))


if __name__ == "__main__":
    main()
