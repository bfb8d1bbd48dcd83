from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping, Optional

import typer
from pydantic import ValidationError

from tintscope import renderer
from tintscope.config import RunConfig, load_config
from tintscope.exceptions import TintscopeError
from tintscope.pipeline import FileResult, HighlightSession, SnapshotStatus, load_snapshot

app = typer.Typer(add_completion=False, help="Check TextMate + semantic token highlighting.")


def _context_session_factory(ctx: typer.Context) -> Callable[[RunConfig], HighlightSession]:
    obj = ctx.obj
    if isinstance(obj, Mapping):
        candidate = obj.get("session_factory")
        if callable(candidate):
            return candidate
    return HighlightSession


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)


def _display_path(path: Path, base_dir: Path) -> str:
    return str(path.relative_to(base_dir)) if path.is_relative_to(base_dir) else str(path)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)


def _report_file(result: FileResult, display: str) -> None:
    if not result.semantic_available:
        typer.secho(f"  No semantic tokens returned for {display}", fg=typer.colors.YELLOW)
    typer.echo(f"  Generated: {result.json_path}")
    typer.echo(f"  Generated: {result.html_path}")
    status = result.snapshot_status
    if status is SnapshotStatus.UPDATED:
        typer.secho(f"  Updated snapshot: {result.snapshot_path}", fg=typer.colors.CYAN)
    elif status is SnapshotStatus.VERIFIED:
        typer.secho("  Snapshot verified", fg=typer.colors.GREEN)
    elif status is SnapshotStatus.MISSING:
        _fail(f"  Missing snapshot: {result.snapshot_path}")
    elif status is SnapshotStatus.MISMATCH:
        _fail(f"  Snapshot mismatch for {result.path.name}")
        if result.diff_path is not None:
            typer.secho(f"     Diff report: {result.diff_path}", fg=typer.colors.YELLOW, err=True)
        for note in result.notes:
            _fail(f"     {note}")
        typer.secho("     (Use --update to overwrite)", dim=True, err=True)


@app.command("run")
def run(
    ctx: typer.Context,
    config: Path = typer.Argument(..., help="Path to the TOML run configuration."),
    verify: bool = typer.Option(False, "--verify", help="Verify generated tokens against snapshots."),
    update: bool = typer.Option(False, "--update", help="Update snapshots."),
) -> None:
    """Highlight every configured file and optionally check snapshots."""
    if verify and update:
        raise typer.BadParameter("Use --verify or --update, not both.")
    session_factory = _context_session_factory(ctx)
    session = None
    try:
        run_config = load_config(config_path=config)
        run_config.out_dir.mkdir(parents=True, exist_ok=True)
        if update:
            run_config.snapshot_dir.mkdir(parents=True, exist_ok=True)
        typer.secho("Initializing engines...", fg=typer.colors.BLUE)
        session = session_factory(run_config)
        typer.secho(
            f"Starting LSP: {' '.join(run_config.lsp_command)}", fg=typer.colors.BLUE
        )
        session.start()
    except (TintscopeError, OSError) as exc:
        if session is not None:
            session.close()
        _fail(str(exc))
        raise typer.Exit(code=1)

    has_error = False
    try:
        for path in run_config.files:
            if not path.exists():
                typer.secho(f"Skipping missing file: {path}", fg=typer.colors.YELLOW)
                continue
            display = _display_path(path, run_config.base_dir)
            typer.secho(f"Processing {display}...", fg=typer.colors.GREEN)
            try:
                result = session.process_file(path, verify=verify, update=update)
            except (TintscopeError, OSError) as exc:
                _fail(f"Failed to process {display}: {exc}")
                has_error = True
                continue
            _report_file(result, display)
            has_error = has_error or result.failed
    finally:
        session.close()

    if has_error:
        _fail("\nVerification failed." if verify else "\nSome files failed.")
        raise typer.Exit(code=1)


@app.command("diff")
def diff(
    snapshot: Path = typer.Argument(..., help="Path to snapshot JSON."),
    generated: Path = typer.Argument(..., help="Path to generated JSON."),
    output: Optional[Path] = typer.Argument(None, help="Output HTML path."),
) -> None:
    """Render a visual diff between two token JSON files."""
    snapshot = snapshot.resolve()
    generated = generated.resolve()
    for label, path in (("Snapshot", snapshot), ("Generated", generated)):
        if not path.exists():
            _fail(f"{label} file not found: {path}")
            raise typer.Exit(code=1)
    try:
        left = load_snapshot(snapshot)
        right = load_snapshot(generated)
    except (OSError, ValueError, ValidationError) as exc:
        _fail(f"Failed to read token JSON: {exc}")
        raise typer.Exit(code=1)
    out_path = output.resolve() if output is not None else Path.cwd() / "diff.html"
    renderer.render_diff_html(left, right, out_path, "Snapshot", "Generated")
    typer.secho(f"Diff generated at: {out_path}", fg=typer.colors.GREEN)

