"""CLI interface for running snippets in a sandboxed session."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .config import PlaygroundConfig, load_config
from .errors import BootstrapFailure, PlaygroundError
from .schemas import RunOutcome
from .session import Session
from .status import Status

app = typer.Typer(help="Python Playground CLI")

EXIT_TIMEOUT = 124
EXIT_CANCELLED = 130


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config_path: Optional[str]) -> PlaygroundConfig:
    if config_path is None:
        return PlaygroundConfig()
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.secho(f"❌ Invalid config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _echo_status(status: Status) -> None:
    color = typer.colors.RED if status is Status.ERROR else typer.colors.BLUE
    typer.secho(f"[{status.label}]", fg=color, err=True)


def _print_outcome(outcome: RunOutcome) -> None:
    if outcome.kind == "result":
        typer.echo(outcome.output, nl=not outcome.output.endswith("\n"))
        if outcome.truncated:
            typer.secho("⚠️  Output truncated", fg=typer.colors.YELLOW, err=True)
        return
    typer.secho(f"⏹  {outcome.output}", fg=typer.colors.YELLOW, err=True)


async def _run_once(
    config: PlaygroundConfig,
    code: str,
    timeout_ms: int | None,
    cap_bytes: int | None,
    verbose: bool,
) -> RunOutcome:
    session = Session(config)
    if verbose:
        session.subscribe(_echo_status)
    async with session:
        if session.status is not Status.READY:
            raise BootstrapFailure(session.last_error or "Sandbox failed to load")
        return await session.submit(code, timeout_ms=timeout_ms, cap_bytes=cap_bytes)


@app.command()
def run(
    path: str = typer.Argument(..., help="Python file to run, or '-' to read stdin"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Hard timeout: 1000, 3000, 5000 or 10000"),
    cap_bytes: Optional[int] = typer.Option(None, "--cap-bytes", help="Output budget: 4000, 16000 or 64000"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log session activity"),
) -> None:
    """Run one snippet and print its captured output."""
    _configure_logging(verbose)
    config = _load(config_path)

    try:
        _ = config.run_options(timeout_ms, cap_bytes)
    except ValueError as e:
        typer.secho(f"❌ Invalid option: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)

    if path == "-":
        code = sys.stdin.read()
    else:
        source = Path(path)
        if not source.exists():
            typer.secho(f"❌ File not found: {path}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        code = source.read_text(encoding="utf-8")

    if not code.strip():
        typer.secho("⚠️  Please write some code first!", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(1)

    try:
        outcome = asyncio.run(_run_once(config, code, timeout_ms, cap_bytes, verbose))
    except KeyboardInterrupt:
        typer.secho("⏹  Cancelled", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(EXIT_CANCELLED)
    except BootstrapFailure as e:
        typer.secho(f"❌ {Status.ERROR.label}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    _print_outcome(outcome)
    if outcome.timed_out:
        raise typer.Exit(EXIT_TIMEOUT)
    if outcome.cancelled:
        raise typer.Exit(EXIT_CANCELLED)
    if not outcome.ok:
        raise typer.Exit(1)


def _read_snippet() -> str | None:
    """Read lines until a blank line. Returns None on EOF or ':quit'."""
    lines: list[str] = []
    prompt = ">>> "
    while True:
        try:
            line = input(prompt)
        except EOFError:
            return "\n".join(lines) if lines else None
        if not lines and line.strip() == ":quit":
            return None
        if not line.strip():
            if lines:
                return "\n".join(lines) + "\n"
            continue
        lines.append(line)
        prompt = "... "


async def _shell(config: PlaygroundConfig) -> None:
    session = Session(config)
    session.subscribe(_echo_status)
    loop = asyncio.get_running_loop()
    async with session:
        while True:
            code = await loop.run_in_executor(None, _read_snippet)
            if code is None:
                break
            if await session.initialize() is not Status.READY:
                typer.secho(f"❌ {session.last_error}", fg=typer.colors.RED, err=True)
                continue
            try:
                outcome = await session.submit(code)
            except PlaygroundError as e:
                typer.secho(f"⚠️  {e}", fg=typer.colors.YELLOW, err=True)
                continue
            _print_outcome(outcome)


@app.command()
def shell(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log session activity"),
) -> None:
    """Read snippets (end each with a blank line) and run them in one session."""
    _configure_logging(verbose)
    config = _load(config_path)
    typer.echo("Enter code, finish with a blank line. ':quit' to exit.")
    try:
        asyncio.run(_shell(config))
    except KeyboardInterrupt:
        typer.echo("")


async def _check(config: PlaygroundConfig) -> tuple[Status, str | None]:
    async with Session(config) as session:
        return session.status or Status.ERROR, session.last_error


@app.command()
def check(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log session activity"),
) -> None:
    """Start a sandbox and report whether its interpreter loads."""
    _configure_logging(verbose)
    config = _load(config_path)
    status, error = asyncio.run(_check(config))
    if status is Status.READY:
        typer.secho(f"✅ {status.label}", fg=typer.colors.GREEN)
        return
    typer.secho(f"❌ {status.label}: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


if __name__ == "__main__":
    app()
