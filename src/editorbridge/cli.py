"""Standalone editorbridge CLI.

Usage:
    editorbridge start  [PROJECT] [--foreground] [--require-auth]
    editorbridge stop   [PROJECT]
    editorbridge status [PROJECT]
    editorbridge log    [PROJECT] [--port PORT] [--lines N]
    editorbridge prune
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import typer
from rich.console import Console

app = typer.Typer(
    name="editorbridge",
    help="Manage editorbridge sessions.",
    no_args_is_help=True,
)
console = Console()


def _info(msg: str) -> None:
    console.print(f"[dim]>[/dim] {msg}")


def _success(msg: str) -> None:
    console.print(f"[green]✓[/green] {msg}")


def _error(msg: str) -> None:
    console.print(f"[red]✗[/red] {msg}")


def _project(project: str | None) -> str:
    from editorbridge._utils import canonical_project_root

    return canonical_project_root(project or Path.cwd())


@app.command()
def start(
    project: str | None = typer.Argument(None, help="Project root (default: cwd)."),
    foreground: bool = typer.Option(
        False, "--foreground", "-f", help="Run in foreground (blocks)."
    ),
    require_auth: bool = typer.Option(
        False, "--require-auth", help="Reject requests until the peer authenticates."
    ),
) -> None:
    """Start a session for a project."""
    from editorbridge import server_status

    root = _project(project)
    info = server_status(root)
    if info:
        _info(
            f"Session already running for {info.get('project_name')} "
            f"(pid={info.get('pid')}, port={info.get('port')})"
        )
        return

    if foreground:
        from editorbridge.server import run_standalone

        _info(f"Starting session for {root}...")
        run_standalone(root, require_auth=require_auth or None)
    else:
        _start_background(root, require_auth=require_auth)


@app.command()
def stop(
    project: str | None = typer.Argument(None, help="Project root (default: cwd)."),
) -> None:
    """Stop the session for a project."""
    from editorbridge import stop_server

    root = _project(project)
    if stop_server(root):
        _success("Session stopped.")
    else:
        _info("No running session found.")


@app.command()
def status(
    project: str | None = typer.Argument(None, help="Project root (default: cwd)."),
) -> None:
    """Show the session status for a project."""
    from editorbridge import server_status

    info = server_status(_project(project))
    if not info:
        _info("No running session found.")
        return

    connected = info.get("connected")
    if connected is None:
        state = "[yellow]unreachable[/yellow]"
    elif connected:
        state = "[green]connected[/green]"
    else:
        state = "waiting for connection"
    _success("Session is running")
    console.print(f"  [bold]Project:[/bold]    {info.get('project_name')}")
    console.print(f"  [bold]Path:[/bold]       {info.get('project')}")
    console.print(f"  [bold]Port:[/bold]       {info.get('port')}")
    console.print(f"  [bold]PID:[/bold]        {info.get('pid')}")
    console.print(f"  [bold]Peer:[/bold]       {state}")


@app.command()
def log(
    project: str | None = typer.Argument(None, help="Project root (default: cwd)."),
    port: int | None = typer.Option(None, "--port", "-p", help="Session port."),
    lines: int = typer.Option(50, "--lines", "-n", help="Lines to show (0 for all)."),
) -> None:
    """Show the debug log of a session."""
    from editorbridge import debug_log_path
    from editorbridge.lockfile import LockfileRegistry

    registry = LockfileRegistry()
    if port is not None:
        path: Path | None = registry.data_dir / "logs" / f"{port}.log"
    else:
        path = debug_log_path(_project(project), registry)

    if path is None or not path.exists():
        _info("No debug log found.")
        return

    content = path.read_text(encoding="utf-8").splitlines()
    if lines > 0:
        content = content[-lines:]
    for line in content:
        console.print(line, markup=False, highlight=False)


@app.command()
def prune() -> None:
    """Remove lockfiles left behind by dead processes."""
    from editorbridge.lockfile import LockfileRegistry

    removed = LockfileRegistry().prune_stale()
    if removed > 0:
        _success(f"Removed {removed} stale lockfile(s).")
    else:
        _info("No stale lockfiles found.")


def _start_background(project_root: str, require_auth: bool = False) -> None:
    """Start the server as a background process and wait for its lockfile."""
    import subprocess

    cmd = [sys.executable, "-m", "editorbridge.server", project_root]
    if require_auth:
        cmd.append("--require-auth")

    _info(f"Starting session for {project_root}...")
    subprocess.Popen(
        cmd,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )

    from editorbridge import server_status

    deadline = time.monotonic() + 5.0
    while time.monotonic() < deadline:
        info = server_status(project_root)
        if info:
            _success(f"Session started (pid={info.get('pid')}, port={info.get('port')})")
            return
        time.sleep(0.2)

    _error("Server process started but no lockfile appeared within 5s.")
    raise typer.Exit(1)


if __name__ == "__main__":
    app()
