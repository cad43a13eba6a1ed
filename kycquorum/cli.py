"""kycq CLI: Typer + Rich terminal interface.

Commands: init, submit, vote, evaluate, tally, status, pending, export,
verifiers, config, serve. Every command opens the configured store,
runs one engine operation and renders the result with Rich.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from kycquorum import __version__
from kycquorum.cli_display import (
    render_outcome,
    render_progress,
    render_submissions,
    render_tally,
    render_verifiers,
    render_vote_result,
)
from kycquorum.consensus.protocol import ConsensusEngine
from kycquorum.errors import AlreadyVoted, ConfigError, ConsensusError
from kycquorum.persistence.export import export_json, export_markdown
from kycquorum.persistence.factory import Stores, build_engine, open_stores
from kycquorum.schemas.config import Settings
from kycquorum.schemas.consensus import (
    Verifier,
    VerifierStatus,
    VoteDecision,
)
from kycquorum.settings import default_config_path, load_settings

console = Console()

T = TypeVar("T")

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="kycq",
    help="Multi-bank KYC consensus verification.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

verifiers_app = typer.Typer(
    name="verifiers",
    help="Manage the verifier (bank) registry.",
    no_args_is_help=True,
)
app.add_typer(verifiers_app, name="verifiers")

config_app = typer.Typer(
    name="config",
    help="Show consensus configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Global options captured by the callback
_options: dict[str, Any] = {"config": None, "db": None}


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"kycq {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    config: Path = typer.Option(
        None, "--config", "-c",
        help="Path to a TOML config file (defaults to the packaged defaults.toml)",
    ),
    db: str = typer.Option(
        None, "--db",
        help="SQLite database path (overrides the config file)",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """kycq: multi-bank KYC consensus verification."""
    _options["config"] = config
    _options["db"] = db
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ── Helpers ──────────────────────────────────────────────────────


def _load_settings() -> Settings:
    """Load settings, apply CLI overrides, exit on error."""
    try:
        settings = load_settings(_options["config"])
    except (FileNotFoundError, ConfigError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None
    if _options["db"]:
        settings.store.db_path = _options["db"]
    return settings


def _run(op: Callable[[ConsensusEngine, Stores], Awaitable[T]]) -> T:
    """Open the configured stores, run one engine operation, close."""
    settings = _load_settings()

    async def _go() -> T:
        async with open_stores(settings.store) as stores:
            engine = build_engine(stores, settings)
            return await op(engine, stores)

    try:
        return asyncio.run(_go())
    except AlreadyVoted as e:
        console.print(f"[yellow]Already voted:[/yellow] {e}")
        console.print(
            f"Current tally: {e.tally.approvals} approve / "
            f"{e.tally.rejections} reject / {e.tally.total} total ({e.status.value})"
        )
        raise typer.Exit(1) from None
    except ConsensusError as e:
        console.print(f"[red]{type(e).__name__}:[/red] {e}")
        raise typer.Exit(1) from None
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


# ── kycq init ────────────────────────────────────────────────────


@app.command()
def init() -> None:
    """Create the database and tables if they do not exist."""

    async def _noop(engine: ConsensusEngine, stores: Stores) -> None:
        return None

    _run(_noop)
    settings = _load_settings()
    console.print(
        f"[green]Store ready:[/green] {settings.store.backend} "
        f"({settings.store.db_path})"
    )


# ── kycq submit ──────────────────────────────────────────────────


@app.command()
def submit(
    user_id: str = typer.Argument(..., help="Owner of the document"),
    document_type: str = typer.Argument(..., help="Document kind, e.g. passport"),
    document_hash: str = typer.Option("", "--hash", help="Opaque document hash"),
    submission_id: str = typer.Option(None, "--id", help="Explicit submission id"),
) -> None:
    """Open a new submission for consensus."""

    async def _submit(engine: ConsensusEngine, stores: Stores):
        return await engine.submit_document(
            user_id, document_type, document_hash, submission_id,
        )

    submission = _run(_submit)
    console.print(f"[green]Submission created:[/green] {submission.submission_id}")


# ── kycq vote ────────────────────────────────────────────────────


@app.command()
def vote(
    submission_id: str = typer.Argument(..., help="Submission to vote on"),
    verifier_id: str = typer.Argument(..., help="Voting verifier id"),
    decision: VoteDecision = typer.Argument(..., help="approve or reject"),
    note: str = typer.Option(None, "--note", "-m", help="Reason for the vote"),
    name: str = typer.Option("", "--name", help="Verifier display name"),
) -> None:
    """Cast a verifier's vote and show the consensus outcome."""

    async def _vote(engine: ConsensusEngine, stores: Stores):
        return await engine.cast_vote(
            submission_id, verifier_id, decision, note=note, verifier_name=name,
        )

    render_vote_result(console, _run(_vote))


# ── kycq evaluate ────────────────────────────────────────────────


@app.command()
def evaluate(
    submission_id: str = typer.Argument(..., help="Submission to evaluate"),
) -> None:
    """Re-run consensus evaluation (a no-op once finalized)."""

    async def _evaluate(engine: ConsensusEngine, stores: Stores):
        return await engine.evaluate_consensus(submission_id)

    render_outcome(console, _run(_evaluate))


# ── kycq tally / status ──────────────────────────────────────────


@app.command()
def tally(
    submission_id: str = typer.Argument(..., help="Submission id"),
) -> None:
    """Show the current tally and status."""

    async def _tally(engine: ConsensusEngine, stores: Stores):
        return await engine.get_tally(submission_id)

    render_tally(console, _run(_tally))


@app.command()
def status(
    submission_id: str = typer.Argument(..., help="Submission id"),
) -> None:
    """Show consensus progress and every vote."""

    async def _progress(engine: ConsensusEngine, stores: Stores):
        return await engine.get_progress(submission_id)

    render_progress(console, _run(_progress))


# ── kycq pending ─────────────────────────────────────────────────


@app.command()
def pending(
    limit: int = typer.Option(20, "--limit", "-n", help="Max submissions to show"),
) -> None:
    """List submissions still awaiting consensus, oldest first."""

    async def _pending(engine: ConsensusEngine, stores: Stores):
        return await engine.list_pending(limit)

    submissions = _run(_pending)
    if not submissions:
        console.print("[dim]No pending submissions.[/dim]")
        return
    render_submissions(console, submissions, "Pending submissions")


# ── kycq export ──────────────────────────────────────────────────


@app.command()
def export(
    submission_id: str = typer.Argument(..., help="Submission id"),
    fmt: str = typer.Option(
        "markdown", "--format", "-f",
        help="Export format: json or markdown",
    ),
) -> None:
    """Export a submission's consensus record as JSON or Markdown."""
    if fmt not in ("json", "markdown"):
        console.print(f"[red]Invalid format:[/red] '{fmt}'. Choose json or markdown.")
        raise typer.Exit(1)

    async def _get(engine: ConsensusEngine, stores: Stores):
        progress = await engine.get_progress(submission_id)
        submission = await stores.submissions.get_submission(submission_id)
        return progress, submission

    progress, submission = _run(_get)
    if fmt == "json":
        console.print_json(export_json(progress))
    else:
        console.print(export_markdown(progress, submission), markup=False)


# ── kycq verifiers ───────────────────────────────────────────────


@verifiers_app.command("add")
def verifiers_add(
    verifier_id: str = typer.Argument(..., help="Verifier id"),
    name: str = typer.Argument("", help="Display name"),
    status: VerifierStatus = typer.Option(
        VerifierStatus.APPROVED, "--status", help="Initial registration status",
    ),
) -> None:
    """Register a verifying bank."""

    async def _add(engine: ConsensusEngine, stores: Stores):
        return await stores.verifiers.register(
            Verifier(
                verifier_id=verifier_id,
                name=name,
                status=status,
                registered_at=datetime.now(UTC),
            )
        )

    verifier = _run(_add)
    console.print(
        f"[green]Registered verifier:[/green] {verifier.verifier_id} ({verifier.status.value})"
    )


@verifiers_app.command("list")
def verifiers_list() -> None:
    """Show all registered verifiers."""

    async def _list(engine: ConsensusEngine, stores: Stores):
        return await stores.verifiers.list_verifiers()

    verifiers = _run(_list)
    if not verifiers:
        console.print("[dim]No verifiers registered.[/dim]")
        return
    render_verifiers(console, verifiers)


def _set_verifier_status(verifier_id: str, new_status: VerifierStatus) -> None:
    async def _set(engine: ConsensusEngine, stores: Stores):
        return await stores.verifiers.set_status(verifier_id, new_status)

    if _run(_set):
        console.print(f"[green]Verifier {verifier_id}:[/green] {new_status.value}")
    else:
        console.print(f"[red]Verifier not found:[/red] {verifier_id}")
        raise typer.Exit(1)


@verifiers_app.command("approve")
def verifiers_approve(
    verifier_id: str = typer.Argument(..., help="Verifier id"),
) -> None:
    """Approve a verifier so it may vote."""
    _set_verifier_status(verifier_id, VerifierStatus.APPROVED)


@verifiers_app.command("suspend")
def verifiers_suspend(
    verifier_id: str = typer.Argument(..., help="Verifier id"),
) -> None:
    """Suspend a verifier; its existing votes remain."""
    _set_verifier_status(verifier_id, VerifierStatus.SUSPENDED)


# ── kycq config ──────────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show the active consensus and store configuration."""
    settings = _load_settings()

    table = Table(title="Configuration", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("min_votes", str(settings.consensus.min_votes))
    table.add_row("threshold", f"{settings.consensus.threshold:.2f}")
    table.add_row("backend", settings.store.backend.value)
    table.add_row("db_path", settings.store.db_path)
    table.add_row(
        "require_registered_verifiers",
        str(settings.store.require_registered_verifiers),
    )
    console.print(table)


@config_app.command("path")
def config_path() -> None:
    """Show which config file is in use."""
    path = _options["config"] or default_config_path()
    exists = Path(path).exists()
    state = "[green]found[/green]" if exists else "[red]missing[/red]"
    console.print(f"{path} {state}")


# ── kycq serve ───────────────────────────────────────────────────


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
) -> None:
    """Run the HTTP + WebSocket consensus service."""
    try:
        import uvicorn

        from kycquorum.service.server import create_app
    except ImportError:
        console.print(
            "[red]Server dependencies missing.[/red] "
            "Install with: pip install kyc-quorum[server]"
        )
        raise typer.Exit(1) from None

    settings = _load_settings()
    console.print(f"[green]Serving on[/green] http://{host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port, log_level="warning")

