"""CLI entry point for Gatekeeper."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from gatekeeper import __version__
from gatekeeper.config import RuntimeConfig, load_config
from gatekeeper.errors import GatekeeperError
from gatekeeper.logs import setup_logging

if TYPE_CHECKING:
    from gatekeeper.engine.runtime import Runtime
    from gatekeeper.safety.policy import PolicyGate

console = Console()

CLI_CHANNEL = "cli"
DEFAULT_SESSION = "cli"


@click.group()
@click.version_option(version=__version__, prog_name="gatekeeper")
@click.option("-v", "--verbose", is_flag=True, help="Show info-level logs on stderr")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Gatekeeper: policy-gated delegation for coding agents."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _load_config() -> RuntimeConfig:
    try:
        return load_config()
    except GatekeeperError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(2) from e


def _configure_logging(config: RuntimeConfig) -> None:
    verbose = bool(click.get_current_context().find_root().obj.get("verbose"))
    config.ensure_dirs()
    setup_logging(config.log_dir, level=logging.INFO if verbose else logging.WARNING)


def _get_gate(config: RuntimeConfig) -> PolicyGate:
    from gatekeeper.safety.policy import PolicyGate

    try:
        return PolicyGate.from_file(config.policy_path)
    except GatekeeperError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(2) from e


def _get_runtime() -> Runtime:
    from gatekeeper.engine.runtime import Runtime

    config = _load_config()
    _configure_logging(config)
    return Runtime.from_config(config, gate=_get_gate(config))


async def _send(text: str) -> None:
    console.print(text, markup=False, highlight=False)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@main.command()
def init() -> None:
    """Create the data directory and check the policy file."""
    config = _load_config()
    _configure_logging(config)
    gate = _get_gate(config)
    console.print(f"[green]Gatekeeper initialized at {config.data_dir}[/green]")
    console.print(f"  Policy:    {config.policy_path} ({len(gate.config.rules)} rules)")
    console.print(f"  Proposals: {config.proposals_path}")
    console.print(f"  Logs:      {config.log_dir}")


@main.command()
@click.argument("command")
def check(command: str) -> None:
    """Evaluate a shell command against the policy without running it."""
    from gatekeeper.safety.policy import Allowed, Blocked

    gate = _get_gate(_load_config())
    verdict = gate.evaluate(command)

    if isinstance(verdict, Allowed):
        console.print(f"[green]allowed[/green] (rule: {verdict.rule_id or 'default'})")
    elif isinstance(verdict, Blocked):
        console.print(f"[red]blocked[/red] (rule: {verdict.rule_id}) {verdict.reason}")
    else:
        console.print(f"[yellow]requires-secret[/yellow] (rule: {verdict.rule_id})")
        console.print(f"  {verdict.prompt}")


@main.command()
@click.argument("paths", nargs=-1)
@click.option("--owner-approved", is_flag=True, help="Record owner approval for R2/R3 work")
def risk(paths: tuple[str, ...], owner_approved: bool) -> None:
    """Classify the risk tier of a set of touched paths."""
    from gatekeeper.safety.risk import classify_path, evaluate_job_policy

    decision = evaluate_job_policy(paths, owner_approved=owner_approved)

    if paths:
        table = Table(title="Touched Paths")
        table.add_column("Path", style="cyan")
        table.add_column("Tier", style="bold")
        for path in paths:
            table.add_row(path, classify_path(path).value)
        console.print(table)

    color = "green" if decision.allowed else "red"
    console.print(f"[bold]Risk:[/bold] {decision.risk_level.value}")
    console.print(f"[bold]Allowed:[/bold] [{color}]{decision.allowed}[/{color}]")
    console.print(f"[bold]Approval:[/bold] {decision.approval_authority.value}")
    for reason in decision.reasons:
        console.print(f"  - {reason}")


@main.command("hash-secret")
@click.password_option("--passphrase", prompt="Passphrase", help="Passphrase to hash")
def hash_secret_cmd(passphrase: str) -> None:
    """Print the secret_hash value for a requires-secret rule."""
    from gatekeeper.safety.policy import hash_secret

    console.print(hash_secret(passphrase))


@main.command()
@click.argument("prompt")
@click.option("--session", "session_id", default=DEFAULT_SESSION, help="Session owning the proposal")
@click.option("--dir", "working_dir", default=None, help="Directory inside the target repository")
def delegate(prompt: str, session_id: str, working_dir: str | None) -> None:
    """Run a delegated task in a sandbox and store its proposal."""
    from gatekeeper.delegation.messages import format_delegate_completion_messages

    runtime = _get_runtime()
    console.print(f"[bold cyan]Delegating:[/bold cyan] {prompt}")
    try:
        result = asyncio.run(
            runtime.delegation.delegate_with_review(session_id, prompt, working_dir)
        )
    except GatekeeperError as e:
        console.print(f"[red]Delegation failed:[/red] {e}")
        raise SystemExit(1) from e

    console.print(f"[dim]Exit code: {result.exit_code}[/dim]")
    for message in format_delegate_completion_messages(
        result,
        max_lines=runtime.config.file_diff_max_lines,
        max_chars=runtime.config.file_diff_max_chars,
    ):
        console.print(message, markup=False, highlight=False)


@main.command()
@click.option("--session", "session_id", default=None, help="Only this session")
def pending(session_id: str | None) -> None:
    """List pending proposals."""
    runtime = _get_runtime()
    asyncio.run(runtime.approvals.expire_stale())
    proposals = runtime.store.list_pending(session_id)

    if not proposals:
        console.print("[dim]No pending proposals.[/dim]")
        return

    table = Table(title="Pending Proposals")
    table.add_column("Proposal", style="cyan")
    table.add_column("Session")
    table.add_column("Project", style="green")
    table.add_column("Files")
    table.add_column("Expires", style="yellow")

    for proposal in proposals:
        table.add_row(
            proposal.id,
            proposal.session_id,
            proposal.project_name,
            str(len(proposal.changed_files)),
            _iso(proposal.expires_at),
        )
    console.print(table)


def _control(session_id: str, text: str) -> None:
    runtime = _get_runtime()
    result = asyncio.run(runtime.approvals.handle_text(session_id, text, CLI_CHANNEL, _send))
    if not result.handled:
        console.print(f"[red]Not a control command:[/red] {text}")
        raise SystemExit(2)


@main.command()
@click.argument("proposal_id", required=False)
@click.option("--session", "session_id", default=DEFAULT_SESSION, help="Session owning the proposal")
def accept(proposal_id: str | None, session_id: str) -> None:
    """Apply the session's pending proposal to the repository."""
    _control(session_id, f"/accept {proposal_id}" if proposal_id else "/accept")


@main.command()
@click.argument("proposal_id", required=False)
@click.option("--session", "session_id", default=DEFAULT_SESSION, help="Session owning the proposal")
def reject(proposal_id: str | None, session_id: str) -> None:
    """Discard the session's pending proposal."""
    _control(session_id, f"/reject {proposal_id}" if proposal_id else "/reject")


@main.command()
def expire() -> None:
    """Expire stale proposals and remove their sandboxes."""
    runtime = _get_runtime()
    expired = asyncio.run(runtime.approvals.expire_stale())
    if not expired:
        console.print("[dim]Nothing to expire.[/dim]")
        return
    for proposal in expired:
        console.print(f"[yellow]Expired[/yellow] {proposal.id} (session {proposal.session_id})")
