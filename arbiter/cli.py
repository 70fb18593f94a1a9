"""Command-line interface for Arbiter."""

import asyncio
import sys
from datetime import datetime, timedelta
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from arbiter.committee.orchestrator import CommitteeOrchestrator
from arbiter.config import get_settings
from arbiter.contracts.models import Contract, ContractStatus, Party
from arbiter.coordination import DecisionCoordinator
from arbiter.database.db import get_db
from arbiter.database.repositories import ContractRepository, DecisionRepository
from arbiter.decision.models import DecisionOutcome
from arbiter.decision.monitor import ContractMonitor
from arbiter.decision.orchestrator import DecisionOrchestrator
from arbiter.events import DeliberationEventBus
from arbiter.exceptions import ArbiterError
from arbiter.llm.manager import build_proposers
from arbiter.settlement.client import HttpSettlementClient
from arbiter.utils.helpers import ensure_utc, format_percentage, utc_now
from arbiter.utils.logger import setup_logger

console = Console()


def _build_orchestrator() -> DecisionOrchestrator:
    settings = get_settings()
    proposers = build_proposers()
    return DecisionOrchestrator(
        committee=CommitteeOrchestrator.from_settings(settings, proposers),
        contracts=ContractRepository(),
        decisions=DecisionRepository(),
        settlement=HttpSettlementClient(),
        bus=DeliberationEventBus(max_queue_size=settings.subscriber_queue_size),
        coordinator=DecisionCoordinator(cooldown_seconds=settings.coordinator_cooldown_seconds),
    )


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool):
    """Arbiter - Committee deliberation and settlement for binary contracts."""
    setup_logger(log_level="DEBUG" if verbose else None)
    if verbose:
        console.print("[dim]Verbose mode enabled[/dim]")


@cli.command("init-db")
def init_db():
    """Create the database schema."""
    try:
        db = get_db()
        db.initialize_schema()
        console.print(f"[green]✓ Database initialized at {db.db_path}[/green]")
    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


@cli.command("add-contract")
@click.argument("contract_id")
@click.option("--party-a", "party_a", required=True, help="Party A as id:name")
@click.option("--party-b", "party_b", required=True, help="Party B as id:name")
@click.option("--topic", help="What the contract is about")
@click.option("--ends-in", "ends_in", type=int, default=0, help="Minutes until betting ends")
@click.option("--closed", is_flag=True, help="Create the contract with betting already closed")
def add_contract(
    contract_id: str,
    party_a: str,
    party_b: str,
    topic: Optional[str],
    ends_in: int,
    closed: bool,
):
    """Register a contract for deliberation.

    Args:
        contract_id: Contract identifier
    """
    try:
        contract = Contract(
            id=contract_id,
            status=ContractStatus.BETTING_CLOSED if closed else ContractStatus.BETTING_OPEN,
            betting_end_time=utc_now() + timedelta(minutes=ends_in),
            party_a=_parse_party(party_a),
            party_b=_parse_party(party_b),
            topic=topic,
        )
        ContractRepository().save(contract)
        console.print(f"[green]✓ Contract {contract_id} added ({contract.status.value})[/green]")
    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


@cli.command("list-contracts")
def list_contracts():
    """List stored contracts and whether each can be decided now."""
    try:
        contracts = ContractRepository().get_all()
        if not contracts:
            console.print("[yellow]No contracts stored[/yellow]")
            return

        now = utc_now()
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Contract", style="cyan")
        table.add_column("Parties", style="white")
        table.add_column("Status", style="yellow")
        table.add_column("Betting Ends", style="dim")
        table.add_column("Winner", style="green")
        for contract in contracts:
            if contract.is_betting_open(now):
                status = f"{contract.status.value} (open)"
            elif contract.can_decide_winner(now):
                status = f"{contract.status.value} (ready)"
            else:
                status = contract.status.value
            table.add_row(
                contract.id,
                f"{contract.party_a.name} vs {contract.party_b.name}",
                status,
                _format_time(contract.betting_end_time),
                contract.winner_id or "-",
            )
        console.print(table)
    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


def _parse_party(value: str) -> Party:
    party_id, _, name = value.partition(":")
    if not party_id:
        raise click.BadParameter(f"Invalid party '{value}', expected id:name")
    return Party(id=party_id, name=name or party_id)


@cli.command("close-betting")
@click.argument("contract_id")
@click.option("--decide", "decide_now", is_flag=True, help="Decide immediately after closing")
def close_betting(contract_id: str, decide_now: bool):
    """Mark a contract's betting as ended."""
    try:
        repo = ContractRepository()
        contract = repo.find_by_id(contract_id)
        if contract is None:
            console.print(f"[red]✗ Contract {contract_id} not found[/red]")
            sys.exit(1)

        contract.close_betting()
        repo.update(contract)
        console.print(f"[green]✓ Betting closed for {contract_id}[/green]")

        if decide_now:
            settings = get_settings()
            orchestrator = _build_orchestrator()
            monitor = ContractMonitor(
                orchestrator,
                repo,
                history_max_age_seconds=settings.event_history_max_age_seconds,
            )
            outcome = asyncio.run(monitor.trigger(contract_id))
            if outcome is None:
                console.print(f"[yellow]Decision for {contract_id} already in progress[/yellow]")
            else:
                _display_outcome(outcome)

    except ArbiterError as e:
        console.print(f"[red]✗ {str(e)}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


@cli.command("decide")
@click.argument("contract_id")
def decide(contract_id: str):
    """Run committee deliberation and settle the winner for a contract."""
    try:
        console.print(f"[bold]Deliberating on {contract_id}...[/bold]")
        orchestrator = _build_orchestrator()
        outcome = asyncio.run(orchestrator.decide(contract_id))
        _display_outcome(outcome)
        if not outcome.success and not outcome.already_decided:
            sys.exit(1)
    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


def _display_outcome(outcome: DecisionOutcome):
    if outcome.success:
        console.print(f"\n[green]✓ Winner decided: {outcome.winner_id}[/green]")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Contract", outcome.contract_id)
        table.add_row("Deliberation", outcome.deliberation_id or "N/A")
        table.add_row("Decision", outcome.decision_id or "N/A")
        table.add_row("Methodology", outcome.methodology or "N/A")
        table.add_row("Transaction", outcome.transaction_ref or "N/A")
        console.print(table)
    elif outcome.already_decided:
        console.print(
            f"[yellow]Contract {outcome.contract_id} was already decided: {outcome.winner_id}[/yellow]"
        )
    else:
        console.print(
            f"[red]✗ Decision failed during {outcome.phase} "
            f"({outcome.error_code}): {outcome.reason}[/red]"
        )


@cli.command("monitor")
@click.option("--interval", type=float, help="Seconds between scans")
@click.option("--once", is_flag=True, help="Scan a single time and exit")
def monitor(interval: Optional[float], once: bool):
    """Watch for contracts whose betting has ended and decide them."""
    settings = get_settings()
    try:
        orchestrator = _build_orchestrator()
        contract_monitor = ContractMonitor(
            orchestrator,
            ContractRepository(),
            interval_seconds=interval or settings.monitor_interval_seconds,
            history_max_age_seconds=settings.event_history_max_age_seconds,
        )

        if once:
            outcomes = asyncio.run(contract_monitor.run_once())
            if not outcomes:
                console.print("[yellow]No contracts ready for decision[/yellow]")
            for outcome in outcomes:
                _display_outcome(outcome)
            return

        console.print(f"[bold]Monitoring contracts every {contract_monitor.interval_seconds}s...[/bold]")
        asyncio.run(contract_monitor.run_forever())

    except KeyboardInterrupt:
        console.print("\n[dim]Monitor stopped[/dim]")
    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


@cli.command("show-decision")
@click.argument("contract_id")
@click.option("--messages", "show_messages", is_flag=True, help="Show the deliberation transcript")
def show_decision(contract_id: str, show_messages: bool):
    """Show the stored decision for a contract."""
    try:
        decision = DecisionRepository().find_by_contract_id(contract_id)
        if decision is None:
            console.print(f"[yellow]No decision stored for {contract_id}[/yellow]")
            return

        consensus = decision.consensus
        audit = consensus.audit_summary()
        console.print(f"\n[bold cyan]Decision for {contract_id}[/bold cyan]")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Winner", audit["decision"]["winner"])
        table.add_row("Confidence", format_percentage(audit["decision"]["confidence"]))
        table.add_row("Methodology", audit["decision"]["methodology"])
        table.add_row("Strength", audit["consensus"]["strength"])
        table.add_row("Unanimity", format_percentage(audit["consensus"]["unanimityLevel"]))
        table.add_row(
            "Evidence",
            f"{audit['consensus']['evidenceCount']} "
            f"({audit['consensus']['highQualityEvidenceCount']} high quality)",
        )
        table.add_row("Meets Threshold", "Yes" if audit["quality"]["meetsThreshold"] else "No")
        table.add_row("Transaction", decision.transaction_ref)
        table.add_row("Decided At", _format_time(decision.created_at))
        table.add_row("Rounds", str(decision.metrics.get("roundsCompleted", "N/A")))
        console.print(table)

        if audit["quality"]["recommendsHumanReview"]:
            console.print("\n[bold yellow]⚠ Human review recommended[/bold yellow]")
        for risk in audit["quality"]["riskFactors"]:
            console.print(f"  [yellow]• {risk}[/yellow]")

        console.print("\n[bold cyan]Reasoning[/bold cyan]")
        console.print(decision.reasoning)

        if decision.evidence:
            console.print("\n[bold cyan]Evidence[/bold cyan]")
            for item in decision.evidence:
                console.print(f"  • {item}")

        if consensus.alternative_choices:
            console.print("\n[bold cyan]Dissent[/bold cyan]")
            for alternative in consensus.alternative_choices:
                console.print(
                    f"  • {alternative.choice} ({format_percentage(alternative.probability)}): "
                    f"{alternative.reasoning}"
                )

        if show_messages:
            console.print("\n[bold cyan]Transcript[/bold cyan]")
            for message in decision.messages:
                console.print(f"  [dim]{_format_time(message.timestamp)}[/dim] {message.summary()}")

    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


@cli.command("history")
@click.option("--limit", type=int, default=20, help="Number of decisions to show")
def history(limit: int):
    """List recent decisions."""
    try:
        decisions = DecisionRepository().get_recent(limit)
        if not decisions:
            console.print("[yellow]No decisions yet[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Contract", style="cyan")
        table.add_column("Winner", style="green")
        table.add_column("Confidence", style="yellow")
        table.add_column("Methodology", style="white")
        table.add_column("Decided At", style="dim")
        for decision in decisions:
            table.add_row(
                decision.contract_id,
                decision.winner_id,
                format_percentage(decision.confidence),
                decision.methodology,
                _format_time(decision.created_at),
            )
        console.print(table)
    except Exception as e:
        console.print(f"[red]✗ Error: {str(e)}[/red]")
        sys.exit(1)


def _format_time(value: datetime) -> str:
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M:%S UTC")


if __name__ == "__main__":
    cli()
