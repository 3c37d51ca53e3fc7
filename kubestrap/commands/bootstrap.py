"""Cluster Bootstrap Command.

Runs the three bootstrap phases (preparation, control-plane bootstrap,
worker join) against the hosts of an inventory.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..modules import bootstrap
from ..modules.kubeadm import KubestrapError, RunOutcome, RunSummary, StepStatus, configure_logging

logger = logging.getLogger("kubestrap.commands.bootstrap")

app = typer.Typer(help="Cluster bootstrap commands")

console = Console()

OUTCOME_STYLES = {
    RunOutcome.SUCCEEDED: "✅ [green]succeeded[/green]",
    RunOutcome.PARTIAL: "⚠️  [yellow]partial[/yellow]",
    RunOutcome.ABORTED: "❌ [red]aborted[/red]",
}


def render_plan(plan: List[Dict[str, Any]]) -> None:
    """Print the phase/step plan."""
    for index, phase in enumerate(plan, 1):
        hosts = ', '.join(phase['hosts']) or '(no hosts)'
        console.print(f"[bold]{index}. {phase['phase']}[/bold] on {phase['target']}: {hosts}")
        if phase['requires']:
            console.print(f"   requires: {', '.join(phase['requires'])}")
        for step in phase['steps']:
            console.print(f"   - {step['name']}: {step['description']}")


def render_summary(summary: RunSummary) -> None:
    """Print which hosts completed which phases, and why others did not."""
    table = Table(title=f"Run {summary.run_id}")
    table.add_column("Host", style="cyan")
    table.add_column("Completed phases")
    table.add_column("Applied", justify="right")
    table.add_column("Already satisfied", justify="right")
    table.add_column("Failure")

    for host, phases in summary.completed_phases().items():
        results = summary.results_for(host)
        failures = [f"{r.step}: {r.message}" for r in results if r.status == StepStatus.FAILED]
        table.add_row(
            escape(host),
            ', '.join(phases) or '-',
            str(sum(1 for r in results if r.status == StepStatus.APPLIED)),
            str(sum(1 for r in results if r.status == StepStatus.ALREADY_SATISFIED)),
            f"[red]{escape(failures[0].splitlines()[0])}[/red]" if failures else '',
        )
    console.print(table)

    for phase in summary.phases:
        if phase.aborted:
            console.print(f"⏭️  {phase.phase.value} aborted: {escape(phase.abort_reason or '')}")
    console.print(f"Outcome: {OUTCOME_STYLES[summary.outcome]} in {summary.duration:.1f}s")


@app.command("run")
def run(
    inventory: str = typer.Option(..., '--inventory', '-i', help='Path to the INI or YAML inventory'),
    config: Optional[str] = typer.Option(None, '--config', '-c', help='Path to the installer configuration'),
    forks: Optional[int] = typer.Option(None, '--forks', '-f', min=1, help='Hosts processed in parallel per phase'),
    kubernetes_version: Optional[str] = typer.Option(None, '--kubernetes-version', help='Kubernetes repository version, e.g. 1.29'),
    pod_cidr: Optional[str] = typer.Option(None, '--pod-cidr', help='Pod network address range'),
    cri_version: Optional[str] = typer.Option(None, '--cri-version', help='crictl release, e.g. v1.28.0'),
    interface: Optional[str] = typer.Option(None, '--interface', help='Interface whose address the kubelet advertises'),
    dry_run: bool = typer.Option(False, '--dry-run', help='Show what would be done without connecting to any host'),
    as_json: bool = typer.Option(False, '--json', help='Print the run summary as JSON'),
):
    """Bootstrap a kubeadm cluster from an inventory.

    Example:
        kubestrap bootstrap run --inventory hosts.ini --pod-cidr 10.244.0.0/16
    """
    overrides = bootstrap.cluster_overrides(forks, kubernetes_version, pod_cidr, cri_version, interface)
    try:
        settings, hosts = bootstrap.load_settings(inventory, config, overrides)
    except KubestrapError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    debugging = logging.getLogger().isEnabledFor(logging.DEBUG)
    configure_logging(settings.logging)
    if debugging:
        logging.getLogger("kubestrap").setLevel(logging.DEBUG)

    if dry_run:
        plan = bootstrap.plan(settings, hosts)
        if as_json:
            typer.echo(json.dumps(plan, indent=2))
        else:
            console.print(f"ℹ️  [dry-run] Plan for {hosts.source} (forks={settings.forks})")
            render_plan(plan)
        return

    logger.info(
        f"🚀 Bootstrapping cluster from {hosts.source}: "
        f"master {hosts.control_plane.name}, {len(hosts.workers)} worker(s)"
    )
    summary = bootstrap.run(settings, hosts)

    if as_json:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        render_summary(summary)

    if summary.outcome == RunOutcome.ABORTED:
        raise typer.Exit(code=1)
