"""Inventory inspection commands."""

import json
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..modules import bootstrap
from ..modules.kubeadm import KubestrapError

logger = logging.getLogger("kubestrap.commands.inventory")

app = typer.Typer(help="Inventory commands")

console = Console()


@app.command("show")
def show(
    inventory: str = typer.Option(..., '--inventory', '-i', help='Path to the INI or YAML inventory'),
    config: Optional[str] = typer.Option(None, '--config', '-c', help='Path to the installer configuration'),
    as_json: bool = typer.Option(False, '--json', help='Print the inventory as JSON'),
):
    """Show the hosts of an inventory grouped by role."""
    try:
        _, hosts = bootstrap.load_settings(inventory, config)
    except KubestrapError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(hosts.to_dict(), indent=2))
        return

    table = Table(title=str(hosts.source))
    table.add_column("Group", style="cyan")
    table.add_column("Host")
    table.add_column("Address")
    table.add_column("Node name")
    table.add_column("SSH")
    for group, members in (("master", hosts.master), ("workers", hosts.workers)):
        for host in members:
            table.add_row(group, host.name, host.address, host.node_name, f"{host.ssh_user}@{host.address}:{host.port}")
    console.print(table)


@app.command("validate")
def validate(
    inventory: str = typer.Option(..., '--inventory', '-i', help='Path to the INI or YAML inventory'),
    config: Optional[str] = typer.Option(None, '--config', '-c', help='Path to the installer configuration'),
):
    """Check that an inventory parses and has exactly one master."""
    try:
        _, hosts = bootstrap.load_settings(inventory, config)
    except KubestrapError as e:
        console.print(f"❌ Invalid inventory: {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(
        f"✅ Inventory is valid: master {hosts.control_plane.name}, {len(hosts.workers)} worker(s)"
    )
