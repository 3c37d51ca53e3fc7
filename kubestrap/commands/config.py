"""Installer configuration commands."""

from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from ..modules.kubeadm import ConfigError, create_config_file, show_config, validate_config_file

app = typer.Typer(help="Installer configuration commands")

console = Console()


@app.command("init")
def init(
    output: Optional[str] = typer.Option(None, '--output', '-o', help='Where to write the configuration file'),
    force: bool = typer.Option(False, '--force', help='Overwrite an existing file'),
):
    """Write a configuration file with default values."""
    try:
        path = create_config_file(output, overwrite=force)
    except FileExistsError as e:
        console.print(f"❌ {escape(str(e))} (use --force to overwrite)")
        raise typer.Exit(code=1)
    console.print(f"✅ Created configuration file: {path}")


@app.command("show")
def show(
    config: Optional[str] = typer.Option(None, '--config', '-c', help='Path to the installer configuration'),
):
    """Show the effective configuration."""
    try:
        typer.echo(show_config(config))
    except ConfigError as e:
        console.print(f"❌ {escape(str(e))}")
        raise typer.Exit(code=1)


@app.command("validate")
def validate(
    config: str = typer.Option(..., '--config', '-c', help='Path to the installer configuration'),
):
    """Validate a configuration file."""
    result = validate_config_file(config)
    for warning in result['warnings']:
        console.print(f"⚠️  {escape(warning)}")
    if not result['valid']:
        for error in result['errors']:
            console.print(f"❌ {escape(error)}")
        raise typer.Exit(code=1)
    console.print(f"✅ Configuration is valid: {result['path']}")
