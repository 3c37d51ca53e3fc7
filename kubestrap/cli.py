import logging
import sys

import typer

from kubestrap.commands import bootstrap, config, inventory
from kubestrap.config import Config

app = typer.Typer(help="kubestrap - bootstrap kubeadm clusters over SSH")

# Global debug flag
debug_mode = False


# Configure logging
def setup_logging(debug_mode: bool = False):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler()
        ]
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('paramiko').setLevel(logging.WARNING)


# Add all command groups
app.add_typer(bootstrap.app, name="bootstrap")
app.add_typer(inventory.app, name="inventory")
app.add_typer(config.app, name="config")


@app.command("serve")
def serve(
    host: str = typer.Option(Config.API_HOST, '--host', help='Address to bind'),
    port: int = typer.Option(Config.API_PORT, '--port', help='Port to listen on'),
):
    """Start the HTTP API."""
    import uvicorn

    try:
        Config.validate()
    except ValueError as e:
        logging.warning(f"⚠️  {e}; falling back to the default API key")
    logging.info(f"🌐 Serving kubestrap API on {host}:{port}")
    uvicorn.run("kubestrap.api.main:app", host=host, port=port)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """kubestrap - kubeadm cluster bootstrap CLI."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Debug mode enabled")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
