"""
kubeadm Cluster Bootstrap Module

This package drives a set of inventory hosts from unconfigured machines to a
working kubeadm cluster: one control-plane node and any number of workers.

Key Features:
- Three ordered phases: host preparation, control-plane bootstrap, worker join
- Per-step barriers across the hosts of a phase
- Idempotent steps guarded by host-local markers, safe to re-run
- A run-scoped channel carrying the join command to the workers
- Flexible configuration management with environment variable overrides
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Core functionality
from .models import (
    Host,
    HostGroup,
    HostRole,
    Phase,
    PhaseName,
    PhaseResult,
    RunOutcome,
    RunSummary,
    Step,
    StepResult,
    StepStatus,
)
from .errors import (
    ChannelError,
    ConfigError,
    ControlPlaneBootstrapError,
    GuardCheckError,
    HostUnreachableError,
    InventoryError,
    JoinCredentialError,
    KubestrapError,
    PreconditionError,
    StepFailedError,
)
from .guard import IdempotencyGuard, Marker
from .channel import JOIN_COMMAND, JoinCredentialChannel
from .collaborators import Collaborators
from .orchestrator import ClusterBootstrap, build_phases

# Configuration management
from .config import ClusterVars, InstallerConfig, LoggingConfig, get_config, set_config, DEFAULT_CONFIG_PATHS
from .configure import create_config_file, validate_config_file, show_config

__all__ = [
    # Core classes
    'Host',
    'HostGroup',
    'HostRole',
    'Phase',
    'PhaseName',
    'PhaseResult',
    'RunOutcome',
    'RunSummary',
    'Step',
    'StepResult',
    'StepStatus',
    'ClusterBootstrap',
    'build_phases',
    'IdempotencyGuard',
    'Marker',
    'JoinCredentialChannel',
    'JOIN_COMMAND',
    'Collaborators',

    # Errors
    'KubestrapError',
    'InventoryError',
    'ConfigError',
    'HostUnreachableError',
    'PreconditionError',
    'GuardCheckError',
    'StepFailedError',
    'ControlPlaneBootstrapError',
    'JoinCredentialError',
    'ChannelError',

    # Configuration management
    'ClusterVars',
    'InstallerConfig',
    'get_config',
    'set_config',
    'create_config_file',
    'validate_config_file',
    'show_config',
    'configure_logging',
]

__version__ = "0.1.0"


def configure_logging(config: LoggingConfig) -> None:
    """Apply the logging section of the installer configuration.

    Sets the level of the ``kubestrap`` logger tree and, when a file is
    configured, adds a rotating file handler.
    """
    logger = logging.getLogger("kubestrap")
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    if not config.file:
        return

    log_file = Path(config.file).expanduser().absolute()
    if any(getattr(h, 'baseFilename', None) == str(log_file) for h in logger.handlers):
        return
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        filename=log_file,
        maxBytes=config.max_size_mb * 1024 * 1024,
        backupCount=config.backup_count
    )
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(file_handler)
    logger.debug(f"Logging to file: {log_file}")
