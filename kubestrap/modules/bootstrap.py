"""Entry points shared by the CLI and the HTTP API.

Loads the installer configuration and the inventory, wires the SSH executor
and hands both to the orchestrator.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .inventory import Inventory, load_inventory
from .kubeadm import ClusterBootstrap, InstallerConfig, RunSummary
from .ssh import ConnectionPool, SSHExecutor

logger = logging.getLogger("kubestrap.bootstrap")


def cluster_overrides(
    forks: Optional[int] = None,
    kubernetes_version: Optional[str] = None,
    pod_cidr: Optional[str] = None,
    cri_version: Optional[str] = None,
    interface: Optional[str] = None,
) -> Dict[str, Any]:
    """Turn optional command-line values into InstallerConfig overrides."""
    overrides: Dict[str, Any] = {}
    if forks is not None:
        overrides['forks'] = forks
    cluster = {
        key: value
        for key, value in (
            ('kubernetes_version', kubernetes_version),
            ('pod_cidr', pod_cidr),
            ('cri_version', cri_version),
            ('interface', interface),
        )
        if value is not None
    }
    if cluster:
        overrides['cluster'] = cluster
    return overrides


def load_settings(
    inventory_path: Union[str, Path],
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Tuple[InstallerConfig, Inventory]:
    """Load the configuration, then the inventory with the SSH defaults it sets.

    Raises:
        ConfigError: If the configuration is invalid
        InventoryError: If the inventory is missing or malformed
    """
    config = InstallerConfig.load(config_path, overrides)
    inventory = load_inventory(
        inventory_path,
        default_user=config.ssh.user,
        default_key_path=config.ssh.key_path,
        default_port=config.ssh.port,
    )
    return config, inventory


def build_executor(config: InstallerConfig) -> SSHExecutor:
    """Build an executor over a connection pool owned by a single run."""
    return SSHExecutor(
        ConnectionPool(),
        connect_timeout=config.ssh.connect_timeout,
        command_timeout=config.ssh.command_timeout,
        default_key_path=config.ssh.key_path,
    )


def plan(config: InstallerConfig, inventory: Inventory):
    """Return the phase and step plan without connecting to any host."""
    return ClusterBootstrap(inventory, None, cluster_vars=config.cluster, forks=config.forks).plan()


def run(config: InstallerConfig, inventory: Inventory, executor=None) -> RunSummary:
    """Run the bootstrap against the inventory.

    Args:
        config: Installer configuration
        inventory: Validated inventory
        executor: Remote executor (a fresh SSHExecutor, closed afterwards, if None)
    """
    owns_executor = executor is None
    if owns_executor:
        executor = build_executor(config)
    try:
        bootstrap = ClusterBootstrap(inventory, executor, cluster_vars=config.cluster, forks=config.forks)
        return bootstrap.run()
    finally:
        if owns_executor:
            executor.close()
