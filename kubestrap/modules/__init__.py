"""
Cluster bootstrap modules.
"""
from .inventory import Inventory, load_inventory
from .ssh import ConnectionPool, SSHExecutor

__all__ = [
    'Inventory',
    'load_inventory',
    'ConnectionPool',
    'SSHExecutor',
]
