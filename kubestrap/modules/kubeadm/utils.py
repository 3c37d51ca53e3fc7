"""Utility functions for kubeadm bootstrap steps."""

import json
import logging
import re
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger("kubestrap.utils")

SWAP_LINE = re.compile(r'^([^#].*\sswap\s.*)$', re.MULTILINE)
JOIN_TOKEN = re.compile(r'(--token\s+)(\S+)')
DISCOVERY_HASH = re.compile(r'(--discovery-token-ca-cert-hash\s+)(\S+)')


def render_lines(lines: Iterable[str]) -> str:
    """Render lines as file content with a trailing newline."""
    return ''.join(f"{line}\n" for line in lines)


def render_sysctl(values: Dict[str, str]) -> str:
    """Render sysctl key/value pairs in sysctl.d format."""
    return render_lines(f"{key} = {value}" for key, value in values.items())


def render_kubelet_defaults(node_ip: str) -> str:
    """Render /etc/default/kubelet pinning the advertised node address."""
    return f"KUBELET_EXTRA_ARGS=--node-ip={node_ip}\n"


def comment_swap_entries(fstab: str) -> str:
    """Comment out every active swap entry in an fstab.

    Example:
        '/swap.img none swap sw 0 0' becomes '# /swap.img none swap sw 0 0'
    """
    return SWAP_LINE.sub(r'# \1', fstab)


def has_active_swap_entries(fstab: str) -> bool:
    return bool(SWAP_LINE.search(fstab))


def parse_interface_address(output: str, interface: str) -> str:
    """Extract the first IPv4 address from `ip -json addr show` output.

    Args:
        output: JSON output of `ip -json addr show <interface>`
        interface: Interface name, used in error messages

    Returns:
        str: The IPv4 address assigned to the interface

    Raises:
        ValueError: If the output cannot be parsed or holds no IPv4 address
    """
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValueError(f"Could not parse address data for {interface}: {e}")

    for link in data or []:
        for addr in link.get('addr_info', []):
            if addr.get('family') == 'inet' and addr.get('local'):
                return addr['local']
    raise ValueError(f"No IPv4 address assigned to {interface}")


def apply_output_unchanged(output: str) -> bool:
    """Return True if every object reported by `kubectl apply` was unchanged."""
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        return False
    return all(line.endswith(' unchanged') for line in lines)


def parse_passwd_home(entry: str) -> Optional[str]:
    """Return the home directory field of a getent passwd entry."""
    fields = entry.strip().split(':')
    if len(fields) >= 6 and fields[5]:
        return fields[5]
    return None


def parse_held_packages(output: str) -> List[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


def redact_join_command(command: str) -> str:
    """Hide the bootstrap token and CA hash of a join command for logging."""
    redacted = JOIN_TOKEN.sub(r'\1[REDACTED]', command)
    return DISCOVERY_HASH.sub(r'\1[REDACTED]', redacted)
