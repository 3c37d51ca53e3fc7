"""Static host inventory: hosts grouped by role.

Reads Ansible-style inventories, either INI::

    [master]
    cp-1 ansible_host=10.0.0.10

    [workers]
    worker-1 ansible_host=10.0.0.11

    [all:vars]
    ansible_user=ubuntu

or the equivalent YAML layout (``all: {vars: ..., children: {master: {hosts: ...}}}``).
"""
import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jsonschema import ValidationError, validate

from .kubeadm.errors import InventoryError
from .kubeadm.models import Host, HostGroup, HostRole

logger = logging.getLogger("kubestrap.inventory")

GROUP_ALIASES = {
    'master': HostGroup.MASTER,
    'masters': HostGroup.MASTER,
    'control_plane': HostGroup.MASTER,
    'workers': HostGroup.WORKERS,
    'worker': HostGroup.WORKERS,
    'nodes': HostGroup.WORKERS,
}

_HOSTS_SCHEMA = {
    "type": ["object", "null"],
    "additionalProperties": {"type": ["object", "null"]},
}

_GROUP_SCHEMA = {
    "type": ["object", "null"],
    "properties": {
        "hosts": _HOSTS_SCHEMA,
        "vars": {"type": ["object", "null"]},
        "children": {"type": ["object", "null"]},
    },
}

INVENTORY_SCHEMA = {
    "type": "object",
    "properties": {
        "all": _GROUP_SCHEMA,
        "master": _GROUP_SCHEMA,
        "masters": _GROUP_SCHEMA,
        "workers": _GROUP_SCHEMA,
    },
    "additionalProperties": _GROUP_SCHEMA,
}


@dataclass
class Inventory:
    """Hosts of a cluster, grouped by role."""
    master: List[Host] = field(default_factory=list)
    workers: List[Host] = field(default_factory=list)
    source: Optional[str] = None

    @property
    def all(self) -> List[Host]:
        return self.master + self.workers

    def hosts_for(self, group: HostGroup) -> List[Host]:
        """Return the hosts targeted by a group, in declaration order."""
        if group == HostGroup.ALL:
            return self.all
        if group == HostGroup.MASTER:
            return list(self.master)
        return list(self.workers)

    @property
    def control_plane(self) -> Host:
        return self.master[0]

    def validate(self) -> None:
        """Check the role layout: exactly one master, unique host names."""
        if len(self.master) != 1:
            raise InventoryError(
                f"Inventory must define exactly one master host, found {len(self.master)}"
            )
        names = [h.name for h in self.all]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise InventoryError(f"Hosts listed in more than one group: {', '.join(duplicates)}")
        for host in self.all:
            if not host.address:
                raise InventoryError(f"Host {host.name} has no address")

    def to_dict(self) -> Dict[str, Any]:
        def _host(h: Host) -> Dict[str, Any]:
            return {
                'address': h.address,
                'hostname': h.node_name,
                'ssh_user': h.ssh_user,
                'port': h.port,
            }
        return {
            'master': {h.name: _host(h) for h in self.master},
            'workers': {h.name: _host(h) for h in self.workers},
        }


def _make_host(name: str, role: HostRole, hostvars: Dict[str, Any], defaults: Dict[str, Any]) -> Host:
    merged = {**defaults, **(hostvars or {})}
    try:
        port = int(merged.get('ansible_port', merged.get('port', 22)))
    except (TypeError, ValueError):
        raise InventoryError(f"Host {name} has an invalid port: {merged.get('ansible_port')}")
    key_path = merged.get('ansible_ssh_private_key_file') or merged.get('ssh_key_path')
    return Host(
        name=name,
        address=str(merged.get('ansible_host', merged.get('address', name))),
        role=role,
        hostname=merged.get('hostname') or merged.get('node_name'),
        ssh_user=str(merged.get('ansible_user', merged.get('ssh_user', 'root'))),
        ssh_key_path=str(Path(key_path).expanduser()) if key_path else None,
        port=port,
    )


def _parse_ini_value(value: str) -> Any:
    return value.strip().strip('"').strip("'")


def parse_ini_inventory(text: str, defaults: Optional[Dict[str, Any]] = None) -> Inventory:
    """Parse an Ansible INI inventory."""
    hosts: Dict[HostGroup, List[tuple]] = {HostGroup.MASTER: [], HostGroup.WORKERS: []}
    group_vars: Dict[str, Dict[str, Any]] = {}
    section: Optional[str] = None

    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith(('#', ';')):
            continue
        if line.startswith('[') and line.endswith(']'):
            section = line[1:-1].strip()
            continue
        if section is None:
            raise InventoryError(f"Line {lineno}: host '{line}' outside of a group")

        if section.endswith(':vars'):
            if '=' not in line:
                raise InventoryError(f"Line {lineno}: expected key=value in [{section}]")
            key, value = line.split('=', 1)
            group_vars.setdefault(section[:-len(':vars')], {})[key.strip()] = _parse_ini_value(value)
            continue
        if section.endswith(':children'):
            continue

        group = GROUP_ALIASES.get(section)
        if group is None:
            logger.debug(f"Ignoring hosts of unrelated group [{section}]")
            continue

        tokens = shlex.split(line, comments=True)
        name, hostvars = tokens[0], {}
        for token in tokens[1:]:
            if '=' not in token:
                raise InventoryError(f"Line {lineno}: expected key=value, got '{token}'")
            key, value = token.split('=', 1)
            hostvars[key] = _parse_ini_value(value)
        hosts[group].append((section, name, hostvars))

    base = {**(defaults or {}), **group_vars.get('all', {})}
    inventory = Inventory()
    for group, role, target in (
        (HostGroup.MASTER, HostRole.MASTER, inventory.master),
        (HostGroup.WORKERS, HostRole.WORKER, inventory.workers),
    ):
        for section, name, hostvars in hosts[group]:
            group_defaults = {**base, **group_vars.get(section, {})}
            target.append(_make_host(name, role, hostvars, group_defaults))
    return inventory


def parse_yaml_inventory(data: Dict[str, Any], defaults: Optional[Dict[str, Any]] = None) -> Inventory:
    """Parse an Ansible YAML inventory that has already been loaded."""
    try:
        validate(instance=data, schema=INVENTORY_SCHEMA)
    except ValidationError as ve:
        raise InventoryError(f"Inventory validation error: {ve.message}")

    all_group = data.get('all') or {}
    base = {**(defaults or {}), **(all_group.get('vars') or {})}
    groups = dict(all_group.get('children') or {})
    groups.update({k: v for k, v in data.items() if k != 'all'})

    inventory = Inventory()
    for section, body in groups.items():
        group = GROUP_ALIASES.get(section)
        if group is None:
            logger.debug(f"Ignoring hosts of unrelated group '{section}'")
            continue
        body = body or {}
        role = HostRole.MASTER if group == HostGroup.MASTER else HostRole.WORKER
        target = inventory.master if group == HostGroup.MASTER else inventory.workers
        group_defaults = {**base, **(body.get('vars') or {})}
        for name, hostvars in (body.get('hosts') or {}).items():
            target.append(_make_host(str(name), role, hostvars or {}, group_defaults))
    return inventory


def load_inventory(
    path: Union[str, Path],
    default_user: Optional[str] = None,
    default_key_path: Optional[str] = None,
    default_port: Optional[int] = None,
) -> Inventory:
    """Load and validate an inventory file.

    Args:
        path: Path to an INI or YAML inventory
        default_user: SSH user for hosts that do not set ansible_user
        default_key_path: SSH key for hosts that do not set ansible_ssh_private_key_file
        default_port: SSH port for hosts that do not set ansible_port

    Returns:
        Inventory: The validated inventory

    Raises:
        InventoryError: If the file is missing or malformed
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise InventoryError(f"Inventory not found: {path}")

    defaults: Dict[str, Any] = {}
    if default_user:
        defaults['ansible_user'] = default_user
    if default_key_path:
        defaults['ansible_ssh_private_key_file'] = default_key_path
    if default_port:
        defaults['ansible_port'] = default_port

    text = path.read_text()
    if path.suffix in ('.yaml', '.yml'):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise InventoryError(f"Invalid YAML in {path}: {e}")
        inventory = parse_yaml_inventory(data, defaults)
    else:
        inventory = parse_ini_inventory(text, defaults)

    inventory.source = str(path)
    inventory.validate()
    logger.info(
        f"Loaded inventory {path}: {len(inventory.master)} master(s), {len(inventory.workers)} worker(s)"
    )
    return inventory
