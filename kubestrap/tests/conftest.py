import json
import os
import re
import shlex
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import pytest

from kubestrap.modules.inventory import Inventory
from kubestrap.modules.kubeadm import ClusterBootstrap, ClusterVars, Host, HostRole
from kubestrap.modules.kubeadm.errors import HostUnreachableError, StepFailedError
from kubestrap.modules.kubeadm.models import CommandResult

ADMIN_CONF = "/etc/kubernetes/admin.conf"
KUBELET_CONF = "/etc/kubernetes/kubelet.conf"
SYSCTL_CONF = "/etc/sysctl.d/k8s.conf"


@dataclass
class HostState:
    """Everything the fake remembers about one machine."""
    address: Optional[str]
    files: Dict[str, str] = field(default_factory=lambda: {"/etc/fstab": "/swap.img none swap sw 0 0\n"})
    installed: Set[str] = field(default_factory=set)
    held: Set[str] = field(default_factory=set)
    running: Set[str] = field(default_factory=set)
    swap_on: bool = True
    crictl_version: Optional[str] = None
    applied_manifests: Set[str] = field(default_factory=set)
    sysctl: Dict[str, str] = field(default_factory=dict)


class FakeExecutor:
    """In-memory stand-in for SSHExecutor.

    Interprets the commands the bootstrap sends and keeps per-host state, so
    a second run sees what the first one left behind.
    """

    def __init__(self, inventory: Inventory):
        self.hosts: Dict[str, HostState] = {h.name: HostState(address=h.address) for h in inventory.all}
        self.commands: List[Tuple[str, str]] = []
        self.failures: List[Tuple[str, re.Pattern, int, str]] = []
        self.unreachable: Set[str] = set()
        self.tokens_issued = 0
        self.closed = False
        self._lock = threading.Lock()

    # Test controls

    def fail_on(self, host: str, pattern: str, exit_status: int = 1, stderr: str = "simulated failure"):
        self.failures.append((host, re.compile(pattern), exit_status, stderr))

    def clear_failures(self):
        self.failures.clear()

    def state(self, host: str) -> HostState:
        return self.hosts[host]

    def commands_on(self, host: str, pattern: str = "") -> List[str]:
        return [c for h, c in self.commands if h == host and re.search(pattern, c)]

    def all_commands(self, pattern: str) -> List[Tuple[str, str]]:
        return [(h, c) for h, c in self.commands if re.search(pattern, c)]

    # Executor interface

    def _reach(self, host: Host, command: str) -> HostState:
        with self._lock:
            self.commands.append((host.name, command))
        if host.name in self.unreachable:
            raise HostUnreachableError(host.name, "Connection timed out")
        return self.hosts[host.name]

    def run(self, host: Host, command: str, check: bool = False, timeout: Optional[int] = None) -> CommandResult:
        state = self._reach(host, command)
        for name, pattern, exit_status, stderr in self.failures:
            if name == host.name and pattern.search(command):
                result = CommandResult(host.name, command, exit_status, '', stderr)
                break
        else:
            exit_status, stdout, stderr = self._dispatch(state, command)
            result = CommandResult(host.name, command, exit_status, stdout, stderr)
        if check:
            result.check()
        return result

    def file_exists(self, host: Host, path: str) -> bool:
        return path in self._reach(host, f"test -e {path}").files

    def read_file(self, host: Host, path: str) -> Optional[str]:
        return self._reach(host, f"cat {path}").files.get(path)

    def write_file(self, host: Host, path: str, content: str, mode: int = 0o644) -> None:
        self._reach(host, f"write {path}").files[path] = content

    def copy_file(self, host: Host, src: str, dst: str, owner: str, mode: int = 0o600) -> None:
        state = self._reach(host, f"install {src} {dst}")
        if src not in state.files:
            raise StepFailedError(host.name, f"install {src} {dst}", 1, f"cannot stat '{src}'")
        state.files[dst] = state.files[src]

    def close(self) -> None:
        self.closed = True

    # Command interpreter

    def _dispatch(self, state: HostState, command: str) -> Tuple[int, str, str]:
        if command.startswith("kubeadm join "):
            state.files[KUBELET_CONF] = "kubelet-credential"
            return 0, "This node has joined the cluster\n", ''
        if command == "kubeadm token create --print-join-command":
            with self._lock:
                self.tokens_issued += 1
                n = self.tokens_issued
            return 0, (
                f"kubeadm join {state.address}:6443 --token abcdef.{n:016d} "
                f"--discovery-token-ca-cert-hash sha256:{n:064x}\n"
            ), ''
        if command.startswith("kubeadm init "):
            state.files[ADMIN_CONF] = "admin-credential"
            state.files[KUBELET_CONF] = "kubelet-credential"
            return 0, "Your Kubernetes control-plane has initialized successfully!\n", ''
        if command.startswith("kubectl "):
            if ADMIN_CONF not in state.files:
                return 1, '', "The connection to the server localhost:8080 was refused\n"
            manifest = shlex.split(command)[-1]
            verb = "unchanged" if manifest in state.applied_manifests else "created"
            state.applied_manifests.add(manifest)
            return 0, f"deployment.apps/{manifest.rsplit('/', 1)[-1]} {verb}\nservice/example {verb}\n", ''
        if command.startswith("ip -json addr show"):
            if not state.address:
                return 0, "[]", ''
            return 0, json.dumps([{
                "ifname": shlex.split(command)[-1],
                "addr_info": [
                    {"family": "inet", "local": state.address, "prefixlen": 24},
                    {"family": "inet6", "local": "fe80::1", "prefixlen": 64},
                ],
            }]), ''
        if command.startswith("dpkg-query"):
            packages = shlex.split(command)[3:]
            lines = [f"{p} install ok installed" for p in packages if p in state.installed]
            return (0 if len(lines) == len(packages) else 1), ''.join(f"{line}\n" for line in lines), ''
        if "apt-get install" in command:
            state.installed.update(shlex.split(command.split("--no-install-recommends", 1)[1]))
            return 0, '', ''
        if command == "apt-mark showhold":
            return 0, ''.join(f"{p}\n" for p in sorted(state.held)), ''
        if command.startswith("apt-mark hold "):
            state.held.update(shlex.split(command)[2:])
            return 0, '', ''
        if "gpg --dearmor" in command:
            state.files[shlex.split(command)[-1]] = "keyring"
            return 0, '', ''
        if "crictl-" in command and "tar " in command:
            state.crictl_version = re.search(r'crictl-(v[\d.]+)-linux', command).group(1)
            return 0, '', ''
        if command == "/usr/local/bin/crictl --version":
            if state.crictl_version is None:
                return 127, '', "bash: /usr/local/bin/crictl: No such file or directory\n"
            return 0, f"crictl version {state.crictl_version}\n", ''
        if command.startswith("systemctl is-enabled"):
            return (0 if shlex.split(command)[-1] in state.running else 3), '', ''
        if command.startswith("systemctl enable --now "):
            state.running.add(shlex.split(command)[-1])
            return 0, '', ''
        if command == "swapon --show=NAME --noheadings":
            return 0, "/swap.img\n" if state.swap_on else '', ''
        if command == "swapoff -a":
            state.swap_on = False
            return 0, '', ''
        if command.startswith("cmp -s "):
            src, dst = shlex.split(command)[2:]
            same = src in state.files and state.files.get(src) == state.files.get(dst)
            return (0 if same else 1), '', ''
        if command.startswith("getent passwd "):
            user = shlex.split(command)[-1]
            home = "/root" if user == "root" else f"/home/{user}"
            return 0, f"{user}:x:1000:1000::{home}:/bin/bash\n", ''
        if command.startswith("modprobe "):
            state.files[f"/sys/module/{shlex.split(command)[-1]}"] = ''
            return 0, '', ''
        if command == "sysctl --system":
            for line in state.files.get(SYSCTL_CONF, '').splitlines():
                key, _, value = line.partition('=')
                state.sysctl[key.strip()] = value.strip()
            return 0, '', ''
        if command.startswith("sysctl -n "):
            keys = shlex.split(command)[2:]
            missing = [k for k in keys if k not in state.sysctl]
            if missing:
                return 255, '', f"sysctl: cannot stat /proc/sys/{missing[0].replace('.', '/')}: No such file or directory\n"
            return 0, ''.join(f"{state.sysctl[k]}\n" for k in keys), ''
        return 127, '', f"fake executor cannot run: {command}\n"


def make_inventory(workers: int = 2, ssh_user: str = "ubuntu") -> Inventory:
    return Inventory(
        master=[Host("cp-1", "10.0.0.10", HostRole.MASTER, ssh_user=ssh_user)],
        workers=[
            Host(f"worker-{i}", f"10.0.0.{10 + i}", HostRole.WORKER, ssh_user=ssh_user)
            for i in range(1, workers + 1)
        ],
    )


@pytest.fixture
def inventory():
    return make_inventory()


@pytest.fixture
def executor(inventory):
    return FakeExecutor(inventory)


@pytest.fixture
def cluster_vars():
    return ClusterVars()


@pytest.fixture
def make_bootstrap(inventory, executor, cluster_vars):
    def _make(**kwargs):
        kwargs.setdefault('cluster_vars', cluster_vars)
        return ClusterBootstrap(inventory, executor, **kwargs)
    return _make


@pytest.fixture
def inventory_file(tmp_path):
    """An INI inventory describing the same hosts as the inventory fixture."""
    path = tmp_path / "hosts.ini"
    path.write_text(
        "[master]\n"
        "cp-1 ansible_host=10.0.0.10\n"
        "\n"
        "[workers]\n"
        "worker-1 ansible_host=10.0.0.11\n"
        "worker-2 ansible_host=10.0.0.12\n"
        "\n"
        "[all:vars]\n"
        "ansible_user=ubuntu\n"
    )
    return path


@pytest.fixture
def fake_ssh(monkeypatch, executor):
    """Route bootstrap runs started from the CLI or the API to the fake executor."""
    from kubestrap.modules import bootstrap

    monkeypatch.setattr(bootstrap, "build_executor", lambda config: executor)
    return executor


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep user config files and KUBESTRAP_* variables out of the tests."""

    from kubestrap.modules.kubeadm import config as config_module
    from kubestrap.modules.kubeadm import configure as configure_module

    for key in list(os.environ):
        if key.startswith("KUBESTRAP_"):
            monkeypatch.delenv(key)
    search_paths = [tmp_path / "missing" / "kubestrap.yaml"]
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATHS", search_paths)
    monkeypatch.setattr(configure_module, "DEFAULT_CONFIG_PATHS", search_paths)
    config_module.set_config(None)
