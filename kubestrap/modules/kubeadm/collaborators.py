"""Adapters for the external systems the bootstrap drives.

Each adapter is a thin wrapper that turns a capability (package management,
service management, manifest application, the kubeadm CLI) into commands
run through the remote executor. None of them keep state between calls.
"""

import logging
import shlex
from dataclasses import dataclass
from typing import Iterable, List

from .errors import ControlPlaneBootstrapError, JoinCredentialError, StepFailedError
from .models import Host
from .utils import (
    apply_output_unchanged,
    parse_held_packages,
    parse_interface_address,
    parse_passwd_home,
    redact_join_command,
)

logger = logging.getLogger("kubestrap.collaborators")

ADMIN_CONF = "/etc/kubernetes/admin.conf"
KUBELET_CONF = "/etc/kubernetes/kubelet.conf"
KEYRING_DIR = "/etc/apt/keyrings"
SOURCES_DIR = "/etc/apt/sources.list.d"

APT_ENV = "DEBIAN_FRONTEND=noninteractive"


class AptPackageManager:
    """Package management on Debian-based hosts."""

    def __init__(self, executor):
        self.executor = executor

    def is_installed(self, host: Host, packages: Iterable[str]) -> bool:
        packages = list(packages)
        result = self.executor.run(
            host,
            "dpkg-query -W -f='${Package} ${Status}\\n' " + ' '.join(shlex.quote(p) for p in packages),
        )
        installed = set()
        for line in result.stdout.splitlines():
            parts = line.split(None, 1)
            if len(parts) == 2 and parts[1].strip() == 'install ok installed':
                installed.add(parts[0])
        return all(p in installed for p in packages)

    def ensure_installed(self, host: Host, packages: Iterable[str], update_cache: bool = True) -> None:
        pkgs = ' '.join(shlex.quote(p) for p in packages)
        command = f"{APT_ENV} apt-get install -y --no-install-recommends {pkgs}"
        if update_cache:
            command = f"{APT_ENV} apt-get update -qq && {command}"
        self.executor.run(host, command, check=True)

    def held_packages(self, host: Host) -> List[str]:
        return parse_held_packages(self.executor.run(host, "apt-mark showhold", check=True).stdout)

    def is_held(self, host: Host, packages: Iterable[str]) -> bool:
        held = set(self.held_packages(host))
        return all(p in held for p in packages)

    def pin(self, host: Host, packages: Iterable[str]) -> None:
        """Hold packages at their installed version."""
        self.executor.run(host, "apt-mark hold " + ' '.join(shlex.quote(p) for p in packages), check=True)

    @staticmethod
    def keyring_path(name: str) -> str:
        return f"{KEYRING_DIR}/{name}-apt-keyring.gpg"

    @staticmethod
    def source_path(name: str) -> str:
        return f"{SOURCES_DIR}/{name}.list"

    @classmethod
    def source_line(cls, name: str, url: str) -> str:
        return f"deb [signed-by={cls.keyring_path(name)}] {url} /\n"

    def add_repository(self, host: Host, name: str, url: str) -> None:
        """Install the signing key of an apt repository and register it."""
        self.executor.run(
            host,
            f"mkdir -p {KEYRING_DIR} && "
            f"curl -fsSL {shlex.quote(url + 'Release.key')} | "
            f"gpg --dearmor --yes -o {shlex.quote(self.keyring_path(name))}",
            check=True,
        )
        self.executor.write_file(host, self.source_path(name), self.source_line(name, url))


class SystemdServiceManager:
    """Container-runtime service management through systemd."""

    def __init__(self, executor):
        self.executor = executor

    def is_running(self, host: Host, service: str) -> bool:
        name = shlex.quote(service)
        return self.executor.run(
            host, f"systemctl is-enabled --quiet {name} && systemctl is-active --quiet {name}"
        ).ok

    def enable_and_start(self, host: Host, service: str) -> None:
        self.executor.run(host, f"systemctl enable --now {shlex.quote(service)}", check=True)


class KubectlManifestApplier:
    """Applies manifests on the control plane with the admin kubeconfig."""

    def __init__(self, executor, kubeconfig: str = ADMIN_CONF):
        self.executor = executor
        self.kubeconfig = kubeconfig

    def apply(self, host: Host, source: str) -> bool:
        """Apply a manifest.

        Returns:
            bool: True if any object was created or configured, False if all were unchanged
        """
        result = self.executor.run(
            host,
            f"kubectl --kubeconfig={shlex.quote(self.kubeconfig)} apply -f {shlex.quote(source)}",
            check=True,
        )
        return not apply_output_unchanged(result.stdout)


class KubeadmCLI:
    """The kubeadm command surface used to form the cluster."""

    def __init__(self, executor):
        self.executor = executor

    def init(self, host: Host, endpoint: str, cert_sans: str, pod_cidr: str, node_name: str) -> str:
        """Initialize the control plane.

        Returns:
            str: Path of the generated admin credential

        Raises:
            ControlPlaneBootstrapError: If kubeadm init fails
        """
        command = (
            "kubeadm init"
            f" --control-plane-endpoint={shlex.quote(endpoint)}"
            f" --apiserver-cert-extra-sans={shlex.quote(cert_sans)}"
            f" --pod-network-cidr={shlex.quote(pod_cidr)}"
            f" --node-name={shlex.quote(node_name)}"
            " --ignore-preflight-errors=Swap"
        )
        result = self.executor.run(host, command)
        if not result.ok:
            raise ControlPlaneBootstrapError(
                f"kubeadm init failed on {host.name} (exit {result.exit_status}): "
                f"{result.stderr.strip() or result.stdout.strip()}"
            )
        return ADMIN_CONF

    def issue_join_token(self, host: Host) -> str:
        """Mint a new bootstrap token and return the full join command."""
        result = self.executor.run(host, "kubeadm token create --print-join-command", check=True)
        command = result.stdout.strip()
        if not command.startswith("kubeadm join "):
            raise JoinCredentialError(f"Unexpected join command from {host.name}: {command[:60]!r}")
        return command

    def join(self, host: Host, credential: str) -> None:
        if not credential.startswith("kubeadm join "):
            raise JoinCredentialError("Refusing to run a join credential that is not a kubeadm join command")
        try:
            self.executor.run(host, credential, check=True)
        except StepFailedError as e:
            raise StepFailedError(host.name, redact_join_command(e.command), e.exit_status, e.stderr) from None


def discover_local_address(executor, host: Host, interface: str) -> str:
    """Query the live IPv4 address of an interface on the host."""
    result = executor.run(host, f"ip -json addr show {shlex.quote(interface)}", check=True)
    try:
        return parse_interface_address(result.stdout, interface)
    except ValueError as e:
        raise StepFailedError(host.name, result.command, 0, str(e))


def user_home(executor, host: Host, user: str) -> str:
    """Return the home directory of a user on the host."""
    result = executor.run(host, f"getent passwd {shlex.quote(user)}")
    home = parse_passwd_home(result.stdout) if result.ok else None
    if home:
        return home
    return '/root' if user == 'root' else f'/home/{user}'


@dataclass
class Collaborators:
    """The set of external-system adapters a run uses."""
    packages: AptPackageManager
    services: SystemdServiceManager
    manifests: KubectlManifestApplier
    kubeadm: KubeadmCLI

    @classmethod
    def from_executor(cls, executor) -> 'Collaborators':
        return cls(
            packages=AptPackageManager(executor),
            services=SystemdServiceManager(executor),
            manifests=KubectlManifestApplier(executor),
            kubeadm=KubeadmCLI(executor),
        )
