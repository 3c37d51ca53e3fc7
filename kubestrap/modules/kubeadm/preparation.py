"""Local preparation applied to every host.

Steps run in this order on each host: kernel modules before the sysctl
keys that depend on them, swap off before kubeadm checks for it, the
runtime before the Kubernetes packages that are then held.
"""

import logging
import shlex

from .guard import Marker, all_of, file_content
from .models import Host, Step, StepContext, StepStatus
from .utils import comment_swap_entries, has_active_swap_entries, render_lines, render_sysctl

logger = logging.getLogger("kubestrap.preparation")

MODULES_CONF = "/etc/modules-load.d/k8s.conf"
SYSCTL_CONF = "/etc/sysctl.d/k8s.conf"
FSTAB = "/etc/fstab"
CRICTL_BIN = "/usr/local/bin/crictl"
CRIO_SERVICE = "crio"
CRIO_PACKAGE = "cri-o"
JQ_PACKAGE = "jq"


def modules_loaded(modules) -> Marker:
    """Marker satisfied when every module is present in the running kernel."""
    modules = list(modules)
    return Marker(
        f"loaded:{','.join(modules)}",
        lambda executor, host: all(executor.file_exists(host, f"/sys/module/{m}") for m in modules),
    )


def sysctl_applied(values) -> Marker:
    """Marker satisfied when the live kernel reports every expected value."""
    keys = list(values)

    def check(executor, host: Host) -> bool:
        result = executor.run(host, f"sysctl -n {' '.join(shlex.quote(k) for k in keys)}")
        # multi-value keys come back tab separated
        reported = [line.split() for line in result.stdout.splitlines()]
        return result.ok and reported == [str(values[k]).split() for k in keys]

    return Marker(f"sysctl:{','.join(keys)}", check)


def kernel_modules(ctx: StepContext) -> StepStatus:
    """Persist and load the overlay and bridge netfilter modules."""
    modules = ctx.vars.kernel_modules
    content = render_lines(modules)

    def effect():
        for module in modules:
            ctx.executor.run(ctx.host, f"modprobe {shlex.quote(module)}", check=True)
        ctx.executor.write_file(ctx.host, MODULES_CONF, content)

    marker = all_of(file_content(MODULES_CONF, content), modules_loaded(modules))
    return ctx.guard.ensure(ctx.host, "kernel_modules", marker, effect)


def sysctl(ctx: StepContext) -> StepStatus:
    """Let bridged pod traffic reach iptables and enable forwarding."""
    content = render_sysctl(ctx.vars.sysctl)

    def effect():
        # sysctl --system reads the file, so it has to exist first
        ctx.executor.write_file(ctx.host, SYSCTL_CONF, content)
        ctx.executor.run(ctx.host, "sysctl --system", check=True)

    marker = all_of(file_content(SYSCTL_CONF, content), sysctl_applied(ctx.vars.sysctl))
    return ctx.guard.ensure(ctx.host, "sysctl", marker, effect)


def _swap_disabled(executor, host: Host) -> bool:
    active = executor.run(host, "swapon --show=NAME --noheadings", check=True).stdout.strip()
    if active:
        return False
    fstab = executor.read_file(host, FSTAB) or ''
    return not has_active_swap_entries(fstab)


def swap(ctx: StepContext) -> StepStatus:
    """Turn swap off now and comment it out of fstab so it stays off."""

    def effect():
        ctx.executor.run(ctx.host, "swapoff -a", check=True)
        fstab = ctx.executor.read_file(ctx.host, FSTAB)
        if fstab and has_active_swap_entries(fstab):
            ctx.executor.write_file(ctx.host, FSTAB, comment_swap_entries(fstab))

    return ctx.guard.ensure(ctx.host, "swap", Marker("swap-disabled", _swap_disabled), effect)


def _install(ctx: StepContext, step: str, packages) -> StepStatus:
    packages = list(packages)
    apt = ctx.collaborators.packages
    marker = Marker(f"installed:{','.join(packages)}", lambda executor, host: apt.is_installed(host, packages))
    return ctx.guard.ensure(ctx.host, step, marker, lambda: apt.ensure_installed(ctx.host, packages))


def _repository(ctx: StepContext, step: str, name: str, url: str) -> StepStatus:
    apt = ctx.collaborators.packages
    marker = file_content(apt.source_path(name), apt.source_line(name, url))
    return ctx.guard.ensure(ctx.host, step, marker, lambda: apt.add_repository(ctx.host, name, url))


def base_packages(ctx: StepContext) -> StepStatus:
    return _install(ctx, "base_packages", ctx.vars.base_packages)


def crio_repository(ctx: StepContext) -> StepStatus:
    return _repository(ctx, "crio_repository", "cri-o", ctx.vars.crio_repository)


def crio_package(ctx: StepContext) -> StepStatus:
    return _install(ctx, "crio_package", [CRIO_PACKAGE])


def crio_service(ctx: StepContext) -> StepStatus:
    services = ctx.collaborators.services
    marker = Marker(f"running:{CRIO_SERVICE}", lambda executor, host: services.is_running(host, CRIO_SERVICE))
    return ctx.guard.ensure(
        ctx.host, "crio_service", marker, lambda: services.enable_and_start(ctx.host, CRIO_SERVICE)
    )


def crictl_url(version: str) -> str:
    return (
        "https://github.com/kubernetes-sigs/cri-tools/releases/download/"
        f"{version}/crictl-{version}-linux-amd64.tar.gz"
    )


def crictl(ctx: StepContext) -> StepStatus:
    """Install the crictl release matching cri_version."""
    version = ctx.vars.cri_version

    def installed(executor, host: Host) -> bool:
        result = executor.run(host, f"{CRICTL_BIN} --version")
        # "crictl version v1.28.0"
        return result.ok and result.stdout.split()[-1:] == [version]

    def effect():
        ctx.executor.run(
            ctx.host,
            f"curl -fsSL {shlex.quote(crictl_url(version))} -o /tmp/crictl.tar.gz && "
            "tar -C /usr/local/bin -xzf /tmp/crictl.tar.gz && rm -f /tmp/crictl.tar.gz",
            check=True,
        )

    return ctx.guard.ensure(ctx.host, "crictl", Marker(f"crictl:{version}", installed), effect)


def kubernetes_repository(ctx: StepContext) -> StepStatus:
    return _repository(ctx, "kubernetes_repository", "kubernetes", ctx.vars.kubernetes_repository)


def kubernetes_packages(ctx: StepContext) -> StepStatus:
    return _install(ctx, "kubernetes_packages", ctx.vars.kubernetes_packages)


def hold_packages(ctx: StepContext) -> StepStatus:
    """Pin the cluster tooling so re-runs never upgrade it silently."""
    apt = ctx.collaborators.packages
    packages = list(ctx.vars.kubernetes_packages)
    marker = Marker(f"held:{','.join(packages)}", lambda executor, host: apt.is_held(host, packages))
    return ctx.guard.ensure(ctx.host, "hold_packages", marker, lambda: apt.pin(ctx.host, packages))


def jq(ctx: StepContext) -> StepStatus:
    return _install(ctx, "jq", [JQ_PACKAGE])


PREPARATION_STEPS = (
    Step("kernel_modules", kernel_modules, "Enable and persist kernel modules"),
    Step("sysctl", sysctl, "Apply Kubernetes networking sysctl keys"),
    Step("swap", swap, "Disable swap now and on boot"),
    Step("base_packages", base_packages, "Install baseline utility packages"),
    Step("crio_repository", crio_repository, "Add the CRI-O apt repository"),
    Step("crio_package", crio_package, "Install CRI-O"),
    Step("crio_service", crio_service, "Enable and start CRI-O"),
    Step("crictl", crictl, "Install crictl"),
    Step("kubernetes_repository", kubernetes_repository, "Add the Kubernetes apt repository"),
    Step("kubernetes_packages", kubernetes_packages, "Install kubelet, kubeadm and kubectl"),
    Step("hold_packages", hold_packages, "Hold Kubernetes packages at their installed version"),
    Step("jq", jq, "Install jq"),
)
