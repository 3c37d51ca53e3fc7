"""Control-plane bootstrap on the master host."""

import logging

from .channel import JOIN_COMMAND
from .collaborators import ADMIN_CONF, discover_local_address, user_home
from .config import AddonConfig
from .guard import file_content, files_identical, path_exists
from .models import Step, StepContext, StepStatus
from .utils import redact_join_command, render_kubelet_defaults

logger = logging.getLogger("kubestrap.control_plane")

KUBELET_DEFAULTS = "/etc/default/kubelet"


def node_ip(ctx: StepContext) -> StepStatus:
    """Pin the kubelet to the live address of the cluster interface.

    The address is queried on every run; interfaces may be renumbered
    between runs.
    """
    address = discover_local_address(ctx.executor, ctx.host, ctx.vars.interface)
    logger.debug("[%s] %s has address %s", ctx.host.name, ctx.vars.interface, address)
    content = render_kubelet_defaults(address)
    return ctx.guard.ensure(
        ctx.host,
        "node_ip",
        file_content(KUBELET_DEFAULTS, content),
        lambda: ctx.executor.write_file(ctx.host, KUBELET_DEFAULTS, content),
    )


def cluster_init(ctx: StepContext) -> StepStatus:
    """Run kubeadm init once; the admin credential marks it done."""
    host = ctx.host

    def effect():
        logger.info(f"🚀 Initializing control plane on {host.name} ({host.address})")
        ctx.collaborators.kubeadm.init(
            host,
            endpoint=host.address,
            cert_sans=host.address,
            pod_cidr=ctx.vars.pod_cidr,
            node_name=host.node_name,
        )

    return ctx.guard.ensure(host, "cluster_init", path_exists(ADMIN_CONF), effect)


def admin_kubeconfig(ctx: StepContext) -> StepStatus:
    """Copy the admin credential into the SSH user's kubeconfig."""
    user = ctx.host.ssh_user
    destination = f"{user_home(ctx.executor, ctx.host, user)}/.kube/config"
    return ctx.guard.ensure(
        ctx.host,
        "admin_kubeconfig",
        files_identical(ADMIN_CONF, destination),
        lambda: ctx.executor.copy_file(ctx.host, ADMIN_CONF, destination, owner=user),
    )


def addon_step(addon: AddonConfig) -> Step:
    """Build the step applying one add-on manifest."""

    def apply_addon(ctx: StepContext) -> StepStatus:
        changed = ctx.collaborators.manifests.apply(ctx.host, addon.manifest)
        if changed:
            logger.info(f"📦 Applied {addon.name} add-on on {ctx.host.name}")
            return StepStatus.APPLIED
        return StepStatus.ALREADY_SATISFIED

    return Step(f"{addon.name}_addon", apply_addon, f"Apply the {addon.name} add-on manifest")


def join_credential(ctx: StepContext) -> StepStatus:
    """Mint a join credential for this run and publish it to the workers.

    Issuing a token is not idempotent: every run mints a fresh one, and
    only the credential of the current run is handed to workers.
    """
    command = ctx.collaborators.kubeadm.issue_join_token(ctx.host)
    ctx.channel.publish(command, producer=ctx.host.name, key=JOIN_COMMAND)
    logger.debug("[%s] Join command: %s", ctx.host.name, redact_join_command(command))
    return StepStatus.APPLIED


def control_plane_steps(addons) -> tuple:
    return (
        Step("node_ip", node_ip, "Configure the kubelet node IP"),
        Step("cluster_init", cluster_init, "Initialize the cluster with kubeadm"),
        Step("admin_kubeconfig", admin_kubeconfig, "Install the admin kubeconfig for the SSH user"),
        *(addon_step(addon) for addon in addons),
        Step("join_credential", join_credential, "Mint and publish the worker join command"),
    )
