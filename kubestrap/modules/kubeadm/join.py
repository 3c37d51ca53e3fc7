"""Worker join: consume the run's join credential exactly once per host."""

import logging

from .channel import JOIN_COMMAND
from .collaborators import KUBELET_CONF
from .control_plane import node_ip
from .guard import path_exists
from .models import Step, StepContext, StepStatus

logger = logging.getLogger("kubestrap.join")


def cluster_join(ctx: StepContext) -> StepStatus:
    """Join the cluster unless the kubelet is already a member.

    The credential is read even when the node already joined; it is then
    simply discarded.
    """
    credential = ctx.channel.read(JOIN_COMMAND)

    def effect():
        logger.info(f"🔗 Joining {ctx.host.name} to the cluster")
        ctx.collaborators.kubeadm.join(ctx.host, credential)

    return ctx.guard.ensure(ctx.host, "cluster_join", path_exists(KUBELET_CONF), effect)


WORKER_STEPS = (
    Step("node_ip", node_ip, "Configure the kubelet node IP"),
    Step("cluster_join", cluster_join, "Join the cluster with the published join command"),
)
