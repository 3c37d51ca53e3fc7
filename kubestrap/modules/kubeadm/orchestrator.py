"""Cluster bootstrap orchestration.

Runs three phases in order: preparation on every host, control-plane
bootstrap on the master, worker join on the workers. Hosts of a phase run
in parallel, but every step is a barrier: all targeted hosts finish step k
before any host starts step k+1. A host that fails a step is dropped from
the rest of the run; a failed control plane aborts the worker phase.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .channel import JOIN_COMMAND, JoinCredentialChannel
from .collaborators import Collaborators
from .config import ClusterVars
from .control_plane import control_plane_steps
from .errors import KubestrapError
from .guard import IdempotencyGuard
from .join import WORKER_STEPS
from .models import (
    Host,
    HostGroup,
    Phase,
    PhaseName,
    PhaseResult,
    RunOutcome,
    RunSummary,
    Step,
    StepContext,
    StepResult,
    StepStatus,
)
from .preparation import PREPARATION_STEPS

logger = logging.getLogger("kubestrap.orchestrator")

STATUS_ICONS = {
    StepStatus.APPLIED: "✅",
    StepStatus.ALREADY_SATISFIED: "👌",
    StepStatus.FAILED: "❌",
}


def build_phases(cluster_vars: ClusterVars) -> Sequence[Phase]:
    """Declare the phase list with its target groups and data dependencies."""
    return (
        Phase(PhaseName.PREPARATION, HostGroup.ALL, PREPARATION_STEPS),
        Phase(
            PhaseName.CONTROL_PLANE_BOOTSTRAP,
            HostGroup.MASTER,
            control_plane_steps(cluster_vars.addons),
            fatal=True,
        ),
        Phase(PhaseName.WORKER_JOIN, HostGroup.WORKERS, WORKER_STEPS, requires=(JOIN_COMMAND,)),
    )


class ClusterBootstrap:
    """Drives an inventory from unconfigured hosts to a formed cluster."""

    def __init__(
        self,
        inventory,
        executor,
        cluster_vars: Optional[ClusterVars] = None,
        forks: int = 5,
        collaborators: Optional[Collaborators] = None,
        phases: Optional[Sequence[Phase]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            inventory: Validated Inventory
            executor: Remote executor (run / file_exists / read_file / write_file / copy_file)
            cluster_vars: Cluster-wide variables (defaults if None)
            forks: Maximum number of hosts processed in parallel within a phase
            collaborators: External-system adapters (built from the executor if None)
            phases: Phase list (the standard three phases if None)
        """
        if forks < 1:
            raise ValueError("forks must be at least 1")
        self.inventory = inventory
        self.executor = executor
        self.vars = cluster_vars or ClusterVars()
        self.forks = forks
        self.collaborators = collaborators or Collaborators.from_executor(executor)
        self.guard = IdempotencyGuard(executor)
        self.phases = tuple(phases or build_phases(self.vars))

    def plan(self) -> List[Dict[str, Any]]:
        """Describe what a run would do, without touching any host."""
        return [
            {
                'phase': phase.name.value,
                'target': phase.target.value,
                'hosts': [h.name for h in self.inventory.hosts_for(phase.target)],
                'requires': list(phase.requires),
                'steps': [{'name': s.name, 'description': s.description} for s in phase.steps],
            }
            for phase in self.phases
        ]

    def run(self) -> RunSummary:
        """Execute every phase in order and return the run summary."""
        summary = RunSummary()
        channel = JoinCredentialChannel(summary.run_id)
        excluded: Set[str] = set()
        abort_reason: Optional[str] = None

        logger.info(
            f"🚀 Starting run {summary.run_id}: {len(self.inventory.master)} master(s), "
            f"{len(self.inventory.workers)} worker(s), forks={self.forks}"
        )

        for phase in self.phases:
            targets = self.inventory.hosts_for(phase.target)
            if abort_reason:
                result = PhaseResult(phase.name, hosts=[h.name for h in targets])
                result.abort(abort_reason)
                logger.warning(f"⏭️  Skipping phase {phase.name.value}: {abort_reason}")
            else:
                result = self._run_phase(phase, targets, channel, excluded, summary.run_id)

            summary.phases.append(result)
            excluded.update(result.failed_hosts)

            if result.aborted and not abort_reason:
                abort_reason = result.abort_reason
            elif phase.fatal and not result.succeeded and not abort_reason:
                abort_reason = f"phase {phase.name.value} failed on {', '.join(result.failed_hosts)}"
                logger.error(f"❌ {abort_reason}; aborting the remaining phases")

        summary.end_time = time.time()
        log_summary(summary)
        return summary

    def _run_phase(
        self,
        phase: Phase,
        targets: List[Host],
        channel: JoinCredentialChannel,
        excluded: Set[str],
        run_id: str,
    ) -> PhaseResult:
        result = PhaseResult(phase.name, hosts=[h.name for h in targets])

        missing = [key for key in phase.requires if not channel.is_published(key)]
        if missing:
            result.abort(f"required facts not published: {', '.join(missing)}")
            logger.error(f"❌ Cannot enter phase {phase.name.value}: {result.abort_reason}")
            return result

        active = [h for h in targets if h.name not in excluded]
        result.skipped_hosts = [h.name for h in targets if h.name in excluded]
        if result.skipped_hosts:
            logger.warning(
                f"Phase {phase.name.value}: skipping hosts that failed earlier: {', '.join(result.skipped_hosts)}"
            )
        if targets and not active and phase.fatal:
            result.abort(f"no eligible hosts for phase {phase.name.value}")
            logger.error(f"❌ {result.abort_reason}")
            return result
        if not active:
            logger.info(f"Phase {phase.name.value}: no hosts to run")
            return result

        logger.info(
            f"▶️  Phase {phase.name.value} on {len(active)} host(s): {', '.join(h.name for h in active)}"
        )
        with ThreadPoolExecutor(
            max_workers=min(self.forks, len(active)), thread_name_prefix=phase.name.value
        ) as pool:
            for index, step in enumerate(phase.steps, 1):
                if not active:
                    logger.warning(f"Phase {phase.name.value}: every host has failed, stopping")
                    break
                logger.info(f"[{phase.name.value} {index}/{len(phase.steps)}] {step.description or step.name}")
                self._run_step_barrier(phase, step, active, channel, run_id, result, pool)
                active = [h for h in active if h.name not in result.failed_hosts]
        return result

    def _run_step_barrier(
        self,
        phase: Phase,
        step: Step,
        hosts: Iterable[Host],
        channel: JoinCredentialChannel,
        run_id: str,
        result: PhaseResult,
        pool: ThreadPoolExecutor,
    ) -> None:
        """Run one step on every host and wait for all of them."""
        futures = {
            pool.submit(self._run_step, phase, step, host, channel, run_id): host
            for host in hosts
        }
        for future in as_completed(futures):
            result.record(future.result())

    def _run_step(
        self,
        phase: Phase,
        step: Step,
        host: Host,
        channel: JoinCredentialChannel,
        run_id: str,
    ) -> StepResult:
        """Run a step on one host, turning any failure into a failed result."""
        ctx = StepContext(
            host=host,
            executor=self.executor,
            collaborators=self.collaborators,
            guard=self.guard,
            channel=channel,
            vars=self.vars,
            run_id=run_id,
        )
        start_time = time.time()
        message = ''
        try:
            status = step.action(ctx)
        except KubestrapError as e:
            status = StepStatus.FAILED
            message = str(e)
            logger.error(f"[{host.name}] {step.name} failed: {e}")
        except Exception as e:
            status = StepStatus.FAILED
            message = f"{type(e).__name__}: {e}"
            logger.error(f"[{host.name}] {step.name} failed unexpectedly: {e}", exc_info=True)

        duration = time.time() - start_time
        logger.info(f"{STATUS_ICONS[status]} [{host.name}] {step.name}: {status.value} ({duration:.1f}s)")
        return StepResult(
            host=host.name,
            phase=phase.name,
            step=step.name,
            status=status,
            message=message,
            duration=duration,
        )


def log_summary(summary: RunSummary) -> None:
    """Log which hosts completed which phases."""
    logger.info(f"🧾 Run {summary.run_id} finished in {summary.duration:.1f}s: {summary.outcome.value}")
    for host, phases in summary.completed_phases().items():
        logger.info(f"  {host}: {', '.join(phases) if phases else 'no phase completed'}")
    for phase in summary.phases:
        if phase.aborted:
            logger.warning(f"  phase {phase.phase.value} aborted: {phase.abort_reason}")
        elif phase.failed_hosts:
            logger.warning(f"  phase {phase.phase.value} failed on: {', '.join(phase.failed_hosts)}")
    if summary.outcome == RunOutcome.PARTIAL:
        logger.warning("⚠️  Cluster formed partially; re-run after fixing the failed hosts")
