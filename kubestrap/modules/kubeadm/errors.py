"""Exception hierarchy for kubeadm cluster bootstrap."""
from typing import Optional


class KubestrapError(Exception):
    """Base class for all kubestrap errors."""
    pass


class InventoryError(KubestrapError):
    """Raised when an inventory file is missing or malformed."""
    pass


class ConfigError(KubestrapError):
    """Raised when the installer configuration is invalid."""
    pass


class HostUnreachableError(KubestrapError):
    """Raised when a host cannot be reached over SSH."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Host {host} is unreachable: {reason}")


class PreconditionError(KubestrapError):
    """Raised when a step's precondition cannot be evaluated."""
    pass


class GuardCheckError(PreconditionError):
    """Raised when an idempotency marker cannot be checked on a host."""

    def __init__(self, host: str, marker: str, cause: Exception):
        self.host = host
        self.marker = marker
        self.cause = cause
        super().__init__(f"Could not evaluate marker '{marker}' on {host}: {cause}")


class StepFailedError(KubestrapError):
    """Raised when a remote command exits with a non-zero status."""

    def __init__(self, host: str, command: str, exit_status: int, stderr: Optional[str] = None):
        self.host = host
        self.command = command
        self.exit_status = exit_status
        self.stderr = (stderr or '').strip()
        message = f"[{host}] Command failed with exit code {exit_status}: {command}"
        if self.stderr:
            message += f"\nStderr: {self.stderr}"
        super().__init__(message)


class ControlPlaneBootstrapError(KubestrapError):
    """Raised when control-plane initialization fails. Fatal to the run."""
    pass


class JoinCredentialError(KubestrapError):
    """Raised when a join credential cannot be produced."""
    pass


class ChannelError(KubestrapError):
    """Raised on misuse of the join-credential channel."""
    pass
