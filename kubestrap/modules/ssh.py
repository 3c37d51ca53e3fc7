"""
SSH connection management and remote execution using paramiko.
"""
import base64
import logging
import os
import posixpath
import shlex
import socket
import threading
import time
from typing import Dict, Optional, Tuple

import paramiko
from paramiko.ssh_exception import (
    AuthenticationException,
    NoValidConnectionsError,
    SSHException,
)

from .kubeadm.errors import HostUnreachableError, StepFailedError
from .kubeadm.models import CommandResult, Host
from .kubeadm.utils import redact_join_command

logger = logging.getLogger("ssh")

TRANSPORT_ERRORS = (
    AuthenticationException,
    NoValidConnectionsError,
    SSHException,
    socket.timeout,
    socket.error,
    EOFError,
)

READ_CHUNK = 32768
POLL_INTERVAL = 0.05


class SSHConnection:
    """A single paramiko SSH connection to one host."""

    def __init__(self, host: str, username: str, key_path: str = None, port: int = 22, timeout: int = 10):
        """Initialize SSH connection.

        Args:
            host: Remote host to connect to
            username: Username for authentication
            key_path: Path to SSH private key (optional, falls back to agent/default keys)
            port: SSH port (default: 22)
            timeout: Connection timeout in seconds (default: 10)
        """
        self.host = host
        self.username = username
        self.key_path = os.path.expanduser(key_path) if key_path else None
        self.port = port
        self.timeout = timeout
        self.client: Optional[paramiko.SSHClient] = None
        self._connect()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Connections stay open; the pool owns their lifetime.
        pass

    def _load_key(self) -> Optional[paramiko.PKey]:
        if not self.key_path:
            return None
        for key_cls in (paramiko.Ed25519Key, paramiko.RSAKey, paramiko.ECDSAKey):
            try:
                return key_cls.from_private_key_file(self.key_path)
            except SSHException:
                continue
        raise SSHException(f"Unsupported private key format: {self.key_path}")

    def _connect(self) -> None:
        """Establish the SSH connection."""
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        pkey = self._load_key()

        logger.debug(f"Connecting to {self.username}@{self.host}:{self.port}")
        client.connect(
            hostname=self.host,
            port=self.port,
            username=self.username,
            pkey=pkey,
            timeout=self.timeout,
            allow_agent=pkey is None,
            look_for_keys=pkey is None,
        )
        self.client = client

    @property
    def is_active(self) -> bool:
        transport = self.client.get_transport() if self.client else None
        return bool(transport and transport.is_active())

    def execute(self, command: str, timeout: int = 600) -> Tuple[int, str, str]:
        """Execute a command and wait for it to finish.

        Returns:
            tuple: (exit_status, stdout, stderr)
        """
        stdin, stdout, _ = self.client.exec_command(command, timeout=timeout)
        stdin.close()
        channel = stdout.channel
        deadline = time.monotonic() + timeout
        out, err = [], []

        # stdout and stderr share one flow-control window
        while True:
            while channel.recv_ready():
                out.append(channel.recv(READ_CHUNK))
            while channel.recv_stderr_ready():
                err.append(channel.recv_stderr(READ_CHUNK))
            if channel.exit_status_ready() and not channel.recv_ready() and not channel.recv_stderr_ready():
                break
            if time.monotonic() > deadline:
                channel.close()
                raise socket.timeout(f"Command timed out after {timeout}s")
            time.sleep(POLL_INTERVAL)

        exit_status = channel.recv_exit_status()
        return exit_status, b''.join(out).decode('utf-8', 'replace'), b''.join(err).decode('utf-8', 'replace')

    def close(self) -> None:
        """Close the SSH connection."""
        if self.client:
            try:
                self.client.close()
            finally:
                self.client = None


class ConnectionPool:
    """Thread-safe pool keeping one SSH connection per user@host:port."""

    def __init__(self):
        self.connections: Dict[str, SSHConnection] = {}
        self.lock = threading.RLock()

    def get_connection(self, host: str, username: str, key_path: Optional[str] = None, **kwargs) -> SSHConnection:
        """Get a live connection from the pool, creating it if needed.

        Args:
            host: SSH host to connect to
            username: SSH username
            key_path: Path to SSH private key
            **kwargs: Additional connection parameters (port, timeout)

        Returns:
            SSHConnection: An active SSH connection
        """
        connection_id = f"{username}@{host}:{kwargs.get('port', 22)}"

        with self.lock:
            conn = self.connections.get(connection_id)
            if conn is not None:
                if conn.is_active:
                    return conn
                logger.debug(f"Connection to {connection_id} is no longer active, reconnecting")
                conn.close()
                del self.connections[connection_id]

            logger.debug(f"Creating new SSH connection to {connection_id}")
            conn = SSHConnection(host=host, username=username, key_path=key_path, **kwargs)
            self.connections[connection_id] = conn
            return conn

    def discard(self, host: str, username: str, port: int = 22) -> None:
        """Drop a connection after a transport failure."""
        connection_id = f"{username}@{host}:{port}"
        with self.lock:
            conn = self.connections.pop(connection_id, None)
        if conn is not None:
            try:
                conn.close()
            except TRANSPORT_ERRORS as e:
                logger.debug(f"Error closing connection {connection_id}: {e}")

    def close_all(self) -> None:
        """Close all connections in the pool."""
        with self.lock:
            for connection_id, conn in self.connections.items():
                try:
                    conn.close()
                except TRANSPORT_ERRORS as e:
                    logger.warning(f"Error closing connection {connection_id}: {e}")
            self.connections.clear()


class SSHExecutor:
    """Remote execution capability over the SSH connection pool.

    Implements run / file_exists / read_file / write_file / copy_file
    against inventory hosts. Commands are wrapped in ``sudo -n`` unless the
    login user is root. Transport problems surface as HostUnreachableError.
    """

    def __init__(
        self,
        connection_pool: ConnectionPool,
        connect_timeout: int = 10,
        command_timeout: int = 600,
        default_key_path: Optional[str] = None,
    ):
        self.connection_pool = connection_pool
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.default_key_path = default_key_path

    def _wrap(self, host: Host, command: str) -> str:
        if host.ssh_user == 'root':
            return f"bash -c {shlex.quote(command)}"
        return f"sudo -n bash -c {shlex.quote(command)}"

    def run(self, host: Host, command: str, check: bool = False, timeout: Optional[int] = None) -> CommandResult:
        """Run a command on a host.

        Args:
            host: Target host
            command: Shell command to run
            check: If True, raise StepFailedError on non-zero exit status
            timeout: Command timeout in seconds (defaults to command_timeout)

        Raises:
            HostUnreachableError: If the host cannot be reached
            StepFailedError: If check=True and the command fails
        """
        final_command = self._wrap(host, command)
        logger.debug("[%s] Executing: %s", host.name, redact_join_command(command))
        try:
            conn = self.connection_pool.get_connection(
                host=host.address,
                username=host.ssh_user,
                key_path=host.ssh_key_path or self.default_key_path,
                port=host.port,
                timeout=self.connect_timeout,
            )
            exit_status, stdout, stderr = conn.execute(final_command, timeout=timeout or self.command_timeout)
        except TRANSPORT_ERRORS as e:
            self.connection_pool.discard(host.address, host.ssh_user, host.port)
            raise HostUnreachableError(host.name, str(e) or type(e).__name__) from e

        log_level = logging.DEBUG if exit_status == 0 else logging.WARNING
        logger.log(log_level, "[%s] Exit status %d: %s", host.name, exit_status, redact_join_command(command))

        result = CommandResult(host.name, command, exit_status, stdout, stderr)
        if check:
            result.check()
        return result

    def file_exists(self, host: Host, path: str) -> bool:
        result = self.run(host, f"test -e {shlex.quote(path)}")
        if result.exit_status in (0, 1):
            return result.exit_status == 0
        raise StepFailedError(host.name, result.command, result.exit_status, result.stderr)

    def read_file(self, host: Host, path: str) -> Optional[str]:
        """Return the content of a remote file, or None if it does not exist."""
        if not self.file_exists(host, path):
            return None
        return self.run(host, f"cat {shlex.quote(path)}", check=True).stdout

    def write_file(self, host: Host, path: str, content: str, mode: int = 0o644) -> None:
        """Write content to a remote file, creating parent directories."""
        encoded = base64.b64encode(content.encode('utf-8')).decode('ascii')
        directory = posixpath.dirname(path) or '/'
        self.run(
            host,
            f"mkdir -p {shlex.quote(directory)} && "
            f"echo {encoded} | base64 -d > {shlex.quote(path)} && "
            f"chmod {mode:o} {shlex.quote(path)}",
            check=True,
        )

    def copy_file(self, host: Host, src: str, dst: str, owner: str, mode: int = 0o600) -> None:
        """Copy a file on the remote host, setting ownership to owner."""
        self.run(
            host,
            f"install -D -m {mode:o} -o {shlex.quote(owner)} -g \"$(id -gn {shlex.quote(owner)})\" "
            f"{shlex.quote(src)} {shlex.quote(dst)}",
            check=True,
        )

    def close(self) -> None:
        """Close every connection this executor opened."""
        self.connection_pool.close_all()
