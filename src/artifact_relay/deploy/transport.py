"""Remote session seam and its paramiko (SSH + SFTP) implementation.

The fan-out only talks to RemoteSession. ParamikoSession is the production
transport; tests substitute an in-memory fake.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Callable, Protocol

import paramiko
from loguru import logger

from ..errors import DeploymentError

if TYPE_CHECKING:
    from ..config import DeploymentTarget

log = logger.bind(stage="transport")

KEEPALIVE_INTERVAL = 30


@dataclass(frozen=True)
class CommandResult:
    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        return "\n".join(s for s in (self.stdout.strip(), self.stderr.strip()) if s)


class RemoteSession(Protocol):
    def exists(self, path: str) -> bool: ...

    def makedirs(self, path: str) -> None: ...

    def open_write(self, path: str) -> IO[bytes]: ...

    def execute(self, command: str, timeout: float | None = None) -> CommandResult: ...

    def close(self) -> None: ...

    def __enter__(self) -> RemoteSession: ...

    def __exit__(self, exc_type, exc, tb) -> None: ...


Connector = Callable[["DeploymentTarget", float], RemoteSession]


def remote_join(base: str, *parts: str) -> str:
    """Join remote POSIX path segments; the base's trailing slash is dropped."""
    path = base.rstrip("/")
    for part in parts:
        path = f"{path}/{part.strip('/')}"
    return path


def _load_private_key(path: str) -> paramiko.PKey:
    for key_cls in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
        try:
            return key_cls.from_private_key_file(path)
        except paramiko.SSHException:
            continue
    raise DeploymentError(f"Unsupported or invalid private key: {path}")


class ParamikoSession:
    """One authenticated SSH connection with an SFTP channel on top."""

    def __init__(self, client: paramiko.SSHClient, sftp: paramiko.SFTPClient) -> None:
        self._client = client
        self._sftp = sftp

    @classmethod
    def connect(cls, target: DeploymentTarget, timeout: float = 15.0) -> ParamikoSession:
        """Connect and authenticate.

        Raises DeploymentError for refused connections, handshake failures,
        and rejected credentials.
        """
        log.debug(f"connect({target.user}@{target.host}:{target.port})")
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            pkey = _load_private_key(target.private_key_path) if target.private_key_path else None
            client.connect(
                target.host,
                port=target.port,
                username=target.user,
                password=target.password or None,
                pkey=pkey,
                look_for_keys=False,
                allow_agent=False,
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
            )
            sftp = client.open_sftp()
        except paramiko.AuthenticationException as e:
            client.close()
            raise DeploymentError(f"Authentication failed: {e}", target.name) from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise DeploymentError(
                f"Connection to {target.host}:{target.port} failed: {e}", target.name
            ) from e
        except DeploymentError as e:
            client.close()
            raise DeploymentError(str(e), target.name) from e

        # Paused uploads hold the connection open
        transport = client.get_transport()
        if transport is not None:
            transport.set_keepalive(KEEPALIVE_INTERVAL)
        return cls(client, sftp)

    def exists(self, path: str) -> bool:
        try:
            self._sftp.stat(path)
        except FileNotFoundError:
            return False
        return True

    def makedirs(self, path: str) -> None:
        """mkdir -p over SFTP, one component at a time."""
        current = "/" if path.startswith("/") else ""
        for part in [p for p in path.split("/") if p]:
            current = posixpath.join(current, part) if current else part
            if not self.exists(current):
                log.debug(f"sftp mkdir {current}")
                self._sftp.mkdir(current, mode=0o755)

    def open_write(self, path: str) -> IO[bytes]:
        handle = self._sftp.open(path, "wb")
        handle.set_pipelined(True)
        return handle

    def execute(self, command: str, timeout: float | None = None) -> CommandResult:
        """Run a command and wait for it to exit.

        stderr is merged into stdout on the channel; reading the two streams
        one after the other stalls once the unread one fills its window.
        """
        log.debug(f"exec: {command}")
        _, stdout, _ = self._client.exec_command(command, timeout=timeout)
        stdout.channel.set_combine_stderr(True)
        out = stdout.read().decode("utf-8", errors="replace")
        status = stdout.channel.recv_exit_status()
        return CommandResult(exit_status=status, stdout=out)

    def close(self) -> None:
        try:
            self._sftp.close()
        finally:
            self._client.close()

    def __enter__(self) -> ParamikoSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def paramiko_connector(target: DeploymentTarget, timeout: float) -> RemoteSession:
    return ParamikoSession.connect(target, timeout)
