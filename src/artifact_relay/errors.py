"""Exception hierarchy for artifact relay."""


class RelayError(Exception):
    """Base exception for all relay errors."""


class ConfigError(RelayError):
    """Invalid or missing configuration."""


class RunInProgressError(RelayError):
    """A cycle or manual deploy was requested while another one is active."""


class OperationCancelled(RelayError):
    """Raised at a cooperative checkpoint once cancellation has been requested."""


class TransferError(RelayError):
    """A local copy could not read its source or write its destination."""

    def __init__(self, message: str, source: str = "", destination: str = "") -> None:
        super().__init__(message)
        self.source = source
        self.destination = destination


class DeploymentError(RelayError):
    """Connecting, uploading, or executing on a deployment target failed."""

    def __init__(self, message: str, target: str = "") -> None:
        super().__init__(f"[{target}] {message}" if target else message)
        self.target = target


class RemoteCommandError(DeploymentError):
    """A post-transfer command exited with a nonzero status."""

    def __init__(self, command: str, exit_code: int, output: str, target: str = "") -> None:
        message = f"{command!r} exited with code {exit_code}"
        super().__init__(f"{message}: {output}" if output else message, target)
        self.command = command
        self.exit_code = exit_code
        self.output = output
