"""Domain errors for pastelup."""

from typing import Optional


class PastelupError(RuntimeError):
    """Raised when an install or start operation cannot continue safely."""


class ExecError(PastelupError):
    """A local command exited with a failure status."""

    def __init__(self, message: str, output: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.returncode = returncode


class ExecutableNotFoundError(PastelupError):
    """A required executable is not present on disk or on PATH."""


class MissingConfigError(PastelupError):
    """A required configuration file does not exist."""


class MissingParamsError(PastelupError):
    """zk-SNARK parameter files are missing from the params directory."""


class StartupTimeoutError(PastelupError):
    """A daemon did not answer the liveness query within the attempt budget."""


class RemoteStartupTimeoutError(StartupTimeoutError):
    """The remote daemon did not become reachable within the attempt budget."""


class ShutdownTimeoutError(PastelupError):
    """A daemon still answered after the stop command; escalation is up to the caller."""


class RemoteConnectionError(PastelupError):
    """SSH connection or authentication failure."""


class RemoteExecError(PastelupError):
    """A remote command failed or the transport dropped while it ran."""

    def __init__(
        self,
        message: str,
        command: str = "",
        output: str = "",
        exit_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.command = command
        self.output = output
        self.exit_status = exit_status


class ServiceStartError(PastelupError):
    """The service supervisor refused to start a unit."""


class RemoteServiceStartError(PastelupError):
    """A worker service could not be started on the hot node."""

    def __init__(self, message: str, service: str):
        super().__init__(message)
        self.service = service


class ServiceManagerUnavailable(PastelupError):
    """The current OS has no supported service supervisor."""


class RPCParseError(PastelupError):
    """pastel-cli returned a payload that is not the expected JSON."""


class ExternalIPError(PastelupError):
    """The WAN address of a host could not be determined."""


class ExternalIPMismatchError(PastelupError):
    """masternode.conf was written for a different WAN address than the current one."""


class MissingPassphraseError(PastelupError):
    """No Pastel ID passphrase was supplied or typed."""


class CollateralError(PastelupError):
    """No collateral transaction could be found or the user gave up waiting."""


class ActivationFailedError(PastelupError):
    """`masternode start-alias` reported an explicit failure."""


class IdentityMismatchError(PastelupError):
    """masternode.conf and supernode.yml disagree on the node identity."""


class UserAbortError(PastelupError):
    """The user declined to continue at a decision point."""


class OperationCancelled(PastelupError):
    """The shared cancellation token fired while waiting."""


class DownloadError(PastelupError):
    """An artifact could not be downloaded or failed verification."""
