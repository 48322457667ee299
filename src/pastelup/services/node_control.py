"""pasteld lifecycle and pastel-cli queries, on this host or over SSH."""

import enum
import json
import os
import shlex
from typing import Any, Dict, List, Optional

from pastelup.constants import (
    OS_LINUX,
    PASTEL_CLI_NAME,
    PASTELD_NAME,
    SYNC_QUERY_RETRY_WAIT,
    SYNC_RESET_WAIT,
    ZKSNARK_PARAMS_NAMES,
)
from pastelup.errors import (
    ActivationFailedError,
    ExecutableNotFoundError,
    MissingConfigError,
    MissingParamsError,
    PastelupError,
    RemoteStartupTimeoutError,
    RPCParseError,
    ShutdownTimeoutError,
    StartupTimeoutError,
)
from pastelup.errors_catalog import actionable_error
from pastelup.models import DeploymentConfig, SyncStatus
from pastelup.paths import to_posix
from pastelup.services.external_ip import get_external_ip, get_remote_external_ip
from pastelup.services.polling import LIVENESS_POLICY, SYNC_POLICY, CancelToken, RetryPolicy


class NodeState(enum.Enum):
    NOT_STARTED = "NotStarted"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    FAILED = "Failed"


def missing_zksnark_params(params_dir: str) -> List[str]:
    return [name for name in ZKSNARK_PARAMS_NAMES if not os.path.isfile(os.path.join(params_dir, name))]


def build_pasteld_command(
    pasteld: str,
    data_dir: str,
    external_ip: str,
    network_flag: str = "",
    as_masternode: bool = False,
    reindex: bool = False,
    private_key: str = "",
) -> List[str]:
    command = [pasteld, f"--datadir={data_dir}", f"--externalip={external_ip}"]
    if as_masternode:
        command.append("--txindex=1")
    if reindex:
        command.append("--reindex")
    if as_masternode and private_key:
        command.extend(["--masternode", f"--masternodeprivkey={private_key}"])
    if network_flag:
        command.append(network_flag)
    command.append("--daemon")
    return command


class NodeControl:
    """Shared poll loops and RPC parsing; subclasses decide where commands run."""

    startup_timeout_error = StartupTimeoutError
    label = "pasteld"

    def __init__(
        self,
        config: DeploymentConfig,
        logger,
        token: Optional[CancelToken] = None,
        liveness_policy: RetryPolicy = LIVENESS_POLICY,
        sync_policy: RetryPolicy = SYNC_POLICY,
    ):
        self.config = config
        self.logger = logger
        self.token = token or CancelToken()
        self.liveness_policy = liveness_policy
        self.sync_policy = sync_policy
        self.state = NodeState.NOT_STARTED

    # Transport hooks.

    def _cli(self, args: List[str]) -> str:
        raise NotImplementedError

    def _launch(self, command: List[str]):
        raise NotImplementedError

    def _preflight(self):
        """Checks that must pass before a launch is attempted."""

    def _discover_external_ip(self) -> str:
        raise NotImplementedError

    @property
    def pasteld_path(self) -> str:
        raise NotImplementedError

    @property
    def data_dir(self) -> str:
        raise NotImplementedError

    # RPC surface.

    def rpc(self, *args: str) -> str:
        return self._cli([str(arg) for arg in args])

    def rpc_json(self, *args: str) -> Any:
        output = self.rpc(*args)
        try:
            return json.loads(output)
        except ValueError as exc:
            raise RPCParseError(
                f"Failed to parse `{' '.join(args)}` result as JSON: {output.strip()!r}"
            ) from exc

    def is_alive(self) -> bool:
        try:
            self.rpc("getinfo")
        except PastelupError as exc:
            self.logger.debug("%s getinfo failed: %s", self.label, exc)
            return False
        return True

    def get_new_address(self) -> str:
        return self.rpc("getnewaddress").strip()

    def masternode_outputs(self) -> Dict[str, str]:
        output = self.rpc("masternode", "outputs")
        if not output.strip():
            return {}
        try:
            parsed = json.loads(output)
        except ValueError as exc:
            raise RPCParseError(f"Failed to parse masternode outputs json: {output.strip()!r}") from exc
        if not isinstance(parsed, dict):
            raise RPCParseError(f"Unexpected masternode outputs payload: {output.strip()!r}")
        return {str(txid): str(index) for txid, index in parsed.items()}

    def masternode_genkey(self) -> str:
        return self.rpc("masternode", "genkey").strip()

    def pastelid_newkey(self, passphrase: str) -> str:
        payload = self.rpc_json("pastelid", "newkey", passphrase)
        if not isinstance(payload, dict) or not payload.get("pastelid"):
            raise RPCParseError(f"pastelid newkey returned no pastelid: {payload!r}")
        return str(payload["pastelid"])

    def start_alias(self, name: str) -> Dict[str, Any]:
        payload = self.rpc_json("masternode", "start-alias", name)
        if not isinstance(payload, dict):
            raise RPCParseError(f"Unexpected start-alias payload: {payload!r}")
        if payload.get("result") == "failed":
            raise ActivationFailedError(
                f"Masternode start-alias {name} failed: {payload.get('errorMessage', 'unknown error')}"
            )
        self.logger.info("Masternode alias status = %s", payload)
        return payload

    def register_mnid_ticket(self, pastel_id: str, passphrase: str) -> str:
        return self.rpc("tickets", "register", "mnid", pastel_id, passphrase).strip()

    def sync_status(self) -> SyncStatus:
        payload = self.rpc_json("mnsync", "status")
        if not isinstance(payload, dict):
            raise RPCParseError(f"Unexpected mnsync status payload: {payload!r}")
        return SyncStatus(
            asset_name=str(payload.get("AssetName", "")),
            is_synced=bool(payload.get("IsSynced", False)),
            raw=payload,
        )

    # Lifecycle.

    def start_node(
        self,
        as_masternode: bool = False,
        reindex: bool = False,
        external_ip: str = "",
        private_key: str = "",
    ) -> List[str]:
        """Launches pasteld detached and blocks until it answers getinfo."""
        self._preflight()
        if not external_ip:
            external_ip = self._discover_external_ip()
            self.logger.info("WAN IP address - %s", external_ip)

        command = build_pasteld_command(
            self.pasteld_path,
            self.data_dir,
            external_ip,
            network_flag=self.config.network_flag,
            as_masternode=as_masternode,
            reindex=reindex,
            private_key=private_key,
        )
        self.logger.info("Starting -> %s", " ".join(command))
        self.state = NodeState.STARTING
        self._launch(command)
        self.wait_until_running()
        return command

    def wait_until_running(self):
        self.logger.info("Waiting for %s to be started...", self.label)
        if not self.liveness_policy.poll(self.is_alive, self.token):
            self.state = NodeState.FAILED
            raise self.startup_timeout_error(
                actionable_error(
                    "startup_timeout",
                    name=self.label,
                    seconds=str(int(self.liveness_policy.budget_seconds or 0)),
                    path=self.data_dir,
                )
            )
        self.state = NodeState.RUNNING
        self.logger.info("%s started successfully", self.label)

    def stop_and_wait(self):
        """Sends `stop` and waits until getinfo stops answering.

        No kill is attempted on timeout; ShutdownTimeoutError leaves that decision
        to the caller.
        """
        self.state = NodeState.STOPPING
        try:
            self.rpc("stop")
        except PastelupError as exc:
            self.logger.debug("%s stop returned an error (probably not running): %s", self.label, exc)

        if not self.liveness_policy.poll(lambda: not self.is_alive(), self.token):
            raise ShutdownTimeoutError(
                f"{self.label} is still answering after stop; stop it manually and retry."
            )
        self.state = NodeState.STOPPED
        self.logger.info("%s stopped", self.label)

    def check_masternode_sync(self) -> SyncStatus:
        """Blocks until `mnsync status` reports synced; bounded only by the cancel token."""
        retried = False
        last: Dict[str, SyncStatus] = {}

        def probe() -> bool:
            nonlocal retried
            try:
                status = self.sync_status()
            except RPCParseError:
                raise
            except PastelupError as exc:
                if retried:
                    raise
                retried = True
                self.logger.warning("Failed to get mnsync status, retrying: %s", exc)
                self.token.sleep(SYNC_QUERY_RETRY_WAIT)
                status = self.sync_status()

            last["status"] = status
            if status.is_initial:
                self.rpc("mnsync", "reset")
                self.token.sleep(SYNC_RESET_WAIT)
            if status.is_synced:
                return True
            self.logger.info("%s: waiting for sync (%s)...", self.label, status.asset_name)
            return False

        self.sync_policy.poll(probe, self.token)
        self.logger.info("%s: master node was synced!", self.label)
        return last["status"]


class LocalNodeControl(NodeControl):
    """Runs pasteld and pastel-cli on this host."""

    def __init__(self, config: DeploymentConfig, runner, logger, token=None, external_ip_resolver=None, **kwargs):
        super().__init__(config, logger, token=token, **kwargs)
        self.runner = runner
        self.external_ip_resolver = external_ip_resolver or get_external_ip

    @property
    def pasteld_path(self) -> str:
        return os.path.join(self.config.exec_dir, PASTELD_NAME.get(self.config.os_type, PASTELD_NAME[OS_LINUX]))

    @property
    def pastel_cli_path(self) -> str:
        name = PASTEL_CLI_NAME.get(self.config.os_type, PASTEL_CLI_NAME[OS_LINUX])
        return os.path.join(self.config.exec_dir, name)

    @property
    def data_dir(self) -> str:
        return self.config.working_dir

    def _cli(self, args: List[str]) -> str:
        result = self.runner.run([self.pastel_cli_path, f"--datadir={self.data_dir}", *args])
        return result.stdout or ""

    def _launch(self, command: List[str]):
        self.runner.spawn_detached(command, cwd=self.config.exec_dir)

    def _discover_external_ip(self) -> str:
        return self.external_ip_resolver()

    def _preflight(self):
        if not os.path.isfile(self.pasteld_path):
            raise ExecutableNotFoundError(
                actionable_error(
                    "executable_not_found",
                    name=os.path.basename(self.pasteld_path),
                    path=self.config.exec_dir,
                    tool="node",
                )
            )
        if not os.path.isfile(self.config.pastel_conf_path):
            raise MissingConfigError(actionable_error("pastel_conf_not_found", path=self.config.working_dir))
        missing = missing_zksnark_params(self.config.params_dir)
        if missing:
            raise MissingParamsError(
                actionable_error("params_missing", names=", ".join(missing), path=self.config.params_dir)
            )

    def is_process_running(self) -> bool:
        return self.runner.is_process_running(os.path.basename(self.pasteld_path))


class RemoteNodeControl(NodeControl):
    """Sends the same commands to the hot node over one RemoteSession."""

    startup_timeout_error = RemoteStartupTimeoutError
    label = "remote pasteld"

    def __init__(self, config: DeploymentConfig, session, logger, token=None, **kwargs):
        super().__init__(config, logger, token=token, **kwargs)
        self.session = session

    @property
    def pasteld_path(self) -> str:
        return to_posix(os.path.join(self.config.remote_exec_dir, PASTELD_NAME[OS_LINUX]))

    @property
    def pastel_cli_path(self) -> str:
        return to_posix(os.path.join(self.config.remote_exec_dir, PASTEL_CLI_NAME[OS_LINUX]))

    @property
    def data_dir(self) -> str:
        return to_posix(self.config.remote_working_dir)

    def _cli(self, args: List[str]) -> str:
        quoted = " ".join(shlex.quote(arg) for arg in args)
        return self.session.run(f"{self.pastel_cli_path} --datadir={shlex.quote(self.data_dir)} {quoted}")

    def _launch(self, command: List[str]):
        self.session.run_detached(" ".join(shlex.quote(part) for part in command))

    def _discover_external_ip(self) -> str:
        return get_remote_external_ip(self.session)
