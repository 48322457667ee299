"""Cold/hot masternode bring-up across the local (cold) and remote (hot) host."""

import enum
import os
from typing import Callable, List, Optional

from rich.console import Console

from .constants import FILE_MODE, OS_LINUX, SUPERNODE_CONF_NAME
from .errors import (
    ExternalIPMismatchError,
    MissingConfigError,
    PastelupError,
    RemoteExecError,
    RemoteServiceStartError,
)
from .errors_catalog import actionable_error
from .models import DeploymentConfig, MasternodeParams, ToolType
from .paths import default_exec_dir, default_working_dir, to_posix
from .services import pastel_conf
from .services.external_ip import get_remote_external_ip
from .services.masternode_conf import MasternodeRegistry
from .services.masternode_params import MasternodeParameterResolver
from .services.node_control import RemoteNodeControl
from .services.polling import CancelToken
from .services.supernode_config import SupernodeConfigService

REMOTE_PASTELUP_NAME = "pastelup"
SUPERNODE_SERVICE = "supernode-service"


class ColdHotState(enum.Enum):
    INIT = "Init"
    LOCAL_NODE_UP = "LocalNodeUp"
    PARAMS_RESOLVED = "ParamsResolved"
    LOCAL_NODE_DOWN = "LocalNodeDown"
    REMOTE_NODE_UP_PLAIN = "RemoteNodeUp(plain)"
    REMOTE_NODE_UP_MASTERNODE = "RemoteNodeUp(asMasternode)"
    ACTIVATED = "Activated"
    REMOTE_COLD_DOWN = "RemoteColdDown"
    REMOTE_SERVICES_UP = "RemoteServicesUp"
    DONE = "Done"
    ABORTED = "Aborted"


class ColdHotRunner:
    """Runs the cold/hot sequence once; the instance is not reusable.

    Nothing is rolled back on failure. In particular a failure while resolving
    masternode parameters leaves the local daemon running.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        params: MasternodeParams,
        local_node,
        prompter,
        logger,
        session_factory: Callable[[DeploymentConfig], object],
        token: Optional[CancelToken] = None,
        console: Optional[Console] = None,
        remote_node_factory=RemoteNodeControl,
        registry: Optional[MasternodeRegistry] = None,
        supernode_config: Optional[SupernodeConfigService] = None,
    ):
        self.config = config
        self.params = params
        self.local_node = local_node
        self.prompter = prompter
        self.logger = logger
        self.session_factory = session_factory
        self.token = token or CancelToken()
        self.console = console or Console()
        self.remote_node_factory = remote_node_factory
        self.registry = registry
        self.supernode_config = supernode_config

        self.session = None
        self.remote_node = None
        self.state = ColdHotState.INIT
        self.history: List[ColdHotState] = [ColdHotState.INIT]
        self.abort_reason: Optional[str] = None

    @property
    def remote_pastelup(self) -> str:
        return to_posix(os.path.join(self.config.remote_utility_dir, REMOTE_PASTELUP_NAME))

    def _transition(self, state: ColdHotState):
        self.state = state
        self.history.append(state)
        self.logger.debug("Cold/hot state -> %s", state.value)

    def _step(self, message: str):
        self.console.print(f"[blue]{message}[/blue]")
        self.logger.info(message)

    def run(self):
        try:
            self.init()
            self.start_local_node()
            if self.params.creating_or_updating:
                self.resolve_params()
            self.stop_local_node()
            self.warm_up_remote_node()
            self.start_remote_masternode()
            if self.params.activate:
                self.activate()
            self.stop_cold_node()
            self.start_remote_services()
            self._transition(ColdHotState.DONE)
            self.console.print("[bold green]The hot node has been successfully launched as masternode![/bold green]")
        except PastelupError as exc:
            self.abort_reason = str(exc)
            self._transition(ColdHotState.ABORTED)
            raise
        finally:
            if self.session is not None:
                self.session.close()

    # Init

    def init(self):
        if not self.config.remote_utility_dir:
            raise MissingConfigError(actionable_error("remote_utility_dir_missing"))
        if not self.config.remote_host:
            raise MissingConfigError(actionable_error("ssh_ip_missing"))

        self._step("Reading pastel.conf")
        pastel_conf.load_into_config(self.config)
        self.logger.info("Finished reading pastel.conf, starting node in %s mode", self.config.network)

        if not self.params.name:
            raise MissingConfigError("Required: --name, name of the Masternode to start.")
        if self.registry is None:
            self.registry = MasternodeRegistry(self.config.masternode_conf_path, self.logger, legacy=self.config.legacy)
        if self.supernode_config is None:
            self.supernode_config = SupernodeConfigService(self.config, self.logger)
        if not self.params.create and not self.registry.exists():
            raise MissingConfigError(actionable_error("masternode_conf_not_found", path=self.registry.path))

        self._step(f"Connecting to {self.config.remote_user}@{self.config.remote_host}")
        self.session = self.session_factory(self.config)

        if not self.config.remote_exec_dir or not self.config.remote_working_dir:
            remote_home = self.session.home_dir()
            self.config.remote_exec_dir = self.config.remote_exec_dir or to_posix(
                default_exec_dir(OS_LINUX, remote_home)
            )
            self.config.remote_working_dir = self.config.remote_working_dir or to_posix(
                default_working_dir(OS_LINUX, remote_home)
            )

        if not self.params.external_ip:
            self.params.external_ip = get_remote_external_ip(self.session)
            self.logger.info("Hot node WAN IP address - %s", self.params.external_ip)
        self.params.apply_port_defaults(self.config.network)
        if not self.params.creating_or_updating:
            self._check_registered_ip()

        self.remote_node = self.remote_node_factory(self.config, self.session, self.logger, token=self.token)

    # Steps

    def start_local_node(self):
        self._step("Starting local pasteld")
        self.local_node.start_node(as_masternode=True, reindex=self.config.reindex)
        self._transition(ColdHotState.LOCAL_NODE_UP)

    def resolve_params(self):
        self._step("Preparing masternode parameters")
        resolver = MasternodeParameterResolver(
            collateral_node=self.local_node,
            key_node=self.remote_node,
            prompter=self.prompter,
            network=self.config.network,
            logger=self.logger,
            token=self.token,
        )
        resolver.resolve_collateral(self.params)
        resolver.resolve_passphrase(self.params)

        if not (self.params.private_key and self.params.pastel_id):
            # Keys are generated on the hot node so the private key never has to leave it.
            self.remote_node.start_node(reindex=True, external_ip=self.params.external_ip)
            resolver.resolve_private_key(self.params)
            resolver.resolve_pastel_id(self.params)
            self.remote_node.stop_and_wait()

        if self.params.create:
            self.registry.backup()
        self.registry.upsert(self.params.to_record())
        self.supernode_config.create_or_update(self.params.pastel_id, self.params.passphrase)
        self._transition(ColdHotState.PARAMS_RESOLVED)

    def stop_local_node(self):
        self._step("Stopping local pasteld")
        self.local_node.stop_and_wait()
        self._transition(ColdHotState.LOCAL_NODE_DOWN)

    def warm_up_remote_node(self):
        self._step("Starting remote pasteld to sync blockchain")
        self.remote_node.start_node(reindex=True, external_ip=self.params.external_ip)
        self.remote_node.check_masternode_sync()
        self.remote_node.stop_and_wait()
        self._transition(ColdHotState.REMOTE_NODE_UP_PLAIN)

    def _check_registered_ip(self):
        record = self.registry.get(self.params.name)
        if record.ip != self.params.external_ip:
            raise ExternalIPMismatchError(
                actionable_error("ip_mismatch", recorded=record.ip, current=self.params.external_ip)
            )
        return record

    def start_remote_masternode(self):
        record = self._check_registered_ip()
        self.params.private_key = self.params.private_key or record.private_key

        self._step("Starting remote pasteld as masternode")
        self.remote_node.start_node(
            as_masternode=True,
            reindex=True,
            external_ip=self.params.external_ip,
            private_key=self.params.private_key,
        )
        self.remote_node.check_masternode_sync()
        self._transition(ColdHotState.REMOTE_NODE_UP_MASTERNODE)

    def activate(self):
        self._step("Restarting cold node to activate masternode")
        self.local_node.start_node(as_masternode=True, reindex=self.config.reindex)
        self.local_node.check_masternode_sync()
        self.local_node.start_alias(self.params.name)

        if self.params.create:
            self._step("Registering PastelID ticket")
            try:
                self.remote_node.register_mnid_ticket(self.params.pastel_id, self.params.passphrase)
            except PastelupError as exc:
                self.logger.error("Unable to register pastelID ticket: %s", exc)
        self._transition(ColdHotState.ACTIVATED)

    def stop_cold_node(self):
        self._step("Stopping cold node")
        self.local_node.stop_and_wait()
        self._transition(ColdHotState.REMOTE_COLD_DOWN)

    def start_remote_services(self):
        for service in (ToolType.RQ_SERVICE.value, ToolType.DD_SERVICE.value):
            self._start_remote_service(service)

        record = self.registry.get(self.params.name)
        self.supernode_config.verify_identity_consistency(record.pastel_id)

        local_path = self.config.supernode_conf_path
        remote_path = to_posix(os.path.join(self.config.remote_working_dir, SUPERNODE_CONF_NAME))
        self._step("Copying supernode config")
        self.session.copy_file(local_path, remote_path, mode=FILE_MODE)

        self._start_remote_service(SUPERNODE_SERVICE)
        self._transition(ColdHotState.REMOTE_SERVICES_UP)

    def _start_remote_service(self, service: str):
        self._step(f"Starting {service} on hot node")
        command = f"{self.remote_pastelup} start {service} --work-dir={self.config.remote_working_dir}"
        try:
            self.session.run(command)
        except RemoteExecError as exc:
            raise RemoteServiceStartError(f"Failed to start {service} on hot node: {exc}", service=service) from exc
        self.logger.info("%s started successfully", service)
