import logging
import os
import shlex
from typing import Callable, List, Optional

from rich.console import Console

from .constants import SERVICE_SETTLE_SECONDS
from .errors import (
    ExecutableNotFoundError,
    ExternalIPMismatchError,
    MissingConfigError,
    PastelupError,
    ServiceStartError,
    UserAbortError,
)
from .errors_catalog import actionable_error
from .models import DeploymentConfig, MasternodeParams, ToolType
from .paths import to_posix
from .services import pastel_conf
from .services.command_runner import CommandRunner
from .services.external_ip import get_external_ip
from .services.masternode_conf import MasternodeRegistry
from .services.masternode_params import MasternodeParameterResolver
from .services.node_control import LocalNodeControl
from .services.polling import CancelToken
from .services.prompts import ClickPrompter
from .services.service_manager import ServiceStartResult, create_service_manager
from .services.supernode_config import SupernodeConfigService
from .services.tools import build_launch_spec, exec_path

console = Console()
logger = logging.getLogger("pastelup")


def run_guarded(action: Callable[[], None], out: Console = None, log: logging.Logger = None) -> int:
    """Runs one top-level command and maps every failure to exit code 1."""
    out = out or console
    log = log or logger
    try:
        action()
        return 0
    except KeyboardInterrupt:
        out.print("[bold red]Operation cancelled by user.[/bold red]")
        log.info("Operation cancelled by user")
        return 1
    except PastelupError as exc:
        out.print(f"[bold red]Error:[/bold red] {exc}")
        log.error(str(exc))
        return 1
    except Exception as exc:
        out.print(f"[bold red]Unexpected error:[/bold red] {exc}")
        log.exception("Unexpected error")
        return 1


class NodeStarter:
    """Local `start`/`stop` flows for pasteld and the worker services."""

    def __init__(
        self,
        config: DeploymentConfig,
        runner: Optional[CommandRunner] = None,
        prompter=None,
        token: Optional[CancelToken] = None,
        service_manager=None,
        node=None,
        external_ip_resolver: Callable[[], str] = get_external_ip,
        session_factory=None,
        out: Optional[Console] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = log or logger
        self.console = out or console
        self.runner = runner or CommandRunner(logger=self.logger, user_password=config.user_password)
        self.prompter = prompter or ClickPrompter()
        self.token = token or CancelToken()
        self.external_ip_resolver = external_ip_resolver
        self.session_factory = session_factory

        if service_manager is None:
            service_manager, warning = create_service_manager(config.os_type, self.runner, self.logger)
            if warning is not None:
                self.logger.warning(str(warning))
        self.service_manager = service_manager
        self.node = node or LocalNodeControl(
            config,
            self.runner,
            self.logger,
            token=self.token,
            external_ip_resolver=external_ip_resolver,
        )

    def _registry(self) -> MasternodeRegistry:
        return MasternodeRegistry(self.config.masternode_conf_path, self.logger, legacy=self.config.legacy)

    # pasteld

    def start_node(self, external_ip: str = ""):
        pastel_conf.load_into_config(self.config)
        if self.service_manager.start(ToolType.NODE).started:
            return
        self.node.start_node(reindex=self.config.reindex, external_ip=external_ip)

    def start_masternode(self, params: MasternodeParams):
        """Starts pasteld as masternode with the key recorded in masternode.conf.

        The WAN address must equal the address recorded for the node; a mismatch
        fails before anything is launched.
        """
        pastel_conf.load_into_config(self.config)
        self.console.print(f"[blue]Starting masternode in {self.config.network} mode[/blue]")
        if not params.name:
            raise MissingConfigError("Required: --name, name of the Masternode to start.")

        record = self._registry().get(params.name)
        if not params.external_ip:
            self.logger.info("--ip flag is omitted, trying to get our WAN IP address")
            params.external_ip = self.external_ip_resolver()
            self.logger.info("WAN IP address - %s", params.external_ip)
        if record.ip != params.external_ip:
            raise ExternalIPMismatchError(
                actionable_error("ip_mismatch", recorded=record.ip, current=params.external_ip)
            )

        self.logger.info("Starting pasteld as masternode: nodeName: %s", params.name)
        self.node.start_node(
            as_masternode=True,
            reindex=self.config.reindex,
            external_ip=params.external_ip,
            private_key=record.private_key,
        )

    def stop_node(self):
        if self.service_manager.is_registered(ToolType.NODE):
            self.service_manager.stop(ToolType.NODE)
            return
        pastel_conf.load_into_config(self.config)
        self.node.stop_and_wait()

    # composite flows

    def start_walletnode(self, external_ip: str = ""):
        self.start_node(external_ip=external_ip)
        self.start_service(ToolType.RQ_SERVICE)
        self.start_service(ToolType.WALLET_NODE)

    def start_supernode(self, params: MasternodeParams):
        pastel_conf.load_into_config(self.config)
        self._check_masternode_params(params)

        pasteld_running = self.node.is_process_running()
        if pasteld_running:
            self.logger.info("pasteld is already running")
            if not self.prompter.confirm("pasteld is already running. Do you want to stop it and continue?"):
                raise UserAbortError("User terminated installation.")

        if params.creating_or_updating:
            self._prepare_masternode_params(params, start_pasteld=not pasteld_running)
            pasteld_running = True

        if pasteld_running:
            self.node.stop_and_wait()

        self.start_masternode(params)
        self.node.check_masternode_sync()

        if params.activate:
            self.logger.info("Starting MN alias - %s", params.name)
            self.node.start_alias(params.name)
            if params.create:
                try:
                    self.node.register_mnid_ticket(params.pastel_id, params.passphrase)
                except PastelupError as exc:
                    self.logger.error("Unable to register pastelID ticket: %s", exc)

        self.start_service(ToolType.RQ_SERVICE)
        self.start_service(ToolType.DD_SERVICE)
        self.start_service(ToolType.SUPER_NODE)
        self.console.print("[bold green]Supernode started successfully[/bold green]")

    def _check_masternode_params(self, params: MasternodeParams):
        if not params.name:
            raise MissingConfigError("Required: --name, name of the Masternode to start.")
        if not params.external_ip:
            params.external_ip = self.external_ip_resolver()
            self.logger.info("WAN IP address - %s", params.external_ip)
        registry = self._registry()
        if not params.create and not registry.exists():
            raise MissingConfigError(actionable_error("masternode_conf_not_found", path=registry.path))

        params.apply_port_defaults(self.config.network)

    def _prepare_masternode_params(self, params: MasternodeParams, start_pasteld: bool):
        if start_pasteld:
            self.node.start_node(as_masternode=True, reindex=self.config.reindex, external_ip=params.external_ip)
        self.node.check_masternode_sync()

        resolver = MasternodeParameterResolver(
            collateral_node=self.node,
            key_node=self.node,
            prompter=self.prompter,
            network=self.config.network,
            logger=self.logger,
            token=self.token,
        )
        resolver.resolve(params)

        registry = self._registry()
        if params.create:
            registry.backup()
        registry.upsert(params.to_record())
        SupernodeConfigService(self.config, self.logger).create_or_update(params.pastel_id, params.passphrase)

    # worker services

    def start_service(self, tool: ToolType) -> ServiceStartResult:
        """Prefers the service manager; falls back to a bare detached process."""
        result = self.service_manager.start(tool)
        if result.started:
            return result

        launch = build_launch_spec(tool, self.config, dev_mode=self.config.dev_mode)
        binary = exec_path(tool, self.config)
        if not os.path.exists(binary):
            raise ExecutableNotFoundError(
                actionable_error(
                    "executable_not_found",
                    name=os.path.basename(binary),
                    path=self.config.exec_dir,
                    tool=tool.value,
                )
            )

        self.logger.info("Starting %s: %s", tool, launch.command_line())
        self.runner.spawn_detached(launch.command, cwd=launch.work_dir)
        self.token.sleep(SERVICE_SETTLE_SECONDS)

        if not self.runner.is_process_running(os.path.basename(binary)):
            raise ServiceStartError(f"{tool} failed to start.")
        self.console.print(f"[green]The {tool} started successfully![/green]")
        return ServiceStartResult.STARTED

    def stop_service(self, tool: ToolType):
        if self.service_manager.is_registered(tool):
            self.service_manager.stop(tool)
            return
        marker = os.path.basename(exec_path(tool, self.config))
        self.runner.run(["pkill", "-f", marker], check=False)
        self.logger.info("Sent stop signal to %s", tool)

    # remote

    def remote_start_options(self, tool: str, params: MasternodeParams) -> List[str]:
        options = [tool]
        if params.name:
            options.append(f"--name={params.name}")
        if params.activate:
            options.append("--activate")
        if params.external_ip:
            options.append(f"--ip={params.external_ip}")
        if self.config.reindex:
            options.append("--reindex")
        if self.config.legacy:
            options.append("--legacy")
        if self.config.dev_mode:
            options.append("--development-mode")
        if self.config.remote_exec_dir:
            options.append(f"--dir={to_posix(self.config.remote_exec_dir)}")
        if self.config.remote_working_dir:
            options.append(f"--work-dir={to_posix(self.config.remote_working_dir)}")
        return options

    def start_remote(self, tool: str, params: MasternodeParams):
        """Runs `pastelup start <tool>` on the remote host through its own installation."""
        if not self.config.remote_utility_dir:
            raise MissingConfigError(actionable_error("remote_utility_dir_missing"))
        if not self.config.remote_host:
            raise MissingConfigError(actionable_error("ssh_ip_missing"))
        if self.session_factory is None:
            raise PastelupError("No remote session factory configured.")

        remote_pastelup = to_posix(os.path.join(self.config.remote_utility_dir, "pastelup"))
        command = " ".join([remote_pastelup, "start", *(shlex.quote(o) for o in self.remote_start_options(tool, params))])

        self.console.print(f"[blue]Starting remote {tool}[/blue]")
        session = self.session_factory(self.config)
        try:
            session.run(command)
        finally:
            session.close()
        self.console.print(f"[green]Remote {tool} started successfully[/green]")
