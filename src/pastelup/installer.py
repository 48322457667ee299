import logging
import os
import re
import shlex
from typing import Callable, Dict, List, Optional, Sequence

import requests
from packaging import version
from rich.console import Console

from .constants import (
    DD_CONF_NAME,
    DD_SERVICE_ARCHIVE,
    DD_SERVICE_DIR,
    DD_SUPPORT_DIR,
    DIR_MODE,
    FILE_MODE,
    HERMES_CONF_NAME,
    LEGACY_PASTELD_BELOW,
    OS_LINUX,
    PASTEL_ARCHIVE_NAME,
    PASTEL_CLI_NAME,
    PORTS,
    REQUIRED_PACKAGES,
    RQSERVICE_CONF_NAME,
    SCRIPT_MODE,
    WALLETNODE_CONF_NAME,
    ZKSNARK_PARAMS_NAMES,
    ZKSNARK_PARAMS_URL,
)
from .errors import MissingConfigError, PastelupError, UserAbortError
from .errors_catalog import actionable_error
from .models import DeploymentConfig, ToolType
from .paths import to_posix
from .services import pastel_conf
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.download import DownloadService
from .services.external_ip import get_external_ip
from .services.filesystem import FileSystemService
from .services.node_control import missing_zksnark_params
from .services.polling import CancelToken
from .services.prompts import ClickPrompter
from .services.renderers import (
    render_rqservice_toml,
    render_yaml,
    supernode_config_data,
    walletnode_config_data,
)
from .services.service_manager import RegistrationParams, create_service_manager
from .services.tools import exec_name, exec_path

console = Console()
logger = logging.getLogger("pastelup")

INSTALL_PLANS: Dict[str, Sequence[ToolType]] = {
    "node": (ToolType.NODE,),
    "walletnode": (ToolType.NODE, ToolType.RQ_SERVICE, ToolType.WALLET_NODE),
    "supernode": (ToolType.NODE, ToolType.RQ_SERVICE, ToolType.SUPER_NODE, ToolType.DD_SERVICE),
    "rq-service": (ToolType.RQ_SERVICE,),
    "dd-service": (ToolType.DD_SERVICE,),
    "hermes-service": (ToolType.HERMES,),
}

_VERSION_RE = re.compile(r"v?(\d+(?:\.\d+){1,3})")


def parse_pasteld_version(output: str) -> Optional[version.Version]:
    match = _VERSION_RE.search(output or "")
    if not match:
        return None
    return version.parse(match.group(1))


def is_legacy_pasteld(output: str) -> bool:
    parsed = parse_pasteld_version(output)
    return parsed is not None and parsed < version.parse(LEGACY_PASTELD_BELOW)


class Installer:
    """Downloads release artifacts and lays out the working environment."""

    def __init__(
        self,
        config: DeploymentConfig,
        runner: Optional[CommandRunner] = None,
        prompter=None,
        token: Optional[CancelToken] = None,
        download_service: Optional[DownloadService] = None,
        archive_service: Optional[ArchiveService] = None,
        service_manager=None,
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
        self.download_service = download_service or DownloadService(
            logger=self.logger, console=self.console, requests_module=requests
        )
        self.archive_service = archive_service or ArchiveService()
        self.filesystem = FileSystemService(logger=self.logger, console=self.console)
        self.external_ip_resolver = external_ip_resolver
        self.session_factory = session_factory
        self._service_manager = service_manager

    @property
    def service_manager(self):
        if self._service_manager is None:
            manager, warning = create_service_manager(self.config.os_type, self.runner, self.logger)
            if warning is not None:
                self.logger.warning(str(warning))
            self._service_manager = manager
        return self._service_manager

    def install(self, target: str):
        if target == "remote":
            self.install_remote()
            return
        if target not in INSTALL_PLANS:
            raise PastelupError(f"Unknown install target: {target}")

        self.console.print(f"[bold blue]Installing {target}[/bold blue]")
        self.prepare_install_dir()
        self.check_packages(target)

        for tool in INSTALL_PLANS[target]:
            self.token.raise_if_cancelled()
            self.install_component(tool)
            if self.config.enable_service:
                self.register_service(tool)

        if target == "supernode":
            self.open_ports()
        self.console.print(f"[bold green]{target} installed successfully[/bold green]")

    # environment

    def prepare_install_dir(self):
        path = self.config.exec_dir
        if os.path.isdir(path) and os.listdir(path) and not self.config.force:
            if not self.prompter.confirm(f"{path} already exists. Do you want to continue to install?"):
                raise UserAbortError(f"Install directory {path} already exists.")
            self.config.force = True
        self.filesystem.ensure_dir(path, DIR_MODE)
        self.logger.info("Install path is %s", path)

    def installed_packages(self) -> List[str]:
        result = self.runner.run(["dpkg-query", "-W", "-f=${Package}\\n"], check=False)
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def check_packages(self, target: str):
        if self.config.os_type != OS_LINUX:
            return
        key = "supernode" if target == "supernode" else "dd-service" if target == "dd-service" else "node"
        installed = set(self.installed_packages())
        missing = [name for name in REQUIRED_PACKAGES[key] if name not in installed]
        if not missing:
            return

        missing_list = ", ".join(missing)
        self.logger.warning("Missing packages: %s", missing_list)
        if not self.prompter.confirm(f"{missing_list} are required. Do you want to install them?"):
            raise UserAbortError(f"{missing_list} is missing from your OS, which is required for running.")
        self.runner.run_interactive(["sudo", "apt-get", "install", "-y", *missing])

    # components

    def _download(self, file_name: str) -> str:
        url = self.download_service.release_url(self.config.download_base_url, self.config.release, file_name)
        return self.download_service.download_file(
            url, os.path.join(self.config.exec_dir, file_name), description=f"Downloading {file_name}..."
        )

    def _unpack(self, archive_path: str, destination: str):
        self.logger.debug("Extracting %s to %s", archive_path, destination)
        self.archive_service.extract(archive_path, destination)
        os.remove(archive_path)

    def install_component(self, tool: ToolType):
        self.console.print(f"[blue]Installing {tool} executable...[/blue]")
        handlers = {
            ToolType.NODE: self._install_node,
            ToolType.WALLET_NODE: self._install_walletnode,
            ToolType.SUPER_NODE: self._install_supernode,
            ToolType.RQ_SERVICE: self._install_rqservice,
            ToolType.DD_SERVICE: self._install_ddservice,
            ToolType.HERMES: self._install_hermes,
        }
        handlers[tool]()
        self.logger.info("%s executable installed successfully", tool)

    def _install_binary(self, tool: ToolType):
        self._download(exec_name(tool, self.config.os_type))
        self.filesystem.set_permissions(exec_path(tool, self.config), SCRIPT_MODE)

    def _install_node(self):
        archive = self._download(PASTEL_ARCHIVE_NAME[self.config.os_type])
        self._unpack(archive, self.config.exec_dir)
        self.filesystem.set_permissions(exec_path(ToolType.NODE, self.config), SCRIPT_MODE)
        cli = os.path.join(self.config.exec_dir, PASTEL_CLI_NAME[self.config.os_type])
        self.filesystem.set_permissions(cli, SCRIPT_MODE)

        self.filesystem.ensure_dir(self.config.working_dir, DIR_MODE)
        pastel_conf.ensure_rpc_credentials(self.config, self.logger)
        self.download_zksnark_params()
        self._warn_if_legacy()

    def _warn_if_legacy(self):
        try:
            result = self.runner.run([exec_path(ToolType.NODE, self.config), "--version"], check=False)
        except PastelupError as exc:
            self.logger.debug("Could not query pasteld version: %s", exc)
            return
        if is_legacy_pasteld(result.stdout or ""):
            self.logger.warning(
                "Installed pasteld is older than %s; pass --legacy when starting masternodes.",
                LEGACY_PASTELD_BELOW,
            )

    def download_zksnark_params(self):
        params_dir = self.config.params_dir
        self.filesystem.ensure_dir(params_dir, DIR_MODE)
        names = list(ZKSNARK_PARAMS_NAMES) if self.config.force else missing_zksnark_params(params_dir)
        if not names:
            self.logger.info("Pastel param files already present in %s", params_dir)
            return
        for name in names:
            self.token.raise_if_cancelled()
            self.download_service.download_file(
                ZKSNARK_PARAMS_URL + name,
                os.path.join(params_dir, name),
                description=f"Downloading {name}...",
            )
        self.logger.info("Pastel params downloaded.")

    def _write_config(self, path: str, content: str):
        if os.path.exists(path) and not self.config.force:
            self.logger.info("Keeping existing %s", path)
            return
        self.filesystem.write_text(path, content, FILE_MODE)

    def _rpc(self) -> Dict[str, object]:
        if not self.config.rpc_user:
            pastel_conf.load_into_config(self.config)
        return {"port": self.config.rpc_port, "user": self.config.rpc_user, "password": self.config.rpc_password}

    def _install_walletnode(self):
        self._install_binary(ToolType.WALLET_NODE)
        data = walletnode_config_data(self.config.working_dir, dev_mode=self.config.dev_mode, rpc=self._rpc())
        self._write_config(os.path.join(self.config.working_dir, WALLETNODE_CONF_NAME), render_yaml(data))

    def _install_supernode(self):
        self._install_binary(ToolType.SUPER_NODE)
        data = supernode_config_data(
            self.config.working_dir,
            self.config.home_dir,
            self.config.network,
            rpc=self._rpc(),
        )
        self._write_config(self.config.supernode_conf_path, render_yaml(data))

    def _install_rqservice(self):
        self._install_binary(ToolType.RQ_SERVICE)
        self._write_config(
            os.path.join(self.config.working_dir, RQSERVICE_CONF_NAME),
            render_rqservice_toml(self.config.working_dir),
        )

    def _install_hermes(self):
        self._install_binary(ToolType.HERMES)
        data = {"work-dir": self.config.working_dir, "pastel-api": self._rpc()}
        self._write_config(os.path.join(self.config.working_dir, HERMES_CONF_NAME), render_yaml(data))

    def _install_ddservice(self):
        archive = self._download(DD_SERVICE_ARCHIVE)
        self._unpack(archive, self.config.exec_dir)
        target = os.path.join(self.config.exec_dir, DD_SERVICE_DIR)
        self.filesystem.set_tree_permissions(target, DIR_MODE, FILE_MODE, SCRIPT_MODE)

        requirements = os.path.join(target, "requirements.txt")
        if os.path.isfile(requirements):
            self.logger.info("Installing dd-service Python requirements...")
            self.runner.run_interactive(["python3", "-m", "pip", "install", "-r", requirements])

        support_dir = os.path.join(self.config.home_dir, DD_SUPPORT_DIR)
        self.filesystem.ensure_dir(support_dir, DIR_MODE)
        self._write_config(
            os.path.join(support_dir, DD_CONF_NAME),
            f"[DUPEDETECTIONCONFIG]\nsupport_dir = {support_dir}\nwork_dir = {self.config.working_dir}\n",
        )

    # services and firewall

    def register_service(self, tool: ToolType):
        external_ip = self.external_ip_resolver() if tool == ToolType.NODE else ""
        self.service_manager.register(
            tool,
            RegistrationParams(
                config=self.config,
                external_ip=external_ip,
                dev_mode=self.config.dev_mode,
                force=self.config.force,
            ),
        )

    def open_ports(self):
        if self.config.os_type != OS_LINUX:
            self.logger.warning("Open ports %s manually on this OS.", self._port_list())
            return
        for port in self._port_list():
            self.logger.info("Opening port: %s", port)
            self.runner.run_sudo(["ufw", "allow", str(port)])

    def _port_list(self) -> List[int]:
        ports = PORTS[self.config.network]
        return [ports["node"], ports["sn"], ports["p2p"], ports["mdl"], ports["raft"]]

    # remote

    def remote_install_options(self) -> List[str]:
        options = ["--yes"]
        if self.config.remote_exec_dir:
            options.append(f"--dir={to_posix(self.config.remote_exec_dir)}")
        if self.config.remote_working_dir:
            options.append(f"--work-dir={to_posix(self.config.remote_working_dir)}")
        if self.config.force:
            options.append("--force")
        if self.config.release:
            options.append(f"--release={self.config.release}")
        if self.config.peers:
            options.append(f"--peers={','.join(self.config.peers)}")
        if self.config.network != "mainnet":
            options.append(f"--network={self.config.network}")
        return options

    def install_remote(self):
        """Installs pastelup into a virtualenv on the hot node, then installs supernode there."""
        if not self.config.remote_host:
            raise MissingConfigError(actionable_error("ssh_ip_missing"))
        if not self.config.remote_utility_dir:
            raise MissingConfigError(actionable_error("remote_utility_dir_missing"))
        if self.session_factory is None:
            raise PastelupError("No remote session factory configured.")

        utility_dir = to_posix(self.config.remote_utility_dir)
        venv = f"{utility_dir}/.venv"
        remote_pastelup = f"{utility_dir}/pastelup"
        options = " ".join(shlex.quote(option) for option in self.remote_install_options())

        self.console.print(f"[blue]Connecting to SSH hot node {self.config.remote_host}:{self.config.remote_port}[/blue]")
        session = self.session_factory(self.config)
        try:
            session.run(f"mkdir -p {shlex.quote(utility_dir)}")
            session.run(f"python3 -m venv {shlex.quote(venv)}")
            session.run(f"{shlex.quote(venv)}/bin/python -m pip install --upgrade pastelup")
            session.run(f"ln -sf {shlex.quote(venv)}/bin/pastelup {shlex.quote(remote_pastelup)}")
            self.console.print("[blue]Installing supernode on hot node...[/blue]")
            session.run(f"{remote_pastelup} install supernode {options}")
        finally:
            session.close()
        self.console.print("[bold green]Remote supernode installed successfully[/bold green]")
