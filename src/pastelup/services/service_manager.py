"""OS service supervisor abstraction: systemd on Linux, no-op elsewhere."""

import abc
import enum
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Optional, Tuple

from pastelup.constants import FILE_MODE, OS_LINUX, SYSTEMD_SERVICE_PREFIX, SYSTEMD_UNIT_DIR
from pastelup.errors import (
    ExecError,
    ExecutableNotFoundError,
    PastelupError,
    ServiceManagerUnavailable,
    ServiceStartError,
)
from pastelup.models import DeploymentConfig, ToolType
from pastelup.services.renderers import render_systemd_unit
from pastelup.services.tools import build_launch_spec


class ServiceStartResult(enum.Enum):
    NOT_STARTED = "not_started"
    ALREADY_RUNNING = "already_running"
    STARTED = "started"

    @property
    def started(self) -> bool:
        return self is not ServiceStartResult.NOT_STARTED


@dataclass
class RegistrationParams:
    config: DeploymentConfig
    external_ip: str = ""
    dev_mode: bool = False
    force: bool = False


class ServiceManager(abc.ABC):
    """Capability set every supervisor backend exposes."""

    @abc.abstractmethod
    def register(self, tool: ToolType, params: RegistrationParams):
        ...

    @abc.abstractmethod
    def start(self, tool: ToolType) -> ServiceStartResult:
        ...

    @abc.abstractmethod
    def stop(self, tool: ToolType):
        ...

    @abc.abstractmethod
    def enable(self, tool: ToolType):
        ...

    @abc.abstractmethod
    def disable(self, tool: ToolType):
        ...

    @abc.abstractmethod
    def is_running(self, tool: ToolType) -> bool:
        ...

    @abc.abstractmethod
    def is_registered(self, tool: ToolType) -> bool:
        ...

    @abc.abstractmethod
    def service_name(self, tool: ToolType) -> str:
        ...


class NoopServiceManager(ServiceManager):
    """Stand-in for platforms without a supported supervisor."""

    def register(self, tool, params):
        return None

    def start(self, tool):
        return ServiceStartResult.NOT_STARTED

    def stop(self, tool):
        return None

    def enable(self, tool):
        return None

    def disable(self, tool):
        return None

    def is_running(self, tool):
        return False

    def is_registered(self, tool):
        return False

    def service_name(self, tool):
        return ""


class SystemdServiceManager(ServiceManager):
    """Manages `pastel-<tool>.service` units through systemctl."""

    RUNNING_MARKER = "(running)"

    def __init__(self, runner, logger, unit_dir: str = SYSTEMD_UNIT_DIR):
        self.runner = runner
        self.logger = logger
        self.unit_dir = unit_dir

    def service_name(self, tool: ToolType) -> str:
        return f"{SYSTEMD_SERVICE_PREFIX}{tool.value}.service"

    def unit_path(self, tool: ToolType) -> str:
        return os.path.join(self.unit_dir, self.service_name(tool))

    def is_registered(self, tool: ToolType) -> bool:
        return os.path.exists(self.unit_path(tool))

    def is_running(self, tool: ToolType) -> bool:
        name = self.service_name(tool)
        try:
            result = self.runner.run(["systemctl", "status", name], check=False)
        except PastelupError as exc:
            self.logger.warning("Could not query status of %s: %s", name, exc)
            return False
        output = result.stdout or ""
        self.logger.debug("%s status: %s", name, output.strip())
        return self.RUNNING_MARKER in output

    def register(self, tool: ToolType, params: RegistrationParams):
        if self.is_registered(tool) and not params.force:
            self.logger.debug("%s is already registered", self.service_name(tool))
            return

        launch = build_launch_spec(
            tool,
            params.config,
            external_ip=params.external_ip,
            dev_mode=params.dev_mode,
        )
        if not os.path.exists(launch.exec_path):
            raise ExecutableNotFoundError(f"Could not find {tool} executable file: {launch.exec_path}")

        unit_text = render_systemd_unit(f"{tool} daemon", launch, user=os.environ.get("USER", ""))
        name = self.service_name(tool)

        # Unit dir is root-owned; stage the file and move it with sudo.
        fd, staged_path = tempfile.mkstemp(prefix="pastelup-", suffix=".service")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(unit_text)
            os.chmod(staged_path, FILE_MODE)
            self.runner.run_sudo(["mv", staged_path, self.unit_path(tool)])
        except ExecError as exc:
            raise PastelupError(f"Unable to write unit file for {tool}: {exc}") from exc
        finally:
            if os.path.exists(staged_path):
                os.remove(staged_path)

        self.runner.run_sudo(["systemctl", "daemon-reload"])
        self.logger.info("Registered %s", name)
        self.enable(tool)

    def start(self, tool: ToolType) -> ServiceStartResult:
        name = self.service_name(tool)
        if not self.is_registered(tool):
            self.logger.info("Skipping start of %s: it is not a registered service", tool)
            return ServiceStartResult.NOT_STARTED
        if self.is_running(tool):
            self.logger.info("Service %s is already running", name)
            return ServiceStartResult.ALREADY_RUNNING
        try:
            self.runner.run_sudo(["systemctl", "start", name])
        except ExecError as exc:
            raise ServiceStartError(f"Unable to start service {name}: {exc}") from exc
        return ServiceStartResult.STARTED

    def stop(self, tool: ToolType):
        if not self.is_registered(tool):
            return
        self.disable(tool)
        if not self.is_running(tool):
            return
        name = self.service_name(tool)
        try:
            self.runner.run_sudo(["systemctl", "stop", name])
        except ExecError as exc:
            raise PastelupError(f"Unable to stop service {name}: {exc}") from exc

    def enable(self, tool: ToolType):
        self._toggle("enable", tool)

    def disable(self, tool: ToolType):
        self._toggle("disable", tool)

    def _toggle(self, verb: str, tool: ToolType):
        name = self.service_name(tool)
        self.logger.info("Running systemctl %s %s", verb, name)
        try:
            self.runner.run_sudo(["systemctl", verb, name])
        except ExecError as exc:
            raise PastelupError(f"Unable to {verb} service {name}: {exc}") from exc


def create_service_manager(
    os_type: str, runner, logger, unit_dir: str = SYSTEMD_UNIT_DIR
) -> Tuple[ServiceManager, Optional[ServiceManagerUnavailable]]:
    """Selects the supervisor backend once per invocation.

    The second element is a warning the caller may ignore and fall back to
    bare process management.
    """
    if os_type == OS_LINUX and shutil.which("systemctl"):
        return SystemdServiceManager(runner, logger, unit_dir=unit_dir), None
    warning = ServiceManagerUnavailable(
        f"Services are not supported on {os_type}; processes will run unsupervised."
    )
    return NoopServiceManager(), warning
