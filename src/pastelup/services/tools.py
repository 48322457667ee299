"""Static mapping from tool identity to executable, arguments and working dir."""

import os
from typing import Dict

from pastelup.constants import (
    DD_CONF_NAME,
    DD_SERVICE_DIR,
    DD_SERVICE_SCRIPT,
    DD_SUPPORT_DIR,
    HERMES_CONF_NAME,
    HERMES_NAME,
    OS_LINUX,
    PASTEL_CLI_NAME,
    PASTELD_NAME,
    RQSERVICE_CONF_NAME,
    RQSERVICE_NAME,
    SUPERNODE_CONF_NAME,
    SUPERNODE_NAME,
    WALLETNODE_CONF_NAME,
    WALLETNODE_NAME,
)
from pastelup.models import DeploymentConfig, LaunchSpec, ToolType

_EXEC_NAMES: Dict[ToolType, Dict[str, str]] = {
    ToolType.NODE: PASTELD_NAME,
    ToolType.WALLET_NODE: WALLETNODE_NAME,
    ToolType.SUPER_NODE: SUPERNODE_NAME,
    ToolType.RQ_SERVICE: RQSERVICE_NAME,
    ToolType.HERMES: HERMES_NAME,
}


def exec_name(tool: ToolType, os_type: str) -> str:
    if tool == ToolType.DD_SERVICE:
        return os.path.join(DD_SERVICE_DIR, DD_SERVICE_SCRIPT)
    names = _EXEC_NAMES[tool]
    return names.get(os_type, names[OS_LINUX])


def exec_path(tool: ToolType, config: DeploymentConfig) -> str:
    return os.path.join(config.exec_dir, exec_name(tool, config.os_type))


def pastel_cli_path(config: DeploymentConfig) -> str:
    name = PASTEL_CLI_NAME.get(config.os_type, PASTEL_CLI_NAME[OS_LINUX])
    return os.path.join(config.exec_dir, name)


def config_path(tool: ToolType, config: DeploymentConfig) -> str:
    if tool == ToolType.NODE:
        return config.pastel_conf_path
    if tool == ToolType.WALLET_NODE:
        return os.path.join(config.working_dir, WALLETNODE_CONF_NAME)
    if tool == ToolType.SUPER_NODE:
        return config.supernode_conf_path
    if tool == ToolType.RQ_SERVICE:
        return os.path.join(config.working_dir, RQSERVICE_CONF_NAME)
    if tool == ToolType.HERMES:
        return os.path.join(config.working_dir, HERMES_CONF_NAME)
    return os.path.join(config.home_dir, DD_SUPPORT_DIR, DD_CONF_NAME)


def build_launch_spec(
    tool: ToolType,
    config: DeploymentConfig,
    external_ip: str = "",
    dev_mode: bool = False,
) -> LaunchSpec:
    """Returns the command line a supervisor (or a bare spawn) should run for ``tool``."""
    path = exec_path(tool, config)

    if tool == ToolType.NODE:
        command = [path, f"--datadir={config.working_dir}"]
        if external_ip:
            command.append(f"--externalip={external_ip}")
        if config.network_flag:
            command.append(config.network_flag)
        return LaunchSpec(command=command, work_dir=config.exec_dir)

    if tool == ToolType.DD_SERVICE:
        return LaunchSpec(
            command=["python3", path, config_path(tool, config)],
            work_dir=config.exec_dir,
        )

    command = [path, f"--config-file={config_path(tool, config)}"]
    if tool == ToolType.WALLET_NODE and (dev_mode or config.dev_mode):
        command.append("--swagger")
    return LaunchSpec(command=command, work_dir=config.exec_dir)
