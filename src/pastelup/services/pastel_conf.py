"""Reading and writing pastel.conf."""

import os
import secrets
import string
from typing import Dict, List

from pastelup.constants import (
    FILE_MODE,
    NETWORK_MAINNET,
    NETWORK_REGTEST,
    NETWORK_TESTNET,
    PORTS,
)
from pastelup.errors import MissingConfigError
from pastelup.errors_catalog import actionable_error
from pastelup.models import DeploymentConfig
from pastelup.services.renderers import render_pastel_conf

_ALPHABET = string.ascii_letters + string.digits


def generate_random_string(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def parse_pastel_conf(text: str) -> Dict[str, List[str]]:
    """Parses key=value lines; repeated keys (addnode) keep every value."""
    values: Dict[str, List[str]] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values.setdefault(key.strip(), []).append(value.strip())
    return values


def read_pastel_conf(path: str) -> Dict[str, List[str]]:
    if not os.path.isfile(path):
        raise MissingConfigError(
            actionable_error("pastel_conf_not_found", path=os.path.dirname(path) or path)
        )
    with open(path, "r", encoding="utf-8") as handle:
        return parse_pastel_conf(handle.read())


def detect_network(values: Dict[str, List[str]]) -> str:
    if values.get("testnet", ["0"])[-1] == "1":
        return NETWORK_TESTNET
    if values.get("regtest", ["0"])[-1] == "1":
        return NETWORK_REGTEST
    return NETWORK_MAINNET


def load_into_config(config: DeploymentConfig) -> Dict[str, List[str]]:
    """Learns network and RPC credentials from the node's existing pastel.conf."""
    values = read_pastel_conf(config.pastel_conf_path)
    config.network = detect_network(values)
    config.rpc_user = values.get("rpcuser", [config.rpc_user])[-1]
    config.rpc_password = values.get("rpcpassword", [config.rpc_password])[-1]
    rpc_port = values.get("rpcport", [""])[-1]
    config.rpc_port = int(rpc_port) if rpc_port.isdigit() else PORTS[config.network]["rpc"]
    return values


def ensure_rpc_credentials(config: DeploymentConfig, logger) -> bool:
    """Populates RPC credentials and persists them in pastel.conf.

    Credentials already on disk are reused unless ``config.regenerate_rpc`` is
    set. Returns True when pastel.conf was (re)written.
    """
    path = config.pastel_conf_path
    existing = {}
    if os.path.isfile(path):
        existing = read_pastel_conf(path)

    has_credentials = bool(existing.get("rpcuser") and existing.get("rpcpassword"))
    if has_credentials and not config.regenerate_rpc:
        config.rpc_user = existing["rpcuser"][-1]
        config.rpc_password = existing["rpcpassword"][-1]
        rpc_port = existing.get("rpcport", [""])[-1]
        config.rpc_port = int(rpc_port) if rpc_port.isdigit() else PORTS[config.network]["rpc"]
        logger.debug("Reusing RPC credentials from %s", path)
        return False

    config.rpc_user = config.rpc_user if config.rpc_user and not config.regenerate_rpc else generate_random_string(8)
    config.rpc_password = (
        config.rpc_password if config.rpc_password and not config.regenerate_rpc else generate_random_string(15)
    )
    if not config.rpc_port:
        config.rpc_port = PORTS[config.network]["rpc"]

    peers = list(config.peers) or existing.get("addnode", [])
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(
            render_pastel_conf(
                config.rpc_user,
                config.rpc_password,
                config.rpc_port,
                config.network,
                peers,
            )
        )
    if os.name != "nt":
        os.chmod(path, FILE_MODE)
    logger.info("Wrote %s", path)
    return True
