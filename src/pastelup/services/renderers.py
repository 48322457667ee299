"""Serialisers for the on-disk formats pastelup writes."""

import os
from typing import Any, Dict, Iterable, List, Optional

import yaml

from pastelup.constants import (
    DD_SERVER_PORT,
    DD_SUPPORT_DIR,
    MDL_DATA_DIR,
    NETWORK_REGTEST,
    NETWORK_TESTNET,
    NUMBER_OF_CHALLENGE_REPLICAS,
    P2P_DATA_DIR,
    PORTS,
    RQ_SERVICE_DIR,
    RQ_SERVICE_PORT,
    STORAGE_CHALLENGE_EXPIRED_DURATION,
    SUPERNODE_LOG_NAME,
    TEMP_DIR,
    WALLETNODE_LOG_NAME,
)
from pastelup.models import LaunchSpec


def render_pastel_conf(
    rpc_user: str,
    rpc_password: str,
    rpc_port: int,
    network: str,
    peers: Iterable[str] = (),
) -> str:
    lines = [
        "server=1",
        "listen=1",
        f"rpcuser={rpc_user}",
        f"rpcpassword={rpc_password}",
        f"rpcport={rpc_port}",
    ]
    if network == NETWORK_TESTNET:
        lines.append("testnet=1")
    elif network == NETWORK_REGTEST:
        lines.append("regtest=1")
    for peer in peers:
        peer = peer.strip()
        if peer:
            lines.append(f"addnode={peer}")
    return "\n".join(lines) + "\n"


def _pastel_api(rpc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    rpc = rpc or {}
    return {
        "hostname": "localhost",
        "port": rpc.get("port", 0),
        "username": rpc.get("user", ""),
        "password": rpc.get("password", ""),
    }


def supernode_config_data(
    working_dir: str,
    home_dir: str,
    network: str,
    pastel_id: str = "",
    pass_phrase: str = "",
    rpc: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Full supernode.yml document for a fresh install."""
    ports = PORTS[network]
    return {
        "pastel-api": _pastel_api(rpc),
        "log-config": {
            "log-file": os.path.join(working_dir, SUPERNODE_LOG_NAME),
            "log-compress": True,
            "log-max-size-mb": 100,
            "log-max-age-days": 3,
            "log-max-backups": 10,
            "log-levels": {"common": "info", "p2p": "info", "metadb": "info", "dd": "info"},
        },
        "temp-dir": os.path.join(working_dir, TEMP_DIR),
        "work-dir": working_dir,
        "rq-files-dir": os.path.join(working_dir, RQ_SERVICE_DIR),
        "dd-service-dir": os.path.join(home_dir, DD_SUPPORT_DIR),
        "node": {
            "pastel_id": pastel_id,
            "pass_phrase": pass_phrase,
            "storage_challenge_expired_duration": STORAGE_CHALLENGE_EXPIRED_DURATION,
            "number_of_challenge_replicas": NUMBER_OF_CHALLENGE_REPLICAS,
            "server": {"listen_addresses": "0.0.0.0", "port": ports["sn"]},
        },
        "p2p": {"listen_address": "0.0.0.0", "port": ports["p2p"], "data_dir": os.path.join(working_dir, P2P_DATA_DIR)},
        "metadb": {
            "http_port": ports["mdl"],
            "raft_port": ports["raft"],
            "data_dir": os.path.join(working_dir, MDL_DATA_DIR),
        },
        "raptorq": {"host": "localhost", "port": RQ_SERVICE_PORT},
        "dd-server": {"host": "localhost", "port": DD_SERVER_PORT},
    }


def walletnode_config_data(
    working_dir: str, dev_mode: bool = False, rpc: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return {
        "pastel-api": _pastel_api(rpc),
        "log-config": {
            "log-file": os.path.join(working_dir, WALLETNODE_LOG_NAME),
            "log-compress": True,
            "log-max-size-mb": 100,
            "log-max-age-days": 3,
            "log-max-backups": 10,
        },
        "temp-dir": os.path.join(working_dir, "walletnode", "tmp"),
        "work-dir": working_dir,
        "rq-files-dir": os.path.join(working_dir, RQ_SERVICE_DIR),
        "raptorq": {"host": "localhost", "port": RQ_SERVICE_PORT},
        "node": {"api": {"hostname": "localhost", "port": 8080, "swagger": bool(dev_mode)}},
    }


def render_yaml(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def render_rqservice_toml(working_dir: str) -> str:
    return (
        f'grpc-service = "127.0.0.1:{RQ_SERVICE_PORT}"\n'
        f'symbols-dir = "{os.path.join(working_dir, RQ_SERVICE_DIR)}"\n'
    )


def render_systemd_unit(description: str, launch: LaunchSpec, user: str = "") -> str:
    lines: List[str] = [
        "[Unit]",
        f"Description={description}",
        "After=network.target",
        "",
        "[Service]",
        "Type=simple",
    ]
    if user:
        lines.append(f"User={user}")
    lines.extend(
        [
            f"WorkingDirectory={launch.work_dir}",
            f"ExecStart={launch.command_line()}",
            "Restart=always",
            "RestartSec=10",
            "LimitNOFILE=65535",
            "",
            "[Install]",
            "WantedBy=multi-user.target",
        ]
    )
    return "\n".join(lines) + "\n"
