"""Shared domain models for pastelup."""

import enum
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .constants import (
    MASTERNODE_CONF_NAME,
    NETWORK_MAINNET,
    NETWORK_REGTEST,
    NETWORK_TESTNET,
    OS_LINUX,
    PASTEL_CONF_NAME,
    PORTS,
    SUPERNODE_CONF_NAME,
)


class ToolType(str, enum.Enum):
    """Logical identity of each process pastelup installs and supervises."""

    NODE = "pasteld"
    WALLET_NODE = "walletnode"
    SUPER_NODE = "supernode"
    RQ_SERVICE = "rq-service"
    DD_SERVICE = "dd-service"
    HERMES = "hermes"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LaunchSpec:
    """Command line and working directory used to run a tool."""

    command: List[str]
    work_dir: str

    @property
    def exec_path(self) -> str:
        return self.command[0]

    def command_line(self) -> str:
        return " ".join(self.command)


@dataclass
class DeploymentConfig:
    """Process-wide settings resolved once per invocation and mutated in place.

    Not thread-safe; owned by the current invocation only.
    """

    os_type: str = OS_LINUX
    home_dir: str = field(default_factory=lambda: os.path.expanduser("~"))
    working_dir: str = ""
    exec_dir: str = ""
    params_dir: str = ""
    network: str = NETWORK_MAINNET
    rpc_user: str = ""
    rpc_password: str = ""
    rpc_port: int = 0
    peers: List[str] = field(default_factory=list)
    force: bool = False
    reindex: bool = False
    legacy: bool = False
    regenerate_rpc: bool = False
    enable_service: bool = False
    dev_mode: bool = False
    user_password: Optional[str] = None
    release: str = ""
    download_base_url: str = ""

    remote_host: str = ""
    remote_port: int = 22
    remote_user: str = ""
    remote_key_path: Optional[str] = None
    remote_password: Optional[str] = None
    remote_working_dir: str = ""
    remote_exec_dir: str = ""
    remote_utility_dir: str = ""

    @property
    def pastel_conf_path(self) -> str:
        return os.path.join(self.working_dir, PASTEL_CONF_NAME)

    @property
    def masternode_conf_path(self) -> str:
        return os.path.join(self.working_dir, self.network_subdir, MASTERNODE_CONF_NAME)

    @property
    def supernode_conf_path(self) -> str:
        return os.path.join(self.working_dir, SUPERNODE_CONF_NAME)

    @property
    def network_subdir(self) -> str:
        if self.network == NETWORK_TESTNET:
            return "testnet3"
        if self.network == NETWORK_REGTEST:
            return "regtest"
        return ""

    @property
    def network_flag(self) -> str:
        """Extra pasteld/pastel-cli switch selecting the active network."""
        if self.network == NETWORK_TESTNET:
            return "--testnet"
        if self.network == NETWORK_REGTEST:
            return "--regtest"
        return ""


@dataclass
class MasternodeParams:
    """Masternode flags for one start invocation, passed explicitly to every step."""

    name: str = ""
    external_ip: str = ""
    create: bool = False
    update: bool = False
    activate: bool = False
    txid: str = ""
    index: str = ""
    passphrase: str = ""
    private_key: str = ""
    pastel_id: str = ""
    rpc_ip: str = ""
    rpc_port: int = 0
    p2p_ip: str = ""
    p2p_port: int = 0
    node_port: int = 0

    @property
    def creating_or_updating(self) -> bool:
        return self.create or self.update

    def is_fully_resolved(self) -> bool:
        return all((self.txid, self.index, self.passphrase, self.private_key, self.pastel_id))

    def apply_port_defaults(self, network: str):
        """RPC and P2P addresses default to the WAN address; ports to the network defaults."""
        ports = PORTS[network]
        self.rpc_ip = self.rpc_ip or self.external_ip
        self.p2p_ip = self.p2p_ip or self.external_ip
        self.node_port = self.node_port or ports["node"]
        self.rpc_port = self.rpc_port or ports["sn"]
        self.p2p_port = self.p2p_port or ports["p2p"]

    def to_record(self) -> "MasternodeRecord":
        return MasternodeRecord(
            name=self.name,
            ip=self.external_ip,
            port=self.node_port,
            private_key=self.private_key,
            txid=self.txid,
            index=self.index,
            rpc_ip=self.rpc_ip,
            rpc_port=self.rpc_port,
            p2p_ip=self.p2p_ip,
            p2p_port=self.p2p_port,
            pastel_id=self.pastel_id,
        )


@dataclass(frozen=True)
class MasternodeRecord:
    """One masternode.conf entry."""

    name: str
    ip: str
    port: int
    private_key: str
    txid: str
    index: str
    rpc_ip: str = ""
    rpc_port: int = 0
    p2p_ip: str = ""
    p2p_port: int = 0
    pastel_id: str = ""


@dataclass(frozen=True)
class SyncStatus:
    """Parsed `mnsync status` payload."""

    asset_name: str
    is_synced: bool
    raw: dict = field(default_factory=dict, compare=False)

    @property
    def is_initial(self) -> bool:
        return self.asset_name == "Initial"
