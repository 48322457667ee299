"""Static names, ports and timings shared across pastelup."""

from typing import Dict, Tuple

OS_LINUX = "Linux"
OS_MAC = "MAC"
OS_WINDOWS = "Windows"
OS_UNKNOWN = "Unknown"

NETWORK_MAINNET = "mainnet"
NETWORK_TESTNET = "testnet"
NETWORK_REGTEST = "regtest"
NETWORKS = (NETWORK_MAINNET, NETWORK_TESTNET, NETWORK_REGTEST)

PASTEL_CONF_NAME = "pastel.conf"
MASTERNODE_CONF_NAME = "masternode.conf"
SUPERNODE_CONF_NAME = "supernode.yml"
WALLETNODE_CONF_NAME = "walletnode.yml"
RQSERVICE_CONF_NAME = "rqservice.toml"
HERMES_CONF_NAME = "hermes.yml"
DD_CONF_NAME = "config.ini"

DIR_MODE = 0o755
FILE_MODE = 0o644
SCRIPT_MODE = 0o755

PASTELD_NAME: Dict[str, str] = {
    OS_WINDOWS: "pasteld.exe",
    OS_LINUX: "pasteld",
    OS_MAC: "pasteld",
}
PASTEL_CLI_NAME: Dict[str, str] = {
    OS_WINDOWS: "pastel-cli.exe",
    OS_LINUX: "pastel-cli",
    OS_MAC: "pastel-cli",
}
WALLETNODE_NAME: Dict[str, str] = {
    OS_WINDOWS: "walletnode-win-amd64.exe",
    OS_LINUX: "walletnode-linux-amd64",
    OS_MAC: "walletnode-darwin-amd64",
}
SUPERNODE_NAME: Dict[str, str] = {
    OS_WINDOWS: "supernode-win-amd64.exe",
    OS_LINUX: "supernode-linux-amd64",
    OS_MAC: "supernode-darwin-amd64",
}
RQSERVICE_NAME: Dict[str, str] = {
    OS_WINDOWS: "rq-service-win-amd64.exe",
    OS_LINUX: "rq-service-linux-amd64",
    OS_MAC: "rq-service-darwin-amd64",
}
HERMES_NAME: Dict[str, str] = {
    OS_WINDOWS: "hermes-win-amd64.exe",
    OS_LINUX: "hermes-linux-amd64",
    OS_MAC: "hermes-darwin-amd64",
}
PASTEL_ARCHIVE_NAME: Dict[str, str] = {
    OS_WINDOWS: "pastel-win64.zip",
    OS_LINUX: "pastel-ubuntu20.04.tar.gz",
    OS_MAC: "pastel-osx.tar.gz",
}

DD_SERVICE_DIR = "dd-service"
DD_SERVICE_SCRIPT = "server.py"
DD_SERVICE_ARCHIVE = "dd-service.zip"
DD_SUPPORT_DIR = "pastel_dupe_detection_service"

RQ_SERVICE_DIR = "rqfiles"
P2P_DATA_DIR = "p2pdata"
MDL_DATA_DIR = "mdldata"
TEMP_DIR = "supernode/tmp"
SUPERNODE_LOG_NAME = "supernode.log"
WALLETNODE_LOG_NAME = "walletnode.log"

ZKSNARK_PARAMS_NAMES: Tuple[str, ...] = (
    "sapling-spend.params",
    "sapling-output.params",
    "sprout-proving.key",
    "sprout-verifying.key",
    "sprout-groth16.params",
)
ZKSNARK_PARAMS_URL = "https://download.pastel.network/pastel-params/"
DOWNLOAD_BASE_URL = "https://download.pastel.network"
EXTERNAL_IP_URL = "https://ipinfo.io/ip"

SYSTEMD_UNIT_DIR = "/etc/systemd/system"
SYSTEMD_SERVICE_PREFIX = "pastel-"

# (rpc, node, supernode, p2p, mdl, raft)
PORTS: Dict[str, Dict[str, int]] = {
    NETWORK_MAINNET: {"rpc": 9932, "node": 9933, "sn": 4444, "p2p": 4445, "mdl": 4446, "raft": 4447},
    NETWORK_TESTNET: {"rpc": 19932, "node": 19933, "sn": 14444, "p2p": 14445, "mdl": 14446, "raft": 14447},
    NETWORK_REGTEST: {"rpc": 18344, "node": 18345, "sn": 14444, "p2p": 14445, "mdl": 14446, "raft": 14447},
}
RQ_SERVICE_PORT = 50051
DD_SERVER_PORT = 50052

COLLATERAL: Dict[str, Tuple[str, str]] = {
    NETWORK_MAINNET: ("5", "PSL"),
    NETWORK_TESTNET: ("1", "LSP"),
    NETWORK_REGTEST: ("0.1", "REG"),
}

# Poll timings; local and remote loops use the same values.
LIVENESS_POLL_INTERVAL = 5.0
LIVENESS_MAX_ATTEMPTS = 12
SYNC_POLL_INTERVAL = 10.0
SYNC_RESET_WAIT = 10.0
SYNC_QUERY_RETRY_WAIT = 5.0
COLLATERAL_POLL_INTERVAL = 10.0
COLLATERAL_ROUND_ATTEMPTS = 10
SERVICE_SETTLE_SECONDS = 10.0

STORAGE_CHALLENGE_EXPIRED_DURATION = "3m"
NUMBER_OF_CHALLENGE_REPLICAS = 3

LEGACY_PASTELD_BELOW = "1.1"
DEFAULT_RELEASE = "beta"

REQUIRED_PACKAGES: Dict[str, Tuple[str, ...]] = {
    "node": ("wget", "curl", "libgomp1"),
    "supernode": ("wget", "curl", "libgomp1", "python3-pip"),
    "dd-service": ("python3-pip", "python3-venv"),
}
