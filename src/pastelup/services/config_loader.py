"""Configuration loader for pastelup."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from pastelup.errors import PastelupError

DEFAULT_CONFIG_NAME = ".pastelup.yml"


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "dir",
        "work_dir",
        "params_dir",
        "network",
        "peers",
        "release",
        "download_base_url",
        "verbose",
        "log_file",
        "legacy",
        "reindex",
        "enable_service",
        "user_pw",
        "ssh_ip",
        "ssh_port",
        "ssh_user",
        "ssh_key",
        "remote_dir",
        "remote_work_dir",
        "remote_home_dir",
        "name",
        "ip",
        "rpc_ip",
        "rpc_port",
        "p2p_ip",
        "p2p_port",
        "node_port",
        "passphrase",
    }

    def load(self, config_path: Optional[str], required: bool = True) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            if not required:
                return {}
            raise PastelupError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise PastelupError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise PastelupError("Config file must contain a YAML mapping at the root.")

        normalized = {str(key).replace("-", "_"): value for key, value in parsed.items()}
        unknown = sorted(set(normalized.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise PastelupError(f"Unknown configuration keys: {unknown_list}")

        return normalized
