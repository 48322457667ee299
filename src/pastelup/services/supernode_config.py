"""supernode.yml creation and identity patching."""

import os
from typing import Any, Dict, Optional, Tuple

import yaml

from pastelup.constants import (
    FILE_MODE,
    NUMBER_OF_CHALLENGE_REPLICAS,
    STORAGE_CHALLENGE_EXPIRED_DURATION,
)
from pastelup.errors import IdentityMismatchError, MissingConfigError, PastelupError
from pastelup.models import DeploymentConfig
from pastelup.services.renderers import render_yaml, supernode_config_data


class SupernodeConfigService:
    """Keeps the ``node`` identity section of supernode.yml in step with masternode.conf."""

    def __init__(self, config: DeploymentConfig, logger):
        self.config = config
        self.logger = logger

    @property
    def path(self) -> str:
        return self.config.supernode_conf_path

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                parsed = yaml.safe_load(handle)
        except (yaml.YAMLError, OSError) as exc:
            raise PastelupError(f"Failed to parse existing supernode.yml at {self.path}: {exc}") from exc
        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise PastelupError(f"supernode.yml at {self.path} must contain a YAML mapping at the root.")
        return parsed

    def _write(self, data: Dict[str, Any]):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as handle:
            handle.write(render_yaml(data))
        if os.name != "nt":
            os.chmod(self.path, FILE_MODE)

    def create_or_update(self, pastel_id: str, pass_phrase: str):
        """Writes the full template on first use; afterwards patches identity fields only."""
        self.logger.info("Updating supernode config - %s", self.path)
        if not os.path.exists(self.path):
            data = supernode_config_data(
                self.config.working_dir,
                self.config.home_dir,
                self.config.network,
                pastel_id=pastel_id,
                pass_phrase=pass_phrase,
                rpc={
                    "port": self.config.rpc_port,
                    "user": self.config.rpc_user,
                    "password": self.config.rpc_password,
                },
            )
            self._write(data)
            self.logger.info("Created supernode config")
            return

        data = self._load()
        node = data.get("node")
        if not isinstance(node, dict):
            node = {}
            data["node"] = node
        node["pastel_id"] = pastel_id
        node["pass_phrase"] = pass_phrase
        node["storage_challenge_expired_duration"] = STORAGE_CHALLENGE_EXPIRED_DURATION
        node["number_of_challenge_replicas"] = NUMBER_OF_CHALLENGE_REPLICAS
        self._write(data)
        self.logger.info("Supernode config updated")

    def read_identity(self) -> Tuple[str, str]:
        if not os.path.exists(self.path):
            raise MissingConfigError(f"supernode.yml not found at {self.path}.")
        node = self._load().get("node") or {}
        return str(node.get("pastel_id") or ""), str(node.get("pass_phrase") or "")

    def verify_identity_consistency(self, record_pastel_id: Optional[str]):
        pastel_id, _ = self.read_identity()
        if record_pastel_id and pastel_id != record_pastel_id:
            raise IdentityMismatchError(
                f"Pastel ID in masternode.conf ({record_pastel_id}) does not match "
                f"supernode.yml ({pastel_id or '<empty>'})."
            )
