import pytest
import yaml

from pastelup.errors import IdentityMismatchError, MissingConfigError
from pastelup.models import DeploymentConfig
from pastelup.services.supernode_config import SupernodeConfigService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None


def build_service(tmp_path):
    config = DeploymentConfig(
        working_dir=str(tmp_path),
        home_dir=str(tmp_path / "home"),
        network="testnet",
        rpc_user="user1234",
        rpc_password="password1234567",
        rpc_port=19932,
    )
    return SupernodeConfigService(config, DummyLogger())


def test_create_writes_full_template_with_identity(tmp_path):
    service = build_service(tmp_path)

    service.create_or_update("jXid", "hunter2")

    data = yaml.safe_load((tmp_path / "supernode.yml").read_text(encoding="utf-8"))
    assert data["node"]["pastel_id"] == "jXid"
    assert data["node"]["pass_phrase"] == "hunter2"
    assert data["pastel-api"]["port"] == 19932
    assert data["pastel-api"]["username"] == "user1234"


def test_update_patches_identity_and_preserves_other_sections(tmp_path):
    path = tmp_path / "supernode.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "log-config": {"log-level": "debug"},
                "node": {"pastel_id": "jXold", "pass_phrase": "old", "server": {"port": 14444}},
                "custom": {"keep": True},
            }
        ),
        encoding="utf-8",
    )
    service = build_service(tmp_path)

    service.create_or_update("jXnew", "hunter2")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data["custom"] == {"keep": True}
    assert data["log-config"] == {"log-level": "debug"}
    assert data["node"]["server"] == {"port": 14444}
    assert data["node"]["pastel_id"] == "jXnew"
    assert data["node"]["number_of_challenge_replicas"] == 3
    assert data["node"]["storage_challenge_expired_duration"] == "3m"


def test_verify_identity_consistency_detects_mismatch(tmp_path):
    service = build_service(tmp_path)
    service.create_or_update("jXyaml", "hunter2")

    service.verify_identity_consistency("jXyaml")
    with pytest.raises(IdentityMismatchError, match="jXconf"):
        service.verify_identity_consistency("jXconf")


def test_read_identity_requires_file(tmp_path):
    with pytest.raises(MissingConfigError):
        build_service(tmp_path).read_identity()
