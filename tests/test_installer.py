import os
import subprocess

import pytest
import yaml

from pastelup.constants import ZKSNARK_PARAMS_NAMES
from pastelup.errors import MissingConfigError, UserAbortError
from pastelup.installer import Installer, is_legacy_pasteld, parse_pasteld_version
from pastelup.models import DeploymentConfig, ToolType
from pastelup.services.polling import CancelToken
from pastelup.services.service_manager import NoopServiceManager


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class ScriptedPrompter:
    def __init__(self, confirms=()):
        self.confirms = list(confirms)
        self.messages = []

    def confirm(self, message):
        self.messages.append(message)
        return self.confirms.pop(0)

    def ask(self, message):
        return ""


class FakeRunner:
    def __init__(self, installed=("wget", "curl", "libgomp1", "python3-pip", "python3-venv"), version="v1.1.3"):
        self.installed = installed
        self.version = version
        self.commands = []
        self.sudo_commands = []
        self.interactive = []

    def run(self, cmd, check=True, **_kwargs):
        self.commands.append(cmd)
        if cmd[0] == "dpkg-query":
            return subprocess.CompletedProcess(cmd, 0, stdout="\n".join(self.installed) + "\n")
        if cmd[-1] == "--version":
            return subprocess.CompletedProcess(cmd, 0, stdout=f"Pastel Core Daemon version {self.version}\n")
        return subprocess.CompletedProcess(cmd, 0, stdout="")

    def run_sudo(self, cmd, **_kwargs):
        self.sudo_commands.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout="")

    def run_interactive(self, cmd):
        self.interactive.append(cmd)
        return 0


class FakeDownloadService:
    def __init__(self):
        self.urls = []

    def release_url(self, base_url, release, file_name):
        return f"{base_url}/{release}/{file_name}"

    def download_file(self, url, dest_path, description="", expected_sha256=None):
        self.urls.append(url)
        os.makedirs(os.path.dirname(dest_path), exist_ok=True)
        with open(dest_path, "wb") as handle:
            handle.write(b"payload")
        return dest_path


class FakeArchiveService:
    def extract(self, archive_path, destination_dir):
        if "dd-service" in os.path.basename(archive_path):
            target = os.path.join(destination_dir, "dd-service")
            os.makedirs(target, exist_ok=True)
            for name in ("server.py", "requirements.txt"):
                with open(os.path.join(target, name), "w", encoding="utf-8") as handle:
                    handle.write("")
            return
        for name in ("pasteld", "pastel-cli"):
            with open(os.path.join(destination_dir, name), "w", encoding="utf-8") as handle:
                handle.write("")


class RecordingServiceManager(NoopServiceManager):
    def __init__(self):
        self.registered = []

    def register(self, tool, params):
        self.registered.append((tool, params.external_ip))


def build_config(tmp_path, **overrides):
    values = dict(
        exec_dir=str(tmp_path / "pastel"),
        working_dir=str(tmp_path / ".pastel"),
        params_dir=str(tmp_path / ".pastel-params"),
        home_dir=str(tmp_path),
        network="testnet",
        release="beta",
        download_base_url="https://download.pastel.network",
    )
    values.update(overrides)
    return DeploymentConfig(**values)


def build_installer(
    config, runner=None, prompter=None, service_manager=None, logger=None, download_service=None, **kwargs
):
    return Installer(
        config,
        runner=runner or FakeRunner(),
        prompter=prompter or ScriptedPrompter(),
        token=CancelToken(),
        download_service=download_service or FakeDownloadService(),
        archive_service=FakeArchiveService(),
        service_manager=service_manager or RecordingServiceManager(),
        external_ip_resolver=lambda: "203.0.113.9",
        out=DummyConsole(),
        log=logger or DummyLogger(),
        **kwargs,
    )


def test_install_node_lays_out_environment(tmp_path):
    config = build_config(tmp_path)
    downloads = FakeDownloadService()
    installer = build_installer(config, download_service=downloads)

    installer.install("node")

    assert (tmp_path / "pastel" / "pasteld").exists()
    assert not (tmp_path / "pastel" / "pastel-ubuntu20.04.tar.gz").exists()
    conf = (tmp_path / ".pastel" / "pastel.conf").read_text(encoding="utf-8")
    assert f"rpcuser={config.rpc_user}" in conf
    assert "rpcport=19932" in conf
    assert sorted(os.listdir(tmp_path / ".pastel-params")) == sorted(ZKSNARK_PARAMS_NAMES)
    assert downloads.urls[0] == "https://download.pastel.network/beta/pastel-ubuntu20.04.tar.gz"


def test_install_node_keeps_existing_rpc_credentials(tmp_path):
    work = tmp_path / ".pastel"
    work.mkdir()
    (work / "pastel.conf").write_text("rpcuser=keepuser\nrpcpassword=keeppassword123\nrpcport=19932\n", encoding="utf-8")
    config = build_config(tmp_path)

    build_installer(config).install("node")

    assert config.rpc_user == "keepuser"
    assert "rpcuser=keepuser" in (work / "pastel.conf").read_text(encoding="utf-8")


def test_zksnark_params_already_present_are_not_downloaded(tmp_path):
    params = tmp_path / ".pastel-params"
    params.mkdir()
    for name in ZKSNARK_PARAMS_NAMES:
        (params / name).write_text("", encoding="utf-8")
    downloads = FakeDownloadService()
    installer = build_installer(build_config(tmp_path), download_service=downloads)

    installer.download_zksnark_params()

    assert downloads.urls == []


def test_existing_install_dir_prompts_and_aborts(tmp_path):
    exec_dir = tmp_path / "pastel"
    exec_dir.mkdir()
    (exec_dir / "pasteld").write_text("", encoding="utf-8")
    downloads = FakeDownloadService()
    prompter = ScriptedPrompter(confirms=[False])
    installer = build_installer(build_config(tmp_path), prompter=prompter, download_service=downloads)

    with pytest.raises(UserAbortError):
        installer.install("node")

    assert "already exists" in prompter.messages[0]
    assert downloads.urls == []


def test_missing_packages_are_installed_after_confirmation(tmp_path):
    runner = FakeRunner(installed=("wget",))
    installer = build_installer(build_config(tmp_path), runner=runner, prompter=ScriptedPrompter(confirms=[True]))

    installer.check_packages("node")

    assert runner.interactive == [["sudo", "apt-get", "install", "-y", "curl", "libgomp1"]]


def test_missing_packages_declined_aborts(tmp_path):
    runner = FakeRunner(installed=())
    installer = build_installer(build_config(tmp_path), runner=runner, prompter=ScriptedPrompter(confirms=[False]))

    with pytest.raises(UserAbortError, match="wget"):
        installer.check_packages("node")

    assert runner.interactive == []


def test_install_walletnode_registers_services_when_enabled(tmp_path):
    config = build_config(tmp_path, enable_service=True, dev_mode=True)
    manager = RecordingServiceManager()
    installer = build_installer(config, service_manager=manager)

    installer.install("walletnode")

    assert manager.registered == [
        (ToolType.NODE, "203.0.113.9"),
        (ToolType.RQ_SERVICE, ""),
        (ToolType.WALLET_NODE, ""),
    ]
    walletnode = yaml.safe_load((tmp_path / ".pastel" / "walletnode.yml").read_text(encoding="utf-8"))
    assert walletnode["node"]["api"]["swagger"] is True
    assert walletnode["pastel-api"]["username"] == config.rpc_user
    assert (tmp_path / ".pastel" / "rqservice.toml").exists()


def test_install_supernode_writes_config_and_opens_ports(tmp_path):
    runner = FakeRunner()
    config = build_config(tmp_path)
    installer = build_installer(config, runner=runner)

    installer.install("supernode")

    supernode = yaml.safe_load((tmp_path / ".pastel" / "supernode.yml").read_text(encoding="utf-8"))
    assert supernode["node"]["server"]["port"] == 14444
    assert supernode["pastel-api"]["port"] == 19932
    assert (tmp_path / "pastel_dupe_detection_service" / "config.ini").exists()
    assert ["python3", "-m", "pip", "install", "-r", str(tmp_path / "pastel" / "dd-service" / "requirements.txt")] in (
        runner.interactive
    )
    assert ["ufw", "allow", "14444"] in runner.sudo_commands
    assert len(runner.sudo_commands) == 5


def test_legacy_pasteld_version_is_reported(tmp_path):
    logger = DummyLogger()
    build_installer(build_config(tmp_path), runner=FakeRunner(version="v1.0.3"), logger=logger).install("node")

    assert any("--legacy" in message for message in logger.warnings)


def test_pasteld_version_parsing():
    assert str(parse_pasteld_version("Pastel Core Daemon version v1.1.3-beta")) == "1.1.3"
    assert parse_pasteld_version("no version here") is None
    assert is_legacy_pasteld("version v1.0.9") is True
    assert is_legacy_pasteld("version v1.1.0") is False


class FakeSession:
    def __init__(self):
        self.commands = []
        self.closed = False

    def run(self, command, timeout=None):
        self.commands.append(command)
        return ""

    def close(self):
        self.closed = True


def test_install_remote_bootstraps_pastelup_and_installs_supernode(tmp_path):
    session = FakeSession()
    config = build_config(
        tmp_path,
        remote_host="203.0.113.9",
        remote_utility_dir="/home/pastel/pastelup",
        remote_working_dir="/home/pastel/.pastel",
        force=True,
    )
    installer = build_installer(config, session_factory=lambda _config: session)

    installer.install("remote")

    assert session.commands[:4] == [
        "mkdir -p /home/pastel/pastelup",
        "python3 -m venv /home/pastel/pastelup/.venv",
        "/home/pastel/pastelup/.venv/bin/python -m pip install --upgrade pastelup",
        "ln -sf /home/pastel/pastelup/.venv/bin/pastelup /home/pastel/pastelup/pastelup",
    ]
    assert session.commands[4] == (
        "/home/pastel/pastelup/pastelup install supernode --yes "
        "--work-dir=/home/pastel/.pastel --force --release=beta --network=testnet"
    )
    assert session.closed


def test_install_remote_requires_ssh_address(tmp_path):
    installer = build_installer(build_config(tmp_path), session_factory=lambda _config: FakeSession())

    with pytest.raises(MissingConfigError, match="--ssh-ip"):
        installer.install("remote")
