from click.testing import CliRunner

import pastelup.cli as cli_module
from pastelup.errors import PastelupError
from pastelup.models import ToolType
from pastelup.services.prompts import AssumeYesPrompter, ClickPrompter


def install_fake_installer(monkeypatch, captured, error=None):
    class FakeInstaller:
        def __init__(self, config, **kwargs):
            captured["config"] = config
            captured.update(kwargs)

        def install(self, target):
            captured["target"] = target
            if error:
                raise error

    monkeypatch.setattr(cli_module, "Installer", FakeInstaller)


class FakeStarter:
    instances = []

    def __init__(self, config, prompter=None, token=None, session_factory=None, **_kwargs):
        self.config = config
        self.prompter = prompter
        self.token = token
        self.session_factory = session_factory
        self.node = object()
        self.logger = object()
        self.console = object()
        self.calls = []
        FakeStarter.instances.append(self)

    def start_masternode(self, params):
        self.calls.append(("start_masternode", params))

    def start_supernode(self, params):
        self.calls.append(("start_supernode", params))

    def start_service(self, tool):
        self.calls.append(("start_service", tool))

    def stop_service(self, tool):
        self.calls.append(("stop_service", tool))

    def stop_node(self):
        self.calls.append(("stop_node",))

    def start_remote(self, tool, params):
        self.calls.append(("start_remote", tool, params))


def install_fake_starter(monkeypatch):
    FakeStarter.instances = []
    monkeypatch.setattr(cli_module, "NodeStarter", FakeStarter)


def test_cli_uses_config_and_allows_cli_override(tmp_path, monkeypatch):
    config_file = tmp_path / ".pastelup.yml"
    config_file.write_text(
        "work-dir: /srv/pastel/.pastel\nnetwork: testnet\nrelease: v1.1.3\npeers: 10.0.0.1,10.0.0.2\n",
        encoding="utf-8",
    )
    captured = {}
    install_fake_installer(monkeypatch, captured)

    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        ["--config", str(config_file), "install", "node", "--network", "regtest", "--force"],
    )

    assert result.exit_code == 0, result.output
    config = captured["config"]
    assert captured["target"] == "node"
    assert config.working_dir == "/srv/pastel/.pastel"
    assert config.network == "regtest"
    assert config.release == "v1.1.3"
    assert config.peers == ["10.0.0.1", "10.0.0.2"]
    assert config.force is True
    assert isinstance(captured["prompter"], ClickPrompter)


def test_cli_uses_default_config_file_when_present(tmp_path, monkeypatch):
    (tmp_path / ".pastelup.yml").write_text("dir: /opt/pastel\n", encoding="utf-8")
    captured = {}
    install_fake_installer(monkeypatch, captured)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["install", "walletnode", "--yes"])

    assert result.exit_code == 0, result.output
    assert captured["config"].exec_dir == "/opt/pastel"
    assert captured["target"] == "walletnode"
    assert isinstance(captured["prompter"], AssumeYesPrompter)


def test_cli_rejects_unknown_config_keys(tmp_path, monkeypatch):
    config_file = tmp_path / "bad.yml"
    config_file.write_text("colour: blue\n", encoding="utf-8")
    install_fake_installer(monkeypatch, {})

    result = CliRunner().invoke(cli_module.main, ["--config", str(config_file), "install", "node"])

    assert result.exit_code != 0
    assert "Unknown configuration keys" in result.output


def test_cli_install_failure_exits_with_code_one(monkeypatch):
    install_fake_installer(monkeypatch, {}, error=PastelupError("download failed"))

    result = CliRunner().invoke(cli_module.main, ["install", "rq-service"])

    assert result.exit_code == 1


def test_cli_start_masternode_builds_params(monkeypatch):
    install_fake_starter(monkeypatch)

    result = CliRunner().invoke(
        cli_module.main,
        ["start", "masternode", "--name", "mn1", "--ip", "203.0.113.9", "--reindex", "--rpc-port", "14444"],
    )

    assert result.exit_code == 0, result.output
    starter = FakeStarter.instances[0]
    name, params = starter.calls[0]
    assert name == "start_masternode"
    assert params.name == "mn1"
    assert params.external_ip == "203.0.113.9"
    assert params.rpc_port == 14444
    assert starter.config.reindex is True


def test_cli_start_supernode_coldhot_runs_orchestrator(monkeypatch):
    install_fake_starter(monkeypatch)
    captured = {}

    class FakeColdHotRunner:
        def __init__(self, config, params, **kwargs):
            captured["config"] = config
            captured["params"] = params
            captured.update(kwargs)

        def run(self):
            captured["ran"] = True

    monkeypatch.setattr(cli_module, "ColdHotRunner", FakeColdHotRunner)

    result = CliRunner().invoke(
        cli_module.main,
        [
            "start",
            "supernode",
            "--coldhot",
            "--name",
            "mn1",
            "--create",
            "--activate",
            "--txid",
            "abcd1234",
            "--ind",
            "0",
            "--passphrase",
            "hunter2",
            "--ssh-ip",
            "203.0.113.9",
            "--ssh-user",
            "pastel",
            "--ssh-key",
            "~/.ssh/id_ed25519",
            "--remote-dir",
            "/home/pastel/pastelup",
        ],
    )

    assert result.exit_code == 0, result.output
    assert captured["ran"] is True
    params = captured["params"]
    assert (params.txid, params.index, params.passphrase) == ("abcd1234", "0", "hunter2")
    assert params.create and params.activate
    config = captured["config"]
    assert config.remote_host == "203.0.113.9"
    assert config.remote_key_path == "~/.ssh/id_ed25519"
    assert config.remote_utility_dir == "/home/pastel/pastelup"
    assert FakeStarter.instances[0].calls == []


def test_cli_start_supernode_remote_delegates(monkeypatch):
    install_fake_starter(monkeypatch)

    result = CliRunner().invoke(
        cli_module.main,
        ["start", "supernode", "--remote", "--name", "mn1", "--ssh-ip", "203.0.113.9", "--remote-home-dir", "/home/pastel"],
    )

    assert result.exit_code == 0, result.output
    starter = FakeStarter.instances[0]
    assert starter.calls[0][:2] == ("start_remote", "supernode")
    assert starter.config.remote_exec_dir == "/home/pastel/pastel"
    assert starter.config.remote_working_dir == "/home/pastel/.pastel"


def test_cli_service_commands_map_to_tools(monkeypatch):
    install_fake_starter(monkeypatch)
    runner = CliRunner()

    start_result = runner.invoke(cli_module.main, ["start", "dd-service"])
    stop_result = runner.invoke(cli_module.main, ["stop", "supernode-service"])
    node_result = runner.invoke(cli_module.main, ["stop", "node"])

    assert start_result.exit_code == 0, start_result.output
    assert stop_result.exit_code == 0, stop_result.output
    assert node_result.exit_code == 0, node_result.output
    assert FakeStarter.instances[0].calls == [("start_service", ToolType.DD_SERVICE)]
    assert FakeStarter.instances[1].calls == [("stop_service", ToolType.SUPER_NODE)]
    assert FakeStarter.instances[2].calls == [("stop_node",)]
