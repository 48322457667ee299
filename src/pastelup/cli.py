import contextlib
import functools
import getpass
import logging
import os
import signal

import click
from rich.logging import RichHandler

from . import __version__
from .coldhot import ColdHotRunner
from .constants import DEFAULT_RELEASE, DOWNLOAD_BASE_URL, NETWORK_MAINNET, NETWORKS, OS_LINUX
from .core import NodeStarter, run_guarded
from .errors import PastelupError
from .installer import Installer
from .models import DeploymentConfig, MasternodeParams, ToolType
from .paths import default_exec_dir, default_params_dir, default_working_dir, get_os, to_posix
from .services.config_loader import DEFAULT_CONFIG_NAME, ConfigLoader
from .services.polling import CancelToken
from .services.prompts import AssumeYesPrompter, ClickPrompter
from .services.remote import connect_with_retries

SSH_CONNECT_ATTEMPTS = 3

SERVICE_COMMANDS = {
    "rq-service": ToolType.RQ_SERVICE,
    "dd-service": ToolType.DD_SERVICE,
    "walletnode-service": ToolType.WALLET_NODE,
    "supernode-service": ToolType.SUPER_NODE,
    "hermes-service": ToolType.HERMES,
}


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _options(*decorators):
    def decorator(func):
        for option in reversed(decorators):
            func = option(func)
        return func

    return decorator


common_options = _options(
    click.option("--dir", "-d", "exec_dir", default=None, help="Location of pastel node directory."),
    click.option("--work-dir", "-w", "work_dir", default=None, help="Location of working directory."),
    click.option("--params-dir", default=None, help="Location of zk-SNARK parameters directory."),
    click.option("--network", type=click.Choice(NETWORKS), default=None, help="Network to run on."),
    click.option("--force", "-f", is_flag=True, default=None, help="Overwrite existing files and configs."),
    click.option("--user-pw", default=None, help="Password of the current sudo user."),
    click.option("--yes", "-y", "assume_yes", is_flag=True, default=None, help="Answer yes to every prompt."),
)

install_options = _options(
    click.option("--peers", "-p", default=None, help="Comma separated list of peer addresses."),
    click.option("--release", "-r", default=None, help="Release to install (e.g. beta or v1.1.3)."),
    click.option("--enable-service", is_flag=True, default=None, help="Register installed tools as system services."),
    click.option("--regenerate-rpc", is_flag=True, default=None, help="Generate new RPC credentials in pastel.conf."),
    click.option("--development-mode", "dev_mode", is_flag=True, default=None, help="Enable development options."),
)

node_options = _options(
    click.option("--ip", default=None, help="WAN address of the host."),
    click.option("--reindex", "-r", is_flag=True, default=None, help="Start with reindex."),
    click.option("--legacy", is_flag=True, default=None, help="pasteld version is < 1.1."),
)

masternode_options = _options(
    click.option("--name", default=None, help="Name of the masternode."),
    click.option("--activate", is_flag=True, default=None, help="Enable node as masternode (start-alias)."),
    click.option("--create", is_flag=True, default=None, help="Create a new masternode entry."),
    click.option("--update", is_flag=True, default=None, help="Update the existing masternode entry."),
    click.option("--txid", default=None, help="Collateral transaction id."),
    click.option("--ind", default=None, help="Collateral output index."),
    click.option("--passphrase", default=None, help="Passphrase for the Pastel ID."),
    click.option("--pkey", default=None, help="Masternode private key."),
    click.option("--pastelid", default=None, help="Existing Pastel ID."),
    click.option("--port", "node_port", type=int, default=None, help="Node port."),
    click.option("--rpc-ip", default=None, help="Supernode RPC address."),
    click.option("--rpc-port", type=int, default=None, help="Supernode RPC port."),
    click.option("--p2p-ip", default=None, help="Supernode P2P address."),
    click.option("--p2p-port", type=int, default=None, help="Supernode P2P port."),
)

ssh_options = _options(
    click.option("--ssh-ip", default=None, help="SSH address of the remote node."),
    click.option("--ssh-port", type=int, default=None, help="SSH port of the remote node."),
    click.option("--ssh-user", default=None, help="SSH user."),
    click.option("--ssh-key", type=click.Path(), default=None, help="Path to SSH private key."),
    click.option("--remote-dir", default=None, help="Directory holding pastelup on the remote host."),
    click.option("--remote-work-dir", default=None, help="Working directory on the remote host."),
    click.option("--remote-home-dir", default=None, help="Home directory on the remote host."),
)


def _split_peers(value):
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(peer).strip() for peer in value if str(peer).strip()]
    return [peer.strip() for peer in str(value).split(",") if peer.strip()]


def build_config(options, config_values) -> DeploymentConfig:
    def opt(key, config_key=None, default=None):
        return _resolve_option(options.get(key), config_values, config_key or key, default)

    os_type = get_os()
    home_dir = os.path.expanduser("~")

    config = DeploymentConfig(
        os_type=os_type,
        home_dir=home_dir,
        exec_dir=opt("exec_dir", "dir", default_exec_dir(os_type, home_dir)),
        working_dir=opt("work_dir", default=default_working_dir(os_type, home_dir)),
        params_dir=opt("params_dir", default=default_params_dir(os_type, home_dir)),
        network=opt("network", default=NETWORK_MAINNET),
        peers=_split_peers(opt("peers")),
        force=bool(opt("force", default=False)),
        reindex=bool(opt("reindex", default=False)),
        legacy=bool(opt("legacy", default=False)),
        regenerate_rpc=bool(opt("regenerate_rpc", default=False)),
        enable_service=bool(opt("enable_service", default=False)),
        dev_mode=bool(opt("dev_mode", default=False)),
        user_password=opt("user_pw"),
        release=str(opt("release", default=DEFAULT_RELEASE)),
        download_base_url=opt("download_base_url", default=DOWNLOAD_BASE_URL),
        remote_host=opt("ssh_ip", default=""),
        remote_port=int(opt("ssh_port", default=22)),
        remote_user=opt("ssh_user", default=getpass.getuser()),
        remote_key_path=opt("ssh_key"),
        remote_utility_dir=opt("remote_dir", default=""),
        remote_working_dir=opt("remote_work_dir", default=""),
    )

    remote_home = opt("remote_home_dir")
    if remote_home:
        config.remote_exec_dir = to_posix(default_exec_dir(OS_LINUX, remote_home))
        config.remote_working_dir = config.remote_working_dir or to_posix(default_working_dir(OS_LINUX, remote_home))
    return config


def build_params(options, config_values) -> MasternodeParams:
    def opt(key, config_key=None, default=None):
        return _resolve_option(options.get(key), config_values, config_key or key, default)

    return MasternodeParams(
        name=opt("name", default=""),
        external_ip=opt("ip", default=""),
        create=bool(opt("create", default=False)),
        update=bool(opt("update", default=False)),
        activate=bool(opt("activate", default=False)),
        txid=opt("txid", default=""),
        index=str(opt("ind", default="")),
        passphrase=opt("passphrase", default=""),
        private_key=opt("pkey", default=""),
        pastel_id=opt("pastelid", default=""),
        rpc_ip=opt("rpc_ip", default=""),
        rpc_port=int(opt("rpc_port", default=0)),
        p2p_ip=opt("p2p_ip", default=""),
        p2p_port=int(opt("p2p_port", default=0)),
        node_port=int(opt("node_port", default=0)),
    )


def _prompter(options):
    return AssumeYesPrompter() if options.get("assume_yes") else ClickPrompter()


def make_session_factory(logger, token=None):
    def factory(config: DeploymentConfig):
        password = config.remote_password
        if not config.remote_key_path and not password:
            password = click.prompt(
                f"Enter SSH password for {config.remote_user}@{config.remote_host}",
                hide_input=True,
            )
            config.remote_password = password
        return connect_with_retries(
            config.remote_host,
            config.remote_port,
            config.remote_user,
            password=None if config.remote_key_path else password,
            key_path=config.remote_key_path,
            logger=logger,
            attempts=SSH_CONNECT_ATTEMPTS,
            token=token,
        )

    return factory


@contextlib.contextmanager
def cancel_on_interrupt(token: CancelToken, ask: bool):
    """Routes Ctrl-C to the cancellation token for the duration of a command."""

    def handler(signum, frame):
        if ask and not click.confirm("Interrupt signal received, do you want to cancel this process?"):
            return
        logging.getLogger("pastelup").info("Gracefully shutting down...")
        token.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_NAME} if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.version_option(__version__, prog_name="pastelup")
@click.pass_context
def main(ctx, config, verbose, log_file):
    """Install and manage Pastel nodes, walletnodes and supernodes."""
    logger = logging.getLogger("pastelup")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except PastelupError as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    ctx.obj = {"config": config_values}


# install


@main.group()
def install():
    """Install node, walletnode, supernode or one of their services."""


def _run_install(ctx, target, options):
    config_values = ctx.obj["config"]
    logger = logging.getLogger("pastelup")
    token = CancelToken()
    try:
        installer = Installer(
            build_config(options, config_values),
            prompter=_prompter(options),
            token=token,
            session_factory=make_session_factory(logger, token),
        )
    except PastelupError as exc:
        raise click.ClickException(str(exc)) from exc

    with cancel_on_interrupt(token, ask=False):
        code = run_guarded(lambda: installer.install(target))
    raise SystemExit(code)


def _add_install_command(target, help_text):
    @install.command(target, help=help_text)
    @common_options
    @install_options
    @click.pass_context
    def command(ctx, **options):
        _run_install(ctx, target, options)

    return command


for _target, _help in (
    ("node", "Install node."),
    ("walletnode", "Install walletnode with pasteld and rq-service."),
    ("supernode", "Install supernode with pasteld, rq-service and dd-service."),
    ("rq-service", "Install RaptorQ service only."),
    ("dd-service", "Install dupe detection service only."),
    ("hermes-service", "Install hermes service only."),
):
    _add_install_command(_target, _help)


@install.command("remote")
@common_options
@install_options
@ssh_options
@click.pass_context
def install_remote(ctx, **options):
    """Install supernode on a remote host over SSH."""
    _run_install(ctx, "remote", options)


# start


@main.group()
def start():
    """Start node, masternode, walletnode, supernode or one of their services."""


def _starter(ctx, options, token):
    config_values = ctx.obj["config"]
    logger = logging.getLogger("pastelup")
    try:
        config = build_config(options, config_values)
        return NodeStarter(
            config,
            prompter=_prompter(options),
            token=token,
            session_factory=make_session_factory(logger, token),
        )
    except PastelupError as exc:
        raise click.ClickException(str(exc)) from exc


def _run_start(ctx, options, action):
    token = CancelToken()
    starter = _starter(ctx, options, token)
    params = build_params(options, ctx.obj["config"])
    with cancel_on_interrupt(token, ask=True):
        code = run_guarded(lambda: action(starter, params))
    raise SystemExit(code)


def _start_remote(tool, starter: NodeStarter, params: MasternodeParams):
    starter.start_remote(tool, params)


def _start_node(starter: NodeStarter, params: MasternodeParams):
    starter.start_node(external_ip=params.external_ip)


def _start_walletnode(starter: NodeStarter, params: MasternodeParams):
    starter.start_walletnode(external_ip=params.external_ip)


def _start_supernode(starter: NodeStarter, params: MasternodeParams):
    starter.start_supernode(params)


@start.command("node")
@common_options
@node_options
@ssh_options
@click.option("--remote", is_flag=True, default=False, help="Start on the remote host.")
@click.pass_context
def start_node(ctx, remote, **options):
    """Start node."""
    if remote:
        action = functools.partial(_start_remote, "node")
    else:
        action = _start_node
    _run_start(ctx, options, action)


@start.command("masternode")
@common_options
@node_options
@masternode_options
@click.pass_context
def start_masternode(ctx, **options):
    """Start only pasteld node as masternode."""
    _run_start(ctx, options, lambda starter, params: starter.start_masternode(params))


@start.command("walletnode")
@common_options
@node_options
@ssh_options
@click.option("--development-mode", "dev_mode", is_flag=True, default=None, help="Enable swagger UI.")
@click.option("--remote", is_flag=True, default=False, help="Start on the remote host.")
@click.pass_context
def start_walletnode(ctx, remote, **options):
    """Start walletnode."""
    if remote:
        action = functools.partial(_start_remote, "walletnode")
    else:
        action = _start_walletnode
    _run_start(ctx, options, action)


def _run_coldhot(starter: NodeStarter, params: MasternodeParams):
    runner = ColdHotRunner(
        starter.config,
        params,
        local_node=starter.node,
        prompter=starter.prompter,
        logger=starter.logger,
        session_factory=starter.session_factory,
        token=starter.token,
        console=starter.console,
    )
    runner.run()


@start.command("supernode")
@common_options
@node_options
@masternode_options
@ssh_options
@click.option("--remote", is_flag=True, default=False, help="Start on the remote host.")
@click.option("--coldhot", is_flag=True, default=False, help="Run cold/hot: collateral here, masternode on --ssh-ip.")
@click.pass_context
def start_supernode(ctx, remote, coldhot, **options):
    """Start supernode."""
    if coldhot:
        action = _run_coldhot
    elif remote:
        action = functools.partial(_start_remote, "supernode")
    else:
        action = _start_supernode
    _run_start(ctx, options, action)


def _add_service_start_command(name, tool):
    @start.command(name, help=f"Start {name} only.")
    @common_options
    @click.option("--development-mode", "dev_mode", is_flag=True, default=None, help="Enable development options.")
    @click.pass_context
    def command(ctx, **options):
        _run_start(ctx, options, lambda starter, params: starter.start_service(tool))

    return command


# stop


@main.group()
def stop():
    """Stop node or one of the services."""


@stop.command("node")
@common_options
@click.pass_context
def stop_node(ctx, **options):
    """Stop node."""
    _run_start(ctx, options, lambda starter, params: starter.stop_node())


def _add_service_stop_command(name, tool):
    @stop.command(name, help=f"Stop {name}.")
    @common_options
    @click.pass_context
    def command(ctx, **options):
        _run_start(ctx, options, lambda starter, params: starter.stop_service(tool))

    return command


for _name, _tool in SERVICE_COMMANDS.items():
    _add_service_start_command(_name, _tool)
    _add_service_stop_command(_name, _tool)


if __name__ == "__main__":
    main()
