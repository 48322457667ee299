"""Actionable error catalog for pastelup."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "executable_not_found": {
        "what": "Could not find {name} in {path}.",
        "next": "Run `pastelup install {tool}` or pass the correct `--dir`.",
    },
    "pastel_conf_not_found": {
        "what": "pastel.conf not found in {path}.",
        "next": "Run `pastelup install node` or pass the correct `--work-dir`.",
    },
    "params_missing": {
        "what": "zk-SNARK parameter files are missing: {names}.",
        "next": "Run `pastelup install node --force` to download them into {path}.",
    },
    "masternode_conf_not_found": {
        "what": "masternode.conf not found at {path}.",
        "next": "Use `--create` to register a new masternode.",
    },
    "masternode_not_in_conf": {
        "what": "Masternode '{name}' is not present in {path}.",
        "next": "Check `--name` or use `--create`/`--update`.",
    },
    "ip_mismatch": {
        "what": (
            "External IP address in masternode.conf MUST match the WAN address of the node. "
            "IP in masternode.conf - {recorded}, WAN IP passed or identified - {current}."
        ),
        "next": "Pass `--ip` with the address used for the collateral or re-register with `--update`.",
    },
    "remote_utility_dir_missing": {
        "what": "Remote pastelup directory is not set.",
        "next": "Pass `--remote-dir` pointing at the directory holding pastelup on the hot node.",
    },
    "ssh_ip_missing": {
        "what": "SSH address of the remote HOT node is required.",
        "next": "Pass `--ssh-ip`.",
    },
    "startup_timeout": {
        "what": "{name} did not answer after {seconds}s.",
        "next": "Inspect debug.log in {path} and retry.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
