"""WAN address discovery."""

import ipaddress

import requests

from pastelup.constants import EXTERNAL_IP_URL
from pastelup.errors import ExternalIPError, RemoteExecError


def _validated(raw: str, source: str) -> str:
    candidate = (raw or "").strip()
    try:
        ipaddress.ip_address(candidate)
    except ValueError as exc:
        raise ExternalIPError(f"{source} returned an invalid address: {candidate!r}") from exc
    return candidate


def get_external_ip(url: str = EXTERNAL_IP_URL, timeout: float = 15.0, requests_module=requests) -> str:
    try:
        response = requests_module.get(url, timeout=timeout)
        response.raise_for_status()
    except requests_module.RequestException as exc:
        raise ExternalIPError(f"Could not determine external IP address from {url}: {exc}") from exc
    return _validated(response.text, url)


def get_remote_external_ip(session, url: str = EXTERNAL_IP_URL) -> str:
    try:
        raw = session.external_ip(url)
    except RemoteExecError as exc:
        raise ExternalIPError(f"Could not determine external IP address of {session.host}: {exc}") from exc
    return _validated(raw, session.host)
