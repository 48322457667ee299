"""SSH session to the hot node."""

import os
import shlex
import socket
from typing import Optional

import paramiko

from pastelup.errors import RemoteConnectionError, RemoteExecError
from pastelup.services.polling import CancelToken


class RemoteSession:
    """One authenticated SSH transport to one host.

    Not safe for concurrent use: commands are issued one at a time by a single
    caller, and whoever opens the session must close it.
    """

    def __init__(self, client, host: str, port: int, user: str, logger=None):
        self._client = client
        self.host = host
        self.port = port
        self.user = user
        self.logger = logger
        self._closed = False

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        user: str,
        password: Optional[str] = None,
        key_path: Optional[str] = None,
        logger=None,
        timeout: float = 30.0,
        client_factory=paramiko.SSHClient,
    ) -> "RemoteSession":
        if bool(password) == bool(key_path):
            raise RemoteConnectionError(
                "Exactly one SSH credential is required: either a password or a private key path."
            )

        client = client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        connect_kwargs = {
            "hostname": host,
            "port": int(port),
            "username": user,
            "timeout": timeout,
            "banner_timeout": 60,
            "auth_timeout": 60,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if key_path:
            connect_kwargs["key_filename"] = os.path.expanduser(key_path)
        else:
            connect_kwargs["password"] = password

        try:
            client.connect(**connect_kwargs)
        except (paramiko.SSHException, socket.error, OSError) as exc:
            try:
                client.close()
            except Exception:
                pass
            raise RemoteConnectionError(
                f"SSH connection to {user}@{host}:{port} failed: {exc or exc.__class__.__name__}"
            ) from exc

        if logger:
            logger.info("Connected to %s@%s:%s", user, host, port)
        return cls(client, host, port, user, logger=logger)

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self):
        if self._closed:
            raise RemoteExecError("SSH session is already closed.")

    def run(self, command: str, timeout: Optional[float] = None) -> str:
        """Runs ``command`` to completion and returns its combined output."""
        self._ensure_open()
        if self.logger:
            self.logger.debug("Remote executing: %s", command)

        try:
            stdin, stdout, stderr = self._client.exec_command(command, timeout=timeout)
            channel = stdout.channel
            channel.set_combine_stderr(True)
            output = stdout.read().decode("utf-8", errors="replace")
            exit_status = channel.recv_exit_status()
        except (paramiko.SSHException, socket.error, OSError, EOFError) as exc:
            raise RemoteExecError(
                f"Remote command interrupted: {command}. {exc}", command=command
            ) from exc
        finally:
            for stream in ("stdin", "stdout", "stderr"):
                handle = locals().get(stream)
                if handle is not None:
                    try:
                        handle.close()
                    except Exception:
                        pass

        if self.logger and output.strip():
            self.logger.debug("Remote output: %s", output.strip())

        if exit_status != 0:
            message = f"Remote command failed ({exit_status}): {command}"
            if output.strip():
                message = f"{message}\n{output.strip()}"
            raise RemoteExecError(message, command=command, output=output, exit_status=exit_status)

        return output

    def run_detached(self, command: str):
        """Fires a long-running command and returns once the remote shell has forked it."""
        wrapped = f"nohup {command} > /dev/null 2>&1 &"
        self.run(wrapped)

    def copy_file(self, local_path: str, remote_path: str, mode: Optional[int] = None):
        """Copies one file over SFTP; the remote directory must already exist."""
        self._ensure_open()
        if not os.path.isfile(local_path):
            raise RemoteExecError(f"Local file not found: {local_path}")

        if self.logger:
            self.logger.debug("Copying %s to %s:%s", local_path, self.host, remote_path)
        sftp = None
        try:
            sftp = self._client.open_sftp()
            sftp.put(local_path, remote_path)
            if mode is not None:
                sftp.chmod(remote_path, mode & 0o777)
        except (paramiko.SSHException, socket.error, OSError) as exc:
            raise RemoteExecError(
                f"Failed to copy {local_path} to {self.host}:{remote_path}: {exc}",
                command=f"sftp put {remote_path}",
            ) from exc
        finally:
            if sftp is not None:
                try:
                    sftp.close()
                except Exception:
                    pass

    def home_dir(self) -> str:
        return self.run("echo $HOME").strip()

    def external_ip(self, url: str) -> str:
        return self.run(f"curl -s {shlex.quote(url)}").strip()

    def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            self._client.close()
        except Exception as exc:
            if self.logger:
                self.logger.debug("Ignoring error while closing SSH session: %s", exc)
        if self.logger:
            self.logger.debug("Closed SSH session to %s", self.host)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def connect_with_retries(
    host: str,
    port: int,
    user: str,
    password: Optional[str] = None,
    key_path: Optional[str] = None,
    logger=None,
    attempts: int = 1,
    backoff_seconds: float = 2.0,
    token: Optional[CancelToken] = None,
    client_factory=paramiko.SSHClient,
) -> RemoteSession:
    token = token or CancelToken()
    last_error: Optional[RemoteConnectionError] = None
    for attempt in range(1, max(1, attempts) + 1):
        token.raise_if_cancelled()
        try:
            return RemoteSession.connect(
                host, port, user, password=password, key_path=key_path, logger=logger, client_factory=client_factory
            )
        except RemoteConnectionError as exc:
            last_error = exc
            if attempt < attempts:
                if logger:
                    logger.warning("SSH attempt %s/%s failed: %s", attempt, attempts, exc)
                token.sleep(backoff_seconds)
    assert last_error is not None
    raise last_error
