"""Subprocess execution service for pastelup."""

import os
import subprocess
import time
from typing import Iterable, List, Optional

from pastelup.errors import ExecError, ExecutableNotFoundError, PastelupError


class CommandRunner:
    """Runs external commands with consistent error handling.

    Captured output merges stderr into stdout so callers always have the full
    diagnostic text in ``result.stdout``.
    """

    def __init__(
        self,
        logger,
        default_timeout: Optional[float] = None,
        user_password: Optional[str] = None,
        subprocess_module=subprocess,
    ):
        self.logger = logger
        self.default_timeout = default_timeout
        self.user_password = user_password
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = True,
        timeout: Optional[float] = None,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        retry_on_returncodes: Optional[Iterable[int]] = None,
        input_text: Optional[str] = None,
        display_cmd: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = display_cmd or " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        max_attempts = max(1, retry_count + 1)
        retry_codes = set(retry_on_returncodes or [])

        for attempt in range(1, max_attempts + 1):
            try:
                result = self.subprocess.run(
                    cmd,
                    text=True,
                    input=input_text,
                    stdout=self.subprocess.PIPE if capture_output else None,
                    stderr=self.subprocess.STDOUT if capture_output else None,
                    timeout=effective_timeout,
                )
            except FileNotFoundError as exc:
                raise ExecutableNotFoundError(
                    f"Required command not found: {cmd[0]}. Please install it and try again."
                ) from exc
            except subprocess.TimeoutExpired as exc:
                if attempt < max_attempts:
                    self.logger.warning(
                        "Command timed out on attempt %s/%s. Retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        retry_backoff_seconds,
                        cmd_str,
                    )
                    time.sleep(retry_backoff_seconds)
                    continue
                raise ExecError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
            except OSError as exc:
                raise ExecError(f"Failed to execute command: {cmd_str}. {exc}") from exc

            output = (result.stdout or "") if capture_output else ""
            if output:
                self.logger.debug("Command output: %s", output.strip())

            if result.returncode == 0:
                return result

            message = f"Command failed ({result.returncode}): {cmd_str}"
            if output.strip():
                message = f"{message}\n{output.strip()}"

            can_retry = attempt < max_attempts and (
                not retry_codes or result.returncode in retry_codes
            )
            if can_retry:
                self.logger.warning(
                    "Command failed on attempt %s/%s and will be retried in %.1fs.\n%s",
                    attempt,
                    max_attempts,
                    retry_backoff_seconds,
                    message,
                )
                time.sleep(retry_backoff_seconds)
                continue

            if check:
                raise ExecError(message, output=output, returncode=result.returncode)

            self.logger.debug(message)
            return result

        raise PastelupError(f"Command failed after retries: {cmd_str}")

    def run_sudo(self, cmd: List[str], **kwargs) -> subprocess.CompletedProcess:
        """Runs ``cmd`` through sudo, answering the password prompt when one is stored."""
        if self.user_password:
            return self.run(
                ["sudo", "-S", *cmd],
                input_text=f"{self.user_password}\n",
                display_cmd="sudo -S " + " ".join(cmd),
                **kwargs,
            )
        return self.run(["sudo", *cmd], **kwargs)

    def run_interactive(self, cmd: List[str]) -> int:
        """Attaches the caller's terminal, for commands that prompt on their own."""
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing interactively: %s", cmd_str)
        try:
            result = self.subprocess.run(cmd)
        except FileNotFoundError as exc:
            raise ExecutableNotFoundError(f"Required command not found: {cmd[0]}.") from exc
        if result.returncode != 0:
            raise ExecError(f"Command failed ({result.returncode}): {cmd_str}", returncode=result.returncode)
        return result.returncode

    def spawn_detached(self, cmd: List[str], cwd: Optional[str] = None):
        """Starts a long-running process without waiting on it."""
        cmd_str = " ".join(cmd)
        self.logger.debug("Spawning: %s", cmd_str)
        try:
            return self.subprocess.Popen(
                cmd,
                cwd=cwd,
                stdin=self.subprocess.DEVNULL,
                stdout=self.subprocess.DEVNULL,
                stderr=self.subprocess.DEVNULL,
                start_new_session=os.name != "nt",
            )
        except FileNotFoundError as exc:
            raise ExecutableNotFoundError(f"Required command not found: {cmd[0]}.") from exc
        except OSError as exc:
            raise ExecError(f"Failed to launch: {cmd_str}. {exc}") from exc

    def is_process_running(self, name: str) -> bool:
        try:
            result = self.run(["pgrep", "-f", name], check=False)
        except PastelupError as exc:
            self.logger.debug("Could not query process list for %s: %s", name, exc)
            return False
        return result.returncode == 0 and bool((result.stdout or "").strip())
