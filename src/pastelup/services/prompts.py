"""Yes/no and free-text decision points surfaced to the operator."""

from typing import Protocol

import click


class Prompter(Protocol):
    def confirm(self, message: str) -> bool:
        ...

    def ask(self, message: str) -> str:
        ...


class ClickPrompter:
    def confirm(self, message: str) -> bool:
        return click.confirm(message, default=False)

    def ask(self, message: str) -> str:
        return click.prompt(message, default="", show_default=False).strip()


class AssumeYesPrompter:
    """Non-interactive mode: every confirmation is accepted, questions get no answer."""

    def confirm(self, message: str) -> bool:
        return True

    def ask(self, message: str) -> str:
        return ""
