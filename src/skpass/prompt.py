"""
Prompt layer -- asking the operator, or refusing to hang.

Every question goes through a Prompter. The rules:

    always_yes      -> accept the proposal / take the default
    interactive     -> ask through click
    neither         -> take a safe default if there is one,
                       otherwise raise NonInteractiveInputRequiredError
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

import click

from .context import OperationContext
from .errors import NonInteractiveInputRequiredError, OperationAbortedError

logger = logging.getLogger("skpass.prompt")

ROOT_CHOICE = "<root>"

ConfirmFn = Callable[..., bool]
PromptFn = Callable[..., Any]


class Prompter:
    """Operator input with non-interactive guards.

    Args:
        confirm_fn: Yes/no question, ``click.confirm`` compatible.
        prompt_fn: Value question, ``click.prompt`` compatible.
    """

    def __init__(
        self,
        confirm_fn: Optional[ConfirmFn] = None,
        prompt_fn: Optional[PromptFn] = None,
    ):
        self._confirm = confirm_fn or click.confirm
        self._prompt = prompt_fn or click.prompt

    def _require_channel(self, ctx: OperationContext, prompt: str) -> None:
        if not ctx.interactive:
            logger.debug("No interactive channel for prompt: %s", prompt)
            raise NonInteractiveInputRequiredError(prompt)

    def confirm(self, ctx: OperationContext, prompt: str) -> bool:
        """Ask a yes/no question that has no safe default."""
        if ctx.always_yes:
            return True
        self._require_channel(ctx, prompt)
        return bool(self._confirm(prompt, default=False, err=True))

    def confirm_recipients(
        self, ctx: OperationContext, name: str, recipients: Sequence[str]
    ) -> list[str]:
        """Confirm the recipient list for a store.

        The whole list is accepted or the operation is aborted; there
        is no partial selection.

        Returns:
            The accepted recipients, unchanged.

        Raises:
            OperationAbortedError: If the operator says no.
            NonInteractiveInputRequiredError: If nobody can answer.
        """
        accepted = list(recipients)
        if ctx.always_yes:
            return accepted
        lines = "\n".join(f"  - {r}" for r in accepted)
        prompt = f"Encrypt secrets in '{name or '<root>'}' for these recipients?\n{lines}\n"
        self._require_channel(ctx, prompt)
        if not self._confirm(prompt, default=False, err=True):
            raise OperationAbortedError(f"Recipients for '{name or '<root>'}' not confirmed")
        return accepted

    def ask_bool(self, ctx: OperationContext, prompt: str, default: Optional[bool] = None) -> bool:
        if ctx.always_yes and default is not None:
            return default
        if not ctx.interactive and default is not None:
            return default
        self._require_channel(ctx, prompt)
        return bool(self._confirm(prompt, default=default, err=True))

    def ask_string(self, ctx: OperationContext, prompt: str, default: Optional[str] = None) -> str:
        if ctx.always_yes and default is not None:
            return default
        if not ctx.interactive and default is not None:
            return default
        self._require_channel(ctx, prompt)
        return str(self._prompt(prompt, default=default, type=str, err=True))

    def ask_int(self, ctx: OperationContext, prompt: str, default: Optional[int] = None) -> int:
        if ctx.always_yes and default is not None:
            return default
        if not ctx.interactive and default is not None:
            return default
        self._require_channel(ctx, prompt)
        return int(self._prompt(prompt, default=default, type=int, err=True))

    def ask_password(
        self,
        ctx: OperationContext,
        prompt: str,
        ask_fn: Optional[Callable[[OperationContext, str], str]] = None,
    ) -> str:
        """Ask for a secret value twice. Never defaulted, never auto-accepted."""
        self._require_channel(ctx, prompt)
        if ask_fn is not None:
            return ask_fn(ctx, prompt)
        return str(self._prompt(
            prompt, hide_input=True, confirmation_prompt=True, type=str, err=True,
        ))

    def ask_key_import(self, ctx: OperationContext, key_id: str, store_name: str = "") -> bool:
        """Ask whether to import a recipient key shipped with a store.

        ``always_yes`` imports. Without an interactive channel the key
        is not imported.
        """
        if ctx.always_yes:
            return True
        if not ctx.interactive:
            return False
        where = f" from '{store_name}'" if store_name else ""
        return bool(self._confirm(
            f"Import public key {key_id}{where} into your keyring?", default=True, err=True,
        ))

    def ask_store(self, ctx: OperationContext, stores: Sequence[str]) -> str:
        """Pick a mount prefix. Returns "" (the root) when nobody can choose."""
        if ctx.always_yes or not ctx.interactive or not stores:
            return ""
        choices = [ROOT_CHOICE] + [s for s in stores if s]
        picked = self._prompt(
            "Which store?", default=ROOT_CHOICE, type=click.Choice(choices), err=True,
        )
        return "" if picked == ROOT_CHOICE else str(picked)
