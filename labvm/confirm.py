"""Operator confirmation policy, selected once at startup."""

from __future__ import annotations

import enum
import os
import sys
from typing import Mapping, TextIO

from loguru import logger

log = logger


class ConfirmationPolicy(enum.Enum):
    ALWAYS_ASK = 'ask'
    AUTO_CONFIRM_DEFAULT_YES = 'yes'
    AUTO_CONFIRM_DEFAULT_NO = 'no'

    def confirm(self, prompt: str, *, default: bool = False) -> bool:
        if self is ConfirmationPolicy.AUTO_CONFIRM_DEFAULT_YES:
            log.info('Auto-confirming: {} [YES]', prompt)
            return True
        if self is ConfirmationPolicy.AUTO_CONFIRM_DEFAULT_NO:
            log.info('Auto-declining (non-interactive): {} [NO]', prompt)
            return False
        return ask_yes_no(prompt, default=default)


def ask_yes_no(prompt: str, *, default: bool = False) -> bool:
    suffix = '[Y/n]' if default else '[y/N]'
    while True:
        ans = input(f'{prompt} {suffix}: ').strip().lower()
        if not ans:
            return default
        if ans in {'y', 'yes'}:
            return True
        if ans in {'n', 'no'}:
            return False
        print('Please answer yes or no.')


def select_policy(
    *,
    yes: bool = False,
    environ: Mapping[str, str] | None = None,
    stdin: TextIO | None = None,
) -> ConfirmationPolicy:
    """Pick the policy from LABVM_CONFIRM, then ``--yes``, then stdin interactivity.

    A piped invocation (``curl ... | labvm``) has no usable stdin, so prompts
    are answered "no" unless the operator opted in.
    """
    environ = os.environ if environ is None else environ
    stdin = sys.stdin if stdin is None else stdin
    raw = str(environ.get('LABVM_CONFIRM', '')).strip().lower()
    if raw:
        try:
            return ConfirmationPolicy(raw)
        except ValueError:
            log.warning(
                'Ignoring LABVM_CONFIRM={!r}; expected ask, yes or no', raw
            )
    if yes:
        return ConfirmationPolicy.AUTO_CONFIRM_DEFAULT_YES
    try:
        interactive = stdin.isatty()
    except (AttributeError, ValueError):
        interactive = False
    if interactive:
        return ConfirmationPolicy.ALWAYS_ASK
    return ConfirmationPolicy.AUTO_CONFIRM_DEFAULT_NO
