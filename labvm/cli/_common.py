from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import SetupConfig, resolve_config
from ..confirm import ConfirmationPolicy, select_policy

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help='Path to config TOML (default: ~/.config/labvm/config.toml).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    yes = scfg.Value(
        False,
        isflag=True,
        help='Answer yes to every confirmation prompt.',
    )


def _load_cfg(config_path: str | None) -> SetupConfig:
    cfg, _ = _load_cfg_with_path(config_path)
    return cfg


def _load_cfg_with_path(config_path: str | None) -> tuple[SetupConfig, Path | None]:
    cfg, path = resolve_config(config_path)
    log.debug('Loaded config from {}', path or '(built-in defaults)')
    return cfg, path


def _policy(args) -> ConfirmationPolicy:
    policy = select_policy(yes=bool(args.yes))
    log.debug('Confirmation policy: {}', policy.value)
    return policy


__all__ = [name for name in globals() if not name.startswith('__')]
