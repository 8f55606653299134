"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..config import default_config_path, resolve_config
from ..orchestrator import main_workflow
from ._common import _BaseCommand, _load_cfg, _policy, log
from .config import ConfigModalCLI
from .host import DoctorCLI, RepairModalCLI


class SetupCLI(_BaseCommand):
    """Install multipass, create the lab VMs, and run their remote setup."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        return main_workflow(cfg, policy=_policy(args))


class LabVMModalCLI(scfg.ModalCLI):
    """Provision lab VMs with multipass, including host dependency setup."""

    setup = SetupCLI
    doctor = DoctorCLI
    repair = RepairModalCLI
    config = ConfigModalCLI


COMMANDS = {'setup', 'doctor', 'repair', 'config'}

_LOG_LEVELS = {1: 'INFO', 2: 'DEBUG'}


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    config_value = _option_value(argv, '--config')
    # Logging is not configured yet, so the preload must stay silent.
    if config_value or default_config_path().exists():
        try:
            verbosity = resolve_config(config_value)[0].verbosity
        except Exception:
            verbosity = 1

    explicit_verbose = _count_verbose(argv)
    _setup_logging(explicit_verbose, verbosity)

    try:
        rc = LabVMModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled labvm error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = _LOG_LEVELS.get(min(effective_verbosity, 2), 'WARNING')
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Route bare invocations and leading options to the setup command."""
    if not argv:
        return ['setup']
    first = argv[0]
    if first in COMMANDS or first in ('-h', '--help'):
        return list(argv)
    if first.startswith('-'):
        return ['setup', *argv]
    # Any other leading token runs the main workflow.
    return ['setup', *argv[1:]]


def _option_value(argv: list[str], *names: str) -> str | None:
    for name in names:
        if name in argv:
            idx = argv.index(name)
            if idx + 1 < len(argv):
                return argv[idx + 1]
    for item in argv:
        for name in names:
            if item.startswith(name + '='):
                return item.split('=', 1)[1]
    return None


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
