"""Fetch a setup script, push it into a VM, and run it there."""

from __future__ import annotations

import enum
from pathlib import Path

from loguru import logger

from .config import SetupConfig
from .errors import FailureSignature, SetupError
from .runtime import exec_cmd, transfer_cmd
from .util import CmdError, run_cmd

log = logger


class ApplyOutcome(enum.Enum):
    APPLIED = 'applied'
    APPLIED_WITH_WARNINGS = 'applied_with_warnings'


class RemoteSetupDispatcher:
    def __init__(self, cfg: SetupConfig):
        self.cfg = cfg

    @property
    def staging_path(self) -> Path:
        remote = self.cfg.remote
        return Path(remote.stage_dir).expanduser() / remote.script_name

    @property
    def guest_path(self) -> str:
        remote = self.cfg.remote
        return f'{remote.guest_dir.rstrip("/")}/{remote.script_name}'

    def fetch(self, script_url: str, dest: Path) -> None:
        log.info('Downloading setup script...')
        try:
            run_cmd(['curl', '-fsSL', script_url, '-o', str(dest)], check=True)
        except CmdError as ex:
            raise SetupError(
                f'Failed to download setup script from: {script_url}',
                FailureSignature.GENERIC,
            ) from ex
        log.success('Downloaded setup script')

    def transfer(self, target_name: str, src: Path) -> None:
        log.info('Transferring setup script to VM...')
        try:
            run_cmd(
                transfer_cmd(
                    str(src), target_name, self.cfg.remote.guest_dir.rstrip('/') + '/'
                ),
                check=True,
            )
        except CmdError as ex:
            raise SetupError(
                f'Failed to transfer setup script to VM: {target_name}',
                FailureSignature.MULTIPASS,
            ) from ex

    def apply(self, target_name: str, script_url: str) -> ApplyOutcome:
        log.info('Running remote setup on: {}', target_name)
        staged = self.staging_path
        try:
            self.fetch(script_url, staged)
            self.transfer(target_name, staged)
        finally:
            staged.unlink(missing_ok=True)
        log.info(
            'Executing remote setup script (this may take several minutes)...'
        )
        res = run_cmd(
            exec_cmd(target_name, 'sudo', 'bash', self.guest_path),
            check=False,
            capture=False,
        )
        if res.code == 0:
            log.success('Remote setup completed successfully on {}', target_name)
            return ApplyOutcome.APPLIED
        log.warning(
            'Remote setup on {} completed with warnings (code={})',
            target_name,
            res.code,
        )
        log.info('The VM is functional but may need manual configuration')
        return ApplyOutcome.APPLIED_WITH_WARNINGS
