"""Top-level provisioning workflow and its single failure handler."""

from __future__ import annotations

import contextlib
import os
from pathlib import Path
from typing import Iterator

import ubelt as ub
from loguru import logger

from .config import SetupConfig
from .confirm import ConfirmationPolicy
from .deps import DependencyInstaller, raise_for_outcome
from .detect import detect_system
from .errors import FailureSignature, SetupError
from .host import preflight
from .remote import RemoteSetupDispatcher
from .results import SetupReport
from .runlog import RunLog, remediation_lines
from .security import SecurityPosture, resolve_posture
from .util import CmdError
from .vm import VmProvisioner

log = logger

BANNER_WIDTH = 50


def banner(title: str) -> str:
    inner = BANNER_WIDTH - 2
    return '\n'.join(
        [
            '╔' + '═' * inner + '╗',
            '║' + title.center(inner) + '║',
            '╚' + '═' * inner + '╝',
        ]
    )


@contextlib.contextmanager
def staging_directory(root: str | Path) -> Iterator[Path]:
    """Per-process scratch directory, removed on every exit path."""
    path = ub.Path(root).expand() / f'labvm-setup-{os.getpid()}'
    path.ensuredir()
    try:
        yield Path(path)
    finally:
        path.delete()
        log.debug('Removed staging directory {}', path)


def run_setup(
    cfg: SetupConfig,
    *,
    policy: ConfirmationPolicy,
    report: SetupReport | None = None,
) -> SetupReport:
    report = SetupReport() if report is None else report
    report.posture = SecurityPosture.UNRESOLVED.value
    with staging_directory(cfg.paths.staging_root) as stage:
        preflight(cfg)

        log.info('Detecting system configuration')
        system = detect_system()
        report.os, report.distro = system.os, system.distro
        if system.os == 'unknown':
            raise SetupError(
                'Unsupported operating system', FailureSignature.PRECONDITION
            )

        posture = resolve_posture(system, policy=policy)
        report.posture = posture.value

        log.info('Installing dependencies')
        installer = DependencyInstaller(
            cfg, system, posture=posture, policy=policy, staging_dir=stage
        )
        outcome = raise_for_outcome(installer.ensure_multipass())
        report.dependency = outcome.status.value

        log.info('Setting up virtual machines')
        provisioner = VmProvisioner(cfg)
        try:
            provisioner.provision_all()
        finally:
            report.vms = [rec.as_dict() for rec in provisioner.records]
        selection = provisioner.image_selection()
        report.image = selection.image or ''
        report.image_tier = selection.tier.value

        dispatcher = RemoteSetupDispatcher(cfg)
        for target in cfg.targets:
            if target.setup_script_url:
                result = dispatcher.apply(target.name, target.setup_script_url)
                report.remote[target.name] = result.value
    return report


def handle_failure(
    ex: BaseException, run_log: RunLog, *, printer=print
) -> FailureSignature:
    """Report a failed run once: banner, log location, remediation."""
    signature = ex.signature if isinstance(ex, SetupError) else None
    signature = run_log.classify(signature)
    log.error('Setup failed: {}', ex)
    diagnostics = getattr(ex, 'diagnostics', None)
    printer('')
    printer(banner('Setup Failed'))
    printer(f'\nCheck the log file for details: {run_log.path}')
    if diagnostics is not None:
        printer('')
        for line in diagnostics.lines():
            printer(line)
    for line in remediation_lines(signature):
        printer(line)
    return signature


def main_workflow(cfg: SetupConfig, *, policy: ConfirmationPolicy) -> int:
    run_log = RunLog.start(cfg.paths.log_dir)
    try:
        print('')
        print(banner('labvm: lab VM setup'))
        print('')
        print('This will:')
        print('  1. Install required package managers and multipass')
        print(f'  2. Create {len(cfg.targets)} Ubuntu VM(s)')
        print('  3. Test network connectivity')
        print('  4. Run remote setup scripts where configured')
        print('\nVMs to be created:')
        for name in cfg.target_names:
            print(f'  • {name}')
        print(f'\nLog file: {run_log.path}\n')
        log.info('Starting lab VM setup (confirmation policy={})', policy.value)
        try:
            report = run_setup(cfg, policy=policy)
        except (SetupError, CmdError) as ex:
            handle_failure(ex, run_log)
            return 1
        except Exception as ex:
            log.exception('Unexpected failure')
            handle_failure(ex, run_log)
            return 1
        print('')
        print(banner('Setup Complete!'))
        log.success('Lab VM setup completed successfully')
        log.debug('Setup report: {}', report.as_dict())
        print('\nYour VMs are ready:')
        for vm in report.vms:
            print(f"  • {vm['name']} (ubuntu {report.image})")
        for name, outcome in report.remote.items():
            print(f'  remote setup on {name}: {outcome}')
        print('\nNext steps:')
        print('  • Access your VMs: multipass shell <vm-name>')
        print('  • List all VMs: multipass list')
        print('  • VM info: multipass info <vm-name>')
        print(f'\nLog file saved to: {run_log.path}')
        return 0
    finally:
        run_log.detach()
