"""Recovery workflows for a stuck snapd daemon or a misbehaving multipass install."""

from __future__ import annotations

import os
import time
from pathlib import Path

from loguru import logger

from .config import SetupConfig
from .confirm import ConfirmationPolicy
from .deps import DependencyInstaller, snapd_responsive
from .detect import SystemInfo
from .host import has_internet, host_diagnostics
from .poll import wait_until
from .runtime import launch_cmd, multipass_cmd
from .security import resolve_posture
from .util import cmd_succeeds, command_exists, run_cmd
from .vm import daemon_responsive, delete_and_purge, query_catalog, restart_daemon

log = logger

CLOUD_IMAGES_URL = 'https://cloud-images.ubuntu.com'


# -- snapd ----------------------------------------------------------------


def snapd_service_ok() -> bool:
    if not command_exists('snap'):
        log.error('Snapd is not installed')
        return False
    if not cmd_succeeds(['systemctl', 'is-active', '--quiet', 'snapd.socket']):
        log.warning('Snapd socket is not active')
        return False
    if not cmd_succeeds(['systemctl', 'is-enabled', '--quiet', 'snapd.socket']):
        log.warning('Snapd socket is not enabled')
        return False
    log.success('Snapd service is running')
    return True


def snapd_functional() -> bool:
    if not cmd_succeeds(['snap', 'version'], sudo=True):
        log.error('Basic snap command failed')
        return False
    if not cmd_succeeds(['snap', 'list'], sudo=True):
        log.error('Snap list command failed')
        return False
    log.info('Installing test snap (hello-world)...')
    if cmd_succeeds(['snap', 'install', 'hello-world'], sudo=True):
        log.success('Test snap installation successful')
        run_cmd(['snap', 'remove', 'hello-world'], sudo=True, check=False)
    else:
        log.warning('Test snap installation failed, but basic commands work')
    return True


def fix_snapd_service() -> None:
    log.info('Fixing snapd service configuration...')
    run_cmd(
        ['systemctl', 'stop', 'snapd.service', 'snapd.socket'],
        sudo=True,
        check=False,
    )
    run_cmd(['systemctl', 'enable', 'snapd.socket'], sudo=True, check=True)
    run_cmd(['systemctl', 'start', 'snapd.socket'], sudo=True, check=True)
    run_cmd(['ln', '-sf', '/var/lib/snapd/snap', '/snap'], sudo=True, check=False)
    run_cmd(['systemctl', 'start', 'snapd.service'], sudo=True, check=True)
    log.success('Snapd service configuration fixed')


def seeded_or_responsive() -> bool:
    if cmd_succeeds(['snap', 'wait', 'system', 'seed.loaded'], sudo=True):
        return True
    return snapd_responsive()


def wait_for_seeding_extended(cfg: SetupConfig) -> bool:
    t = cfg.timing
    log.info('Waiting for snapd to complete seeding...')
    outcome = wait_until(
        seeded_or_responsive,
        interval_s=t.seed_interval_s,
        max_attempts=t.repair_seed_attempts,
        label='snapd seeding',
        progress_every=6,
    )
    if outcome.ready:
        log.success('Snapd seeding completed')
    return outcome.ready


def repair_snapd(
    cfg: SetupConfig,
    system: SystemInfo,
    *,
    policy: ConfirmationPolicy,
    staging_dir: Path,
) -> int:
    if system.family != 'arch':
        log.error('The snapd repair workflow supports Arch-based systems only')
        return 1
    posture = resolve_posture(system, policy=policy)
    installer = DependencyInstaller(
        cfg, system, posture=posture, policy=policy, staging_dir=staging_dir
    )

    if snapd_service_ok():
        log.info('Snapd appears to be working, testing functionality...')
        if snapd_functional():
            log.success('Snapd is working correctly!')
            return 0 if installer.ensure_multipass().ok else 1

    log.warning('Snapd issues detected, attempting to fix...')
    fix_snapd_service()
    if not wait_for_seeding_extended(cfg):
        log.error('Snapd seeding did not complete in time')
        print_diagnostics(snapd_diagnostics())
        return 1
    if not snapd_functional():
        print_diagnostics(snapd_diagnostics())
        return 1
    outcome = installer.ensure_multipass()
    if not outcome.ok:
        log.error('Multipass installation failed: {}', outcome.detail)
        return 1
    log.success('Snapd recovery completed. Re-run: labvm setup')
    return 0


def snapd_diagnostics() -> dict[str, str]:
    def _out(cmd: list[str], sudo: bool = False) -> str:
        res = run_cmd(cmd, sudo=sudo, check=False, capture=True)
        return res.stdout.strip() if res.ok else 'Not available'

    return {
        'snap version': _out(['snap', 'version'], sudo=True),
        'snapd.socket': _out(['systemctl', 'is-active', 'snapd.socket']),
        'installed snaps': _out(['snap', 'list'], sudo=True),
    }


# -- multipass ------------------------------------------------------------


def images_available(cfg: SetupConfig) -> bool:
    catalog = query_catalog()
    if catalog is None:
        log.error('Cannot query available images')
        return False
    log.success('Can query available images')
    for version, note in (
        (cfg.image.primary_version, ''),
        (cfg.image.fallback_version, ' (fallback)'),
    ):
        if version in catalog:
            log.success('Ubuntu {} LTS is available{}', version, note)
        else:
            log.warning('Ubuntu {} LTS not found', version)
    return True


def probe_vm_creation(cfg: SetupConfig) -> bool:
    """Launch and remove a throwaway VM, trying the primary then fallback release."""
    name = f'labvm-test-{os.getpid()}'
    for version in (cfg.image.primary_version, cfg.image.fallback_version):
        log.info('Creating test VM {} with Ubuntu {}', name, version)
        ok = cmd_succeeds(
            launch_cmd(name, version, cpus=1, memory='1G', disk='5G')
        )
        delete_and_purge(name)
        if ok:
            log.success('Test VM created successfully with Ubuntu {}', version)
            return True
        log.warning('Test VM creation with {} failed', version)
    log.error('Test VM creation failed for every release')
    return False


def fix_common_issues() -> None:
    log.info('Attempting to fix common issues...')
    mp_dir = Path('~/.multipass').expanduser()
    if mp_dir.is_dir():
        user = os.environ.get('USER', '')
        if user:
            run_cmd(
                ['chown', '-R', f'{user}:{user}', str(mp_dir)],
                sudo=True,
                check=False,
            )
    log.info('Clearing any stuck operations...')
    run_cmd(multipass_cmd('delete', '--all', '--purge'), check=False)
    if command_exists('systemctl'):
        log.info('Restarting network services...')
        for unit in ('systemd-networkd', 'systemd-resolved'):
            run_cmd(['systemctl', 'restart', unit], sudo=True, check=False)
    log.success('Common fixes applied')


def restart_multipass(cfg: SetupConfig) -> bool:
    log.info('Restarting multipass services...')
    restart_daemon()
    time.sleep(cfg.timing.daemon_restart_grace_s)
    if daemon_responsive():
        log.success('Multipass restarted successfully')
        return True
    log.error('Multipass restart failed')
    return False


def repair_multipass(cfg: SetupConfig) -> int:
    if not has_internet(cfg.connectivity_url):
        log.error('Network connectivity issues detected')
        return 1
    if not has_internet(CLOUD_IMAGES_URL):
        log.warning('Ubuntu cloud images server unreachable; image downloads may fail')
    if not command_exists('multipass'):
        log.error('Multipass is not installed; run: labvm setup')
        return 1
    if daemon_responsive():
        log.info('Multipass appears to be working, testing image availability...')
        if images_available(cfg) and probe_vm_creation(cfg):
            log.success('Multipass is working correctly!')
            return 0
    log.warning('Issues detected, attempting repairs...')
    fix_common_issues()
    if not restart_multipass(cfg):
        print_diagnostics()
        return 1
    log.info('Re-testing after fixes...')
    if images_available(cfg) and probe_vm_creation(cfg):
        log.success('Fixes successful! Multipass is now working.')
        return 0
    log.error('Fixes were not successful')
    print_diagnostics()
    return 1


def print_diagnostics(extra: dict[str, str] | None = None) -> None:
    facts = host_diagnostics()
    if extra:
        facts.update(extra)
    print('\nDiagnostic information:')
    for key, value in facts.items():
        lines = value.splitlines() or ['']
        print(f'  {key}: {lines[0]}')
        for line in lines[1:]:
            print(f'    {line}')
