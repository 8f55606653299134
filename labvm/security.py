"""AppArmor posture resolution for snap confinement.

Snaps are strictly confined only when the AppArmor kernel module is active.
Enabling it means editing the kernel command line and rebooting, so within a
single run the posture can only be kept or downgraded, never upgraded.
"""

from __future__ import annotations

import enum
import re
from pathlib import Path

from loguru import logger

from . import detect
from .confirm import ConfirmationPolicy
from .detect import SystemInfo
from .util import CmdError, command_exists, run_cmd

log = logger

APPARMOR_ENABLED_PATH = Path('/sys/module/apparmor/parameters/enabled')
KERNEL_ARGS = 'apparmor=1 security=apparmor'
SYSTEMD_BOOT_ENTRY_NAME = 'arch.conf'
GRUB_CFG_PATH = '/boot/grub/grub.cfg'

_GRUB_LINE = re.compile(
    r'''^GRUB_CMDLINE_LINUX_DEFAULT=(["'])([^"'\n]*)\1[ \t]*$''', re.MULTILINE
)
_GRUB_ASSIGNMENT = re.compile(r'^\s*GRUB_CMDLINE_LINUX_DEFAULT=', re.MULTILINE)
_OPTIONS_LINE = re.compile(r'^(options\b[^\n]*?)[ \t]*$', re.MULTILINE)


class SecurityPosture(enum.Enum):
    STRICT = 'strict'
    DEGRADED = 'degraded'
    UNRESOLVED = 'unresolved'

    @property
    def devmode(self) -> bool:
        return self is SecurityPosture.DEGRADED


def apparmor_enabled(path: Path | None = None) -> bool:
    path = APPARMOR_ENABLED_PATH if path is None else path
    try:
        return path.read_text(encoding='utf-8').strip() == 'Y'
    except OSError:
        return False


def grub_with_apparmor(text: str) -> str | None:
    """Return updated grub defaults, or None when AppArmor is already configured.

    Raises ValueError when a ``GRUB_CMDLINE_LINUX_DEFAULT`` assignment exists
    but is not a single- or double-quoted string this function can extend.
    """
    if 'apparmor=1' in text:
        return None
    if _GRUB_LINE.search(text):
        return _GRUB_LINE.sub(
            lambda m: (
                f'GRUB_CMDLINE_LINUX_DEFAULT={m.group(1)}'
                f'{(m.group(2) + " " + KERNEL_ARGS).strip()}{m.group(1)}'
            ),
            text,
            count=1,
        )
    if _GRUB_ASSIGNMENT.search(text):
        raise ValueError('Unrecognized GRUB_CMDLINE_LINUX_DEFAULT assignment')
    sep = '' if not text or text.endswith('\n') else '\n'
    return f'{text}{sep}GRUB_CMDLINE_LINUX_DEFAULT="{KERNEL_ARGS}"\n'


def systemd_boot_with_apparmor(text: str) -> str | None:
    if 'apparmor=1' in text:
        return None
    if not _OPTIONS_LINE.search(text):
        return None
    return _OPTIONS_LINE.sub(lambda m: f'{m.group(1)} {KERNEL_ARGS}', text, count=1)


def _read_root_file(path: Path) -> str:
    try:
        return path.read_text(encoding='utf-8')
    except PermissionError:
        return run_cmd(['cat', str(path)], sudo=True, check=True).stdout


def _write_root_file(path: Path, text: str) -> None:
    run_cmd(['tee', str(path)], sudo=True, check=True, input_text=text)


def _manual_kernel_args_notice() -> None:
    log.warning(
        "Please add '{}' to your kernel command line manually", KERNEL_ARGS
    )
    log.info('Common locations:')
    log.info('  - GRUB: /etc/default/grub')
    log.info('  - systemd-boot: /boot/loader/entries/*.conf')


def configure_bootloader(bootloader: str) -> bool:
    """Add AppArmor kernel args for ``bootloader``; False means manual action is needed."""
    log.info('Detected bootloader: {}', bootloader)
    if bootloader == 'grub':
        path = detect.GRUB_DEFAULT_PATH
        try:
            updated = grub_with_apparmor(_read_root_file(path))
        except ValueError as ex:
            log.warning('Cannot edit {} automatically: {}', path, ex)
            _manual_kernel_args_notice()
            return False
        if updated is None:
            log.info('AppArmor already configured in GRUB')
            return True
        _write_root_file(path, updated)
        run_cmd(['grub-mkconfig', '-o', GRUB_CFG_PATH], sudo=True, check=True)
        log.success('AppArmor configured in GRUB')
        return True
    if bootloader == 'systemd-boot':
        entry = detect.SYSTEMD_BOOT_ENTRIES_DIR / SYSTEMD_BOOT_ENTRY_NAME
        if not entry.exists():
            log.warning('Could not find systemd-boot entry file {}', entry)
            _manual_kernel_args_notice()
            return False
        text = _read_root_file(entry)
        if 'apparmor=1' in text:
            log.info('AppArmor already configured in systemd-boot')
            return True
        updated = systemd_boot_with_apparmor(text)
        if updated is None:
            log.warning('No options line found in {}', entry)
            _manual_kernel_args_notice()
            return False
        _write_root_file(entry, updated)
        log.success('AppArmor configured in systemd-boot')
        return True
    log.warning('Unsupported bootloader for automatic setup: {}', bootloader)
    _manual_kernel_args_notice()
    return False


def enable_apparmor() -> bool:
    """Schedule AppArmor for the next boot. Returns False if manual steps remain."""
    log.info('Setting up AppArmor for better snap security...')
    if not command_exists('aa-status'):
        log.info('Installing AppArmor package...')
        run_cmd(
            ['pacman', '-S', '--noconfirm', 'apparmor'],
            sudo=True,
            check=True,
            capture=False,
        )
    configured = configure_bootloader(detect.detect_bootloader())
    run_cmd(['systemctl', 'enable', 'apparmor'], sudo=True, check=True)
    log.warning('AppArmor requires a reboot to take effect')
    return configured


def resolve_posture(
    system: SystemInfo, *, policy: ConfirmationPolicy
) -> SecurityPosture:
    if system.family != 'arch':
        log.debug('AppArmor check not applicable for family={}', system.family)
        return SecurityPosture.STRICT
    log.info('Checking AppArmor configuration')
    if apparmor_enabled():
        log.success('AppArmor is enabled and working')
        return SecurityPosture.STRICT

    log.warning('AppArmor is not enabled')
    log.info('Without AppArmor, snaps run in devmode with reduced security')
    if not policy.confirm(
        'Install and configure AppArmor (requires reboot)?', default=True
    ):
        log.warning('Continuing without AppArmor - will use devmode')
        return SecurityPosture.DEGRADED
    try:
        if enable_apparmor():
            log.warning(
                'REBOOT REQUIRED: AppArmor is configured for the next boot; '
                'this run continues in devmode'
            )
        else:
            log.warning('AppArmor needs manual kernel configuration; using devmode')
    except CmdError as ex:
        log.warning('AppArmor setup failed, continuing with devmode: {}', ex)
    return SecurityPosture.DEGRADED
