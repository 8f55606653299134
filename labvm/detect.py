"""Host detection: operating system, distribution family, and bootloader."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

log = logger

OS_RELEASE_PATH = Path('/etc/os-release')

DEBIAN_FAMILY = {'ubuntu', 'debian', 'linuxmint', 'pop'}
ARCH_FAMILY = {'arch', 'manjaro'}

GRUB_DEFAULT_PATH = Path('/etc/default/grub')
SYSTEMD_BOOT_ENTRIES_DIR = Path('/boot/loader/entries')
REFIND_CONF_PATH = Path('/boot/refind.conf')


@dataclass(frozen=True)
class SystemInfo:
    os: str
    distro: str
    family: str

    @property
    def supported(self) -> bool:
        return self.family in {'debian', 'arch', 'macos'}


def detect_os(platform: str | None = None) -> str:
    platform = sys.platform if platform is None else platform
    if platform.startswith('linux'):
        return 'linux'
    if platform == 'darwin':
        return 'macos'
    return 'unknown'


def detect_distro() -> str:
    try:
        data = OS_RELEASE_PATH.read_text(encoding='utf-8')
    except OSError:
        return 'unknown'
    for line in data.splitlines():
        if line.startswith('ID='):
            return line.split('=', 1)[1].strip().strip('"').strip("'") or 'unknown'
    return 'unknown'


def family_for(os_name: str, distro: str) -> str:
    if os_name == 'macos':
        return 'macos'
    if os_name != 'linux':
        return 'unknown'
    if distro in DEBIAN_FAMILY:
        return 'debian'
    if distro in ARCH_FAMILY:
        return 'arch'
    return 'unknown'


def detect_system() -> SystemInfo:
    os_name = detect_os()
    distro = detect_distro() if os_name == 'linux' else os_name
    info = SystemInfo(os=os_name, distro=distro, family=family_for(os_name, distro))
    log.info('Operating system: {}', info.os)
    log.info('Distribution: {} (family={})', info.distro, info.family)
    return info


def detect_bootloader() -> str:
    if GRUB_DEFAULT_PATH.is_file():
        return 'grub'
    if SYSTEMD_BOOT_ENTRIES_DIR.is_dir():
        return 'systemd-boot'
    if REFIND_CONF_PATH.is_file():
        return 'refind'
    return 'unknown'
