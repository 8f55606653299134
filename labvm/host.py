"""Host preflight checks and host diagnostics."""

from __future__ import annotations

import os
import platform
import shutil
from pathlib import Path

from loguru import logger

from .config import SetupConfig
from .errors import PreconditionError
from .util import cmd_succeeds, is_root, run_cmd, which

log = logger

OPTIONAL_CMDS = ['multipass', 'snap', 'systemctl']


def check_commands(required: list[str] | tuple[str, ...]) -> tuple[list[str], list[str]]:
    missing = [c for c in required if which(c) is None]
    missing_opt = [c for c in OPTIONAL_CMDS if which(c) is None]
    return missing, missing_opt


def has_internet(url: str) -> bool:
    return cmd_succeeds(['curl', '-s', '--connect-timeout', '5', url])


def preflight(cfg: SetupConfig) -> None:
    log.info('Performing preflight checks')
    if is_root():
        raise PreconditionError('This tool should not be run as root')
    missing, _ = check_commands(cfg.required_cmds)
    if missing:
        raise PreconditionError(
            f'Missing required commands: {" ".join(missing)}'
        )
    if not has_internet(cfg.connectivity_url):
        raise PreconditionError('No internet connectivity detected')
    log.success('Preflight checks passed')


def kvm_available() -> bool:
    return Path('/dev/kvm').exists()


def hardware_virtualization() -> bool | None:
    try:
        text = Path('/proc/cpuinfo').read_text(encoding='utf-8', errors='ignore')
    except OSError:
        return None
    for line in text.splitlines():
        low = line.strip().lower()
        if low.startswith('flags') or low.startswith('features'):
            flags = low.split()
            if 'vmx' in flags or 'svm' in flags:
                return True
    return False


def mem_total_mb() -> int | None:
    try:
        text = Path('/proc/meminfo').read_text(encoding='utf-8', errors='ignore')
    except OSError:
        return None
    for line in text.splitlines():
        if line.startswith('MemTotal:'):
            parts = line.split()
            if len(parts) >= 2 and parts[1].isdigit():
                return int(parts[1]) // 1024
    return None


def free_disk_gb(path: Path) -> float | None:
    try:
        usage = shutil.disk_usage(str(path))
    except OSError:
        return None
    return usage.free / (1024**3)


def host_diagnostics() -> dict[str, str]:
    """Best-effort host facts for the doctor and repair reports."""
    version = run_cmd(['multipass', 'version'], check=False, capture=True)
    hwvirt = hardware_virtualization()
    mem = mem_total_mb()
    disk = free_disk_gb(Path(os.path.expanduser('~')))
    return {
        'system': f'{platform.system()} {platform.release()} {platform.machine()}',
        'multipass': version.stdout.strip().splitlines()[0]
        if version.ok and version.stdout.strip()
        else 'Not available',
        'hardware_virtualization': {
            True: 'Supported',
            False: 'Not detected',
            None: 'Unknown',
        }[hwvirt],
        'kvm_device': 'Available' if kvm_available() else 'Not available',
        'memory_total': f'{mem} MiB' if mem is not None else 'Unknown',
        'home_free_disk': f'{disk:.1f} GiB' if disk is not None else 'Unknown',
    }
