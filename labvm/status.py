"""Status-line rendering for the doctor report."""

from __future__ import annotations

from .config import SetupConfig
from .deps import multipass_responsive
from .detect import SystemInfo
from .host import check_commands, has_internet, host_diagnostics
from .security import apparmor_enabled
from .util import is_root
from .vm import daemon_responsive


def status_line(ok: bool | None, label: str, detail: str = '') -> str:
    icon = '✅' if ok is True else ('➖' if ok is None else '❌')
    suffix = f' - {detail}' if detail else ''
    return f'{icon} {label}{suffix}'


def clip(text: str, *, max_lines: int = 60) -> str:
    lines = (text or '').strip().splitlines()
    if len(lines) <= max_lines:
        return '\n'.join(lines)
    keep: list[str] = list(lines[:max_lines])
    keep.append(f'... ({len(lines) - max_lines} more lines)')
    return '\n'.join(keep)


def render_doctor(cfg: SetupConfig, system: SystemInfo) -> tuple[str, bool]:
    """Return the doctor report and whether every required check passed."""
    lines = ['🩺 labvm doctor', '']
    ok_all = True

    root = is_root()
    lines.append(status_line(not root, 'Running as regular user'))
    ok_all &= not root

    missing, missing_opt = check_commands(cfg.required_cmds)
    lines.append(
        status_line(
            not missing,
            'Required commands',
            f'missing: {", ".join(missing)}' if missing else ', '.join(cfg.required_cmds),
        )
    )
    ok_all &= not missing
    if missing_opt:
        lines.append(
            status_line(None, 'Optional commands', f'missing: {", ".join(missing_opt)}')
        )

    net = has_internet(cfg.connectivity_url)
    lines.append(status_line(net, 'Internet connectivity', cfg.connectivity_url))
    ok_all &= net

    lines.append(
        status_line(
            system.supported,
            'Platform',
            f'os={system.os} distro={system.distro} family={system.family}',
        )
    )
    ok_all &= system.supported

    if system.family == 'arch':
        aa = apparmor_enabled()
        lines.append(
            status_line(aa or None, 'AppArmor', 'enabled' if aa else 'disabled (snaps use devmode)')
        )

    installed = multipass_responsive()
    lines.append(status_line(installed or None, 'Multipass installed'))
    if installed:
        lines.append(status_line(daemon_responsive(), 'Multipass daemon responsive'))

    lines.append('')
    lines.append('Host diagnostics:')
    for key, value in host_diagnostics().items():
        lines.append(f'  {key}: {clip(value, max_lines=1)}')
    return '\n'.join(lines), bool(ok_all)
