"""Helpers for constructing multipass/snap command arguments and parsing their output."""

from __future__ import annotations

import json

from loguru import logger

log = logger

MULTIPASS = 'multipass'


def multipass_cmd(*args: str) -> list[str]:
    return [MULTIPASS, *args]


def launch_cmd(
    name: str, image: str, *, cpus: int, memory: str, disk: str
) -> list[str]:
    return multipass_cmd(
        'launch',
        '--cpus',
        str(cpus),
        '--memory',
        str(memory),
        '--disk',
        str(disk),
        '--name',
        name,
        image,
    )


def exec_cmd(name: str, *guest_cmd: str) -> list[str]:
    return multipass_cmd('exec', name, '--', *guest_cmd)


def transfer_cmd(src: str, name: str, dest: str) -> list[str]:
    return multipass_cmd('transfer', src, f'{name}:{dest}')


def snap_install_cmd(snap: str, *, devmode: bool = False) -> list[str]:
    cmd = ['snap', 'install', snap]
    if devmode:
        cmd.append('--devmode')
    return cmd


def parse_inventory(text: str) -> list[str]:
    """Names from ``multipass list --format json``; malformed output yields []."""
    try:
        data = json.loads(text or '')
    except ValueError:
        log.warning('Could not parse multipass inventory output')
        return []
    items = data.get('list', []) if isinstance(data, dict) else []
    names: list[str] = []
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict):
            name = str(item.get('name', '')).strip()
            if name:
                names.append(name)
    return names
