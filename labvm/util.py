"""Shared helpers for subprocess execution, command lookup, and path expansion."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

log = logger

# Exit status a shell reports for a missing executable.
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.code == 0


class CmdError(RuntimeError):
    def __init__(self, cmd: Sequence[str] | str, result: CmdResult):
        self.cmd = cmd
        self.result = result
        super().__init__(
            f'Command failed (code={result.code}): {cmd}\n{result.stderr}'.strip()
        )


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def sudo_prefixed(cmd: Sequence[str]) -> list[str]:
    """Prefix ``cmd`` with sudo unless already root.

    Plain ``sudo`` rather than ``sudo -n``: apt, pacman and snap installs are
    expected to prompt for the operator's password on first use.
    """
    if os.geteuid() == 0:
        return list(cmd)
    return ['sudo', *cmd]


def run_cmd(
    cmd: Sequence[str],
    *,
    sudo: bool = False,
    check: bool = True,
    capture: bool = True,
    text: bool = True,
    input_text: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
    cwd: Optional[Path] = None,
) -> CmdResult:
    argv = sudo_prefixed(cmd) if sudo else list(cmd)
    log.opt(depth=1).debug('RUN: {}', shell_join(argv))
    cause: Optional[BaseException] = None
    try:
        p = subprocess.run(
            argv,
            input=input_text,
            capture_output=capture,
            text=text,
            env=env,
            cwd=None if cwd is None else str(cwd),
        )
        res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    except FileNotFoundError as ex:
        cause = ex
        res = CmdResult(COMMAND_NOT_FOUND, '', str(ex))
    if res.ok:
        log.opt(depth=1).debug('Command ok: {}', argv[0])
        return res
    if not check:
        log.opt(depth=1).debug(
            'Command exited {} (unchecked): {}', res.code, shell_join(argv)
        )
        return res
    log.opt(depth=1).error(
        'Command failed code={} cmd={} stderr={} stdout={}',
        res.code,
        shell_join(argv),
        res.stderr.strip(),
        res.stdout.strip(),
    )
    raise CmdError(argv, res) from cause


def cmd_succeeds(cmd: Sequence[str], *, sudo: bool = False) -> bool:
    """Return True when ``cmd`` exits zero; output is captured and discarded."""
    return run_cmd(cmd, sudo=sudo, check=False, capture=True).code == 0


def which(cmd: str) -> Optional[str]:
    from shutil import which as _which

    return _which(cmd)


def command_exists(cmd: str) -> bool:
    return which(cmd) is not None


def is_root() -> bool:
    return os.geteuid() == 0


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))


def head(text: str, n: int) -> str:
    return '\n'.join((text or '').splitlines()[:n])
