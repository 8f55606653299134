"""Run log file and failure remediation text.

The run log is an append-only record of one invocation. It is written
through a loguru file sink and only read back after a failure whose error
carries no signature, to guess a remediation from known substrings.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from .errors import FailureSignature

log = logger

LOG_FORMAT = '[{time:YYYY-MM-DD HH:mm:ss}] {level: <8} | {message}'

_TEXT_SIGNATURES = (
    ('device not yet seeded', FailureSignature.SNAPD_SEEDING),
    ('seeding timeout', FailureSignature.SNAPD_SEEDING),
    ('multipass', FailureSignature.MULTIPASS),
)

REMEDIATION = {
    FailureSignature.SNAPD_SEEDING: (
        'Snapd Seeding Issue Detected:',
        [
            'Automated fix available:',
            '  labvm repair snapd',
            'Or manual steps:',
            '  sudo systemctl restart snapd           # Restart snap service',
            '  sudo snap wait system seed.loaded      # Wait for seeding',
            '  sudo snap install hello-world          # Test snap functionality',
        ],
    ),
    FailureSignature.MULTIPASS: (
        'Multipass Issue Detected:',
        [
            'labvm repair multipass                 # Automated checks and fixes',
            'multipass list                         # Check existing VMs',
            'sudo systemctl status multipass        # Check service status',
            'sudo snap restart multipass            # Restart multipass',
        ],
    ),
    FailureSignature.PRECONDITION: (
        'Preflight Check Failed:',
        [
            'Run as a regular user (not root)',
            'Install the missing commands listed above',
            'Check internet connectivity: curl -sI https://1.1.1.1',
        ],
    ),
    FailureSignature.GENERIC: (
        'General Debugging:',
        [
            'sudo systemctl status snapd            # Check snapd status',
            'sudo journalctl -u snapd               # View snapd logs',
            'df -h                                  # Check disk space',
        ],
    ),
}

PERSIST_HINTS = [
    '1. Reboot the system and try again',
    '2. Check system requirements (4GB RAM, 40GB disk)',
    '3. Ensure stable internet connection',
]


def default_log_path(log_dir: str | Path = '/tmp') -> Path:
    return Path(log_dir) / f'labvm-setup-{int(time.time())}.log'


def signature_from_text(text: str) -> FailureSignature:
    for needle, sig in _TEXT_SIGNATURES:
        if needle in text:
            return sig
    return FailureSignature.GENERIC


def remediation_lines(signature: FailureSignature) -> list[str]:
    title, body = REMEDIATION[signature]
    lines = ['', title, *[f'  {item}' for item in body], '', 'If issues persist:']
    lines.extend(f'  {item}' for item in PERSIST_HINTS)
    return lines


@dataclass
class RunLog:
    path: Path
    _sink_id: int | None = field(default=None, repr=False)

    @classmethod
    def start(cls, log_dir: str | Path = '/tmp') -> 'RunLog':
        path = default_log_path(log_dir)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            path = default_log_path('/tmp')
        run_log = cls(path)
        run_log.attach()
        return run_log

    def attach(self) -> None:
        if self._sink_id is None:
            self._sink_id = logger.add(
                str(self.path),
                level='DEBUG',
                format=LOG_FORMAT,
                mode='a',
                colorize=False,
            )

    def detach(self) -> None:
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None

    def read_text(self) -> str:
        try:
            return self.path.read_text(encoding='utf-8', errors='ignore')
        except OSError:
            return ''

    def classify(self, signature: FailureSignature | None) -> FailureSignature:
        if signature is not None:
            return signature
        return signature_from_text(self.read_text())
