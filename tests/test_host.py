"""Tests for host preflight checks."""

from __future__ import annotations

import pytest

from labvm.config import SetupConfig
from labvm.errors import FailureSignature, PreconditionError
from labvm.host import check_commands, mem_total_mb, preflight


def _preflight_env(monkeypatch, *, root=False, present=('curl', 'git'), net=True):
    monkeypatch.setattr('labvm.host.is_root', lambda: root)
    monkeypatch.setattr(
        'labvm.host.which',
        lambda cmd: f'/usr/bin/{cmd}' if cmd in present else None,
    )
    monkeypatch.setattr('labvm.host.has_internet', lambda url: net)


def test_check_commands(monkeypatch) -> None:
    present = {'curl', 'snap'}
    monkeypatch.setattr(
        'labvm.host.which',
        lambda cmd: f'/usr/bin/{cmd}' if cmd in present else None,
    )
    missing, missing_opt = check_commands(['curl', 'git'])
    assert missing == ['git']
    assert 'multipass' in missing_opt
    assert 'snap' not in missing_opt


def test_preflight_passes(monkeypatch) -> None:
    _preflight_env(monkeypatch)
    preflight(SetupConfig())


@pytest.mark.parametrize(
    'env, match',
    [
        ({'root': True}, 'not be run as root'),
        ({'present': ('curl',)}, 'Missing required commands: git'),
        ({'net': False}, 'No internet connectivity'),
    ],
)
def test_preflight_failures(monkeypatch, env, match) -> None:
    _preflight_env(monkeypatch, **env)
    with pytest.raises(PreconditionError, match=match) as ex:
        preflight(SetupConfig())
    assert ex.value.signature is FailureSignature.PRECONDITION


def test_mem_total_mb(monkeypatch) -> None:
    monkeypatch.setattr(
        'labvm.host.Path.read_text',
        lambda self, encoding='utf-8', errors=None: 'MemTotal:       8048576 kB\n',
    )
    assert mem_total_mb() == 8048576 // 1024
