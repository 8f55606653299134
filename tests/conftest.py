from __future__ import annotations

import json
from dataclasses import replace

import pytest

from labvm.config import PathsConfig, SetupConfig, VMTarget
from labvm.util import CmdError, CmdResult

CATALOG_ALL = """Image                       Aliases           Version          Description
22.04                       jammy             20240912         Ubuntu 22.04 LTS
24.04                       noble,lts         20240911         Ubuntu 24.04 LTS
"""

CATALOG_FALLBACK_ONLY = """Image                       Aliases           Version          Description
22.04                       jammy             20240912         Ubuntu 22.04 LTS
"""


class FakeMultipass:
    """Records every command and answers the multipass subcommands the workflow uses."""

    def __init__(
        self,
        existing=(),
        catalog=CATALOG_ALL,
        launch_ok=True,
        network_ok=True,
        daemon_ok=True,
    ):
        self.existing = list(existing)
        self.catalog = catalog
        self.launch_ok = launch_ok
        self.network_ok = network_ok
        self.daemon_ok = daemon_ok
        self.calls: list[list[str]] = []

    def _answer(self, cmd: list[str]) -> CmdResult:
        if not cmd or cmd[0] != 'multipass':
            return CmdResult(0, '', '')
        sub = cmd[1]
        if sub == 'list' and '--format' in cmd:
            body = {'list': [{'name': n} for n in self.existing]}
            return CmdResult(0, json.dumps(body), '')
        if sub == 'list':
            return CmdResult(0 if self.daemon_ok else 1, '', '')
        if sub == 'find':
            return CmdResult(0, self.catalog, '')
        if sub == 'launch':
            if not self.launch_ok:
                return CmdResult(1, '', 'launch failed: timed out')
            name = cmd[cmd.index('--name') + 1]
            self.existing.append(name)
            return CmdResult(0, '', '')
        if sub == 'delete':
            if cmd[2] in self.existing:
                self.existing.remove(cmd[2])
            return CmdResult(0, '', '')
        if sub == 'exec':
            return CmdResult(0 if self.network_ok else 1, '', '')
        if sub == 'version':
            return CmdResult(0, 'multipass  1.14.0\n', '')
        return CmdResult(0, '', '')

    def run_cmd(self, cmd, **kwargs) -> CmdResult:
        cmd = list(cmd)
        self.calls.append(cmd)
        res = self._answer(cmd)
        if kwargs.get('check', True) and res.code != 0:
            raise CmdError(cmd, res)
        return res

    def cmd_succeeds(self, cmd, *, sudo=False) -> bool:
        return self.run_cmd(cmd, check=False).ok

    def count(self, *prefix: str) -> int:
        return sum(1 for c in self.calls if c[: len(prefix)] == list(prefix))

    def index(self, *prefix: str) -> int:
        for idx, c in enumerate(self.calls):
            if c[: len(prefix)] == list(prefix):
                return idx
        raise ValueError(prefix)


@pytest.fixture
def fast_timing(monkeypatch):
    """Disable every real sleep in the polling and retry paths."""
    sleeps: list[float] = []
    monkeypatch.setattr('labvm.poll.time.sleep', sleeps.append)
    monkeypatch.setattr('labvm.deps.time.sleep', sleeps.append)
    monkeypatch.setattr('labvm.vm.lifecycle.time.sleep', sleeps.append)
    return sleeps


@pytest.fixture
def fake_multipass(monkeypatch):
    def _install(**kwargs) -> FakeMultipass:
        fake = FakeMultipass(**kwargs)
        monkeypatch.setattr('labvm.vm.lifecycle.run_cmd', fake.run_cmd)
        monkeypatch.setattr('labvm.vm.lifecycle.cmd_succeeds', fake.cmd_succeeds)
        monkeypatch.setattr(
            'labvm.vm.lifecycle.command_exists', lambda c: c == 'systemctl'
        )
        return fake

    return _install


@pytest.fixture
def small_cfg(tmp_path) -> SetupConfig:
    cfg = SetupConfig(
        targets=(VMTarget(name='lab-a'), VMTarget(name='lab-b')),
        paths=PathsConfig(
            log_dir=str(tmp_path / 'logs'), staging_root=str(tmp_path / 'stage')
        ),
    )
    timing = replace(
        cfg.timing,
        seed_attempts=3,
        repair_seed_attempts=4,
        multipass_ready_attempts=2,
        daemon_attempts=2,
        network_attempts=2,
    )
    return replace(cfg, timing=timing)
