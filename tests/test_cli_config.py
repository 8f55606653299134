"""Tests for `labvm config init` and `labvm config show`."""

from __future__ import annotations

from pathlib import Path

from labvm.cli import LabVMModalCLI
from labvm.config import load


def _run(argv: list[str]) -> int:
    rc = LabVMModalCLI.main(argv=argv, _noexit=True)
    return 0 if rc is None else int(rc)


def test_config_init_writes_defaults_once(tmp_path: Path, capsys) -> None:
    cfg_path = tmp_path / 'labvm' / 'config.toml'
    assert _run(['config', 'init', '--config', str(cfg_path)]) == 0
    assert cfg_path.exists()
    assert load(cfg_path).target_names == ['labvm-ubuntu-1', 'labvm-ubuntu-2']
    assert _run(['config', 'init', '--config', str(cfg_path)]) == 2
    assert 'Use --force' in capsys.readouterr().err
    assert _run(['config', 'init', '--force', '--config', str(cfg_path)]) == 0


def test_config_show_reports_source(tmp_path: Path, capsys) -> None:
    cfg_path = tmp_path / 'config.toml'
    cfg_path.write_text('verbosity = 2\n', encoding='utf-8')
    assert _run(['config', 'show', '--config', str(cfg_path)]) == 0
    out = capsys.readouterr().out
    assert f'# Source: {cfg_path.resolve()}' in out
    assert 'verbosity = 2' in out
    assert '[[targets]]' in out
