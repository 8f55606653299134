"""Tests for config loading, defaults, and TOML output."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from labvm.config import (
    DEFAULT_SETUP_SCRIPT_URL,
    SetupConfig,
    VMTarget,
    dump_toml,
    from_dict,
    load,
    resolve_config,
    save,
)


def test_defaults() -> None:
    cfg = SetupConfig()
    assert cfg.target_names == ['labvm-ubuntu-1', 'labvm-ubuntu-2']
    assert cfg.targets[0].setup_script_url == ''
    assert cfg.targets[1].setup_script_url == DEFAULT_SETUP_SCRIPT_URL
    assert cfg.image.primary == 'noble'
    assert cfg.image.fallback == 'jammy'
    assert cfg.timing.seed_interval_s * cfg.timing.seed_attempts == 300
    assert cfg.timing.retry_grace_s == 30
    assert 'jq' not in cfg.required_cmds


def test_from_dict_overrides_and_ignores_unknown_keys() -> None:
    cfg = from_dict(
        {
            'verbosity': 2,
            'timing': {'seed_attempts': 3, 'bogus': 1},
            'targets': [
                {'name': 'one', 'cpus': 4},
                {'name': '  '},
                'not-a-table',
            ],
        }
    )
    assert cfg.verbosity == 2
    assert cfg.timing.seed_attempts == 3
    assert cfg.timing.seed_interval_s == 5
    assert cfg.targets == (VMTarget(name='one', cpus=4),)


def test_dump_toml_is_loadable() -> None:
    cfg = SetupConfig()
    text = dump_toml(cfg)
    assert '[[targets]]' in text
    assert '[timing]' in text
    assert from_dict(tomllib.loads(text)) == cfg


def test_save_and_load(tmp_path: Path) -> None:
    path = tmp_path / 'nested' / 'config.toml'
    cfg = from_dict({'targets': [{'name': 'solo', 'memory': '4G'}]})
    save(path, cfg)
    assert load(path).targets == (VMTarget(name='solo', memory='4G'),)


def test_resolve_config_explicit_missing_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match='labvm config init'):
        resolve_config(str(tmp_path / 'missing.toml'))


def test_resolve_config_falls_back_to_defaults(
    monkeypatch, tmp_path: Path
) -> None:
    monkeypatch.setenv('HOME', str(tmp_path))
    monkeypatch.setattr(
        'labvm.config.default_config_path', lambda: tmp_path / 'none.toml'
    )
    cfg, path = resolve_config(None)
    assert path is None
    assert cfg.remote.stage_dir == str(tmp_path)
    assert cfg.paths.staging_root == str(tmp_path / '.cache')


def test_resolve_config_reads_default_path(
    monkeypatch, tmp_path: Path
) -> None:
    cfg_path = tmp_path / 'config.toml'
    save(cfg_path, from_dict({'verbosity': 0}))
    monkeypatch.setattr('labvm.config.default_config_path', lambda: cfg_path)
    cfg, path = resolve_config(None)
    assert path == cfg_path
    assert cfg.verbosity == 0
