"""Immutable setup configuration: VM targets, image tiers, timings, and paths."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path

import ubelt as ub

from .util import expand

DEFAULT_SETUP_SCRIPT_URL = (
    'https://raw.githubusercontent.com/nucamp/defsec/refs/heads/main/kali/setup.sh'
)


@dataclass(frozen=True)
class VMTarget:
    name: str
    cpus: int = 2
    memory: str = '2G'
    disk: str = '20GB'
    setup_script_url: str = ''


def _default_targets() -> tuple[VMTarget, ...]:
    return (
        VMTarget(name='labvm-ubuntu-1'),
        VMTarget(
            name='labvm-ubuntu-2', setup_script_url=DEFAULT_SETUP_SCRIPT_URL
        ),
    )


@dataclass(frozen=True)
class ImageConfig:
    primary: str = 'noble'
    primary_version: str = '24.04'
    fallback: str = 'jammy'
    fallback_version: str = '22.04'


@dataclass(frozen=True)
class TimingConfig:
    """(interval, attempts) pairs for every bounded wait in the workflow."""

    seed_interval_s: float = 5
    seed_attempts: int = 60
    repair_seed_attempts: int = 120
    multipass_ready_interval_s: float = 5
    multipass_ready_attempts: int = 12
    daemon_interval_s: float = 5
    daemon_attempts: int = 6
    daemon_restart_grace_s: float = 10
    network_interval_s: float = 5
    network_attempts: int = 5
    retry_grace_s: float = 30


@dataclass(frozen=True)
class RemoteConfig:
    guest_dir: str = '/home/ubuntu'
    script_name: str = 'ubuntu_setup.sh'
    # snap-confined multipass can only read non-hidden paths under $HOME.
    stage_dir: str = '~'


@dataclass(frozen=True)
class PathsConfig:
    log_dir: str = '/tmp'
    staging_root: str = '~/.cache'


@dataclass(frozen=True)
class SetupConfig:
    targets: tuple[VMTarget, ...] = field(default_factory=_default_targets)
    image: ImageConfig = field(default_factory=ImageConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    required_cmds: tuple[str, ...] = ('curl', 'git')
    connectivity_url: str = 'https://1.1.1.1'
    verbosity: int = 1

    @property
    def target_names(self) -> list[str]:
        return [t.name for t in self.targets]

    def expanded_paths(self) -> 'SetupConfig':
        return replace(
            self,
            remote=replace(self.remote, stage_dir=expand(self.remote.stage_dir)),
            paths=replace(
                self.paths,
                log_dir=expand(self.paths.log_dir),
                staging_root=expand(self.paths.staging_root),
            ),
        )


_SECTIONS = {
    'image': ImageConfig,
    'timing': TimingConfig,
    'remote': RemoteConfig,
    'paths': PathsConfig,
}


def default_config_path() -> Path:
    return Path(ub.Path.appdir('labvm', type='config')) / 'config.toml'


def _known(cls, body: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in body.items() if k in names}


def from_dict(raw: dict) -> SetupConfig:
    cfg = SetupConfig()
    updates: dict = {}
    for section, cls in _SECTIONS.items():
        body = raw.get(section, None)
        if isinstance(body, dict):
            updates[section] = replace(getattr(cfg, section), **_known(cls, body))
    targets = raw.get('targets', None)
    if isinstance(targets, list):
        parsed = []
        for item in targets:
            if not isinstance(item, dict):
                continue
            name = str(item.get('name', '')).strip()
            if not name:
                continue
            parsed.append(VMTarget(**{**_known(VMTarget, item), 'name': name}))
        updates['targets'] = tuple(parsed)
    if 'required_cmds' in raw:
        updates['required_cmds'] = tuple(str(c) for c in raw['required_cmds'])
    if 'connectivity_url' in raw:
        updates['connectivity_url'] = str(raw['connectivity_url'])
    if 'verbosity' in raw:
        updates['verbosity'] = int(raw['verbosity'])
    return replace(cfg, **updates)


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def _emit_toml_kv(lines: list[str], key: str, val: object) -> None:
    if isinstance(val, bool):
        lines.append(f'{key} = {"true" if val else "false"}')
    elif isinstance(val, (int, float)):
        lines.append(f'{key} = {val}')
    elif isinstance(val, (list, tuple)):
        parts = [f'"{_toml_escape(str(item))}"' for item in val]
        lines.append(f'{key} = [{", ".join(parts)}]')
    else:
        lines.append(f'{key} = "{_toml_escape(str(val))}"')


def dump_toml(cfg: SetupConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    if cfg.verbosity != 1:
        lines.append(f'verbosity = {cfg.verbosity}')
    _emit_toml_kv(lines, 'required_cmds', cfg.required_cmds)
    _emit_toml_kv(lines, 'connectivity_url', cfg.connectivity_url)
    lines.append('')
    for section in _SECTIONS:
        lines.append(f'[{section}]')
        for k, v in d[section].items():
            _emit_toml_kv(lines, k, v)
        lines.append('')
    for target in d['targets']:
        lines.append('[[targets]]')
        for k, v in target.items():
            _emit_toml_kv(lines, k, v)
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def load(path: Path) -> SetupConfig:
    raw = tomllib.loads(path.read_text(encoding='utf-8'))
    return from_dict(raw)


def save(path: Path, cfg: SetupConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(cfg), encoding='utf-8')


def resolve_config(config_path: str | None) -> tuple[SetupConfig, Path | None]:
    """Load an explicit config, else the appdir config if present, else defaults."""
    if config_path:
        path = Path(config_path).expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(
                f'Config not found: {path}. Run: labvm config init --config {path}'
            )
        return load(path).expanded_paths(), path
    path = default_config_path()
    if path.exists():
        return load(path).expanded_paths(), path
    return SetupConfig().expanded_paths(), None
