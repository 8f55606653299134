from __future__ import annotations

import sys
from pathlib import Path

import scriptconfig as scfg

from ..config import SetupConfig, default_config_path, dump_toml, save
from ._common import _BaseCommand, _load_cfg_with_path


class ConfigInitCLI(_BaseCommand):
    """Write the default configuration to the config path."""

    force = scfg.Value(
        False, isflag=True, help='Overwrite an existing config file.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = (
            Path(args.config).expanduser().resolve()
            if args.config
            else default_config_path()
        )
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        save(path, SetupConfig())
        print(f'Wrote config: {path}')
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the effective configuration."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, path = _load_cfg_with_path(args.config)
        print(f'# Source: {path or "(built-in defaults)"}')
        print(dump_toml(cfg), end='')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Inspect or create the labvm configuration file."""

    init = ConfigInitCLI
    show = ConfigShowCLI
