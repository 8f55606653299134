from __future__ import annotations

import scriptconfig as scfg

from ..detect import detect_system
from ..orchestrator import staging_directory
from ..repair import repair_multipass, repair_snapd
from ..status import render_doctor
from ._common import _BaseCommand, _load_cfg, _policy


class DoctorCLI(_BaseCommand):
    """Check host prerequisites and print host diagnostics."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        report, ok = render_doctor(cfg, detect_system())
        print(report)
        return 0 if ok else 2


class RepairSnapdCLI(_BaseCommand):
    """Recover a snapd install that never finished seeding (Arch Linux)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        with staging_directory(cfg.paths.staging_root) as stage:
            return repair_snapd(
                cfg, detect_system(), policy=_policy(args), staging_dir=stage
            )


class RepairMultipassCLI(_BaseCommand):
    """Diagnose and repair a multipass daemon that cannot create VMs."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        return repair_multipass(_load_cfg(args.config))


class RepairModalCLI(scfg.ModalCLI):
    """Recovery workflows for snapd and multipass."""

    snapd = RepairSnapdCLI
    multipass = RepairMultipassCLI
