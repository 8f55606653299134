"""Host dependency installation: package-manager bootstrap, snapd seeding, multipass."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from loguru import logger

from .config import SetupConfig
from .confirm import ConfirmationPolicy
from .detect import SystemInfo
from .errors import FailureSignature, SetupError
from .poll import wait_until
from .runtime import snap_install_cmd
from .security import SecurityPosture
from .util import CmdError, CmdResult, cmd_succeeds, command_exists, run_cmd

log = logger

HOMEBREW_INSTALL_URL = (
    'https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh'
)
SNAPD_AUR_URL = 'https://aur.archlinux.org/snapd.git'
SNAPD_RECOVERY_HINT = 'labvm repair snapd'


class InstallStatus(enum.Enum):
    INSTALLED = 'installed'
    ALREADY_PRESENT = 'already_present'
    FAILED = 'failed'


@dataclass(frozen=True)
class InstallOutcome:
    name: str
    status: InstallStatus
    reason: FailureSignature | None = None
    detail: str = ''

    @property
    def ok(self) -> bool:
        return self.status is not InstallStatus.FAILED

    @classmethod
    def failed(
        cls, name: str, reason: FailureSignature, detail: str = ''
    ) -> 'InstallOutcome':
        return cls(name, InstallStatus.FAILED, reason, detail)


def install_if_absent(
    name: str,
    presence_check: Callable[[], bool],
    install: Callable[[], object],
    *,
    reason: FailureSignature = FailureSignature.GENERIC,
) -> InstallOutcome:
    """Run ``install`` once unless ``presence_check`` already holds.

    ``install`` failing (``CmdError`` or a falsy/non-zero result) is a hard
    failure for this dependency; retry policy lives with the caller.
    """
    if presence_check():
        log.info('{} is already installed', name)
        return InstallOutcome(name, InstallStatus.ALREADY_PRESENT)
    log.info('Installing {}...', name)
    try:
        res = install()
    except CmdError as ex:
        return InstallOutcome.failed(name, reason, str(ex))
    if isinstance(res, CmdResult):
        ok = res.ok
    else:
        ok = res is None or bool(res)
    if not ok:
        return InstallOutcome.failed(name, reason, f'{name} installer reported failure')
    log.success('{} installed successfully', name)
    return InstallOutcome(name, InstallStatus.INSTALLED)


def raise_for_outcome(outcome: InstallOutcome) -> InstallOutcome:
    if outcome.status is InstallStatus.FAILED:
        msg = f'Failed to install {outcome.name}'
        if outcome.detail:
            msg = f'{msg}: {outcome.detail}'
        raise SetupError(msg, outcome.reason or FailureSignature.GENERIC)
    return outcome


def snapd_responsive() -> bool:
    return cmd_succeeds(['snap', 'version'], sudo=True)


def multipass_responsive() -> bool:
    return command_exists('multipass') and cmd_succeeds(['multipass', 'version'])


class DependencyInstaller:
    """Installs multipass and whatever package manager the host needs for it.

    The session's ``posture`` is fixed at construction: a degraded session
    installs every snap with ``--devmode``.
    """

    def __init__(
        self,
        cfg: SetupConfig,
        system: SystemInfo,
        *,
        posture: SecurityPosture,
        policy: ConfirmationPolicy,
        staging_dir: Path,
    ):
        self.cfg = cfg
        self.system = system
        self.posture = posture
        self.policy = policy
        self.staging_dir = Path(staging_dir)

    # -- package managers -------------------------------------------------

    def ensure_snapd_debian(self) -> InstallOutcome:
        def _install() -> None:
            run_cmd(['apt', 'update', '-qq'], sudo=True, check=True, capture=False)
            run_cmd(
                ['apt', 'install', '-y', 'snapd'],
                sudo=True,
                check=True,
                capture=False,
            )

        return install_if_absent('snapd', lambda: command_exists('snap'), _install)

    def ensure_yay(self) -> InstallOutcome:
        return install_if_absent(
            'yay',
            lambda: command_exists('yay'),
            lambda: run_cmd(
                ['pacman', '-S', '--noconfirm', 'yay'],
                sudo=True,
                check=True,
                capture=False,
            ),
        )

    def _build_snapd_from_aur(self) -> None:
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        run_cmd(
            ['git', 'clone', SNAPD_AUR_URL],
            check=True,
            capture=False,
            cwd=self.staging_dir,
        )
        run_cmd(
            ['makepkg', '-si', '--noconfirm'],
            check=True,
            capture=False,
            cwd=self.staging_dir / 'snapd',
        )
        run_cmd(
            ['systemctl', 'enable', '--now', 'snapd.socket'],
            sudo=True,
            check=True,
        )
        # Classic snap support.
        run_cmd(
            ['ln', '-sf', '/var/lib/snapd/snap', '/snap'], sudo=True, check=False
        )

    def ensure_snapd_arch(self) -> InstallOutcome:
        outcome = install_if_absent(
            'snapd', lambda: command_exists('snap'), self._build_snapd_from_aur
        )
        if outcome.status is not InstallStatus.INSTALLED:
            return outcome
        return self.wait_for_seeding()

    def ensure_homebrew(self) -> InstallOutcome:
        if command_exists('brew'):
            return InstallOutcome('homebrew', InstallStatus.ALREADY_PRESENT)
        if not self.policy.confirm(
            'Homebrew is required. Run the official Homebrew installer?',
            default=True,
        ):
            return InstallOutcome.failed(
                'homebrew',
                FailureSignature.PRECONDITION,
                'Homebrew is required to install multipass on macOS',
            )
        return install_if_absent(
            'homebrew', lambda: False, self._run_homebrew_installer
        )

    def _run_homebrew_installer(self) -> CmdResult:
        # bash receives the script body, not the URL.
        script = run_cmd(
            ['curl', '-fsSL', HOMEBREW_INSTALL_URL], check=True, capture=True
        ).stdout
        return run_cmd(['/bin/bash', '-c', script], check=True, capture=False)

    # -- readiness --------------------------------------------------------

    def wait_for_seeding(self) -> InstallOutcome:
        t = self.cfg.timing
        log.info('Waiting for snapd to initialize (this may take a few minutes)...')
        outcome = wait_until(
            snapd_responsive,
            interval_s=t.seed_interval_s,
            max_attempts=t.seed_attempts,
            label='snapd seeding',
        )
        if outcome.ready:
            log.success('Snapd is ready')
            return InstallOutcome('snapd', InstallStatus.INSTALLED)
        log.error(
            'Snapd failed to initialize after {:g} seconds',
            t.seed_interval_s * t.seed_attempts,
        )
        log.info('This is common on fresh Arch installations.')
        log.info('Recovery: {}', SNAPD_RECOVERY_HINT)
        return InstallOutcome.failed(
            'snapd',
            FailureSignature.SNAPD_SEEDING,
            'snapd seeding timeout - use recovery command or manual intervention',
        )

    def wait_for_multipass(self) -> InstallOutcome:
        t = self.cfg.timing
        log.info('Verifying multipass installation...')
        outcome = wait_until(
            multipass_responsive,
            interval_s=t.multipass_ready_interval_s,
            max_attempts=t.multipass_ready_attempts,
            label='multipass to become available',
            progress_every=1,
        )
        if outcome.ready:
            log.success('Multipass installed and ready')
            return InstallOutcome('multipass', InstallStatus.INSTALLED)
        return InstallOutcome.failed(
            'multipass',
            FailureSignature.MULTIPASS,
            'multipass installation verification failed after '
            f'{t.multipass_ready_interval_s * t.multipass_ready_attempts:g} seconds',
        )

    # -- snaps ------------------------------------------------------------

    def _snap_install(self, snap: str, *, devmode: bool) -> bool:
        res = run_cmd(
            snap_install_cmd(snap, devmode=devmode),
            sudo=True,
            check=False,
            capture=False,
        )
        return res.code == 0

    def install_snap(self, snap: str) -> bool:
        """Install ``snap`` with the session's single retry-then-devmode policy."""
        if self.posture.devmode:
            log.info('Using devmode installation (reduced security)')
            return self._snap_install(snap, devmode=True)
        if self._snap_install(snap, devmode=False):
            return True
        log.warning('Normal installation failed, checking snapd status...')
        if not cmd_succeeds(['snap', 'wait', 'system', 'seed.loaded'], sudo=True):
            log.info('Snapd is not fully seeded yet')
        log.info(
            'Waiting {:g} seconds before retrying...', self.cfg.timing.retry_grace_s
        )
        time.sleep(self.cfg.timing.retry_grace_s)
        log.info('Retrying {} installation...', snap)
        if self._snap_install(snap, devmode=False):
            return True
        log.warning('Retrying with devmode as fallback...')
        return self._snap_install(snap, devmode=True)

    # -- multipass --------------------------------------------------------

    def _install_multipass_via_snap(self) -> bool:
        log.info('Installing multipass via snap...')
        return self.install_snap('multipass')

    def _install_multipass_via_brew(self) -> None:
        log.info('Installing multipass via Homebrew...')
        run_cmd(['brew', 'install', 'multipass'], check=True, capture=False)

    def _install_multipass(self) -> InstallOutcome:
        family = self.system.family
        if family == 'debian':
            steps = [self.ensure_snapd_debian]
            install = self._install_multipass_via_snap
            reason = FailureSignature.MULTIPASS
        elif family == 'arch':
            steps = [self.ensure_yay, self.ensure_snapd_arch]
            install = self._install_multipass_via_snap
            reason = FailureSignature.SNAPD_SEEDING
        elif family == 'macos':
            steps = [self.ensure_homebrew]
            install = self._install_multipass_via_brew
            reason = FailureSignature.MULTIPASS
        else:
            return InstallOutcome.failed(
                'multipass',
                FailureSignature.PRECONDITION,
                f'unsupported platform: os={self.system.os} distro={self.system.distro}',
            )
        for step in steps:
            outcome = step()
            if not outcome.ok:
                return outcome
        return install_if_absent(
            'multipass', lambda: False, install, reason=reason
        )

    def ensure_multipass(self) -> InstallOutcome:
        if command_exists('multipass'):
            log.info('Multipass is already installed')
            return InstallOutcome('multipass', InstallStatus.ALREADY_PRESENT)
        outcome = self._install_multipass()
        if not outcome.ok:
            return outcome
        return self.wait_for_multipass()
