"""VM lifecycle: daemon readiness, conflict resolution, image tiers, launch, network check."""

from __future__ import annotations

import enum
import re
import time
from dataclasses import dataclass

from loguru import logger

from ..config import ImageConfig, SetupConfig, VMTarget
from ..errors import FailureSignature, SetupError
from ..poll import wait_until
from ..results import DiagnosticBundle
from ..runtime import exec_cmd, launch_cmd, multipass_cmd, parse_inventory
from ..util import CmdError, cmd_succeeds, command_exists, head, run_cmd

log = logger

_VERSION_LINE = re.compile(r'^[0-9]+\.[0-9]+')


class ProvisionState(enum.Enum):
    UNCHECKED = 'unchecked'
    CONFLICT_RESOLVED = 'conflict_resolved'
    IMAGE_SELECTED = 'image_selected'
    CREATED = 'created'
    NETWORK_VERIFIED = 'network_verified'
    FAILED = 'failed'


_NEXT_STATE = {
    ProvisionState.UNCHECKED: ProvisionState.CONFLICT_RESOLVED,
    ProvisionState.CONFLICT_RESOLVED: ProvisionState.IMAGE_SELECTED,
    ProvisionState.IMAGE_SELECTED: ProvisionState.CREATED,
    ProvisionState.CREATED: ProvisionState.NETWORK_VERIFIED,
}


class ImageTier(enum.Enum):
    PRIMARY = 'primary'
    FALLBACK = 'fallback'
    BEST_AVAILABLE = 'best_available'
    NONE = 'none'


@dataclass(frozen=True)
class ImageSelection:
    tier: ImageTier
    image: str | None
    catalog: str = ''

    def display(self, images: ImageConfig) -> str:
        if self.tier is ImageTier.PRIMARY:
            return f'{images.primary_version} LTS ({images.primary})'
        if self.tier is ImageTier.FALLBACK:
            return f'{images.fallback_version} LTS ({images.fallback})'
        return str(self.image)


@dataclass
class ProvisionRecord:
    target: VMTarget
    state: ProvisionState = ProvisionState.UNCHECKED
    image: str | None = None
    replaced_existing: bool = False

    @property
    def name(self) -> str:
        return self.target.name

    def advance(self, state: ProvisionState) -> None:
        if _NEXT_STATE.get(self.state) is not state:
            raise RuntimeError(
                f'Invalid provisioning transition for {self.name}: '
                f'{self.state.value} -> {state.value}'
            )
        self.state = state

    def fail(self) -> None:
        self.state = ProvisionState.FAILED

    def as_dict(self) -> dict[str, object]:
        return {
            'name': self.name,
            'state': self.state.value,
            'image': self.image,
            'replaced_existing': self.replaced_existing,
        }


def select_image(catalog: str, images: ImageConfig) -> ImageSelection:
    """Rank the ``multipass find`` output into an image tier."""
    text = catalog or ''
    if images.primary in text or images.primary_version in text:
        return ImageSelection(ImageTier.PRIMARY, images.primary, text)
    if images.fallback in text or images.fallback_version in text:
        return ImageSelection(ImageTier.FALLBACK, images.fallback, text)
    for line in text.splitlines():
        line = line.strip()
        if _VERSION_LINE.match(line):
            return ImageSelection(ImageTier.BEST_AVAILABLE, line.split()[0], text)
    return ImageSelection(ImageTier.NONE, None, text)


def query_catalog() -> str | None:
    res = run_cmd(multipass_cmd('find'), check=False, capture=True)
    if res.code != 0:
        log.warning('Could not query available images')
        return None
    return res.stdout


def query_inventory() -> list[str] | None:
    res = run_cmd(
        multipass_cmd('list', '--format', 'json'), check=False, capture=True
    )
    if res.code != 0:
        return None
    return parse_inventory(res.stdout)


def daemon_responsive() -> bool:
    return cmd_succeeds(multipass_cmd('list'))


def restart_daemon() -> None:
    if command_exists('systemctl'):
        run_cmd(['systemctl', 'restart', 'multipass'], sudo=True, check=False)
    elif command_exists('snap'):
        run_cmd(['snap', 'restart', 'multipass'], sudo=True, check=False)


def delete_and_purge(name: str) -> None:
    run_cmd(multipass_cmd('delete', name), check=False, capture=True)
    run_cmd(multipass_cmd('purge'), check=False, capture=True)


def capture_diagnostics() -> DiagnosticBundle:
    version = run_cmd(multipass_cmd('version'), check=False, capture=True)
    images = run_cmd(multipass_cmd('find'), check=False, capture=True)
    ping = run_cmd(['ping', '-c', '3', '8.8.8.8'], check=False, capture=True)
    bundle = DiagnosticBundle(
        manager_version=version.stdout.strip() if version.ok else 'Failed',
        images=head(images.stdout, 5) if images.ok else '',
        connectivity_ok=ping.ok,
    )
    log.info('Multipass diagnostics:')
    for line in bundle.lines():
        log.info('  {}', line)
    return bundle


def guest_network_ok(name: str) -> bool:
    return cmd_succeeds(exec_cmd(name, 'ping', '-c', '1', '1.1.1.1'))


class VmProvisioner:
    """Creates the configured targets one at a time, in declaration order."""

    def __init__(self, cfg: SetupConfig):
        self.cfg = cfg
        self.records = [ProvisionRecord(t) for t in cfg.targets]
        self._image: ImageSelection | None = None

    def ensure_daemon(self) -> None:
        t = self.cfg.timing
        log.info('Initializing multipass...')
        outcome = wait_until(
            daemon_responsive,
            interval_s=t.daemon_interval_s,
            max_attempts=t.daemon_attempts,
            label='multipass daemon',
            progress_every=1,
        )
        if outcome.ready:
            log.success('Multipass daemon is responsive')
            return
        log.warning('Multipass daemon is not responding, attempting restart...')
        restart_daemon()
        time.sleep(t.daemon_restart_grace_s)
        if daemon_responsive():
            log.success('Multipass daemon restarted successfully')
            return
        raise SetupError(
            'Multipass initialization failed: daemon is not working properly',
            FailureSignature.MULTIPASS,
        )

    def resolve_conflicts(self) -> list[str]:
        """Delete and purge every existing VM whose name matches a target."""
        log.info('Checking for existing VMs...')
        existing = query_inventory()
        replaced: list[str] = []
        if existing is None:
            log.info(
                'Could not query existing VMs (multipass may not be fully initialized)'
            )
        elif existing:
            log.info('Found existing VMs: {}', ', '.join(existing))
        else:
            log.info('No existing VMs found')
        existing_set = set(existing or [])
        for rec in self.records:
            if rec.name in existing_set:
                log.warning('VM already exists: {}', rec.name)
                log.info('Deleting and recreating VM: {}', rec.name)
                delete_and_purge(rec.name)
                rec.replaced_existing = True
                replaced.append(rec.name)
            rec.advance(ProvisionState.CONFLICT_RESOLVED)
        return replaced

    def image_selection(self) -> ImageSelection:
        if self._image is None:
            log.info('Finding best Ubuntu release to use...')
            catalog = query_catalog()
            self._image = select_image(catalog or '', self.cfg.image)
        return self._image

    def select_image(self) -> ImageSelection:
        images = self.cfg.image
        sel = self.image_selection()
        if sel.tier is ImageTier.PRIMARY:
            log.success('Using Ubuntu {}', sel.display(images))
        elif sel.tier is ImageTier.FALLBACK:
            log.warning(
                'Ubuntu {} not available, using {}',
                images.primary_version,
                sel.display(images),
            )
        elif sel.tier is ImageTier.BEST_AVAILABLE:
            log.warning('Using available version: {}', sel.image)
        else:
            for rec in self.records:
                rec.fail()
            log.error('Cannot determine Ubuntu release to use')
            if sel.catalog:
                log.info('Available images:\n{}', head(sel.catalog, 10))
            log.info('Troubleshooting steps:')
            log.info('  1. Check network: ping -c 3 8.8.8.8')
            log.info('  2. Restart multipass: sudo snap restart multipass')
            log.info('  3. Check multipass: multipass version')
            log.info(
                '  4. Try manual launch: multipass launch --name test {}',
                images.fallback,
            )
            raise SetupError(
                'No suitable Ubuntu release available', FailureSignature.MULTIPASS
            )
        for rec in self.records:
            rec.image = sel.image
            rec.advance(ProvisionState.IMAGE_SELECTED)
        return sel

    def create(self, rec: ProvisionRecord) -> None:
        t = rec.target
        log.info(
            'Creating VM: {} ({} CPUs, {} RAM, {} disk) with Ubuntu {}',
            t.name,
            t.cpus,
            t.memory,
            t.disk,
            self.image_selection().display(self.cfg.image),
        )
        cmd = launch_cmd(
            t.name, str(rec.image), cpus=t.cpus, memory=t.memory, disk=t.disk
        )
        try:
            run_cmd(cmd, check=True, capture=False)
        except CmdError as ex:
            rec.fail()
            log.error('Failed to create VM: {}', t.name)
            log.info('Troubleshooting multipass issues...')
            bundle = capture_diagnostics()
            raise SetupError(
                f'Failed to create VM: {t.name}',
                FailureSignature.MULTIPASS,
                diagnostics=bundle,
            ) from ex
        rec.advance(ProvisionState.CREATED)
        log.success('Created VM: {}', t.name)

    def verify_network(self, rec: ProvisionRecord) -> None:
        t = self.cfg.timing
        log.info('Testing connectivity for: {}', rec.name)
        outcome = wait_until(
            lambda: guest_network_ok(rec.name),
            interval_s=t.network_interval_s,
            max_attempts=t.network_attempts,
            label=f'network connectivity on {rec.name}',
            progress_every=1,
        )
        if not outcome.ready:
            rec.fail()
            raise SetupError(
                f'Network connectivity test failed for VM: {rec.name}',
                FailureSignature.MULTIPASS,
            )
        rec.advance(ProvisionState.NETWORK_VERIFIED)
        log.success('Network connectivity OK for: {}', rec.name)

    def provision_all(self) -> list[ProvisionRecord]:
        self.ensure_daemon()
        self.resolve_conflicts()
        self.select_image()
        log.info('Creating virtual machines...')
        for rec in self.records:
            self.create(rec)
        log.info('Testing VM network connectivity...')
        for rec in self.records:
            self.verify_network(rec)
        return self.records
