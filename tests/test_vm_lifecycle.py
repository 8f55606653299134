"""Tests for image tiers, conflict resolution, and the provisioning state machine."""

from __future__ import annotations

import pytest

from labvm.config import ImageConfig
from labvm.errors import FailureSignature, SetupError
from labvm.results import DiagnosticBundle
from labvm.vm import (
    ImageTier,
    ProvisionRecord,
    ProvisionState,
    VmProvisioner,
    select_image,
)

from conftest import CATALOG_ALL, CATALOG_FALLBACK_ONLY


def test_select_image_prefers_primary() -> None:
    sel = select_image(CATALOG_ALL, ImageConfig())
    assert sel.tier is ImageTier.PRIMARY
    assert sel.image == 'noble'
    assert sel.display(ImageConfig()) == '24.04 LTS (noble)'


def test_select_image_fallback_and_best_available() -> None:
    sel = select_image(CATALOG_FALLBACK_ONLY, ImageConfig())
    assert sel.tier is ImageTier.FALLBACK
    assert sel.image == 'jammy'
    old = 'Image   Aliases   Version\n20.04   focal     20240101\n'
    sel = select_image(old, ImageConfig())
    assert sel.tier is ImageTier.BEST_AVAILABLE
    assert sel.image == '20.04'
    assert select_image('', ImageConfig()).tier is ImageTier.NONE


def test_record_rejects_skipped_transitions(small_cfg) -> None:
    rec = ProvisionRecord(small_cfg.targets[0])
    with pytest.raises(RuntimeError, match='Invalid provisioning transition'):
        rec.advance(ProvisionState.CREATED)
    rec.advance(ProvisionState.CONFLICT_RESOLVED)
    rec.fail()
    assert rec.as_dict()['state'] == 'failed'


def test_existing_target_is_deleted_and_purged_once(
    small_cfg, fake_multipass, fast_timing
) -> None:
    fake = fake_multipass(existing=['lab-b', 'unrelated'])
    prov = VmProvisioner(small_cfg)
    records = prov.provision_all()
    assert fake.count('multipass', 'delete', 'lab-b') == 1
    assert fake.count('multipass', 'purge') == 1
    assert fake.count('multipass', 'delete', 'unrelated') == 0
    assert fake.index('multipass', 'purge') < fake.index('multipass', 'launch')
    assert fake.count('multipass', 'launch') == 2
    assert [r.replaced_existing for r in records] == [False, True]
    assert {r.state for r in records} == {ProvisionState.NETWORK_VERIFIED}


def test_catalog_is_queried_once_per_run(
    small_cfg, fake_multipass, fast_timing
) -> None:
    fake = fake_multipass()
    prov = VmProvisioner(small_cfg)
    prov.provision_all()
    assert prov.image_selection().image == 'noble'
    assert fake.count('multipass', 'find') == 1
    launches = [c for c in fake.calls if c[:2] == ['multipass', 'launch']]
    assert [c[-1] for c in launches] == ['noble', 'noble']
    assert launches[0][1:8] == [
        'launch', '--cpus', '2', '--memory', '2G', '--disk', '20GB'
    ]


def test_no_usable_image_fails_before_launch(
    small_cfg, fake_multipass, fast_timing
) -> None:
    fake = fake_multipass(catalog='')
    prov = VmProvisioner(small_cfg)
    with pytest.raises(SetupError, match='No suitable Ubuntu release') as ex:
        prov.provision_all()
    assert ex.value.signature is FailureSignature.MULTIPASS
    assert fake.count('multipass', 'launch') == 0
    assert {r.state for r in prov.records} == {ProvisionState.FAILED}


def test_launch_failure_captures_diagnostics(
    small_cfg, fake_multipass, fast_timing
) -> None:
    fake = fake_multipass(launch_ok=False)
    prov = VmProvisioner(small_cfg)
    with pytest.raises(SetupError, match='Failed to create VM: lab-a') as ex:
        prov.provision_all()
    bundle = ex.value.diagnostics
    assert isinstance(bundle, DiagnosticBundle)
    assert bundle.manager_version.startswith('multipass')
    assert bundle.connectivity_ok is True
    assert fake.count('ping', '-c', '3', '8.8.8.8') == 1
    assert prov.records[0].state is ProvisionState.FAILED
    assert fake.count('multipass', 'launch') == 1


def test_network_check_failure(small_cfg, fake_multipass, fast_timing) -> None:
    fake = fake_multipass(network_ok=False)
    prov = VmProvisioner(small_cfg)
    with pytest.raises(SetupError, match='Network connectivity test failed'):
        prov.provision_all()
    assert fake.count('multipass', 'exec', 'lab-a') == small_cfg.timing.network_attempts
    assert prov.records[0].state is ProvisionState.FAILED
    assert prov.records[1].state is ProvisionState.CREATED


def test_unresponsive_daemon_restarts_then_fails(
    small_cfg, fake_multipass, fast_timing
) -> None:
    fake = fake_multipass(daemon_ok=False)
    prov = VmProvisioner(small_cfg)
    with pytest.raises(SetupError, match='daemon is not working') as ex:
        prov.ensure_daemon()
    assert ex.value.signature is FailureSignature.MULTIPASS
    assert ['systemctl', 'restart', 'multipass'] in fake.calls
    # Budgeted probes plus one after the restart.
    assert fake.count('multipass', 'list') == small_cfg.timing.daemon_attempts + 1
    assert small_cfg.timing.daemon_restart_grace_s in fast_timing
