"""VM operation exports for the provisioning lifecycle."""

from __future__ import annotations

from .lifecycle import (
    ImageSelection,
    ImageTier,
    ProvisionRecord,
    ProvisionState,
    VmProvisioner,
    capture_diagnostics,
    daemon_responsive,
    delete_and_purge,
    query_catalog,
    query_inventory,
    restart_daemon,
    select_image,
)

__all__ = [
    'ImageSelection',
    'ImageTier',
    'ProvisionRecord',
    'ProvisionState',
    'VmProvisioner',
    'capture_diagnostics',
    'daemon_responsive',
    'delete_and_purge',
    'query_catalog',
    'query_inventory',
    'restart_daemon',
    'select_image',
]
