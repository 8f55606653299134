"""Result dataclasses reported by provisioning style operations."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DiagnosticBundle:
    manager_version: str
    images: str
    connectivity_ok: bool

    def lines(self) -> list[str]:
        out = [f'Version: {self.manager_version or "Failed"}']
        if self.images:
            out.append('Available images:')
            out.extend(f'  {line}' for line in self.images.splitlines())
        else:
            out.append('Available images: (cannot list images)')
        out.append(
            'Network connectivity: '
            + ('OK' if self.connectivity_ok else 'FAILED')
        )
        return out


@dataclass
class SetupReport:
    os: str = ''
    distro: str = ''
    posture: str = 'unresolved'
    dependency: str = ''
    image: str = ''
    image_tier: str = ''
    vms: list[dict[str, object]] = field(default_factory=list)
    remote: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, object]:
        return {
            'os': self.os,
            'distro': self.distro,
            'posture': self.posture,
            'dependency': self.dependency,
            'image': self.image,
            'image_tier': self.image_tier,
            'vms': [dict(v) for v in self.vms],
            'remote': dict(self.remote),
        }
