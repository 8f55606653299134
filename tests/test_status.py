from __future__ import annotations

from labvm.config import SetupConfig
from labvm.detect import SystemInfo
from labvm.status import clip, render_doctor, status_line


def _healthy(monkeypatch) -> None:
    monkeypatch.setattr('labvm.status.is_root', lambda: False)
    monkeypatch.setattr('labvm.status.check_commands', lambda req: ([], []))
    monkeypatch.setattr('labvm.status.has_internet', lambda url: True)
    monkeypatch.setattr('labvm.status.multipass_responsive', lambda: True)
    monkeypatch.setattr('labvm.status.daemon_responsive', lambda: True)
    monkeypatch.setattr('labvm.status.apparmor_enabled', lambda: False)
    monkeypatch.setattr(
        'labvm.status.host_diagnostics',
        lambda: {'system': 'Linux 6.8 x86_64', 'multipass': 'multipass 1.14'},
    )


def test_status_line_icons() -> None:
    assert status_line(True, 'ok') == '✅ ok'
    assert status_line(False, 'bad', 'why') == '❌ bad - why'
    assert status_line(None, 'skip').startswith('➖')


def test_clip() -> None:
    assert clip('a\nb\nc', max_lines=2) == 'a\nb\n... (1 more lines)'
    assert clip('a\nb', max_lines=2) == 'a\nb'


def test_render_doctor_healthy(monkeypatch) -> None:
    _healthy(monkeypatch)
    text, ok = render_doctor(SetupConfig(), SystemInfo('linux', 'ubuntu', 'debian'))
    assert ok is True
    assert '✅ Running as regular user' in text
    assert '✅ Multipass daemon responsive' in text
    assert 'AppArmor' not in text
    assert '  system: Linux 6.8 x86_64' in text


def test_render_doctor_arch_and_unsupported(monkeypatch) -> None:
    _healthy(monkeypatch)
    text, ok = render_doctor(SetupConfig(), SystemInfo('linux', 'arch', 'arch'))
    assert ok is True
    assert 'disabled (snaps use devmode)' in text
    text, ok = render_doctor(
        SetupConfig(), SystemInfo('linux', 'fedora', 'unknown')
    )
    assert ok is False
    assert '❌ Platform' in text
