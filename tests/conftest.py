"""Shared fixtures for cmssync tests."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all cmssync runtime files to a temporary directory.

    Patches ``cmssync.config.get_base_dir`` (and the re-imported reference in
    ``cmssync.cli``) so that nothing touches the real ``~/.cmssync/``.
    """
    fake_base = tmp_path / ".cmssync"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("cmssync.config.get_base_dir", lambda: fake_base)
    monkeypatch.setattr("cmssync.cli.get_base_dir", lambda: fake_base)

    return fake_base
