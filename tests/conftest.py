"""Shared test fixtures for the editorbridge test suite."""

import pytest

from editorbridge.lockfile import LockfileRegistry


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Point lockfiles at a per-test directory and clear env settings."""
    path = tmp_path / "ide"
    monkeypatch.setenv("EDITORBRIDGE_DATA_DIR", str(path))
    monkeypatch.delenv("EDITORBRIDGE_IDE_NAME", raising=False)
    monkeypatch.delenv("EDITORBRIDGE_REQUIRE_AUTH", raising=False)
    monkeypatch.delenv("EDITORBRIDGE_DEBOUNCE_MS", raising=False)
    return path


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "myproject"
    root.mkdir()
    return str(root.resolve())


@pytest.fixture
def registry(data_dir):
    return LockfileRegistry(data_dir=data_dir, ide_name="TestIDE")
