"""
Pytest configuration and shared fixtures.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from storage import FileSystemStorage, KeyValueStorage


@pytest.fixture
def kv_storage():
    """In-memory key-value storage seeded with the welcome notes."""
    storage = KeyValueStorage()
    storage.fetch_tree()
    return storage


@pytest.fixture
def vault(tmp_path):
    """A small notes directory on disk."""
    root = tmp_path / "vault"
    (root / "Notes").mkdir(parents=True)
    (root / "Welcome.md").write_text("# Welcome\n", encoding="utf-8")
    (root / "Notes" / "Ideas.md").write_text("# My Ideas\n\n- [ ] Build a cool app\n", encoding="utf-8")
    (root / ".hidden").mkdir()
    (root / ".hidden" / "secret.md").write_text("secret", encoding="utf-8")
    (root / "node_modules").mkdir()
    (root / "image.png").write_bytes(b"\x89PNG")
    return root


@pytest.fixture
def fs_storage(vault):
    return FileSystemStorage(vault)
