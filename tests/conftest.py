"""Shared fixtures for the vaultMCP test suite."""

from pathlib import Path

import pytest


@pytest.fixture
def fixtures_root() -> Path:
    """Static sample vault shipped with the tests."""
    return Path(__file__).parent / "fixtures" / "vault"


@pytest.fixture
def make_vault(tmp_path: Path):
    """Create a vault in tmp_path from a {relative_path: content} mapping."""

    def _make(files: dict[str, str | bytes]) -> Path:
        root = tmp_path / "vault"
        root.mkdir(exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return root

    return _make
