"""Shared pytest fixtures for the vault test suite."""

from __future__ import annotations

import pytest

from fusion_vault.ledger.service import VaultRepository


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'vault.db'}"


@pytest.fixture
def repository(database_url):
    repo = VaultRepository(database_url)
    repo.initialize()
    return repo
