"""
Tests for settings, runtime configuration and the start-up path.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fusion_vault.config import ChainConfig, VaultSettings
from fusion_vault.custody.assets import InMemoryAsset
from fusion_vault.orchestrator import bootstrap
from fusion_vault.schema import EventType, TokenClass

from support import ALICE, PRICES, Clock


class TestVaultSettings:
    def test_defaults(self):
        settings = VaultSettings(_env_file=None)
        assert settings.fee_basis_points == 25
        assert settings.database_url.startswith("sqlite:///")
        assert settings.gift_asset is None

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("FUSION_VAULT_FEE_BASIS_POINTS", "50")
        monkeypatch.setenv("FUSION_VAULT_GIFT_ASSET", "usdc")
        settings = VaultSettings(_env_file=None)
        assert settings.fee_basis_points == 50
        assert settings.gift_asset == "usdc"

    def test_chain_config_from_settings(self):
        settings = VaultSettings(_env_file=None, base_supply_cap=7, gift_price=300)
        config = ChainConfig.from_settings(settings)
        assert config.base_supply_cap == 7
        assert config.gift_price == 300
        assert not config.paused


class TestChainConfig:
    def test_fee_bounds(self):
        with pytest.raises(ValidationError):
            ChainConfig(fee_basis_points=10_001)

    def test_assignment_is_validated(self):
        config = ChainConfig()
        with pytest.raises(ValidationError):
            config.gift_price = -1
        config.fee_basis_points = 0
        assert config.fee_basis_points == 0


class TestBootstrap:
    def settings(self, tmp_path):
        return VaultSettings(
            _env_file=None,
            database_url=f"sqlite:///{tmp_path / 'vault.db'}",
            base_range_size=100,
            gift_range_size=10,
        )

    def test_fresh_then_reloaded(self, tmp_path):
        settings = self.settings(tmp_path)
        usdc = InMemoryAsset("usdc")
        usdc.mint(ALICE, 1_000_000)
        usdc.approve(ALICE, settings.vault_address, 1_000_000)

        chain, repository = bootstrap(settings, assets=[usdc], clock=Clock())
        chain.add_supported_asset(settings.admin_address, "usdc", PRICES["usdc"])
        token_id = chain.mint_base(ALICE, "usdc")
        repository.save(chain.state, chain.journal)

        reloaded, _ = bootstrap(settings, assets=[usdc], clock=Clock())
        assert reloaded.classification(token_id) == TokenClass.BASE
        assert reloaded.custody_balance(token_id, "usdc") == PRICES["usdc"]
        assert reloaded.mint_base(ALICE, "usdc") == token_id + 1

    def test_reload_continues_journal(self, tmp_path):
        settings = self.settings(tmp_path)
        chain, repository = bootstrap(settings, clock=Clock())
        chain.mint_soulbound(settings.admin_address, ALICE, "ipfs://badge.json")
        repository.save(chain.state, chain.journal)

        reloaded, repository = bootstrap(settings, clock=Clock())
        genesis = [e for e in reloaded.journal.entries if e.event_type == EventType.GENESIS]
        assert len(genesis) == 1
        assert reloaded.journal.head_hash == chain.journal.head_hash

        reloaded.mint_soulbound(settings.admin_address, ALICE, "ipfs://badge-2.json")
        repository.save(reloaded.state, reloaded.journal)
        assert repository.load_journal().verify_chain()[0]
        assert repository.get_event_count() == len(reloaded.journal)
