"""Fusion Vault — Application configuration via environment variables."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class VaultSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "FUSION_VAULT_",
        "extra": "ignore",
    }

    # ── Ledger identity ────────────────────────────────────────
    chain_eid: int = 30101
    vault_address: str = "0x000000000000000000000000000000000000f05e"
    admin_address: str = "0x00000000000000000000000000000000000ad111"

    # ── Identity space ─────────────────────────────────────────
    base_range_size: int = 10_000
    gift_range_size: int = 1_000

    # ── Minting ────────────────────────────────────────────────
    base_supply_cap: int = 10_000
    gift_supply_cap: int = 1_000
    mint_cutoff: int = 2_000_000_000  # unix seconds
    fee_basis_points: int = 25
    gift_asset: str | None = None
    gift_price: int = 0
    gift_uri: str = "ipfs://fusion-vault/gift.json"
    fused_uri: str = "ipfs://fusion-vault/fused.json"

    # ── Persistence ────────────────────────────────────────────
    database_url: str = "sqlite:///fusion_vault.db"

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


class ChainConfig(BaseModel):
    """
    Administration inputs read by the core at call time.

    Owned by the (out-of-scope) administration surface. Any field may change
    between calls and the core reads the current value on every operation.
    """

    model_config = {"validate_assignment": True}

    fee_basis_points: int = Field(default=25, ge=0, le=10_000)
    base_supply_cap: int = Field(default=10_000, ge=0)
    gift_supply_cap: int = Field(default=1_000, ge=0)
    mint_cutoff: int = 2_000_000_000
    gift_asset: str | None = None
    gift_price: int = Field(default=0, ge=0)
    gift_uri: str = ""
    fused_uri: str = ""
    paused: bool = False

    @classmethod
    def from_settings(cls, settings: VaultSettings) -> ChainConfig:
        return cls(
            fee_basis_points=settings.fee_basis_points,
            base_supply_cap=settings.base_supply_cap,
            gift_supply_cap=settings.gift_supply_cap,
            mint_cutoff=settings.mint_cutoff,
            gift_asset=settings.gift_asset,
            gift_price=settings.gift_price,
            gift_uri=settings.gift_uri,
            fused_uri=settings.fused_uri,
        )


settings = VaultSettings()
