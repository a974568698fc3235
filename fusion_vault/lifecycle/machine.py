"""
Token Lifecycle — the five-state classification and its transitions.

    NONEXISTENT ──mint_base──▶ BASE ──fuse(×4)──▶ FUSED ──unfuse──▶ 4 × BASE
    NONEXISTENT ──mint_gift──▶ GIFT
    NONEXISTENT ──mint_soulbound──▶ SOULBOUND
    BASE | GIFT | SOULBOUND ──burn──▶ NONEXISTENT

There are no cross-family transitions. A FUSED token must be unfused before
its components can be burned. SOULBOUND tokens cannot be burned by their
owner: the ownership removal step is blocked by the restriction policy.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from fusion_vault.config import ChainConfig
from fusion_vault.custody.assets import AssetCatalog
from fusion_vault.custody.ledger import CustodyLedger
from fusion_vault.errors import (
    CanOnlyFuseBaseTokens,
    CanOnlyUnfuseFusedTokens,
    MaxSupplyReached,
    MintingPeriodEnded,
    MissingCustodyRecord,
    OnlyTokenOwnerCanBurnTokens,
    OnlyTokenOwnerCanFuseTokens,
    OnlyTokenOwnerCanUnfuseTokens,
    SameTokenUnderlyingAssets,
    Unauthorized,
    UnfuseTokenBeforeBurning,
    UnsupportedAsset,
)
from fusion_vault.registry.events import EventJournal
from fusion_vault.registry.identity import IdentitySpace
from fusion_vault.registry.ownership import OwnershipRegistry
from fusion_vault.registry.restriction import TransferRestrictionPolicy
from fusion_vault.schema import (
    CustodyRecord,
    EventType,
    FusionLink,
    TokenClass,
    TokenView,
)
from fusion_vault.state import ChainState

logger = logging.getLogger(__name__)

# The six unordered pairs of a four-token fusion.
FUSION_PAIRS = ((0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3))


class TokenLifecycle:
    """Mint, fuse, unfuse and burn, wired over the component stores."""

    def __init__(
        self,
        state: ChainState,
        config: ChainConfig,
        identity: IdentitySpace,
        ownership: OwnershipRegistry,
        custody: CustodyLedger,
        catalog: AssetCatalog,
        restriction: TransferRestrictionPolicy,
        journal: EventJournal,
        vault_address: str,
        admin_address: str,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.state = state
        self.config = config
        self.identity = identity
        self.ownership = ownership
        self.custody = custody
        self.catalog = catalog
        self.restriction = restriction
        self.journal = journal
        self.vault_address = vault_address
        self.admin_address = admin_address
        self.clock = clock or (lambda: int(time.time()))

    # ── Queries ─────────────────────────────────────────────────

    def classification(self, token_id: int) -> TokenClass:
        """Authoritative classification; NONEXISTENT unless held on this ledger."""
        if not self.ownership.exists(token_id):
            return TokenClass.NONEXISTENT
        record = self.state.tokens.get(token_id)
        return record.classification if record is not None else TokenClass.NONEXISTENT

    def token(self, token_id: int) -> TokenView:
        classification = self.classification(token_id)
        if classification == TokenClass.NONEXISTENT:
            return TokenView(token_id=token_id, classification=classification)
        record = self.state.tokens[token_id]
        return TokenView(
            token_id=token_id,
            classification=classification,
            owner=self.ownership.find_owner(token_id),
            restricted=record.restricted,
            uri=record.uri,
        )

    def fusion_link(self, fused_id: int) -> FusionLink | None:
        components = self.state.fusion_links.get(fused_id)
        if components is None:
            return None
        return FusionLink(fused_id=fused_id, components=components)

    # ── Minting ─────────────────────────────────────────────────

    def mint_base(self, caller: str, asset: str) -> int:
        """Deposit the asset's price and mint a BASE token to the caller."""
        self._require_minting_open()
        if self.identity.minted_base() >= self.config.base_supply_cap:
            raise MaxSupplyReached(TokenClass.BASE.value, self.config.base_supply_cap)
        if not self.catalog.is_supported(asset) or self.catalog.price_of(asset) == 0:
            raise UnsupportedAsset(asset)

        price = self.catalog.price_of(asset)
        token_id = self.identity.allocate_base()
        self.ownership.check_mint(token_id, caller)
        self.custody.deposit(token_id, asset, caller, price)
        self._set_record(token_id, TokenClass.BASE, self.catalog.metadata_of(asset))
        self.ownership.mint(token_id, caller)

        self.journal.record(
            EventType.MINTED, token_id,
            {"classification": TokenClass.BASE.value, "asset": asset, "amount": price},
        )
        logger.info("BASE minted: token=%d asset=%s owner=%s", token_id, asset, caller)
        return token_id

    def mint_gift(self, caller: str, recipient: str) -> int:
        """Caller pays the fixed gift price; recipient receives a GIFT token."""
        self._require_minting_open()
        if self.identity.minted_gift() >= self.config.gift_supply_cap:
            raise MaxSupplyReached(TokenClass.GIFT.value, self.config.gift_supply_cap)
        asset = self.config.gift_asset
        if asset is None:
            raise UnsupportedAsset(asset)

        price = self.config.gift_price
        token_id = self.identity.allocate_gift()
        self.ownership.check_mint(token_id, recipient)
        self.custody.deposit(token_id, asset, caller, price)
        self._set_record(token_id, TokenClass.GIFT, self.config.gift_uri)
        self.ownership.mint(token_id, recipient)

        self.journal.record(
            EventType.MINTED, token_id,
            {"classification": TokenClass.GIFT.value, "asset": asset,
             "amount": price, "payer": caller},
        )
        logger.info("GIFT minted: token=%d payer=%s recipient=%s", token_id, caller, recipient)
        return token_id

    def mint_soulbound(self, caller: str, recipient: str, uri: str) -> int:
        """Admin-only; no cutoff, no deposit. The token is restricted from birth."""
        if caller != self.admin_address:
            raise Unauthorized(caller)

        token_id = self.identity.allocate_premium()
        self._set_record(token_id, TokenClass.SOULBOUND, uri)
        self.ownership.mint(token_id, recipient)
        self.restriction.set_restricted(token_id, True)

        self.journal.record(
            EventType.MINTED, token_id, {"classification": TokenClass.SOULBOUND.value},
        )
        logger.info("SOULBOUND minted: token=%d recipient=%s", token_id, recipient)
        return token_id

    # ── Fusion ──────────────────────────────────────────────────

    def fuse(self, caller: str, id1: int, id2: int, id3: int, id4: int) -> int:
        """
        Escrow four BASE tokens backed by four distinct assets and mint a
        FUSED token that references them.
        """
        components = (id1, id2, id3, id4)
        for token_id in components:
            if self.ownership.find_owner(token_id) != caller:
                raise OnlyTokenOwnerCanFuseTokens(token_id)
        for token_id in components:
            if self.classification(token_id) != TokenClass.BASE:
                raise CanOnlyFuseBaseTokens(token_id)

        underlying = []
        for token_id in components:
            held = self.custody.assets_of(token_id)
            if len(held) != 1:
                raise MissingCustodyRecord(token_id)
            underlying.append(held[0])
        for i, j in FUSION_PAIRS:
            if underlying[i] == underlying[j]:
                raise SameTokenUnderlyingAssets(components[i], components[j], underlying[i])

        for token_id in components:
            self.ownership.transfer(token_id, caller, self.vault_address, caller)

        fused_id = self.identity.allocate_premium()
        self.state.fusion_links[fused_id] = components
        self._set_record(fused_id, TokenClass.FUSED, self.config.fused_uri)
        self.ownership.mint(fused_id, caller)

        self.journal.record(EventType.FUSED, fused_id, {"components": list(components)})
        logger.info("Fused: token=%d components=%s owner=%s", fused_id, components, caller)
        return fused_id

    def unfuse(self, caller: str, fused_id: int) -> tuple[int, int, int, int]:
        """
        Burn a FUSED token and hand its four components back to the caller.

        The FUSED token is destroyed before any component moves.
        """
        if self.ownership.find_owner(fused_id) != caller:
            raise OnlyTokenOwnerCanUnfuseTokens(fused_id)
        if self.classification(fused_id) != TokenClass.FUSED:
            raise CanOnlyUnfuseFusedTokens(fused_id)
        components = self.state.fusion_links.pop(fused_id, None)
        if components is None:
            raise CanOnlyUnfuseFusedTokens(fused_id)

        self.ownership.burn(fused_id)
        self.state.tokens.pop(fused_id, None)

        for token_id in components:
            self.ownership.transfer(token_id, self.vault_address, caller, self.vault_address)

        self.journal.record(EventType.UNFUSED, fused_id, {"components": list(components)})
        logger.info("Unfused: token=%d components=%s owner=%s", fused_id, components, caller)
        return components

    # ── Burn ────────────────────────────────────────────────────

    def burn(self, caller: str, token_id: int) -> list[CustodyRecord]:
        """
        Destroy the token and pay every custody record to the caller.

        Ownership and classification are removed first and the payout comes
        last, the reverse of a withdraw-then-remove burn. The token is gone
        before any value leaves the vault, so an asset that re-enters during
        the payout finds nothing left to burn.

        Returns:
            The custody records that were paid out.
        """
        if self.ownership.find_owner(token_id) != caller:
            raise OnlyTokenOwnerCanBurnTokens(token_id)
        if self.classification(token_id) == TokenClass.FUSED:
            raise UnfuseTokenBeforeBurning(token_id)

        self.state.tokens[token_id].classification = TokenClass.NONEXISTENT
        self.ownership.burn(token_id)
        self.state.tokens.pop(token_id, None)
        paid = self.custody.withdraw_all(token_id, caller)

        self.journal.record(
            EventType.BURNED, token_id,
            {"paid": [record.model_dump() for record in paid]},
        )
        logger.info("Burned: token=%d owner=%s records=%d", token_id, caller, len(paid))
        return paid

    # ── Internal ────────────────────────────────────────────────

    def _require_minting_open(self) -> None:
        now = self.clock()
        if now > self.config.mint_cutoff:
            raise MintingPeriodEnded(now, self.config.mint_cutoff)

    def _set_record(self, token_id: int, classification: TokenClass, uri: str) -> None:
        record = self.state.token(token_id)
        record.classification = classification
        record.uri = uri
