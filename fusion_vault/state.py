"""
Mutable chain state — the single store behind every component.

Each component owns one slice of ChainState and only touches its own slice.
Keeping all slices in one object lets the chain facade snapshot and restore
the whole store as a unit, and lets the repository persist it in one
transaction.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from fusion_vault.schema import TokenClass


@dataclass
class IdentityState:
    base_start: int = 0
    gift_start: int = 0
    premium_start: int = 0
    next_base: int = 0
    next_gift: int = 0
    next_premium: int = 0


@dataclass
class OwnershipState:
    owners: dict[int, str] = field(default_factory=dict)
    approvals: dict[int, str] = field(default_factory=dict)
    operators: dict[str, set[str]] = field(default_factory=dict)
    owned: dict[str, list[int]] = field(default_factory=dict)


@dataclass
class TokenRecord:
    # Survives a bridge debit so the token is reconstituted on return.
    classification: TokenClass = TokenClass.NONEXISTENT
    restricted: bool = False
    uri: str = ""


@dataclass
class CustodyState:
    balances: dict[tuple[int, str], int] = field(default_factory=dict)
    token_assets: dict[int, list[str]] = field(default_factory=dict)
    outbound_transfers: dict[int, int] = field(default_factory=dict)
    collected_fees: dict[str, int] = field(default_factory=dict)


@dataclass
class CatalogState:
    assets: list[str] = field(default_factory=list)
    index: dict[str, int] = field(default_factory=dict)
    prices: dict[str, int] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class BridgeState:
    peers: dict[int, str] = field(default_factory=dict)
    processed: set[str] = field(default_factory=set)
    outbound_nonce: dict[int, int] = field(default_factory=dict)


@dataclass
class ChainState:
    identity: IdentityState = field(default_factory=IdentityState)
    ownership: OwnershipState = field(default_factory=OwnershipState)
    tokens: dict[int, TokenRecord] = field(default_factory=dict)
    custody: CustodyState = field(default_factory=CustodyState)
    fusion_links: dict[int, tuple[int, int, int, int]] = field(default_factory=dict)
    catalog: CatalogState = field(default_factory=CatalogState)
    bridge: BridgeState = field(default_factory=BridgeState)

    def snapshot(self) -> ChainState:
        return copy.deepcopy(self)

    def restore(self, snapshot: ChainState) -> None:
        """Put every slice back in place without replacing this object."""
        self.identity = snapshot.identity
        self.ownership = snapshot.ownership
        self.tokens = snapshot.tokens
        self.custody = snapshot.custody
        self.fusion_links = snapshot.fusion_links
        self.catalog = snapshot.catalog
        self.bridge = snapshot.bridge

    def token(self, token_id: int) -> TokenRecord:
        record = self.tokens.get(token_id)
        if record is None:
            record = TokenRecord()
            self.tokens[token_id] = record
        return record
