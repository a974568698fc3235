"""
VaultChain — one ledger's complete Fusion Vault, behind a single lock.

Every public operation:

1. takes the chain's re-entrant lock (one operation at a time; a collaborator
   called during an operation may call back in on the same thread),
2. snapshots the store and the journal length,
3. runs, and on any exception restores the snapshot and re-raises.

So an operation either commits all of its state changes or none of them.
External collaborators (assets, transport, inspector) keep their own state
and are called only after the vault's own checks have passed.

Addresses are lowercased on the way in, so owners, approvals and bridge
recipients always hold the same form the bridge codec decodes.

Usage:
    chain = VaultChain.from_settings(settings, assets=[usdc, weth, dai, wbtc])
    chain.add_supported_asset(admin, "usdc", price=10_000, uri="ipfs://usdc.json")
    token_id = chain.mint_base(alice, "usdc")
"""

from __future__ import annotations

import functools
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from fusion_vault.bridge.protocol import BridgeEndpoint, BridgeTransport, MessageInspector
from fusion_vault.config import ChainConfig, VaultSettings
from fusion_vault.custody.assets import AssetCatalog, FungibleAsset
from fusion_vault.custody.ledger import CustodyLedger
from fusion_vault.errors import Unauthorized
from fusion_vault.lifecycle.machine import TokenLifecycle
from fusion_vault.registry.events import EventJournal
from fusion_vault.registry.identity import IdentitySpace
from fusion_vault.registry.ownership import OwnershipRegistry, ReceiverHook
from fusion_vault.registry.restriction import PauseGate, TransferRestrictionPolicy
from fusion_vault.schema import (
    ComposeAcknowledgement,
    CustodyRecord,
    EventType,
    FusionLink,
    InboundPacket,
    OutboundPacket,
    SendParam,
    SupportedAsset,
    TokenClass,
    TokenView,
    canonical_address,
)
from fusion_vault.state import ChainState

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def transactional(method: F) -> F:
    """Run a VaultChain method all-or-nothing under the chain lock."""

    @functools.wraps(method)
    def wrapper(self: VaultChain, *args: Any, **kwargs: Any) -> Any:
        with self.transaction():
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _canonical_send(send_param: SendParam) -> SendParam:
    return send_param.model_copy(update={"to": canonical_address(send_param.to)})


class VaultChain:
    """The Fusion Vault on one ledger."""

    def __init__(
        self,
        config: ChainConfig,
        eid: int,
        vault_address: str,
        admin_address: str,
        base_range_size: int,
        gift_range_size: int,
        assets: list[FungibleAsset] | None = None,
        state: ChainState | None = None,
        clock: Callable[[], int] | None = None,
        transport: BridgeTransport | None = None,
        inspector: MessageInspector | None = None,
        journal: EventJournal | None = None,
    ) -> None:
        self.config = config
        self.eid = eid
        self.vault_address = vault_address = canonical_address(vault_address)
        self.admin_address = admin_address = canonical_address(admin_address)
        self.state = state or ChainState()
        self.journal = journal if journal is not None else EventJournal()
        self._lock = threading.RLock()

        self.identity = IdentitySpace(self.state, base_range_size, gift_range_size)
        self.restriction = TransferRestrictionPolicy(self.state)
        self.ownership = OwnershipRegistry(
            self.state,
            gates=[PauseGate(config), self.restriction],
            observers=[self.journal.observe_ownership],
        )
        self.catalog = AssetCatalog(self.state)
        self.custody = CustodyLedger(self.state, config, vault_address, assets)
        self.lifecycle = TokenLifecycle(
            self.state, config, self.identity, self.ownership, self.custody,
            self.catalog, self.restriction, self.journal,
            vault_address=vault_address, admin_address=admin_address, clock=clock,
        )
        self.bridge = BridgeEndpoint(
            self.state, eid, self.identity, self.ownership, self.restriction,
            self.journal, vault_address, transport=transport, inspector=inspector,
        )

        if len(self.journal) == 0:
            self.journal.record(EventType.GENESIS, data={"eid": eid, "vault": vault_address})

    @classmethod
    def from_settings(
        cls,
        settings: VaultSettings,
        assets: list[FungibleAsset] | None = None,
        state: ChainState | None = None,
        **kwargs: Any,
    ) -> VaultChain:
        return cls(
            config=ChainConfig.from_settings(settings),
            eid=settings.chain_eid,
            vault_address=settings.vault_address,
            admin_address=settings.admin_address,
            base_range_size=settings.base_range_size,
            gift_range_size=settings.gift_range_size,
            assets=assets,
            state=state,
            **kwargs,
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = self.state.snapshot()
            journal_length = len(self.journal)
            try:
                yield
            except BaseException as exc:
                self.state.restore(snapshot)
                self.journal.truncate(journal_length)
                logger.debug("Operation rolled back: %s", type(exc).__name__)
                raise

    # ── Administration ──────────────────────────────────────────

    def _require_admin(self, caller: str) -> None:
        if canonical_address(caller) != self.admin_address:
            raise Unauthorized(caller)

    @transactional
    def add_supported_asset(self, caller: str, asset: str, price: int, uri: str = "") -> None:
        self._require_admin(caller)
        self.catalog.add(asset, price, uri)

    @transactional
    def remove_supported_asset(self, caller: str, asset: str) -> None:
        self._require_admin(caller)
        self.catalog.remove(asset)

    @transactional
    def set_peer(self, caller: str, eid: int, peer: str) -> None:
        self._require_admin(caller)
        self.bridge.set_peer(eid, canonical_address(peer))

    @transactional
    def sweep_fees(self, caller: str, asset: str, recipient: str) -> int:
        self._require_admin(caller)
        recipient = canonical_address(recipient)
        amount = self.custody.sweep_fees(asset, recipient)
        if amount:
            self.journal.record(
                EventType.FEES_SWEPT, data={"asset": asset, "amount": amount, "to": recipient},
            )
        return amount

    def register_asset(self, asset: FungibleAsset) -> None:
        self.custody.register_asset(asset)

    def register_receiver(self, address: str, hook: ReceiverHook) -> None:
        self.ownership.register_receiver(canonical_address(address), hook)

    # ── Lifecycle ───────────────────────────────────────────────

    @transactional
    def mint_base(self, caller: str, asset: str) -> int:
        return self.lifecycle.mint_base(canonical_address(caller), asset)

    @transactional
    def mint_gift(self, caller: str, recipient: str) -> int:
        return self.lifecycle.mint_gift(canonical_address(caller), canonical_address(recipient))

    @transactional
    def mint_soulbound(self, caller: str, recipient: str, uri: str) -> int:
        return self.lifecycle.mint_soulbound(
            canonical_address(caller), canonical_address(recipient), uri,
        )

    @transactional
    def fuse(self, caller: str, id1: int, id2: int, id3: int, id4: int) -> int:
        return self.lifecycle.fuse(canonical_address(caller), id1, id2, id3, id4)

    @transactional
    def unfuse(self, caller: str, fused_id: int) -> tuple[int, int, int, int]:
        return self.lifecycle.unfuse(canonical_address(caller), fused_id)

    @transactional
    def burn(self, caller: str, token_id: int) -> list[CustodyRecord]:
        return self.lifecycle.burn(canonical_address(caller), token_id)

    # ── ERC-721 surface ─────────────────────────────────────────

    @transactional
    def transfer_from(self, caller: str, from_owner: str, to: str, token_id: int) -> None:
        self.ownership.transfer(
            token_id, canonical_address(from_owner), canonical_address(to),
            canonical_address(caller),
        )

    @transactional
    def safe_transfer_from(
        self, caller: str, from_owner: str, to: str, token_id: int, data: bytes = b"",
    ) -> None:
        self.ownership.safe_transfer(
            token_id, canonical_address(from_owner), canonical_address(to),
            canonical_address(caller), data,
        )

    @transactional
    def approve(self, caller: str, approved: str, token_id: int) -> None:
        self.ownership.approve(canonical_address(caller), canonical_address(approved), token_id)

    @transactional
    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> None:
        self.ownership.set_approval_for_all(
            canonical_address(caller), canonical_address(operator), approved,
        )

    def deposit_external(self, *args: object, **kwargs: object) -> None:
        self.custody.deposit_external(*args, **kwargs)

    def withdraw_external(self, *args: object, **kwargs: object) -> None:
        self.custody.withdraw_external(*args, **kwargs)

    # ── Bridge ──────────────────────────────────────────────────

    def quote_send(self, caller: str, send_param: SendParam) -> OutboundPacket:
        """Build the outbound message without sending it."""
        with self._lock:
            return self.bridge.build_outbound_message(
                _canonical_send(send_param), canonical_address(caller),
            )

    @transactional
    def send(self, caller: str, send_param: SendParam) -> OutboundPacket:
        return self.bridge.send(canonical_address(caller), _canonical_send(send_param))

    @transactional
    def receive(self, packet: InboundPacket) -> ComposeAcknowledgement:
        origin = packet.origin.model_copy(update={"sender": canonical_address(packet.origin.sender)})
        return self.bridge.receive(packet.model_copy(update={"origin": origin}))

    # ── Queries ─────────────────────────────────────────────────

    def token(self, token_id: int) -> TokenView:
        return self.lifecycle.token(token_id)

    def classification(self, token_id: int) -> TokenClass:
        return self.lifecycle.classification(token_id)

    def owner_of(self, token_id: int) -> str:
        return self.ownership.owner_of(token_id)

    def balance_of(self, owner: str) -> int:
        return self.ownership.balance_of(canonical_address(owner))

    def tokens_of(self, owner: str) -> list[int]:
        return self.ownership.tokens_of(canonical_address(owner))

    def total_supply(self) -> int:
        return self.ownership.total_supply()

    def fusion_link(self, fused_id: int) -> FusionLink | None:
        return self.lifecycle.fusion_link(fused_id)

    def custody_balance(self, token_id: int, asset: str) -> int:
        return self.custody.balance(token_id, asset)

    def collected_fees(self, asset: str) -> int:
        return self.custody.collected_fees(asset)

    def supported_assets(self) -> list[SupportedAsset]:
        return self.catalog.list_assets()
