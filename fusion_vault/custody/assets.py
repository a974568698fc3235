"""
Fungible assets — the external capability and the supported-asset catalog.

The core never implements an asset. It consumes the FungibleAsset protocol
(allowance, balance, transfer, transfer-from) and treats a False return and
a raised exception alike. InMemoryAsset is a reference implementation used
by simulations and tests; it can be told to fail, revert, or call back into
the vault while a transfer is in flight.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol, runtime_checkable

from fusion_vault.errors import UnsupportedAsset
from fusion_vault.schema import SupportedAsset
from fusion_vault.state import CatalogState, ChainState

logger = logging.getLogger(__name__)


@runtime_checkable
class FungibleAsset(Protocol):
    """External fungible-asset capability consumed by the custody ledger."""

    asset_id: str

    def allowance(self, owner: str, spender: str) -> int: ...

    def balance_of(self, owner: str) -> int: ...

    def transfer_from(self, spender: str, sender: str, recipient: str, amount: int) -> bool: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...


class InMemoryAsset:
    """
    Dictionary-backed fungible asset.

    Attributes:
        fail_transfers: Return False from every transfer (no state change).
        revert_transfers: Raise from every transfer (no state change).
        on_transfer: Callback invoked after balances move, before returning.
            Used to model a malicious asset re-entering the vault.
    """

    def __init__(self, asset_id: str) -> None:
        self.asset_id = asset_id
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.fail_transfers = False
        self.revert_transfers = False
        self.on_transfer: Callable[[str, str, int], None] | None = None
        self.transfer_calls = 0

    def mint(self, account: str, amount: int) -> None:
        self.balances[account] = self.balances.get(account, 0) + amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self.allowances[(owner, spender)] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def balance_of(self, owner: str) -> int:
        return self.balances.get(owner, 0)

    def transfer_from(self, spender: str, sender: str, recipient: str, amount: int) -> bool:
        if not self._precheck():
            return False
        allowed = self.allowance(sender, spender)
        if allowed < amount or self.balance_of(sender) < amount:
            return False
        self.allowances[(sender, spender)] = allowed - amount
        return self._move(sender, recipient, amount)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if not self._precheck():
            return False
        if self.balance_of(sender) < amount:
            return False
        return self._move(sender, recipient, amount)

    def _precheck(self) -> bool:
        self.transfer_calls += 1
        if self.revert_transfers:
            raise RuntimeError(f"{self.asset_id}: transfer reverted")
        return not self.fail_transfers

    def _move(self, sender: str, recipient: str, amount: int) -> bool:
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[recipient] = self.balance_of(recipient) + amount
        if self.on_transfer is not None:
            self.on_transfer(sender, recipient, amount)
        return True


class AssetCatalog:
    """
    Allow-listed assets with price and metadata.

    Membership is an unordered set: O(1) lookup through an index map, and
    O(1) removal by moving the last element into the removed slot.
    """

    def __init__(self, state: ChainState) -> None:
        self.state = state

    @property
    def _cat(self) -> CatalogState:
        return self.state.catalog

    def add(self, asset: str, price: int, uri: str = "") -> None:
        cat = self._cat
        if asset not in cat.index:
            cat.index[asset] = len(cat.assets)
            cat.assets.append(asset)
        cat.prices[asset] = price
        cat.metadata[asset] = uri
        logger.info("Supported asset set: asset=%s price=%d", asset, price)

    def remove(self, asset: str) -> None:
        cat = self._cat
        position = cat.index.pop(asset, None)
        if position is None:
            raise UnsupportedAsset(asset)
        last = cat.assets.pop()
        if last != asset:
            cat.assets[position] = last
            cat.index[last] = position
        cat.prices.pop(asset, None)
        cat.metadata.pop(asset, None)
        logger.info("Supported asset removed: asset=%s", asset)

    def set_price(self, asset: str, price: int) -> None:
        if not self.is_supported(asset):
            raise UnsupportedAsset(asset)
        self._cat.prices[asset] = price

    def set_metadata(self, asset: str, uri: str) -> None:
        if not self.is_supported(asset):
            raise UnsupportedAsset(asset)
        self._cat.metadata[asset] = uri

    def is_supported(self, asset: str) -> bool:
        return asset in self._cat.index

    def price_of(self, asset: str) -> int:
        return self._cat.prices.get(asset, 0)

    def metadata_of(self, asset: str) -> str:
        return self._cat.metadata.get(asset, "")

    def get(self, asset: str) -> SupportedAsset:
        if not self.is_supported(asset):
            raise UnsupportedAsset(asset)
        return SupportedAsset(
            asset=asset, price=self.price_of(asset), uri=self.metadata_of(asset),
        )

    def list_assets(self) -> list[SupportedAsset]:
        return [self.get(asset) for asset in self._cat.assets]

    def __len__(self) -> int:
        return len(self._cat.assets)
