"""
Custody Ledger — internal balances of fungible assets deposited against tokens.

Conservation invariant, per asset:

    Σ balance(token, asset) over all tokens + collected_fees(asset)
        == asset.balance_of(vault)

Value enters only through deposit (reached from minting) and leaves only
through withdraw (reached from burning) or the fee sweep. The externally
visible deposit/withdraw entry points exist for interface compatibility and
always fail.

Withdrawals mutate the ledger before the external transfer is made, so an
asset that calls back into the vault during the transfer already sees the
reduced balance.
"""

from __future__ import annotations

import logging

from fusion_vault.config import ChainConfig
from fusion_vault.custody.assets import FungibleAsset
from fusion_vault.errors import (
    ExternalDepositDisabled,
    ExternalWithdrawDisabled,
    InsufficientAllowance,
    InsufficientBalance,
    TransferFailed,
    UnsupportedAsset,
)
from fusion_vault.schema import BASIS_POINTS, CustodyRecord
from fusion_vault.state import ChainState, CustodyState

logger = logging.getLogger(__name__)


class CustodyLedger:
    """Per-(token, asset) balances, fee accrual, and the transfer gating rules."""

    def __init__(
        self,
        state: ChainState,
        config: ChainConfig,
        vault_address: str,
        assets: list[FungibleAsset] | None = None,
    ) -> None:
        self.state = state
        self.config = config
        self.vault_address = vault_address
        self.assets: dict[str, FungibleAsset] = {}
        for asset in assets or []:
            self.register_asset(asset)

    @property
    def _cust(self) -> CustodyState:
        return self.state.custody

    def register_asset(self, asset: FungibleAsset) -> None:
        """Attach the external capability for an asset id."""
        self.assets[asset.asset_id] = asset

    def asset(self, asset_id: str) -> FungibleAsset:
        capability = self.assets.get(asset_id)
        if capability is None:
            raise UnsupportedAsset(asset_id)
        return capability

    # ── Queries ─────────────────────────────────────────────────

    def quote_fee(self, net_amount: int) -> int:
        """fee = floor(net_amount * fee_bps / 10000)"""
        return net_amount * self.config.fee_basis_points // BASIS_POINTS

    def balance(self, token_id: int, asset_id: str) -> int:
        return self._cust.balances.get((token_id, asset_id), 0)

    def assets_of(self, token_id: int) -> list[str]:
        return list(self._cust.token_assets.get(token_id, []))

    def asset_count(self, token_id: int) -> int:
        return len(self._cust.token_assets.get(token_id, []))

    def records_of(self, token_id: int) -> list[CustodyRecord]:
        return [
            CustodyRecord(token_id=token_id, asset=asset, balance=self.balance(token_id, asset))
            for asset in self.assets_of(token_id)
        ]

    def collected_fees(self, asset_id: str) -> int:
        return self._cust.collected_fees.get(asset_id, 0)

    def total_custody(self, asset_id: str) -> int:
        return sum(
            amount for (_, asset), amount in self._cust.balances.items()
            if asset == asset_id
        )

    def outbound_transfers(self, token_id: int) -> int:
        return self._cust.outbound_transfers.get(token_id, 0)

    # ── Deposit / Withdraw ──────────────────────────────────────

    def deposit(self, token_id: int, asset_id: str, payer: str, net_amount: int) -> int:
        """
        Pull net_amount + fee from payer and credit net_amount to the token.

        The allowance and balance checks fail fast with a precise error; the
        external transfer's own outcome is the authoritative one.

        Returns:
            The fee accrued.

        Raises:
            InsufficientAllowance, InsufficientBalance, TransferFailed
        """
        capability = self.asset(asset_id)
        fee = self.quote_fee(net_amount)
        total = net_amount + fee

        allowance = capability.allowance(payer, self.vault_address)
        if allowance < total:
            raise InsufficientAllowance(payer, asset_id, total, allowance)
        held = capability.balance_of(payer)
        if held < total:
            raise InsufficientBalance(payer, asset_id, total, held)

        try:
            ok = capability.transfer_from(self.vault_address, payer, self.vault_address, total)
        except Exception as exc:
            raise TransferFailed(asset_id, payer, self.vault_address, total) from exc
        if not ok:
            raise TransferFailed(asset_id, payer, self.vault_address, total)

        cust = self._cust
        key = (token_id, asset_id)
        cust.balances[key] = cust.balances.get(key, 0) + net_amount
        held_assets = cust.token_assets.setdefault(token_id, [])
        if asset_id not in held_assets:
            held_assets.append(asset_id)
        cust.collected_fees[asset_id] = cust.collected_fees.get(asset_id, 0) + fee

        logger.info(
            "Deposit: token=%d asset=%s amount=%d fee=%d payer=%s",
            token_id, asset_id, net_amount, fee, payer,
        )
        return fee

    def withdraw(self, token_id: int, asset_id: str, recipient: str, amount: int) -> None:
        """
        Pay amount of asset out of a token's record.

        The record is decremented and the outbound counter incremented before
        the external transfer is attempted.
        """
        cust = self._cust
        key = (token_id, asset_id)
        available = cust.balances.get(key, 0)
        if available < amount:
            raise InsufficientBalance(f"token:{token_id}", asset_id, amount, available)

        cust.balances[key] = available - amount
        cust.outbound_transfers[token_id] = cust.outbound_transfers.get(token_id, 0) + 1

        capability = self.asset(asset_id)
        try:
            ok = capability.transfer(self.vault_address, recipient, amount)
        except Exception as exc:
            raise TransferFailed(asset_id, self.vault_address, recipient, amount) from exc
        if not ok:
            raise TransferFailed(asset_id, self.vault_address, recipient, amount)

        logger.info(
            "Withdraw: token=%d asset=%s amount=%d recipient=%s",
            token_id, asset_id, amount, recipient,
        )

    def withdraw_all(self, token_id: int, recipient: str) -> list[CustodyRecord]:
        """Pay out every record of a token and zero its asset count."""
        paid = [record for record in self.records_of(token_id) if record.balance > 0]
        for record in paid:
            self.withdraw(token_id, record.asset, recipient, record.balance)
        cust = self._cust
        for asset in self.assets_of(token_id):
            cust.balances.pop((token_id, asset), None)
        cust.token_assets.pop(token_id, None)
        return paid

    def deposit_external(self, *args: object, **kwargs: object) -> None:
        raise ExternalDepositDisabled()

    def withdraw_external(self, *args: object, **kwargs: object) -> None:
        raise ExternalWithdrawDisabled()

    # ── Fees ────────────────────────────────────────────────────

    def sweep_fees(self, asset_id: str, recipient: str) -> int:
        """
        Pay all accrued fees of an asset to recipient.

        Zero accrued fees is a successful no-op with no external call, since
        some assets reject zero-value transfers.
        """
        amount = self.collected_fees(asset_id)
        if amount == 0:
            return 0
        self._cust.collected_fees[asset_id] = 0

        capability = self.asset(asset_id)
        try:
            ok = capability.transfer(self.vault_address, recipient, amount)
        except Exception as exc:
            raise TransferFailed(asset_id, self.vault_address, recipient, amount) from exc
        if not ok:
            raise TransferFailed(asset_id, self.vault_address, recipient, amount)

        logger.info("Fees swept: asset=%s amount=%d recipient=%s", asset_id, amount, recipient)
        return amount
