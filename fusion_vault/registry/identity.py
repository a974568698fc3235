"""
Identity Space — disjoint token-id ranges and next-free-id allocation.

    [0, base_size)                         BASE
    [base_size, base_size + gift_size)     GIFT
    [base_size + gift_size, ∞)             PREMIUM (FUSED and SOULBOUND)

Allocation is "peek current counter, increment". Counters only ever move
forward, so an id is never handed out twice, even after a burn.
"""

from __future__ import annotations

from fusion_vault.errors import MaxSupplyReached, TokenIdOutOfRange
from fusion_vault.schema import TokenClass, TokenRange
from fusion_vault.state import ChainState, IdentityState


class IdentitySpace:
    """Hands out the next free id per range."""

    def __init__(self, state: ChainState, base_range_size: int, gift_range_size: int) -> None:
        self.state = state
        identity = state.identity
        if identity.premium_start == 0:
            gift_start = base_range_size
            premium_start = base_range_size + gift_range_size
            state.identity = IdentityState(
                base_start=0,
                gift_start=gift_start,
                premium_start=premium_start,
                next_base=0,
                next_gift=gift_start,
                next_premium=premium_start,
            )

    @property
    def _ids(self) -> IdentityState:
        return self.state.identity

    # ── Allocation ──────────────────────────────────────────────

    def allocate_base(self) -> int:
        """Next BASE id; the range end is a hard cap whatever the configured supply."""
        token_id = self._ids.next_base
        if token_id >= self._ids.gift_start:
            raise MaxSupplyReached(TokenClass.BASE.value, self._ids.gift_start - self._ids.base_start)
        self._ids.next_base += 1
        return token_id

    def allocate_gift(self) -> int:
        token_id = self._ids.next_gift
        if token_id >= self._ids.premium_start:
            raise MaxSupplyReached(TokenClass.GIFT.value, self._ids.premium_start - self._ids.gift_start)
        self._ids.next_gift += 1
        return token_id

    def allocate_premium(self) -> int:
        token_id = self._ids.next_premium
        self._ids.next_premium += 1
        return token_id

    # ── Queries ─────────────────────────────────────────────────

    def minted_base(self) -> int:
        """Number of BASE ids handed out so far."""
        return self._ids.next_base - self._ids.base_start

    def minted_gift(self) -> int:
        return self._ids.next_gift - self._ids.gift_start

    def range_of(self, token_id: int) -> TokenRange:
        """
        Candidate range for an id.

        Used for range-validated admin batches and first-arrival bridge
        classification only; the stored classification is authoritative.
        """
        if token_id < 0:
            raise TokenIdOutOfRange(token_id, "any")
        if token_id < self._ids.gift_start:
            return TokenRange.BASE
        if token_id < self._ids.premium_start:
            return TokenRange.GIFT
        return TokenRange.PREMIUM

    def ids_in_range(self, expected: TokenRange, token_ids: list[int]) -> list[int]:
        """Validate that every id of a batch falls in one range."""
        for token_id in token_ids:
            if self.range_of(token_id) != expected:
                raise TokenIdOutOfRange(token_id, expected.value)
        return list(token_ids)
