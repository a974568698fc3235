"""
Ownership Registry — who owns which token id.

Every mutation (mint, transfer, burn) goes through a single `apply()`
pipeline:

    gate checks (pause, restriction)  →  store mutation  →  observers

The gates may abort the mutation; observers are purely informational and
fire for every successful mutation, including vault-held escrow during
fusion and bridge moves.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from fusion_vault.errors import (
    IncorrectOwner,
    InsufficientApproval,
    InvalidReceiver,
    NonexistentToken,
    TokenAlreadyExists,
)
from fusion_vault.registry.events import OwnershipObserver
from fusion_vault.schema import (
    ZERO_ADDRESS,
    MutationContext,
    MutationKind,
    OwnershipMutation,
)
from fusion_vault.state import ChainState, OwnershipState

logger = logging.getLogger(__name__)

# receiver(operator, from_owner, token_id, data) -> accepted
ReceiverHook = Callable[[str, str, int, bytes], bool]


class MutationGate(Protocol):
    def check(self, mutation: OwnershipMutation, context: MutationContext) -> None: ...


class OwnershipRegistry:
    """ERC-721 style ownership, approvals and enumeration over ChainState."""

    def __init__(
        self,
        state: ChainState,
        gates: list[MutationGate] | None = None,
        observers: list[OwnershipObserver] | None = None,
    ) -> None:
        self.state = state
        self.gates: list[MutationGate] = list(gates or [])
        self.observers: list[OwnershipObserver] = list(observers or [])
        self.receivers: dict[str, ReceiverHook] = {}

    @property
    def _own(self) -> OwnershipState:
        return self.state.ownership

    # ── Queries ─────────────────────────────────────────────────

    def find_owner(self, token_id: int) -> str | None:
        return self._own.owners.get(token_id)

    def owner_of(self, token_id: int) -> str:
        owner = self._own.owners.get(token_id)
        if owner is None:
            raise NonexistentToken(token_id)
        return owner

    def exists(self, token_id: int) -> bool:
        return token_id in self._own.owners

    def balance_of(self, owner: str) -> int:
        return len(self._own.owned.get(owner, []))

    def tokens_of(self, owner: str) -> list[int]:
        return list(self._own.owned.get(owner, []))

    def total_supply(self) -> int:
        return len(self._own.owners)

    def token_by_index(self, index: int) -> int:
        tokens = list(self._own.owners)
        if not 0 <= index < len(tokens):
            raise IndexError(f"Token index {index} out of bounds")
        return tokens[index]

    # ── Approvals ───────────────────────────────────────────────

    def approve(self, caller: str, approved: str, token_id: int) -> None:
        owner = self.owner_of(token_id)
        if caller != owner and not self.is_approved_for_all(owner, caller):
            raise InsufficientApproval(caller, token_id)
        if approved == ZERO_ADDRESS:
            self._own.approvals.pop(token_id, None)
        else:
            self._own.approvals[token_id] = approved

    def get_approved(self, token_id: int) -> str | None:
        self.owner_of(token_id)
        return self._own.approvals.get(token_id)

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        if operator in (owner, ZERO_ADDRESS):
            raise InvalidReceiver(operator)
        operators = self._own.operators.setdefault(owner, set())
        if approved:
            operators.add(operator)
        else:
            operators.discard(operator)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return operator in self._own.operators.get(owner, set())

    def is_authorized(self, spender: str, token_id: int) -> bool:
        """Owner, per-token approved account, or operator of the owner."""
        owner = self._own.owners.get(token_id)
        if owner is None:
            return False
        return (
            spender == owner
            or self._own.approvals.get(token_id) == spender
            or self.is_approved_for_all(owner, spender)
        )

    def register_receiver(self, address: str, hook: ReceiverHook) -> None:
        """Register an on-received hook consulted by safe_transfer."""
        self.receivers[address] = hook

    # ── Mutations ───────────────────────────────────────────────

    def check_mint(
        self,
        token_id: int,
        owner: str,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> OwnershipMutation:
        """Run every mint check without changing the store."""
        if owner == ZERO_ADDRESS:
            raise InvalidReceiver(owner)
        if self.exists(token_id):
            raise TokenAlreadyExists(token_id)
        mutation = OwnershipMutation(kind=MutationKind.MINT, token_id=token_id, to_owner=owner)
        self._run_gates(mutation, context)
        return mutation

    def mint(
        self,
        token_id: int,
        owner: str,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> None:
        self._commit(self.check_mint(token_id, owner, context))

    def transfer(
        self,
        token_id: int,
        from_owner: str,
        to: str,
        caller: str,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> None:
        """
        Move a token between accounts.

        The gates run before ownership and approval are checked, so a
        restricted token reports the policy failure regardless of who asks.
        """
        if to == ZERO_ADDRESS:
            raise InvalidReceiver(to)
        mutation = OwnershipMutation(
            kind=MutationKind.TRANSFER, token_id=token_id,
            from_owner=from_owner, to_owner=to,
        )
        self._run_gates(mutation, context)

        owner = self.owner_of(token_id)
        if owner != from_owner:
            raise IncorrectOwner(from_owner, token_id, owner)
        if not self.is_authorized(caller, token_id):
            raise InsufficientApproval(caller, token_id)

        self._commit(mutation)

    def safe_transfer(
        self,
        token_id: int,
        from_owner: str,
        to: str,
        caller: str,
        data: bytes = b"",
    ) -> None:
        """Transfer, then require a registered receiver hook to accept the token."""
        self.transfer(token_id, from_owner, to, caller)
        hook = self.receivers.get(to)
        if hook is None:
            return
        try:
            accepted = hook(caller, from_owner, token_id, data)
        except Exception as exc:
            raise InvalidReceiver(to) from exc
        if not accepted:
            raise InvalidReceiver(to)

    def burn(
        self,
        token_id: int,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> None:
        owner = self.owner_of(token_id)
        self.apply(
            OwnershipMutation(kind=MutationKind.BURN, token_id=token_id, from_owner=owner),
            context,
        )

    def apply(
        self,
        mutation: OwnershipMutation,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> None:
        """The single mutation path: gates, store update, observers."""
        self._run_gates(mutation, context)
        self._commit(mutation)

    # ── Internal ────────────────────────────────────────────────

    def _run_gates(self, mutation: OwnershipMutation, context: MutationContext) -> None:
        for gate in self.gates:
            gate.check(mutation, context)

    def _commit(self, mutation: OwnershipMutation) -> None:
        own = self._own
        token_id = mutation.token_id

        if mutation.from_owner is not None:
            own.approvals.pop(token_id, None)
            held = own.owned.get(mutation.from_owner, [])
            if token_id in held:
                held.remove(token_id)
            if not held:
                own.owned.pop(mutation.from_owner, None)

        if mutation.to_owner is not None:
            own.owners[token_id] = mutation.to_owner
            own.owned.setdefault(mutation.to_owner, []).append(token_id)
        else:
            own.owners.pop(token_id, None)

        logger.debug(
            "Ownership %s: token=%d from=%s to=%s",
            mutation.kind.value, token_id, mutation.from_owner, mutation.to_owner,
        )
        for observer in self.observers:
            observer(mutation)
