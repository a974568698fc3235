"""
Tests for the Ownership Registry and its gate pipeline.

Validates:
- Mint / transfer / burn bookkeeping and enumeration
- Owner, approved and operator authorization
- Soulbound restriction for every caller configuration
- Bridge context bypasses only the restriction, never the pause
- Observers fire for every successful mutation
"""

from __future__ import annotations

import pytest

from fusion_vault.config import ChainConfig
from fusion_vault.errors import (
    CannotTransferSoulboundToken,
    EnforcedPause,
    IncorrectOwner,
    InsufficientApproval,
    InvalidReceiver,
    NonexistentToken,
    TokenAlreadyExists,
)
from fusion_vault.registry.ownership import OwnershipRegistry
from fusion_vault.registry.restriction import (
    GateDecision,
    PauseGate,
    TransferRestrictionPolicy,
)
from fusion_vault.schema import (
    ZERO_ADDRESS,
    MutationContext,
    MutationKind,
    OwnershipMutation,
)
from fusion_vault.state import ChainState

from support import ALICE, BOB, CAROL


class RegistryTestCase:
    def setup_method(self):
        self.state = ChainState()
        self.config = ChainConfig()
        self.policy = TransferRestrictionPolicy(self.state)
        self.seen: list[OwnershipMutation] = []
        self.registry = OwnershipRegistry(
            self.state,
            gates=[PauseGate(self.config), self.policy],
            observers=[self.seen.append],
        )


class TestMintAndEnumerate(RegistryTestCase):
    def test_mint_records_owner(self):
        self.registry.mint(7, ALICE)
        assert self.registry.owner_of(7) == ALICE
        assert self.registry.exists(7)
        assert self.registry.balance_of(ALICE) == 1
        assert self.registry.tokens_of(ALICE) == [7]
        assert self.registry.total_supply() == 1
        assert self.registry.token_by_index(0) == 7

    def test_mint_to_zero_address_rejected(self):
        with pytest.raises(InvalidReceiver):
            self.registry.mint(7, ZERO_ADDRESS)
        assert not self.registry.exists(7)

    def test_double_mint_rejected(self):
        self.registry.mint(7, ALICE)
        with pytest.raises(TokenAlreadyExists) as exc_info:
            self.registry.mint(7, BOB)
        assert exc_info.value.token_id == 7
        assert self.registry.owner_of(7) == ALICE

    def test_unknown_token(self):
        with pytest.raises(NonexistentToken):
            self.registry.owner_of(3)
        assert self.registry.find_owner(3) is None
        with pytest.raises(IndexError):
            self.registry.token_by_index(0)

    def test_burn_removes_token(self):
        self.registry.mint(7, ALICE)
        self.registry.burn(7)
        assert not self.registry.exists(7)
        assert self.registry.balance_of(ALICE) == 0
        assert self.registry.total_supply() == 0


class TestTransfer(RegistryTestCase):
    def setup_method(self):
        super().setup_method()
        self.registry.mint(1, ALICE)

    def test_owner_transfer(self):
        self.registry.transfer(1, ALICE, BOB, caller=ALICE)
        assert self.registry.owner_of(1) == BOB
        assert self.registry.tokens_of(ALICE) == []
        assert self.registry.tokens_of(BOB) == [1]

    def test_approved_transfer_and_approval_cleared(self):
        self.registry.approve(ALICE, CAROL, 1)
        assert self.registry.get_approved(1) == CAROL
        self.registry.transfer(1, ALICE, BOB, caller=CAROL)
        assert self.registry.owner_of(1) == BOB
        assert self.registry.get_approved(1) is None

    def test_operator_transfer(self):
        self.registry.set_approval_for_all(ALICE, CAROL, True)
        assert self.registry.is_approved_for_all(ALICE, CAROL)
        self.registry.transfer(1, ALICE, BOB, caller=CAROL)
        assert self.registry.owner_of(1) == BOB

    def test_revoked_operator_cannot_transfer(self):
        self.registry.set_approval_for_all(ALICE, CAROL, True)
        self.registry.set_approval_for_all(ALICE, CAROL, False)
        with pytest.raises(InsufficientApproval):
            self.registry.transfer(1, ALICE, BOB, caller=CAROL)

    def test_stranger_cannot_transfer(self):
        with pytest.raises(InsufficientApproval) as exc_info:
            self.registry.transfer(1, ALICE, BOB, caller=CAROL)
        assert exc_info.value.caller == CAROL
        assert self.registry.owner_of(1) == ALICE

    def test_wrong_from_rejected(self):
        with pytest.raises(IncorrectOwner) as exc_info:
            self.registry.transfer(1, BOB, CAROL, caller=BOB)
        assert exc_info.value.owner == ALICE

    def test_transfer_to_zero_address_rejected(self):
        with pytest.raises(InvalidReceiver):
            self.registry.transfer(1, ALICE, ZERO_ADDRESS, caller=ALICE)

    def test_approve_requires_owner_or_operator(self):
        with pytest.raises(InsufficientApproval):
            self.registry.approve(BOB, CAROL, 1)
        self.registry.set_approval_for_all(ALICE, BOB, True)
        self.registry.approve(BOB, CAROL, 1)
        assert self.registry.get_approved(1) == CAROL

    def test_approve_zero_address_clears(self):
        self.registry.approve(ALICE, CAROL, 1)
        self.registry.approve(ALICE, ZERO_ADDRESS, 1)
        assert self.registry.get_approved(1) is None

    def test_self_operator_rejected(self):
        with pytest.raises(InvalidReceiver):
            self.registry.set_approval_for_all(ALICE, ALICE, True)


class TestSafeTransfer(RegistryTestCase):
    def setup_method(self):
        super().setup_method()
        self.registry.mint(1, ALICE)
        self.calls = []

    def test_accepting_receiver(self):
        def hook(operator, from_owner, token_id, data):
            self.calls.append((operator, from_owner, token_id, data))
            return True

        self.registry.register_receiver(BOB, hook)
        self.registry.safe_transfer(1, ALICE, BOB, ALICE, b"hi")
        assert self.calls == [(ALICE, ALICE, 1, b"hi")]

    def test_rejecting_receiver(self):
        self.registry.register_receiver(BOB, lambda *args: False)
        with pytest.raises(InvalidReceiver):
            self.registry.safe_transfer(1, ALICE, BOB, ALICE)

    def test_raising_receiver(self):
        def hook(*args):
            raise RuntimeError("no thanks")

        self.registry.register_receiver(BOB, hook)
        with pytest.raises(InvalidReceiver) as exc_info:
            self.registry.safe_transfer(1, ALICE, BOB, ALICE)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestSoulboundRestriction(RegistryTestCase):
    def setup_method(self):
        super().setup_method()
        self.registry.mint(5, ALICE)
        self.policy.set_restricted(5, True)

    def test_owner_cannot_transfer(self):
        with pytest.raises(CannotTransferSoulboundToken):
            self.registry.transfer(5, ALICE, BOB, caller=ALICE)

    def test_approved_cannot_transfer(self):
        self.registry.approve(ALICE, CAROL, 5)
        with pytest.raises(CannotTransferSoulboundToken):
            self.registry.transfer(5, ALICE, BOB, caller=CAROL)

    def test_operator_cannot_transfer(self):
        self.registry.set_approval_for_all(ALICE, CAROL, True)
        with pytest.raises(CannotTransferSoulboundToken):
            self.registry.transfer(5, ALICE, BOB, caller=CAROL)

    def test_stranger_gets_the_policy_error(self):
        with pytest.raises(CannotTransferSoulboundToken):
            self.registry.transfer(5, ALICE, BOB, caller=CAROL)

    def test_burn_blocked(self):
        with pytest.raises(CannotTransferSoulboundToken):
            self.registry.burn(5)
        assert self.registry.owner_of(5) == ALICE

    def test_bridge_context_may_remove_and_create(self):
        self.registry.burn(5, MutationContext.BRIDGE)
        assert not self.registry.exists(5)
        self.registry.mint(5, ALICE, MutationContext.BRIDGE)
        assert self.registry.owner_of(5) == ALICE

    def test_gate_decision(self):
        mutation = OwnershipMutation(kind=MutationKind.TRANSFER, token_id=5, from_owner=ALICE, to_owner=BOB)
        blocked = self.policy.evaluate(mutation)
        assert blocked.decision == GateDecision.BLOCKED_RESTRICTED
        assert not blocked.is_allowed
        assert self.policy.evaluate(mutation, MutationContext.BRIDGE).is_allowed

    def test_unrestricted_token_passes(self):
        self.registry.mint(6, ALICE)
        self.registry.transfer(6, ALICE, BOB, caller=ALICE)
        assert self.registry.owner_of(6) == BOB


class TestPause(RegistryTestCase):
    def test_paused_blocks_every_mutation(self):
        self.registry.mint(1, ALICE)
        self.config.paused = True
        with pytest.raises(EnforcedPause):
            self.registry.mint(2, ALICE)
        with pytest.raises(EnforcedPause):
            self.registry.transfer(1, ALICE, BOB, caller=ALICE)
        with pytest.raises(EnforcedPause):
            self.registry.burn(1, MutationContext.BRIDGE)
        assert self.registry.owner_of(1) == ALICE

    def test_unpause_restores(self):
        self.config.paused = True
        self.config.paused = False
        self.registry.mint(1, ALICE)
        assert self.registry.exists(1)


class TestObservers(RegistryTestCase):
    def test_every_mutation_observed(self):
        self.registry.mint(1, ALICE)
        self.registry.transfer(1, ALICE, BOB, caller=ALICE)
        self.registry.burn(1)
        kinds = [m.kind for m in self.seen]
        assert kinds == [MutationKind.MINT, MutationKind.TRANSFER, MutationKind.BURN]
        assert self.seen[1].from_owner == ALICE
        assert self.seen[1].to_owner == BOB

    def test_failed_mutation_not_observed(self):
        self.registry.mint(1, ALICE)
        with pytest.raises(InsufficientApproval):
            self.registry.transfer(1, ALICE, BOB, caller=CAROL)
        assert len(self.seen) == 1
