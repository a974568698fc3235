"""
Transfer-Restriction Policy — the soulbound gate on every ownership mutation.

A token flagged `restricted` may not be minted to, moved, or burned through
ordinary paths. The only exception is a mutation driven in the BRIDGE
context: debit (outbound removal) and credit (inbound creation). The context
is an explicit argument passed by those two call sites, so there is no flag
that has to be remembered and reset.

The pause gate sits in the same pipeline and reads the administration pause
flag; it applies in every context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from fusion_vault.config import ChainConfig
from fusion_vault.errors import CannotTransferSoulboundToken, EnforcedPause
from fusion_vault.schema import MutationContext, OwnershipMutation
from fusion_vault.state import ChainState

logger = logging.getLogger(__name__)


class GateDecision(str, Enum):
    PERMITTED = "permitted"
    BLOCKED_RESTRICTED = "blocked_restricted"
    BLOCKED_PAUSED = "blocked_paused"


@dataclass
class GateResult:
    """Outcome of evaluating one mutation against a gate."""

    decision: GateDecision
    token_id: int
    reason: str

    @property
    def is_allowed(self) -> bool:
        return self.decision == GateDecision.PERMITTED


class TransferRestrictionPolicy:
    """Owns the per-token restricted flag and enforces it."""

    def __init__(self, state: ChainState) -> None:
        self.state = state

    def is_restricted(self, token_id: int) -> bool:
        record = self.state.tokens.get(token_id)
        return record.restricted if record is not None else False

    def set_restricted(self, token_id: int, restricted: bool) -> None:
        self.state.token(token_id).restricted = restricted

    def evaluate(
        self,
        mutation: OwnershipMutation,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> GateResult:
        if not self.is_restricted(mutation.token_id):
            return GateResult(
                decision=GateDecision.PERMITTED,
                token_id=mutation.token_id,
                reason="token is not restricted",
            )
        if context == MutationContext.BRIDGE:
            return GateResult(
                decision=GateDecision.PERMITTED,
                token_id=mutation.token_id,
                reason="restricted token moved by the bridge",
            )
        return GateResult(
            decision=GateDecision.BLOCKED_RESTRICTED,
            token_id=mutation.token_id,
            reason=f"{mutation.kind.value} of a soulbound token outside the bridge",
        )

    def check(
        self,
        mutation: OwnershipMutation,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> None:
        result = self.evaluate(mutation, context)
        if not result.is_allowed:
            logger.warning(
                "Restricted mutation blocked: token=%d kind=%s",
                mutation.token_id, mutation.kind.value,
            )
            raise CannotTransferSoulboundToken(mutation.token_id)


class PauseGate:
    """Blocks every ownership mutation while the administration pause is on."""

    def __init__(self, config: ChainConfig) -> None:
        self.config = config

    def evaluate(
        self,
        mutation: OwnershipMutation,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> GateResult:
        if self.config.paused:
            return GateResult(
                decision=GateDecision.BLOCKED_PAUSED,
                token_id=mutation.token_id,
                reason="token movements are paused",
            )
        return GateResult(
            decision=GateDecision.PERMITTED,
            token_id=mutation.token_id,
            reason="not paused",
        )

    def check(
        self,
        mutation: OwnershipMutation,
        context: MutationContext = MutationContext.ORDINARY,
    ) -> None:
        if not self.evaluate(mutation, context).is_allowed:
            raise EnforcedPause()
