"""
Fusion Vault error taxonomy.

Every failure raised by the core derives from FusionVaultError and belongs to
exactly one category:

1. Authorization      — caller is not the owner / delegate / privileged role
2. State mismatch     — the token does not have the required classification
3. Capacity           — a supply cap or minting cutoff has been exceeded
4. Accounting         — insufficient allowance/balance, or a failed transfer
5. Identity conflict  — crediting an existing token, or fusing duplicate assets
6. Malformed input    — a bridge payload with the wrong shape
7. Policy             — transfer-restriction (soulbound) violations

Each concrete error carries the structured fields that identify the exact
cause, so callers never need to parse messages.
"""

from __future__ import annotations

from typing import Any


class FusionVaultError(Exception):
    """Base class for all Fusion Vault failures."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details
        for key, value in details.items():
            setattr(self, key, value)


# ════════════════════════════════════════════════════════════════
# Categories
# ════════════════════════════════════════════════════════════════


class AuthorizationError(FusionVaultError):
    pass


class StateMismatchError(FusionVaultError):
    pass


class CapacityError(FusionVaultError):
    pass


class AccountingError(FusionVaultError):
    pass


class IdentityConflictError(FusionVaultError):
    pass


class MalformedInputError(FusionVaultError):
    pass


class PolicyError(FusionVaultError):
    pass


# ════════════════════════════════════════════════════════════════
# Authorization
# ════════════════════════════════════════════════════════════════


class Unauthorized(AuthorizationError):
    """Raised when a privileged operation is called by a non-admin account."""

    def __init__(self, caller: str) -> None:
        super().__init__(f"Account {caller} is not authorized", caller=caller)


class InsufficientApproval(AuthorizationError):
    """Caller is neither the owner nor an approved delegate of the token."""

    def __init__(self, caller: str, token_id: int) -> None:
        super().__init__(
            f"{caller} is not owner or approved for token {token_id}",
            caller=caller, token_id=token_id,
        )


class IncorrectOwner(AuthorizationError):
    """The stated sender does not own the token being transferred."""

    def __init__(self, sender: str, token_id: int, owner: str | None) -> None:
        super().__init__(
            f"Token {token_id} is owned by {owner}, not {sender}",
            sender=sender, token_id=token_id, owner=owner,
        )


class OnlyTokenOwnerCanFuseTokens(AuthorizationError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Only the owner of token {token_id} can fuse it", token_id=token_id)


class OnlyTokenOwnerCanUnfuseTokens(AuthorizationError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Only the owner of token {token_id} can unfuse it", token_id=token_id)


class OnlyTokenOwnerCanBurnTokens(AuthorizationError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Only the owner of token {token_id} can burn it", token_id=token_id)


class OnlyPeer(AuthorizationError):
    """Inbound message did not originate from the configured peer."""

    def __init__(self, src_eid: int, sender: str) -> None:
        super().__init__(
            f"Sender {sender} is not the peer for endpoint {src_eid}",
            src_eid=src_eid, sender=sender,
        )


# ════════════════════════════════════════════════════════════════
# State mismatch
# ════════════════════════════════════════════════════════════════


class NonexistentToken(StateMismatchError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Token {token_id} does not exist", token_id=token_id)


class CanOnlyFuseBaseTokens(StateMismatchError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Token {token_id} is not a BASE token", token_id=token_id)


class CanOnlyUnfuseFusedTokens(StateMismatchError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Token {token_id} is not a FUSED token", token_id=token_id)


class UnfuseTokenBeforeBurning(StateMismatchError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Token {token_id} must be unfused before burning", token_id=token_id)


class MissingCustodyRecord(StateMismatchError):
    """A BASE token has no backing custody record on this ledger."""

    def __init__(self, token_id: int) -> None:
        super().__init__(f"Token {token_id} has no custody record on this ledger", token_id=token_id)


class TokenIdOutOfRange(StateMismatchError):
    def __init__(self, token_id: int, expected_range: str) -> None:
        super().__init__(
            f"Token {token_id} is outside the {expected_range} range",
            token_id=token_id, expected_range=expected_range,
        )


# ════════════════════════════════════════════════════════════════
# Capacity
# ════════════════════════════════════════════════════════════════


class MintingPeriodEnded(CapacityError):
    def __init__(self, now: int, cutoff: int) -> None:
        super().__init__(f"Minting closed at {cutoff} (now {now})", now=now, cutoff=cutoff)


class MaxSupplyReached(CapacityError):
    def __init__(self, classification: str, cap: int) -> None:
        super().__init__(
            f"{classification} supply cap of {cap} reached",
            classification=classification, cap=cap,
        )


class UnsupportedAsset(CapacityError):
    def __init__(self, asset: str | None) -> None:
        super().__init__(f"Asset {asset} is not supported for minting", asset=asset)


# ════════════════════════════════════════════════════════════════
# Accounting
# ════════════════════════════════════════════════════════════════


class InsufficientAllowance(AccountingError):
    def __init__(self, owner: str, asset: str, required: int, available: int) -> None:
        super().__init__(
            f"{owner} approved {available} of {asset}, {required} required",
            owner=owner, asset=asset, required=required, available=available,
        )


class InsufficientBalance(AccountingError):
    def __init__(self, holder: str, asset: str, required: int, available: int) -> None:
        super().__init__(
            f"{holder} holds {available} of {asset}, {required} required",
            holder=holder, asset=asset, required=required, available=available,
        )


class TransferFailed(AccountingError):
    """The external asset reported failure (returned False or raised)."""

    def __init__(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        super().__init__(
            f"Transfer of {amount} {asset} from {sender} to {recipient} failed",
            asset=asset, sender=sender, recipient=recipient, amount=amount,
        )


class ExternalDepositDisabled(AccountingError):
    def __init__(self) -> None:
        super().__init__("Direct deposits are disabled; assets enter only by minting")


class ExternalWithdrawDisabled(AccountingError):
    def __init__(self) -> None:
        super().__init__("Direct withdrawals are disabled; assets leave only by burning")


# ════════════════════════════════════════════════════════════════
# Identity conflict
# ════════════════════════════════════════════════════════════════


class TokenAlreadyExists(IdentityConflictError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Token {token_id} already exists", token_id=token_id)


class SameTokenUnderlyingAssets(IdentityConflictError):
    def __init__(self, first_id: int, second_id: int, asset: str) -> None:
        super().__init__(
            f"Tokens {first_id} and {second_id} are both backed by {asset}",
            first_id=first_id, second_id=second_id, asset=asset,
        )


class MessageAlreadyProcessed(IdentityConflictError):
    def __init__(self, guid: str) -> None:
        super().__init__(f"Bridge message {guid} was already applied", guid=guid)


# ════════════════════════════════════════════════════════════════
# Malformed input
# ════════════════════════════════════════════════════════════════


class InvalidRecipient(MalformedInputError):
    def __init__(self, recipient: str | None) -> None:
        super().__init__(f"Recipient {recipient!r} is not a valid address", recipient=recipient)


class InvalidReceiver(MalformedInputError):
    """The receiving account cannot accept tokens (zero address or hook rejection)."""

    def __init__(self, receiver: str) -> None:
        super().__init__(f"Receiver {receiver} cannot accept tokens", receiver=receiver)


class MissingComposedMessage(MalformedInputError):
    def __init__(self, length: int) -> None:
        super().__init__(
            f"Bridge message of {length} bytes carries no composed payload", length=length
        )


class MalformedPayload(MalformedInputError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Malformed bridge payload: {reason}", reason=reason)


class NoPeer(MalformedInputError):
    def __init__(self, eid: int) -> None:
        super().__init__(f"No peer configured for endpoint {eid}", eid=eid)


class InspectionRejected(MalformedInputError):
    def __init__(self, reason: str = "") -> None:
        super().__init__(f"Outbound message rejected by inspector: {reason}", reason=reason)


# ════════════════════════════════════════════════════════════════
# Policy
# ════════════════════════════════════════════════════════════════


class CannotTransferSoulboundToken(PolicyError):
    def __init__(self, token_id: int) -> None:
        super().__init__(f"Token {token_id} is soulbound and cannot be transferred", token_id=token_id)


class SoulboundRecipientMismatch(PolicyError):
    """Soulbound tokens may only be bridged to their current owner."""

    def __init__(self, token_id: int, expected: str, received: str) -> None:
        super().__init__(
            f"Soulbound token {token_id} may only be sent to {expected}, not {received}",
            token_id=token_id, expected=expected, received=received,
        )


class EnforcedPause(PolicyError):
    def __init__(self) -> None:
        super().__init__("Token movements are paused")


# ════════════════════════════════════════════════════════════════
# Persistence
# ════════════════════════════════════════════════════════════════


class JournalIntegrityError(FusionVaultError):
    """The in-memory journal does not extend the stored one."""

    def __init__(self, sequence_number: int, reason: str) -> None:
        super().__init__(
            f"Journal diverges from storage at sequence {sequence_number}: {reason}",
            sequence_number=sequence_number, reason=reason,
        )
