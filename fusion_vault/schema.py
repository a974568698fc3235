"""
Fusion Vault Schema — Pydantic models for tokens, custody, and bridge messages.

These models are the canonical, read-only views handed out by the core and
the typed envelopes exchanged with the bridge transport. Mutable state lives
in fusion_vault.state; nothing here is written back into the store.

References:
    Token lifecycle   — five mutually exclusive classifications
    Custody ledger    — per-(token, asset) balances and accrued fees
    Bridge protocol   — composed send/receive messages
"""

from __future__ import annotations

import enum
import hashlib
import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, computed_field

ZERO_ADDRESS = "0x" + "0" * 40
BASIS_POINTS = 10_000


def canonical_address(address: str) -> str:
    """Lowercase hex form; the only form stored or compared by the vault."""
    return address.lower()


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class TokenClass(str, enum.Enum):
    """Authoritative token classification."""

    NONEXISTENT = "nonexistent"
    BASE = "base"
    FUSED = "fused"
    SOULBOUND = "soulbound"
    GIFT = "gift"


class TokenRange(str, enum.Enum):
    """Candidate id range. Informational only; classification decides behavior."""

    BASE = "base"
    GIFT = "gift"
    PREMIUM = "premium"  # shared by FUSED and SOULBOUND


class MutationKind(str, enum.Enum):
    MINT = "mint"
    TRANSFER = "transfer"
    BURN = "burn"


class MutationContext(str, enum.Enum):
    """
    Who is driving an ownership mutation.

    BRIDGE is the privileged context used by debit/credit; it is passed
    explicitly to the two call sites that need it and never stored.
    """

    ORDINARY = "ordinary"
    BRIDGE = "bridge"


class EventType(str, enum.Enum):
    OWNERSHIP = "ownership"
    MINTED = "minted"
    FUSED = "fused"
    UNFUSED = "unfused"
    BURNED = "burned"
    BRIDGE_SENT = "bridge_sent"
    BRIDGE_RECEIVED = "bridge_received"
    FEES_SWEPT = "fees_swept"
    GENESIS = "genesis"


# ════════════════════════════════════════════════════════════════
# Token & Custody Views
# ════════════════════════════════════════════════════════════════


class TokenView(BaseModel):
    """Snapshot of a single token as seen by callers."""

    token_id: int
    classification: TokenClass
    owner: str | None = Field(default=None, description="None when the token does not exist")
    restricted: bool = False
    uri: str = ""

    @computed_field
    @property
    def exists(self) -> bool:
        return self.classification != TokenClass.NONEXISTENT


class CustodyRecord(BaseModel):
    """Amount of one fungible asset deposited against one token."""

    token_id: int
    asset: str
    balance: int = Field(ge=0)


class FusionLink(BaseModel):
    """The four BASE tokens escrowed by a FUSED token, in fusion order."""

    fused_id: int
    components: tuple[int, int, int, int]


class SupportedAsset(BaseModel):
    """An allow-listed fungible asset with its mint price and display metadata."""

    asset: str
    price: int = Field(ge=0)
    uri: str = ""


class OwnershipMutation(BaseModel):
    """A single requested change to the ownership registry."""

    kind: MutationKind
    token_id: int
    from_owner: str | None = None
    to_owner: str | None = None


# ════════════════════════════════════════════════════════════════
# Bridge Messages
# ════════════════════════════════════════════════════════════════


class BridgePayload(BaseModel):
    """Application payload carried inside a composed bridge message."""

    uri: str
    restricted: bool


class SendParam(BaseModel):
    """Caller-supplied parameters for an outbound bridge send."""

    dst_eid: int = Field(description="Destination endpoint identifier")
    to: str = Field(description="Recipient on the destination ledger")
    token_id: int
    extra_options: bytes = b""


class OutboundPacket(BaseModel):
    """A fully built outbound message ready for the transport."""

    dst_eid: int
    receiver: str | None = Field(default=None, description="Peer address on the destination")
    message: bytes
    options: bytes = b""
    guid: str | None = None
    token_id: int
    payload: BridgePayload


class Origin(BaseModel):
    """Where an inbound message came from."""

    src_eid: int
    sender: str
    nonce: int = 0


class InboundPacket(BaseModel):
    origin: Origin
    guid: str
    message: bytes
    executor: str = ZERO_ADDRESS
    extra_data: bytes = b""


class ComposeAcknowledgement(BaseModel):
    """
    Follow-up message emitted after a composed bridge mint lands.

    Observers on the destination ledger watch for it to know that the
    token's metadata and restriction flag have been applied.
    """

    to: str
    guid: str
    token_id: int
    payload: BridgePayload


# ════════════════════════════════════════════════════════════════
# Event Journal
# ════════════════════════════════════════════════════════════════


class VaultEvent(BaseModel):
    """
    One entry of the hash-chained event journal.

    Hash = SHA-256(previous_hash || canonical_json(fields)), so any
    retroactive edit to a recorded event is detectable.
    """

    sequence_number: int
    event_type: EventType
    token_id: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    previous_hash: str
    entry_hash: str = ""

    def compute_hash(self) -> str:
        hashable = {
            "sequence_number": self.sequence_number,
            "event_type": self.event_type.value,
            "token_id": self.token_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "previous_hash": self.previous_hash,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (self.previous_hash + canonical).encode("utf-8")
        ).hexdigest()
