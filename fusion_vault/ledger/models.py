"""
Vault persistence — SQLAlchemy models for the persisted state layout.

One row per token id, one row per (token id, asset) custody balance, one row
per supported asset and per accrued fee, the three id counters, and the
fusion link table keyed by FUSED token id. Bridge bookkeeping (peers,
processed inbound message ids, outbound nonces) and ERC-721 approvals are
persisted alongside, as is the append-only event journal.

Amounts are unbounded integers and are stored as decimal strings.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all vault models."""
    pass


class TokenDB(Base):
    """A token known to this ledger, live or dormant after a bridge debit."""

    __tablename__ = "tokens"

    token_id = Column(BigInteger, primary_key=True, autoincrement=False)
    classification = Column(
        String(20), nullable=False,
        comment="nonexistent, base, fused, soulbound, or gift",
    )
    owner = Column(
        String(66), nullable=True,
        comment="Current owner; NULL while the token is absent from this ledger",
    )
    restricted = Column(Boolean, nullable=False, default=False)
    uri = Column(Text, nullable=False, default="")

    __table_args__ = (
        Index("ix_token_owner", "owner"),
        Index("ix_token_classification", "classification"),
    )

    def __repr__(self) -> str:
        return (
            f"<Token id={self.token_id} class={self.classification} "
            f"owner={self.owner} restricted={self.restricted}>"
        )


class CustodyRecordDB(Base):
    __tablename__ = "custody_records"

    token_id = Column(BigInteger, primary_key=True, autoincrement=False)
    asset = Column(String(100), primary_key=True)
    position = Column(Integer, nullable=False, default=0, comment="Order of first deposit")
    balance = Column(String(80), nullable=False, comment="Decimal string")


class OutboundTransferDB(Base):
    __tablename__ = "outbound_transfers"

    token_id = Column(BigInteger, primary_key=True, autoincrement=False)
    count = Column(Integer, nullable=False, default=0)


class SupportedAssetDB(Base):
    __tablename__ = "supported_assets"

    asset = Column(String(100), primary_key=True)
    position = Column(Integer, nullable=False, comment="Slot in the unordered set")
    price = Column(String(80), nullable=False)
    uri = Column(Text, nullable=False, default="")


class CollectedFeeDB(Base):
    __tablename__ = "collected_fees"

    asset = Column(String(100), primary_key=True)
    amount = Column(String(80), nullable=False)


class IdCounterDB(Base):
    """
    Identity space counters and range starts.

    Names: base_start, gift_start, premium_start, next_base, next_gift,
    next_premium.
    """

    __tablename__ = "id_counters"

    name = Column(String(20), primary_key=True)
    value = Column(BigInteger, nullable=False)


class FusionLinkDB(Base):
    __tablename__ = "fusion_links"

    fused_id = Column(BigInteger, primary_key=True, autoincrement=False)
    component_1 = Column(BigInteger, nullable=False)
    component_2 = Column(BigInteger, nullable=False)
    component_3 = Column(BigInteger, nullable=False)
    component_4 = Column(BigInteger, nullable=False)


class ApprovalDB(Base):
    __tablename__ = "approvals"

    token_id = Column(BigInteger, primary_key=True, autoincrement=False)
    approved = Column(String(66), nullable=False)


class OperatorDB(Base):
    __tablename__ = "operators"

    owner = Column(String(66), primary_key=True)
    operator = Column(String(66), primary_key=True)


class BridgePeerDB(Base):
    __tablename__ = "bridge_peers"

    eid = Column(BigInteger, primary_key=True, autoincrement=False)
    peer = Column(String(66), nullable=False)


class ProcessedMessageDB(Base):
    """Inbound bridge message ids already applied (replay guard)."""

    __tablename__ = "bridge_inbound"

    guid = Column(String(66), primary_key=True)


class OutboundNonceDB(Base):
    __tablename__ = "bridge_outbound_nonces"

    dst_eid = Column(BigInteger, primary_key=True, autoincrement=False)
    nonce = Column(BigInteger, nullable=False)


class VaultEventDB(Base):
    """
    One event journal entry.

    Append-only: a save writes the entries past the stored head and never
    rewrites earlier rows. `data` is the canonical JSON the hash covers and
    `timestamp` the ISO text it covers, so a reload verifies bit for bit.
    """

    __tablename__ = "vault_events"

    sequence_number = Column(BigInteger, primary_key=True, autoincrement=False)
    event_type = Column(String(40), nullable=False)
    token_id = Column(BigInteger, nullable=True)
    data = Column(Text, nullable=False, default="{}")
    timestamp = Column(String(40), nullable=False)
    previous_hash = Column(String(64), nullable=False)
    entry_hash = Column(String(64), nullable=False, unique=True)

    __table_args__ = (
        Index("ix_vault_events_token", "token_id"),
        Index("ix_vault_events_type", "event_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<VaultEventDB seq={self.sequence_number} "
            f"type={self.event_type} hash={self.entry_hash[:12]}...>"
        )
