"""
Vault Repository — durable storage for one ledger's ChainState.

The in-memory store is authoritative while the process runs; the repository
persists a complete copy of it in one database transaction and loads it back
on start-up. A save replaces every stored row, so the database always holds
a single consistent snapshot.

Usage:
    repository = VaultRepository(settings.database_url)
    repository.initialize()          # Create tables

    state = repository.load()        # None on a fresh database
    chain = VaultChain.from_settings(settings, state=state)
    ...
    repository.save(chain.state, chain.journal)

The event journal is the exception to replace-on-save: its table is
append-only, and a save adds only the entries past the stored head after
checking that the in-memory journal still extends it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from fusion_vault.errors import JournalIntegrityError
from fusion_vault.ledger.models import (
    ApprovalDB,
    Base,
    BridgePeerDB,
    CollectedFeeDB,
    CustodyRecordDB,
    FusionLinkDB,
    IdCounterDB,
    OperatorDB,
    OutboundNonceDB,
    OutboundTransferDB,
    ProcessedMessageDB,
    SupportedAssetDB,
    TokenDB,
    VaultEventDB,
)
from fusion_vault.registry.events import EventJournal
from fusion_vault.schema import EventType, TokenClass, VaultEvent
from fusion_vault.state import ChainState, IdentityState, TokenRecord

logger = logging.getLogger(__name__)

COUNTER_NAMES = (
    "base_start", "gift_start", "premium_start",
    "next_base", "next_gift", "next_premium",
)

# Every table a save rewrites.
_TABLES = (
    TokenDB, CustodyRecordDB, OutboundTransferDB, SupportedAssetDB,
    CollectedFeeDB, IdCounterDB, FusionLinkDB, ApprovalDB, OperatorDB,
    BridgePeerDB, ProcessedMessageDB, OutboundNonceDB,
)


class VaultRepository:
    """SQLAlchemy-backed persistence for ChainState."""

    def __init__(self, database_url: str) -> None:
        """
        Args:
            database_url: SQLAlchemy connection string (sync driver).
        """
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create the schema if it does not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("Vault schema ready: %s", self.engine.url.render_as_string(hide_password=True))

    # ── Save ────────────────────────────────────────────────────

    def save(self, state: ChainState, journal: EventJournal | None = None) -> None:
        """
        Replace the stored snapshot with `state` and append new journal
        entries, atomically.

        Raises:
            JournalIntegrityError: `journal` does not extend the stored journal;
                nothing is written.
        """
        appended = 0
        with self.SessionLocal() as session, session.begin():
            for table in _TABLES:
                session.execute(delete(table))
            self._write_identity(session, state)
            self._write_tokens(session, state)
            self._write_custody(session, state)
            self._write_catalog(session, state)
            self._write_bridge(session, state)
            if journal is not None:
                appended = self._append_journal(session, journal)
        logger.info(
            "Vault state saved: tokens=%d assets=%d events_appended=%d",
            len(state.tokens), len(state.catalog.assets), appended,
        )

    @staticmethod
    def _write_identity(session: Session, state: ChainState) -> None:
        for name in COUNTER_NAMES:
            session.add(IdCounterDB(name=name, value=getattr(state.identity, name)))

    @staticmethod
    def _write_tokens(session: Session, state: ChainState) -> None:
        owners = state.ownership.owners
        for token_id in sorted(set(state.tokens) | set(owners)):
            record = state.tokens.get(token_id) or TokenRecord()
            session.add(TokenDB(
                token_id=token_id,
                classification=record.classification.value,
                owner=owners.get(token_id),
                restricted=record.restricted,
                uri=record.uri,
            ))
        for token_id, approved in state.ownership.approvals.items():
            session.add(ApprovalDB(token_id=token_id, approved=approved))
        for owner, operators in state.ownership.operators.items():
            for operator in sorted(operators):
                session.add(OperatorDB(owner=owner, operator=operator))
        for fused_id, components in state.fusion_links.items():
            session.add(FusionLinkDB(
                fused_id=fused_id,
                component_1=components[0],
                component_2=components[1],
                component_3=components[2],
                component_4=components[3],
            ))

    @staticmethod
    def _write_custody(session: Session, state: ChainState) -> None:
        custody = state.custody
        for token_id, assets in custody.token_assets.items():
            for position, asset in enumerate(assets):
                session.add(CustodyRecordDB(
                    token_id=token_id,
                    asset=asset,
                    position=position,
                    balance=str(custody.balances.get((token_id, asset), 0)),
                ))
        for token_id, count in custody.outbound_transfers.items():
            session.add(OutboundTransferDB(token_id=token_id, count=count))
        for asset, amount in custody.collected_fees.items():
            session.add(CollectedFeeDB(asset=asset, amount=str(amount)))

    @staticmethod
    def _write_catalog(session: Session, state: ChainState) -> None:
        catalog = state.catalog
        for position, asset in enumerate(catalog.assets):
            session.add(SupportedAssetDB(
                asset=asset,
                position=position,
                price=str(catalog.prices.get(asset, 0)),
                uri=catalog.metadata.get(asset, ""),
            ))

    @staticmethod
    def _write_bridge(session: Session, state: ChainState) -> None:
        bridge = state.bridge
        for eid, peer in bridge.peers.items():
            session.add(BridgePeerDB(eid=eid, peer=peer))
        for guid in sorted(bridge.processed):
            session.add(ProcessedMessageDB(guid=guid))
        for dst_eid, nonce in bridge.outbound_nonce.items():
            session.add(OutboundNonceDB(dst_eid=dst_eid, nonce=nonce))

    @staticmethod
    def _append_journal(session: Session, journal: EventJournal) -> int:
        head = session.execute(
            select(VaultEventDB).order_by(VaultEventDB.sequence_number.desc()).limit(1)
        ).scalar_one_or_none()

        start = 0
        if head is not None:
            start = head.sequence_number + 1
            if len(journal) < start:
                raise JournalIntegrityError(
                    len(journal), f"journal has {len(journal)} entries, storage has {start}",
                )
            if journal.entries[head.sequence_number].entry_hash != head.entry_hash:
                raise JournalIntegrityError(head.sequence_number, "head hash differs")

        for event in journal.entries[start:]:
            session.add(VaultEventDB(
                sequence_number=event.sequence_number,
                event_type=event.event_type.value,
                token_id=event.token_id,
                data=json.dumps(event.data, sort_keys=True, default=str),
                timestamp=event.timestamp.isoformat(),
                previous_hash=event.previous_hash,
                entry_hash=event.entry_hash,
            ))
        return len(journal) - start

    # ── Load ────────────────────────────────────────────────────

    def load(self) -> ChainState | None:
        """
        Rebuild ChainState from the stored snapshot.

        Returns None when nothing has been saved yet. Per-owner token lists
        are rebuilt in token-id order.
        """
        with self.SessionLocal() as session:
            counters = {
                row.name: row.value
                for row in session.execute(select(IdCounterDB)).scalars()
            }
            if not counters:
                return None

            state = ChainState(identity=IdentityState(
                **{name: counters.get(name, 0) for name in COUNTER_NAMES}
            ))
            self._read_tokens(session, state)
            self._read_custody(session, state)
            self._read_catalog(session, state)
            self._read_bridge(session, state)

        logger.info("Vault state loaded: tokens=%d", len(state.tokens))
        return state

    @staticmethod
    def _read_tokens(session: Session, state: ChainState) -> None:
        ownership = state.ownership
        rows = session.execute(select(TokenDB).order_by(TokenDB.token_id)).scalars()
        for row in rows:
            classification = TokenClass(row.classification)
            if classification != TokenClass.NONEXISTENT or row.restricted or row.uri:
                state.tokens[row.token_id] = TokenRecord(
                    classification=classification,
                    restricted=row.restricted,
                    uri=row.uri,
                )
            if row.owner is not None:
                ownership.owners[row.token_id] = row.owner
                ownership.owned.setdefault(row.owner, []).append(row.token_id)

        for row in session.execute(select(ApprovalDB)).scalars():
            ownership.approvals[row.token_id] = row.approved
        for row in session.execute(select(OperatorDB)).scalars():
            ownership.operators.setdefault(row.owner, set()).add(row.operator)
        for row in session.execute(select(FusionLinkDB)).scalars():
            state.fusion_links[row.fused_id] = (
                row.component_1, row.component_2, row.component_3, row.component_4,
            )

    @staticmethod
    def _read_custody(session: Session, state: ChainState) -> None:
        custody = state.custody
        rows = session.execute(
            select(CustodyRecordDB).order_by(CustodyRecordDB.token_id, CustodyRecordDB.position)
        ).scalars()
        for row in rows:
            custody.balances[(row.token_id, row.asset)] = int(row.balance)
            custody.token_assets.setdefault(row.token_id, []).append(row.asset)
        for row in session.execute(select(OutboundTransferDB)).scalars():
            custody.outbound_transfers[row.token_id] = row.count
        for row in session.execute(select(CollectedFeeDB)).scalars():
            custody.collected_fees[row.asset] = int(row.amount)

    @staticmethod
    def _read_catalog(session: Session, state: ChainState) -> None:
        catalog = state.catalog
        rows = session.execute(
            select(SupportedAssetDB).order_by(SupportedAssetDB.position)
        ).scalars()
        for row in rows:
            catalog.index[row.asset] = len(catalog.assets)
            catalog.assets.append(row.asset)
            catalog.prices[row.asset] = int(row.price)
            catalog.metadata[row.asset] = row.uri

    @staticmethod
    def _read_bridge(session: Session, state: ChainState) -> None:
        bridge = state.bridge
        for row in session.execute(select(BridgePeerDB)).scalars():
            bridge.peers[row.eid] = row.peer
        for row in session.execute(select(ProcessedMessageDB)).scalars():
            bridge.processed.add(row.guid)
        for row in session.execute(select(OutboundNonceDB)).scalars():
            bridge.outbound_nonce[row.dst_eid] = row.nonce

    def load_journal(self) -> EventJournal:
        """Rebuild the event journal exactly as stored; verify it with verify_chain()."""
        with self.SessionLocal() as session:
            rows = session.execute(
                select(VaultEventDB).order_by(VaultEventDB.sequence_number)
            ).scalars()
            entries = [
                VaultEvent(
                    sequence_number=row.sequence_number,
                    event_type=EventType(row.event_type),
                    token_id=row.token_id,
                    data=json.loads(row.data),
                    timestamp=datetime.fromisoformat(row.timestamp),
                    previous_hash=row.previous_hash,
                    entry_hash=row.entry_hash,
                )
                for row in rows
            ]
        logger.info("Event journal loaded: entries=%d", len(entries))
        return EventJournal(entries)

    # ── Queries ─────────────────────────────────────────────────

    def get_token_row(self, token_id: int) -> TokenDB | None:
        """Retrieve the stored row of a single token."""
        with self.SessionLocal() as session:
            return session.execute(
                select(TokenDB).where(TokenDB.token_id == token_id)
            ).scalar_one_or_none()

    def get_token_count(self) -> int:
        with self.SessionLocal() as session:
            result = session.execute(select(func.count()).select_from(TokenDB))
            return result.scalar() or 0

    def get_event_count(self) -> int:
        with self.SessionLocal() as session:
            result = session.execute(select(func.count()).select_from(VaultEventDB))
            return result.scalar() or 0
