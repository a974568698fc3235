"""
Bridge Protocol — moving a token between two ledgers without ever having two
live copies.

Per token, across ledgers A and B:

    Present@A, Absent@B ──debit@A──▶ Absent@A, Absent@B
                        ──transport + credit@B──▶ Absent@A, Present@B

Outbound, the token's current uri and restricted flag are composed onto the
transfer message, then the token is removed locally through the BRIDGE
context. Its custody records and fusion link stay behind untouched, dormant
until the token comes home.

Inbound, the transport's ordering and de-duplication are not trusted: the
message id must be new and the token must not already exist locally
(TokenAlreadyExists), otherwise the message is rejected.

Soulbound tokens may bridge, but only to their current owner.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Protocol

from fusion_vault.bridge import codec
from fusion_vault.errors import (
    InspectionRejected,
    InsufficientApproval,
    InvalidRecipient,
    MessageAlreadyProcessed,
    MissingComposedMessage,
    NoPeer,
    OnlyPeer,
    SoulboundRecipientMismatch,
    TokenAlreadyExists,
)
from fusion_vault.registry.events import EventJournal
from fusion_vault.registry.identity import IdentitySpace
from fusion_vault.registry.ownership import OwnershipRegistry
from fusion_vault.registry.restriction import TransferRestrictionPolicy
from fusion_vault.schema import (
    ZERO_ADDRESS,
    BridgePayload,
    ComposeAcknowledgement,
    EventType,
    InboundPacket,
    MutationContext,
    OutboundPacket,
    SendParam,
    TokenClass,
    TokenRange,
)
from fusion_vault.state import BridgeState, ChainState

logger = logging.getLogger(__name__)

# Classification given to a token arriving on a ledger that never held it.
FIRST_ARRIVAL_CLASS = {
    TokenRange.BASE: TokenClass.BASE,
    TokenRange.GIFT: TokenClass.GIFT,
    TokenRange.PREMIUM: TokenClass.FUSED,
}


class BridgeTransport(Protocol):
    """Carries messages between ledgers. Not implemented by the core."""

    def dispatch(self, packet: OutboundPacket) -> None: ...

    def send_compose(self, ack: ComposeAcknowledgement, message: bytes) -> None: ...


class MessageInspector(Protocol):
    """Optional last look at an outbound message; False or raising aborts the send."""

    def inspect(self, message: bytes, options: bytes) -> bool: ...


class BridgeEndpoint:
    """One ledger's side of the bridge."""

    def __init__(
        self,
        state: ChainState,
        eid: int,
        identity: IdentitySpace,
        ownership: OwnershipRegistry,
        restriction: TransferRestrictionPolicy,
        journal: EventJournal,
        vault_address: str,
        transport: BridgeTransport | None = None,
        inspector: MessageInspector | None = None,
    ) -> None:
        self.state = state
        self.eid = eid
        self.identity = identity
        self.ownership = ownership
        self.restriction = restriction
        self.journal = journal
        self.vault_address = vault_address
        self.transport = transport
        self.inspector = inspector

    @property
    def _bridge(self) -> BridgeState:
        return self.state.bridge

    # ── Peers ───────────────────────────────────────────────────

    def set_peer(self, eid: int, peer: str) -> None:
        self._bridge.peers[eid] = peer
        logger.info("Bridge peer set: eid=%d peer=%s", eid, peer)

    def peer_of(self, eid: int) -> str:
        peer = self._bridge.peers.get(eid)
        if peer is None:
            raise NoPeer(eid)
        return peer

    # ── Outbound ────────────────────────────────────────────────

    def build_outbound_message(self, send_param: SendParam, sender: str) -> OutboundPacket:
        """
        Serialize the token's current uri and restricted flag into a composed
        send message. Reads state only.
        """
        to = send_param.to
        if not to or to == ZERO_ADDRESS:
            raise InvalidRecipient(to)

        token_id = send_param.token_id
        owner = self.ownership.owner_of(token_id)
        record = self.state.tokens.get(token_id)
        restricted = self.restriction.is_restricted(token_id)
        if restricted and to != owner:
            raise SoulboundRecipientMismatch(token_id, owner, to)

        payload = BridgePayload(uri=record.uri if record else "", restricted=restricted)
        message = codec.encode_send(
            to, token_id,
            compose_from=sender,
            compose_payload=codec.encode_payload(payload),
        )
        options = send_param.extra_options

        if self.inspector is not None:
            try:
                accepted = self.inspector.inspect(message, options)
            except Exception as exc:
                raise InspectionRejected(str(exc)) from exc
            if not accepted:
                raise InspectionRejected("inspector declined the message")

        return OutboundPacket(
            dst_eid=send_param.dst_eid,
            receiver=self.peer_of(send_param.dst_eid),
            message=message,
            options=options,
            token_id=token_id,
            payload=payload,
        )

    def debit(self, caller: str, token_id: int, dst_eid: int) -> None:
        """Remove the token locally. Custody records and fusion links stay dormant."""
        self.ownership.owner_of(token_id)
        if not self.ownership.is_authorized(caller, token_id):
            raise InsufficientApproval(caller, token_id)
        self.ownership.burn(token_id, MutationContext.BRIDGE)
        logger.info("Bridge debit: token=%d dst_eid=%d caller=%s", token_id, dst_eid, caller)

    def send(self, caller: str, send_param: SendParam) -> OutboundPacket:
        """Build, debit, stamp with a message id and hand to the transport."""
        packet = self.build_outbound_message(send_param, caller)
        self.debit(caller, send_param.token_id, send_param.dst_eid)

        nonce = self._bridge.outbound_nonce.get(send_param.dst_eid, 0) + 1
        self._bridge.outbound_nonce[send_param.dst_eid] = nonce
        packet.guid = self.compute_guid(nonce, self.eid, self.vault_address,
                                        send_param.dst_eid, packet.receiver or "")

        if self.transport is not None:
            self.transport.dispatch(packet)

        self.journal.record(
            EventType.BRIDGE_SENT, send_param.token_id,
            {"dst_eid": send_param.dst_eid, "to": send_param.to, "guid": packet.guid,
             "restricted": packet.payload.restricted},
        )
        return packet

    # ── Inbound ─────────────────────────────────────────────────

    def credit(self, to: str, token_id: int, src_eid: int) -> None:
        """Create the token locally; fails if it already exists here."""
        if self.ownership.exists(token_id):
            raise TokenAlreadyExists(token_id)

        record = self.state.token(token_id)
        if record.classification == TokenClass.NONEXISTENT:
            record.classification = FIRST_ARRIVAL_CLASS[self.identity.range_of(token_id)]
        self.ownership.mint(token_id, to, MutationContext.BRIDGE)
        logger.info("Bridge credit: token=%d src_eid=%d to=%s", token_id, src_eid, to)

    def apply_payload(self, token_id: int, payload: BridgePayload) -> None:
        record = self.state.token(token_id)
        record.uri = payload.uri
        self.restriction.set_restricted(token_id, payload.restricted)
        if payload.restricted:
            record.classification = TokenClass.SOULBOUND

    def receive(self, packet: InboundPacket) -> ComposeAcknowledgement:
        """
        Apply an inbound send message.

        Order: peer check, replay check, envelope decode, composed-shape
        check, payload decode, credit, payload application, acknowledgement.
        """
        origin = packet.origin
        if self._bridge.peers.get(origin.src_eid) != origin.sender:
            raise OnlyPeer(origin.src_eid, origin.sender)
        if packet.guid in self._bridge.processed:
            raise MessageAlreadyProcessed(packet.guid)

        envelope = codec.decode_send(packet.message)
        if not envelope.is_composed:
            raise MissingComposedMessage(len(packet.message))
        payload = codec.decode_payload(envelope.compose_payload)

        self.credit(envelope.to, envelope.token_id, origin.src_eid)
        self.apply_payload(envelope.token_id, payload)
        self._bridge.processed.add(packet.guid)

        ack = ComposeAcknowledgement(
            to=envelope.to, guid=packet.guid, token_id=envelope.token_id, payload=payload,
        )
        if self.transport is not None:
            self.transport.send_compose(
                ack,
                codec.encode_compose_ack(
                    envelope.token_id, origin.src_eid, envelope.compose_from, payload,
                ),
            )

        self.journal.record(
            EventType.BRIDGE_RECEIVED, envelope.token_id,
            {"src_eid": origin.src_eid, "to": envelope.to, "guid": packet.guid,
             "restricted": payload.restricted},
        )
        return ack

    @staticmethod
    def compute_guid(nonce: int, src_eid: int, sender: str, dst_eid: int, receiver: str) -> str:
        """Deterministic message id: SHA-256 over the routing tuple."""
        return hashlib.sha256(
            f"{nonce}:{src_eid}:{sender}:{dst_eid}:{receiver}".encode("utf-8")
        ).hexdigest()
