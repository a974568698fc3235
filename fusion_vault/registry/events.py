"""
Event Journal — append-only, hash-chained record of everything that happened.

Ownership observers are informational only: they never authorize anything.
The default observer appends each event to this journal; every entry stores
SHA-256(previous_hash || canonical_json(entry)), so the journal can be
audited independently of the store.

The chain facade truncates the journal back to its pre-operation length when
an operation fails, so a failed operation leaves no events behind.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from fusion_vault.schema import EventType, OwnershipMutation, VaultEvent

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

OwnershipObserver = Callable[[OwnershipMutation], None]


class EventJournal:
    """In-memory hash-chained journal of vault events."""

    def __init__(self, entries: list[VaultEvent] | None = None) -> None:
        self.entries: list[VaultEvent] = list(entries or [])

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def head_hash(self) -> str:
        return self.entries[-1].entry_hash if self.entries else GENESIS_HASH

    def record(
        self,
        event_type: EventType,
        token_id: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> VaultEvent:
        """Append an event and chain it to the previous entry."""
        event = VaultEvent(
            sequence_number=len(self.entries),
            event_type=event_type,
            token_id=token_id,
            data=data or {},
            previous_hash=self.head_hash,
        )
        event.entry_hash = event.compute_hash()
        self.entries.append(event)
        logger.debug(
            "Event recorded: seq=%d type=%s token=%s",
            event.sequence_number, event_type.value, token_id,
        )
        return event

    def observe_ownership(self, mutation: OwnershipMutation) -> None:
        """Ownership observer: journal every successful registry mutation."""
        self.record(
            EventType.OWNERSHIP,
            token_id=mutation.token_id,
            data={
                "kind": mutation.kind.value,
                "from": mutation.from_owner,
                "to": mutation.to_owner,
            },
        )

    def truncate(self, length: int) -> None:
        del self.entries[length:]

    def events_for(self, token_id: int) -> list[VaultEvent]:
        return [e for e in self.entries if e.token_id == token_id]

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Recompute every hash and check the linkage.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        previous = GENESIS_HASH
        for i, entry in enumerate(self.entries):
            if entry.previous_hash != previous:
                return (
                    False, i,
                    f"Chain break at sequence {entry.sequence_number}: "
                    f"previous_hash does not match prior entry's hash",
                )
            expected = entry.compute_hash()
            if entry.entry_hash != expected:
                return (
                    False, i,
                    f"Hash mismatch at sequence {entry.sequence_number}: "
                    f"stored={entry.entry_hash[:16]}... computed={expected[:16]}...",
                )
            previous = entry.entry_hash
        return True, len(self.entries), f"Journal verified: {len(self.entries)} entries"
