"""
Bridge message codec — typed encoding in 32-byte words.

Send message layout:

    ┌──────────────┬──────────────┬────────────────┬──────────────────────┐
    │ to (word)    │ token_id     │ compose_from   │ application payload  │
    │ 32 bytes     │ 32 bytes     │ 32 bytes       │ variable             │
    └──────────────┴──────────────┴────────────────┴──────────────────────┘
    └────────── envelope (64 bytes, or 96 when composed) ──┘

Application payload layout:

    restricted (word, 0 or 1) | uri length (word) | uri bytes, zero-padded to 32

The envelope and the payload are decoded by separate functions. Every
length or shape mismatch raises MalformedPayload; nothing is defaulted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from fusion_vault.errors import InvalidRecipient, MalformedPayload
from fusion_vault.schema import BridgePayload

WORD_SIZE = 32
ADDRESS_SIZE = 20
BASE_ENVELOPE_SIZE = 2 * WORD_SIZE
COMPOSED_ENVELOPE_SIZE = 3 * WORD_SIZE
MAX_UINT256 = (1 << 256) - 1

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class Word:
    """A 256-bit big-endian word."""

    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) != WORD_SIZE:
            raise MalformedPayload(f"word must be 32 bytes, got {len(self.data)}")

    @classmethod
    def from_int(cls, value: int) -> Word:
        if not 0 <= value <= MAX_UINT256:
            raise MalformedPayload(f"integer {value} does not fit in a word")
        return cls(value.to_bytes(WORD_SIZE, "big"))

    @classmethod
    def from_address(cls, address: str) -> Word:
        if not isinstance(address, str) or not _ADDRESS_RE.match(address):
            raise InvalidRecipient(address)
        return cls(bytes.fromhex(address[2:]).rjust(WORD_SIZE, b"\x00"))

    def to_int(self) -> int:
        return int.from_bytes(self.data, "big")

    def to_address(self) -> str:
        if any(self.data[: WORD_SIZE - ADDRESS_SIZE]):
            raise MalformedPayload("address word has non-zero high bytes")
        return "0x" + self.data[WORD_SIZE - ADDRESS_SIZE:].hex()


@dataclass(frozen=True)
class SendEnvelope:
    """Decoded transport envelope of a send message."""

    to: str
    token_id: int
    compose_from: str | None = None
    compose_payload: bytes | None = None

    @property
    def is_composed(self) -> bool:
        return self.compose_payload is not None


def _words(data: bytes, offset: int, count: int) -> list[Word]:
    return [
        Word(data[offset + i * WORD_SIZE: offset + (i + 1) * WORD_SIZE])
        for i in range(count)
    ]


# ════════════════════════════════════════════════════════════════
# Application payload
# ════════════════════════════════════════════════════════════════


def encode_payload(payload: BridgePayload) -> bytes:
    raw = payload.uri.encode("utf-8")
    padded_length = -(-len(raw) // WORD_SIZE) * WORD_SIZE
    return (
        Word.from_int(1 if payload.restricted else 0).data
        + Word.from_int(len(raw)).data
        + raw.ljust(padded_length, b"\x00")
    )


def decode_payload(data: bytes) -> BridgePayload:
    if len(data) < 2 * WORD_SIZE:
        raise MalformedPayload(f"payload of {len(data)} bytes is shorter than its header")
    flag_word, length_word = _words(data, 0, 2)

    flag = flag_word.to_int()
    if flag not in (0, 1):
        raise MalformedPayload(f"restricted flag must be 0 or 1, got {flag}")

    length = length_word.to_int()
    body = data[2 * WORD_SIZE:]
    padded_length = -(-length // WORD_SIZE) * WORD_SIZE
    if len(body) != padded_length:
        raise MalformedPayload(
            f"uri body is {len(body)} bytes, expected {padded_length} for length {length}"
        )
    if any(body[length:]):
        raise MalformedPayload("uri padding is not zero")
    try:
        uri = body[:length].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedPayload("uri is not valid utf-8") from exc
    return BridgePayload(uri=uri, restricted=bool(flag))


# ════════════════════════════════════════════════════════════════
# Send message envelope
# ════════════════════════════════════════════════════════════════


def encode_send(
    to: str,
    token_id: int,
    compose_from: str | None = None,
    compose_payload: bytes | None = None,
) -> bytes:
    message = Word.from_address(to).data + Word.from_int(token_id).data
    if compose_payload is not None:
        if compose_from is None:
            raise MalformedPayload("composed message requires a compose_from sender")
        message += Word.from_address(compose_from).data + compose_payload
    return message


def decode_send(message: bytes) -> SendEnvelope:
    """
    Split a send message into its envelope fields and the raw compose payload.

    The compose payload is returned undecoded; use decode_payload on it.
    """
    size = len(message)
    if size < BASE_ENVELOPE_SIZE:
        raise MalformedPayload(f"message of {size} bytes is shorter than the envelope")
    to_word, id_word = _words(message, 0, 2)
    to = to_word.to_address()
    token_id = id_word.to_int()

    if size == BASE_ENVELOPE_SIZE:
        return SendEnvelope(to=to, token_id=token_id)
    if size <= COMPOSED_ENVELOPE_SIZE:
        raise MalformedPayload(f"message of {size} bytes has a truncated compose section")

    (from_word,) = _words(message, BASE_ENVELOPE_SIZE, 1)
    return SendEnvelope(
        to=to,
        token_id=token_id,
        compose_from=from_word.to_address(),
        compose_payload=message[COMPOSED_ENVELOPE_SIZE:],
    )


# ════════════════════════════════════════════════════════════════
# Compose acknowledgement
# ════════════════════════════════════════════════════════════════


def encode_compose_ack(token_id: int, src_eid: int, compose_from: str, payload: BridgePayload) -> bytes:
    return (
        Word.from_int(token_id).data
        + Word.from_int(src_eid).data
        + Word.from_address(compose_from).data
        + encode_payload(payload)
    )


def decode_compose_ack(message: bytes) -> tuple[int, int, str, BridgePayload]:
    if len(message) < COMPOSED_ENVELOPE_SIZE:
        raise MalformedPayload(f"compose ack of {len(message)} bytes is too short")
    id_word, eid_word, from_word = _words(message, 0, 3)
    return (
        id_word.to_int(),
        eid_word.to_int(),
        from_word.to_address(),
        decode_payload(message[COMPOSED_ENVELOPE_SIZE:]),
    )
