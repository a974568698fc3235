"""
Tests for the bridge message codec.

Validates:
- Word layout of the envelope and the application payload
- Base vs composed envelope shapes
- Every malformed shape is a typed failure, never a default
"""

from __future__ import annotations

import pytest

from fusion_vault.bridge import codec
from fusion_vault.bridge.codec import Word
from fusion_vault.errors import InvalidRecipient, MalformedInputError, MalformedPayload
from fusion_vault.schema import BridgePayload

from support import ALICE, BOB


class TestWord:
    def test_int_is_big_endian(self):
        word = Word.from_int(258)
        assert word.data[-2:] == b"\x01\x02"
        assert word.to_int() == 258

    def test_address_is_left_padded(self):
        word = Word.from_address(ALICE)
        assert word.data[:12] == b"\x00" * 12
        assert word.to_address() == ALICE

    def test_address_is_lowercased(self):
        assert Word.from_address("0x" + "AB" * 20).to_address() == "0x" + "ab" * 20

    def test_invalid_address(self):
        with pytest.raises(InvalidRecipient):
            Word.from_address("alice")

    def test_dirty_address_word(self):
        with pytest.raises(MalformedPayload):
            Word(b"\x01" * 32).to_address()

    def test_wrong_size(self):
        with pytest.raises(MalformedPayload):
            Word(b"\x00" * 31)

    def test_overflow(self):
        with pytest.raises(MalformedPayload):
            Word.from_int(1 << 256)
        with pytest.raises(MalformedPayload):
            Word.from_int(-1)


class TestPayload:
    def test_layout(self):
        data = codec.encode_payload(BridgePayload(uri="ipfs://x", restricted=True))
        assert len(data) == 96
        assert Word(data[:32]).to_int() == 1
        assert Word(data[32:64]).to_int() == 8
        assert data[64:72] == b"ipfs://x"
        assert codec.decode_payload(data) == BridgePayload(uri="ipfs://x", restricted=True)

    def test_empty_uri(self):
        data = codec.encode_payload(BridgePayload(uri="", restricted=False))
        assert len(data) == 64
        assert codec.decode_payload(data).uri == ""

    def test_multi_word_uri(self):
        uri = "ipfs://" + "q" * 60
        data = codec.encode_payload(BridgePayload(uri=uri, restricted=False))
        assert len(data) == 64 + 96
        assert codec.decode_payload(data).uri == uri

    def test_bad_flag(self):
        data = bytearray(codec.encode_payload(BridgePayload(uri="u", restricted=False)))
        data[31] = 2
        with pytest.raises(MalformedPayload):
            codec.decode_payload(bytes(data))

    def test_truncated_body(self):
        data = codec.encode_payload(BridgePayload(uri="ipfs://x", restricted=False))
        with pytest.raises(MalformedPayload):
            codec.decode_payload(data[:-1])

    def test_trailing_bytes(self):
        data = codec.encode_payload(BridgePayload(uri="ipfs://x", restricted=False))
        with pytest.raises(MalformedPayload):
            codec.decode_payload(data + b"\x00" * 32)

    def test_dirty_padding(self):
        data = bytearray(codec.encode_payload(BridgePayload(uri="ipfs://x", restricted=False)))
        data[-1] = 0xFF
        with pytest.raises(MalformedPayload):
            codec.decode_payload(bytes(data))

    def test_short_header(self):
        with pytest.raises(MalformedPayload):
            codec.decode_payload(b"\x00" * 40)

    def test_invalid_utf8(self):
        header = Word.from_int(0).data + Word.from_int(2).data
        with pytest.raises(MalformedPayload):
            codec.decode_payload(header + b"\xff\xfe".ljust(32, b"\x00"))


class TestSendEnvelope:
    def test_base_message(self):
        message = codec.encode_send(BOB, 42)
        assert len(message) == 64
        envelope = codec.decode_send(message)
        assert envelope.to == BOB
        assert envelope.token_id == 42
        assert not envelope.is_composed

    def test_composed_message(self):
        payload = codec.encode_payload(BridgePayload(uri="ipfs://x", restricted=False))
        message = codec.encode_send(BOB, 42, compose_from=ALICE, compose_payload=payload)
        envelope = codec.decode_send(message)
        assert envelope.is_composed
        assert envelope.compose_from == ALICE
        assert envelope.compose_payload == payload

    def test_composed_requires_sender(self):
        with pytest.raises(MalformedPayload):
            codec.encode_send(BOB, 42, compose_payload=b"")

    def test_shorter_than_envelope(self):
        with pytest.raises(MalformedPayload):
            codec.decode_send(b"\x00" * 63)

    def test_truncated_compose_section(self):
        message = codec.encode_send(BOB, 42) + b"\x00" * 20
        with pytest.raises(MalformedPayload):
            codec.decode_send(message)

    def test_compose_sender_without_payload(self):
        message = codec.encode_send(BOB, 42) + Word.from_address(ALICE).data
        with pytest.raises(MalformedPayload):
            codec.decode_send(message)

    def test_errors_share_a_category(self):
        assert issubclass(MalformedPayload, MalformedInputError)
        assert issubclass(InvalidRecipient, MalformedInputError)


class TestComposeAck:
    def test_round_trip(self):
        payload = BridgePayload(uri="ipfs://badge", restricted=True)
        message = codec.encode_compose_ack(7, 30101, ALICE, payload)
        assert codec.decode_compose_ack(message) == (7, 30101, ALICE, payload)

    def test_too_short(self):
        with pytest.raises(MalformedPayload):
            codec.decode_compose_ack(b"\x00" * 64)
