"""Unit tests for the binary index codec."""

import struct
import zlib

import pytest

from docindex_server.domain.model import Document, FieldMapping, IndexState
from docindex_server.errors import CorruptDataError, InvalidInputError
from docindex_server.search import codec


def _state() -> IndexState:
    return IndexState(
        documents=(
            Document(id=0, body={"title": "apple pie", "views": 10, "tags": ["a", "b"]}),
            Document(id=2, body={"nested": {"deep": [1, {"x": None}], "flag": True}, "ratio": 0.25}),
            Document(id=3, body="a bare string"),
            Document(id=4, body=[1, 2, 3]),
            Document(id=5, body=None),
        ),
        mapping=FieldMapping.from_dict({"views": "numeric", "vector": "vector", "title": "string"}),
        next_id=7,
    )


def _reseal(body: bytes) -> bytes:
    return body + struct.pack(">I", zlib.crc32(body))


@pytest.mark.unit
class TestRoundTrip:
    def test_round_trip_preserves_everything(self):
        state = _state()
        decoded = codec.decode(codec.encode(state))
        assert decoded == state
        assert decoded.next_id == 7
        assert [document.id for document in decoded.documents] == [0, 2, 3, 4, 5]

    def test_empty_index(self):
        state = IndexState()
        assert codec.decode(codec.encode(state)) == state

    def test_counter_survives_without_documents(self):
        state = IndexState(next_id=42)
        assert codec.decode(codec.encode(state)).next_id == 42

    def test_unicode_and_large_numbers(self):
        body = {"name": "crème brûlée ☕", "big": 2**63, "neg": -(2**62), "tiny": 1e-300}
        state = IndexState(documents=(Document(id=0, body=body),), next_id=1)
        assert codec.decode(codec.encode(state)).documents[0].body == body

    def test_encoding_starts_with_magic(self):
        assert codec.encode(IndexState()).startswith(codec.MAGIC)


@pytest.mark.unit
class TestCorruption:
    def test_truncated_file(self):
        data = codec.encode(_state())
        for cut in (0, 5, len(data) // 2, len(data) - 1):
            with pytest.raises(CorruptDataError):
                codec.decode(data[:cut])

    def test_wrong_magic(self):
        data = codec.encode(_state())
        with pytest.raises(CorruptDataError, match="magic"):
            codec.decode(_reseal(b"XXXX" + data[4:-4]))

    def test_wrong_version(self):
        data = bytearray(codec.encode(_state())[:-4])
        data[4:6] = struct.pack(">H", codec.FORMAT_VERSION + 1)
        with pytest.raises(CorruptDataError, match="version"):
            codec.decode(_reseal(bytes(data)))

    def test_flipped_byte_fails_checksum(self):
        data = bytearray(codec.encode(_state()))
        data[len(data) // 2] ^= 0xFF
        with pytest.raises(CorruptDataError):
            codec.decode(bytes(data))

    def test_garbage(self):
        with pytest.raises(CorruptDataError):
            codec.decode(b"\x00" * 64)

    def test_trailing_bytes(self):
        body = codec.encode(_state())[:-4]
        with pytest.raises(CorruptDataError, match="trailing"):
            codec.decode(_reseal(body + b"junk"))

    def test_document_id_at_or_past_counter(self):
        state = IndexState(documents=(Document(id=0, body={}),), next_id=1)
        body = bytearray(codec.encode(state)[:-4])
        # next id lives at offset 6 in the header
        body[6:14] = struct.pack(">Q", 0)
        with pytest.raises(CorruptDataError, match="document id"):
            codec.decode(_reseal(bytes(body)))

    def test_invalid_json_payload(self):
        state = IndexState(documents=(Document(id=0, body="ab"),), next_id=1)
        body = codec.encode(state)[:-4]
        with pytest.raises(CorruptDataError, match="JSON"):
            codec.decode(_reseal(body[:-4] + b"{ab}"))


@pytest.mark.unit
def test_dumps_document_rejects_unserializable_values():
    with pytest.raises(InvalidInputError):
        codec.dumps_document({"big": 2**70})
