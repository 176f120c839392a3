"""Binary codec for a whole index.

Layout (all integers big-endian)::

    header   : magic "DIDX" | u16 format version | u64 next id | u32 mapping length | u32 document count
    mapping  : orjson object {field: type}
    documents: repeated (u64 id | u32 payload length | orjson payload)
    trailer  : u32 CRC-32 of everything before it

Documents are stored as self-describing JSON payloads, so nested values round
trip exactly without an external schema. Any deviation from the layout is
reported as ``CorruptDataError``; the codec never guesses.
"""

from __future__ import annotations

import struct
from typing import Any
import zlib

import orjson

from docindex_server.domain.model import Document, FieldMapping, FieldType, IndexState, JsonValue
from docindex_server.errors import CorruptDataError, InvalidInputError


MAGIC = b"DIDX"
FORMAT_VERSION = 1

_HEADER = struct.Struct(">4sHQII")
_DOCUMENT_HEADER = struct.Struct(">QI")
_TRAILER = struct.Struct(">I")


def dumps_document(value: JsonValue) -> bytes:
    """Serialize one document body, rejecting values JSON cannot carry."""
    try:
        return orjson.dumps(value)
    except orjson.JSONEncodeError as exc:
        raise InvalidInputError(f"Document cannot be serialized: {exc}") from exc


def encode(state: IndexState) -> bytes:
    """Serialize documents, mapping and id counter into one byte string."""
    mapping_payload = orjson.dumps(state.mapping.to_dict())
    chunks: list[bytes] = [
        _HEADER.pack(MAGIC, FORMAT_VERSION, state.next_id, len(mapping_payload), len(state.documents)),
        mapping_payload,
    ]
    for document in state.documents:
        payload = dumps_document(document.body)
        chunks.append(_DOCUMENT_HEADER.pack(document.id, len(payload)))
        chunks.append(payload)
    body = b"".join(chunks)
    return body + _TRAILER.pack(zlib.crc32(body))


def decode(data: bytes) -> IndexState:
    """Inverse of :func:`encode`; raises ``CorruptDataError`` on any mismatch."""
    if len(data) < _HEADER.size + _TRAILER.size:
        raise CorruptDataError(f"Index file is truncated ({len(data)} bytes)")

    magic, version, next_id, mapping_length, document_count = _HEADER.unpack_from(data, 0)
    if magic != MAGIC:
        raise CorruptDataError(f"Bad magic {magic!r}, expected {MAGIC!r}")
    if version != FORMAT_VERSION:
        raise CorruptDataError(f"Unsupported index format version {version}")

    body = memoryview(data)[: -_TRAILER.size]
    (checksum,) = _TRAILER.unpack_from(data, len(data) - _TRAILER.size)
    if zlib.crc32(body) != checksum:
        raise CorruptDataError("Checksum mismatch")

    offset = _HEADER.size
    mapping_payload, offset = _take(body, offset, mapping_length)
    mapping = _decode_mapping(_loads(mapping_payload))

    documents: list[Document] = []
    seen: set[int] = set()
    for _ in range(document_count):
        if offset + _DOCUMENT_HEADER.size > len(body):
            raise CorruptDataError("Document header runs past end of file")
        doc_id, payload_length = _DOCUMENT_HEADER.unpack_from(body, offset)
        offset += _DOCUMENT_HEADER.size
        payload, offset = _take(body, offset, payload_length)
        if doc_id in seen or doc_id >= next_id:
            raise CorruptDataError(f"Invalid document id {doc_id} (next id {next_id})")
        seen.add(doc_id)
        documents.append(Document(id=doc_id, body=_loads(payload)))

    if offset != len(body):
        raise CorruptDataError(f"{len(body) - offset} unexpected trailing bytes")

    return IndexState(documents=tuple(documents), mapping=mapping, next_id=next_id)


def _take(body: memoryview, offset: int, length: int) -> tuple[bytes, int]:
    end = offset + length
    if end > len(body):
        raise CorruptDataError("Payload runs past end of file")
    return bytes(body[offset:end]), end


def _loads(payload: bytes) -> Any:
    try:
        return orjson.loads(payload)
    except orjson.JSONDecodeError as exc:
        raise CorruptDataError(f"Invalid JSON payload: {exc}") from exc


def _decode_mapping(raw: Any) -> FieldMapping:
    if not isinstance(raw, dict):
        raise CorruptDataError("Mapping payload is not an object")
    try:
        return FieldMapping(fields={name: FieldType(kind) for name, kind in raw.items()})
    except ValueError as exc:
        raise CorruptDataError(f"Invalid mapping entry: {exc}") from exc
