"""Core value objects: documents, field types and field mappings.

Documents are opaque JSON values (``dict``/``list``/``str``/``int``/``float``/
``bool``/``None``). Query engines never inspect them directly; they go through
``field_value`` and the ``as_*`` helpers, which return ``None`` when a value is
absent or has the wrong shape so that type mismatches fall through to
"excluded" instead of raising.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
import math
import re
from typing import Any

from docindex_server.errors import InvalidInputError


JsonValue = Any

_INDEX_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]{0,127}$")


class FieldType(str, Enum):
    """Types a field mapping may declare."""

    STRING = "string"
    NUMERIC = "numeric"
    VECTOR = "vector"


class ValueKind(str, Enum):
    """Shape of a JSON value."""

    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


@dataclass(frozen=True, slots=True)
class Document:
    """A stored document and the id its index assigned to it."""

    id: int
    body: JsonValue

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "document": self.body}


@dataclass(frozen=True)
class FieldMapping:
    """Advisory field name -> type declarations for one index.

    The mapping never rejects documents. It only tells the query engines how
    to interpret a field, e.g. that numeric strings in a ``numeric`` field
    take part in range filters.
    """

    fields: Mapping[str, FieldType] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", {name: FieldType(kind) for name, kind in dict(self.fields).items()})

    def type_of(self, name: str) -> FieldType | None:
        return self.fields.get(name)

    def is_numeric(self, name: str) -> bool:
        return self.fields.get(name) is FieldType.NUMERIC

    def vector_fields(self) -> list[str]:
        return [name for name, kind in self.fields.items() if kind is FieldType.VECTOR]

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def to_dict(self) -> dict[str, str]:
        return {name: kind.value for name, kind in self.fields.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldMapping:
        try:
            return cls(fields={str(name): FieldType(kind) for name, kind in data.items()})
        except ValueError as exc:
            raise InvalidInputError(f"Unknown field type in mapping: {exc}") from exc


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()


def classify(value: JsonValue) -> ValueKind:
    """Return the JSON kind of ``value``."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, list):
        return ValueKind.ARRAY
    if isinstance(value, dict):
        return ValueKind.OBJECT
    raise InvalidInputError(f"Unsupported document value of type {type(value).__name__}")


def ensure_json_value(value: JsonValue, *, _depth: int = 0) -> None:
    """Reject values that cannot be stored as a JSON document."""
    if _depth > 512:
        raise InvalidInputError("Document nesting is too deep")
    kind = classify(value)
    if kind is ValueKind.NUMBER and isinstance(value, float) and not math.isfinite(value):
        raise InvalidInputError("Document numbers must be finite")
    if kind is ValueKind.ARRAY:
        for item in value:
            ensure_json_value(item, _depth=_depth + 1)
    elif kind is ValueKind.OBJECT:
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidInputError("Document object keys must be strings")
            ensure_json_value(item, _depth=_depth + 1)


def field_value(body: JsonValue, name: str) -> JsonValue:
    """Return the top-level field ``name`` of ``body`` or ``MISSING``."""
    if isinstance(body, dict):
        return body.get(name, MISSING)
    return MISSING


def as_number(value: JsonValue, *, allow_strings: bool = False) -> float | None:
    """Interpret ``value`` as a number, or return ``None`` on a type mismatch."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if allow_strings and isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def as_vector(value: JsonValue) -> list[float] | None:
    """Interpret ``value`` as a numeric array, or return ``None``."""
    if not isinstance(value, list) or not value:
        return None
    vector: list[float] = []
    for item in value:
        number = as_number(item)
        if number is None:
            return None
        vector.append(number)
    return vector


def iter_scalars(value: JsonValue) -> Iterator[str]:
    """Yield the string form of every scalar leaf, depth first."""
    if isinstance(value, dict):
        for item in value.values():
            yield from iter_scalars(item)
    elif isinstance(value, list):
        for item in value:
            yield from iter_scalars(item)
    elif isinstance(value, bool):
        yield "true" if value else "false"
    elif value is not None:
        yield str(value)


def validate_index_name(name: str) -> str:
    """Index names double as file stems, so only a safe alphabet is allowed."""
    if not isinstance(name, str) or not _INDEX_NAME_PATTERN.match(name):
        raise InvalidInputError(
            f"Invalid index name {name!r}: use 1-128 characters of letters, digits, '_', '-' or '.', "
            "not starting with '.'"
        )
    return name


@dataclass(frozen=True)
class IndexState:
    """Point-in-time view of an index: what gets persisted and what queries read.

    ``version`` counts published mutations and is not persisted.
    """

    documents: tuple[Document, ...] = ()
    mapping: FieldMapping = field(default_factory=FieldMapping)
    next_id: int = 0
    version: int = field(default=0, compare=False)
