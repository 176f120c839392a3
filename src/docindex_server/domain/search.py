"""Query requests and search results.

Requests are pydantic models so the HTTP adapter can validate query strings
and JSON bodies in one step; every optional knob has a documented default.
Results are plain frozen dataclasses produced by the query engines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from docindex_server.domain.model import Document, FieldType


Scalar = str | int | float | bool | None


class TextQuery(BaseModel):
    """Free-text search parameters.

    ``limit=None`` returns every match, ``fuzz=0`` requires literal containment
    and ``scores`` only controls whether the score is rendered.
    """

    model_config = ConfigDict(frozen=True)

    q: str = Field(min_length=1)
    limit: int | None = Field(default=None, ge=0)
    fuzz: int = Field(default=0, ge=0)
    scores: bool = False


class RangeBounds(BaseModel):
    """Numeric bounds for one field; omitted bounds are open."""

    model_config = ConfigDict(frozen=True)

    gte: float | None = None
    lte: float | None = None
    gt: float | None = None
    lt: float | None = None

    def contains(self, value: float) -> bool:
        if self.gte is not None and value < self.gte:
            return False
        if self.lte is not None and value > self.lte:
            return False
        if self.gt is not None and value <= self.gt:
            return False
        if self.lt is not None and value >= self.lt:
            return False
        return True


class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(min_length=1)
    order: Literal["asc", "desc"] = "asc"

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_field(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"field": data}
        return data

    @property
    def descending(self) -> bool:
        return self.order == "desc"


class StructuredQuery(BaseModel):
    """Query DSL body: term/range filters, sort, count aggregation."""

    model_config = ConfigDict(frozen=True)

    term: dict[str, Scalar] | None = None
    range: dict[str, RangeBounds] | None = None
    sort: SortSpec | None = None
    aggs: str | None = Field(default=None, min_length=1)
    limit: int | None = Field(default=None, ge=0)
    fuzz: int = Field(default=0, ge=0)
    scores: bool = False


class VectorQuery(BaseModel):
    """Nearest-neighbour search parameters.

    ``field`` and ``limit`` are resolved against the index mapping and the
    configured defaults by the vector engine when omitted.
    """

    model_config = ConfigDict(frozen=True)

    vector: list[float] = Field(min_length=1)
    field: str | None = Field(default=None, min_length=1)
    limit: int | None = Field(default=None, ge=0, validation_alias=AliasChoices("limit", "k"))
    scores: bool = False


class BulkDocuments(BaseModel):
    documents: list[Any]


class MappingUpdate(BaseModel):
    fields: dict[str, FieldType]


@dataclass(frozen=True, slots=True)
class SearchHit:
    """A matching document with the score used to rank it.

    For text and structured queries higher is better; for vector queries the
    score is the L2 distance, so lower is better.
    """

    document: Document
    score: float

    def to_dict(self, *, include_score: bool = False) -> dict[str, Any]:
        data = self.document.to_dict()
        if include_score:
            data["score"] = self.score
        return data


@dataclass(frozen=True, slots=True)
class StructuredResult:
    hits: list[SearchHit]
    total: int
    aggregations: dict[str, int] | None = field(default=None)

    def to_dict(self, *, include_score: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "hits": [hit.to_dict(include_score=include_score) for hit in self.hits],
            "total": self.total,
        }
        if self.aggregations is not None:
            data["aggregations"] = self.aggregations
        return data
