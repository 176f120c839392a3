"""Domain layer: documents, mappings, queries and results."""

from .model import Document, FieldMapping, FieldType, IndexState
from .search import (
    BulkDocuments,
    MappingUpdate,
    RangeBounds,
    SearchHit,
    SortSpec,
    StructuredQuery,
    StructuredResult,
    TextQuery,
    VectorQuery,
)


__all__ = [
    "BulkDocuments",
    "Document",
    "FieldMapping",
    "FieldType",
    "IndexState",
    "MappingUpdate",
    "RangeBounds",
    "SearchHit",
    "SortSpec",
    "StructuredQuery",
    "StructuredResult",
    "TextQuery",
    "VectorQuery",
]
