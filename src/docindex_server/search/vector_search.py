"""Exact nearest-neighbour search by Euclidean (L2) distance.

Candidate vectors are gathered from one top-level field and scored in a single
NumPy pass. Documents whose field is missing, not a numeric array, or of a
different dimensionality than the query are skipped.
"""

from __future__ import annotations

import logging

import numpy as np

from docindex_server.domain.model import Document, FieldMapping, IndexState, as_vector, field_value
from docindex_server.domain.search import SearchHit, VectorQuery


logger = logging.getLogger(__name__)

DEFAULT_VECTOR_FIELD = "vector"
DEFAULT_VECTOR_LIMIT = 5


def resolve_vector_field(mapping: FieldMapping, requested: str | None, default: str = DEFAULT_VECTOR_FIELD) -> str:
    """Explicit field, else the single mapped ``vector`` field, else ``default``."""
    if requested:
        return requested
    declared = mapping.vector_fields()
    if len(declared) == 1:
        return declared[0]
    return default


def l2_distances(matrix: np.ndarray, target: np.ndarray) -> np.ndarray:
    return np.linalg.norm(matrix - target, axis=1)


def vector_search(
    state: IndexState,
    query: VectorQuery,
    *,
    default_limit: int = DEFAULT_VECTOR_LIMIT,
    default_field: str = DEFAULT_VECTOR_FIELD,
) -> list[SearchHit]:
    """Return up to ``limit`` closest documents, ascending distance then ascending id."""
    field_name = resolve_vector_field(state.mapping, query.field, default_field)
    limit = default_limit if query.limit is None else query.limit
    target = np.asarray(query.vector, dtype=np.float64)

    candidates: list[Document] = []
    rows: list[list[float]] = []
    skipped = 0
    for document in state.documents:
        vector = as_vector(field_value(document.body, field_name))
        if vector is None or len(vector) != target.size:
            skipped += 1
            continue
        candidates.append(document)
        rows.append(vector)

    if not candidates or limit == 0:
        return []

    distances = l2_distances(np.asarray(rows, dtype=np.float64), target)
    ids = np.asarray([document.id for document in candidates], dtype=np.uint64)
    # lexsort sorts by the last key first
    order = np.lexsort((ids, distances))[:limit]

    logger.debug(
        "Vector search on %r: %d candidates, %d skipped, returning %d",
        field_name,
        len(candidates),
        skipped,
        len(order),
    )
    return [SearchHit(document=candidates[position], score=float(distances[position])) for position in order]
