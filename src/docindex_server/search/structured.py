"""Structured query DSL: term and range filters, sorting, count aggregation.

Evaluation order is filter, then sort, then aggregate over the whole filtered
set, then truncate hits to ``limit``. A document that lacks a filtered field,
or whose value has the wrong type for the condition, is excluded rather than
reported as an error.
"""

from __future__ import annotations

from collections import Counter
import logging

import orjson

from docindex_server.domain.model import (
    MISSING,
    Document,
    FieldMapping,
    IndexState,
    JsonValue,
    as_number,
    field_value,
)
from docindex_server.domain.search import RangeBounds, SearchHit, SortSpec, StructuredQuery, StructuredResult
from docindex_server.search.fuzzy import levenshtein_distance


logger = logging.getLogger(__name__)

SortKey = tuple[int, float | str]


def _scalars_equal(actual: JsonValue, expected: JsonValue) -> bool:
    # bool is an int subclass; true must not equal 1
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def term_distance(actual: JsonValue, expected: JsonValue, *, numeric: bool, fuzz: int) -> int | None:
    """Edit distance between a field value and a term, ``None`` when they do not match."""
    if actual is MISSING:
        return None
    if _scalars_equal(actual, expected):
        return 0
    if numeric:
        left = as_number(actual, allow_strings=True)
        right = as_number(expected, allow_strings=True)
        if left is not None and left == right:
            return 0
        return None
    if fuzz > 0 and isinstance(actual, str) and isinstance(expected, str):
        distance = levenshtein_distance(actual.lower(), expected.lower(), fuzz)
        return distance if distance <= fuzz else None
    return None


def _match_terms(body: JsonValue, terms: dict[str, JsonValue], mapping: FieldMapping, fuzz: int) -> int | None:
    worst = 0
    for name, expected in terms.items():
        distance = term_distance(field_value(body, name), expected, numeric=mapping.is_numeric(name), fuzz=fuzz)
        if distance is None:
            return None
        worst = max(worst, distance)
    return worst


def _match_ranges(body: JsonValue, ranges: dict[str, RangeBounds], mapping: FieldMapping) -> bool:
    for name, bounds in ranges.items():
        value = as_number(field_value(body, name), allow_strings=mapping.is_numeric(name))
        if value is None or not bounds.contains(value):
            return False
    return True


def sort_key(value: JsonValue) -> SortKey | None:
    """Total order for sort values: numerics first (numerically), then everything else by text."""
    if value is MISSING or value is None:
        return None
    number = as_number(value, allow_strings=True)
    if number is not None:
        return (0, number)
    if isinstance(value, str):
        return (1, value)
    return (1, orjson.dumps(value).decode())


def bucket_key(value: JsonValue) -> str | None:
    """Aggregation key: the compact JSON text of the value, so ``"1"`` and ``1`` stay apart."""
    if value is MISSING or value is None:
        return None
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        value = int(value)
    return orjson.dumps(value).decode()


def sort_hits(hits: list[SearchHit], spec: SortSpec) -> list[SearchHit]:
    """Order by field value; missing values last, ties by ascending id in both directions."""
    keyed: list[tuple[SortKey, SearchHit]] = []
    missing: list[SearchHit] = []
    for hit in sorted(hits, key=lambda item: item.document.id):
        key = sort_key(field_value(hit.document.body, spec.field))
        if key is None:
            missing.append(hit)
        else:
            keyed.append((key, hit))
    # list.sort stays stable with reverse=True, so equal keys keep ascending ids
    keyed.sort(key=lambda item: item[0], reverse=spec.descending)
    return [hit for _, hit in keyed] + missing


def aggregate(documents: list[Document], field_name: str) -> dict[str, int]:
    """Count documents per distinct value of ``field_name``; missing values are skipped."""
    counts: Counter[str] = Counter()
    for document in documents:
        key = bucket_key(field_value(document.body, field_name))
        if key is not None:
            counts[key] += 1
    return dict(counts.most_common())


def structured_search(state: IndexState, query: StructuredQuery) -> StructuredResult:
    mapping = state.mapping
    terms = query.term or {}
    ranges = query.range or {}

    hits: list[SearchHit] = []
    for document in state.documents:
        distance = _match_terms(document.body, terms, mapping, query.fuzz)
        if distance is None:
            continue
        if not _match_ranges(document.body, ranges, mapping):
            continue
        hits.append(SearchHit(document=document, score=1.0 / (1.0 + distance)))

    if query.sort is not None:
        hits = sort_hits(hits, query.sort)

    aggregations = None
    if query.aggs is not None:
        aggregations = aggregate([hit.document for hit in hits], query.aggs)

    total = len(hits)
    if query.limit is not None:
        hits = hits[: query.limit]

    logger.debug(
        "Structured query matched %d documents (terms=%d, ranges=%d, sort=%s, aggs=%s)",
        total,
        len(terms),
        len(ranges),
        query.sort.field if query.sort else None,
        query.aggs,
    )
    return StructuredResult(hits=hits, total=total, aggregations=aggregations)
