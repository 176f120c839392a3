"""Free-text search: substring containment with optional edit-distance relaxation.

Each document is flattened to the lower-cased, space-joined string form of its
scalar leaves. A literal occurrence of the query scores ``1.0``. With
``fuzz > 0`` a document without a literal occurrence still matches when every
query token (or the whole query) is within ``fuzz`` edits of some document
token; it scores ``1 / (2 + d)`` for the worst token distance ``d``, so exact
hits always outrank fuzzy ones and scores never increase with distance.
"""

from __future__ import annotations

import logging
import re

from docindex_server.domain.model import Document, IndexState, iter_scalars
from docindex_server.domain.search import SearchHit, TextQuery
from docindex_server.search.fuzzy import closest_distance


logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"\w+")

EXACT_SCORE = 1.0


def flatten_text(document: Document) -> str:
    return " ".join(iter_scalars(document.body)).lower()


def tokenize(text: str) -> list[str]:
    return _TOKEN_PATTERN.findall(text.lower())


def fuzzy_score(distance: int) -> float:
    return 1.0 / (2.0 + distance)


def _fuzzy_distance(text: str, needle: str, needle_tokens: list[str], fuzz: int) -> int | None:
    vocabulary = set(tokenize(text))
    if not vocabulary:
        return None

    whole = closest_distance(needle.strip(), vocabulary, fuzz)

    per_token: int | None = None
    if needle_tokens:
        per_token = 0
        for token in needle_tokens:
            distance = closest_distance(token, vocabulary, fuzz)
            if distance is None:
                per_token = None
                break
            per_token = max(per_token, distance)

    candidates = [distance for distance in (whole, per_token) if distance is not None]
    return min(candidates) if candidates else None


def score_document(document: Document, needle: str, needle_tokens: list[str], fuzz: int) -> float | None:
    """Score one document against a lower-cased query, or ``None`` if it does not match."""
    text = flatten_text(document)
    if needle in text:
        return EXACT_SCORE
    if fuzz <= 0:
        return None
    distance = _fuzzy_distance(text, needle, needle_tokens, fuzz)
    if distance is None:
        return None
    return fuzzy_score(distance)


def text_search(state: IndexState, query: TextQuery) -> list[SearchHit]:
    """Return matching documents by descending score, ties by ascending id."""
    needle = query.q.lower()
    needle_tokens = tokenize(needle)

    hits: list[SearchHit] = []
    for document in state.documents:
        score = score_document(document, needle, needle_tokens, query.fuzz)
        if score is not None:
            hits.append(SearchHit(document=document, score=score))

    hits.sort(key=lambda hit: (-hit.score, hit.document.id))
    if query.limit is not None:
        hits = hits[: query.limit]
    logger.debug("Text search %r (fuzz=%d) matched %d documents", query.q, query.fuzz, len(hits))
    return hits
