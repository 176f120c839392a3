"""
Index storage and query engine package.

- codec: binary encoding of a whole index
- store: one file per index under the data directory
- index: a named index with its write discipline and published snapshots
- text_search: substring and fuzzy free-text matching
- structured: term/range filters, sorting and count aggregation
- vector_search: exact L2 nearest-neighbour search
- fuzzy: edit-distance helpers
"""
