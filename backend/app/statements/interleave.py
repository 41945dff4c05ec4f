from __future__ import annotations

from typing import Iterable, List, Mapping

from .records import RawSourceRecord, SourceKind


def merge(
    per_source: Mapping[SourceKind, Iterable[RawSourceRecord]],
    page_size: int,
) -> List[RawSourceRecord]:
    """
    Interleave independently paginated sources into one newest-first page.

    Sources are merged before truncation: truncating each source first could
    starve a kind whose older records still belong on this page. The id
    tie-break gives a total order when timestamps collide.
    """
    if page_size < 1:
        raise ValueError("page_size must be >= 1")

    combined = [record for records in per_source.values() for record in records]
    combined.sort(key=lambda record: record.sort_key, reverse=True)
    return combined[:page_size]


def consumed_counts(page: Iterable[RawSourceRecord]) -> dict[SourceKind, int]:
    counts: dict[SourceKind, int] = {}
    for record in page:
        counts[record.source] = counts.get(record.source, 0) + 1
    return counts
