"""Deterministic merge of per-source result rows."""

from __future__ import annotations

import json
from collections.abc import Hashable

from source_federation.models.domain import Row

# Identity key that refers to the backend document id instead of a row field
DOC_ID_KEY = "_id"


def merge_rows(
    source_rows: list[list[Row]],
    cap: int | None = None,
    identity_key: str | None = None,
) -> tuple[list[Row], bool]:
    """Merge per-source row lists into one ranked list.

    Args:
        source_rows: One list per source, in member order. Rows within a list
            are in backend order.
        cap: Maximum number of merged rows; ``None`` keeps everything.
        identity_key: Optional field whose value identifies the same entity
            across sources. Only the earliest-ranked row per value survives.

    Returns:
        The merged rows and whether the cap removed any rows.

    Rows are ordered by score descending, then by member order, then by
    position within the source. Rows without a score rank after all scored
    rows. The result depends only on the inputs, never on the order in which
    sources answered.
    """
    ranked = sorted(
        (
            (member_index, row)
            for member_index, rows in enumerate(source_rows)
            for row in rows
        ),
        key=lambda item: (
            item[1].score is None,
            -(item[1].score or 0.0),
            item[0],
            item[1].position,
        ),
    )
    merged = [row for _, row in ranked]

    if identity_key is not None:
        merged = _dedupe(merged, identity_key)

    if cap is not None and len(merged) > cap:
        return merged[:cap], True
    return merged, False


def _dedupe(rows: list[Row], identity_key: str) -> list[Row]:
    seen: set[Hashable] = set()
    kept: list[Row] = []
    for row in rows:
        identity = _identity(row, identity_key)
        if identity is None:
            kept.append(row)
            continue
        if identity in seen:
            continue
        seen.add(identity)
        kept.append(row)
    return kept


def _identity(row: Row, identity_key: str) -> Hashable | None:
    value = row.doc_id if identity_key == DOC_ID_KEY else row.fields.get(identity_key)
    if value is None:
        return None
    # Typed, so True, 1 and 1.0 stay distinct identities
    if isinstance(value, Hashable):
        return (type(value).__name__, value)
    return (type(value).__name__, json.dumps(value, sort_keys=True, default=str))
