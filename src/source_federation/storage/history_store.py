"""SQLite-backed append-only log of executed federated queries."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import asdict
from datetime import datetime, timezone

import aiosqlite

from source_federation.exceptions import HistoryRecordNotFound
from source_federation.models.domain import (
    FederatedQuery,
    HistoryFilter,
    HistoryRecord,
    QueryCriteria,
    ResultSummary,
    SourceSummary,
)
from source_federation.storage.migrations import initialize_history_db


def _format_ts(ts: datetime) -> str:
    # Fixed-width UTC text so lexical order matches chronological order
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteHistoryStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        await initialize_history_db(self._db_path)

    async def append(self, record: HistoryRecord) -> None:
        async with self._write_lock:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    "INSERT INTO query_history (record_id, executed_at, query, summary) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        record.record_id,
                        _format_ts(record.executed_at),
                        json.dumps(_query_to_dict(record.query)),
                        json.dumps(asdict(record.result_summary)),
                    ),
                )
                await db.executemany(
                    "INSERT INTO query_history_sources (record_id, source_name) VALUES (?, ?)",
                    [(record.record_id, name) for name in record.source_names],
                )
                await db.commit()

    async def get(self, record_id: str) -> HistoryRecord:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM query_history WHERE record_id = ?", (record_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    raise HistoryRecordNotFound(record_id)
                return self._row_to_record(row)

    async def count(self) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM query_history") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def iter_records(self, history_filter: HistoryFilter) -> AsyncIterator[HistoryRecord]:
        """Yield matching records newest-first, one keyset page at a time."""
        cursor_key: tuple[str, int] | None = None
        while True:
            page = await self._fetch_page(history_filter, cursor_key)
            for _, record in page:
                yield record
            if not page or len(page) < history_filter.page_size:
                return
            last_seq, last_record = page[-1]
            cursor_key = (_format_ts(last_record.executed_at), last_seq)

    async def _fetch_page(
        self, history_filter: HistoryFilter, cursor_key: tuple[str, int] | None
    ) -> list[tuple[int, HistoryRecord]]:
        clauses: list[str] = []
        params: list = []
        if history_filter.source_name is not None:
            clauses.append(
                "record_id IN (SELECT record_id FROM query_history_sources WHERE source_name = ?)"
            )
            params.append(history_filter.source_name)
        if history_filter.since is not None:
            clauses.append("executed_at >= ?")
            params.append(_format_ts(history_filter.since))
        if history_filter.until is not None:
            clauses.append("executed_at <= ?")
            params.append(_format_ts(history_filter.until))
        if cursor_key is not None:
            clauses.append("(executed_at < ? OR (executed_at = ? AND seq < ?))")
            params.extend([cursor_key[0], cursor_key[0], cursor_key[1]])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(history_filter.page_size)

        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT * FROM query_history {where} ORDER BY executed_at DESC, seq DESC LIMIT ?",
                params,
            ) as cursor:
                rows = await cursor.fetchall()
                return [(row["seq"], self._row_to_record(row)) for row in rows]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> HistoryRecord:
        summary = json.loads(row["summary"])
        return HistoryRecord(
            record_id=row["record_id"],
            query=_query_from_dict(json.loads(row["query"])),
            executed_at=datetime.fromisoformat(row["executed_at"]),
            result_summary=ResultSummary(
                row_count=summary["row_count"],
                truncated=summary["truncated"],
                per_source_status={
                    name: SourceSummary(**status)
                    for name, status in summary["per_source_status"].items()
                },
                duration_ms=summary.get("duration_ms", 0.0),
            ),
        )


def _query_to_dict(query: FederatedQuery) -> dict:
    return {
        "criteria": {"text": query.criteria.text, "filters": query.criteria.filters},
        "target_config_name": query.target_config_name,
        "source_names": list(query.source_names) if query.source_names is not None else None,
        "requested_fields": (
            list(query.requested_fields) if query.requested_fields is not None else None
        ),
        "identity_key": query.identity_key,
        "limit": query.limit,
    }


def _query_from_dict(data: dict) -> FederatedQuery:
    source_names = data.get("source_names")
    requested_fields = data.get("requested_fields")
    return FederatedQuery(
        criteria=QueryCriteria(
            text=data["criteria"].get("text", ""),
            filters=data["criteria"].get("filters", {}),
        ),
        target_config_name=data.get("target_config_name"),
        source_names=tuple(source_names) if source_names is not None else None,
        requested_fields=tuple(requested_fields) if requested_fields is not None else None,
        identity_key=data.get("identity_key"),
        limit=data.get("limit"),
    )
