"""History recorder: append-only log of executed federated queries."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from uuid import uuid4

from source_federation.models.domain import (
    FederatedQuery,
    FederatedResult,
    HistoryFilter,
    HistoryRecord,
    ResultSummary,
    SourceSummary,
    utc_now,
)
from source_federation.observability.logger import get_logger
from source_federation.storage.history_store import SQLiteHistoryStore

logger = get_logger("history_recorder")


def _as_utc(ts: datetime | None) -> datetime | None:
    # Naive timestamps from callers are taken to be UTC
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class HistoryQuery:
    """Lazy, restartable view over history records, newest first.

    Each ``async for`` starts a fresh scan from the newest matching record;
    nothing is read until iteration begins.
    """

    def __init__(self, store: SQLiteHistoryStore, history_filter: HistoryFilter) -> None:
        self._store = store
        self._filter = history_filter

    def __aiter__(self) -> AsyncIterator[HistoryRecord]:
        return self._store.iter_records(self._filter)

    async def take(self, n: int) -> list[HistoryRecord]:
        records: list[HistoryRecord] = []
        if n <= 0:
            return records
        async for record in self:
            records.append(record)
            if len(records) >= n:
                break
        return records


class HistoryRecorder:
    def __init__(self, store: SQLiteHistoryStore, page_size: int = 50) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._store = store
        self._page_size = page_size
        self._pending: set[asyncio.Task] = set()

    async def append(self, record: HistoryRecord) -> None:
        await self._store.append(record)

    def query(
        self,
        source_name: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> HistoryQuery:
        return HistoryQuery(
            self._store,
            HistoryFilter(
                source_name=source_name,
                since=_as_utc(since),
                until=_as_utc(until),
                page_size=self._page_size,
            ),
        )

    async def get(self, record_id: str) -> HistoryRecord:
        return await self._store.get(record_id)

    async def count(self) -> int:
        return await self._store.count()

    @staticmethod
    def build_record(
        query: FederatedQuery,
        result: FederatedResult,
        executed_at: datetime | None = None,
        duration_ms: float = 0.0,
    ) -> HistoryRecord:
        return HistoryRecord(
            record_id=result.query_id or str(uuid4()),
            query=query,
            executed_at=executed_at or utc_now(),
            result_summary=ResultSummary(
                row_count=len(result.rows),
                truncated=result.truncated,
                per_source_status={
                    name: SourceSummary(
                        state=status.state, row_count=status.row_count, detail=status.detail
                    )
                    for name, status in result.per_source_status.items()
                },
                duration_ms=round(duration_ms, 2),
            ),
        )

    def record_in_background(self, record: HistoryRecord) -> asyncio.Task:
        """Schedule ``append`` without awaiting it; failures are logged only."""
        task = asyncio.create_task(self._append_logged(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled background append to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _append_logged(self, record: HistoryRecord) -> None:
        try:
            await self._store.append(record)
        except Exception:
            logger.exception("history_append_failed", record_id=record.record_id)
