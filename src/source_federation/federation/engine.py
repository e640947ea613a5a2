"""Query federation engine: fan a query out to every source and merge the answers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace

from source_federation.config.settings import Settings
from source_federation.exceptions import (
    BackendError,
    BackendTimeout,
    InvalidFieldSelection,
    InvalidQuery,
)
from source_federation.federation.merge import DOC_ID_KEY, merge_rows
from source_federation.history.recorder import HistoryRecorder
from source_federation.models.domain import (
    FederatedQuery,
    FederatedResult,
    QueryCriteria,
    Row,
    SourceStatus,
    utc_now,
)
from source_federation.observability.logger import get_logger
from source_federation.observability.metrics import log_federation_metrics, log_source_outcome
from source_federation.observability.tracing import TraceContext
from source_federation.registry.registry import DataSourceRegistry, ResolvedSource, ResolvedTarget

logger = get_logger("federation_engine")


@dataclass
class SourceOutcome:
    source: ResolvedSource
    rows: list[Row]
    status: SourceStatus


class FederationEngine:
    def __init__(
        self,
        registry: DataSourceRegistry,
        recorder: HistoryRecorder,
        settings: Settings,
    ) -> None:
        self._registry = registry
        self._recorder = recorder
        self._settings = settings

    async def execute(self, query: FederatedQuery) -> FederatedResult:
        trace = TraceContext()
        executed_at = utc_now()

        # STEP 1: Resolve the target; any failure here is fatal to the call
        with trace.span("resolve"):
            target = await self._resolve(query)

        # STEP 2: Validate the field selection before anything is dispatched
        projections = self._plan_projections(query, target)
        cap = self._effective_cap(query)

        # STEP 3: Concurrent fan-out, one task and one timeout per source
        outcomes = await asyncio.gather(
            *(
                self._query_source(source, query.criteria, fields, trace)
                for source, fields, _ in projections
            )
        )

        # STEP 4: Merge in member order, independent of completion order
        rows, cut = merge_rows(
            [o.rows for o in outcomes], cap=cap, identity_key=query.identity_key
        )
        ride_along = {source.name: key for source, _, key in projections if key is not None}
        if ride_along:
            rows = [_without_field(row, ride_along.get(row.source)) for row in rows]
        per_source_status = {o.source.name: o.status for o in outcomes}
        result = FederatedResult(
            rows=rows,
            per_source_status=per_source_status,
            truncated=cut or any(s.truncated for s in per_source_status.values()),
            query_id=trace.trace_id,
        )

        log_federation_metrics(
            trace.trace_id,
            target.name,
            len(rows),
            result.truncated,
            [name for name, s in per_source_status.items() if s.state == "failed"],
            trace.summary(),
            trace.elapsed_ms,
        )

        # STEP 5: History is fire-and-forget relative to the caller
        try:
            record = self._recorder.build_record(
                query, result, executed_at=executed_at, duration_ms=trace.elapsed_ms
            )
            self._recorder.record_in_background(record)
        except Exception:
            logger.exception("history_schedule_failed", query_id=trace.trace_id)

        return result

    async def replay(self, record_id: str) -> FederatedResult:
        """Re-run the query stored in a history record against current configs."""
        record = await self._recorder.get(record_id)
        logger.info("history_replay", record_id=record_id)
        return await self.execute(record.query)

    async def _resolve(self, query: FederatedQuery) -> ResolvedTarget:
        has_target = query.target_config_name is not None
        has_sources = query.source_names is not None
        if has_target == has_sources:
            raise InvalidQuery("Give exactly one of target_config_name or source_names")
        if has_target:
            return await self._registry.resolve_target(query.target_config_name)
        return await self._registry.resolve_sources(list(query.source_names))

    @staticmethod
    def _plan_projections(
        query: FederatedQuery, target: ResolvedTarget
    ) -> list[tuple[ResolvedSource, list[str], str | None]]:
        """Per-source backend projections.

        Each entry carries the fields to fetch and, when the identity key was
        added only for deduplication, that key so it can be dropped after the
        merge.
        """
        union = target.field_union
        requested = set(query.requested_fields) if query.requested_fields is not None else None

        if requested is not None:
            offending = sorted(requested - union)
            if offending:
                raise InvalidFieldSelection(offending)

        identity_key = query.identity_key
        if identity_key is not None and identity_key != DOC_ID_KEY and identity_key not in union:
            raise InvalidFieldSelection([identity_key])

        projections = []
        for source in target.sources:
            fields = [f for f in source.config.fields if requested is None or f in requested]
            hidden = None
            # The identity key rides along so rows can be deduplicated
            if (
                fields
                and identity_key in source.config.fields
                and identity_key not in fields
            ):
                fields.append(identity_key)
                hidden = identity_key
            projections.append((source, fields, hidden))
        return projections

    def _effective_cap(self, query: FederatedQuery) -> int:
        if query.limit is None:
            return min(self._settings.default_result_cap, self._settings.max_result_cap)
        if query.limit < 1:
            raise InvalidQuery(f"limit must be positive, got {query.limit}")
        return min(query.limit, self._settings.max_result_cap)

    async def _query_source(
        self,
        source: ResolvedSource,
        criteria: QueryCriteria,
        fields: list[str],
        trace: TraceContext,
    ) -> SourceOutcome:
        if not fields:
            status = SourceStatus(state="success", skipped=True)
            log_source_outcome(trace.trace_id, source.name, source.config.index, status)
            return SourceOutcome(source=source, rows=[], status=status)

        timeout = self._settings.source_timeout_s
        limit = self._settings.source_result_limit
        page = None
        failure: str | None = None

        with trace.span(f"source:{source.name}", index=source.config.index) as span:
            try:
                page = await asyncio.wait_for(
                    source.backend.search(
                        source.config.index, criteria, fields, limit, timeout
                    ),
                    timeout=timeout,
                )
            except (asyncio.TimeoutError, BackendTimeout):
                failure = f"timed out after {timeout}s"
            except BackendError as e:
                failure = str(e)
            except Exception as e:
                logger.exception("source_adapter_crashed", source=source.name)
                failure = f"{type(e).__name__}: {e}"

        if page is None:
            status = SourceStatus(state="failed", detail=failure, duration_ms=span.duration_ms)
            log_source_outcome(trace.trace_id, source.name, source.config.index, status)
            return SourceOutcome(source=source, rows=[], status=status)

        hits = page.hits[:limit]
        rows = [
            Row(
                source=source.name,
                doc_id=hit.doc_id,
                score=hit.score,
                fields={f: hit.fields[f] for f in fields if f in hit.fields},
                position=position,
            )
            for position, hit in enumerate(hits)
        ]
        if page.total is not None:
            truncated = page.total > len(rows)
        else:
            truncated = len(page.hits) >= limit

        status = SourceStatus(
            state="partial" if page.incomplete else "success",
            detail=page.detail,
            row_count=len(rows),
            truncated=truncated,
            duration_ms=span.duration_ms,
        )
        log_source_outcome(trace.trace_id, source.name, source.config.index, status)
        return SourceOutcome(source=source, rows=rows, status=status)


def _without_field(row: Row, field: str | None) -> Row:
    if field is None or field not in row.fields:
        return row
    return replace(row, fields={k: v for k, v in row.fields.items() if k != field})
