"""Metric recording helpers for federated queries."""

from __future__ import annotations

from source_federation.models.domain import SourceStatus
from source_federation.observability.logger import get_logger

logger = get_logger("metrics")


def log_source_outcome(query_id: str, source: str, index: str, status: SourceStatus) -> None:
    log = logger.warning if status.state == "failed" else logger.info
    log(
        "source_outcome",
        query_id=query_id,
        source=source,
        index=index,
        state=status.state,
        rows=status.row_count,
        truncated=status.truncated,
        skipped=status.skipped,
        detail=status.detail,
        duration_ms=round(status.duration_ms, 2),
    )


def log_federation_metrics(
    query_id: str,
    target: str,
    row_count: int,
    truncated: bool,
    failed_sources: list[str],
    spans: list[dict],
    duration_ms: float,
) -> None:
    logger.info(
        "federation_metrics",
        query_id=query_id,
        target=target,
        rows=row_count,
        truncated=truncated,
        failed_sources=failed_sources,
        spans=spans,
        duration_ms=round(duration_ms, 2),
    )
