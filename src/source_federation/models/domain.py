"""Core domain objects used throughout the system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

ConfigKind = Literal["single", "multi"]
SourceState = Literal["success", "partial", "failed"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SingleSourceConfig:
    name: str
    index: str
    fields: tuple[str, ...]
    active: bool = True
    version: int = 0  # assigned by the config store
    updated_at: datetime = field(default_factory=utc_now)

    kind: ConfigKind = field(default="single", init=False)


@dataclass(frozen=True)
class MultiSourceConfig:
    name: str
    member_names: tuple[str, ...]
    # member name -> version pinned when the composition was saved
    member_versions: dict[str, int] = field(default_factory=dict)
    version: int = 0
    updated_at: datetime = field(default_factory=utc_now)

    kind: ConfigKind = field(default="multi", init=False)


SourceConfig = SingleSourceConfig | MultiSourceConfig


@dataclass(frozen=True)
class QueryCriteria:
    text: str = ""
    # field -> exact value, or list of accepted values
    filters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FederatedQuery:
    criteria: QueryCriteria
    target_config_name: str | None = None
    source_names: tuple[str, ...] | None = None
    requested_fields: tuple[str, ...] | None = None
    identity_key: str | None = None
    limit: int | None = None


@dataclass
class SearchHit:
    doc_id: str | None
    score: float | None
    fields: dict[str, Any]


@dataclass
class SearchPage:
    hits: list[SearchHit]
    total: int | None = None
    incomplete: bool = False
    detail: str | None = None


@dataclass
class Row:
    source: str
    doc_id: str | None
    score: float | None
    fields: dict[str, Any]
    position: int


@dataclass
class SourceStatus:
    state: SourceState
    detail: str | None = None
    row_count: int = 0
    truncated: bool = False
    skipped: bool = False
    duration_ms: float = 0.0


@dataclass
class FederatedResult:
    rows: list[Row]
    per_source_status: dict[str, SourceStatus]
    truncated: bool
    query_id: str | None = None


@dataclass(frozen=True)
class SourceSummary:
    state: SourceState
    row_count: int
    detail: str | None = None


@dataclass(frozen=True)
class ResultSummary:
    row_count: int
    truncated: bool
    per_source_status: dict[str, SourceSummary]
    duration_ms: float = 0.0


@dataclass(frozen=True)
class HistoryRecord:
    record_id: str
    query: FederatedQuery
    executed_at: datetime
    result_summary: ResultSummary

    @property
    def source_names(self) -> list[str]:
        return list(self.result_summary.per_source_status)


@dataclass(frozen=True)
class HistoryFilter:
    source_name: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    page_size: int = 50
