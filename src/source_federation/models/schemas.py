"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from source_federation.models.domain import (
    FederatedQuery,
    FederatedResult,
    HistoryRecord,
    MultiSourceConfig,
    QueryCriteria,
    SingleSourceConfig,
)


class SingleSourceConfigIn(BaseModel):
    index: str = Field(min_length=1)
    fields: list[str] = Field(default_factory=list)
    active: bool = True

    def to_domain(self, name: str) -> SingleSourceConfig:
        return SingleSourceConfig(
            name=name, index=self.index, fields=tuple(self.fields), active=self.active
        )


class SingleSourceConfigOut(BaseModel):
    name: str
    index: str
    fields: list[str]
    active: bool
    version: int
    updated_at: datetime

    @classmethod
    def from_domain(cls, config: SingleSourceConfig) -> SingleSourceConfigOut:
        return cls(
            name=config.name,
            index=config.index,
            fields=list(config.fields),
            active=config.active,
            version=config.version,
            updated_at=config.updated_at,
        )


class MultiSourceConfigIn(BaseModel):
    member_names: list[str] = Field(min_length=1)

    def to_domain(self, name: str) -> MultiSourceConfig:
        return MultiSourceConfig(name=name, member_names=tuple(self.member_names))


class MultiSourceConfigOut(BaseModel):
    name: str
    member_names: list[str]
    member_versions: dict[str, int]
    version: int
    updated_at: datetime

    @classmethod
    def from_domain(cls, config: MultiSourceConfig) -> MultiSourceConfigOut:
        return cls(
            name=config.name,
            member_names=list(config.member_names),
            member_versions=dict(config.member_versions),
            version=config.version,
            updated_at=config.updated_at,
        )


class CriteriaModel(BaseModel):
    text: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)


class QueryRequest(BaseModel):
    criteria: CriteriaModel = Field(default_factory=CriteriaModel)
    target_config_name: str | None = None
    source_names: list[str] | None = None
    requested_fields: list[str] | None = None
    identity_key: str | None = None
    limit: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _one_target(self) -> QueryRequest:
        if (self.target_config_name is None) == (self.source_names is None):
            raise ValueError("Give exactly one of target_config_name or source_names")
        return self

    def to_domain(self) -> FederatedQuery:
        return FederatedQuery(
            criteria=QueryCriteria(text=self.criteria.text, filters=dict(self.criteria.filters)),
            target_config_name=self.target_config_name,
            source_names=tuple(self.source_names) if self.source_names is not None else None,
            requested_fields=(
                tuple(self.requested_fields) if self.requested_fields is not None else None
            ),
            identity_key=self.identity_key,
            limit=self.limit,
        )

    @classmethod
    def from_domain(cls, query: FederatedQuery) -> QueryRequest:
        return cls(
            criteria=CriteriaModel(text=query.criteria.text, filters=query.criteria.filters),
            target_config_name=query.target_config_name,
            source_names=list(query.source_names) if query.source_names is not None else None,
            requested_fields=(
                list(query.requested_fields) if query.requested_fields is not None else None
            ),
            identity_key=query.identity_key,
            limit=query.limit,
        )


class RowModel(BaseModel):
    source: str
    doc_id: str | None = None
    score: float | None = None
    fields: dict[str, Any]


class SourceStatusModel(BaseModel):
    state: Literal["success", "partial", "failed"]
    detail: str | None = None
    row_count: int = 0
    truncated: bool = False
    skipped: bool = False
    duration_ms: float = 0.0


class QueryResponse(BaseModel):
    query_id: str | None
    rows: list[RowModel]
    per_source_status: dict[str, SourceStatusModel]
    truncated: bool

    @classmethod
    def from_domain(cls, result: FederatedResult) -> QueryResponse:
        return cls(
            query_id=result.query_id,
            rows=[
                RowModel(source=r.source, doc_id=r.doc_id, score=r.score, fields=r.fields)
                for r in result.rows
            ],
            per_source_status={
                name: SourceStatusModel(
                    state=s.state,
                    detail=s.detail,
                    row_count=s.row_count,
                    truncated=s.truncated,
                    skipped=s.skipped,
                    duration_ms=round(s.duration_ms, 2),
                )
                for name, s in result.per_source_status.items()
            },
            truncated=result.truncated,
        )


class SourceSummaryModel(BaseModel):
    state: Literal["success", "partial", "failed"]
    row_count: int
    detail: str | None = None


class HistoryRecordModel(BaseModel):
    record_id: str
    executed_at: datetime
    query: QueryRequest
    row_count: int
    truncated: bool
    per_source_status: dict[str, SourceSummaryModel]
    duration_ms: float

    @classmethod
    def from_domain(cls, record: HistoryRecord) -> HistoryRecordModel:
        summary = record.result_summary
        return cls(
            record_id=record.record_id,
            executed_at=record.executed_at,
            query=QueryRequest.from_domain(record.query),
            row_count=summary.row_count,
            truncated=summary.truncated,
            per_source_status={
                name: SourceSummaryModel(state=s.state, row_count=s.row_count, detail=s.detail)
                for name, s in summary.per_source_status.items()
            },
            duration_ms=summary.duration_ms,
        )


class HistoryPage(BaseModel):
    records: list[HistoryRecordModel]


class HealthResponse(BaseModel):
    status: str
    single_sources: int
    multi_sources: int
    history_records: int
    backend_reachable: bool
