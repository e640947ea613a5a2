"""Query history endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from source_federation.api.dependencies import get_engine, get_recorder
from source_federation.federation.engine import FederationEngine
from source_federation.history.recorder import HistoryRecorder
from source_federation.models.schemas import HistoryPage, HistoryRecordModel, QueryResponse

router = APIRouter(prefix="/history")


@router.get("", response_model=HistoryPage)
async def list_history(
    source_name: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = Query(default=50, gt=0, le=500),
    recorder: HistoryRecorder = Depends(get_recorder),
) -> HistoryPage:
    records = await recorder.query(source_name=source_name, since=since, until=until).take(limit)
    return HistoryPage(records=[HistoryRecordModel.from_domain(r) for r in records])


@router.get("/{record_id}", response_model=HistoryRecordModel)
async def get_history_record(
    record_id: str, recorder: HistoryRecorder = Depends(get_recorder)
) -> HistoryRecordModel:
    return HistoryRecordModel.from_domain(await recorder.get(record_id))


@router.post("/{record_id}/replay", response_model=QueryResponse)
async def replay_history_record(
    record_id: str, engine: FederationEngine = Depends(get_engine)
) -> QueryResponse:
    return QueryResponse.from_domain(await engine.replay(record_id))
