"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from source_federation.api.dependencies import get_backend, get_config_store, get_recorder
from source_federation.backends.elasticsearch import ElasticsearchBackend
from source_federation.history.recorder import HistoryRecorder
from source_federation.models.schemas import HealthResponse
from source_federation.storage.config_store import SQLiteConfigStore

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    store: SQLiteConfigStore = Depends(get_config_store),
    recorder: HistoryRecorder = Depends(get_recorder),
    backend: ElasticsearchBackend = Depends(get_backend),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        single_sources=await store.count("single"),
        multi_sources=await store.count("multi"),
        history_records=await recorder.count(),
        backend_reachable=await backend.ping(),
    )
