"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from source_federation.backends.elasticsearch import ElasticsearchBackend
from source_federation.federation.engine import FederationEngine
from source_federation.history.recorder import HistoryRecorder
from source_federation.storage.config_store import SQLiteConfigStore


def get_config_store(request: Request) -> SQLiteConfigStore:
    return request.app.state.config_store


def get_engine(request: Request) -> FederationEngine:
    return request.app.state.engine


def get_recorder(request: Request) -> HistoryRecorder:
    return request.app.state.recorder


def get_backend(request: Request) -> ElasticsearchBackend:
    return request.app.state.backend
