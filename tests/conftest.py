"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import pytest

from source_federation.config.settings import Settings
from source_federation.federation.engine import FederationEngine
from source_federation.history.recorder import HistoryRecorder
from source_federation.models.domain import QueryCriteria, SearchHit, SearchPage, SingleSourceConfig
from source_federation.registry.registry import DataSourceRegistry
from source_federation.storage.config_store import SQLiteConfigStore
from source_federation.storage.history_store import SQLiteHistoryStore


class FakeBackend:
    """Scripted search backend keyed by index name; records every call."""

    def __init__(self) -> None:
        self.pages: dict[str, SearchPage] = {}
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[tuple[str, list[str]]] = []
        self.cancelled: list[str] = []

    def for_index(self, index: str) -> FakeBackend:
        return self

    def set_scores(self, index: str, scores: list[float | None], total: int | None = None) -> None:
        self.pages[index] = SearchPage(
            hits=[
                SearchHit(doc_id=f"{index}-{i}", score=s, fields={"message": f"{index} row {i}"})
                for i, s in enumerate(scores)
            ],
            total=total,
        )

    async def search(
        self,
        index: str,
        criteria: QueryCriteria,
        fields: list[str],
        limit: int,
        timeout: float,
    ) -> SearchPage:
        self.calls.append((index, list(fields)))
        try:
            if index in self.delays:
                await asyncio.sleep(self.delays[index])
        except asyncio.CancelledError:
            self.cancelled.append(index)
            raise
        if index in self.errors:
            raise self.errors[index]
        return self.pages.get(index, SearchPage(hits=[]))


@pytest.fixture
def tmp_dir():
    """Create a temporary directory."""
    return tempfile.mkdtemp()


@pytest.fixture
def settings(tmp_dir):
    """Test settings with temp paths and short timeouts."""
    return Settings(
        sqlite_config_db_path=str(Path(tmp_dir) / "sources.db"),
        sqlite_history_db_path=str(Path(tmp_dir) / "history.db"),
        source_timeout_s=0.2,
        source_result_limit=10,
        default_result_cap=100,
        max_result_cap=100,
        history_page_size=2,
    )


@pytest.fixture
async def config_store(settings):
    store = SQLiteConfigStore(settings.sqlite_config_db_path)
    await store.initialize()
    return store


@pytest.fixture
async def history_store(settings):
    store = SQLiteHistoryStore(settings.sqlite_history_db_path)
    await store.initialize()
    return store


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def registry(config_store, backend):
    return DataSourceRegistry(config_store, backend.for_index)


@pytest.fixture
def recorder(history_store, settings):
    return HistoryRecorder(history_store, page_size=settings.history_page_size)


@pytest.fixture
def engine(registry, recorder, settings):
    return FederationEngine(registry=registry, recorder=recorder, settings=settings)


@pytest.fixture
async def two_sources(config_store):
    """Sources A and B sharing 'message', each with one field of its own."""
    await config_store.put(
        SingleSourceConfig(name="A", index="idx-a", fields=("message", "host"))
    )
    await config_store.put(
        SingleSourceConfig(name="B", index="idx-b", fields=("message", "merchant_id"))
    )
    return ["A", "B"]
