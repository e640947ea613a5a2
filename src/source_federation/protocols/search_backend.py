"""Protocol for search backend adapters."""

from __future__ import annotations

from typing import Protocol

from source_federation.models.domain import QueryCriteria, SearchPage


class SearchBackend(Protocol):
    async def search(
        self,
        index: str,
        criteria: QueryCriteria,
        fields: list[str],
        limit: int,
        timeout: float,
    ) -> SearchPage: ...


class BackendFactory(Protocol):
    def __call__(self, index: str) -> SearchBackend: ...
