"""Federated query endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from source_federation.api.dependencies import get_engine
from source_federation.federation.engine import FederationEngine
from source_federation.models.schemas import QueryRequest, QueryResponse

router = APIRouter()


@router.post("/query", response_model=QueryResponse)
async def query(
    request: QueryRequest,
    engine: FederationEngine = Depends(get_engine),
) -> QueryResponse:
    result = await engine.execute(request.to_domain())
    return QueryResponse.from_domain(result)
