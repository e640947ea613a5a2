"""Single- and multi-source configuration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from source_federation.api.dependencies import get_config_store
from source_federation.exceptions import ConfigNotFound
from source_federation.models.domain import MultiSourceConfig, SingleSourceConfig
from source_federation.models.schemas import (
    MultiSourceConfigIn,
    MultiSourceConfigOut,
    SingleSourceConfigIn,
    SingleSourceConfigOut,
)
from source_federation.storage.config_store import SQLiteConfigStore

router = APIRouter(prefix="/sources")


@router.get("/single", response_model=list[SingleSourceConfigOut])
async def list_single_sources(
    store: SQLiteConfigStore = Depends(get_config_store),
) -> list[SingleSourceConfigOut]:
    return [SingleSourceConfigOut.from_domain(c) for c in await store.list("single")]


@router.get("/single/{name}", response_model=SingleSourceConfigOut)
async def get_single_source(
    name: str, store: SQLiteConfigStore = Depends(get_config_store)
) -> SingleSourceConfigOut:
    config = await store.get(name)
    if not isinstance(config, SingleSourceConfig):
        raise ConfigNotFound(name)
    return SingleSourceConfigOut.from_domain(config)


@router.put("/single/{name}", response_model=SingleSourceConfigOut)
async def put_single_source(
    name: str,
    body: SingleSourceConfigIn,
    store: SQLiteConfigStore = Depends(get_config_store),
) -> SingleSourceConfigOut:
    stored = await store.put(body.to_domain(name))
    return SingleSourceConfigOut.from_domain(stored)


@router.get("/multi", response_model=list[MultiSourceConfigOut])
async def list_multi_sources(
    store: SQLiteConfigStore = Depends(get_config_store),
) -> list[MultiSourceConfigOut]:
    return [MultiSourceConfigOut.from_domain(c) for c in await store.list("multi")]


@router.get("/multi/{name}", response_model=MultiSourceConfigOut)
async def get_multi_source(
    name: str, store: SQLiteConfigStore = Depends(get_config_store)
) -> MultiSourceConfigOut:
    config = await store.get(name)
    if not isinstance(config, MultiSourceConfig):
        raise ConfigNotFound(name)
    return MultiSourceConfigOut.from_domain(config)


@router.put("/multi/{name}", response_model=MultiSourceConfigOut)
async def put_multi_source(
    name: str,
    body: MultiSourceConfigIn,
    store: SQLiteConfigStore = Depends(get_config_store),
) -> MultiSourceConfigOut:
    stored = await store.put(body.to_domain(name))
    return MultiSourceConfigOut.from_domain(stored)


@router.delete("/single/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_single_source(
    name: str, store: SQLiteConfigStore = Depends(get_config_store)
) -> None:
    if not isinstance(await store.get(name), SingleSourceConfig):
        raise ConfigNotFound(name)
    await store.delete(name)


@router.delete("/multi/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_multi_source(
    name: str, store: SQLiteConfigStore = Depends(get_config_store)
) -> None:
    if not isinstance(await store.get(name), MultiSourceConfig):
        raise ConfigNotFound(name)
    await store.delete(name)
