"""Integration tests for the data-source registry over a SQLite config store."""

import pytest

from source_federation.exceptions import (
    InvalidComposition,
    SourceUnresolved,
    StaleComposition,
)
from source_federation.models.domain import MultiSourceConfig, SingleSourceConfig


@pytest.fixture
async def five_sources(config_store):
    names = ["esb", "front", "mobile", "network", "payment"]
    for name in names:
        await config_store.put(
            SingleSourceConfig(name=name, index=f"ops-{name}-*", fields=("message",))
        )
    return names


async def test_resolve_single(registry, five_sources):
    resolved = await registry.resolve("esb")
    assert resolved.name == "esb"
    assert resolved.config.index == "ops-esb-*"
    assert resolved.backend is not None


async def test_resolve_missing(registry):
    with pytest.raises(SourceUnresolved):
        await registry.resolve("ghost")


async def test_resolve_inactive(registry, config_store):
    await config_store.put(SingleSourceConfig(name="draft", index="i", fields=(), active=False))
    with pytest.raises(SourceUnresolved, match="not active"):
        await registry.resolve("draft")


async def test_resolve_rejects_multi_name(registry, config_store, five_sources):
    await config_store.put(MultiSourceConfig(name="core", member_names=("esb",)))
    with pytest.raises(SourceUnresolved):
        await registry.resolve("core")


@pytest.mark.parametrize(
    "members",
    [
        ("payment", "esb", "front"),
        ("network", "mobile"),
        ("front", "payment", "mobile", "network", "esb"),
    ],
)
async def test_resolve_multi_keeps_member_order(registry, config_store, five_sources, members):
    await config_store.put(MultiSourceConfig(name="core", member_names=members))
    resolved = await registry.resolve_multi("core")
    assert [s.name for s in resolved] == list(members)


async def test_resolve_multi_names_first_missing_member(registry, config_store, five_sources):
    await config_store.put(
        MultiSourceConfig(name="core", member_names=("esb", "ghost-1", "front", "ghost-2"))
    )
    with pytest.raises(InvalidComposition) as exc_info:
        await registry.resolve_multi("core")
    assert exc_info.value.member == "ghost-1"
    assert exc_info.value.composition == "core"


async def test_resolve_multi_inactive_member(registry, config_store, five_sources):
    await config_store.put(MultiSourceConfig(name="core", member_names=("esb", "front")))
    await config_store.put(
        SingleSourceConfig(name="front", index="ops-front-*", fields=("message",), active=False)
    )
    with pytest.raises(InvalidComposition) as exc_info:
        await registry.resolve_multi("core")
    assert exc_info.value.member == "front"


async def test_edit_makes_composition_stale(registry, config_store, five_sources):
    await config_store.put(MultiSourceConfig(name="core", member_names=("esb", "front")))
    assert len(await registry.resolve_multi("core")) == 2

    await config_store.put(
        SingleSourceConfig(name="front", index="ops-front-v2-*", fields=("message",))
    )
    with pytest.raises(StaleComposition) as exc_info:
        await registry.resolve_multi("core")
    assert exc_info.value.member == "front"
    assert exc_info.value.pinned_version == 1
    assert exc_info.value.current_version == 2

    # Re-saving the composition pins the new version
    await config_store.put(MultiSourceConfig(name="core", member_names=("esb", "front")))
    resolved = await registry.resolve_multi("core")
    assert resolved[1].config.index == "ops-front-v2-*"


async def test_cache_serves_repeat_resolutions(registry, config_store, five_sources):
    first = await registry.resolve("esb")
    second = await registry.resolve("esb")
    assert first is second


async def test_write_invalidates_cache(registry, config_store, five_sources):
    before = await registry.resolve("esb")
    await config_store.put(SingleSourceConfig(name="esb", index="ops-esb-v2-*", fields=("message",)))
    after = await registry.resolve("esb")
    assert before.config.version == 1
    assert after.config.version == 2
    assert after.config.index == "ops-esb-v2-*"


async def test_invalidation_drops_cached_compositions(registry, config_store, five_sources):
    await config_store.put(MultiSourceConfig(name="core", member_names=("esb", "front")))
    await registry.resolve_multi("core")
    await config_store.put(
        SingleSourceConfig(name="esb", index="ops-esb-*", fields=("message",), active=False)
    )
    with pytest.raises(InvalidComposition):
        await registry.resolve_multi("core")


async def test_resolve_target_either_kind(registry, config_store, five_sources):
    await config_store.put(MultiSourceConfig(name="core", member_names=("front", "esb")))
    multi = await registry.resolve_target("core")
    single = await registry.resolve_target("esb")
    assert multi.member_names == ["front", "esb"]
    assert single.member_names == ["esb"]
    with pytest.raises(SourceUnresolved):
        await registry.resolve_target("ghost")


async def test_resolve_ad_hoc_sources(registry, five_sources):
    target = await registry.resolve_sources(["payment", "esb"])
    assert target.member_names == ["payment", "esb"]
    with pytest.raises(InvalidComposition) as exc_info:
        await registry.resolve_sources(["payment", "ghost"])
    assert exc_info.value.member == "ghost"
    with pytest.raises(InvalidComposition):
        await registry.resolve_sources(["esb", "esb"])
