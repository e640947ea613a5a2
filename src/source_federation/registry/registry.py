"""Data-source registry: validated, cached resolution of source configs."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from source_federation.exceptions import (
    ConfigNotFound,
    InvalidComposition,
    SourceUnresolved,
    StaleComposition,
)
from source_federation.models.domain import MultiSourceConfig, SingleSourceConfig
from source_federation.observability.logger import get_logger
from source_federation.protocols.search_backend import BackendFactory, SearchBackend
from source_federation.storage.config_store import SQLiteConfigStore

logger = get_logger("registry")


@dataclass(frozen=True)
class ResolvedSource:
    config: SingleSourceConfig
    backend: SearchBackend

    @property
    def name(self) -> str:
        return self.config.name


@dataclass(frozen=True)
class ResolvedTarget:
    """A resolved query target: one source, a composition, or an ad-hoc list."""

    name: str
    sources: tuple[ResolvedSource, ...]

    @property
    def member_names(self) -> list[str]:
        return [s.name for s in self.sources]

    @property
    def field_union(self) -> set[str]:
        return {f for s in self.sources for f in s.config.fields}


class DataSourceRegistry:
    """In-memory index over the config store.

    The caches are immutable mappings replaced wholesale on every change, so
    a concurrent reader sees either the old or the new snapshot. A generation
    counter stops a resolution that started before an invalidation from
    re-installing what it read.
    """

    def __init__(self, store: SQLiteConfigStore, backend_factory: BackendFactory) -> None:
        self._store = store
        self._backend_factory = backend_factory
        self._sources: MappingProxyType[str, ResolvedSource] = MappingProxyType({})
        self._compositions: MappingProxyType[str, tuple[ResolvedSource, ...]] = (
            MappingProxyType({})
        )
        self._generation = 0
        store.subscribe(self.invalidate)

    def invalidate(self, name: str) -> None:
        self._generation += 1
        sources = {k: v for k, v in self._sources.items() if k != name}
        compositions = {
            k: v
            for k, v in self._compositions.items()
            if k != name and all(s.name != name for s in v)
        }
        self._sources = MappingProxyType(sources)
        self._compositions = MappingProxyType(compositions)
        logger.debug("registry_invalidated", name=name, generation=self._generation)

    async def resolve(self, name: str) -> ResolvedSource:
        cached = self._sources.get(name)
        if cached is not None:
            return cached

        generation = self._generation
        try:
            config = await self._store.get(name)
        except ConfigNotFound:
            raise SourceUnresolved(name) from None
        if not isinstance(config, SingleSourceConfig):
            raise SourceUnresolved(name, "is a multi-source config")
        if not config.active:
            raise SourceUnresolved(name, "is not active")

        resolved = ResolvedSource(config=config, backend=self._backend_factory(config.index))
        if generation == self._generation:
            self._sources = MappingProxyType({**self._sources, name: resolved})
        return resolved

    async def resolve_multi(self, name: str) -> list[ResolvedSource]:
        cached = self._compositions.get(name)
        if cached is not None:
            return list(cached)

        generation = self._generation
        try:
            config = await self._store.get(name)
        except ConfigNotFound:
            raise SourceUnresolved(name) from None
        if not isinstance(config, MultiSourceConfig):
            raise SourceUnresolved(name, "is not a multi-source config")

        resolved: list[ResolvedSource] = []
        for member in config.member_names:
            try:
                source = await self.resolve(member)
            except SourceUnresolved as e:
                logger.warning("composition_invalid", composition=name, member=member)
                raise InvalidComposition(name, member, e.reason) from e
            pinned = config.member_versions.get(member)
            if pinned is None:
                raise InvalidComposition(
                    name, member, "was not present when the composition was saved"
                )
            if pinned != source.config.version:
                logger.warning(
                    "composition_stale",
                    composition=name,
                    member=member,
                    pinned=pinned,
                    current=source.config.version,
                )
                raise StaleComposition(name, member, pinned, source.config.version)
            resolved.append(source)

        if generation == self._generation:
            self._compositions = MappingProxyType({**self._compositions, name: tuple(resolved)})
        return resolved

    async def resolve_target(self, name: str) -> ResolvedTarget:
        """Resolve a name that may refer to either a single or a multi config."""
        if name in self._compositions:
            return ResolvedTarget(name=name, sources=tuple(await self.resolve_multi(name)))
        if name in self._sources:
            return ResolvedTarget(name=name, sources=(await self.resolve(name),))
        try:
            config = await self._store.get(name)
        except ConfigNotFound:
            raise SourceUnresolved(name) from None
        if isinstance(config, MultiSourceConfig):
            return ResolvedTarget(name=name, sources=tuple(await self.resolve_multi(name)))
        return ResolvedTarget(name=name, sources=(await self.resolve(name),))

    async def resolve_sources(self, names: list[str]) -> ResolvedTarget:
        """Resolve an ad-hoc ordered source list; fails on the first bad name."""
        label = "+".join(names)
        if not names:
            raise InvalidComposition(label, "", "no sources given")
        if len(set(names)) != len(names):
            duplicate = next(n for i, n in enumerate(names) if n in names[:i])
            raise InvalidComposition(label, duplicate, "is listed twice")
        sources = []
        for name in names:
            try:
                sources.append(await self.resolve(name))
            except SourceUnresolved as e:
                raise InvalidComposition(label, name, e.reason) from e
        return ResolvedTarget(name=label, sources=tuple(sources))
