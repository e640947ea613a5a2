"""SQLite-backed store for single- and multi-source configurations."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

import aiosqlite

from source_federation.exceptions import ConfigInUse, ConfigNotFound, ConfigValidationError
from source_federation.models.domain import (
    ConfigKind,
    MultiSourceConfig,
    SingleSourceConfig,
    SourceConfig,
    utc_now,
)
from source_federation.observability.logger import get_logger
from source_federation.storage.migrations import initialize_config_db

logger = get_logger("config_store")

ConfigListener = Callable[[str], None]


@dataclass
class _NameLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class SQLiteConfigStore:
    """Durable key/value store of source configs, keyed by name.

    Every write runs inside one ``BEGIN IMMEDIATE`` transaction, so readers on
    other connections only ever see whole records. Writes to the same name
    are additionally serialized in-process by a per-name lock. Listeners
    registered with :meth:`subscribe` are called with the affected name after
    each committed write or delete.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._locks: dict[str, _NameLock] = {}
        self._listeners: list[ConfigListener] = []

    async def initialize(self) -> None:
        await initialize_config_db(self._db_path)

    def subscribe(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    async def put(self, config: SourceConfig) -> SourceConfig:
        self._validate(config)
        async with self._locked(config.name):
            async with aiosqlite.connect(self._db_path) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("BEGIN IMMEDIATE")
                try:
                    stored = await self._write(db, config)
                except BaseException:
                    await db.rollback()
                    raise
                await db.commit()

        logger.info("config_saved", name=stored.name, kind=stored.kind, version=stored.version)
        self._notify(stored.name)
        return stored

    async def get(self, name: str) -> SourceConfig:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM source_configs WHERE name = ?", (name,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    raise ConfigNotFound(name)
                return self._row_to_config(row)

    async def list(self, kind: ConfigKind) -> list[SourceConfig]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM source_configs WHERE kind = ? ORDER BY name", (kind,)
            ) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_config(row) for row in rows]

    async def referencing(self, name: str) -> list[str]:
        """Names of compositions that list ``name`` as a member."""
        async with aiosqlite.connect(self._db_path) as db:
            return await self._referencing(db, name)

    async def delete(self, name: str) -> None:
        async with self._locked(name):
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("BEGIN IMMEDIATE")
                try:
                    async with db.execute(
                        "SELECT kind FROM source_configs WHERE name = ?", (name,)
                    ) as cursor:
                        row = await cursor.fetchone()
                    if row is None:
                        raise ConfigNotFound(name)
                    if row[0] == "single":
                        referenced_by = await self._referencing(db, name)
                        if referenced_by:
                            raise ConfigInUse(name, referenced_by)
                    await db.execute(
                        "DELETE FROM composition_members WHERE composition = ?", (name,)
                    )
                    await db.execute("DELETE FROM source_configs WHERE name = ?", (name,))
                except BaseException:
                    await db.rollback()
                    raise
                await db.commit()

        logger.info("config_deleted", name=name)
        self._notify(name)

    async def count(self, kind: ConfigKind) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM source_configs WHERE kind = ?", (kind,)
            ) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    @asynccontextmanager
    async def _locked(self, name: str) -> AsyncIterator[None]:
        # Entries live only while some task holds or waits on the name
        entry = self._locks.setdefault(name, _NameLock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[name]

    async def _write(self, db: aiosqlite.Connection, config: SourceConfig) -> SourceConfig:
        async with db.execute(
            "SELECT kind, version FROM source_configs WHERE name = ?", (config.name,)
        ) as cursor:
            existing = await cursor.fetchone()
        if existing is not None and existing["kind"] != config.kind:
            raise ConfigValidationError(
                f"'{config.name}' already exists as a {existing['kind']}-source config"
            )
        version = existing["version"] + 1 if existing is not None else 1

        if isinstance(config, MultiSourceConfig):
            pinned = await self._pin_member_versions(db, config)
            stored: SourceConfig = replace(
                config, member_versions=pinned, version=version, updated_at=utc_now()
            )
            payload = {
                "member_names": list(stored.member_names),
                "member_versions": stored.member_versions,
            }
        else:
            stored = replace(config, version=version, updated_at=utc_now())
            payload = {
                "index": stored.index,
                "fields": list(stored.fields),
                "active": stored.active,
            }

        await db.execute(
            "INSERT OR REPLACE INTO source_configs (name, kind, payload, version, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                stored.name,
                stored.kind,
                json.dumps(payload),
                stored.version,
                stored.updated_at.isoformat(),
            ),
        )
        if isinstance(stored, MultiSourceConfig):
            await db.execute(
                "DELETE FROM composition_members WHERE composition = ?", (stored.name,)
            )
            await db.executemany(
                "INSERT INTO composition_members (composition, member, position) VALUES (?, ?, ?)",
                [(stored.name, member, i) for i, member in enumerate(stored.member_names)],
            )
        return stored

    async def _pin_member_versions(
        self, db: aiosqlite.Connection, config: MultiSourceConfig
    ) -> dict[str, int]:
        placeholders = ",".join("?" for _ in config.member_names)
        async with db.execute(
            f"SELECT name, kind, version FROM source_configs WHERE name IN ({placeholders})",
            list(config.member_names),
        ) as cursor:
            rows = await cursor.fetchall()

        pinned: dict[str, int] = {}
        for row in rows:
            if row["kind"] != "single":
                raise ConfigValidationError(
                    f"Composition '{config.name}' cannot contain multi-source config '{row['name']}'"
                )
            pinned[row["name"]] = row["version"]
        # Missing members stay unpinned; the registry rejects them at resolution time
        return {name: pinned[name] for name in config.member_names if name in pinned}

    @staticmethod
    async def _referencing(db: aiosqlite.Connection, name: str) -> list[str]:
        async with db.execute(
            "SELECT composition FROM composition_members WHERE member = ? ORDER BY composition",
            (name,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [row[0] for row in rows]

    @staticmethod
    def _validate(config: SourceConfig) -> None:
        if not config.name or not config.name.strip():
            raise ConfigValidationError("Config name must not be empty")
        if isinstance(config, SingleSourceConfig):
            if not config.index:
                raise ConfigValidationError(f"Source '{config.name}' has no index")
            if len(set(config.fields)) != len(config.fields):
                raise ConfigValidationError(f"Source '{config.name}' lists a field twice")
            if config.active and not config.fields:
                raise ConfigValidationError(
                    f"Source '{config.name}' must select at least one field to be active"
                )
        else:
            if not config.member_names:
                raise ConfigValidationError(f"Composition '{config.name}' has no members")
            if len(set(config.member_names)) != len(config.member_names):
                raise ConfigValidationError(
                    f"Composition '{config.name}' lists a member twice"
                )
            if config.name in config.member_names:
                raise ConfigValidationError(
                    f"Composition '{config.name}' cannot contain itself"
                )

    def _notify(self, name: str) -> None:
        for listener in self._listeners:
            try:
                listener(name)
            except Exception:
                logger.exception("config_listener_failed", name=name)

    @staticmethod
    def _row_to_config(row: aiosqlite.Row) -> SourceConfig:
        payload = json.loads(row["payload"])
        updated_at = datetime.fromisoformat(row["updated_at"])
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        if row["kind"] == "multi":
            return MultiSourceConfig(
                name=row["name"],
                member_names=tuple(payload["member_names"]),
                member_versions={k: int(v) for k, v in payload["member_versions"].items()},
                version=row["version"],
                updated_at=updated_at,
            )
        return SingleSourceConfig(
            name=row["name"],
            index=payload["index"],
            fields=tuple(payload["fields"]),
            active=payload["active"],
            version=row["version"],
            updated_at=updated_at,
        )
