"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

SOURCE_CONFIGS_TABLE = """
CREATE TABLE IF NOT EXISTS source_configs (
    name TEXT PRIMARY KEY,
    kind TEXT NOT NULL CHECK (kind IN ('single', 'multi')),
    payload TEXT NOT NULL,
    version INTEGER NOT NULL,
    updated_at TEXT NOT NULL
)
"""

COMPOSITION_MEMBERS_TABLE = """
CREATE TABLE IF NOT EXISTS composition_members (
    composition TEXT NOT NULL,
    member TEXT NOT NULL,
    position INTEGER NOT NULL,
    PRIMARY KEY (composition, member),
    FOREIGN KEY (composition) REFERENCES source_configs(name)
)
"""

COMPOSITION_MEMBER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_composition_members_member ON composition_members(member)
"""

HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS query_history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    record_id TEXT NOT NULL UNIQUE,
    executed_at TEXT NOT NULL,
    query TEXT NOT NULL,
    summary TEXT NOT NULL
)
"""

HISTORY_SOURCES_TABLE = """
CREATE TABLE IF NOT EXISTS query_history_sources (
    record_id TEXT NOT NULL,
    source_name TEXT NOT NULL,
    PRIMARY KEY (record_id, source_name),
    FOREIGN KEY (record_id) REFERENCES query_history(record_id)
)
"""

HISTORY_ORDER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_query_history_order ON query_history(executed_at DESC, seq DESC)
"""

HISTORY_SOURCE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_query_history_sources_name ON query_history_sources(source_name)
"""


async def initialize_config_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute(SOURCE_CONFIGS_TABLE)
        await db.execute(COMPOSITION_MEMBERS_TABLE)
        await db.execute(COMPOSITION_MEMBER_INDEX)
        await db.commit()


async def initialize_history_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute(HISTORY_TABLE)
        await db.execute(HISTORY_SOURCES_TABLE)
        await db.execute(HISTORY_ORDER_INDEX)
        await db.execute(HISTORY_SOURCE_INDEX)
        await db.commit()
