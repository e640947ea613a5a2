"""Seed the config store with the dashboard's default data sources."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from source_federation.config.settings import Settings
from source_federation.exceptions import ConfigValidationError
from source_federation.models.domain import MultiSourceConfig, SingleSourceConfig
from source_federation.storage.config_store import SQLiteConfigStore

# One source per system the operations team monitors
SAMPLE_SOURCES = [
    SingleSourceConfig(
        name="mobile",
        index="ops-mobile-*",
        fields=("timestamp", "trace_id", "channel", "status", "latency_ms", "message"),
    ),
    SingleSourceConfig(
        name="network",
        index="ops-network-*",
        fields=("timestamp", "host", "interface", "status", "message"),
    ),
    SingleSourceConfig(
        name="payment",
        index="ops-payment-*",
        fields=("timestamp", "trace_id", "merchant_id", "amount", "status", "message"),
    ),
    SingleSourceConfig(
        name="front",
        index="ops-front-*",
        fields=("timestamp", "trace_id", "host", "status", "latency_ms", "message"),
    ),
    SingleSourceConfig(
        name="esb",
        index="ops-esb-*",
        fields=("timestamp", "trace_id", "service", "status", "latency_ms", "message"),
    ),
]

SAMPLE_COMPOSITIONS = [
    # Order sets tie-break precedence in merged results
    MultiSourceConfig(name="core", member_names=("front", "esb", "payment", "mobile")),
    MultiSourceConfig(name="infrastructure", member_names=("network", "front")),
]


async def main():
    settings = Settings()
    Path(settings.sqlite_config_db_path).parent.mkdir(parents=True, exist_ok=True)

    store = SQLiteConfigStore(settings.sqlite_config_db_path)
    await store.initialize()

    for config in [*SAMPLE_SOURCES, *SAMPLE_COMPOSITIONS]:
        try:
            stored = await store.put(config)
        except ConfigValidationError as e:
            print(f"Skipped {config.name}: {e}")
            continue
        print(f"Saved {stored.kind} source '{stored.name}' (v{stored.version})")

    print(f"\nSingle sources: {await store.count('single')}")
    print(f"Compositions: {await store.count('multi')}")


if __name__ == "__main__":
    asyncio.run(main())
