"""Integration tests for the query federation engine."""

from __future__ import annotations

import asyncio

import pytest

from source_federation.exceptions import (
    BackendError,
    InvalidComposition,
    InvalidFieldSelection,
    InvalidQuery,
    SourceUnresolved,
)
from source_federation.federation.engine import FederationEngine
from source_federation.history.recorder import HistoryRecorder
from source_federation.models.domain import (
    FederatedQuery,
    MultiSourceConfig,
    QueryCriteria,
    SearchHit,
    SearchPage,
    SingleSourceConfig,
)


def _query(target: str = "core", **kwargs) -> FederatedQuery:
    return FederatedQuery(criteria=QueryCriteria(text="error"), target_config_name=target, **kwargs)


@pytest.fixture
async def core(config_store, two_sources):
    await config_store.put(MultiSourceConfig(name="core", member_names=("A", "B")))
    return "core"


async def test_merge_ties_follow_member_order(engine, backend, core):
    backend.set_scores("idx-a", [9, 7])
    backend.set_scores("idx-b", [9, 5])
    # B answers first; completion order must not matter
    backend.delays["idx-a"] = 0.05

    result = await engine.execute(_query())

    assert [(r.source, r.score) for r in result.rows] == [
        ("A", 9),
        ("B", 9),
        ("A", 7),
        ("B", 5),
    ]
    assert result.truncated is False
    assert {n: s.state for n, s in result.per_source_status.items()} == {
        "A": "success",
        "B": "success",
    }


async def test_failed_source_is_isolated(engine, backend, core):
    backend.set_scores("idx-a", [3, 2])
    backend.errors["idx-b"] = BackendError("index_not_found_exception")

    result = await engine.execute(_query())

    assert result.per_source_status["A"].state == "success"
    assert result.per_source_status["B"].state == "failed"
    assert "index_not_found_exception" in result.per_source_status["B"].detail
    assert {r.source for r in result.rows} == {"A"}


async def test_timed_out_source_is_isolated(engine, backend, core):
    backend.set_scores("idx-a", [3])
    backend.set_scores("idx-b", [8])
    backend.delays["idx-b"] = 5.0

    result = await engine.execute(_query())

    assert result.per_source_status["B"].state == "failed"
    assert "timed out" in result.per_source_status["B"].detail
    assert [r.source for r in result.rows] == ["A"]
    assert backend.cancelled == ["idx-b"]


async def test_crashing_adapter_is_reported_not_raised(engine, backend, core):
    backend.set_scores("idx-a", [1])
    backend.errors["idx-b"] = KeyError("hits")

    result = await engine.execute(_query())

    assert result.per_source_status["B"].state == "failed"
    assert "KeyError" in result.per_source_status["B"].detail


async def test_cap_keeps_highest_rows(engine, backend, core):
    backend.set_scores("idx-a", [9, 5, 4])
    backend.set_scores("idx-b", [9, 7])

    result = await engine.execute(_query(limit=3))

    assert [r.score for r in result.rows] == [9, 9, 7]
    assert result.truncated is True


async def test_limit_bounded_by_settings(engine, backend, core, settings):
    backend.set_scores("idx-a", [1.0] * 10)
    result = await engine.execute(_query(limit=settings.max_result_cap + 50))
    assert len(result.rows) == 10


async def test_non_positive_limit_rejected(engine, backend, core):
    with pytest.raises(InvalidQuery):
        await engine.execute(_query(limit=0))
    assert backend.calls == []


async def test_unknown_fields_rejected_before_dispatch(engine, backend, core):
    with pytest.raises(InvalidFieldSelection) as exc_info:
        await engine.execute(_query(requested_fields=("message", "nope", "also_nope")))
    assert exc_info.value.fields == ["also_nope", "nope"]
    assert backend.calls == []


async def test_unknown_identity_key_rejected(engine, backend, core):
    with pytest.raises(InvalidFieldSelection):
        await engine.execute(_query(identity_key="trace_id"))
    assert backend.calls == []


async def test_projection_is_per_source(engine, backend, core):
    await engine.execute(_query(requested_fields=("message", "host", "merchant_id")))
    assert sorted(backend.calls) == [
        ("idx-a", ["message", "host"]),
        ("idx-b", ["message", "merchant_id"]),
    ]


async def test_empty_projection_skips_source(engine, backend, core):
    backend.set_scores("idx-a", [4])
    result = await engine.execute(_query(requested_fields=("host",)))

    assert backend.calls == [("idx-a", ["host"])]
    status_b = result.per_source_status["B"]
    assert status_b.state == "success"
    assert status_b.skipped is True
    assert status_b.row_count == 0


async def test_rows_only_carry_projected_fields(engine, backend, core):
    backend.pages["idx-a"] = SearchPage(
        hits=[SearchHit(doc_id="1", score=1.0, fields={"message": "m", "secret": "x"})]
    )
    result = await engine.execute(_query(requested_fields=("message",)))
    assert result.rows[0].fields == {"message": "m"}


async def test_identity_key_dedupes_across_sources(engine, backend, config_store):
    await config_store.put(SingleSourceConfig(name="A", index="idx-a", fields=("trace_id",)))
    await config_store.put(SingleSourceConfig(name="B", index="idx-b", fields=("trace_id",)))
    await config_store.put(MultiSourceConfig(name="core", member_names=("A", "B")))
    backend.pages["idx-a"] = SearchPage(
        hits=[SearchHit(doc_id="a1", score=2.0, fields={"trace_id": "t1"})]
    )
    backend.pages["idx-b"] = SearchPage(
        hits=[
            SearchHit(doc_id="b1", score=2.0, fields={"trace_id": "t1"}),
            SearchHit(doc_id="b2", score=1.0, fields={"trace_id": "t2"}),
        ]
    )

    result = await engine.execute(_query(identity_key="trace_id"))

    assert [r.doc_id for r in result.rows] == ["a1", "b2"]


async def test_identity_key_not_returned_unless_requested(engine, backend, config_store):
    await config_store.put(
        SingleSourceConfig(name="A", index="idx-a", fields=("message", "trace_id"))
    )
    await config_store.put(
        SingleSourceConfig(name="B", index="idx-b", fields=("message", "trace_id"))
    )
    await config_store.put(MultiSourceConfig(name="core", member_names=("A", "B")))
    backend.pages["idx-a"] = SearchPage(
        hits=[SearchHit(doc_id="a1", score=2.0, fields={"message": "m", "trace_id": "t"})]
    )
    backend.pages["idx-b"] = SearchPage(
        hits=[SearchHit(doc_id="b1", score=1.0, fields={"message": "n", "trace_id": "t"})]
    )

    result = await engine.execute(
        _query(requested_fields=("message",), identity_key="trace_id")
    )

    # Fetched for deduplication, dropped from the returned projection
    assert ("idx-a", ["message", "trace_id"]) in backend.calls
    assert [r.doc_id for r in result.rows] == ["a1"]
    assert result.rows[0].fields == {"message": "m"}


async def test_requested_identity_key_is_returned(engine, backend, config_store):
    await config_store.put(
        SingleSourceConfig(name="A", index="idx-a", fields=("message", "trace_id"))
    )
    backend.pages["idx-a"] = SearchPage(
        hits=[SearchHit(doc_id="a1", score=2.0, fields={"message": "m", "trace_id": "t"})]
    )

    result = await engine.execute(
        _query("A", requested_fields=("message", "trace_id"), identity_key="trace_id")
    )

    assert result.rows[0].fields == {"message": "m", "trace_id": "t"}


async def test_incomplete_backend_answer_is_partial(engine, backend, core):
    backend.pages["idx-a"] = SearchPage(
        hits=[SearchHit(doc_id="1", score=1.0, fields={})],
        incomplete=True,
        detail="1 of 5 shards failed",
    )
    result = await engine.execute(_query())
    assert result.per_source_status["A"].state == "partial"
    assert result.per_source_status["A"].detail == "1 of 5 shards failed"


async def test_source_cap_sets_truncated(engine, backend, core):
    backend.set_scores("idx-a", [1.0, 0.5], total=120)
    result = await engine.execute(_query())
    assert result.per_source_status["A"].truncated is True
    assert result.per_source_status["B"].truncated is False
    assert result.truncated is True


async def test_invalid_composition_runs_nothing(engine, backend, config_store, two_sources):
    await config_store.put(MultiSourceConfig(name="broken", member_names=("A", "ghost")))
    with pytest.raises(InvalidComposition):
        await engine.execute(_query("broken"))
    assert backend.calls == []


async def test_unknown_target(engine, backend):
    with pytest.raises(SourceUnresolved):
        await engine.execute(_query("ghost"))


async def test_single_source_target(engine, backend, two_sources):
    backend.set_scores("idx-b", [2])
    result = await engine.execute(_query("B"))
    assert list(result.per_source_status) == ["B"]
    assert len(result.rows) == 1


async def test_ad_hoc_source_list(engine, backend, two_sources):
    backend.set_scores("idx-a", [5])
    backend.set_scores("idx-b", [5])
    result = await engine.execute(
        FederatedQuery(criteria=QueryCriteria(), source_names=("B", "A"))
    )
    assert [r.source for r in result.rows] == ["B", "A"]


async def test_query_needs_exactly_one_target(engine):
    with pytest.raises(InvalidQuery):
        await engine.execute(FederatedQuery(criteria=QueryCriteria()))


async def test_history_recorded(engine, backend, recorder, core):
    backend.set_scores("idx-a", [1])
    backend.errors["idx-b"] = BackendError("boom")

    result = await engine.execute(_query())
    await recorder.drain()

    record = await recorder.get(result.query_id)
    assert record.query.target_config_name == "core"
    assert record.result_summary.row_count == 1
    assert record.result_summary.per_source_status["B"].state == "failed"
    assert record.result_summary.per_source_status["B"].detail == "boom"


async def test_history_failure_does_not_fail_query(registry, backend, settings, core):
    class BrokenStore:
        async def append(self, record):
            raise OSError("disk full")

    recorder = HistoryRecorder(BrokenStore())
    engine = FederationEngine(registry=registry, recorder=recorder, settings=settings)
    backend.set_scores("idx-a", [1])

    result = await engine.execute(_query())
    await recorder.drain()

    assert len(result.rows) == 1


async def test_cancel_discards_everything(engine, backend, recorder, core):
    backend.delays["idx-a"] = 5.0
    backend.set_scores("idx-b", [1])

    task = asyncio.create_task(engine.execute(_query()))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await recorder.drain()
    assert backend.cancelled == ["idx-a"]
    assert await recorder.count() == 0


async def test_replay_reruns_recorded_query(engine, backend, recorder, core):
    backend.set_scores("idx-a", [1])
    first = await engine.execute(_query(requested_fields=("message",)))
    await recorder.drain()

    backend.set_scores("idx-a", [1, 2])
    replayed = await engine.replay(first.query_id)
    await recorder.drain()

    assert len(replayed.rows) == 2
    assert replayed.query_id != first.query_id
    assert await recorder.count() == 2


async def test_history_query_newest_first(engine, backend, recorder, core):
    backend.set_scores("idx-a", [1])
    ids = []
    for _ in range(3):
        ids.append((await engine.execute(_query())).query_id)
    await recorder.drain()

    listed = [r.record_id async for r in recorder.query(source_name="A")]
    assert listed == list(reversed(ids))
    # Restartable: a second scan yields the same records
    assert [r.record_id async for r in recorder.query(source_name="A")] == listed
    assert [r.record_id for r in await recorder.query().take(2)] == listed[:2]
