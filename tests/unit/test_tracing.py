import pytest

from chat_agent.obs.tracing import Timer, TraceStore, estimate_token_count
from chat_agent.types import ToolTrace


def _record(store: TraceStore, *, latency_ms: float, state: str = "done", ok: bool = True):
    return store.create_record(
        model="openai:gpt-4o-mini",
        mode="buffered",
        question="What is RAG?",
        answer="RAG retrieves context.",
        turns=2,
        final_state=state,
        tool_traces=[
            ToolTrace(
                name="knowledge_base",
                ref="r1",
                input_payload={"query": "RAG"},
                output_preview="[...]",
                latency_ms=1.0,
                ok=ok,
            )
        ],
        latency_ms=latency_ms,
    )


def test_trace_store_get_and_list() -> None:
    store = TraceStore()
    record = _record(store, latency_ms=10.0)

    assert store.get(record.trace_id) is record
    assert store.list_recent() == [record]
    assert store.list_recent(limit=0) == []
    assert record.input_tokens == estimate_token_count("What is RAG?") == 4
    with pytest.raises(KeyError):
        store.get("missing")


def test_trace_store_evicts_oldest() -> None:
    store = TraceStore(max_records=2)
    first = _record(store, latency_ms=1.0)
    _record(store, latency_ms=2.0)
    _record(store, latency_ms=3.0)

    assert len(store.list_recent()) == 2
    with pytest.raises(KeyError):
        store.get(first.trace_id)


def test_summary_aggregates_runs() -> None:
    store = TraceStore()
    assert store.summary()["total_runs"] == 0

    _record(store, latency_ms=10.0)
    _record(store, latency_ms=30.0, state="aborted", ok=False)
    summary = store.summary()

    assert summary["total_runs"] == 2
    assert summary["aborted_runs"] == 1
    assert summary["avg_latency_ms"] == pytest.approx(20.0)
    assert summary["avg_turns"] == pytest.approx(2.0)
    assert summary["total_tool_calls"] == 2
    assert summary["tool_error_rate"] == pytest.approx(0.5)


def test_timer_measures_elapsed_time() -> None:
    with Timer() as timer:
        sum(range(1000))

    assert timer.elapsed_ms >= 0.0
