"""Run tracing and aggregate metrics for agent runs."""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from chat_agent.types import ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class RunTrace:
    trace_id: str
    timestamp_utc: str
    model: str
    mode: str
    question: str
    answer: str
    turns: int
    final_state: str
    tool_traces: list[ToolTrace] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0


class TraceStore:
    """In-memory trace storage for API-level observability.

    Keeps the most recent `max_records` runs; older runs are evicted first.
    """

    def __init__(self, *, max_records: int = 500) -> None:
        self._records: dict[str, RunTrace] = {}
        self._max_records = max_records

    def create_record(
        self,
        *,
        model: str,
        mode: str,
        question: str,
        answer: str,
        turns: int,
        final_state: str,
        tool_traces: list[ToolTrace],
        latency_ms: float,
    ) -> RunTrace:
        record = RunTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            model=model,
            mode=mode,
            question=question,
            answer=answer,
            turns=turns,
            final_state=final_state,
            tool_traces=list(tool_traces),
            input_tokens=estimate_token_count(question),
            output_tokens=estimate_token_count(answer),
            latency_ms=latency_ms,
        )
        self._records[record.trace_id] = record
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> RunTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[RunTrace]:
        if limit <= 0:
            return []
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_runs": 0,
                "aborted_runs": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_turns": 0.0,
                "total_tool_calls": 0,
                "tool_error_rate": 0.0,
                "total_input_tokens": 0,
                "total_output_tokens": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        tool_traces = [tool for record in records for tool in record.tool_traces]
        failed_tools = sum(1 for tool in tool_traces if not tool.ok)

        return {
            "total_runs": total,
            "aborted_runs": sum(1 for record in records if record.final_state == "aborted"),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_turns": sum(record.turns for record in records) / total,
            "total_tool_calls": len(tool_traces),
            "tool_error_rate": failed_tools / len(tool_traces) if tool_traces else 0.0,
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
        }


class Timer:
    """Simple context timer used around runs and tool calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
