"""Bounded tool-calling loop over a completion model."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Any

from loguru import logger

from chat_agent.agent.completion import CompletionModel
from chat_agent.agent.registry import ToolRegistry
from chat_agent.agent.transcript import build_transcript
from chat_agent.config import AgentConfig
from chat_agent.errors import ResponseParseError, ToolExecutionError
from chat_agent.obs.tracing import Timer, TraceStore
from chat_agent.types import (
    CompletionResult,
    Message,
    ModelToolRequestEntry,
    Role,
    TextFragment,
    ToolRequest,
    ToolResultEntry,
    ToolTrace,
    TranscriptEntry,
)

NO_INFORMATION_RESULT = "No information found for this query."
TURN_SEPARATOR = "\n\n"


class LoopState(str, Enum):
    GENERATING = "generating"
    TOOL_REQUESTED = "tool_requested"
    EXECUTING = "executing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(slots=True)
class _RunState:
    model: str
    mode: str
    state: LoopState = LoopState.GENERATING
    turns: int = 0
    used_refs: set[str] = field(default_factory=set)
    text_parts: list[str] = field(default_factory=list)
    tool_traces: list[ToolTrace] = field(default_factory=list)
    text_turn: int = 0

    def emit(self, text: str) -> list[str]:
        """Record answer text; text from a new turn is set off from earlier turns."""

        pieces = [text]
        if self.text_parts and self.text_turn != self.turns:
            pieces.insert(0, TURN_SEPARATOR)
        self.text_turn = self.turns
        self.text_parts.extend(pieces)
        return pieces

    def transition(self, state: LoopState) -> None:
        logger.debug("Agent loop {} -> {} (turn {})", self.state.value, state.value, self.turns)
        self.state = state


class ToolCallingAgent:
    """Runs the generate / tool / generate cycle for one user turn.

    Each run makes at most `config.max_turns` completion calls. Only the first
    tool request of a response is executed; its result is folded back into the
    transcript under the same correlation ref before the next call. Tool
    failures become textual results and never end the run. A response whose
    tool request cannot be read ends the run with the text produced so far.

    Buffered and streaming modes share one driver, so `generate()` returns
    exactly the concatenation of what `generate_stream()` yields. Text from
    different turns is separated by a blank line. Correlation refs already
    present in the replayed history are never handed out again.
    """

    def __init__(
        self,
        completion_model: CompletionModel,
        tool_registry: ToolRegistry,
        config: AgentConfig | None = None,
        *,
        system_prompt: str | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.completion_model = completion_model
        self.tool_registry = tool_registry
        self.config = config or AgentConfig()
        self.system_prompt = system_prompt
        self.trace_store = trace_store

    async def generate(
        self,
        history: Sequence[Message],
        *,
        model_id: str | None = None,
        enabled_tools: Iterable[str] | None = None,
    ) -> str:
        parts: list[str] = []
        async with aclosing(
            self._run(history, model_id, enabled_tools, streaming=False)
        ) as fragments:
            async for fragment in fragments:
                parts.append(fragment)
        return "".join(parts)

    async def generate_stream(
        self,
        history: Sequence[Message],
        *,
        model_id: str | None = None,
        enabled_tools: Iterable[str] | None = None,
    ) -> AsyncIterator[str]:
        """Yield answer text as it is produced; single pass, not restartable."""

        async with aclosing(
            self._run(history, model_id, enabled_tools, streaming=True)
        ) as fragments:
            async for fragment in fragments:
                yield fragment

    async def _run(
        self,
        history: Sequence[Message],
        model_id: str | None,
        enabled_tools: Iterable[str] | None,
        *,
        streaming: bool,
    ) -> AsyncIterator[str]:
        model = self.config.resolve_model(model_id)
        transcript: list[TranscriptEntry] = build_transcript(history, self.system_prompt)
        catalog = self.tool_registry.catalog(enabled_tools)
        enabled = {tool.name for tool in catalog}
        run = _RunState(
            model=model,
            mode="stream" if streaming else "buffered",
            used_refs={
                entry.ref for entry in transcript if isinstance(entry, ModelToolRequestEntry)
            },
        )
        logger.info(
            "Agent run started: model={} mode={} tools={}",
            model,
            run.mode,
            sorted(enabled),
        )

        start = perf_counter()
        outcome: str | None = None
        try:
            while run.turns < self.config.max_turns:
                run.turns += 1
                run.transition(LoopState.GENERATING)

                result: CompletionResult | None = None
                if streaming:
                    async for event in self.completion_model.stream(transcript, catalog, model):
                        if isinstance(event, TextFragment):
                            if event.text:
                                for piece in run.emit(event.text):
                                    yield piece
                        elif isinstance(event, CompletionResult):
                            if result is None:
                                result = event
                        else:
                            raise TypeError(
                                f"Unsupported completion event: {type(event).__name__}"
                            )
                    if result is None:
                        logger.warning("Completion stream ended without a final result")
                        run.transition(LoopState.DONE)
                        return
                else:
                    result = await self.completion_model.generate(transcript, catalog, model)
                    if result.text:
                        for piece in run.emit(result.text):
                            yield piece

                try:
                    request = self._select_tool_request(result)
                except ResponseParseError as exc:
                    logger.warning("Ending run on unreadable tool request: {}", exc)
                    run.transition(LoopState.DONE)
                    return
                if request is None:
                    run.transition(LoopState.DONE)
                    return

                run.transition(LoopState.TOOL_REQUESTED)
                ref = self._correlation_ref(request.ref, run.used_refs)
                args = dict(request.input)
                transcript.append(
                    ModelToolRequestEntry(
                        tool_name=request.tool_name, args=args, ref=ref, content=result.text
                    )
                )

                run.transition(LoopState.EXECUTING)
                output = await self._execute_tool(request.tool_name, args, ref, enabled, run)
                transcript.append(
                    ToolResultEntry(tool_name=request.tool_name, ref=ref, result=output)
                )

            run.transition(LoopState.ABORTED)
            logger.warning(
                "Agent run hit the turn budget ({}) while tools were still requested",
                self.config.max_turns,
            )
        except GeneratorExit:
            outcome = "cancelled"
            raise
        except Exception:
            outcome = "failed"
            logger.exception("Agent run failed on turn {}", run.turns)
            raise
        finally:
            latency_ms = (perf_counter() - start) * 1000.0
            final_state = outcome or run.state.value
            logger.info(
                "Agent run finished: state={} turns={} tools={} latency={:.1f}ms",
                final_state,
                run.turns,
                len(run.tool_traces),
                latency_ms,
            )
            self._record_trace(history, run, final_state, latency_ms)

    def _select_tool_request(self, result: CompletionResult) -> ToolRequest | None:
        if not result.tool_requests:
            return None
        first, *extra = result.tool_requests
        if extra:
            logger.warning(
                "Completion requested {} tools; executing only {}",
                len(result.tool_requests),
                first.tool_name,
            )
        if not isinstance(first.tool_name, str) or not first.tool_name.strip():
            raise ResponseParseError("Tool request has no tool name")
        if not isinstance(first.input, Mapping):
            raise ResponseParseError(
                f"Tool request for {first.tool_name} has non-object input: {first.input!r}"
            )
        return first

    @staticmethod
    def _correlation_ref(provider_ref: str, used_refs: set[str]) -> str:
        ref = provider_ref
        if not ref or ref in used_refs:
            ref = uuid.uuid4().hex
        used_refs.add(ref)
        return ref

    async def _execute_tool(
        self,
        name: str,
        args: dict[str, Any],
        ref: str,
        enabled: set[str],
        run: _RunState,
    ) -> Any:
        ok = True
        output: Any
        with Timer() as timer:
            if name not in enabled:
                logger.warning("Model requested unavailable tool {}", name)
                ok = False
                output = f"Tool unavailable: {name}"
            else:
                logger.info("Executing tool {} ref={}", name, ref)
                try:
                    output = await self.tool_registry.execute(name, args)
                except ToolExecutionError as exc:
                    logger.warning("Tool {} failed: {}", name, exc)
                    ok = False
                    output = f"Tool error: {exc}"
                except KeyError:
                    ok = False
                    output = f"Tool unavailable: {name}"

        if _is_empty(output):
            output = NO_INFORMATION_RESULT
        run.tool_traces.append(
            ToolTrace(
                name=name,
                ref=ref,
                input_payload=args,
                output_preview=str(output)[:320],
                latency_ms=timer.elapsed_ms,
                ok=ok,
            )
        )
        return output

    def _record_trace(
        self,
        history: Sequence[Message],
        run: _RunState,
        final_state: str,
        latency_ms: float,
    ) -> None:
        if self.trace_store is None:
            return
        question = next(
            (message.content_text() for message in reversed(history) if message.role is Role.USER),
            "",
        )
        self.trace_store.create_record(
            model=run.model,
            mode=run.mode,
            question=question,
            answer="".join(run.text_parts),
            turns=run.turns,
            final_state=final_state,
            tool_traces=run.tool_traces,
            latency_ms=latency_ms,
        )


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False
