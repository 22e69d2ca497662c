"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from chat_agent.errors import ToolExecutionError
from chat_agent.types import ToolDefinition


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[Any], Awaitable[Any]]

    async def invoke(self, payload: dict[str, Any]) -> Any:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data)

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.args_schema.model_json_schema(),
        )


class ToolRegistry:
    """Maps tool names to specs.

    The agent loop reads the registry twice per turn: to build the catalog it
    advertises and to dispatch the requested tool. The registry is built before
    the agent and handed to it, so tools never import the loop.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def catalog(self, enabled: Iterable[str] | None = None) -> list[ToolDefinition]:
        """Definitions for the enabled tools; `None` enables every tool."""

        if enabled is None:
            return [spec.definition() for spec in self._tools.values()]
        wanted = set(enabled)
        return [spec.definition() for name, spec in self._tools.items() if name in wanted]

    async def execute(self, name: str, payload: dict[str, Any]) -> Any:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        try:
            return await spec.invoke(payload)
        except ValidationError as exc:
            raise ToolExecutionError(
                name, f"invalid arguments ({exc.error_count()} errors)"
            ) from exc
        except Exception as exc:
            raise ToolExecutionError(name, str(exc) or type(exc).__name__) from exc
