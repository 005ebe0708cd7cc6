"""Fixed catalog of tools an AI step can enable."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from ..errors import ToolError
from .base import ToolSpec

logger = logging.getLogger(__name__)

ToolFunc = Callable[[Any], Union[str, Awaitable[str]]]
SearchFunc = Callable[[str], Union[str, Awaitable[str]]]


@dataclass
class CatalogTool:
    name: str
    description: str
    args_model: Type[BaseModel]
    func: ToolFunc

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters_schema=self.args_model.model_json_schema(),
        )


class ToolCatalog:
    """Tools keyed by id; an AI step selects a subset by id."""

    def __init__(self) -> None:
        self._tools: Dict[str, CatalogTool] = {}

    def register(
        self, name: str, description: str, args_model: Type[BaseModel]
    ) -> Callable[[ToolFunc], ToolFunc]:
        def decorator(func: ToolFunc) -> ToolFunc:
            self._tools[name] = CatalogTool(name, description, args_model, func)
            return func

        return decorator

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools)

    def select(self, tool_ids: List[str]) -> List[ToolSpec]:
        """Specs for ``tool_ids`` in the catalog; unknown ids are dropped."""
        specs = []
        for tool_id in tool_ids:
            tool = self._tools.get(tool_id)
            if tool is None:
                logger.warning(f"Tool {tool_id} is not in the catalog; ignoring")
                continue
            specs.append(tool.spec())
        return specs

    async def invoke(self, tool_id: str, arguments: Dict[str, Any]) -> str:
        tool = self._tools.get(tool_id)
        if tool is None:
            raise ToolError(f"Unknown tool: {tool_id}")
        try:
            args = tool.args_model.model_validate(arguments)
        except ValidationError as exc:
            raise ToolError(f"Invalid arguments for {tool_id}: {exc.errors()}") from exc
        output = tool.func(args)
        if inspect.isawaitable(output):
            output = await output
        return str(output)


class CalculatorArgs(BaseModel):
    operation: Literal["add", "subtract", "multiply", "divide"]
    a: float
    b: float


class WebSearchArgs(BaseModel):
    query: str


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def calculate(args: CalculatorArgs) -> str:
    if args.operation == "add":
        return _format_number(args.a + args.b)
    if args.operation == "subtract":
        return _format_number(args.a - args.b)
    if args.operation == "multiply":
        return _format_number(args.a * args.b)
    if args.b == 0:
        raise ToolError("Division by zero")
    return _format_number(args.a / args.b)


def canned_search(query: str) -> str:
    return f"Results for {query}: Nexusflow is a workflow engine."


def default_catalog(search: Optional[SearchFunc] = None) -> ToolCatalog:
    """Catalog with the built-in ``calc`` and ``web_search`` tools."""
    catalog = ToolCatalog()
    search_func = search or canned_search

    catalog.register(
        "calc", "Can perform mathematical operations.", CalculatorArgs
    )(calculate)

    @catalog.register("web_search", "Search the web for information.", WebSearchArgs)
    async def _web_search(args: WebSearchArgs) -> str:
        output = search_func(args.query)
        if inspect.isawaitable(output):
            output = await output
        return output

    return catalog
