"""Tool dispatch: parse raw tool calls into typed calls and route them to handlers."""

from dataclasses import dataclass
from typing import Any, Literal, assert_never

from pydantic import ValidationError

from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_tools import AddCitationInput, ToolKind
from groundwrite.core.stores import ToolExecutor

from .tools_citation import CitationToolContext, add_citation

logger = get_logger(__name__)


class ToolValidationError(Exception):
    """A tool call named an unknown tool or carried invalid arguments."""


@dataclass(frozen=True)
class AddCitationCall:
    args: AddCitationInput
    kind: Literal[ToolKind.ADD_CITATION] = ToolKind.ADD_CITATION


ToolCall = AddCitationCall


def _format_errors(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
    )


def parse_tool_call(tool_name: str, tool_input: dict[str, Any] | None) -> ToolCall:
    """
    Parse a raw tool call into its typed form.

    Raises:
        ToolValidationError: If the tool is unknown or its arguments are invalid
    """
    try:
        kind = ToolKind(tool_name)
    except ValueError as e:
        raise ToolValidationError(f"Unknown tool: {tool_name}") from e

    match kind:
        case ToolKind.ADD_CITATION:
            try:
                return AddCitationCall(args=AddCitationInput.model_validate(tool_input or {}))
            except ValidationError as e:
                raise ToolValidationError(f"Invalid {tool_name} arguments: {_format_errors(e)}") from e
        case _:
            assert_never(kind)


async def execute_tool(context: CitationToolContext, tool_name: str, tool_input: dict[str, Any]) -> dict[str, Any]:
    """
    Execute a tool and return results.

    Args:
        context: Run-scoped citation context
        tool_name: Name of tool to execute
        tool_input: Raw tool input from the model

    Returns:
        Tool result dict; failures are reported as {success: False, error}
    """
    try:
        call = parse_tool_call(tool_name, tool_input)
    except ToolValidationError as e:
        logger.warning(str(e))
        return {"success": False, "error": str(e)}

    logger.info(f"Executing tool {tool_name} for project {context.project_id}")
    match call:
        case AddCitationCall(args=args):
            return await add_citation(context, args)
        case _:
            assert_never(call)


def build_tool_executor(context: CitationToolContext) -> ToolExecutor:
    """Bind a citation context to execute_tool for use by a completion provider."""

    async def _execute(tool_name: str, tool_input: dict[str, Any]) -> dict[str, Any]:
        return await execute_tool(context, tool_name, tool_input)

    return _execute
