"""Citation tools for draft generation: package barrel exports."""

from .definitions import get_tool_definitions
from .dispatcher import (
    AddCitationCall,
    ToolCall,
    ToolValidationError,
    build_tool_executor,
    execute_tool,
    parse_tool_call,
)
from .tools_citation import (
    CitationToolContext,
    add_citation,
    generate_citation_key,
    to_csl_json,
)

__all__ = [
    "get_tool_definitions",
    "parse_tool_call",
    "execute_tool",
    "build_tool_executor",
    "AddCitationCall",
    "ToolCall",
    "ToolValidationError",
    "CitationToolContext",
    "add_citation",
    "generate_citation_key",
    "to_csl_json",
]
