"""Tool definitions exposed to the model during draft generation."""

from typing import Any

from groundwrite.core.schemas_tools import ToolKind


def get_tool_definitions() -> list[dict[str, Any]]:
    """Get tool definitions for the completion API.

    1 tool:
    - add_citation: cite a work, either a provided paper or a foundational concept source
    """
    return [
        {
            "name": ToolKind.ADD_CITATION.value,
            "description": (
                "Record a citation and get back the token to insert in the text. "
                "Use it for widely-known foundational concepts that are not covered "
                "by the provided papers. Pass paper_id when the work is one of the "
                "provided papers. Never invent metadata."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "title": {
                        "type": "string",
                        "description": "Title of the cited work",
                    },
                    "authors": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 1,
                        "description": "Author names, at least one",
                    },
                    "reason": {
                        "type": "string",
                        "description": "Why this source supports the claim",
                    },
                    "section": {
                        "type": "string",
                        "description": "Section of the paper where the citation appears",
                    },
                    "paper_id": {
                        "type": "string",
                        "description": "Id of the provided paper, if citing one",
                    },
                    "year": {
                        "type": "integer",
                        "minimum": 1800,
                        "maximum": 2030,
                        "description": "Publication year",
                    },
                    "doi": {"type": "string", "description": "DOI without the https://doi.org/ prefix"},
                    "journal": {"type": "string", "description": "Journal or venue"},
                    "pages": {"type": "string"},
                    "volume": {"type": "string"},
                    "issue": {"type": "string"},
                    "url": {"type": "string", "description": "Landing page URL"},
                    "abstract": {"type": "string"},
                    "context": {
                        "type": "string",
                        "description": "The sentence the citation supports",
                    },
                },
                "required": ["title", "authors", "reason", "section"],
            },
        },
    ]
