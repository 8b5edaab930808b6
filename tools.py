"""
Custom MCP tool hook.

Define `register_tools(registry)` to add project-specific tools next to the
built-in ones. They show up in `GET /api/mcp?action=tools` and can be called
from workflows.
"""
from __future__ import annotations

from typing import Any, Dict

from kolosal.mcp import ToolRegistry


def register_tools(registry: ToolRegistry) -> None:
    """
    Register additional tools for the MCP playground.

    The default word counter only shows how handlers receive their bound
    parameters; replace or extend it with your own tools.
    """

    def word_counter(params: Dict[str, Any]) -> Dict[str, Any]:
        text = str(params["text"])
        words = text.split()
        return {
            "characters": len(text),
            "words": len(words),
            "unique_words": len({word.lower() for word in words}),
        }

    registry.register(
        name="word_counter",
        description="Count characters and words in a piece of text",
        parameters={"text": {"type": "string", "required": True}},
        handler=word_counter,
    )
