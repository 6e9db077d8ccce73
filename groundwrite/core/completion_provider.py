"""Anthropic-backed completion provider with a multi-step tool loop.

Provider events are normalized to text-delta / tool-call / tool-result / error
so the generator never sees the SDK's wire types.
"""

import json
from collections.abc import AsyncIterator
from typing import Any

from anthropic import APIError, AsyncAnthropic

from groundwrite.core.config import get_settings
from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_tools import (
    StreamErrorEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from groundwrite.core.stores import StreamEventT, ToolExecutor

logger = get_logger(__name__)


class AnthropicCompletionProvider:
    """CompletionProvider that streams from the Anthropic Messages API."""

    def __init__(self, client: AsyncAnthropic | None = None, api_key: str | None = None):
        self._client = client
        self._api_key = api_key

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self._api_key or get_settings().ANTHROPIC_API_KEY)
        return self._client

    async def stream(
        self,
        *,
        model: str,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        tool_executor: ToolExecutor | None,
        max_steps: int,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[StreamEventT]:
        """
        Stream a completion, executing tool calls between steps.

        Each step streams one model turn. When the turn ends with tool_use
        blocks, the tools run and their results are sent back as the next
        user turn, up to ``max_steps`` turns.

        Yields:
            Normalized stream events. API failures are yielded as a final
            StreamErrorEvent rather than raised.
        """
        conversation = list(messages)
        total_input = 0
        total_output = 0

        try:
            for step in range(max_steps):
                logger.debug(f"Completion step {step + 1}/{max_steps} ({len(conversation)} messages)")
                request: dict[str, Any] = {
                    "model": model,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "system": system,
                    "messages": conversation,
                }
                if tools:
                    request["tools"] = tools

                async with self.client.messages.stream(**request) as stream:
                    async for event in stream:
                        if getattr(event, "type", None) == "content_block_delta":
                            text = getattr(event.delta, "text", None)
                            if text:
                                yield TextDeltaEvent(text=text)

                    final_message = await stream.get_final_message()

                usage = getattr(final_message, "usage", None)
                if usage is not None:
                    total_input += getattr(usage, "input_tokens", 0) or 0
                    total_output += getattr(usage, "output_tokens", 0) or 0

                tool_use_blocks = [
                    block for block in final_message.content if block.type == "tool_use"
                ]
                if not tool_use_blocks:
                    break

                tool_results = []
                for block in tool_use_blocks:
                    yield ToolCallEvent(tool_call_id=block.id, tool_name=block.name, args=block.input or {})

                    if tool_executor is None:
                        result: dict[str, Any] = {"success": False, "error": "Tools are not available"}
                    else:
                        result = await tool_executor(block.name, block.input or {})

                    yield ToolResultEvent(tool_call_id=block.id, tool_name=block.name, result=result)
                    tool_results.append(
                        {
                            "type": "tool_result",
                            "tool_use_id": block.id,
                            "content": json.dumps(result, default=str),
                        }
                    )

                conversation.append({"role": "assistant", "content": final_message.content})
                conversation.append({"role": "user", "content": tool_results})
            else:
                logger.warning(f"Tool loop stopped after max_steps={max_steps}")

        except APIError as e:
            logger.error(f"Completion stream failed: {e}", exc_info=True)
            yield StreamErrorEvent(error=str(e))
            return

        logger.info(f"Completion usage: input={total_input} output={total_output} tokens")
