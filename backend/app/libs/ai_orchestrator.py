"""
AI Orchestrator

Runs a natural-language command through a chat-completion model with tool
calling. The model decides which tools to call; each call goes through the
tool executor, and every successful write leaves an undo batch behind so the
whole command can be reverted later.
"""

import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

from openai import AsyncOpenAI

from app.libs.ai_system_prompt import get_system_prompt
from app.libs.ai_tool_registry import get_all_tools
from app.libs.config import DEEPSEEK_BASE_URL, DEEPSEEK_MODEL, Settings
from app.libs.data_gateway import DataGateway
from app.libs.logging_config import log_timing
from app.libs.models import (
    AIMessage,
    ChatRole,
    ExecutionContext,
    ExecutionResult,
    ToolCallRecord,
)
from app.libs.tool_executor import execute_tool, is_read_only
from app.libs.undo import UndoTracker

logger = logging.getLogger(__name__)

TOOL_REPEAT_THRESHOLD = 2
TEMPERATURE = 0.1
MAX_TOKENS = 4096

NOT_CONFIGURED_MESSAGE = "AI service is not configured. Please set OPENAI_API_KEY or DEEPSEEK_API_KEY."
REPEAT_STOPPED_MESSAGE = "Action completed. I stopped repeating the same tool call to prevent duplicates."
DEFAULT_RESPONSE = "Command executed successfully."
NO_RESPONSE_MESSAGE = "No response from AI service."
PROCESSING_ERROR_MESSAGE = "An error occurred while processing your command."
TOOL_ERROR_MESSAGE = "An error occurred while executing the command."
TOO_MANY_STEPS_MESSAGE = "The command required too many steps to complete. Please try a simpler request."


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    try:
        arguments = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return arguments if isinstance(arguments, dict) else {}


def _tool_call_to_dict(tool_call) -> Dict[str, Any]:
    return {
        "id": tool_call.id,
        "type": "function",
        "function": {"name": tool_call.function.name, "arguments": tool_call.function.arguments},
    }


class AIOrchestrator:
    """Executes AI commands with tool calling and undo tracking."""

    def __init__(self, settings: Settings, gateway: DataGateway, client: Optional[AsyncOpenAI] = None):
        """Initialize the orchestrator.

        Args:
            settings: Service settings, used to pick the provider
            gateway: Data access used by the tools
            client: Pre-built chat client (tests pass a fake one)
        """
        self.settings = settings
        self.gateway = gateway
        self.provider = settings.provider()
        self.max_iterations = settings.max_tool_iterations
        if self.provider == "deepseek":
            self.model = DEEPSEEK_MODEL
        else:
            self.model = settings.openai_model
        self.client = client if client is not None else self._create_client()

    def _create_client(self) -> Optional[AsyncOpenAI]:
        if self.provider == "openai":
            return AsyncOpenAI(api_key=self.settings.openai_api_key)
        if self.provider == "deepseek":
            return AsyncOpenAI(api_key=self.settings.deepseek_api_key, base_url=DEEPSEEK_BASE_URL)
        return None

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def execute(
        self,
        command: str,
        context: ExecutionContext,
        history: Optional[List[AIMessage]] = None,
    ) -> ExecutionResult:
        """Run a command to completion and return the final result."""
        result = None
        async for event in self._run(command, context, history):
            if event["type"] == "result":
                result = event["result"]
        return result

    async def execute_stream(
        self,
        command: str,
        context: ExecutionContext,
        history: Optional[List[AIMessage]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Run a command, yielding progress events as it goes.

        Yields:
            {"type": "progress", "stage": ..., "content": ..., "data"?: ...}
            and, when the command fails, a final {"type": "error", "content": ...}
        """
        async for event in self._run(command, context, history):
            if event["type"] != "result":
                yield event
                continue
            result: ExecutionResult = event["result"]
            if result.success:
                yield {
                    "type": "progress",
                    "stage": "response",
                    "content": result.response,
                    "data": result.model_dump(
                        mode="json",
                        by_alias=True,
                        include={"tool_calls_made", "undo_batches", "undo_skipped_tools"},
                    ),
                }
            else:
                yield {"type": "error", "content": result.error or result.response}

    def _build_messages(
        self,
        command: str,
        context: ExecutionContext,
        history: Optional[List[AIMessage]],
    ) -> List[Dict[str, Any]]:
        messages = [{"role": ChatRole.SYSTEM.value, "content": get_system_prompt(context)}]
        messages.extend(message.to_provider() for message in history or [])
        messages.append({"role": ChatRole.USER.value, "content": command})
        return messages

    async def _run(
        self,
        command: str,
        context: ExecutionContext,
        history: Optional[List[AIMessage]],
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Core tool-calling loop.

        Yields progress events and always finishes with
        {"type": "result", "result": ExecutionResult}.
        """
        tracker = UndoTracker()
        records: List[ToolCallRecord] = []

        def finish(success: bool, response: str, error: Optional[str] = None) -> Dict[str, Any]:
            return {
                "type": "result",
                "result": ExecutionResult(
                    success=success,
                    response=response,
                    tool_calls_made=records,
                    undo_batches=tracker.to_wire(),
                    undo_skipped_tools=tracker.skipped_tools,
                    error=error,
                ),
            }

        if not self.configured:
            yield finish(False, NOT_CONFIGURED_MESSAGE, "Missing API key")
            return

        messages = self._build_messages(command, context, history)
        tools = get_all_tools()
        last_signature: Optional[str] = None
        repeat_count = 0

        for iteration in range(1, self.max_iterations + 1):
            yield {"type": "progress", "stage": "thinking", "content": "Thinking..."}

            try:
                with log_timing(logger, f"chat completion (iteration {iteration})"):
                    response = await self.client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        tools=tools,
                        tool_choice="auto",
                        temperature=TEMPERATURE,
                        max_tokens=MAX_TOKENS,
                    )
            except Exception as e:
                logger.exception("AI provider call failed")
                yield finish(False, PROCESSING_ERROR_MESSAGE, str(e) or type(e).__name__)
                return

            if not response.choices:
                yield finish(False, NO_RESPONSE_MESSAGE, "Empty response")
                return

            message_obj = response.choices[0].message
            tool_calls = message_obj.tool_calls or []

            assistant_message: Dict[str, Any] = {
                "role": ChatRole.ASSISTANT.value,
                "content": message_obj.content,
            }
            if tool_calls:
                assistant_message["tool_calls"] = [_tool_call_to_dict(tc) for tc in tool_calls]
            messages.append(assistant_message)

            if not tool_calls:
                yield finish(True, message_obj.content or DEFAULT_RESPONSE)
                return

            for tool_call in tool_calls:
                tool_name = tool_call.function.name
                arguments = _parse_arguments(tool_call.function.arguments)

                yield {
                    "type": "progress",
                    "stage": "tool_call",
                    "content": f"Calling {tool_name}",
                    "data": {"tool": tool_name, "arguments": arguments},
                }

                result = await execute_tool(tool_name, arguments, context, self.gateway, tracker)
                records.append(ToolCallRecord(tool=tool_name, arguments=arguments, result=result))

                yield {
                    "type": "progress",
                    "stage": "tool_result",
                    "content": f"{tool_name} {'succeeded' if result.success else 'failed'}",
                    "data": {"tool": tool_name, "result": result.to_wire()},
                }

                signature = f"{tool_name}:{json.dumps(arguments, sort_keys=True, default=str)}"
                if signature == last_signature:
                    repeat_count += 1
                else:
                    last_signature = signature
                    repeat_count = 1

                if not is_read_only(tool_name) and repeat_count >= TOOL_REPEAT_THRESHOLD:
                    logger.info("Stopping repeated call to %s", tool_name)
                    if result.success:
                        yield finish(True, REPEAT_STOPPED_MESSAGE)
                    else:
                        yield finish(False, TOOL_ERROR_MESSAGE, result.error or "Tool failed")
                    return

                messages.append(
                    {
                        "role": ChatRole.TOOL.value,
                        "tool_call_id": tool_call.id,
                        "name": tool_name,
                        "content": json.dumps(result.to_wire()),
                    }
                )

        logger.warning("AI command hit the iteration limit (%d)", self.max_iterations)
        yield finish(False, TOO_MANY_STEPS_MESSAGE, "Max iterations reached")
