"""
Tool Executor

Runs one tool call for the AI orchestrator: validates the arguments into a
command, checks that the targets belong to the caller's workspace, captures
undo steps around writes and converts every failure into a ToolCallResult.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.libs.ai_commands import COMMAND_TYPES, parse_command
from app.libs.data_gateway import DataGateway, GatewayError
from app.libs.logging_config import log_timing
from app.libs.models import ExecutionContext, ToolCallResult
from app.libs.undo import UndoTracker

logger = logging.getLogger(__name__)


def is_read_only(tool_name: str) -> bool:
    command_type = COMMAND_TYPES.get(tool_name)
    return bool(command_type and command_type.read_only)


def _describe_validation_error(e: ValidationError) -> str:
    parts = []
    for error in e.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "tool")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


async def execute_tool(
    tool_name: str,
    arguments: Dict[str, Any],
    context: ExecutionContext,
    gateway: DataGateway,
    tracker: Optional[UndoTracker] = None,
) -> ToolCallResult:
    """Execute a tool call and return its result. Never raises."""
    if tool_name not in COMMAND_TYPES:
        return ToolCallResult.fail(f"Unknown tool: {tool_name}")

    try:
        command = parse_command(tool_name, arguments or {})
    except ValidationError as e:
        return ToolCallResult.fail(f"Invalid arguments for {tool_name}: {_describe_validation_error(e)}")

    try:
        denied = await command.authorize(gateway, context)
        if denied:
            return ToolCallResult.fail(denied)

        pre_steps = []
        if tracker is not None and not command.read_only:
            pre_steps = await command.capture_undo(gateway, context)

        with log_timing(logger, f"tool {tool_name}"):
            result = await command.run(gateway, context)
    except GatewayError as e:
        logger.warning("Tool %s failed: %s", tool_name, e)
        return ToolCallResult.fail(str(e))
    except Exception as e:
        logger.exception("Tool %s raised an unexpected error", tool_name)
        return ToolCallResult.fail(str(e) or f"Tool {tool_name} failed")

    if tracker is not None and result.success and not command.read_only:
        steps = command.undo_after(result) + pre_steps
        if steps:
            tracker.add_batch(steps)
        else:
            tracker.skip_tool(tool_name)
    return result
