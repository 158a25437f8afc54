"""
Tool Executor.

Validates arguments, enforces per-tool timeouts and turns every failure
into a ToolExecutionError so tool problems stay in-band.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..domain.entities import ToolCall, ToolCallStatus, ToolContext, utcnow
from ..domain.errors import ToolArgumentError, ToolExecutionError
from ..domain.ports import ITool

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Não foi possível executar a ferramenta."


class ToolExecutor:
    """Executes tool calls with error handling.

    Usage:
        executor = ToolExecutor()

        tool_call = await executor.execute_tool_call(tool, tool_call, tool_context)
        tool_call.status  # SUCCEEDED or FAILED
    """

    async def invoke(self, tool: ITool, arguments: dict[str, Any], context: ToolContext) -> Any:
        """Validate and run a tool.

        Raises:
            ToolArgumentError: If the arguments do not match the schema
            ToolExecutionError: On failure or timeout
        """
        args = tool.validate(arguments)

        try:
            return await asyncio.wait_for(
                tool.execute(args, context), timeout=tool.timeout_seconds
            )
        except ToolExecutionError:
            raise
        except asyncio.TimeoutError as e:
            raise ToolExecutionError(
                f"A ferramenta {tool.name} excedeu o tempo limite de {tool.timeout_seconds}s",
                tool_name=tool.name,
            ) from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Tool {tool.name} raised {type(e).__name__}")
            raise ToolExecutionError(
                getattr(tool, "error_message", DEFAULT_ERROR_MESSAGE),
                tool_name=tool.name,
            ) from e

    async def execute_tool_call(
        self,
        tool: ITool,
        tool_call: ToolCall,
        context: ToolContext,
    ) -> ToolCall:
        """Run a tool call and record its outcome on the ToolCall.

        Never raises for tool failures; the ToolCall ends SUCCEEDED or FAILED.
        """
        logger.info(f"Executing tool: {tool_call.name}")
        tool_call.status = ToolCallStatus.EXECUTING

        try:
            tool_call.result = await self.invoke(tool, tool_call.arguments, context)
            tool_call.status = ToolCallStatus.SUCCEEDED
        except ToolArgumentError as e:
            logger.warning(f"Invalid arguments for tool {tool_call.name}: {e}")
            tool_call.status = ToolCallStatus.FAILED
            tool_call.error = str(e)
        except ToolExecutionError as e:
            logger.warning(f"Tool {tool_call.name} failed: {e}")
            tool_call.status = ToolCallStatus.FAILED
            tool_call.error = str(e)

        tool_call.executed_at = utcnow()
        return tool_call
