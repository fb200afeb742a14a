"""
Tool Registry and Executor.
Manages tool registration and execution for LLM function calling.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Awaitable, Optional

from nova.core.exceptions import ToolNotFoundException, ToolExecutionException, ToolValidationException

logger = logging.getLogger(__name__)


@dataclass
class Tool:
    """Tool definition for LLM function calling."""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Callable[..., Awaitable[Dict[str, Any]]]
    required_params: List[str] = field(default_factory=list)

    def to_schema(self) -> Dict[str, Any]:
        """Convert to OpenAI/Groq tool schema format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": self.parameters,
                    "required": self.required_params
                }
            }
        }


class ToolRegistry:
    """
    Registry for managing and executing tools.

    Handlers receive the call arguments, the calling session (or None) and
    the registry's shared services.
    """

    def __init__(self, services: Optional[Dict[str, Any]] = None):
        self._tools: Dict[str, Tool] = {}
        self.services: Dict[str, Any] = services or {}

    async def initialize(self):
        """Register all available tools."""
        logger.info("Initializing tool registry...")

        from nova.tools.knowledge_search import register_knowledge_tools

        await register_knowledge_tools(self)

        logger.info(f"Registered {len(self._tools)} tools: {list(self._tools.keys())}")

    def register(self, tool: Tool):
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        """Get all tool schemas for LLM."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        session: Any = None
    ) -> Dict[str, Any]:
        """
        Execute a tool with given arguments.

        Args:
            tool_name: Name of the tool to execute
            arguments: Tool arguments
            session: Optional session for context

        Returns:
            Tool execution result
        """
        tool = self._tools.get(tool_name)

        if not tool:
            raise ToolNotFoundException(tool_name)

        missing = [p for p in tool.required_params if p not in arguments]
        if missing:
            raise ToolValidationException(tool_name, [f"Missing required parameter: {p}" for p in missing])

        start_time = time.time()

        try:
            result = await tool.handler(arguments, session, self.services)
        except Exception as e:
            logger.error(f"Tool execution error: {tool_name} - {e}")
            raise ToolExecutionException(tool_name, str(e))

        execution_time = (time.time() - start_time) * 1000
        logger.info(f"Tool {tool_name} executed in {execution_time:.2f}ms")
        return result
