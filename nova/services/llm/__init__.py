"""
LLM Service using Groq API.
Streaming chat completions with tool calling, and the assistant chat
service built on top of it.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Optional, List, Dict, Any

from nova.config import get_settings, CONNECTOR_NAMES
from nova.core.exceptions import (
    LLMException,
    LLMAPIException,
    LLMNotConfiguredException,
    LLMTimeoutException,
    LLMRateLimitException
)

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class LLMResponse:
    """Response from LLM completion."""
    content: str
    tool_calls: Optional[List[Dict[str, Any]]] = None
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    processing_time_ms: Optional[float] = None


@dataclass
class LLMChunk:
    """Streaming chunk from LLM."""
    content: str = ""
    tool_calls: Optional[List[Dict[str, Any]]] = None
    is_final: bool = False


def _translate_error(e: Exception) -> LLMException:
    if isinstance(e, LLMException):
        return e
    if "rate_limit" in str(e).lower():
        return LLMRateLimitException()
    return LLMAPIException(str(e))


def _tool_messages(
    messages: List[Dict[str, Any]],
    tool_calls: List[Dict[str, Any]],
    tool_results: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Messages extended with the assistant tool calls and their results."""
    extended = list(messages)
    extended.append({
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {
                "id": tc["id"],
                "type": "function",
                "function": {
                    "name": tc["name"],
                    "arguments": json.dumps(tc["arguments"])
                }
            }
            for tc in tool_calls
        ]
    })
    for tc, result in zip(tool_calls, tool_results):
        extended.append({
            "role": "tool",
            "tool_call_id": tc["id"],
            "content": json.dumps(result.get("output", {}), default=str)
        })
    return extended


class LLMService:
    """
    LLM service using Groq API for low latency inference.

    Calls raise LLMNotConfiguredException when GROQ_API_KEY is not set.
    """

    def __init__(self, client=None):
        self._client = client
        self._model = settings.LLM_MODEL_ID

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def initialize(self):
        """Initialize Groq client."""
        if self._client is not None:
            return
        if not settings.GROQ_API_KEY:
            logger.warning("GROQ_API_KEY not set, chat backend unavailable")
            return

        from groq import AsyncGroq

        self._client = AsyncGroq(api_key=settings.GROQ_API_KEY)
        logger.info(f"LLM service initialized with model: {self._model}")

    def _require_client(self):
        if self._client is None:
            raise LLMNotConfiguredException()
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024
    ) -> LLMResponse:
        """
        Generate a complete response (non-streaming).

        Args:
            messages: Conversation messages
            tools: Optional tool definitions
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with content and optional tool calls
        """
        client = self._require_client()
        start_time = time.time()

        kwargs = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(**kwargs),
                timeout=settings.LLM_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            raise LLMTimeoutException(settings.LLM_TIMEOUT_SECONDS)
        except Exception as e:
            raise _translate_error(e)

        choice = response.choices[0]

        tool_calls = None
        if choice.message.tool_calls:
            tool_calls = [
                {
                    "id": tc.id,
                    "name": tc.function.name,
                    "arguments": json.loads(tc.function.arguments or "{}")
                }
                for tc in choice.message.tool_calls
            ]

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            }

        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
            usage=usage,
            processing_time_ms=(time.time() - start_time) * 1000
        )

    async def stream_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024
    ) -> AsyncIterator[LLMChunk]:
        """
        Stream LLM response.

        Yields:
            LLMChunk with content; the final chunk carries any tool calls
        """
        client = self._require_client()

        kwargs = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        try:
            stream = await asyncio.wait_for(
                client.chat.completions.create(**kwargs),
                timeout=settings.LLM_TIMEOUT_SECONDS
            )

            tool_calls_buffer = {}

            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta

                if delta.content:
                    yield LLMChunk(content=delta.content)

                # Tool calls arrive in fragments keyed by index
                if delta.tool_calls:
                    for tc in delta.tool_calls:
                        idx = tc.index
                        if idx not in tool_calls_buffer:
                            tool_calls_buffer[idx] = {
                                "id": tc.id or "",
                                "name": tc.function.name if tc.function else "",
                                "arguments": ""
                            }

                        if tc.function and tc.function.arguments:
                            tool_calls_buffer[idx]["arguments"] += tc.function.arguments
                        if tc.id:
                            tool_calls_buffer[idx]["id"] = tc.id
                        if tc.function and tc.function.name:
                            tool_calls_buffer[idx]["name"] = tc.function.name

                if chunk.choices[0].finish_reason:
                    break

        except asyncio.TimeoutError:
            raise LLMTimeoutException(settings.LLM_TIMEOUT_SECONDS)
        except Exception as e:
            raise _translate_error(e)

        tool_calls = []
        for tc in tool_calls_buffer.values():
            try:
                tool_calls.append({
                    "id": tc["id"],
                    "name": tc["name"],
                    "arguments": json.loads(tc["arguments"] or "{}")
                })
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse tool call: {tc}")

        yield LLMChunk(tool_calls=tool_calls or None, is_final=True)

    async def continue_with_tool_results(
        self,
        messages: List[Dict[str, Any]],
        tool_calls: List[Dict[str, Any]],
        tool_results: List[Dict[str, Any]]
    ) -> AsyncIterator[LLMChunk]:
        """
        Continue generation after tool execution.

        Yields:
            LLMChunk with final response
        """
        async for chunk in self.stream_completion(
            _tool_messages(messages, tool_calls, tool_results),
            tools=None
        ):
            yield chunk

    async def cleanup(self):
        """Cleanup resources."""
        self._client = None
        logger.info("LLM service cleaned up")


def build_system_prompt(context_summary: str = "No prior context") -> str:
    sources = ", ".join(CONNECTOR_NAMES.values())
    return f"""You are NOVA, a friendly and intelligent AI assistant. You communicate naturally like a helpful colleague, not a robot.

CURRENT CONTEXT:
{context_summary}

INSTRUCTIONS:
1. Use the search_documents tool to ground answers in the user's connected sources ({sources})
2. Use list_documents when the user asks which documents are available
3. Never invent document contents; if nothing relevant is found, say so
4. Keep answers concise; responses may be read aloud
5. When you cite a document, mention its title

RESPONSE STYLE:
- Warm and conversational, with contractions
- Short paragraphs, bullet points only when listing several items
"""


class ChatService:
    """
    Assistant chat backend: system prompt, streaming completion and
    one round of tool execution. Yields text deltas.
    """

    def __init__(self, llm: LLMService, tools=None):
        self.llm = llm
        self.tools = tools

    def build_messages(
        self,
        messages: List[Dict[str, str]],
        session=None
    ) -> List[Dict[str, Any]]:
        summary = session.context.get_context_summary() if session else "No prior context"
        history = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m.get("role") in ("user", "assistant") and m.get("content")
        ]
        return [{"role": "system", "content": build_system_prompt(summary)}] + history

    async def generate(
        self,
        messages: List[Dict[str, str]],
        session=None
    ) -> AsyncIterator[str]:
        """
        Stream the assistant reply.

        Args:
            messages: Conversation messages (welcome message excluded)
            session: Optional session supplying context and owner

        Yields:
            Text fragments

        Raises:
            LLMException: the chat backend is unavailable or failed
        """
        llm_messages = self.build_messages(messages, session)
        schemas = self.tools.get_tool_schemas() if self.tools else None

        pending_calls = None
        async for chunk in self.llm.stream_completion(llm_messages, tools=schemas):
            if chunk.content:
                yield chunk.content
            if chunk.tool_calls:
                pending_calls = chunk.tool_calls

        if not pending_calls:
            return

        tool_results = await self._execute_tools(pending_calls, session)
        async for chunk in self.llm.continue_with_tool_results(
            llm_messages, pending_calls, tool_results
        ):
            if chunk.content:
                yield chunk.content

    async def _execute_tools(
        self,
        tool_calls: List[Dict[str, Any]],
        session=None
    ) -> List[Dict[str, Any]]:
        """Execute tool calls; failures become error outputs for the model."""
        results = []

        for call in tool_calls:
            start = time.time()
            try:
                output = await self.tools.execute(call["name"], call["arguments"], session)
                success = True
            except Exception as e:
                logger.error(f"Tool execution error: {e}")
                output = {"error": str(e)}
                success = False

            results.append({
                "name": call["name"],
                "input": call["arguments"],
                "output": output,
                "success": success,
                "latency_ms": (time.time() - start) * 1000
            })
            logger.info(f"Tool {call['name']} -> {'ok' if success else 'error'}")

        return results
