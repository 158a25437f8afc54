"""
Agent Orchestrator.

Main orchestration logic for EducaIA chats. Coordinates:
- Pre-flight resolution of agent, provider and conversation
- Streaming provider calls with retries and an idle timeout
- Tool execution, including human approval for sensitive tools
- Persistence of the user and assistant messages
- Ordered event streaming to clients
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..definitions.educa_ia import should_suggest_detailed_mode
from ..definitions.registry import AgentRegistry
from ..domain.entities import (
    AgentDescriptor,
    ChatEvent,
    Conversation,
    ErrorType,
    Message,
    MessagePart,
    MessageRole,
    ModelSettings,
    PartType,
    ProviderEvent,
    ProviderEventType,
    ResponseMode,
    StreamRequest,
    TokenUsage,
    ToolCall,
    ToolCallStatus,
    ToolContext,
    ToolDefinition,
    UserContext,
    check_tool_result_references,
)
from ..domain.errors import EducaIAError, ProviderError
from ..domain.ports import IEventSink, ILLMProvider
from ..providers.factory import ModelProviderFactory
from .approval_manager import ApprovalManager
from .conversation_manager import ConversationManager
from .event_streamer import EventStreamer
from .prompt_builder import PromptBuilder
from .tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

REASONING_EFFORT_BY_MODE = {
    ResponseMode.FAST: "low",
    ResponseMode.DETAILED: "medium",
}


@dataclass
class OrchestratorConfig:
    """Limits applied to every stream.

    Attributes:
        max_tool_rounds: Provider rounds that may request tools before the
            model is forced to answer (agents may override)
        provider_max_retries: Retries of a transient provider failure
        provider_idle_timeout: Seconds to wait for the next provider event
        retry_base_delay: First backoff delay in seconds
        retry_max_delay: Backoff ceiling in seconds
    """

    max_tool_rounds: int = 5
    provider_max_retries: int = 3
    provider_idle_timeout: float = 60
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0

    @classmethod
    def from_settings(cls, settings: Any) -> OrchestratorConfig:
        return cls(
            max_tool_rounds=settings.max_tool_rounds,
            provider_max_retries=settings.provider_max_retries,
            provider_idle_timeout=settings.provider_idle_timeout,
        )


@dataclass
class PreparedStream:
    """Everything resolved before the first event is sent."""

    request: StreamRequest
    context: UserContext
    agent: AgentDescriptor
    provider: ILLMProvider
    conversation: Conversation
    user_message: Message
    history: list[Message]
    system_prompt: str
    settings: ModelSettings
    tool_context: ToolContext


@dataclass
class _AnswerBuilder:
    """Accumulates the parts of the assistant message in emission order."""

    parts: list[MessagePart] = field(default_factory=list)
    _text: list[str] = field(default_factory=list)
    _reasoning: list[str] = field(default_factory=list)

    def add_text(self, delta: str) -> None:
        self._flush_reasoning()
        self._text.append(delta)

    def add_reasoning(self, delta: str) -> None:
        self._reasoning.append(delta)

    def add_tool_call(self, tool_call: ToolCall) -> None:
        self.flush()
        self.parts.append(
            MessagePart.tool_call_part(tool_call.id, tool_call.name, tool_call.arguments)
        )

    def add_tool_result(self, tool_call: ToolCall) -> None:
        self.flush()
        self.parts.append(
            MessagePart.tool_result_part(
                tool_call.id,
                tool_call.name,
                tool_call.result_payload(),
                is_error=tool_call.status != ToolCallStatus.SUCCEEDED,
            )
        )

    def flush(self) -> None:
        self._flush_reasoning()
        if self._text:
            self.parts.append(MessagePart.text_part("".join(self._text)))
            self._text = []

    def _flush_reasoning(self) -> None:
        if self._reasoning:
            self.parts.append(MessagePart.reasoning_part("".join(self._reasoning)))
            self._reasoning = []

    def message(self, **kwargs: Any) -> Message:
        self.flush()
        return Message(role=MessageRole.ASSISTANT, parts=list(self.parts), **kwargs)


class AgentOrchestrator:
    """Runs one streamed answer per request.

    The stream is driven in two steps. start() does all pre-flight work
    (agent and provider resolution, conversation load or creation, the
    per-conversation lock and the durable user message) and raises typed
    errors. stream() then yields ChatEvents and always ends with exactly
    one ``done`` or ``error`` event.

    Usage:
        orchestrator = AgentOrchestrator(
            agents=agent_registry,
            providers=provider_factory,
            conversations=conversation_manager,
            approvals=approval_manager,
        )

        prepared = await orchestrator.start(request, user_context)
        async for event in orchestrator.stream(prepared):
            await send(event.to_dict())
    """

    def __init__(
        self,
        agents: AgentRegistry,
        providers: ModelProviderFactory,
        conversations: ConversationManager,
        approvals: ApprovalManager,
        config: Optional[OrchestratorConfig] = None,
        tool_executor: Optional[ToolExecutor] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        self.agents = agents
        self.providers = providers
        self.conversations = conversations
        self.approvals = approvals
        self.config = config or OrchestratorConfig()
        self.tool_executor = tool_executor or ToolExecutor()
        self.prompt_builder = prompt_builder or PromptBuilder()

    # ============================================
    # Pre-flight
    # ============================================

    async def start(self, request: StreamRequest, context: UserContext) -> PreparedStream:
        """Resolve everything needed to stream and persist the user message.

        Raises:
            ValueError: If the request has no user message, the user message
                carries non-text parts, or client history has a dangling
                tool result
            AgentNotFoundError: Unknown agent name
            ConfigurationError: Unknown or unconfigured provider
            NotFoundError: Unknown conversation id for this user
            ConversationBusyError: Another stream holds the conversation
            PersistenceError: The user message could not be stored
        """
        incoming = request.last_user_message
        if incoming is None or not incoming.text.strip():
            raise ValueError("Request must contain a non-empty user message")
        if any(part.type != PartType.TEXT for part in incoming.parts):
            raise ValueError("User messages may only contain text parts")

        client_history: list[Message] = []
        if request.conversation_id is None:
            # New conversation: earlier client messages are context only
            client_history = [m for m in request.messages if m is not incoming]
            for index, message in enumerate(client_history):
                check_tool_result_references(client_history[:index], message)

        agent = self.agents.get(request.agent_name)
        provider = self.providers.get(
            request.provider or agent.provider,
            request.model or agent.model,
        )

        conversation = await self.conversations.get_or_create(
            request.conversation_id, context, title=incoming.text
        )
        created = request.conversation_id is None
        user_message: Optional[Message] = None

        self.conversations.acquire(conversation.id)

        try:
            if created:
                history = client_history
            else:
                history = await self.conversations.get_history(conversation.id, context)

            user_message = await self.conversations.add_message(
                conversation.id,
                Message(role=MessageRole.USER, parts=list(incoming.parts)),
                context,
            )

            reasoning_effort = None
            if request.send_reasoning and getattr(provider, "supports_reasoning", False):
                reasoning_effort = (
                    agent.model_settings.reasoning_effort
                    or REASONING_EFFORT_BY_MODE[request.response_mode]
                )

            prepared = PreparedStream(
                request=request,
                context=context,
                agent=agent,
                provider=provider,
                conversation=conversation,
                user_message=user_message,
                history=self.conversations.window(history + [user_message]),
                system_prompt=self.prompt_builder.build(agent, context, request.response_mode),
                settings=agent.model_settings.merged(
                    temperature=request.temperature,
                    max_tokens=request.max_tokens,
                    reasoning_effort=reasoning_effort,
                ),
                tool_context=ToolContext.from_user_context(
                    context, request.response_mode, conversation.id
                ),
            )
        except BaseException:
            self.conversations.release(conversation.id)
            if created and user_message is None:
                await self._discard(conversation, context)
            raise

        logger.info(
            f"Streaming {agent.name} for user {context.user_id} in conversation "
            f"{conversation.id} (provider: {provider.provider_name}, "
            f"model: {provider.model_name}, mode: {request.response_mode.value})"
        )
        return prepared

    async def _discard(self, conversation: Conversation, context: UserContext) -> None:
        """Drop a conversation created by a start() that failed before storing anything."""
        try:
            await self.conversations.delete(conversation.id, context)
        except EducaIAError as e:
            logger.error(f"Could not discard empty conversation {conversation.id}: {e}")

    # ============================================
    # Streaming
    # ============================================

    async def stream(self, prepared: PreparedStream) -> AsyncIterator[ChatEvent]:
        """Run the answer loop and yield events.

        The per-conversation lock taken by start() is released when the
        iterator finishes, fails or is closed.
        """
        agent = prepared.agent
        conversation_id = prepared.conversation.id
        streamer = EventStreamer(correlation_id=prepared.context.request_id)
        answer = _AnswerBuilder()
        usage = TokenUsage()
        tool_calls: list[ToolCall] = []
        tool_definitions = agent.tool_definitions()
        max_rounds = agent.max_tool_rounds or self.config.max_tool_rounds
        rounds = 0
        seen_call_ids: set[str] = set()

        try:
            while True:
                allow_tools = bool(tool_definitions) and rounds < max_rounds
                round_calls: list[ToolCall] = []

                messages = list(prepared.history)
                if answer.parts:
                    messages.append(answer.message())

                async for event in self._provider_events(
                    prepared.provider,
                    messages,
                    tool_definitions if allow_tools else None,
                    prepared.system_prompt,
                    prepared.settings,
                ):
                    if event.type == ProviderEventType.TEXT_DELTA:
                        if event.text:
                            answer.add_text(event.text)
                            yield streamer.token(event.text)

                    elif event.type == ProviderEventType.REASONING_DELTA:
                        if event.text:
                            answer.add_reasoning(event.text)
                            if prepared.request.send_reasoning:
                                yield streamer.reasoning(event.text)

                    elif event.type == ProviderEventType.TOOL_CALL_REQUEST:
                        tool_call = event.tool_call
                        if not allow_tools:
                            logger.warning(
                                f"Ignoring tool call {tool_call.name} requested "
                                f"without tools in conversation {conversation_id}"
                            )
                            continue
                        if not tool_call.id or tool_call.id in seen_call_ids:
                            tool_call.id = f"call_{uuid.uuid4().hex}"
                        seen_call_ids.add(tool_call.id)
                        tool = agent.get_tool(tool_call.name)
                        answer.add_tool_call(tool_call)
                        round_calls.append(tool_call)
                        yield streamer.tool_call(
                            tool_call, bool(tool and tool.requires_approval)
                        )

                    elif event.type == ProviderEventType.USAGE and event.usage:
                        usage = usage + event.usage

                if not round_calls:
                    break

                rounds += 1
                for tool_call in round_calls:
                    await self._resolve_tool_call(prepared, tool_call)
                    answer.add_tool_result(tool_call)
                    tool_calls.append(tool_call)
                    yield streamer.tool_result(tool_call)

                if rounds >= max_rounds:
                    logger.info(
                        f"Tool round limit ({max_rounds}) reached in conversation "
                        f"{conversation_id}, requesting final answer"
                    )

            yield streamer.usage(usage)

            assistant_message = answer.message(
                model_used=prepared.provider.model_name,
                tokens_used=usage.total_tokens,
            )
            await self.conversations.add_message(
                conversation_id, assistant_message, prepared.context
            )

            yield streamer.done({
                "conversationId": str(conversation_id),
                "messageId": str(assistant_message.id),
                "text": assistant_message.text,
                "toolCalls": [
                    {"toolCallId": tc.id, "name": tc.name, "status": tc.status.value}
                    for tc in tool_calls
                ],
                "rounds": rounds,
                "model": prepared.provider.model_name,
                "suggestDetailedMode": should_suggest_detailed_mode(
                    prepared.user_message.text, prepared.request.response_mode
                ),
            })

            logger.info(
                f"Completed answer in conversation {conversation_id}: "
                f"{rounds} tool rounds, {usage.total_tokens} tokens"
            )

        except ProviderError as e:
            logger.error(
                f"Provider failure in conversation {conversation_id}: {e} "
                f"(type: {e.error_type.value})"
            )
            yield streamer.error(e.public_message, e.error_type.value)

        except EducaIAError as e:
            logger.error(f"Stream failed in conversation {conversation_id}: {e}")
            yield streamer.error(e.public_message, ErrorType.FATAL.value)

        except Exception as e:
            logger.exception(f"Unexpected error in conversation {conversation_id}: {e}")
            yield streamer.error(EducaIAError.public_message, ErrorType.FATAL.value)

        finally:
            self.release(prepared)

    def release(self, prepared: PreparedStream) -> None:
        """Cancel pending approvals and free the conversation lock.

        Idempotent. stream() calls it on exit; transports call it as well
        when a stream may be dropped before its first iteration.
        """
        self.approvals.cancel_conversation(prepared.conversation.id)
        self.conversations.release(prepared.conversation.id)

    async def run(self, prepared: PreparedStream, sink: IEventSink) -> None:
        """Drive a stream into a sink."""
        try:
            async for event in self.stream(prepared):
                await sink.emit(event)
        finally:
            self.release(prepared)
            await sink.close()

    # ============================================
    # Provider calls
    # ============================================

    async def _provider_events(
        self,
        provider: ILLMProvider,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]],
        system_prompt: str,
        settings: ModelSettings,
    ) -> AsyncIterator[ProviderEvent]:
        """Provider events of one round, retried while nothing was yielded."""
        attempt = 0
        while True:
            yielded = False
            try:
                async for event in self._with_idle_timeout(
                    provider.chat(
                        messages=messages,
                        tools=tools,
                        system_prompt=system_prompt,
                        settings=settings,
                    )
                ):
                    yielded = True
                    yield event
                return
            except ProviderError as e:
                if yielded or not e.is_transient or attempt >= self.config.provider_max_retries:
                    raise
                attempt += 1
                delay = min(
                    self.config.retry_base_delay * 2 ** (attempt - 1),
                    self.config.retry_max_delay,
                )
                logger.warning(
                    f"Transient provider error ({e.error_type.value}): {e}. "
                    f"Retry {attempt}/{self.config.provider_max_retries} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def _with_idle_timeout(
        self, events: AsyncIterator[ProviderEvent]
    ) -> AsyncIterator[ProviderEvent]:
        iterator = events.__aiter__()
        timeout = self.config.provider_idle_timeout
        try:
            while True:
                try:
                    event = await asyncio.wait_for(iterator.__anext__(), timeout=timeout)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError as e:
                    raise ProviderError(
                        f"Provider produced no output for {timeout}s",
                        error_type=ErrorType.TIMEOUT,
                    ) from e
                yield event
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    # ============================================
    # Tool calls
    # ============================================

    async def _resolve_tool_call(self, prepared: PreparedStream, tool_call: ToolCall) -> None:
        """Approve (when needed) and execute a tool call, recording the outcome."""
        tool = prepared.agent.get_tool(tool_call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {tool_call.name}")
            tool_call.status = ToolCallStatus.FAILED
            tool_call.error = f"Ferramenta desconhecida: {tool_call.name}"
            return

        if tool.requires_approval:
            self.approvals.register(
                tool_call, prepared.context, prepared.conversation.id
            )
            decision = await self.approvals.wait(tool_call.id)
            if not decision.approved:
                tool_call.status = ToolCallStatus.REJECTED
                tool_call.error = decision.reason
                logger.info(f"Tool call {tool_call.id} ({tool_call.name}) rejected: {decision.reason}")
                return
            tool_call.status = ToolCallStatus.APPROVED

        await self.tool_executor.execute_tool_call(tool, tool_call, prepared.tool_context)
