"""
Event Streamer for ChatEvent creation.

Manages event sequence state and creates ChatEvent objects with
auto-incrementing sequence numbers and correlation IDs for tracing.
"""

from __future__ import annotations

from typing import Any, Optional

from ..domain.entities import ChatEvent, ChatEventType, TokenUsage, ToolCall


class EventStreamer:
    """Creates the events of one stream with increasing sequence numbers.

    Usage:
        streamer = EventStreamer(correlation_id=context.request_id)

        event1 = streamer.token("Olá")
        # sequence = 1

        event2 = streamer.token(", tudo bem?")
        # sequence = 2
    """

    def __init__(self, correlation_id: Optional[str] = None):
        """Initialize the event streamer.

        Args:
            correlation_id: Optional correlation ID for request tracing
                          (typically context.request_id)
        """
        self.correlation_id = correlation_id
        self._sequence = 0
        self._terminated = False

    def create_event(
        self, event_type: ChatEventType, data: Optional[dict[str, Any]] = None
    ) -> ChatEvent:
        """Create a ChatEvent with the next sequence number.

        Raises:
            RuntimeError: If a terminal event was already created
        """
        if self._terminated:
            raise RuntimeError("Stream already terminated")

        self._sequence += 1
        event = ChatEvent(
            type=event_type,
            sequence=self._sequence,
            data=data or {},
            correlation_id=self.correlation_id,
        )
        if event.is_terminal:
            self._terminated = True
        return event

    def token(self, text: str) -> ChatEvent:
        return self.create_event(ChatEventType.TOKEN, {"text": text})

    def reasoning(self, text: str) -> ChatEvent:
        return self.create_event(ChatEventType.REASONING, {"text": text})

    def tool_call(self, tool_call: ToolCall, requires_approval: bool) -> ChatEvent:
        return self.create_event(
            ChatEventType.TOOL_CALL,
            {
                "toolCallId": tool_call.id,
                "name": tool_call.name,
                "args": tool_call.arguments,
                "requiresApproval": requires_approval,
            },
        )

    def tool_result(self, tool_call: ToolCall) -> ChatEvent:
        data: dict[str, Any] = {
            "toolCallId": tool_call.id,
            "name": tool_call.name,
            "status": tool_call.status.value,
        }
        payload = tool_call.result_payload()
        if tool_call.error is not None:
            data.update(payload)
        else:
            data["result"] = payload
        return self.create_event(ChatEventType.TOOL_RESULT, data)

    def usage(self, usage: TokenUsage) -> ChatEvent:
        return self.create_event(ChatEventType.USAGE, usage.to_dict())

    def done(self, summary: dict[str, Any]) -> ChatEvent:
        return self.create_event(ChatEventType.DONE, summary)

    def error(self, message: str, error_type: str) -> ChatEvent:
        return self.create_event(
            ChatEventType.ERROR, {"message": message, "errorType": error_type}
        )

    @property
    def sequence(self) -> int:
        """Current sequence value (before next increment)."""
        return self._sequence

    @property
    def terminated(self) -> bool:
        return self._terminated
