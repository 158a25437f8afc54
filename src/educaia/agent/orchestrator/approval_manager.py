"""
Approval Manager.

Pending human approvals for tool calls that require one. Each entry is
keyed by tool call id, scoped to the tenant, user and conversation that
produced it, and expires after a configurable timeout. Expiry counts as a
rejection.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from ..domain.entities import ToolCall, UserContext, utcnow
from ..domain.errors import ApprovalError, NotFoundError

logger = logging.getLogger(__name__)

REJECTED_REASON = "Operação rejeitada pelo usuário"
EXPIRED_REASON = "Tempo para aprovação esgotado"
CANCELLED_REASON = "Conversa encerrada antes da aprovação"


@dataclass
class ApprovalDecision:
    approved: bool
    reason: Optional[str] = None


@dataclass
class PendingApproval:
    """An approval waiting for a human decision."""

    tool_call: ToolCall
    tenant_id: str
    user_id: str
    conversation_id: UUID
    expires_at: datetime
    future: asyncio.Future = field(repr=False)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_expired(self) -> bool:
        return utcnow() >= self.expires_at

    def in_scope(self, context: UserContext, conversation_id: Optional[UUID]) -> bool:
        if self.tenant_id != context.tenant_id or self.user_id != context.user_id:
            return False
        return conversation_id is None or conversation_id == self.conversation_id

    def to_dict(self) -> dict:
        return {
            "toolCallId": self.tool_call.id,
            "name": self.tool_call.name,
            "args": self.tool_call.arguments,
            "conversationId": str(self.conversation_id),
            "expiresAt": self.expires_at.isoformat(),
        }


class ApprovalManager:
    """Tracks tool calls waiting for approval.

    Usage:
        approvals = ApprovalManager(timeout_seconds=300)

        # Stream side
        approvals.register(tool_call, context, conversation_id)
        decision = await approvals.wait(tool_call.id)

        # Request side (POST /approvals)
        approvals.resolve(tool_call.id, approved=True, context=context)
    """

    def __init__(self, timeout_seconds: float = 300):
        self.timeout_seconds = timeout_seconds
        self._pending: dict[str, PendingApproval] = {}

    def register(
        self,
        tool_call: ToolCall,
        context: UserContext,
        conversation_id: UUID,
    ) -> PendingApproval:
        """Add a pending approval for a tool call.

        Raises:
            ApprovalError: If the tool call id is already pending
        """
        if tool_call.id in self._pending:
            raise ApprovalError(f"Tool call {tool_call.id} is already awaiting approval")

        self.purge_expired()
        entry = PendingApproval(
            tool_call=tool_call,
            tenant_id=context.tenant_id,
            user_id=context.user_id,
            conversation_id=conversation_id,
            expires_at=utcnow() + timedelta(seconds=self.timeout_seconds),
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[tool_call.id] = entry
        logger.info(
            f"Tool call {tool_call.id} ({tool_call.name}) awaiting approval "
            f"in conversation {conversation_id}"
        )
        return entry

    async def wait(self, tool_call_id: str) -> ApprovalDecision:
        """Wait for a decision on a registered tool call.

        Returns a rejection when the approval expires or is cancelled.
        The entry is removed once this returns or the waiter is cancelled.
        """
        entry = self._pending.get(tool_call_id)
        if entry is None:
            raise ApprovalError(f"Tool call {tool_call_id} is not awaiting approval")

        remaining = max((entry.expires_at - utcnow()).total_seconds(), 0)
        try:
            return await asyncio.wait_for(asyncio.shield(entry.future), timeout=remaining)
        except asyncio.TimeoutError:
            logger.info(f"Approval for tool call {tool_call_id} expired")
            return ApprovalDecision(approved=False, reason=EXPIRED_REASON)
        except asyncio.CancelledError:
            if entry.future.cancelled():
                return ApprovalDecision(approved=False, reason=CANCELLED_REASON)
            raise
        finally:
            self._pending.pop(tool_call_id, None)

    def resolve(
        self,
        tool_call_id: str,
        approved: bool,
        context: UserContext,
        conversation_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Record a decision.

        Returns:
            True if the decision was applied, False if one was already made

        Raises:
            NotFoundError: Unknown id, expired entry or a different scope
        """
        entry = self._pending.get(tool_call_id)
        if entry is None or entry.is_expired or not entry.in_scope(context, conversation_id):
            raise NotFoundError(f"No pending approval for tool call {tool_call_id}")

        if entry.future.done():
            return False

        entry.future.set_result(
            ApprovalDecision(
                approved=approved,
                reason=None if approved else (reason or REJECTED_REASON),
            )
        )
        logger.info(
            f"Tool call {tool_call_id} {'approved' if approved else 'rejected'} "
            f"by user {context.user_id}"
        )
        return True

    def cancel_conversation(self, conversation_id: UUID) -> int:
        """Cancel every pending approval of a conversation."""
        ids = [
            call_id for call_id, entry in self._pending.items()
            if entry.conversation_id == conversation_id
        ]
        for call_id in ids:
            entry = self._pending.pop(call_id)
            if not entry.future.done():
                entry.future.cancel()

        if ids:
            logger.info(f"Cancelled {len(ids)} pending approvals for conversation {conversation_id}")
        return len(ids)

    def purge_expired(self) -> int:
        """Drop expired entries, rejecting any that are still undecided."""
        expired = [
            call_id for call_id, entry in self._pending.items()
            if entry.is_expired
        ]
        for call_id in expired:
            entry = self._pending.pop(call_id)
            if not entry.future.done():
                entry.future.set_result(
                    ApprovalDecision(approved=False, reason=EXPIRED_REASON)
                )
        return len(expired)

    def list_pending(
        self, context: UserContext, conversation_id: Optional[UUID] = None
    ) -> list[PendingApproval]:
        return [
            entry for entry in self._pending.values()
            if not entry.is_expired and entry.in_scope(context, conversation_id)
        ]

    def __len__(self) -> int:
        return len(self._pending)
