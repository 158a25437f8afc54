"""
Tests for the approval manager.

Covers registration, scoping, expiry and cancellation of pending tool
call approvals.
"""

import asyncio
import uuid

import pytest

from educaia.agent.domain.entities import ToolCall, UserContext
from educaia.agent.domain.errors import ApprovalError, NotFoundError
from educaia.agent.orchestrator import ApprovalManager
from educaia.agent.orchestrator.approval_manager import (
    CANCELLED_REASON,
    EXPIRED_REASON,
    REJECTED_REASON,
)


@pytest.fixture
def conversation_id():
    return uuid.uuid4()


def make_call(call_id="call_1"):
    return ToolCall(id=call_id, name="sensitive", arguments={"x": 1})


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_tracks_entry(self, user_context, conversation_id):
        approvals = ApprovalManager(timeout_seconds=60)

        entry = approvals.register(make_call(), user_context, conversation_id)

        assert len(approvals) == 1
        assert entry.to_dict()["toolCallId"] == "call_1"
        assert entry.to_dict()["conversationId"] == str(conversation_id)
        assert approvals.list_pending(user_context) == [entry]

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)

        with pytest.raises(ApprovalError):
            approvals.register(make_call(), user_context, conversation_id)

    @pytest.mark.asyncio
    async def test_wait_unknown(self):
        with pytest.raises(ApprovalError):
            await ApprovalManager().wait("ghost")


class TestResolve:
    """Tests for decisions arriving from the approvals endpoint."""

    @pytest.mark.asyncio
    async def test_approve(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)
        waiter = asyncio.create_task(approvals.wait("call_1"))
        await asyncio.sleep(0)

        assert approvals.resolve("call_1", True, user_context) is True

        decision = await waiter
        assert decision.approved is True
        assert decision.reason is None
        assert len(approvals) == 0

    @pytest.mark.asyncio
    async def test_reject_with_default_reason(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)
        waiter = asyncio.create_task(approvals.wait("call_1"))

        approvals.resolve("call_1", False, user_context)

        decision = await waiter
        assert decision.approved is False
        assert decision.reason == REJECTED_REASON

    @pytest.mark.asyncio
    async def test_reject_with_reason(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)
        waiter = asyncio.create_task(approvals.wait("call_1"))

        approvals.resolve("call_1", False, user_context, reason="Não agora")

        assert (await waiter).reason == "Não agora"

    @pytest.mark.asyncio
    async def test_second_decision_is_reported(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)

        assert approvals.resolve("call_1", True, user_context) is True
        assert approvals.resolve("call_1", False, user_context) is False

    @pytest.mark.asyncio
    async def test_unknown_call(self, user_context):
        with pytest.raises(NotFoundError):
            ApprovalManager().resolve("ghost", True, user_context)

    @pytest.mark.asyncio
    async def test_other_user_cannot_resolve(
        self, user_context, other_user_context, conversation_id
    ):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)

        with pytest.raises(NotFoundError):
            approvals.resolve("call_1", True, other_user_context)
        assert approvals.list_pending(other_user_context) == []

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_resolve(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)
        intruder = UserContext(tenant_id="tenant-2", user_id=user_context.user_id)

        with pytest.raises(NotFoundError):
            approvals.resolve("call_1", True, intruder)

    @pytest.mark.asyncio
    async def test_conversation_must_match_when_given(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)

        with pytest.raises(NotFoundError):
            approvals.resolve("call_1", True, user_context, conversation_id=uuid.uuid4())
        assert approvals.resolve(
            "call_1", True, user_context, conversation_id=conversation_id
        ) is True


class TestExpiry:

    @pytest.mark.asyncio
    async def test_wait_times_out_as_rejection(self, user_context, conversation_id):
        approvals = ApprovalManager(timeout_seconds=0.05)
        approvals.register(make_call(), user_context, conversation_id)

        decision = await approvals.wait("call_1")

        assert decision.approved is False
        assert decision.reason == EXPIRED_REASON
        assert len(approvals) == 0

    @pytest.mark.asyncio
    async def test_expired_entry_cannot_be_resolved(self, user_context, conversation_id):
        approvals = ApprovalManager(timeout_seconds=0)
        approvals.register(make_call(), user_context, conversation_id)

        with pytest.raises(NotFoundError):
            approvals.resolve("call_1", True, user_context)

    @pytest.mark.asyncio
    async def test_purge_expired(self, user_context, conversation_id):
        approvals = ApprovalManager(timeout_seconds=0)
        entry = approvals.register(make_call(), user_context, conversation_id)

        assert approvals.purge_expired() == 1
        assert len(approvals) == 0
        assert entry.future.result().reason == EXPIRED_REASON


class TestCancelConversation:

    @pytest.mark.asyncio
    async def test_cancel_releases_waiter(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call("call_1"), user_context, conversation_id)
        approvals.register(make_call("call_2"), user_context, uuid.uuid4())
        waiter = asyncio.create_task(approvals.wait("call_1"))
        await asyncio.sleep(0)

        assert approvals.cancel_conversation(conversation_id) == 1

        decision = await waiter
        assert decision.approved is False
        assert decision.reason == CANCELLED_REASON
        assert [e.tool_call.id for e in approvals.list_pending(user_context)] == ["call_2"]

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, conversation_id):
        approvals = ApprovalManager()

        assert approvals.cancel_conversation(conversation_id) == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_removes_entry(self, user_context, conversation_id):
        approvals = ApprovalManager()
        approvals.register(make_call(), user_context, conversation_id)
        waiter = asyncio.create_task(approvals.wait("call_1"))
        await asyncio.sleep(0)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert len(approvals) == 0
