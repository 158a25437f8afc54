"""
Feedback Store.

Likes and dislikes on assistant answers, kept for quality analysis and
to build fine-tuning datasets from well-rated answers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..domain.entities import FeedbackRecord, FeedbackStats, FeedbackType
from ..domain.ports import IFeedbackStore
from .pg import IAsyncDBPool, tenant_transaction

logger = logging.getLogger(__name__)

DEFAULT_MODEL_USED = "gpt-5-mini"


class FeedbackStore(IFeedbackStore):
    """PostgreSQL feedback store (``rag_feedback`` table).

    Usage:
        store = FeedbackStore(db_pool)
        await store.save(FeedbackRecord(
            message_id="msg-1",
            question="Como emitir boletim?",
            answer="Acesse Acadêmico > Boletins...",
            feedback_type=FeedbackType.LIKE,
            tenant_id="tenant-123",
        ))
        stats = await store.get_stats("tenant-123")
    """

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    async def save(self, record: FeedbackRecord) -> FeedbackRecord:
        async with tenant_transaction(self.db, record.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO rag_feedback (
                    id, tenant_id, user_id, message_id, question, answer,
                    feedback_type, feedback_comment, context_used, sources,
                    conversation_history, model_used
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                RETURNING created_at
                """,
                record.id,
                record.tenant_id,
                record.user_id,
                record.message_id,
                record.question,
                record.answer,
                record.feedback_type.value,
                record.comment,
                record.context_used,
                record.sources or None,
                record.conversation_history or None,
                record.model_used or DEFAULT_MODEL_USED,
            )
            record.created_at = row["created_at"]

        logger.info(
            f"Feedback saved: {record.feedback_type.value} for message {record.message_id}"
        )
        return record

    async def get_stats(self, tenant_id: str, recent_limit: int = 10) -> FeedbackStats:
        """Like/dislike totals and the latest commented feedback."""
        async with tenant_transaction(self.db, tenant_id) as conn:
            counts = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) FILTER (WHERE feedback_type = 'like') AS likes,
                    COUNT(*) FILTER (WHERE feedback_type = 'dislike') AS dislikes
                FROM rag_feedback
                WHERE tenant_id = $1
                """,
                tenant_id,
            )
            rows = await conn.fetch(
                """
                SELECT id, user_id, message_id, question, answer, feedback_type,
                       feedback_comment, model_used, created_at
                FROM rag_feedback
                WHERE tenant_id = $1 AND feedback_comment IS NOT NULL
                ORDER BY created_at DESC
                LIMIT $2
                """,
                tenant_id,
                recent_limit,
            )

        recent = [
            FeedbackRecord(
                id=row["id"],
                tenant_id=tenant_id,
                user_id=row["user_id"],
                message_id=row["message_id"],
                question=row["question"],
                answer=row["answer"],
                feedback_type=FeedbackType(row["feedback_type"]),
                comment=row["feedback_comment"],
                model_used=row["model_used"],
                created_at=row["created_at"],
            )
            for row in rows
        ]
        return FeedbackStats(
            likes=counts["likes"] or 0,
            dislikes=counts["dislikes"] or 0,
            recent=recent,
        )

    async def export_for_fine_tuning(
        self, tenant_id: str, limit: int = 1000
    ) -> list[dict[str, Any]]:
        """Liked question/answer pairs, newest first."""
        async with tenant_transaction(self.db, tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT question, answer, context_used
                FROM rag_feedback
                WHERE tenant_id = $1 AND feedback_type = 'like'
                ORDER BY created_at DESC
                LIMIT $2
                """,
                tenant_id,
                limit,
            )
        return [
            {
                "question": row["question"],
                "answer": row["answer"],
                "context": row["context_used"],
            }
            for row in rows
        ]


class InMemoryFeedbackStore(IFeedbackStore):
    """Process-local feedback store for development and tests."""

    def __init__(self):
        self._records: list[FeedbackRecord] = []
        self._lock = asyncio.Lock()

    async def save(self, record: FeedbackRecord) -> FeedbackRecord:
        async with self._lock:
            if not record.model_used:
                record.model_used = DEFAULT_MODEL_USED
            self._records.append(record)
        logger.info(
            f"Feedback saved: {record.feedback_type.value} for message {record.message_id}"
        )
        return record

    def _newest_first(self, tenant_id: str) -> list[FeedbackRecord]:
        records = [r for r in self._records if r.tenant_id == tenant_id]
        # Ties keep the most recently inserted first
        return sorted(
            reversed(records), key=lambda r: r.created_at, reverse=True
        )

    async def get_stats(self, tenant_id: str, recent_limit: int = 10) -> FeedbackStats:
        async with self._lock:
            records = self._newest_first(tenant_id)
        return FeedbackStats(
            likes=sum(1 for r in records if r.feedback_type == FeedbackType.LIKE),
            dislikes=sum(1 for r in records if r.feedback_type == FeedbackType.DISLIKE),
            recent=[r for r in records if r.comment][:recent_limit],
        )

    async def export_for_fine_tuning(
        self, tenant_id: str, limit: int = 1000
    ) -> list[dict[str, Any]]:
        async with self._lock:
            records = self._newest_first(tenant_id)
        return [
            {"question": r.question, "answer": r.answer, "context": r.context_used}
            for r in records
            if r.feedback_type == FeedbackType.LIKE
        ][:limit]
