"""
EditSession -- one user's editing session on one employee's period.

Ties debounced previews and immediate submissions to a session id that
is bound into the log context.  Closing the session does not cancel
submissions already sent; their results are still returned to whoever
awaits them, but ``on_result`` is no longer called.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from typing import Callable
from uuid import UUID

from payroll_kernel.domain.drafts import CreationDraft, NoveltyDraft
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_services.preview import PreviewResult, PreviewScheduler
from payroll_services.submission import (
    BatchSubmissionResult,
    NoveltySubmissionService,
    SubmissionResult,
)
from payroll_services.valuation import NoveltyValuator

logger = get_logger("services.session")


class EditSession:
    def __init__(
        self,
        submission: NoveltySubmissionService,
        valuator: NoveltyValuator,
        actor_id: UUID,
        preview_delay: float = 0.5,
        on_result: Callable[[SubmissionResult], None] | None = None,
        on_preview: Callable[[PreviewResult], None] | None = None,
        session_id: str | None = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.actor_id = actor_id
        self._submission = submission
        self._on_result = on_result
        self._closed = False
        self.previews = PreviewScheduler(valuator, preview_delay, on_preview)

    @property
    def closed(self) -> bool:
        return self._closed

    def preview(
        self,
        slot: str,
        draft: CreationDraft,
        salary: Decimal | None,
        effective_date: date,
    ) -> asyncio.Task[PreviewResult]:
        with LogContext.bind(session_id=self.session_id, actor_id=str(self.actor_id)):
            return self.previews.request(slot, draft, salary, effective_date)

    async def submit(self, draft: NoveltyDraft) -> SubmissionResult:
        with LogContext.bind(session_id=self.session_id):
            result = await self._submission.submit(draft, self.actor_id)
        self._deliver(result)
        return result

    async def submit_batch(self, drafts: list[NoveltyDraft]) -> BatchSubmissionResult:
        with LogContext.bind(session_id=self.session_id):
            batch = await self._submission.submit_batch(drafts, self.actor_id)
        for result in batch.results:
            self._deliver(result)
        return batch

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.previews.close()
        logger.info("edit_session_closed", extra={"session_id": self.session_id})

    def _deliver(self, result: SubmissionResult) -> None:
        if self._closed or self._on_result is None:
            return
        self._on_result(result)
