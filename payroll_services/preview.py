"""
Debounced value previews for drafts being edited.

While the user is still typing, each change to a draft would otherwise
fire a calculation.  ``PreviewScheduler`` keeps at most one task per
input slot: a newer input for the same slot cancels the stale task
before it reaches the calculation service, and an identical input
reuses the task already in flight.  Submission never goes through here.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable

from payroll_engines.tracer import compute_input_fingerprint
from payroll_kernel.domain.drafts import CreationDraft
from payroll_kernel.exceptions import PayrollNoveltyError
from payroll_kernel.logging_config import get_logger
from payroll_services.valuation import NoveltyValuator

logger = get_logger("services.preview")

_FINGERPRINT_FIELDS = (
    "novelty_type",
    "subtype",
    "hours",
    "days",
    "value",
    "salary",
    "effective_date",
)


@dataclass(frozen=True)
class PreviewResult:
    slot: str
    input_hash: str
    value: Decimal | None = None
    calculation_trace: str | None = None
    is_local_fallback: bool = False
    error_code: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


def input_hash(draft: CreationDraft, salary: Decimal | None, effective_date: date) -> str:
    """Fingerprint of everything that changes the previewed value."""
    return compute_input_fingerprint(
        _FINGERPRINT_FIELDS,
        {
            "novelty_type": draft.novelty_type,
            "subtype": draft.subtype,
            "hours": getattr(draft, "hours", None),
            "days": getattr(draft, "days", None),
            "value": getattr(draft, "value", None),
            "salary": salary,
            "effective_date": effective_date,
        },
    )


class PreviewScheduler:
    """
    One cancellable preview task per slot.

    ``on_preview`` is called with each completed preview while the
    scheduler is open.  After ``close()`` completions are dropped, but
    a calculation already sent to the service is left to finish.
    """

    def __init__(
        self,
        valuator: NoveltyValuator,
        delay: float = 0.5,
        on_preview: Callable[[PreviewResult], None] | None = None,
    ):
        self._valuator = valuator
        self._delay = delay
        self._on_preview = on_preview
        self._tasks: dict[str, tuple[str, asyncio.Task[PreviewResult]]] = {}
        self._issued: set[asyncio.Task[PreviewResult]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending_slots(self) -> list[str]:
        return [slot for slot, (_, task) in self._tasks.items() if not task.done()]

    def request(
        self,
        slot: str,
        draft: CreationDraft,
        salary: Decimal | None,
        effective_date: date,
    ) -> asyncio.Task[PreviewResult]:
        """
        Schedule a preview for ``slot`` after the debounce delay.

        Must be called from a running event loop.
        """
        digest = input_hash(draft, salary, effective_date)
        current = self._tasks.get(slot)
        if current is not None:
            current_hash, task = current
            if current_hash == digest and not task.done():
                return task
            if not task.done():
                task.cancel()
                logger.debug("preview_superseded", extra={"slot": slot})

        task = asyncio.get_running_loop().create_task(
            self._run(slot, digest, draft, salary, effective_date)
        )
        self._tasks[slot] = (digest, task)
        return task

    def cancel(self, slot: str) -> bool:
        current = self._tasks.pop(slot, None)
        if current is None or current[1].done():
            return False
        current[1].cancel()
        return True

    def close(self) -> None:
        """Stop delivering previews.  Tasks still waiting out the delay are cancelled."""
        self._closed = True
        for _, task in self._tasks.values():
            if not task.done() and task not in self._issued:
                task.cancel()
        self._tasks.clear()

    async def _run(
        self,
        slot: str,
        digest: str,
        draft: CreationDraft,
        salary: Decimal | None,
        effective_date: date,
    ) -> PreviewResult:
        await asyncio.sleep(self._delay)
        task = asyncio.current_task()
        if task is not None:
            self._issued.add(task)
            task.add_done_callback(self._issued.discard)
        try:
            valued = await self._valuator.value(draft, salary, effective_date)
            result = PreviewResult(
                slot=slot,
                input_hash=digest,
                value=valued.value,
                calculation_trace=valued.calculation_trace,
                is_local_fallback=valued.is_local_fallback,
            )
        except PayrollNoveltyError as exc:
            result = PreviewResult(
                slot=slot,
                input_hash=digest,
                error_code=exc.code,
                error_message=str(exc),
            )

        if not self._closed and self._on_preview is not None:
            self._on_preview(result)
        return result
