"""
Novelty drafts -- what a caller asks the kernel to do.

A draft is one of four shapes, picked by the registry from the novelty
type's measurement rule:

    HourlyNoveltyDraft  -- overtime and surcharges (hours > 0)
    DailyNoveltyDraft   -- vacation, disability, leave, absence (days >= 0)
    AmountNoveltyDraft  -- bonuses, loans, fines, withholding (value >= 0)
    DeletionDraft       -- remove an existing novelty

Each variant checks its own structure on construction, so an invalid
draft never reaches the calculation service or the database.
``build_draft`` is the usual way in: it validates the combination of
type, subtype and quantities against the registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Union
from uuid import UUID

from payroll_kernel.domain.novelty_types import (
    NoveltyType,
    NoveltyTypeRegistry,
    default_registry,
)
from payroll_kernel.exceptions import ValidationError


def _check_range(start: date | None, end: date | None, novelty_type: str) -> None:
    if start is not None and end is not None and start > end:
        raise ValidationError(
            f"start_date ({start}) cannot be after end_date ({end})",
            field="end_date",
            novelty_type=novelty_type,
        )


@dataclass(frozen=True, kw_only=True)
class HourlyNoveltyDraft:
    employee_id: UUID
    period_id: UUID
    novelty_type: NoveltyType
    hours: Decimal
    subtype: str | None = None
    effective_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    observation: str | None = None

    def __post_init__(self) -> None:
        if self.hours is None or self.hours <= 0:
            raise ValidationError(
                f"hours must be greater than zero, got {self.hours}",
                field="hours",
                novelty_type=self.novelty_type.value,
            )
        _check_range(self.start_date, self.end_date, self.novelty_type.value)


@dataclass(frozen=True, kw_only=True)
class DailyNoveltyDraft:
    employee_id: UUID
    period_id: UUID
    novelty_type: NoveltyType
    days: int
    subtype: str | None = None
    effective_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    observation: str | None = None

    def __post_init__(self) -> None:
        if self.days is None or self.days < 0:
            raise ValidationError(
                f"days must be zero or more, got {self.days}",
                field="days",
                novelty_type=self.novelty_type.value,
            )
        _check_range(self.start_date, self.end_date, self.novelty_type.value)


@dataclass(frozen=True, kw_only=True)
class AmountNoveltyDraft:
    """
    A novelty measured directly in currency.

    ``value`` is mandatory for manually entered types.  For computed types
    without a quantity (withholding, solidarity fund) it is an optional
    manual hint forwarded to the calculation service.
    """

    employee_id: UUID
    period_id: UUID
    novelty_type: NoveltyType
    value: Decimal | None = None
    subtype: str | None = None
    effective_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    observation: str | None = None

    def __post_init__(self) -> None:
        if self.value is not None and self.value < 0:
            raise ValidationError(
                f"value cannot be negative, got {self.value}",
                field="value",
                novelty_type=self.novelty_type.value,
            )
        _check_range(self.start_date, self.end_date, self.novelty_type.value)


@dataclass(frozen=True, kw_only=True)
class DeletionDraft:
    employee_id: UUID
    period_id: UUID
    novelty_id: UUID


NoveltyDraft = Union[
    HourlyNoveltyDraft, DailyNoveltyDraft, AmountNoveltyDraft, DeletionDraft
]
CreationDraft = Union[HourlyNoveltyDraft, DailyNoveltyDraft, AmountNoveltyDraft]


def _to_decimal(raw: Any, field: str, novelty_type: str) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError(
            f"{field} is not a number: {raw!r}", field=field, novelty_type=novelty_type
        ) from None


def build_draft(
    *,
    employee_id: UUID,
    period_id: UUID,
    novelty_type: NoveltyType | str,
    subtype: str | None = None,
    hours: Decimal | str | int | None = None,
    days: int | None = None,
    value: Decimal | str | int | None = None,
    effective_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    observation: str | None = None,
    registry: NoveltyTypeRegistry | None = None,
) -> CreationDraft:
    """
    Build the draft variant matching ``novelty_type``.

    Raises:
        UnknownTypeError: Unregistered type.
        InvalidSubtypeError: Subtype not permitted for the type.
        ValidationError: Missing or invalid quantity, or a manual type
            without a value.
    """
    registry = registry or default_registry()
    spec = registry.describe(novelty_type)
    tag = spec.novelty_type
    canonical_subtype = registry.normalize_subtype(tag, subtype)
    common = dict(
        employee_id=employee_id,
        period_id=period_id,
        novelty_type=tag,
        subtype=canonical_subtype,
        effective_date=effective_date,
        start_date=start_date,
        end_date=end_date,
        observation=observation,
    )

    if spec.requires_hours:
        parsed_hours = _to_decimal(hours, "hours", tag.value)
        if parsed_hours is None:
            raise ValidationError(
                f"{tag.value} requires hours", field="hours", novelty_type=tag.value
            )
        return HourlyNoveltyDraft(hours=parsed_hours, **common)

    if spec.requires_days:
        if days is None:
            raise ValidationError(
                f"{tag.value} requires days", field="days", novelty_type=tag.value
            )
        try:
            parsed_days = int(days)
        except (TypeError, ValueError):
            raise ValidationError(
                f"days is not an integer: {days!r}", field="days", novelty_type=tag.value
            ) from None
        return DailyNoveltyDraft(days=parsed_days, **common)

    parsed_value = _to_decimal(value, "value", tag.value)
    if spec.is_manual and parsed_value is None:
        raise ValidationError(
            f"{tag.value} requires a value", field="value", novelty_type=tag.value
        )
    return AmountNoveltyDraft(value=parsed_value, **common)


# ---------------------------------------------------------------------------
# Queue payloads
# ---------------------------------------------------------------------------


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def draft_to_payload(
    draft: CreationDraft,
    value: Decimal | None,
    calculation_trace: str | None = None,
    recompute: bool = False,
) -> dict[str, Any]:
    """
    JSON-safe snapshot of a creation draft for the pending queue.

    ``value`` is the amount computed at submission time; manual drafts
    fall back to their own ``value``.  With
    ``recompute=True`` the drain values the draft again with the rules
    and salary in force when the queue is applied.
    """
    return {
        "novelty_type": draft.novelty_type.value,
        "subtype": draft.subtype,
        "hours": _str(getattr(draft, "hours", None)),
        "days": getattr(draft, "days", None),
        "value": _str(value if value is not None else getattr(draft, "value", None)),
        "effective_date": _iso(draft.effective_date),
        "start_date": _iso(draft.start_date),
        "end_date": _iso(draft.end_date),
        "observation": draft.observation,
        "calculation_trace": calculation_trace,
        "recompute": recompute,
    }


def draft_from_payload(
    payload: dict[str, Any],
    employee_id: UUID,
    period_id: UUID,
    registry: NoveltyTypeRegistry | None = None,
) -> CreationDraft:
    """Rebuild the creation draft stored by ``draft_to_payload``."""

    def _date(raw: str | None) -> date | None:
        return date.fromisoformat(raw) if raw else None

    return build_draft(
        employee_id=employee_id,
        period_id=period_id,
        novelty_type=payload["novelty_type"],
        subtype=payload.get("subtype"),
        hours=payload.get("hours"),
        days=payload.get("days"),
        value=payload.get("value"),
        effective_date=_date(payload.get("effective_date")),
        start_date=_date(payload.get("start_date")),
        end_date=_date(payload.get("end_date")),
        observation=payload.get("observation"),
        registry=registry,
    )
