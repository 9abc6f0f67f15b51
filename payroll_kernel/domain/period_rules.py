"""
Payroll period lifecycle rules.

Pure transition table and guards used by ``PeriodService``.  Kept free of
I/O so that the submission gate and the reconciler can ask "may this
period be mutated directly?" without a session.

    borrador --close--> cerrado --reopen--> reabierto --close--> cerrado

There is no edge back to borrador and no shortcut from borrador to
reabierto.
"""

from enum import Enum
from typing import Protocol
from uuid import UUID

from payroll_kernel.domain.dtos import PayrollPeriodInfo, PeriodStatus


class PeriodAction(str, Enum):
    CLOSE = "close"
    REOPEN = "reopen"


_TRANSITIONS: dict[tuple[PeriodStatus, PeriodAction], PeriodStatus] = {
    (PeriodStatus.BORRADOR, PeriodAction.CLOSE): PeriodStatus.CERRADO,
    (PeriodStatus.CERRADO, PeriodAction.REOPEN): PeriodStatus.REABIERTO,
    (PeriodStatus.REABIERTO, PeriodAction.CLOSE): PeriodStatus.CERRADO,
}


def next_status(current: PeriodStatus, action: PeriodAction) -> PeriodStatus | None:
    """Target status of ``action`` from ``current``, or None if not allowed."""
    return _TRANSITIONS.get((current, action))


def can_mutate_directly(period: PayrollPeriodInfo | PeriodStatus) -> bool:
    """True while novelties may be created or deleted without queueing."""
    status = period.status if isinstance(period, PayrollPeriodInfo) else period
    return status in (PeriodStatus.BORRADOR, PeriodStatus.REABIERTO)


class PeriodRole(str, Enum):
    """Roles for period lifecycle operations."""

    VIEWER = "viewer"
    LIQUIDATOR = "liquidator"
    ADMINISTRATOR = "administrator"

    def has_authority(self, required: "PeriodRole") -> bool:
        """Check if this role has at least the authority of the required role."""
        hierarchy = {
            PeriodRole.VIEWER: 0,
            PeriodRole.LIQUIDATOR: 1,
            PeriodRole.ADMINISTRATOR: 2,
        }
        return hierarchy[self] >= hierarchy[required]


REOPEN_ROLE = PeriodRole.ADMINISTRATOR


class PeriodRoleResolver(Protocol):
    """Resolves the lifecycle role of an actor."""

    def resolve(self, actor_id: UUID) -> PeriodRole: ...


class StaticRoleResolver:
    """Role lookup from a fixed mapping; unknown actors get ``default``."""

    def __init__(
        self,
        roles: dict[UUID, PeriodRole] | None = None,
        default: PeriodRole = PeriodRole.LIQUIDATOR,
    ):
        self._roles = dict(roles or {})
        self._default = default

    def resolve(self, actor_id: UUID) -> PeriodRole:
        return self._roles.get(actor_id, self._default)
