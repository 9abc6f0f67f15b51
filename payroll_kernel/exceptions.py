"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll corrections must be handled precisely. A caller that parses the
message of a generic ValueError to decide whether a period is closed, or
whether the calculation service is down, breaks the day someone rewords
the message.

Every error in this package therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (novelty type, subtype, employee, period)

Example - WRONG way:
    try:
        service.submit(draft)
    except Exception as e:
        if "unavailable" in str(e):
            ...

Example - RIGHT way:
    try:
        service.submit(draft)
    except CalculationUnavailableError as e:
        api_response(code=e.code, novelty_type=e.novelty_type)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PayrollNoveltyError:

    PayrollNoveltyError (base)
    |
    +-- ValidationError
    |   +-- InvalidSalaryError
    |   +-- InvalidSubtypeError
    |
    +-- UnknownTypeError
    |
    +-- RuleError
    |   +-- NoApplicableRuleError
    |   +-- RuleTableIntegrityError
    |
    +-- CalculationUnavailableError
    +-- CalculationServiceError
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- InvalidPeriodTransitionError
    |   +-- LiquidationIncompleteError
    |   +-- PermissionDeniedError
    |   +-- DirectMutationAllowedError
    |   +-- PeriodClosedError
    |
    +-- AdjustmentError
    |   +-- PendingAdjustmentNotFoundError
    |   +-- PendingDrainIncompleteError
    |
    +-- NoveltyNotFoundError

===============================================================================
ERROR CODES
===============================================================================

    Category    | Code                           | Meaning
    ------------|--------------------------------|---------------------------------
    Validation  | VALIDATION_ERROR               | Draft rejected before any call
                | INVALID_SALARY                 | Base salary is zero or negative
                | INVALID_SUBTYPE                | Subtype not permitted for type
    Registry    | UNKNOWN_NOVELTY_TYPE           | Type tag is not registered
    Rules       | NO_APPLICABLE_RULE             | No interval covers the date
                | RULE_TABLE_INTEGRITY           | Gap, overlap or bounded tail
    Service     | CALCULATION_UNAVAILABLE        | Remote failure, no fallback
                | CALCULATION_SERVICE_ERROR      | Timeout, transport or bad reply
    Period      | PERIOD_NOT_FOUND               | Period id does not exist
                | INVALID_PERIOD_TRANSITION      | Transition not in the graph
                | LIQUIDATION_INCOMPLETE         | Close with missing liquidations
                | PERMISSION_DENIED              | Actor lacks reopen authority
                | DIRECT_MUTATION_ALLOWED        | Enqueue against an open period
                | PERIOD_CLOSED                  | Direct mutation of a closed period
    Adjustment  | PENDING_ADJUSTMENT_NOT_FOUND   | Adjustment id does not exist
                | PENDING_DRAIN_INCOMPLETE       | Some entries failed to apply
    Novelty     | NOVELTY_NOT_FOUND              | Novelty id does not exist

===============================================================================
HANDLING PATTERNS
===============================================================================

1. A REDIRECT TO THE PENDING QUEUE IS NOT AN ERROR:

    result = await submission.submit(draft)
    if result.is_pending:
        show_pending_badge(result.adjustment_id)

2. CONFIGURATION DEFECTS ARE FATAL:

    NoApplicableRuleError and RuleTableIntegrityError mean the rule tables
    are wrong. They are never retried and never fall back.

3. A FAILED DRAIN KEEPS THE PERIOD REOPENED:

    except PendingDrainIncompleteError as e:
        for adjustment_id in e.failed_adjustment_ids:
            ...
"""

from datetime import date
from decimal import Decimal


class PayrollNoveltyError(Exception):
    """
    Base exception for all payroll novelty errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_NOVELTY_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(PayrollNoveltyError):
    """A draft or calculation input is structurally invalid."""

    code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        novelty_type: str | None = None,
    ):
        self.field = field
        self.novelty_type = novelty_type
        super().__init__(message)


class InvalidSalaryError(ValidationError):
    """Base salary must be strictly positive."""

    code: str = "INVALID_SALARY"

    def __init__(self, salary: Decimal, employee_id: str | None = None):
        self.salary = salary
        self.employee_id = employee_id
        super().__init__(
            f"Base salary must be greater than zero, got {salary}",
            field="base_salary",
        )


class InvalidSubtypeError(ValidationError):
    """Subtype is not in the permitted list of its novelty type."""

    code: str = "INVALID_SUBTYPE"

    def __init__(self, novelty_type: str, subtype: str, permitted: tuple[str, ...]):
        self.subtype = subtype
        self.permitted = list(permitted)
        super().__init__(
            f"Subtype {subtype!r} is not permitted for {novelty_type} "
            f"(expected one of {', '.join(permitted) or 'none'})",
            field="subtype",
            novelty_type=novelty_type,
        )


class UnknownTypeError(PayrollNoveltyError):
    """Novelty type tag is not registered."""

    code: str = "UNKNOWN_NOVELTY_TYPE"

    def __init__(self, novelty_type: str):
        self.novelty_type = novelty_type
        super().__init__(f"Unknown novelty type: {novelty_type}")


# =============================================================================
# Rule tables
# =============================================================================


class RuleError(PayrollNoveltyError):
    """Base for temporal rule table errors."""

    code: str = "RULE_ERROR"


class NoApplicableRuleError(RuleError):
    """No rule interval covers the effective date."""

    code: str = "NO_APPLICABLE_RULE"

    def __init__(self, rule_key: str, effective_date: date):
        self.rule_key = rule_key
        self.effective_date = str(effective_date)
        super().__init__(
            f"No rule interval for {rule_key} covers {effective_date}"
        )


class RuleTableIntegrityError(RuleError):
    """Rule table has a gap, an overlap, or a bounded last interval."""

    code: str = "RULE_TABLE_INTEGRITY"

    def __init__(self, rule_key: str, reason: str):
        self.rule_key = rule_key
        self.reason = reason
        super().__init__(f"Rule table {rule_key} is invalid: {reason}")


# =============================================================================
# Calculation service
# =============================================================================


class CalculationUnavailableError(PayrollNoveltyError):
    """The calculation service failed and the type has no local fallback."""

    code: str = "CALCULATION_UNAVAILABLE"

    def __init__(
        self,
        novelty_type: str,
        subtype: str | None,
        employee_id: str | None,
        reason: str,
    ):
        self.novelty_type = novelty_type
        self.subtype = subtype
        self.employee_id = employee_id
        self.reason = reason
        super().__init__(
            f"Calculation unavailable for {novelty_type}"
            f"{'/' + subtype if subtype else ''}: {reason}"
        )


class CalculationServiceError(PayrollNoveltyError):
    """The remote calculation call failed: timeout, transport or bad reply."""

    code: str = "CALCULATION_SERVICE_ERROR"

    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Calculation service error: {reason}")


# =============================================================================
# Period lifecycle
# =============================================================================


class PeriodError(PayrollNoveltyError):
    """Base for payroll period errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """Payroll period does not exist."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Payroll period not found: {period_id}")


class InvalidPeriodTransitionError(PeriodError):
    """Requested transition is not part of the period lifecycle."""

    code: str = "INVALID_PERIOD_TRANSITION"

    def __init__(self, period_id: str, from_status: str, to_status: str):
        self.period_id = period_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Period {period_id} cannot move from {from_status} to {to_status}"
        )


class LiquidationIncompleteError(PeriodError):
    """Close requested while some enrolled employees lack a liquidation."""

    code: str = "LIQUIDATION_INCOMPLETE"

    def __init__(self, period_id: str, missing_employee_ids: list[str]):
        self.period_id = period_id
        self.missing_employee_ids = missing_employee_ids
        super().__init__(
            f"Period {period_id} has {len(missing_employee_ids)} "
            f"employee(s) without a computed liquidation"
        )


class PermissionDeniedError(PeriodError):
    """Actor lacks the role required for the operation."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, required_role: str, actual_role: str):
        self.actor_id = actor_id
        self.required_role = required_role
        self.actual_role = actual_role
        super().__init__(
            f"Actor {actor_id} has role {actual_role}, {required_role} required"
        )


class DirectMutationAllowedError(PeriodError):
    """Enqueue attempted while the period accepts direct mutations."""

    code: str = "DIRECT_MUTATION_ALLOWED"

    def __init__(self, period_id: str, status: str):
        self.period_id = period_id
        self.status = status
        super().__init__(
            f"Period {period_id} is {status}; mutate directly instead of queueing"
        )


class PeriodClosedError(PeriodError):
    """Direct create/delete attempted while the period is closed."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_id: str, status: str):
        self.period_id = period_id
        self.status = status
        super().__init__(
            f"Period {period_id} is {status}; queue a pending adjustment instead"
        )


# =============================================================================
# Pending adjustments
# =============================================================================


class AdjustmentError(PayrollNoveltyError):
    """Base for pending adjustment errors."""

    code: str = "ADJUSTMENT_ERROR"


class PendingAdjustmentNotFoundError(AdjustmentError):
    """Pending adjustment does not exist or is no longer pending."""

    code: str = "PENDING_ADJUSTMENT_NOT_FOUND"

    def __init__(self, adjustment_id: str):
        self.adjustment_id = adjustment_id
        super().__init__(f"Pending adjustment not found: {adjustment_id}")


class PendingDrainIncompleteError(AdjustmentError):
    """Some queued entries could not be applied; the period stays reopened."""

    code: str = "PENDING_DRAIN_INCOMPLETE"

    def __init__(self, period_id: str, failed_adjustment_ids: list[str]):
        self.period_id = period_id
        self.failed_adjustment_ids = failed_adjustment_ids
        super().__init__(
            f"Period {period_id}: {len(failed_adjustment_ids)} pending "
            f"adjustment(s) could not be applied"
        )


# =============================================================================
# Novelties
# =============================================================================


class NoveltyNotFoundError(PayrollNoveltyError):
    """Novelty record does not exist."""

    code: str = "NOVELTY_NOT_FOUND"

    def __init__(self, novelty_id: str):
        self.novelty_id = novelty_id
        super().__init__(f"Novelty not found: {novelty_id}")
