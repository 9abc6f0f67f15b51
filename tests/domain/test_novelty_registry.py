"""
Tests for the novelty type registry and draft construction.

Covers:
- Catalogue lookup by enum and by string tag
- Category and measurement flags
- Subtype normalization (disability aliases)
- build_draft variant selection and structural validation
- Queue payload snapshots
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.domain.drafts import (
    AmountNoveltyDraft,
    DailyNoveltyDraft,
    DeletionDraft,
    HourlyNoveltyDraft,
    build_draft,
    draft_from_payload,
    draft_to_payload,
)
from payroll_kernel.domain.novelty_types import (
    FallbackPolicy,
    NoveltyCategory,
    NoveltyType,
    NoveltyTypeRegistry,
    default_registry,
)
from payroll_kernel.exceptions import (
    InvalidSubtypeError,
    UnknownTypeError,
    ValidationError,
)


class TestDescribe:
    """Static descriptions of registered types."""

    def setup_method(self):
        self.registry = default_registry()

    def test_describe_by_enum_and_by_tag(self):
        assert self.registry.describe(NoveltyType.HORAS_EXTRA) is self.registry.describe(
            "horas_extra"
        )

    def test_overtime_is_hourly_and_computed(self):
        spec = self.registry.describe("horas_extra")
        assert spec.requires_hours
        assert not spec.requires_days
        assert spec.is_auto_calculated
        assert spec.category == NoveltyCategory.DEVENGO
        assert "festivas_nocturnas" in spec.subtypes

    def test_disability_is_daily_without_fallback(self):
        spec = self.registry.describe("incapacidad")
        assert spec.requires_days
        assert spec.fallback == FallbackPolicy.NONE

    def test_surcharges_fall_back_locally(self):
        for tag in ("recargo_nocturno", "recargo_dominical", "horas_extra", "vacaciones"):
            assert self.registry.describe(tag).fallback == FallbackPolicy.LOCAL

    def test_loan_is_manual_deduction(self):
        spec = self.registry.describe("libranza")
        assert spec.is_manual
        assert spec.is_deduction

    def test_withholding_is_computed_without_quantity(self):
        spec = self.registry.describe("retencion_fuente")
        assert spec.is_auto_calculated
        assert not spec.requires_days and not spec.requires_hours
        assert spec.subtypes == ()

    def test_unknown_tag_raises(self):
        with pytest.raises(UnknownTypeError) as exc_info:
            self.registry.describe("propina")
        assert exc_info.value.code == "UNKNOWN_NOVELTY_TYPE"
        assert exc_info.value.novelty_type == "propina"

    def test_is_registered(self):
        assert self.registry.is_registered("multa")
        assert not self.registry.is_registered("propina")

    def test_custom_catalogue_hides_unlisted_types(self):
        spec = self.registry.describe("multa")
        registry = NoveltyTypeRegistry((spec,))
        assert registry.all() == (spec,)
        with pytest.raises(UnknownTypeError):
            registry.describe("horas_extra")


class TestCategories:
    def setup_method(self):
        self.registry = default_registry()

    def test_every_type_has_one_category(self):
        earnings = {s.novelty_type for s in self.registry.types_in(NoveltyCategory.DEVENGO)}
        deductions = {
            s.novelty_type for s in self.registry.types_in(NoveltyCategory.DEDUCCION)
        }
        assert earnings.isdisjoint(deductions)
        assert earnings | deductions == set(NoveltyType)
        assert len(self.registry.all()) == len(NoveltyType)

    def test_unpaid_leave_and_absence_are_deductions(self):
        deductions = {
            s.novelty_type for s in self.registry.types_in(NoveltyCategory.DEDUCCION)
        }
        assert NoveltyType.LICENCIA_NO_REMUNERADA in deductions
        assert NoveltyType.AUSENCIA in deductions


class TestNormalizeSubtype:
    def setup_method(self):
        self.registry = default_registry()

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("general", "general"),
            ("GENERAL", "general"),
            ("comun", "general"),
            ("común", "general"),
            ("eg", "general"),
            ("enfermedad_general", "general"),
            ("ARL", "laboral"),
            ("at", "laboral"),
            ("accidente_laboral", "laboral"),
            (" maternidad ", "maternidad"),
        ],
    )
    def test_disability_aliases(self, raw, expected):
        assert self.registry.normalize_subtype("incapacidad", raw) == expected

    def test_blank_subtype_is_none(self):
        assert self.registry.normalize_subtype("horas_extra", "  ") is None
        assert self.registry.normalize_subtype("horas_extra", None) is None

    def test_aliases_only_apply_to_disability(self):
        with pytest.raises(InvalidSubtypeError):
            self.registry.normalize_subtype("horas_extra", "eg")

    def test_invalid_subtype_lists_permitted(self):
        with pytest.raises(InvalidSubtypeError) as exc_info:
            self.registry.normalize_subtype("recargo_dominical", "nocturno")
        assert exc_info.value.permitted == ["dominical", "festivo"]
        assert exc_info.value.field == "subtype"

    def test_type_without_subtypes_rejects_any(self):
        with pytest.raises(InvalidSubtypeError):
            self.registry.normalize_subtype("retencion_fuente", "mensual")

    def test_is_valid_subtype(self):
        assert self.registry.is_valid_subtype("incapacidad", "EG")
        assert self.registry.is_valid_subtype("retencion_fuente", None)
        assert not self.registry.is_valid_subtype("recargo_dominical", "nocturno")


class TestBuildDraft:
    def setup_method(self):
        self.employee_id = uuid4()
        self.period_id = uuid4()

    def _build(self, **kwargs):
        return build_draft(employee_id=self.employee_id, period_id=self.period_id, **kwargs)

    def test_hourly_variant(self):
        draft = self._build(novelty_type="horas_extra", subtype="diurnas", hours="2.5")
        assert isinstance(draft, HourlyNoveltyDraft)
        assert draft.hours == Decimal("2.5")
        assert draft.novelty_type == NoveltyType.HORAS_EXTRA

    def test_daily_variant_normalizes_subtype(self):
        draft = self._build(novelty_type="incapacidad", subtype="arl", days=4)
        assert isinstance(draft, DailyNoveltyDraft)
        assert draft.subtype == "laboral"
        assert draft.days == 4

    def test_amount_variant(self):
        draft = self._build(novelty_type="bonificacion", subtype="ventas", value=150000)
        assert isinstance(draft, AmountNoveltyDraft)
        assert draft.value == Decimal("150000")

    def test_computed_amount_type_accepts_missing_value(self):
        draft = self._build(novelty_type="retencion_fuente")
        assert isinstance(draft, AmountNoveltyDraft)
        assert draft.value is None

    def test_hourly_requires_hours(self):
        with pytest.raises(ValidationError) as exc_info:
            self._build(novelty_type="recargo_nocturno")
        assert exc_info.value.field == "hours"

    def test_hours_must_be_positive(self):
        with pytest.raises(ValidationError):
            self._build(novelty_type="recargo_nocturno", hours=0)

    def test_hours_must_be_numeric(self):
        with pytest.raises(ValidationError) as exc_info:
            self._build(novelty_type="recargo_nocturno", hours="dos")
        assert exc_info.value.field == "hours"

    def test_daily_requires_days(self):
        with pytest.raises(ValidationError) as exc_info:
            self._build(novelty_type="vacaciones")
        assert exc_info.value.field == "days"

    def test_zero_days_is_valid(self):
        draft = self._build(novelty_type="vacaciones", days=0)
        assert draft.days == 0

    def test_negative_days_rejected(self):
        with pytest.raises(ValidationError):
            self._build(novelty_type="vacaciones", days=-1)

    def test_manual_type_requires_value(self):
        with pytest.raises(ValidationError) as exc_info:
            self._build(novelty_type="multa")
        assert exc_info.value.field == "value"

    def test_negative_value_rejected(self):
        with pytest.raises(ValidationError):
            self._build(novelty_type="multa", value="-5")

    def test_inverted_date_range_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._build(
                novelty_type="vacaciones",
                days=3,
                start_date=date(2025, 8, 10),
                end_date=date(2025, 8, 5),
            )
        assert exc_info.value.field == "end_date"

    def test_unknown_type_rejected(self):
        with pytest.raises(UnknownTypeError):
            self._build(novelty_type="propina", value=1)

    def test_drafts_are_frozen(self):
        draft = DeletionDraft(
            employee_id=self.employee_id, period_id=self.period_id, novelty_id=uuid4()
        )
        with pytest.raises(AttributeError):
            draft.novelty_id = uuid4()


class TestPayloadSnapshot:
    def test_payload_is_json_safe_and_restores_the_draft(self):
        employee_id, period_id = uuid4(), uuid4()
        draft = build_draft(
            employee_id=employee_id,
            period_id=period_id,
            novelty_type="horas_extra",
            subtype="nocturnas",
            hours="3",
            effective_date=date(2025, 8, 9),
            observation="cierre de inventario",
        )
        payload = draft_to_payload(draft, Decimal("52500"), "trace", recompute=True)

        assert payload["hours"] == "3"
        assert payload["value"] == "52500"
        assert payload["effective_date"] == "2025-08-09"
        assert payload["recompute"] is True

        restored = draft_from_payload(payload, employee_id, period_id)
        assert restored == draft
