"""
Tests for the temporal rule resolver.

Covers:
- Half-open interval selection at the exact boundary dates
- Sunday surcharge schedule and the work-week divisor schedule
- Subtype-specific tables and default subtypes
- Table integrity: gaps, overlaps, bounded tails
- Property: every date resolves to exactly one interval
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_engines.rules import RuleInterval, RuleTable, TemporalRuleResolver
from payroll_kernel.exceptions import NoApplicableRuleError, RuleTableIntegrityError


def _table(key: str, *bounds: tuple[date | None, date | None], divisor=None) -> RuleTable:
    return RuleTable(
        key=key,
        intervals=tuple(
            RuleInterval(effective_from=start, effective_to=end, factor=Decimal(i + 1))
            for i, (start, end) in enumerate(bounds)
        ),
        divisor=divisor,
    )


class TestSundaySurchargeSchedule:
    """The Sunday surcharge steps up every July 1st."""

    @pytest.mark.parametrize(
        "day, factor",
        [
            (date(2020, 1, 5), "0.75"),
            (date(2025, 6, 30), "0.75"),
            (date(2025, 7, 1), "0.80"),
            (date(2026, 6, 30), "0.80"),
            (date(2026, 7, 1), "0.90"),
            (date(2027, 6, 30), "0.90"),
            (date(2027, 7, 1), "1.00"),
            (date(2040, 12, 25), "1.00"),
        ],
    )
    def test_factor_by_date(self, resolver, day, factor):
        params = resolver.resolve("recargo_dominical", "dominical", day)
        assert params.factor == Decimal(factor)

    def test_holiday_shares_the_sunday_table(self, resolver):
        params = resolver.resolve("recargo_dominical", "festivo", date(2025, 8, 7))
        assert params.rule_key == "recargo_dominical"
        assert params.factor == Decimal("0.80")


class TestWorkWeekDivisor:
    @pytest.mark.parametrize(
        "day, hours",
        [
            (date(2023, 7, 14), "240"),
            (date(2023, 7, 15), "235"),
            (date(2024, 7, 15), "230"),
            (date(2025, 7, 14), "230"),
            (date(2025, 7, 15), "220"),
            (date(2026, 7, 15), "210"),
        ],
    )
    def test_overtime_monthly_hours(self, resolver, day, hours):
        params = resolver.resolve("horas_extra", "diurnas", day)
        assert params.monthly_hours == Decimal(hours)
        assert params.factor == Decimal("1.25")

    def test_surcharges_use_their_own_divisor(self, resolver):
        params = resolver.resolve("recargo_nocturno", "nocturno", date(2025, 7, 1))
        assert params.monthly_hours == Decimal("220")


class TestSubtypes:
    def test_default_subtype_filled_in(self, resolver):
        params = resolver.resolve("incapacidad", None, date(2025, 8, 1))
        assert params.rule_key == "incapacidad/general"
        assert params.threshold_days == 3
        assert params.coverage == Decimal("0.667")

    def test_subtype_specific_table(self, resolver):
        params = resolver.resolve("recargo_nocturno", "nocturno_festivo", date(2025, 8, 1))
        assert params.rule_key == "recargo_nocturno/nocturno_festivo"
        assert params.factor == Decimal("1.15")

    def test_missing_table_raises(self, resolver):
        with pytest.raises(NoApplicableRuleError) as exc_info:
            resolver.resolve("retencion_fuente", None, date(2025, 8, 1))
        assert exc_info.value.effective_date == "2025-08-01"

    def test_has_rules_for(self, resolver):
        assert resolver.has_rules_for("horas_extra")
        assert resolver.has_rules_for("vacaciones")
        assert not resolver.has_rules_for("bonificacion")
        assert not resolver.has_rules_for("fondo_solidaridad")

    def test_rule_keys_are_sorted(self, resolver):
        keys = resolver.rule_keys
        assert list(keys) == sorted(keys)
        assert "recargo_dominical" in keys

    def test_resolution_carries_legal_reference_and_bounds(self, resolver):
        params = resolver.resolve("recargo_dominical", "dominical", date(2025, 8, 3))
        assert params.legal_reference == "Ley 2466 de 2025"
        assert params.bounds == "[2025-07-01,2026-07-01)"


class TestTableIntegrity:
    def test_valid_table(self):
        _table(
            "x",
            (None, date(2025, 1, 1)),
            (date(2025, 1, 1), None),
        ).validate()

    def test_empty_table(self):
        with pytest.raises(RuleTableIntegrityError, match="no intervals"):
            RuleTable(key="x", intervals=()).validate()

    def test_gap(self):
        with pytest.raises(RuleTableIntegrityError, match="gap"):
            _table("x", (None, date(2025, 1, 1)), (date(2025, 2, 1), None)).validate()

    def test_overlap(self):
        with pytest.raises(RuleTableIntegrityError, match="overlaps"):
            _table("x", (None, date(2025, 2, 1)), (date(2025, 1, 1), None)).validate()

    def test_bounded_tail(self):
        with pytest.raises(RuleTableIntegrityError, match="must be unbounded"):
            _table("x", (None, date(2025, 1, 1))).validate()

    def test_unbounded_middle(self):
        with pytest.raises(RuleTableIntegrityError, match="unbounded but not last"):
            _table("x", (None, None), (date(2025, 1, 1), None)).validate()

    def test_open_start_only_first(self):
        with pytest.raises(RuleTableIntegrityError, match="open start"):
            _table("x", (None, date(2025, 1, 1)), (None, None)).validate()

    def test_empty_interval(self):
        with pytest.raises(RuleTableIntegrityError, match="is empty"):
            _table(
                "x", (date(2025, 1, 1), date(2025, 1, 1)), (date(2025, 1, 1), None)
            ).validate()

    def test_resolver_validates_on_construction(self):
        with pytest.raises(RuleTableIntegrityError) as exc_info:
            TemporalRuleResolver({"horas_extra": _table("horas_extra", (None, date(2025, 1, 1)))})
        assert exc_info.value.rule_key == "horas_extra"
        assert exc_info.value.code == "RULE_TABLE_INTEGRITY"

    def test_unknown_divisor_rejected(self):
        with pytest.raises(RuleTableIntegrityError, match="unknown divisor"):
            TemporalRuleResolver({"horas_extra": _table("horas_extra", (None, None), divisor="nope")})

    def test_table_starting_late_leaves_early_dates_unresolved(self):
        resolver = TemporalRuleResolver(
            {"vacaciones": _table("vacaciones", (date(2020, 1, 1), None))}
        )
        with pytest.raises(NoApplicableRuleError):
            resolver.resolve("vacaciones", None, date(2019, 12, 31))
        assert resolver.resolve("vacaciones", None, date(2020, 1, 1)).factor == Decimal("1")


_BASE = date(2020, 1, 1)


@st.composite
def contiguous_tables(draw):
    """Tables of 1-6 contiguous intervals with an open start and open end."""
    steps = draw(st.lists(st.integers(min_value=1, max_value=400), min_size=0, max_size=5))
    cuts = []
    current = _BASE
    for step in steps:
        current = current + timedelta(days=step)
        cuts.append(current)
    starts = [None] + cuts
    ends = cuts + [None]
    return _table("t", *zip(starts, ends))


class TestResolutionProperties:
    @settings(max_examples=200, deadline=None)
    @given(table=contiguous_tables(), offset=st.integers(min_value=-3000, max_value=3000))
    def test_exactly_one_interval_covers_any_date(self, table, offset):
        table.validate()
        day = _BASE + timedelta(days=offset)
        covering = [i for i in table.intervals if i.contains(day)]
        assert len(covering) == 1
        assert table.lookup(day) is covering[0]

    @settings(max_examples=100, deadline=None)
    @given(table=contiguous_tables())
    def test_boundary_belongs_to_the_later_interval(self, table):
        for prev, curr in zip(table.intervals, table.intervals[1:]):
            assert table.lookup(prev.effective_to) is curr
            assert table.lookup(prev.effective_to - timedelta(days=1)) is prev
