"""
Novelty type catalogue.

Responsibility:
    Declares every payroll novelty ("novedad") the kernel understands and
    the static facts attached to each one: whether it adds to gross pay or
    is deducted, which quantity it is measured in, whether its value is
    computed or entered by hand, which subtypes it admits, and whether a
    local calculation may stand in when the remote calculation service
    fails.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Leaf of the dependency graph; the
    rule resolver, the calculator and the submission pipeline all read it.

Invariants enforced:
    - Stored novelty values are never negative.  The effect on the
      employee's net pay is derived from ``category`` alone.
    - ``describe()`` has no side effects and raises ``UnknownTypeError``
      for tags outside the catalogue.
"""

from dataclasses import dataclass
from enum import Enum

from payroll_kernel.exceptions import InvalidSubtypeError, UnknownTypeError


class NoveltyCategory(str, Enum):
    """Effect of a novelty on the liquidation."""

    DEVENGO = "devengo"
    DEDUCCION = "deduccion"


class NoveltyType(str, Enum):
    """Registered novelty type tags."""

    HORAS_EXTRA = "horas_extra"
    RECARGO_NOCTURNO = "recargo_nocturno"
    RECARGO_DOMINICAL = "recargo_dominical"
    VACACIONES = "vacaciones"
    INCAPACIDAD = "incapacidad"
    LICENCIA_REMUNERADA = "licencia_remunerada"
    LICENCIA_NO_REMUNERADA = "licencia_no_remunerada"
    AUSENCIA = "ausencia"
    BONIFICACION = "bonificacion"
    COMISION = "comision"
    PRIMA = "prima"
    OTROS_INGRESOS = "otros_ingresos"
    LIBRANZA = "libranza"
    MULTA = "multa"
    DESCUENTO_VOLUNTARIO = "descuento_voluntario"
    RETENCION_FUENTE = "retencion_fuente"
    FONDO_SOLIDARIDAD = "fondo_solidaridad"


class FallbackPolicy(str, Enum):
    """What happens when the remote calculation service fails."""

    LOCAL = "local"  # recompute with the local calculator
    NONE = "none"  # block the submission


@dataclass(frozen=True)
class NoveltyTypeSpec:
    """Static description of one novelty type."""

    novelty_type: NoveltyType
    label: str
    category: NoveltyCategory
    requires_days: bool
    requires_hours: bool
    is_auto_calculated: bool
    subtypes: tuple[str, ...] = ()
    fallback: FallbackPolicy = FallbackPolicy.NONE

    @property
    def is_manual(self) -> bool:
        return not self.is_auto_calculated

    @property
    def is_deduction(self) -> bool:
        return self.category == NoveltyCategory.DEDUCCION


_D = NoveltyCategory.DEVENGO
_X = NoveltyCategory.DEDUCCION
_LOCAL = FallbackPolicy.LOCAL

_CATALOGUE: tuple[NoveltyTypeSpec, ...] = (
    NoveltyTypeSpec(
        NoveltyType.HORAS_EXTRA, "Horas extra", _D,
        requires_days=False, requires_hours=True, is_auto_calculated=True,
        subtypes=(
            "diurnas", "nocturnas", "dominicales_diurnas",
            "dominicales_nocturnas", "festivas_diurnas", "festivas_nocturnas",
        ),
        fallback=_LOCAL,
    ),
    NoveltyTypeSpec(
        NoveltyType.RECARGO_NOCTURNO, "Recargo nocturno", _D,
        requires_days=False, requires_hours=True, is_auto_calculated=True,
        subtypes=("nocturno", "nocturno_dominical", "nocturno_festivo"),
        fallback=_LOCAL,
    ),
    NoveltyTypeSpec(
        NoveltyType.RECARGO_DOMINICAL, "Recargo dominical y festivo", _D,
        requires_days=False, requires_hours=True, is_auto_calculated=True,
        subtypes=("dominical", "festivo"),
        fallback=_LOCAL,
    ),
    NoveltyTypeSpec(
        NoveltyType.VACACIONES, "Vacaciones", _D,
        requires_days=True, requires_hours=False, is_auto_calculated=True,
        fallback=_LOCAL,
    ),
    NoveltyTypeSpec(
        NoveltyType.INCAPACIDAD, "Incapacidad", _D,
        requires_days=True, requires_hours=False, is_auto_calculated=True,
        subtypes=("general", "laboral", "maternidad"),
    ),
    NoveltyTypeSpec(
        NoveltyType.LICENCIA_REMUNERADA, "Licencia remunerada", _D,
        requires_days=True, requires_hours=False, is_auto_calculated=True,
        subtypes=("paternidad", "matrimonio", "luto", "estudio"),
        fallback=_LOCAL,
    ),
    NoveltyTypeSpec(
        NoveltyType.BONIFICACION, "Bonificacion", _D,
        requires_days=False, requires_hours=False, is_auto_calculated=False,
        subtypes=("productividad", "ventas", "puntualidad", "permanencia"),
    ),
    NoveltyTypeSpec(
        NoveltyType.COMISION, "Comision", _D,
        requires_days=False, requires_hours=False, is_auto_calculated=False,
        subtypes=("ventas", "cobranza", "meta"),
    ),
    NoveltyTypeSpec(
        NoveltyType.PRIMA, "Prima", _D,
        requires_days=False, requires_hours=False, is_auto_calculated=False,
        subtypes=("servicios", "navidad", "vacaciones"),
    ),
    NoveltyTypeSpec(
        NoveltyType.OTROS_INGRESOS, "Otros ingresos", _D,
        requires_days=False, requires_hours=False, is_auto_calculated=False,
        subtypes=("subsidios", "reintegros", "compensaciones"),
    ),
    NoveltyTypeSpec(
        NoveltyType.LICENCIA_NO_REMUNERADA, "Licencia no remunerada", _X,
        requires_days=True, requires_hours=False, is_auto_calculated=True,
        subtypes=(
            "personal", "estudios", "familiar", "salud_no_eps",
            "maternidad_extendida", "cuidado_hijo_menor", "emergencia_familiar",
        ),
        fallback=_LOCAL,
    ),
    NoveltyTypeSpec(
        NoveltyType.AUSENCIA, "Ausencia", _X,
        requires_days=True, requires_hours=False, is_auto_calculated=True,
        subtypes=(
            "injustificada", "abandono_puesto", "suspension_disciplinaria",
            "tardanza_excesiva",
        ),
        fallback=_LOCAL,
    ),
    NoveltyTypeSpec(
        NoveltyType.LIBRANZA, "Libranza", _X,
        requires_days=False, requires_hours=False, is_auto_calculated=False,
        subtypes=("banco", "cooperativa", "empresa"),
    ),
    NoveltyTypeSpec(
        NoveltyType.MULTA, "Multa", _X,
        requires_days=False, requires_hours=False, is_auto_calculated=False,
        subtypes=("disciplinaria", "reglamentaria", "contractual"),
    ),
    NoveltyTypeSpec(
        NoveltyType.DESCUENTO_VOLUNTARIO, "Descuento voluntario", _X,
        requires_days=False, requires_hours=False, is_auto_calculated=False,
        subtypes=("ahorro", "prestamo", "seguro", "otros"),
    ),
    NoveltyTypeSpec(
        NoveltyType.RETENCION_FUENTE, "Retencion en la fuente", _X,
        requires_days=False, requires_hours=False, is_auto_calculated=True,
    ),
    NoveltyTypeSpec(
        NoveltyType.FONDO_SOLIDARIDAD, "Fondo de solidaridad pensional", _X,
        requires_days=False, requires_hours=False, is_auto_calculated=True,
    ),
)

# Spellings of disability subtypes found in imported data.
_INCAPACIDAD_ALIASES: dict[str, str] = {
    "comun": "general",
    "común": "general",
    "enfermedad_general": "general",
    "eg": "general",
    "arl": "laboral",
    "accidente_laboral": "laboral",
    "riesgo_laboral": "laboral",
    "at": "laboral",
}


class NoveltyTypeRegistry:
    """
    Lookup over the novelty catalogue.

    Contract:
        ``describe`` accepts a ``NoveltyType`` or its string tag and returns
        the frozen ``NoveltyTypeSpec``.  A custom catalogue may be supplied
        for tests; the default is the full Colombian novelty set.
    """

    def __init__(self, catalogue: tuple[NoveltyTypeSpec, ...] = _CATALOGUE):
        self._specs: dict[NoveltyType, NoveltyTypeSpec] = {
            spec.novelty_type: spec for spec in catalogue
        }

    def describe(self, novelty_type: NoveltyType | str) -> NoveltyTypeSpec:
        """Return the static description of ``novelty_type``.

        Raises:
            UnknownTypeError: If the tag is not registered.
        """
        try:
            key = NoveltyType(novelty_type)
        except ValueError:
            raise UnknownTypeError(str(novelty_type)) from None
        spec = self._specs.get(key)
        if spec is None:
            raise UnknownTypeError(key.value)
        return spec

    def is_registered(self, novelty_type: NoveltyType | str) -> bool:
        try:
            self.describe(novelty_type)
        except UnknownTypeError:
            return False
        return True

    def types_in(self, category: NoveltyCategory) -> tuple[NoveltyTypeSpec, ...]:
        """All specs of one category, in catalogue order."""
        return tuple(s for s in self._specs.values() if s.category == category)

    def all(self) -> tuple[NoveltyTypeSpec, ...]:
        return tuple(self._specs.values())

    def normalize_subtype(
        self, novelty_type: NoveltyType | str, subtype: str | None
    ) -> str | None:
        """
        Canonicalize and validate a subtype.

        Lower-cases and trims the input, maps known disability aliases
        (``eg``, ``arl``, ...) to their canonical subtype, and checks the
        result against the permitted list.  Types without subtypes accept
        only ``None``.

        Raises:
            InvalidSubtypeError: If the subtype is not permitted.
        """
        spec = self.describe(novelty_type)
        if subtype is None or subtype.strip() == "":
            return None
        value = subtype.strip().lower()
        if spec.novelty_type == NoveltyType.INCAPACIDAD:
            value = _INCAPACIDAD_ALIASES.get(value, value)
        if value not in spec.subtypes:
            raise InvalidSubtypeError(spec.novelty_type.value, subtype, spec.subtypes)
        return value

    def is_valid_subtype(self, novelty_type: NoveltyType | str, subtype: str | None) -> bool:
        try:
            self.normalize_subtype(novelty_type, subtype)
        except InvalidSubtypeError:
            return False
        return True


_default_registry = NoveltyTypeRegistry()


def default_registry() -> NoveltyTypeRegistry:
    """Process-wide registry over the built-in catalogue."""
    return _default_registry
