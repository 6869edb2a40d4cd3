"""Immutable configuration shared by every analysis stage.

All tunable constants (keyword vocabulary, dilution priors, outlier tiers,
validation standards, resource limits) live in one :class:`DetectionConfig`
value that is passed into each analyzer. Tests derive variants with
:func:`dataclasses.replace` instead of patching module state.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

SQRT10 = math.sqrt(10.0)

CANONICAL_FACTORS: Tuple[float, ...] = (2.0, 3.0, 5.0, 10.0, SQRT10)

LABORATORY_PRIORS: Dict[float, float] = {
    2.0: 0.25,
    3.0: 0.20,
    5.0: 0.15,
    10.0: 0.30,
    SQRT10: 0.10,
}

CONCENTRATION_KEYWORDS: Tuple[str, ...] = (
    "concentration",
    "conc",
    "dose",
    "dilution",
    "molarity",
    "molar",
    "log",
    "log10",
    "nm",
    "um",
    "mm",
    "μm",
    "µm",
    "μg/ml",
    "ng/ml",
    "mg/ml",
    "m",
    "[",
    "]",
)

# Expected working windows per assay type, in nM.
ASSAY_RANGES_NM: Dict[str, Tuple[float, float]] = {
    "binding": (0.1, 1e5),
    "functional": (1.0, 1e6),
    "cytotoxicity": (10.0, 1e7),
    "enzymatic": (0.1, 1e6),
    "reporter": (1.0, 1e6),
    "general": (0.01, 1e8),
}

PLAUSIBLE_WINDOW_NM: Tuple[float, float] = (1e-3, 1e9)

LEVEL_THRESHOLDS: Tuple[Tuple[float, str], ...] = (
    (0.9, "excellent"),
    (0.75, "good"),
    (0.6, "acceptable"),
    (0.4, "poor"),
)

ROW_BUDGETS: Dict[str, int] = {
    "basic": 10000,
    "standard": 5000,
    "comprehensive": 2000,
    "maximum": 1000,
}


@dataclass(frozen=True)
class ConcentrationStandards:
    minimum_points: int = 5
    recommended_points: int = 8
    minimum_range: float = 2.0
    recommended_range: float = 3.0
    max_outlier_fraction: float = 0.15
    max_reasonable_range: float = 6.0
    max_acceptable_range: float = 8.0
    minimum_step_ratio: float = 1.5


@dataclass(frozen=True)
class ResponseStandards:
    minimum_replicates: int = 2
    recommended_replicates: int = 3
    max_cv_within_replicates: float = 0.20
    max_cv_between_replicates: float = 0.30
    minimum_dynamic_range: float = 2.0
    recommended_dynamic_range: float = 5.0
    excellent_dynamic_range: float = 10.0
    max_outlier_fraction: float = 0.15


@dataclass(frozen=True)
class StatisticalStandards:
    minimum_power: float = 0.80
    recommended_power: float = 0.90
    alpha: float = 0.05
    baseline_cv: float = 0.30


@dataclass(frozen=True)
class DetectionConfig:
    """Tunable parameters for structural, pattern, validation and integration stages.

    Attributes:
        header_scan_rows: Rows examined when looking for the header.
        response_sample_rows: Data rows sampled when classifying columns.
        keywords: Concentration vocabulary matched against header cells.
        priors: Prior probability per canonical dilution factor.
        classification_tolerance: Relative distance from a canonical factor
            within which the median ratio is classified as that factor.
        quick_pattern_tolerance: Relative distance used by the column scorer's
            canonical-factor bonus.
        outlier_thresholds: Robust z cut-offs for mild, moderate and severe.
        default_unit: Unit assumed for bare numbers without a header unit.
        molecular_weight: Molar mass (g/mol) used to convert mass units.
        timeout_s: Budget for the asynchronous adaptive detector.
        max_memory_mb: Memory ceiling used to size warnings only.
        robustness_level: Key into :data:`ROW_BUDGETS`.
    """

    header_scan_rows: int = 10
    response_sample_rows: int = 10
    keywords: Tuple[str, ...] = CONCENTRATION_KEYWORDS
    priors: Mapping[float, float] = field(default_factory=lambda: dict(LABORATORY_PRIORS))
    classification_tolerance: float = 0.15
    quick_pattern_tolerance: float = 0.20
    outlier_thresholds: Tuple[float, float, float] = (1.96, 2.5, 3.5)
    concentration: ConcentrationStandards = field(default_factory=ConcentrationStandards)
    response: ResponseStandards = field(default_factory=ResponseStandards)
    statistical: StatisticalStandards = field(default_factory=StatisticalStandards)
    assay_ranges: Mapping[str, Tuple[float, float]] = field(
        default_factory=lambda: dict(ASSAY_RANGES_NM)
    )
    plausible_window: Tuple[float, float] = PLAUSIBLE_WINDOW_NM
    level_thresholds: Tuple[Tuple[float, str], ...] = LEVEL_THRESHOLDS
    default_unit: str = "nM"
    molecular_weight: Optional[float] = None
    timeout_s: float = 30.0
    max_memory_mb: float = 500.0
    robustness_level: str = "standard"

    def __post_init__(self):
        if not self.priors:
            raise ValueError("priors must not be empty.")
        if any(f <= 1 or p <= 0 for f, p in self.priors.items()):
            raise ValueError("priors need factors > 1 and positive probabilities.")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive.")
        if self.max_memory_mb <= 0:
            raise ValueError("max_memory_mb must be positive.")
        if self.robustness_level not in ROW_BUDGETS:
            raise ValueError(
                f"robustness_level must be one of {sorted(ROW_BUDGETS)}, "
                f"got '{self.robustness_level}'."
            )
        cutoffs = list(self.outlier_thresholds)
        if len(cutoffs) != 3 or cutoffs != sorted(cutoffs):
            raise ValueError("outlier_thresholds must be three ascending values.")

    @property
    def row_budget(self) -> int:
        return ROW_BUDGETS[self.robustness_level]

    @property
    def prior_influence(self) -> float:
        """``(max prior - uniform prior) / max prior`` for the prior table."""
        top = max(self.priors.values())
        uniform = 1.0 / len(self.priors)
        return (top - uniform) / top

    def expected_range(self, assay_type: Optional[str]) -> Tuple[float, float]:
        return self.assay_ranges.get(assay_type or "general", self.assay_ranges["general"])


DEFAULT_CONFIG = DetectionConfig()
