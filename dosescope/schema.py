"""Define the result records produced by the detection pipeline.

Every record is a frozen dataclass. Records that can be absent have exactly
one canonical empty constructor (``empty``, ``invalid`` or ``error``) so that
downstream code checks a flag instead of probing for missing keys.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Dict, Optional, Tuple

from .stats.robust import OutlierAnalysis

PATTERN_TYPES: Tuple[str, ...] = (
    "serial",
    "log-scale",
    "half-log",
    "custom",
    "irregular",
    "unknown",
)
LAYOUT_TYPES: Tuple[str, ...] = ("standard", "transposed", "multi-block", "complex")
VALIDATION_LEVELS: Tuple[str, ...] = (
    "excellent",
    "good",
    "acceptable",
    "poor",
    "unacceptable",
)
RECOMMENDATION_TYPES: Tuple[str, ...] = ("critical", "important", "suggestion", "optimization")


# ---------------------------------------------------------------------------
# Structural analysis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeywordMatch:
    row: int
    column: int
    keyword: str
    confidence: float


@dataclass(frozen=True)
class HeaderCandidate:
    """Evidence gathered for one candidate header row.

    Attributes:
        row: Zero-based row index.
        score: Aggregate evidence score.
        text_ratio: Share of non-empty cells holding non-numeric text.
        keyword_matches: Concentration-vocabulary hits in this row.
        position_bonus: ``max(0, 5 - row * 0.5)``.
        numeric_penalty: ``-5`` for rows that look like data, else ``0``.
        confidence: ``min(score / 20, 1)``, floored at ``0``.
    """

    row: int
    score: float
    text_ratio: float
    keyword_matches: Tuple[KeywordMatch, ...]
    position_bonus: float
    numeric_penalty: float
    confidence: float


@dataclass(frozen=True)
class HeaderDetection:
    row: int = -1
    confidence: float = 0.0
    candidates: Tuple[HeaderCandidate, ...] = ()

    @property
    def found(self) -> bool:
        return self.row >= 0


@dataclass(frozen=True)
class ColumnMapping:
    concentration_column: int = -1
    response_columns: Tuple[int, ...] = ()
    metadata_columns: Tuple[int, ...] = ()
    confidence: float = 0.0
    column_scores: Dict[int, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.concentration_column >= 0 and (
            self.concentration_column in self.response_columns
            or self.concentration_column in self.metadata_columns
        ):
            raise ValueError("Concentration column cannot also be a response or metadata column.")


@dataclass(frozen=True)
class DataRegion:
    start_row: int = 0
    end_row: int = -1
    start_column: int = 0
    end_column: int = -1
    data_points: int = 0
    completeness: float = 0.0


@dataclass(frozen=True)
class LayoutPattern:
    type: str = "complex"
    confidence: float = 0.0
    characteristics: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StructuralAnalysis:
    header: HeaderDetection
    column_mapping: ColumnMapping
    data_region: DataRegion
    layout: LayoutPattern
    concentration_unit: str
    confidence: float
    valid: bool = True
    diagnostics: Tuple[str, ...] = ()

    @classmethod
    def invalid(cls, message: str, unit: str = "nM") -> "StructuralAnalysis":
        return cls(
            header=HeaderDetection(),
            column_mapping=ColumnMapping(),
            data_region=DataRegion(),
            layout=LayoutPattern(type="complex", confidence=0.0),
            concentration_unit=unit,
            confidence=0.0,
            valid=False,
            diagnostics=(f"invalid input: {message}",),
        )


# ---------------------------------------------------------------------------
# Dilution pattern
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternParameters:
    dilution_factor: Optional[float] = None
    log_base: Optional[float] = None
    custom_ratios: Tuple[float, ...] = ()


@dataclass(frozen=True)
class RatioStatistics:
    median_ratio: float = math.nan
    robust_std_dev: float = math.nan
    outlier_count: int = 0
    consistency_score: float = 0.0
    outliers: OutlierAnalysis = field(default_factory=OutlierAnalysis)


@dataclass(frozen=True)
class BayesianInference:
    """Posterior evidence over canonical dilution factors.

    ``posterior_probability`` is the unnormalized ``likelihood × prior`` of the
    best factor. Treat it as relative evidence; ``posteriors`` holds the same
    values renormalized to sum to one.
    """

    posterior_probability: float = 0.0
    evidence_strength: float = 0.0
    prior_influence: float = 0.0
    most_probable_factor: Optional[float] = None
    posteriors: Dict[float, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ConcentrationRange:
    """Observed concentration span in nM.

    ``log_range`` and ``order_of_magnitude`` are aliases holding the same
    ``log10(max / min)`` value.
    """

    min: float = 0.0
    max: float = 0.0
    log_range: float = 0.0
    order_of_magnitude: float = 0.0


@dataclass(frozen=True)
class PatternQuality:
    completeness: float = 0.0
    monotonicity: float = 0.0
    spacing: float = 0.0


@dataclass(frozen=True)
class RobustnessMetrics:
    sensitivity: float = 0.0
    stability: float = 0.0


@dataclass(frozen=True)
class DilutionPattern:
    type: str = "unknown"
    parameters: PatternParameters = field(default_factory=PatternParameters)
    statistics: RatioStatistics = field(default_factory=RatioStatistics)
    bayesian: BayesianInference = field(default_factory=BayesianInference)
    concentration_range: ConcentrationRange = field(default_factory=ConcentrationRange)
    quality: PatternQuality = field(default_factory=PatternQuality)
    robustness: RobustnessMetrics = field(default_factory=RobustnessMetrics)
    values: Tuple[float, ...] = ()
    ratios: Tuple[float, ...] = ()
    parse_failures: int = 0

    def __post_init__(self):
        if self.type not in PATTERN_TYPES:
            raise ValueError(f"Unknown pattern type '{self.type}'.")

    @property
    def confidence(self) -> float:
        return self.statistics.consistency_score

    @property
    def is_empty(self) -> bool:
        return len(self.values) < 3

    @classmethod
    def empty(cls, completeness: float = 0.0, parse_failures: int = 0) -> "DilutionPattern":
        return cls(quality=PatternQuality(completeness=completeness), parse_failures=parse_failures)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationOptions:
    """Caller hints for the scientific validator.

    Attributes:
        assay_type: Known assay category (binding, functional, cytotoxicity,
            enzymatic, reporter); adds evidence to assay inference.
        expected_potency: Expected midpoint concentration in nM, if known.
        experimental_context: Free-text description kept for reporting.
    """

    assay_type: Optional[str] = None
    expected_potency: Optional[float] = None
    experimental_context: Optional[str] = None


@dataclass(frozen=True)
class ValidationFactor:
    name: str
    weight: float
    score: float
    impact: str
    description: str


@dataclass(frozen=True)
class ValidationScore:
    score: float = 0.0
    level: str = "unacceptable"
    confidence: float = 0.0
    factors: Tuple[ValidationFactor, ...] = ()


@dataclass(frozen=True)
class ValidationRecommendation:
    type: str
    category: str
    message: str
    technical_explanation: str = ""
    actionable: bool = True
    estimated_impact: float = 0.0
    implementation_complexity: str = "moderate"


@dataclass(frozen=True)
class UnitConsistency:
    is_consistent: bool = False
    dominant_unit: str = ""
    units_found: Tuple[str, ...] = ()
    parse_failures: int = 0
    confidence: float = 0.0


@dataclass(frozen=True)
class RangeAssessment:
    min: float = 0.0
    max: float = 0.0
    order_of_magnitude: float = 0.0
    category: str = "too-narrow"
    is_appropriate: bool = False
    expected_range: Tuple[float, float] = (0.0, 0.0)
    coverage: float = 0.0


@dataclass(frozen=True)
class BiologicalRelevance:
    assay_type: str = "unknown"
    assay_confidence: float = 0.0
    plausibility: float = 0.0
    is_relevant: bool = False
    assay_scores: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SpacingAnalysis:
    uniformity: float = 0.0
    log_uniformity: float = 0.0
    coverage: float = 0.0
    gaps: Tuple[Tuple[int, str], ...] = ()


@dataclass(frozen=True)
class PatternValidation:
    type: str = "irregular"
    mean_ratio: float = 0.0
    consistency: float = 0.0
    completeness: float = 0.0
    recognizability: float = 0.0
    spacing: SpacingAnalysis = field(default_factory=SpacingAnalysis)


@dataclass(frozen=True)
class PowerAnalysis:
    sample_size: int = 0
    estimated_power: float = 0.0
    expected_precision: float = 0.0
    adequate_for_fitting: bool = False


@dataclass(frozen=True)
class ConcentrationValidation:
    score: ValidationScore = field(default_factory=ValidationScore)
    unit_consistency: UnitConsistency = field(default_factory=UnitConsistency)
    range: RangeAssessment = field(default_factory=RangeAssessment)
    biological_relevance: BiologicalRelevance = field(default_factory=BiologicalRelevance)
    pattern_quality: PatternValidation = field(default_factory=PatternValidation)
    power: PowerAnalysis = field(default_factory=PowerAnalysis)


@dataclass(frozen=True)
class MissingDataPattern:
    type: str = "none"
    severity: float = 0.0


@dataclass(frozen=True)
class ReplicateAnalysis:
    replicate_count: int = 0
    within_cv: float = math.nan
    between_cv: float = math.nan
    quality: str = "poor"
    adequate: bool = False


@dataclass(frozen=True)
class SignalToNoise:
    dynamic_range: float = 0.0
    signal_to_noise: float = 0.0
    clarity: float = 0.0
    category: str = "poor"


@dataclass(frozen=True)
class ResponseValidation:
    score: ValidationScore = field(default_factory=ValidationScore)
    completeness: float = 0.0
    missing_data: MissingDataPattern = field(default_factory=MissingDataPattern)
    replicates: ReplicateAnalysis = field(default_factory=ReplicateAnalysis)
    outliers: OutlierAnalysis = field(default_factory=OutlierAnalysis)
    outlier_fraction: float = 0.0
    signal: SignalToNoise = field(default_factory=SignalToNoise)


@dataclass(frozen=True)
class RelationshipStrength:
    correlation: float = 0.0
    strength: float = 0.0
    p_value: float = math.nan
    type: str = "none"
    has_relationship: bool = False


@dataclass(frozen=True)
class MonotonicityViolation:
    index: int
    expected: str
    actual: str
    magnitude: float


@dataclass(frozen=True)
class MonotonicityCheck:
    direction: str = "none"
    is_monotonic: bool = False
    strength: float = 0.0
    violations: Tuple[MonotonicityViolation, ...] = ()


@dataclass(frozen=True)
class DynamicRangeAssessment:
    baseline: float = math.nan
    top: float = math.nan
    window_fraction: float = 0.0
    lower_plateau: bool = False
    upper_plateau: bool = False
    adequate: bool = False


@dataclass(frozen=True)
class FittingProspects:
    convergence_probability: float = 0.0
    parameter_identifiability: float = 0.0
    midpoint_estimate: float = math.nan
    midpoint_bracket: Tuple[float, float] = (math.nan, math.nan)
    challenges: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DoseResponseValidation:
    score: ValidationScore = field(default_factory=ValidationScore)
    relationship: RelationshipStrength = field(default_factory=RelationshipStrength)
    monotonicity: MonotonicityCheck = field(default_factory=MonotonicityCheck)
    dynamic_range: DynamicRangeAssessment = field(default_factory=DynamicRangeAssessment)
    fitting: FittingProspects = field(default_factory=FittingProspects)


@dataclass(frozen=True)
class ValidationResult:
    overall: ValidationScore = field(default_factory=ValidationScore)
    concentration: ConcentrationValidation = field(default_factory=ConcentrationValidation)
    response: ResponseValidation = field(default_factory=ResponseValidation)
    dose_response: DoseResponseValidation = field(default_factory=DoseResponseValidation)
    recommendations: Tuple[ValidationRecommendation, ...] = ()
    valid: bool = True
    diagnostics: Tuple[str, ...] = ()

    @property
    def level(self) -> str:
        return self.overall.level

    @classmethod
    def error(cls, message: str) -> "ValidationResult":
        return cls(
            recommendations=(
                ValidationRecommendation(
                    type="critical",
                    category="data-quality",
                    message="Validation failed due to data errors",
                    technical_explanation=message,
                    actionable=True,
                    estimated_impact=1.0,
                    implementation_complexity="moderate",
                ),
            ),
            valid=False,
            diagnostics=(message,),
        )


@dataclass(frozen=True)
class QualityReport:
    grade: str
    score: float
    strengths: Tuple[str, ...]
    weaknesses: Tuple[str, ...]
    critical_issues: Tuple[str, ...]
    ready_for_fitting: bool


# ---------------------------------------------------------------------------
# Integration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternCandidate:
    type: str
    confidence: float
    parameters: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class MethodAgreement:
    structural_vs_pattern: float = 0.5
    pattern_vs_validation: float = 0.5
    structural_vs_validation: float = 0.5
    overall_consensus: float = 0.5


@dataclass(frozen=True)
class IntegrationMetrics:
    consensus_score: float = 0.0
    cross_validation_score: float = 0.0
    robustness_score: float = 0.0
    reliability_score: float = 0.0
    method_agreement: MethodAgreement = field(default_factory=MethodAgreement)


@dataclass(frozen=True)
class ConfidenceComponents:
    structural: float = 0.0
    pattern: float = 0.0
    validation: float = 0.0
    consensus: float = 0.0


@dataclass(frozen=True)
class UncertaintyInterval:
    lower: float = 0.0
    upper: float = 0.0
    width: float = 0.0
    method: str = "no-data"


@dataclass(frozen=True)
class RobustConfidence:
    overall: float = 0.0
    components: ConfidenceComponents = field(default_factory=ConfidenceComponents)
    uncertainty: UncertaintyInterval = field(default_factory=UncertaintyInterval)


@dataclass(frozen=True)
class EstimatedImpact:
    confidence: float = 0.0
    accuracy: float = 0.0
    reliability: float = 0.0


@dataclass(frozen=True)
class ImplementationGuide:
    complexity: str = "simple"
    time_required: str = ""
    resources_needed: Tuple[str, ...] = ()
    steps: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Recommendation:
    type: str
    priority: int
    category: str
    message: str
    technical_details: str = ""
    estimated_impact: EstimatedImpact = field(default_factory=EstimatedImpact)
    guide: ImplementationGuide = field(default_factory=ImplementationGuide)
    scientific_justification: str = ""

    def __post_init__(self):
        if self.type not in RECOMMENDATION_TYPES:
            raise ValueError(f"Unknown recommendation type '{self.type}'.")
        if not 1 <= self.priority <= 10:
            raise ValueError("Recommendation priority must be between 1 and 10.")


@dataclass(frozen=True)
class PerformanceMetrics:
    detection_time_ms: float = 0.0
    memory_mb: float = 0.0
    data_points: int = 0
    adaptive_status: str = "skipped"
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """Everything one ``analyze`` call produces for a single grid."""

    structural: StructuralAnalysis
    pattern: DilutionPattern
    validation: ValidationResult
    adaptive_patterns: Tuple[PatternCandidate, ...]
    metrics: IntegrationMetrics
    confidence: RobustConfidence
    recommendations: Tuple[Recommendation, ...]
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    error: Optional[str] = None

    @property
    def header_row(self) -> int:
        return self.structural.header.row

    @property
    def concentration_column(self) -> int:
        return self.structural.column_mapping.concentration_column

    @property
    def response_columns(self) -> Tuple[int, ...]:
        return self.structural.column_mapping.response_columns

    @property
    def data_start_row(self) -> int:
        return self.structural.data_region.start_row

    @property
    def layout(self) -> str:
        return self.structural.layout.type

    @property
    def concentration_unit(self) -> str:
        return self.structural.concentration_unit

    @classmethod
    def error_result(cls, message: str, performance: Optional[PerformanceMetrics] = None) -> "AnalysisResult":
        return cls(
            structural=StructuralAnalysis.invalid(message),
            pattern=DilutionPattern.empty(),
            validation=ValidationResult.error(message),
            adaptive_patterns=(),
            metrics=IntegrationMetrics(),
            confidence=RobustConfidence(),
            recommendations=(
                Recommendation(
                    type="critical",
                    priority=10,
                    category="data-quality",
                    message="Analysis failed; check the input data and try again.",
                    technical_details=message,
                    estimated_impact=EstimatedImpact(1.0, 1.0, 1.0),
                    guide=ImplementationGuide(
                        complexity="expert",
                        time_required="unknown",
                        resources_needed=("technical support",),
                        steps=(
                            "Check the data format",
                            "Verify concentration and response columns",
                            "Remove corrupt or non-numeric rows",
                        ),
                    ),
                    scientific_justification="No reliable detection is possible without readable input.",
                ),
            ),
            performance=performance or PerformanceMetrics(),
            error=message,
        )


# ---------------------------------------------------------------------------
# Result tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResultColumns:
    """Standardized column labels for the per-file summary table.

    Attributes:
        source: Input file name without its directory.
        header_row: Zero-based header row, ``-1`` when no header was found.
        concentration_column: Zero-based concentration column, ``-1`` when
            none was identified.
        dilution_factor: Constant step factor of the concentration series;
            the median ratio for custom patterns; NaN for irregular and unknown
            patterns.
        confidence: Integrated overall confidence in ``[0, 1]``; its 95%
            interval bounds sit in ``ci_lower`` and ``ci_upper``.
    """

    source: str = "Source File"
    header_row: str = "Header Row"
    concentration_column: str = "Concentration Column"
    response_columns: str = "Response Columns"
    layout: str = "Layout"
    unit: str = "Concentration Unit"
    pattern: str = "Dilution Pattern"
    dilution_factor: str = "Dilution Factor"
    pattern_confidence: str = "Pattern Confidence"
    validation_score: str = "Validation Score"
    validation_level: str = "Validation Level"
    confidence: str = "Overall Confidence"
    ci_lower: str = "Confidence CI Lower"
    ci_upper: str = "Confidence CI Upper"
    recommendations: str = "Recommendations"
    error: str = "Error"

    def ordered(self) -> Tuple[str, ...]:
        return tuple(getattr(self, f.name) for f in fields(self))
