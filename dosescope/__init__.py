"""
A Python package for detecting and validating dose-response layouts in raw spreadsheet grids.

Locates the header row, the concentration and response columns, infers the
dilution scheme and scores the scientific quality of the dataset, then fuses
the evidence into one confidence estimate with ranked recommendations.

Modules:
    - structure: Header detection, column mapping, data region and layout classification.
    - units: Concentration parsing and normalization to nanomolar.
    - dilution: Dilution-pattern classification with robust ratio statistics and Bayesian factor inference.
    - validation: Concentration, response and dose-response quality scoring.
    - adaptive: Default asynchronous pattern detector screening candidate dilution factors.
    - integration: Method agreement, consensus, uncertainty and recommendations.
    - analysis: Concurrent pipeline orchestration and batch processing.
    - output / plotting: CSV summaries and the dilution-ladder QC figure.
"""

__version__ = "1.0.0"

from .adaptive import RatioPatternDetector
from .analysis import (
    analyze,
    analyze_async,
    create_recommendations_dataframe,
    create_results_dataframe,
    process_all_files,
)
from .config import DEFAULT_CONFIG, DetectionConfig
from .data_processing import grid_from_dataframe, load_grid
from .dilution import analyze_pattern
from .integration import integrate
from .output import factor_table, save_results_to_csv
from .plotting import plot_dilution_ladder
from .schema import AnalysisResult, ValidationOptions
from .structure import analyze_structure
from .units import normalize_concentration, parse_concentration
from .validation import quality_report, validate

__all__ = [
    # Configuration and records
    "DEFAULT_CONFIG",
    "DetectionConfig",
    "AnalysisResult",
    "ValidationOptions",
    # Data processing
    "grid_from_dataframe",
    "load_grid",
    "parse_concentration",
    "normalize_concentration",
    # Analysis
    "analyze_structure",
    "analyze_pattern",
    "validate",
    "quality_report",
    "RatioPatternDetector",
    "integrate",
    "analyze",
    "analyze_async",
    "process_all_files",
    "create_results_dataframe",
    "create_recommendations_dataframe",
    # Output
    "factor_table",
    "save_results_to_csv",
    "plot_dilution_ladder",
]
