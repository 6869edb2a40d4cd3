"""
Dose-response layout detection pipeline.

This module runs the full detection for one raw grid:
- structural analysis locates the header, concentration and response columns;
- the dilution-pattern analyzer, the scientific validator and the adaptive
  pattern detector then run concurrently over the extracted columns;
- the integration engine fuses the three into one confidence estimate with an
  uncertainty interval and ranked recommendations.

The adaptive detector is an asynchronous collaborator bounded by
``config.timeout_s``. A timeout or failure leaves it with no candidates and
the integration falls back to neutral agreement scores.

``analyze`` is total: any unexpected error is logged and returned as
:meth:`AnalysisResult.error_result` instead of propagating.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .adaptive import PatternDetector, RatioPatternDetector
from .config import DEFAULT_CONFIG, DetectionConfig
from .data_processing import load_grid
from .dilution import analyze_pattern, parse_concentration_values
from .integration import integrate
from .schema import (
    AnalysisResult,
    EstimatedImpact,
    ImplementationGuide,
    PatternCandidate,
    PerformanceMetrics,
    Recommendation,
    ResultColumns,
    ValidationOptions,
    ValidationRecommendation,
)
from .structure import analyze_structure, extract_concentration_cells, extract_dose_response
from .validation import validate

logger = logging.getLogger(__name__)

VALIDATION_PRIORITIES = {"critical": 9, "important": 7, "suggestion": 5, "optimization": 3}
BYTES_PER_CELL = 8


def _grid_size(grid: Any) -> Tuple[int, int]:
    try:
        rows = len(grid)
        width = max((len(row) for row in grid), default=0)
    except TypeError:
        return 0, 0
    return rows, width


def _resource_warnings(rows: int, memory_mb: float, config: DetectionConfig) -> List[str]:
    messages = []
    if rows > config.row_budget:
        messages.append(
            f"{rows} rows exceed the {config.robustness_level} budget of {config.row_budget}; "
            "analysis may be slow"
        )
    if memory_mb > config.max_memory_mb:
        messages.append(
            f"estimated grid memory {memory_mb:.1f} MB exceeds the {config.max_memory_mb:.0f} MB ceiling"
        )
    for message in messages:
        warnings.warn(message, RuntimeWarning, stacklevel=3)
        logger.warning(message)
    return messages


async def _run_detector(
    detector: PatternDetector, values: Sequence[float], timeout_s: float
) -> Tuple[Tuple[PatternCandidate, ...], str]:
    """Await the adaptive detector; timeouts and failures degrade to no candidates."""
    try:
        candidates = await asyncio.wait_for(detector.detect(values), timeout_s)
    except asyncio.TimeoutError:
        logger.warning("Adaptive pattern detector timed out after %.1f s", timeout_s)
        return (), "timed-out"
    except Exception:
        logger.exception("Adaptive pattern detector failed")
        return (), "failed"
    ranked = sorted(candidates or (), key=lambda c: c.confidence, reverse=True)
    return tuple(ranked), "completed"


def _from_validation(rec: ValidationRecommendation) -> Recommendation:
    impact = rec.estimated_impact
    return Recommendation(
        type=rec.type,
        priority=VALIDATION_PRIORITIES.get(rec.type, 3),
        category=rec.category,
        message=rec.message,
        technical_details=rec.technical_explanation,
        estimated_impact=EstimatedImpact(impact, impact, impact),
        guide=ImplementationGuide(complexity=rec.implementation_complexity),
    )


async def _analyze(
    grid: Sequence[Sequence[Any]],
    config: DetectionConfig,
    detector: PatternDetector,
    options: Optional[ValidationOptions],
    started: float,
) -> AnalysisResult:
    structural = analyze_structure(grid, config)

    rows, width = _grid_size(grid)
    memory_mb = rows * width * BYTES_PER_CELL / (1024 * 1024)
    notes = _resource_warnings(rows, memory_mb, config)

    unit = structural.concentration_unit
    concentration_cells = extract_concentration_cells(grid, structural)
    dose_concentrations, dose_responses = extract_dose_response(grid, structural)
    values, _, _ = parse_concentration_values(concentration_cells, config, unit)

    pattern, validation, (adaptive, status) = await asyncio.gather(
        asyncio.to_thread(analyze_pattern, concentration_cells, config, unit),
        asyncio.to_thread(validate, dose_concentrations, dose_responses, options, config, unit),
        _run_detector(detector, values, config.timeout_s),
    )

    metrics, confidence, recommendations = integrate(structural, pattern, validation, adaptive)
    merged = list(recommendations) + [_from_validation(r) for r in validation.recommendations]
    merged.sort(key=lambda r: r.priority, reverse=True)

    performance = PerformanceMetrics(
        detection_time_ms=(time.perf_counter() - started) * 1000.0,
        memory_mb=memory_mb,
        data_points=structural.data_region.data_points,
        adaptive_status=status,
        warnings=tuple(notes),
    )
    return AnalysisResult(
        structural=structural,
        pattern=pattern,
        validation=validation,
        adaptive_patterns=adaptive,
        metrics=metrics,
        confidence=confidence,
        recommendations=tuple(merged),
        performance=performance,
    )


async def analyze_async(
    grid: Sequence[Sequence[Any]],
    config: DetectionConfig = DEFAULT_CONFIG,
    detector: Optional[PatternDetector] = None,
    options: Optional[ValidationOptions] = None,
) -> AnalysisResult:
    """Analyze one raw grid inside a running event loop.

    Args:
        grid: Raw rows of heterogeneous cells; never modified.
        config: Detection configuration.
        detector: Adaptive pattern detector; defaults to
            :class:`~dosescope.adaptive.RatioPatternDetector`.
        options: Assay hints for the validator.

    Returns:
        AnalysisResult: Fully populated result, or an error result.
    """
    started = time.perf_counter()
    try:
        return await _analyze(grid, config, detector or RatioPatternDetector(), options, started)
    except Exception as exc:
        logger.exception("Analysis failed")
        elapsed = (time.perf_counter() - started) * 1000.0
        return AnalysisResult.error_result(
            f"{type(exc).__name__}: {exc}", PerformanceMetrics(detection_time_ms=elapsed)
        )


def analyze(
    grid: Sequence[Sequence[Any]],
    config: DetectionConfig = DEFAULT_CONFIG,
    detector: Optional[PatternDetector] = None,
    options: Optional[ValidationOptions] = None,
) -> AnalysisResult:
    """Synchronous wrapper around :func:`analyze_async`.

    Note:
        Runs its own event loop, so call :func:`analyze_async` instead from
        code that is already inside one. Worker threads still busy when the
        analysis returns, such as a timed-out detector, finish in the
        background instead of being joined.
    """
    loop = asyncio.new_event_loop()
    executor = ThreadPoolExecutor(thread_name_prefix="dosescope")
    loop.set_default_executor(executor)
    try:
        return loop.run_until_complete(analyze_async(grid, config, detector, options))
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
            loop.close()


def process_all_files(
    file_list: Sequence[str],
    config: DetectionConfig = DEFAULT_CONFIG,
    options: Optional[ValidationOptions] = None,
) -> List[Tuple[str, AnalysisResult]]:
    """Load and analyze each CSV file; unreadable files are skipped with a warning."""
    results = []
    for filepath in file_list:
        logger.info("Processing %s", filepath)
        try:
            grid = load_grid(filepath)
        except (OSError, ValueError, pd.errors.ParserError) as exc:
            logger.warning("Skipping file %s: %s", filepath, exc)
            continue
        results.append((filepath, analyze(grid, config, options=options)))
    return results


def create_results_dataframe(results: Sequence[Tuple[str, AnalysisResult]]) -> pd.DataFrame:
    """One summary row per analyzed file."""
    cols = ResultColumns()
    rows = []
    for filepath, res in results:
        pattern = res.pattern
        rows.append(
            {
                cols.source: os.path.basename(filepath),
                cols.header_row: res.header_row,
                cols.concentration_column: res.concentration_column,
                cols.response_columns: ", ".join(str(c) for c in res.response_columns),
                cols.layout: res.layout,
                cols.unit: res.concentration_unit,
                cols.pattern: pattern.type,
                cols.dilution_factor: (
                    pattern.parameters.dilution_factor
                    if pattern.parameters.dilution_factor is not None
                    else np.nan
                ),
                cols.pattern_confidence: pattern.confidence,
                cols.validation_score: res.validation.overall.score,
                cols.validation_level: res.validation.level,
                cols.confidence: res.confidence.overall,
                cols.ci_lower: res.confidence.uncertainty.lower,
                cols.ci_upper: res.confidence.uncertainty.upper,
                cols.recommendations: len(res.recommendations),
                cols.error: res.error or "",
            }
        )
    return pd.DataFrame(rows, columns=list(cols.ordered()))


def create_recommendations_dataframe(results: Sequence[Tuple[str, AnalysisResult]]) -> pd.DataFrame:
    """One row per recommendation across all analyzed files, in priority order per file."""
    rows = []
    for filepath, res in results:
        for rec in res.recommendations:
            rows.append(
                {
                    "Source File": os.path.basename(filepath),
                    "Priority": rec.priority,
                    "Type": rec.type,
                    "Category": rec.category,
                    "Message": rec.message,
                    "Details": rec.technical_details,
                    "Complexity": rec.guide.complexity,
                }
            )
    return pd.DataFrame(
        rows,
        columns=["Source File", "Priority", "Type", "Category", "Message", "Details", "Complexity"],
    )
