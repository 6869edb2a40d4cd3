import asyncio
import dataclasses
import logging
import math
import time

import pytest

from dosescope import analysis
from dosescope.analysis import analyze, analyze_async, create_results_dataframe
from dosescope.config import DEFAULT_CONFIG
from dosescope.schema import PatternCandidate, ResultColumns

STANDARD_GRID = [
    ["Compound", "Concentration (nM)", "Response 1", "Response 2"],
    ["A", 729, 98.0, 96.0],
    ["A", 243, 92.0, 90.0],
    ["A", 81, 75.0, 78.0],
    ["A", 27, 45.0, 48.0],
    ["A", 9, 18.0, 20.0],
    ["A", 3, 6.0, 5.0],
]


class SlowDetector:
    async def detect(self, values):
        await asyncio.sleep(5)
        return [PatternCandidate("serial", 0.9)]


class BlockingDetector:
    async def detect(self, values):
        await asyncio.to_thread(time.sleep, 3)
        return [PatternCandidate("serial", 0.9)]


class BrokenDetector:
    async def detect(self, values):
        raise RuntimeError("detector crashed")


class FixedDetector:
    def __init__(self, candidates):
        self.candidates = candidates

    async def detect(self, values):
        return self.candidates


class TestStandardGrid:
    def test_structure_is_reported(self):
        result = analyze(STANDARD_GRID)
        assert result.error is None
        assert result.header_row == 0
        assert result.concentration_column == 1
        assert result.response_columns == (2, 3)
        assert result.data_start_row == 1
        assert result.layout == "standard"
        assert result.concentration_unit == "nM"

    def test_pattern_and_validation(self):
        result = analyze(STANDARD_GRID)
        assert result.pattern.type == "serial"
        assert math.isclose(result.pattern.parameters.dilution_factor, 3.0)
        assert result.validation.valid
        assert result.performance.adaptive_status == "completed"
        assert result.adaptive_patterns[0].type == "serial"

    def test_confidence_and_recommendations(self):
        result = analyze(STANDARD_GRID)
        assert 0.0 <= result.confidence.overall <= 1.0
        assert result.confidence.uncertainty.lower <= result.confidence.uncertainty.upper
        priorities = [r.priority for r in result.recommendations]
        assert priorities == sorted(priorities, reverse=True)

    def test_performance_metrics(self):
        result = analyze(STANDARD_GRID)
        assert result.performance.data_points == result.structural.data_region.data_points
        assert result.performance.detection_time_ms >= 0.0
        assert result.performance.memory_mb > 0.0
        assert result.performance.warnings == ()

    def test_grid_is_not_modified(self):
        grid = [list(row) for row in STANDARD_GRID]
        analyze(grid)
        assert grid == STANDARD_GRID


def test_empty_grid_degrades_gracefully():
    result = analyze([])
    assert result.error is None
    assert result.structural.confidence == 0.0
    assert not result.structural.valid
    assert result.validation.level == "unacceptable"
    assert result.pattern.type == "unknown"
    critical = [r for r in result.recommendations if r.type == "critical"]
    assert len(critical) == 1
    assert critical[0].message == "Validation failed due to data errors"


def test_detector_timeout_falls_back_to_no_candidates(caplog):
    config = dataclasses.replace(DEFAULT_CONFIG, timeout_s=0.05)
    with caplog.at_level(logging.WARNING):
        result = analyze(STANDARD_GRID, config, detector=SlowDetector())
    assert result.performance.adaptive_status == "timed-out"
    assert result.adaptive_patterns == ()
    assert result.metrics.method_agreement.structural_vs_pattern == 0.5
    assert "timed out" in caplog.text


def test_timed_out_worker_thread_does_not_delay_the_result():
    config = dataclasses.replace(DEFAULT_CONFIG, timeout_s=0.1)
    started = time.perf_counter()
    result = analyze(STANDARD_GRID, config, detector=BlockingDetector())
    elapsed = time.perf_counter() - started
    assert result.performance.adaptive_status == "timed-out"
    assert elapsed < 1.5
    assert result.performance.detection_time_ms < 1500


def test_detector_failure_is_contained(caplog):
    with caplog.at_level(logging.ERROR):
        result = analyze(STANDARD_GRID, detector=BrokenDetector())
    assert result.error is None
    assert result.performance.adaptive_status == "failed"
    assert result.adaptive_patterns == ()
    assert "detector failed" in caplog.text


def test_injected_candidates_are_ranked():
    detector = FixedDetector([PatternCandidate("custom", 0.4), PatternCandidate("serial", 0.8)])
    result = analyze(STANDARD_GRID, detector=detector)
    assert [c.confidence for c in result.adaptive_patterns] == [0.8, 0.4]


def test_unexpected_error_gives_error_result(monkeypatch, caplog):
    def boom(grid, config):
        raise RuntimeError("boom")

    monkeypatch.setattr(analysis, "analyze_structure", boom)
    with caplog.at_level(logging.ERROR):
        result = analyze(STANDARD_GRID)
    assert result.error == "RuntimeError: boom"
    assert result.recommendations[0].priority == 10
    assert result.recommendations[0].guide.complexity == "expert"
    assert not result.validation.valid
    assert "Analysis failed" in caplog.text


def test_memory_ceiling_warning():
    config = dataclasses.replace(DEFAULT_CONFIG, max_memory_mb=1e-4)
    with pytest.warns(RuntimeWarning, match="MB ceiling"):
        result = analyze(STANDARD_GRID, config)
    assert len(result.performance.warnings) == 1


def test_row_budget_warning():
    grid = [["Concentration (nM)", "Response"]]
    for i in range(1100):
        level = i % 8
        grid.append([3.0**level, 100.0 - 10.0 * level])
    config = dataclasses.replace(DEFAULT_CONFIG, robustness_level="maximum")
    with pytest.warns(RuntimeWarning, match="exceed the maximum budget of 1000"):
        result = analyze(grid, config)
    assert result.performance.warnings[0].startswith("1101 rows")


def test_analyze_async_inside_running_loop():
    async def run():
        return await analyze_async(STANDARD_GRID)

    result = asyncio.run(run())
    assert result.pattern.type == "serial"


def test_results_dataframe():
    results = [("data/plate1.csv", analyze(STANDARD_GRID)), ("data/empty.csv", analyze([]))]
    df = create_results_dataframe(results)
    cols = ResultColumns()
    assert list(df.columns) == list(cols.ordered())
    assert list(df[cols.source]) == ["plate1.csv", "empty.csv"]
    assert df.loc[0, cols.pattern] == "serial"
    assert math.isclose(df.loc[0, cols.dilution_factor], 3.0)
    assert math.isnan(df.loc[1, cols.dilution_factor])
    assert df.loc[1, cols.header_row] == -1
    assert df.loc[0, cols.response_columns] == "2, 3"
