"""Write detection summaries and recommendation tables to CSV files.

This module is the output boundary between in-memory ``AnalysisResult``
records and tabular artifacts a bench scientist can open in a spreadsheet.
"""

from __future__ import annotations

import logging
import os
from typing import Sequence, Tuple

import pandas as pd

from .analysis import create_recommendations_dataframe, create_results_dataframe
from .schema import AnalysisResult

logger = logging.getLogger(__name__)


def _round_scores(df: pd.DataFrame, decimals: int = 3) -> pd.DataFrame:
    """Round float columns for display; integer and text columns are untouched."""
    out = df.copy()
    float_cols = out.select_dtypes(include="float").columns
    out[float_cols] = out[float_cols].round(decimals)
    return out


def factor_table(result: AnalysisResult) -> pd.DataFrame:
    """Flatten every validation factor of one result into a table.

    Args:
        result: Output of :func:`dosescope.analysis.analyze`.

    Returns:
        pandas.DataFrame: Columns ``Dimension``, ``Factor``, ``Weight``,
        ``Score``, ``Impact`` and ``Description``; empty for error results.
    """
    validation = result.validation
    rows = []
    for dimension, score in (
        ("concentration", validation.concentration.score),
        ("response", validation.response.score),
        ("dose-response", validation.dose_response.score),
    ):
        for f in score.factors:
            rows.append(
                {
                    "Dimension": dimension,
                    "Factor": f.name,
                    "Weight": f.weight,
                    "Score": f.score,
                    "Impact": f.impact,
                    "Description": f.description,
                }
            )
    return pd.DataFrame(rows, columns=["Dimension", "Factor", "Weight", "Score", "Impact", "Description"])


def save_results_to_csv(
    results: Sequence[Tuple[str, AnalysisResult]], output_dir: str = "output"
) -> Tuple[str, str]:
    """Save the per-file summary and the recommendation list.

    Args:
        results: ``(filepath, result)`` pairs from
            :func:`dosescope.analysis.process_all_files`.
        output_dir: Directory where CSV outputs are written.

    Returns:
        tuple[str, str]: Paths to ``detection_summary.csv`` and
        ``recommendations.csv``.
    """
    os.makedirs(output_dir, exist_ok=True)

    summary_path = os.path.join(output_dir, "detection_summary.csv")
    recs_path = os.path.join(output_dir, "recommendations.csv")

    _round_scores(create_results_dataframe(results)).to_csv(summary_path, index=False)
    create_recommendations_dataframe(results).to_csv(recs_path, index=False)

    logger.info("Saved detection summary to %s", summary_path)
    logger.info("Saved recommendations to %s", recs_path)
    return summary_path, recs_path
