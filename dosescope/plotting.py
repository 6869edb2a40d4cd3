"""QC figure for a detected dilution series.

The figure has two panels:
- the concentration ladder on a log axis, one marker per step;
- the consecutive step ratios with the median ratio and flagged outliers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np

from .schema import DilutionPattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LadderStyle:
    FIGSIZE: Tuple[float, float] = (9.5, 4.2)
    DPI: int = 150
    MARKERSIZE: float = 6.0
    LINEWIDTH: float = 1.2
    GRID_ALPHA: float = 0.2
    LADDER_COLOR: str = "#1f77b4"
    OUTLIER_COLOR: str = "#d62728"
    MEDIAN_COLOR: str = "0.35"


STYLE = LadderStyle()


def _clean_axis(ax) -> None:
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.grid(True, alpha=STYLE.GRID_ALPHA)


def plot_dilution_ladder(
    pattern: DilutionPattern, savepath: str, title: Optional[str] = None
) -> str:
    """Plot the concentration ladder and its step ratios.

    Args:
        pattern: Result of :func:`dosescope.dilution.analyze_pattern`.
        savepath: Output image path; parent directories are created.
        title: Optional figure title. Defaults to the pattern type.

    Returns:
        str: ``savepath``.

    Note:
        Empty patterns still produce a figure with an explanatory message, so
        batch runs always emit one image per input.
    """
    fig, (ax_ladder, ax_ratio) = plt.subplots(1, 2, figsize=STYLE.FIGSIZE)

    values = np.sort(np.asarray(pattern.values, dtype=float))[::-1]
    ratios = np.asarray(pattern.ratios, dtype=float)

    if values.size:
        steps = np.arange(1, values.size + 1)
        ax_ladder.semilogy(
            steps,
            values,
            "o-",
            color=STYLE.LADDER_COLOR,
            markersize=STYLE.MARKERSIZE,
            linewidth=STYLE.LINEWIDTH,
        )
        ax_ladder.set_xticks(steps)
    else:
        ax_ladder.text(0.5, 0.5, "No usable concentrations", ha="center", va="center", transform=ax_ladder.transAxes)
    ax_ladder.set_xlabel("Step")
    ax_ladder.set_ylabel("Concentration (nM)")
    ax_ladder.set_title("Concentration ladder")
    _clean_axis(ax_ladder)

    if ratios.size:
        idx = np.arange(1, ratios.size + 1)
        ax_ratio.plot(
            idx,
            ratios,
            "o",
            color=STYLE.LADDER_COLOR,
            markersize=STYLE.MARKERSIZE,
            label="Step ratio",
        )
        flagged = [i for i in pattern.statistics.outliers.indices if i < ratios.size]
        if flagged:
            ax_ratio.plot(
                np.asarray(flagged) + 1,
                ratios[flagged],
                "x",
                color=STYLE.OUTLIER_COLOR,
                markersize=STYLE.MARKERSIZE + 3,
                label="Outlier",
            )
        median = pattern.statistics.median_ratio
        if np.isfinite(median):
            ax_ratio.axhline(
                median,
                color=STYLE.MEDIAN_COLOR,
                linestyle="--",
                linewidth=STYLE.LINEWIDTH,
                label=f"Median {median:.3g}",
            )
        ax_ratio.set_xticks(idx)
        ax_ratio.legend(frameon=False)
    else:
        ax_ratio.text(0.5, 0.5, "No step ratios", ha="center", va="center", transform=ax_ratio.transAxes)
    ax_ratio.set_xlabel("Step")
    ax_ratio.set_ylabel("Ratio (higher / lower)")
    ax_ratio.set_title("Step ratios")
    _clean_axis(ax_ratio)

    fig.suptitle(title or f"Dilution pattern: {pattern.type}")
    fig.tight_layout()

    parent = os.path.dirname(savepath)
    if parent:
        os.makedirs(parent, exist_ok=True)
    fig.savefig(savepath, dpi=STYLE.DPI)
    plt.close(fig)
    logger.info("Saved dilution ladder figure to %s", savepath)
    return savepath
