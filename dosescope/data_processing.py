"""
Load spreadsheet exports into raw grids for detection.
"""

# The detector expects the page exactly as the user sees it: no header
# inference, no dropped rows. Cells that are fully numeric become floats,
# everything else stays text, and blanks become None.

from typing import Any, List

import pandas as pd


def grid_from_dataframe(df: pd.DataFrame) -> List[List[Any]]:
    """Convert a header-less DataFrame into a list-of-rows grid.

    Each column is coerced with ``pd.to_numeric(errors="coerce")``; cells
    that convert keep the numeric value and the rest keep their original
    text. Missing cells become ``None``.

    Args:
        df: DataFrame read with ``header=None``.

    Returns:
        list[list]: Rows of ``float | str | None``.
    """
    columns = []
    for col in df.columns:
        raw = df[col]
        numeric = pd.to_numeric(raw, errors="coerce")
        merged = numeric.astype(object).where(numeric.notna(), raw)
        columns.append(merged.where(pd.notna(merged), None))

    if not columns:
        return []
    frame = pd.concat(columns, axis=1)
    return [list(row) for row in frame.itertuples(index=False, name=None)]


def load_grid(filepath, sep=","):
    """Load a CSV export as a raw grid.

    Args:
        filepath (str): Path to the CSV file.
        sep (str): Field separator.

    Returns:
        list[list]: Raw grid with one entry per spreadsheet row.
    """
    df = pd.read_csv(filepath, header=None, sep=sep, dtype=object, skip_blank_lines=False)
    return grid_from_dataframe(df)
