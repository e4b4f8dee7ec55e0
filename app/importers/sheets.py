"""Read spreadsheet and CSV files into 2-D cell grids for the row parsers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

_CSV_SUFFIXES = {".csv", ".txt"}


def read_sheet_rows(path: str | Path, sheet: int | str = 0) -> list[list[Any]]:
    """Return every row of ``path`` (header included) as a list of cells.

    Cells are read as text so codes such as ``00100`` keep their leading
    zeros; empty cells become None.
    """
    path = Path(path)
    if path.suffix.lower() in _CSV_SUFFIXES:
        frame = pd.read_csv(path, header=None, dtype=str)
    else:
        frame = pd.read_excel(path, sheet_name=sheet, header=None, dtype=str)

    frame = frame.astype(object).where(frame.notna(), None)
    return frame.values.tolist()


__all__ = ["read_sheet_rows"]
