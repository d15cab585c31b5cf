"""Export utilities (result tables to Excel, figures to PNG)."""
from __future__ import annotations

import logging
import os
from typing import Dict, List

import matplotlib.pyplot as plt
import pandas as pd

from .formatting_utils import safe_filename, safe_sheet_name

_LOG = logging.getLogger(__name__)

__all__ = [
    "export_to_excel",
    "save_figures",
]


def export_to_excel(sheets: Dict[str, pd.DataFrame], output_path: str, index: bool = True) -> str:
    """Write multiple DataFrames to an Excel file, one per sheet."""
    if not sheets:
        raise ValueError("No tables to export")
    folder = os.path.dirname(output_path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="xlsxwriter") as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=safe_sheet_name(sheet_name), index=index)
    _LOG.info("Wrote %s sheets to %s", len(sheets), output_path)
    return output_path


def save_figures(figures: Dict[str, plt.Figure], output_dir: str, dpi: int = 120) -> List[str]:
    """Save each figure as ``<name>.png`` under ``output_dir``; returns the paths."""
    os.makedirs(output_dir, exist_ok=True)
    paths = []
    for name, fig in figures.items():
        path = os.path.join(output_dir, f"{safe_filename(name)}.png")
        fig.savefig(path, dpi=dpi, bbox_inches="tight")
        paths.append(path)
    _LOG.info("Saved %s figures to %s", len(paths), output_dir)
    return paths
