from __future__ import annotations
from typing import Sequence
import numpy as np
import pandas as pd


def expect_columns(df: pd.DataFrame, cols: Sequence[str]) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns: {missing}")


def expect_non_empty(df: pd.DataFrame) -> None:
    if df.empty:
        raise ValueError("DataFrame is empty")


def expect_numeric(df: pd.DataFrame, cols: Sequence[str]) -> None:
    non_numeric = [c for c in cols if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(f"Non-numeric columns: {non_numeric}")


def expect_finite(df: pd.DataFrame) -> None:
    values = df.to_numpy(dtype="float64")
    if not np.isfinite(values).all():
        bad = [c for c in df.columns if not np.isfinite(df[c].to_numpy(dtype="float64")).all()]
        raise ValueError(f"Missing or infinite values in columns: {bad}; filter complete cases first")
