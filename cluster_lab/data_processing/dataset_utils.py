"""Table shaping helpers shared by both clustering pipelines.

Row identity always travels in the DataFrame index: filters keep the original
index, and cluster labels are joined back by index rather than by position.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import adjusted_rand_score

from cluster_lab.utils.validate import expect_columns, expect_non_empty

_LOG = logging.getLogger(__name__)


def numeric_feature_columns(df: pd.DataFrame, exclude: Sequence[str] = ()) -> list[str]:
    """Numeric columns of ``df`` in their original order, minus ``exclude``."""
    numeric = df.select_dtypes(include=[np.number]).columns
    return [c for c in numeric if c not in set(exclude)]


def complete_cases(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Rows of ``df`` with no missing value among ``columns``."""
    expect_columns(df, columns)
    out = df.dropna(subset=list(columns)).copy()
    dropped = len(df) - len(out)
    if dropped:
        _LOG.warning("Dropped %s of %s rows with missing values in %s", dropped, len(df), list(columns))
    return out


def top_n_by(
    df: pd.DataFrame,
    column: str,
    n: int,
    id_col: Optional[str] = None,
) -> pd.DataFrame:
    """Keep the ``n`` rows with the largest ``column`` values.

    Rows whose ranking value is missing never qualify. When ``id_col`` is given
    the result is re-indexed by it so the identifier becomes the row identity.
    """
    if n < 1:
        raise ValueError(f"n must be a positive integer, got {n}")
    cols = [column] + ([id_col] if id_col else [])
    expect_columns(df, cols)
    ranked = df[df[column].notna()].sort_values(column, ascending=False, kind="mergesort")
    out = ranked.head(n).copy()
    if id_col:
        if out[id_col].duplicated().any():
            dupes = out.loc[out[id_col].duplicated(), id_col].tolist()
            raise ValueError(f"Identifier column '{id_col}' has duplicate values: {dupes}")
        out.index = out[id_col].astype(str)
        out.index.name = None
    if len(out) < n:
        _LOG.warning("Requested top %s by '%s' but only %s rows qualify", n, column, len(out))
    return out


def attach_cluster_labels(
    df: pd.DataFrame,
    labels: pd.Series,
    column: str = "cluster",
) -> pd.DataFrame:
    """Copy of ``df`` with ``labels`` joined on the index.

    Rows absent from ``labels`` (for example rows dropped as incomplete) get ``<NA>``.
    """
    unknown = labels.index.difference(df.index)
    if len(unknown):
        raise KeyError(f"Labels refer to rows not in the table: {list(unknown[:5])}")
    out = df.copy()
    out[column] = labels.reindex(df.index).astype("Int64")
    return out


def cluster_contingency(
    df: pd.DataFrame,
    truth_col: str,
    cluster_col: str = "cluster",
    margins: bool = True,
) -> pd.DataFrame:
    """Cross-tabulate the true category against the assigned cluster."""
    expect_columns(df, [truth_col, cluster_col])
    labelled = df[df[cluster_col].notna()]
    expect_non_empty(labelled)
    return pd.crosstab(
        labelled[truth_col],
        labelled[cluster_col].astype(int),
        margins=margins,
        margins_name="Total",
    )


def cluster_agreement(
    df: pd.DataFrame,
    truth_col: str,
    cluster_col: str = "cluster",
) -> Dict[str, float]:
    """Adjusted Rand index and purity of the clusters against ``truth_col``."""
    labelled = df[df[cluster_col].notna() & df[truth_col].notna()]
    expect_non_empty(labelled)
    table = pd.crosstab(labelled[truth_col], labelled[cluster_col])
    purity = table.max(axis=0).sum() / table.to_numpy().sum()
    return {
        "adjusted_rand_index": float(adjusted_rand_score(labelled[truth_col], labelled[cluster_col])),
        "purity": float(purity),
        "n_labelled": int(len(labelled)),
    }
