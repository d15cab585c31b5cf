"""Feature scaling with explicit reporting of zero-variance columns."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from cluster_lab.utils.validate import (
    expect_columns,
    expect_finite,
    expect_non_empty,
    expect_numeric,
)

_LOG = logging.getLogger(__name__)

ZERO_VARIANCE_POLICIES = ("flag", "raise")


class ZeroVarianceError(ValueError):
    """Raised when a column cannot be scaled because its spread is zero."""

    def __init__(self, columns: Sequence[str]):
        self.columns = list(columns)
        super().__init__(f"Zero-variance columns cannot be scaled: {self.columns}")


@dataclass
class ScaledFeatures:
    """Scaled matrix plus what is needed to interpret it.

    ``data`` keeps the input's index and column order. ``zero_variance`` lists the
    columns whose divisor was zero; they are centered but left unscaled.
    """

    data: pd.DataFrame
    center: pd.Series
    scale: pd.Series
    zero_variance: List[str] = field(default_factory=list)
    centered: bool = True
    scaled: bool = True

    @property
    def values(self) -> np.ndarray:
        return self.data.to_numpy()

    @property
    def columns(self) -> List[str]:
        return list(self.data.columns)

    def inverse_transform(self, X: np.ndarray | pd.DataFrame) -> pd.DataFrame:
        """Map points from scaled space back to the original units."""
        arr = np.asarray(X, dtype="float64")
        restored = arr * self.scale.to_numpy() + self.center.to_numpy()
        index = X.index if isinstance(X, pd.DataFrame) else None
        return pd.DataFrame(restored, columns=self.columns, index=index)


def _zero_mask(features: pd.DataFrame, divisors: np.ndarray, center: bool) -> np.ndarray:
    # Constant columns, plus spreads too small to divide by without overflow
    with np.errstate(over="ignore"):
        unusable = ~np.isfinite(1.0 / np.where(divisors == 0, np.nan, divisors))
    if center:
        return (features.nunique(dropna=False) <= 1).to_numpy() | unusable
    return unusable


def scale_features(
    features: pd.DataFrame,
    feature_columns: Optional[Sequence[str]] = None,
    center: bool = True,
    scale: bool = True,
    on_zero_variance: str = "flag",
) -> ScaledFeatures:
    """
    Center and/or scale numeric columns.

    With ``center`` the column mean is subtracted and ``scale`` divides by the
    population standard deviation (StandardScaler). Without ``center``, ``scale``
    divides by the column root-mean-square instead.

    Args:
        features: DataFrame holding the columns to scale (complete cases only).
        feature_columns: Columns to use; defaults to every column.
        center: Subtract column means.
        scale: Divide by standard deviation / root-mean-square.
        on_zero_variance: 'flag' to report and leave such columns unscaled,
            'raise' to raise ZeroVarianceError.

    Returns:
        ScaledFeatures with the scaled DataFrame and the fitted centers/scales.
    """
    if on_zero_variance not in ZERO_VARIANCE_POLICIES:
        raise ValueError(f"on_zero_variance must be one of {ZERO_VARIANCE_POLICIES}")
    cols = list(feature_columns) if feature_columns is not None else list(features.columns)
    expect_columns(features, cols)
    expect_non_empty(features)
    expect_numeric(features, cols)
    X = features[cols].astype("float64")
    expect_finite(X)

    n_features = len(cols)
    if center:
        scaler = StandardScaler(with_mean=True, with_std=scale)
        scaler.fit(X.to_numpy())
        centers = scaler.mean_
        divisors = np.sqrt(scaler.var_) if scale else np.ones(n_features)
    else:
        centers = np.zeros(n_features)
        divisors = np.sqrt(np.mean(X.to_numpy() ** 2, axis=0)) if scale else np.ones(n_features)

    zero = _zero_mask(X, divisors, center) if scale else np.zeros(n_features, dtype=bool)
    zero_cols = [c for c, z in zip(cols, zero) if z]
    if zero_cols:
        if on_zero_variance == "raise":
            raise ZeroVarianceError(zero_cols)
        _LOG.warning("Zero-variance columns left unscaled: %s", zero_cols)
    divisors = np.where(zero, 1.0, divisors)

    scaled = (X.to_numpy() - centers) / divisors
    if center:
        scaled[:, zero] = 0.0

    _LOG.info("Scaled %s rows x %s features (center=%s, scale=%s)", len(X), n_features, center, scale)
    return ScaledFeatures(
        data=pd.DataFrame(scaled, index=X.index, columns=cols),
        center=pd.Series(centers, index=cols),
        scale=pd.Series(divisors, index=cols),
        zero_variance=zero_cols,
        centered=center,
        scaled=scale,
    )
