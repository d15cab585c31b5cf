"""
Cluster Count Estimation

Runs k-means over a range of candidate cluster counts and lets a panel of
internal validity indices vote on the best one. The outcome is a recommendation:
callers are free to cluster with a different count.

An index that cannot be computed on the given data (constant columns, too few
rows for the requested range) abstains; the vote is taken over the rest.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans
from sklearn.metrics import calinski_harabasz_score, davies_bouldin_score, silhouette_score

from cluster_lab.utils.validate import expect_finite, expect_non_empty
from .clustering_utils import InvalidClusterCountError, _as_frame

_LOG = logging.getLogger(__name__)

DEFAULT_INDICES = (
    "silhouette",
    "calinski_harabasz",
    "davies_bouldin",
    "elbow",
    "hartigan",
    "krzanowski_lai",
    "gap",
)


@dataclass
class ClusterCountEstimate:
    """Votes of each validity index plus the majority recommendation."""

    votes: Dict[str, Optional[int]]
    scores: pd.DataFrame
    failures: Dict[str, str] = field(default_factory=dict)
    best_k: Optional[int] = None
    cluster_range: List[int] = field(default_factory=list)

    @property
    def vote_counts(self) -> pd.Series:
        counts = Counter(k for k in self.votes.values() if k is not None)
        return pd.Series(counts, dtype="int64").reindex(self.cluster_range, fill_value=0).rename("votes")

    def summary(self) -> pd.DataFrame:
        return pd.DataFrame({
            "index": list(self.votes),
            "recommended_k": [self.votes[name] for name in self.votes],
            "status": ["failed: " + self.failures[n] if n in self.failures else "ok" for n in self.votes],
        })


class _KMeansFits:
    """Lazily fitted k-means models shared by all indices."""

    def __init__(self, X: np.ndarray, n_restarts: int, random_state: Optional[int]):
        self.X = X
        self.n_restarts = n_restarts
        self.random_state = random_state
        self._models: Dict[int, KMeans] = {}

    def model(self, k: int) -> KMeans:
        if k not in self._models:
            km = KMeans(n_clusters=k, n_init=self.n_restarts, random_state=self.random_state)
            km.fit(self.X)
            self._models[k] = km
        return self._models[k]

    def labels(self, k: int) -> np.ndarray:
        return self.model(k).labels_

    def inertia(self, k: int) -> float:
        if k < 1 or k > len(self.X):
            return np.nan
        return np.float64(self.model(k).inertia_)


def _per_k(fn: Callable[[int], float], ks: Sequence[int]) -> pd.Series:
    values = {}
    for k in ks:
        try:
            with np.errstate(divide="ignore", invalid="ignore"):
                values[k] = float(fn(k))
        except (ValueError, ZeroDivisionError):
            values[k] = np.nan
    out = pd.Series(values, dtype="float64")
    return out.where(np.isfinite(out))


def _pick(scores: pd.Series, best: str = "max") -> int:
    valid = scores.dropna()
    if valid.empty:
        raise ValueError("index undefined for every candidate cluster count")
    return int(valid.idxmax() if best == "max" else valid.idxmin())


def _require_dispersion(fits: _KMeansFits) -> None:
    if not fits.inertia(1) > 0:
        raise ValueError("data has no dispersion")


def _silhouette(fits: _KMeansFits, ks: Sequence[int], **_) -> tuple:
    scores = _per_k(lambda k: silhouette_score(fits.X, fits.labels(k)), ks)
    return _pick(scores), scores


def _calinski_harabasz(fits: _KMeansFits, ks: Sequence[int], **_) -> tuple:
    scores = _per_k(lambda k: calinski_harabasz_score(fits.X, fits.labels(k)), ks)
    return _pick(scores), scores


def _davies_bouldin(fits: _KMeansFits, ks: Sequence[int], **_) -> tuple:
    scores = _per_k(lambda k: davies_bouldin_score(fits.X, fits.labels(k)), ks)
    return _pick(scores, best="min"), scores


def _elbow(fits: _KMeansFits, ks: Sequence[int], **_) -> tuple:
    _require_dispersion(fits)
    W = fits.inertia
    scores = _per_k(lambda k: W(k - 1) - 2 * W(k) + W(k + 1), ks)
    return _pick(scores), scores


def _hartigan_h(fits: _KMeansFits, k: int) -> float:
    n = len(fits.X)
    return (fits.inertia(k) / fits.inertia(k + 1) - 1) * (n - k - 1)


def _hartigan(fits: _KMeansFits, ks: Sequence[int], **_) -> tuple:
    _require_dispersion(fits)
    scores = _per_k(lambda k: _hartigan_h(fits, k - 1) - _hartigan_h(fits, k), ks)
    return _pick(scores), scores


def _krzanowski_lai(fits: _KMeansFits, ks: Sequence[int], **_) -> tuple:
    _require_dispersion(fits)
    p = fits.X.shape[1]
    W = fits.inertia

    def diff(k: int) -> float:
        return (k - 1) ** (2 / p) * W(k - 1) - k ** (2 / p) * W(k)

    scores = _per_k(lambda k: abs(diff(k) / diff(k + 1)), ks)
    return _pick(scores), scores


def _gap(
    fits: _KMeansFits,
    ks: Sequence[int],
    n_references: int = 10,
    random_state: Optional[int] = None,
    **_,
) -> tuple:
    _require_dispersion(fits)
    X = fits.X
    rng = np.random.default_rng(random_state)
    lo, hi = X.min(axis=0), X.max(axis=0)
    references = [rng.uniform(lo, hi, size=X.shape) for _ in range(n_references)]
    candidates = [k for k in list(ks) + [max(ks) + 1] if k <= len(X)]

    gaps, spreads = {}, {}
    for k in candidates:
        ref_log_w = []
        for ref in references:
            km = KMeans(n_clusters=k, n_init=3, random_state=random_state).fit(ref)
            ref_log_w.append(np.log(km.inertia_))
        with np.errstate(divide="ignore"):
            gaps[k] = float(np.mean(ref_log_w) - np.log(fits.inertia(k)))
        spreads[k] = float(np.std(ref_log_w) * np.sqrt(1 + 1 / n_references))
    scores = pd.Series(gaps, dtype="float64").reindex(list(ks))
    scores = scores.where(np.isfinite(scores))

    for k in ks:
        if k + 1 in gaps and np.isfinite(gaps[k]) and np.isfinite(gaps[k + 1]):
            if gaps[k] >= gaps[k + 1] - spreads[k + 1]:
                return k, scores
    return _pick(scores), scores


_INDEX_FUNCTIONS: Dict[str, Callable[..., tuple]] = {
    "silhouette": _silhouette,
    "calinski_harabasz": _calinski_harabasz,
    "davies_bouldin": _davies_bouldin,
    "elbow": _elbow,
    "hartigan": _hartigan,
    "krzanowski_lai": _krzanowski_lai,
    "gap": _gap,
}


def majority_vote(votes: Dict[str, Optional[int]]) -> Optional[int]:
    """Most frequent recommendation; ties go to the smaller cluster count."""
    counts = Counter(k for k in votes.values() if k is not None)
    if not counts:
        return None
    top = max(counts.values())
    return min(k for k, c in counts.items() if c == top)


def estimate_cluster_count(
    X: Any,
    min_clusters: int = 2,
    max_clusters: int = 8,
    indices: Sequence[str] = DEFAULT_INDICES,
    random_state: Optional[int] = 42,
    n_restarts: int = 10,
    n_references: int = 10,
) -> ClusterCountEstimate:
    """
    Recommend a cluster count by majority vote of validity indices.

    Args:
        X: Numeric matrix (ScaledFeatures, DataFrame or 2-D array), complete cases.
        min_clusters: Smallest candidate count (>= 1).
        max_clusters: Largest candidate count.
        indices: Names from DEFAULT_INDICES to include in the panel.
        random_state: Seed for k-means fits and gap reference data.
        n_restarts: k-means restarts per candidate count.
        n_references: Reference datasets for the gap statistic.

    Returns:
        ClusterCountEstimate with per-index votes, scores, and the majority.
    """
    unknown = [name for name in indices if name not in _INDEX_FUNCTIONS]
    if unknown:
        raise ValueError(f"Unknown validity indices {unknown}. Must be among: {list(_INDEX_FUNCTIONS)}")
    if min_clusters < 1 or max_clusters < min_clusters:
        raise InvalidClusterCountError(
            f"Invalid candidate range [{min_clusters}, {max_clusters}]; need 1 <= min <= max"
        )
    frame = _as_frame(X)
    expect_non_empty(frame)
    expect_finite(frame)
    n = len(frame)
    ks = [k for k in range(min_clusters, max_clusters + 1) if k <= n]
    if not ks:
        raise InvalidClusterCountError(
            f"No candidate cluster count in [{min_clusters}, {max_clusters}] fits {n} observations"
        )
    if ks[-1] < max_clusters:
        _LOG.warning("Candidate range clamped to [%s, %s] for %s observations", min_clusters, ks[-1], n)

    _LOG.info("Estimating cluster count over k=%s..%s with %s indices", ks[0], ks[-1], len(indices))
    fits = _KMeansFits(frame.to_numpy(dtype="float64"), n_restarts, random_state)
    votes: Dict[str, Optional[int]] = {}
    scores: Dict[str, pd.Series] = {}
    failures: Dict[str, str] = {}
    for name in indices:
        try:
            k, per_k = _INDEX_FUNCTIONS[name](
                fits, ks, n_references=n_references, random_state=random_state
            )
        except Exception as e:
            _LOG.warning("Validity index '%s' abstained: %s", name, e)
            votes[name] = None
            failures[name] = str(e)
            continue
        votes[name] = k
        scores[name] = per_k.reindex(ks)

    best_k = majority_vote(votes)
    score_table = pd.DataFrame(scores, index=pd.Index(ks, name="k"))
    if best_k is None:
        _LOG.warning("Every validity index abstained; no cluster count recommended")
    else:
        _LOG.info("Majority vote recommends %s clusters (%s)", best_k, votes)
    return ClusterCountEstimate(
        votes=votes,
        scores=score_table,
        failures=failures,
        best_k=best_k,
        cluster_range=ks,
    )
