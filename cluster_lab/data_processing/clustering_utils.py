"""
Clustering Utilities for the K-Means and Hierarchical Analyses

K-means partitioning with seeded restarts, pairwise distance matrices, SciPy
agglomerative clustering wrapped in a small merge-tree type, and the tree
comparison measures (cophenetic correlation, entanglement, untangling) used
for tanglegrams.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import cophenet, fcluster, leaves_list, linkage, to_tree
from scipy.spatial.distance import pdist, squareform
from sklearn.cluster import KMeans

from cluster_lab.utils.validate import expect_finite, expect_non_empty
from .normalization_utils import ScaledFeatures

_LOG = logging.getLogger(__name__)

LINKAGE_METHODS = ("complete", "single", "average", "weighted", "centroid", "median", "ward")
# Methods whose merge heights never decrease
MONOTONIC_METHODS = ("complete", "single", "average", "weighted", "ward")


class InvalidClusterCountError(ValueError):
    """Requested cluster count lies outside [1, number of observations]."""


def _as_frame(X: Any) -> pd.DataFrame:
    if isinstance(X, ScaledFeatures):
        return X.data
    if isinstance(X, pd.DataFrame):
        return X
    arr = np.asarray(X, dtype="float64")
    if arr.ndim != 2:
        raise ValueError(f"Expected a 2-D matrix, got shape {arr.shape}")
    return pd.DataFrame(arr, columns=[f"x{i}" for i in range(arr.shape[1])])


def validate_n_clusters(n_clusters: Any, n_samples: int) -> int:
    """Return ``n_clusters`` as int or raise InvalidClusterCountError."""
    if isinstance(n_clusters, bool) or not isinstance(n_clusters, (int, np.integer)):
        raise InvalidClusterCountError(f"Cluster count must be an integer, got {n_clusters!r}")
    k = int(n_clusters)
    if not 1 <= k <= n_samples:
        raise InvalidClusterCountError(
            f"Cluster count must lie in [1, {n_samples}] for {n_samples} observations, got {k}"
        )
    return k


# =============================================================================
# K-MEANS
# =============================================================================

@dataclass
class KMeansResult:
    """Outcome of the best k-means restart.

    ``labels`` maps row identity to a cluster label in [1, K]; ``centroids`` are
    the member means in scaled-feature space, indexed by label.
    """

    labels: pd.Series
    sizes: pd.Series
    centroids: pd.DataFrame
    inertia: float
    n_iter: int
    n_clusters: int
    n_restarts: int
    random_state: Optional[int]
    restart_inertias: List[float] = field(default_factory=list, repr=False)

    def summary(self) -> pd.DataFrame:
        out = self.centroids.copy()
        out.insert(0, "size", self.sizes)
        out.index.name = "cluster"
        return out.reset_index()


def restart_seeds(random_state: Optional[int], n_restarts: int) -> np.ndarray:
    """Per-restart seeds; the first r seeds do not depend on ``n_restarts``."""
    rng = np.random.RandomState(random_state)
    return rng.randint(np.iinfo(np.int32).max, size=n_restarts)


def run_kmeans(
    X: Any,
    n_clusters: int,
    n_restarts: int = 10,
    random_state: Optional[int] = 42,
    max_iter: int = 300,
    init: str = "random",
    tol: float = 1e-4,
) -> KMeansResult:
    """
    Lloyd k-means keeping the restart with the lowest within-cluster sum of squares.

    Args:
        X: Scaled matrix (ScaledFeatures, DataFrame, or 2-D array).
        n_clusters: Number of clusters K, 1 <= K <= rows.
        n_restarts: Independent initialisations to try.
        random_state: Seed for the restart seeds; fixes the result.
        max_iter: Maximum Lloyd iterations per restart.
        init: 'random' (rows drawn as initial centroids) or 'k-means++'.

    Returns:
        KMeansResult with labels numbered 1..K.
    """
    frame = _as_frame(X)
    expect_non_empty(frame)
    expect_finite(frame)
    k = validate_n_clusters(n_clusters, len(frame))
    if n_restarts < 1:
        raise ValueError(f"n_restarts must be at least 1, got {n_restarts}")

    values = frame.to_numpy(dtype="float64")
    best: Optional[KMeans] = None
    inertias: List[float] = []
    for seed in restart_seeds(random_state, n_restarts):
        model = KMeans(
            n_clusters=k,
            init=init,
            n_init=1,
            max_iter=max_iter,
            tol=tol,
            algorithm="lloyd",
            random_state=int(seed),
        )
        model.fit(values)
        inertias.append(float(model.inertia_))
        # Strict improvement only: the earliest restart wins ties
        if best is None or model.inertia_ < best.inertia_:
            best = model

    labels = pd.Series(best.labels_ + 1, index=frame.index, name="cluster")
    sizes = labels.value_counts().reindex(range(1, k + 1), fill_value=0).rename("size")
    centroids = frame.groupby(labels).mean().reindex(range(1, k + 1))
    centroids.index.name = "cluster"
    _LOG.info(
        "K-means (K=%s, %s restarts): within-cluster SS %.4f, sizes %s",
        k, n_restarts, best.inertia_, sizes.tolist(),
    )
    return KMeansResult(
        labels=labels,
        sizes=sizes,
        centroids=centroids,
        inertia=float(best.inertia_),
        n_iter=int(best.n_iter_),
        n_clusters=k,
        n_restarts=n_restarts,
        random_state=random_state,
        restart_inertias=inertias,
    )


# =============================================================================
# DISTANCES
# =============================================================================

def compute_distance_matrix(X: Any, metric: str = "euclidean") -> pd.DataFrame:
    """Square pairwise distance matrix labelled by row identity on both axes."""
    frame = _as_frame(X)
    expect_non_empty(frame)
    expect_finite(frame)
    condensed = pdist(frame.to_numpy(dtype="float64"), metric=metric)
    square = squareform(condensed)
    _LOG.info("Computed %s distances between %s observations", metric, len(frame))
    return pd.DataFrame(square, index=frame.index, columns=frame.index)


def _condensed(distances: Any, labels: Optional[Sequence[Any]] = None) -> Tuple[np.ndarray, List[str]]:
    if isinstance(distances, pd.DataFrame):
        if list(distances.index) != list(distances.columns):
            raise ValueError("Distance matrix rows and columns must carry the same labels in the same order")
        labels = [str(i) for i in distances.index] if labels is None else labels
        distances = distances.to_numpy(dtype="float64")
    arr = np.asarray(distances, dtype="float64")
    if arr.ndim == 2:
        if arr.shape[0] != arr.shape[1]:
            raise ValueError(f"Distance matrix must be square, got shape {arr.shape}")
        if not np.allclose(arr, arr.T) or not np.allclose(np.diag(arr), 0.0):
            raise ValueError("Distance matrix must be symmetric with a zero diagonal")
        condensed = squareform(arr, checks=False)
        n = arr.shape[0]
    elif arr.ndim == 1:
        condensed = arr
        n = int(round((1 + np.sqrt(1 + 8 * len(arr))) / 2))
        if n * (n - 1) // 2 != len(arr):
            raise ValueError(f"{len(arr)} is not a valid condensed distance vector length")
    else:
        raise ValueError(f"Distances must be 1-D condensed or 2-D square, got shape {arr.shape}")
    if labels is None:
        labels = [str(i) for i in range(n)]
    labels = [str(lbl) for lbl in labels]
    if len(labels) != n:
        raise ValueError(f"Got {len(labels)} labels for {n} observations")
    if not np.isfinite(condensed).all() or (condensed < 0).any():
        raise ValueError("Distances must be finite and non-negative")
    return condensed, labels


# =============================================================================
# HIERARCHICAL
# =============================================================================

@dataclass
class MergeTree:
    """Agglomerative merge tree backed by a SciPy linkage matrix.

    Leaf ``i`` is ``labels[i]``; row ``s`` of the linkage matrix is merge step
    ``s + 1`` and creates node ``n_leaves + s``.
    """

    linkage_matrix: np.ndarray
    labels: List[str]
    method: str
    metric: str = "euclidean"

    @property
    def n_leaves(self) -> int:
        return len(self.labels)

    @property
    def heights(self) -> np.ndarray:
        return self.linkage_matrix[:, 2]

    @property
    def leaf_order(self) -> List[str]:
        return [self.labels[i] for i in leaves_list(self.linkage_matrix)]

    def _node_name(self, node_id: int) -> str:
        if node_id < self.n_leaves:
            return self.labels[node_id]
        return f"merge {node_id - self.n_leaves + 1}"

    @property
    def merges(self) -> pd.DataFrame:
        Z = self.linkage_matrix
        return pd.DataFrame({
            "step": np.arange(1, len(Z) + 1),
            "left": [self._node_name(int(i)) for i in Z[:, 0]],
            "right": [self._node_name(int(i)) for i in Z[:, 1]],
            "height": Z[:, 2],
            "size": Z[:, 3].astype(int),
        })

    def cut(self, n_clusters: int) -> pd.Series:
        """Flat clustering into at most ``n_clusters`` groups, labels from 1."""
        k = validate_n_clusters(n_clusters, self.n_leaves)
        flat = fcluster(self.linkage_matrix, t=k, criterion="maxclust")
        return pd.Series(flat, index=self.labels, name=f"{self.method}_cluster")

    def cophenetic_distances(self) -> np.ndarray:
        return cophenet(self.linkage_matrix)

    def cophenetic_correlation(self, distances: Any) -> float:
        condensed, labels = _condensed(distances)
        if labels != self.labels and isinstance(distances, pd.DataFrame):
            raise ValueError("Distance labels do not match the tree's leaves")
        if self.n_leaves < 3:
            return float("nan")
        corr, _ = cophenet(self.linkage_matrix, condensed)
        return float(corr)

    def rotate(self, node_ids: Sequence[int]) -> "MergeTree":
        """Same tree with the children of the given internal nodes swapped."""
        Z = self.linkage_matrix.copy()
        for node_id in node_ids:
            row = int(node_id) - self.n_leaves
            if not 0 <= row < len(Z):
                raise ValueError(f"{node_id} is not an internal node id")
            Z[row, [0, 1]] = Z[row, [1, 0]]
        return MergeTree(Z, list(self.labels), self.method, self.metric)


def hierarchical_clustering(
    distances: Any,
    method: str = "complete",
    labels: Optional[Sequence[Any]] = None,
    optimal_ordering: bool = False,
    metric: str = "euclidean",
) -> MergeTree:
    """
    Agglomerative clustering of a distance matrix.

    Args:
        distances: Square DataFrame/array or condensed distance vector.
        method: Linkage rule, one of LINKAGE_METHODS.
        labels: Leaf labels; defaults to the DataFrame index or 0..N-1.
        optimal_ordering: Reorder leaves so adjacent leaves are as close as possible.
        metric: Name of the metric the distances came from (recorded only).

    Returns:
        MergeTree with N-1 merge steps.
    """
    method = method.lower()
    if method not in LINKAGE_METHODS:
        raise ValueError(f"Unknown linkage method '{method}'. Must be one of: {LINKAGE_METHODS}")
    condensed, leaf_labels = _condensed(distances, labels)
    if len(leaf_labels) < 2:
        raise ValueError("Hierarchical clustering needs at least 2 observations")
    if method in ("centroid", "median", "ward") and metric != "euclidean":
        _LOG.warning("Linkage '%s' assumes Euclidean distances; got '%s'", method, metric)
    Z = linkage(condensed, method=method, optimal_ordering=optimal_ordering)
    _LOG.info("%s linkage: %s leaves, final merge height %.4f", method.title(), len(leaf_labels), Z[-1, 2])
    return MergeTree(Z, leaf_labels, method, metric)


# =============================================================================
# TREE COMPARISON
# =============================================================================

def entanglement(order_a: Sequence[str], order_b: Sequence[str], power: float = 1.5) -> float:
    """
    Entanglement between two leaf orders of the same labels.

    Sum of |position difference| ** power over labels, normalised by the value
    for fully reversed orders; 0 means no crossing lines in a tanglegram.
    """
    order_a, order_b = list(order_a), list(order_b)
    if sorted(order_a) != sorted(order_b):
        raise ValueError("Both leaf orders must contain the same labels")
    n = len(order_a)
    if n < 2:
        return 0.0
    pos_b = {label: i for i, label in enumerate(order_b)}
    a = np.arange(n)
    b = np.array([pos_b[label] for label in order_a])
    worst = np.sum(np.abs(a - a[::-1]) ** power)
    return float(np.sum(np.abs(a - b) ** power) / worst)


def _ordered_leaves(root, flipped: set) -> List[int]:
    order: List[int] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_leaf():
            order.append(node.id)
            continue
        left, right = node.get_left(), node.get_right()
        if node.id in flipped:
            left, right = right, left
        stack.append(right)
        stack.append(left)
    return order


def _preorder_internal(root) -> List[Any]:
    nodes = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_leaf():
            continue
        nodes.append(node)
        stack.append(node.get_right())
        stack.append(node.get_left())
    return nodes


def untangle(
    left: MergeTree,
    right: MergeTree,
    power: float = 1.5,
    max_passes: int = 10,
) -> Tuple[MergeTree, MergeTree]:
    """
    Greedily rotate internal nodes of ``right`` to reduce entanglement with ``left``.

    Rotations keep the tree itself unchanged, only the drawing order moves.
    The returned entanglement is never higher than the starting one.
    """
    target = left.leaf_order
    root = to_tree(right.linkage_matrix)
    internal = _preorder_internal(root)
    flipped: set = set()

    def score(flips: set) -> float:
        return entanglement(target, [right.labels[i] for i in _ordered_leaves(root, flips)], power)

    best = score(flipped)
    for _ in range(max_passes):
        improved = False
        for node in internal:
            trial = flipped ^ {node.id}
            value = score(trial)
            if value < best:
                flipped, best = trial, value
                improved = True
        if not improved:
            break
    _LOG.info("Untangled %s vs %s: entanglement %.4f", left.method, right.method, best)
    return left, right.rotate(sorted(flipped))


def _cophenetic_agreement(a: MergeTree, b: MergeTree) -> float:
    # Undefined below 3 leaves: a single pairwise distance has no variance
    if a.n_leaves < 3:
        return float("nan")
    ca, cb = a.cophenetic_distances(), b.cophenetic_distances()
    if np.ptp(ca) == 0 or np.ptp(cb) == 0:
        return float("nan")
    return float(np.corrcoef(ca, cb)[0, 1])


def compare_trees(
    trees: Dict[str, MergeTree],
    distances: Optional[pd.DataFrame] = None,
    power: float = 1.5,
) -> pd.DataFrame:
    """
    Pairwise comparison table for merge trees built on the same observations.

    One row per pair with the cophenetic correlation between the trees and their
    entanglement; when ``distances`` is given each tree's own cophenetic
    correlation against it is included.
    """
    names = list(trees)
    rows = []
    for i, a in enumerate(names):
        for b in names[i + 1:]:
            ta, tb = trees[a], trees[b]
            if ta.labels != tb.labels:
                raise ValueError(f"Trees '{a}' and '{b}' are built on different observations")
            row: Dict[str, Any] = {
                "tree_a": a,
                "tree_b": b,
                "cophenetic_correlation": _cophenetic_agreement(ta, tb),
                "entanglement": entanglement(ta.leaf_order, tb.leaf_order, power),
            }
            if distances is not None:
                row["cophenetic_a"] = ta.cophenetic_correlation(distances)
                row["cophenetic_b"] = tb.cophenetic_correlation(distances)
            rows.append(row)
    return pd.DataFrame(rows)
