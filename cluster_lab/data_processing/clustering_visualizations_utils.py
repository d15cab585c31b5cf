# cluster_lab/data_processing/clustering_visualizations_utils.py

from __future__ import annotations
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy.cluster.hierarchy import dendrogram

from .cluster_count_utils import ClusterCountEstimate
from .clustering_utils import MergeTree, entanglement, untangle

# ----------------------------------------------------------------------
# 1) Scatter of two numeric features with categorical encodings
#    Used for the raw penguin measurements and for clusters vs species
# ----------------------------------------------------------------------

def plot_feature_scatter(df: pd.DataFrame,
                         x: str,
                         y: str,
                         hue: Optional[str] = None,
                         style: Optional[str] = None,
                         title: Optional[str] = None,
                         figsize: Tuple[int, int] = (9, 7)) -> plt.Figure:
    """
    Scatter plot keyed by two numeric columns, coloured by ``hue`` and with
    marker shape from ``style``. Rows missing any of the plotted columns are left out.
    """
    data = df.dropna(subset=[c for c in (x, y, hue, style) if c is not None])
    if hue is not None and pd.api.types.is_numeric_dtype(data[hue]):
        # Cluster ids are categories, not a colour scale
        data = data.assign(**{hue: data[hue].astype("string")})

    fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(data=data, x=x, y=y, hue=hue, style=style, ax=ax, s=40, alpha=0.85)
    ax.set_title(title or f"{y} vs {x}")
    ax.set_xlabel(x)
    ax.set_ylabel(y)
    ax.grid(True, alpha=0.3)
    if hue is not None or style is not None:
        ax.legend(loc="best", fontsize=8)
    fig.tight_layout()
    return fig


# ----------------------------------------------------------------------
# 2) Cluster-count diagnostics: score panels and vote tally
# ----------------------------------------------------------------------

def plot_index_panels(estimate: ClusterCountEstimate,
                      figsize: Optional[Tuple[int, int]] = None) -> plt.Figure:
    """
    One panel per validity index: score vs K with the index's preferred K marked.
    Abstaining indices get an empty panel saying so.
    """
    names = list(estimate.votes)
    n_cols = min(4, max(1, len(names)))
    n_rows = int(np.ceil(len(names) / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize or (4 * n_cols, 3.2 * n_rows), squeeze=False)

    for ax, name in zip(axes.flat, names):
        ax.set_title(name.replace("_", " ").title())
        if name in estimate.failures or name not in estimate.scores.columns:
            ax.text(0.5, 0.5, "abstained", ha="center", va="center", transform=ax.transAxes)
            ax.set_xticks([])
            ax.set_yticks([])
            continue
        scores = estimate.scores[name]
        ax.plot(scores.index, scores.values, marker="o")
        ax.axvline(estimate.votes[name], ls="--", color="r", label=f"K={estimate.votes[name]}")
        ax.set_xlabel("K")
        ax.grid(True, alpha=0.3)
        ax.legend(loc="best")
    for ax in list(axes.flat)[len(names):]:
        ax.set_visible(False)

    fig.tight_layout()
    return fig


def plot_cluster_count_votes(estimate: ClusterCountEstimate,
                             title: str = "Recommended number of clusters") -> plt.Figure:
    """Bar chart of how many indices voted for each candidate K."""
    counts = estimate.vote_counts
    fig, ax = plt.subplots(figsize=(8, 5))
    colors = ["tab:red" if k == estimate.best_k else "tab:blue" for k in counts.index]
    ax.bar(counts.index.astype(str), counts.values, color=colors)
    ax.set_title(title)
    ax.set_xlabel("Number of clusters")
    ax.set_ylabel("Number of indices")
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()
    return fig


# ----------------------------------------------------------------------
# 3) Cluster sizes and cluster-vs-category agreement
# ----------------------------------------------------------------------

def cluster_sizes_bar(labels: Sequence[int], title: str = "Cluster sizes") -> plt.Figure:
    """
    Bar chart of counts per cluster.
    """
    counts = pd.Series(labels, name="cluster").value_counts().sort_index()

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.bar(range(len(counts)), counts.values)
    ax.set_xticks(range(len(counts)))
    ax.set_xticklabels(counts.index, rotation=0)
    ax.set_title(title)
    ax.set_ylabel("Count")
    ax.set_xlabel("Cluster")
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()
    return fig


def plot_contingency_heatmap(table: pd.DataFrame,
                             title: str = "Category vs cluster",
                             figsize: Tuple[int, int] = (8, 5)) -> plt.Figure:
    """Annotated heatmap of a contingency table (margins are dropped)."""
    body = table.drop(index="Total", columns="Total", errors="ignore")
    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(body, annot=True, fmt="d", cmap="YlGnBu", cbar_kws={"label": "Count"}, ax=ax)
    ax.set_title(title)
    ax.set_xlabel("Cluster")
    ax.set_ylabel(body.index.name or "")
    fig.tight_layout()
    return fig


# ----------------------------------------------------------------------
# 4) Dendrogram of one merge tree
# ----------------------------------------------------------------------

def _color_threshold(tree: MergeTree, n_clusters: Optional[int]) -> Optional[float]:
    if n_clusters is None or n_clusters < 2 or n_clusters > tree.n_leaves:
        return None
    heights = np.sort(tree.heights)
    if n_clusters > len(heights):
        return None
    # Between the merge that leaves n_clusters groups and the one before it
    return float((heights[-(n_clusters - 1)] + heights[-n_clusters]) / 2)


def plot_dendrogram(tree: MergeTree,
                    n_clusters: Optional[int] = None,
                    orientation: str = "top",
                    title: Optional[str] = None,
                    figsize: Tuple[int, int] = (14, 7)) -> plt.Figure:
    """
    Dendrogram with leaves labelled by row identity and branch heights equal to
    merge heights. With ``n_clusters`` the branches below the cut are coloured
    per group.
    """
    fig, ax = plt.subplots(figsize=figsize)
    threshold = _color_threshold(tree, n_clusters)
    dendrogram(
        tree.linkage_matrix,
        labels=tree.labels,
        orientation=orientation,
        color_threshold=threshold if threshold is not None else 0,
        above_threshold_color="grey",
        leaf_rotation=90 if orientation in ("top", "bottom") else 0,
        leaf_font_size=9,
        ax=ax,
    )
    if threshold is not None:
        line = ax.axhline if orientation in ("top", "bottom") else ax.axvline
        line(threshold, ls="--", color="r", lw=0.8)
    ax.set_title(title or f"{tree.method.title()} linkage dendrogram")
    if orientation in ("top", "bottom"):
        ax.set_ylabel("Merge height")
    else:
        ax.set_xlabel("Merge height")
    fig.tight_layout()
    return fig


# ----------------------------------------------------------------------
# 5) Tanglegram: two dendrograms facing each other, matching leaves joined
# ----------------------------------------------------------------------

def plot_tanglegram(left: MergeTree,
                    right: MergeTree,
                    untangle_first: bool = True,
                    power: float = 1.5,
                    title: Optional[str] = None,
                    figsize: Optional[Tuple[int, int]] = None) -> plt.Figure:
    """
    Side-by-side dendrograms of two trees over the same observations.

    Lines join each label's leaf in the left tree to its leaf in the right tree;
    straight grey lines mean the label sits at the same position in both,
    coloured lines show reordering. The entanglement is shown in the title.
    """
    if sorted(left.labels) != sorted(right.labels):
        raise ValueError("Tanglegram trees must share the same leaf labels")
    if untangle_first:
        left, right = untangle(left, right, power=power)

    n = left.n_leaves
    fig, (ax_l, ax_mid, ax_r) = plt.subplots(
        1, 3,
        figsize=figsize or (14, max(6, 0.35 * n)),
        gridspec_kw={"width_ratios": [1, 0.9, 1], "wspace": 0.02},
    )
    dendrogram(left.linkage_matrix, labels=left.labels, orientation="left",
               no_labels=True, color_threshold=0, above_threshold_color="tab:blue", ax=ax_l)
    dendrogram(right.linkage_matrix, labels=right.labels, orientation="right",
               no_labels=True, color_threshold=0, above_threshold_color="tab:green", ax=ax_r)

    # scipy places leaf i at 5 + 10 * i along the leaf axis, bottom to top
    left_order, right_order = left.leaf_order, right.leaf_order
    y_left = {label: 5 + 10 * i for i, label in enumerate(left_order)}
    y_right = {label: 5 + 10 * i for i, label in enumerate(right_order)}
    palette = sns.color_palette("husl", n)
    for i, label in enumerate(left_order):
        same = y_left[label] == y_right[label]
        ax_mid.plot([0.3, 0.7], [y_left[label], y_right[label]],
                    color="grey" if same else palette[i], lw=1.2, ls="-" if same else "--")
        ax_mid.text(0.29, y_left[label], label, ha="right", va="center", fontsize=8)
        ax_mid.text(0.71, y_right[label], label, ha="left", va="center", fontsize=8)

    ax_mid.set_xlim(0, 1)
    for ax in (ax_l, ax_mid, ax_r):
        ax.set_ylim(0, 10 * n)
        ax.set_yticks([])
        for spine in ax.spines.values():
            spine.set_visible(False)
    ax_mid.set_xticks([])
    ax_l.set_title(f"{left.method.title()} linkage")
    ax_r.set_title(f"{right.method.title()} linkage")
    score = entanglement(left_order, right_order, power)
    fig.suptitle(title or f"Tanglegram (entanglement = {score:.3f})")
    return fig
