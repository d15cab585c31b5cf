"""
Clustering Pipelines for the Penguin and Emissions Analyses

Two structured pipelines, each a dataclass whose step methods call the pure
functions in this package and keep their outputs for the next step:

- KMeansPipeline: penguin measurements -> cluster count vote -> k-means ->
  clusters vs species.
- HierarchicalPipeline: top greenhouse-gas emitters -> distance matrix ->
  complete and single linkage trees -> dendrograms and tanglegram.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import pandas as pd

from cluster_lab.utils.io import load_penguins, read_delimited
from cluster_lab.utils.validate import expect_columns

from . import clustering_params as params
from .cluster_count_utils import ClusterCountEstimate, estimate_cluster_count
from .clustering_utils import (
    KMeansResult,
    MergeTree,
    compare_trees,
    compute_distance_matrix,
    hierarchical_clustering,
    run_kmeans,
)
from .clustering_visualizations_utils import (
    cluster_sizes_bar,
    plot_cluster_count_votes,
    plot_contingency_heatmap,
    plot_dendrogram,
    plot_feature_scatter,
    plot_index_panels,
    plot_tanglegram,
)
from .dataset_utils import (
    attach_cluster_labels,
    cluster_agreement,
    cluster_contingency,
    complete_cases,
    numeric_feature_columns,
    top_n_by,
)
from .export_utils import export_to_excel, save_figures
from .normalization_utils import ScaledFeatures, scale_features

_LOG = logging.getLogger(__name__)


@dataclass
class KMeansPipeline:
    """
    K-means analysis of penguin morphology.

    The cluster count used for k-means is ``n_clusters``; the validity-index vote
    from ``estimate_clusters`` is reported alongside but never substituted.
    """

    # Configuration
    data: Optional[pd.DataFrame] = field(default=None, repr=False)
    data_path: Optional[str] = None
    feature_columns: Sequence[str] = params.PENGUIN_FEATURES
    truth_column: str = params.PENGUIN_TRUTH_COLUMN
    style_column: Optional[str] = params.PENGUIN_STYLE_COLUMN
    scatter_x: str = params.PENGUIN_SCATTER_X
    scatter_y: str = params.PENGUIN_SCATTER_Y
    n_clusters: int = params.N_CLUSTERS
    n_restarts: int = params.N_RESTARTS
    max_iter: int = params.MAX_ITER
    min_clusters: int = params.MIN_CLUSTERS
    max_clusters: int = params.MAX_CLUSTERS
    cluster_count_indices: Sequence[str] = params.CLUSTER_COUNT_INDICES
    gap_references: int = params.GAP_REFERENCES
    random_state: Optional[int] = params.RANDOM_STATE
    center: bool = params.SCALE_CENTER
    scale: bool = params.SCALE_SCALE
    on_zero_variance: str = params.ZERO_VARIANCE_POLICY

    # Data containers
    complete: Optional[pd.DataFrame] = field(default=None, repr=False)
    scaled: Optional[ScaledFeatures] = field(default=None, repr=False)
    labelled: Optional[pd.DataFrame] = field(default=None, repr=False)

    # Results containers
    estimate: Optional[ClusterCountEstimate] = field(default=None, repr=False)
    kmeans_result: Optional[KMeansResult] = field(default=None, repr=False)
    analysis_results: Dict[str, Any] = field(default_factory=dict, repr=False)
    figures: Dict[str, plt.Figure] = field(default_factory=dict, repr=False)
    export_files: Dict[str, Any] = field(default_factory=dict, repr=False)

    # Pipeline state
    _data_loaded: bool = field(default=False, init=False, repr=False)
    _features_prepared: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.feature_columns = list(self.feature_columns)
        _LOG.info(
            "K-means pipeline initialized: features=%s, K=%s, restarts=%s",
            self.feature_columns, self.n_clusters, self.n_restarts,
        )

    # Steps
    def load_data(self) -> pd.DataFrame:
        if self.data is None:
            self.data = load_penguins(self.data_path)
        expect_columns(self.data, self.feature_columns + [self.truth_column])
        self._data_loaded = True
        _LOG.info("Data loaded with %s records", len(self.data))
        return self.data

    def plot_raw_features(self) -> plt.Figure:
        if not self._data_loaded:
            raise ValueError("Data must be loaded first. Call load_data().")
        fig = plot_feature_scatter(
            self.data,
            self.scatter_x,
            self.scatter_y,
            hue=self.truth_column,
            style=self.style_column if self.style_column in self.data.columns else None,
            title=f"{self.scatter_y} vs {self.scatter_x} by {self.truth_column}",
        )
        self.figures["raw_features"] = fig
        return fig

    def prepare_features(self) -> ScaledFeatures:
        if not self._data_loaded:
            raise ValueError("Data must be loaded first. Call load_data().")
        self.complete = complete_cases(self.data, self.feature_columns)
        self.scaled = scale_features(
            self.complete,
            self.feature_columns,
            center=self.center,
            scale=self.scale,
            on_zero_variance=self.on_zero_variance,
        )
        self._features_prepared = True
        _LOG.info("Features prepared: %s complete cases x %s features", *self.scaled.data.shape)
        return self.scaled

    def estimate_clusters(self) -> ClusterCountEstimate:
        if not self._features_prepared:
            raise ValueError("Features must be prepared first. Call prepare_features().")
        self.estimate = estimate_cluster_count(
            self.scaled,
            min_clusters=self.min_clusters,
            max_clusters=self.max_clusters,
            indices=self.cluster_count_indices,
            n_references=self.gap_references,
            random_state=self.random_state,
        )
        if self.estimate.best_k is not None and self.estimate.best_k != self.n_clusters:
            _LOG.info(
                "Vote recommends %s clusters; proceeding with the configured %s",
                self.estimate.best_k, self.n_clusters,
            )
        return self.estimate

    def run_kmeans(self, n_clusters: Optional[int] = None) -> KMeansResult:
        if not self._features_prepared:
            raise ValueError("Features must be prepared first. Call prepare_features().")
        k = self.n_clusters if n_clusters is None else n_clusters
        self.kmeans_result = run_kmeans(
            self.scaled,
            k,
            n_restarts=self.n_restarts,
            random_state=self.random_state,
            max_iter=self.max_iter,
        )
        return self.kmeans_result

    def label_observations(self) -> pd.DataFrame:
        if self.kmeans_result is None:
            raise ValueError("K-means must be run first. Call run_kmeans().")
        self.labelled = attach_cluster_labels(self.data, self.kmeans_result.labels)
        return self.labelled

    def summarize(self) -> Dict[str, Any]:
        if self.labelled is None:
            raise ValueError("Observations must be labelled first. Call label_observations().")
        result = self.kmeans_result
        centroids = self.scaled.inverse_transform(result.centroids)
        centroids.insert(0, "size", result.sizes)
        centroids.index.name = "cluster"
        self.analysis_results = {
            "contingency": cluster_contingency(self.labelled, self.truth_column),
            "agreement": cluster_agreement(self.labelled, self.truth_column),
            "cluster_summary": centroids,
            "inertia": result.inertia,
        }
        _LOG.info("Cluster vs %s agreement: %s", self.truth_column, self.analysis_results["agreement"])
        return self.analysis_results

    def generate_visualizations(self, show_plots: bool = False) -> Dict[str, plt.Figure]:
        if not self.analysis_results:
            raise ValueError("No results available. Call summarize() first.")
        if "raw_features" not in self.figures:
            self.plot_raw_features()
        if self.estimate is not None:
            self.figures["index_panels"] = plot_index_panels(self.estimate)
            self.figures["cluster_votes"] = plot_cluster_count_votes(self.estimate)
        self.figures["clusters"] = plot_feature_scatter(
            self.labelled,
            self.scatter_x,
            self.scatter_y,
            hue="cluster",
            style=self.truth_column,
            title=f"K-means clusters (K={self.kmeans_result.n_clusters}) vs {self.truth_column}",
        )
        self.figures["contingency"] = plot_contingency_heatmap(
            self.analysis_results["contingency"], title=f"{self.truth_column.title()} vs cluster"
        )
        self.figures["cluster_sizes"] = cluster_sizes_bar(self.kmeans_result.labels)
        if show_plots:
            plt.show()
        _LOG.info("Generated %s figures", len(self.figures))
        return self.figures

    def export_results(self, output_dir: str = params.EXPORT_DIR) -> Dict[str, Any]:
        if not self.analysis_results:
            raise ValueError("No results available. Call summarize() first.")
        sheets = {
            "assignments": self.labelled,
            "contingency": self.analysis_results["contingency"],
            "cluster_summary": self.analysis_results["cluster_summary"],
        }
        if self.estimate is not None:
            sheets["cluster_count_votes"] = self.estimate.summary().set_index("index")
            sheets["index_scores"] = self.estimate.scores
        self.export_files["workbook"] = export_to_excel(sheets, os.path.join(output_dir, "kmeans_results.xlsx"))
        if self.figures:
            self.export_files["figures"] = save_figures(
                {f"kmeans_{name}": fig for name, fig in self.figures.items()}, output_dir
            )
        return self.export_files

    def run_complete_analysis(
        self,
        n_clusters_override: Optional[int] = None,
        estimate_clusters: bool = True,
        show_visualizations: bool = params.SHOW_VISUALIZATIONS,
        export_results: bool = params.EXPORT_RESULTS,
    ) -> Dict[str, Any]:
        _LOG.info("Starting k-means analysis at %s", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
        self.load_data()
        self.plot_raw_features()
        self.prepare_features()
        if estimate_clusters:
            self.estimate_clusters()
        self.run_kmeans(n_clusters_override)
        self.label_observations()
        self.summarize()
        self.generate_visualizations(show_plots=show_visualizations)
        if export_results:
            self.export_results()
        return {
            "data_shape": self.data.shape,
            "complete_cases": len(self.complete),
            "recommended_k": None if self.estimate is None else self.estimate.best_k,
            "n_clusters": self.kmeans_result.n_clusters,
            "kmeans_result": self.kmeans_result,
            "analysis_results": self.analysis_results,
            "export_files": self.export_files,
            "completion_time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }


@dataclass
class HierarchicalPipeline:
    """
    Hierarchical clustering of the top greenhouse-gas emitters.

    Rows are re-indexed by ``id_column`` once the top emitters are selected, so
    country names label the distance matrix and the dendrogram leaves.
    """

    # Configuration
    data_path: Optional[str] = None
    data: Optional[pd.DataFrame] = field(default=None, repr=False)
    separator: str = params.EMISSIONS_SEPARATOR
    id_column: str = params.EMISSIONS_ID_COLUMN
    rank_column: str = params.EMISSIONS_RANK_COLUMN
    feature_columns: Optional[Sequence[str]] = params.EMISSIONS_FEATURES
    top_n: int = params.TOP_N_EMITTERS
    metric: str = params.DISTANCE_METRIC
    methods: Tuple[str, ...] = params.LINKAGE_METHODS
    optimal_ordering: bool = params.OPTIMAL_LEAF_ORDERING
    entanglement_power: float = params.ENTANGLEMENT_POWER
    cut_clusters: int = params.DENDROGRAM_CUT_CLUSTERS
    center: bool = params.SCALE_CENTER
    scale: bool = params.SCALE_SCALE
    on_zero_variance: str = params.ZERO_VARIANCE_POLICY

    # Data containers
    top: Optional[pd.DataFrame] = field(default=None, repr=False)
    scaled: Optional[ScaledFeatures] = field(default=None, repr=False)
    distances: Optional[pd.DataFrame] = field(default=None, repr=False)

    # Results containers
    trees: Dict[str, MergeTree] = field(default_factory=dict, repr=False)
    comparison: Optional[pd.DataFrame] = field(default=None, repr=False)
    cuts: Optional[pd.DataFrame] = field(default=None, repr=False)
    figures: Dict[str, plt.Figure] = field(default_factory=dict, repr=False)
    export_files: Dict[str, Any] = field(default_factory=dict, repr=False)

    # Pipeline state
    _data_loaded: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if len(self.methods) < 1:
            raise ValueError("At least one linkage method is required")
        self.methods = tuple(m.lower() for m in self.methods)
        duplicated = sorted({m for m in self.methods if self.methods.count(m) > 1})
        if duplicated:
            raise ValueError(f"Linkage methods listed more than once: {duplicated}")
        _LOG.info(
            "Hierarchical pipeline initialized: top %s by '%s', linkages=%s",
            self.top_n, self.rank_column, self.methods,
        )

    # Steps
    def load_data(self) -> pd.DataFrame:
        if self.data is None:
            if self.data_path is None:
                raise ValueError("Either data or data_path must be provided")
            self.data = read_delimited(self.data_path, sep=self.separator)
        expect_columns(self.data, [self.id_column, self.rank_column])
        if self.feature_columns is None:
            self.feature_columns = numeric_feature_columns(self.data, exclude=[self.id_column])
        self.feature_columns = list(self.feature_columns)
        expect_columns(self.data, self.feature_columns)
        self._data_loaded = True
        _LOG.info("Data loaded with %s records, features %s", len(self.data), self.feature_columns)
        return self.data

    def select_top_emitters(self) -> pd.DataFrame:
        if not self._data_loaded:
            raise ValueError("Data must be loaded first. Call load_data().")
        complete = complete_cases(self.data, self.feature_columns + [self.rank_column])
        self.top = top_n_by(complete, self.rank_column, self.top_n, id_col=self.id_column)
        _LOG.info("Selected %s top emitters by '%s'", len(self.top), self.rank_column)
        return self.top

    def prepare_features(self) -> ScaledFeatures:
        if self.top is None:
            raise ValueError("Top emitters must be selected first. Call select_top_emitters().")
        self.scaled = scale_features(
            self.top,
            self.feature_columns,
            center=self.center,
            scale=self.scale,
            on_zero_variance=self.on_zero_variance,
        )
        return self.scaled

    def compute_distances(self) -> pd.DataFrame:
        if self.scaled is None:
            raise ValueError("Features must be prepared first. Call prepare_features().")
        self.distances = compute_distance_matrix(self.scaled, metric=self.metric)
        return self.distances

    def build_trees(self) -> Dict[str, MergeTree]:
        if self.distances is None:
            raise ValueError("Distances must be computed first. Call compute_distances().")
        self.trees = {
            method: hierarchical_clustering(
                self.distances,
                method=method,
                optimal_ordering=self.optimal_ordering,
                metric=self.metric,
            )
            for method in self.methods
        }
        return self.trees

    def compare_trees(self) -> pd.DataFrame:
        if not self.trees:
            raise ValueError("No trees available. Call build_trees() first.")
        self.comparison = compare_trees(self.trees, self.distances, power=self.entanglement_power)
        k = min(self.cut_clusters, len(self.distances))
        self.cuts = pd.concat([tree.cut(k) for tree in self.trees.values()], axis=1)
        _LOG.info("Tree comparison:\n%s", self.comparison.to_string(index=False))
        return self.comparison

    def generate_visualizations(self, show_plots: bool = False) -> Dict[str, plt.Figure]:
        if not self.trees:
            raise ValueError("No trees available. Call build_trees() first.")
        for method, tree in self.trees.items():
            self.figures[f"dendrogram_{method}"] = plot_dendrogram(
                tree,
                n_clusters=min(self.cut_clusters, tree.n_leaves),
                title=f"{method.title()} linkage, top {tree.n_leaves} emitters",
            )
        names = list(self.trees)
        if len(names) >= 2:
            left, right = self.trees[names[0]], self.trees[names[1]]
            self.figures["tanglegram"] = plot_tanglegram(left, right, power=self.entanglement_power)
        if show_plots:
            plt.show()
        _LOG.info("Generated %s figures", len(self.figures))
        return self.figures

    def export_results(self, output_dir: str = params.EXPORT_DIR) -> Dict[str, Any]:
        if not self.trees:
            raise ValueError("No trees available. Call build_trees() first.")
        sheets: Dict[str, pd.DataFrame] = {"top_emitters": self.top, "distances": self.distances}
        for method, tree in self.trees.items():
            sheets[f"merges_{method}"] = tree.merges.set_index("step")
        if self.comparison is not None and not self.comparison.empty:
            sheets["comparison"] = self.comparison.set_index(["tree_a", "tree_b"])
        if self.cuts is not None:
            sheets["cuts"] = self.cuts
        self.export_files["workbook"] = export_to_excel(
            sheets, os.path.join(output_dir, "hierarchical_results.xlsx")
        )
        if self.figures:
            self.export_files["figures"] = save_figures(
                {f"hierarchical_{name}": fig for name, fig in self.figures.items()}, output_dir
            )
        return self.export_files

    def run_complete_analysis(
        self,
        show_visualizations: bool = params.SHOW_VISUALIZATIONS,
        export_results: bool = params.EXPORT_RESULTS,
    ) -> Dict[str, Any]:
        _LOG.info("Starting hierarchical analysis at %s", datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
        self.load_data()
        self.select_top_emitters()
        self.prepare_features()
        self.compute_distances()
        self.build_trees()
        self.compare_trees()
        self.generate_visualizations(show_plots=show_visualizations)
        if export_results:
            self.export_results()
        return {
            "data_shape": self.data.shape,
            "observations": list(self.top.index),
            "trees": self.trees,
            "comparison": self.comparison,
            "cuts": self.cuts,
            "export_files": self.export_files,
            "completion_time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }
