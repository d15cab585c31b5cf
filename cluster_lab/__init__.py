from __future__ import annotations
import logging

from .utils.io import load_penguins, read_delimited
from .utils.validate import expect_columns, expect_non_empty
from .data_processing.normalization_utils import ScaledFeatures, ZeroVarianceError, scale_features
from .data_processing.cluster_count_utils import ClusterCountEstimate, estimate_cluster_count
from .data_processing.clustering_utils import (
    InvalidClusterCountError,
    KMeansResult,
    MergeTree,
    compare_trees,
    compute_distance_matrix,
    entanglement,
    hierarchical_clustering,
    run_kmeans,
    untangle,
)
from .data_processing.clustering_pipeline import HierarchicalPipeline, KMeansPipeline

__all__ = [
    "load_penguins", "read_delimited",
    "expect_columns", "expect_non_empty",
    "ScaledFeatures", "ZeroVarianceError", "scale_features",
    "ClusterCountEstimate", "estimate_cluster_count",
    "InvalidClusterCountError", "KMeansResult", "MergeTree",
    "run_kmeans", "compute_distance_matrix", "hierarchical_clustering",
    "compare_trees", "entanglement", "untangle",
    "KMeansPipeline", "HierarchicalPipeline",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
