"""
Centralized Parameters for Clustering Analysis

This module provides a single place to define all clustering analysis parameters.
Simple, clean, and easy to modify without unnecessary complexity.
"""

# =============================================================================
# PENGUIN (K-MEANS) DATASET
# =============================================================================

# Numeric measurements used for clustering
PENGUIN_FEATURES = (
    'bill_length_mm',
    'bill_depth_mm',
    'flipper_length_mm',
    'body_mass_g',
)

# Categorical metadata carried alongside the measurements
PENGUIN_TRUTH_COLUMN = 'species'
PENGUIN_STYLE_COLUMN = 'sex'

# Axes for the raw-feature and cluster scatter plots
PENGUIN_SCATTER_X = 'bill_length_mm'
PENGUIN_SCATTER_Y = 'bill_depth_mm'

# =============================================================================
# EMISSIONS (HIERARCHICAL) DATASET
# =============================================================================

EMISSIONS_SEPARATOR = ','
EMISSIONS_ID_COLUMN = 'country'          # Row identity / dendrogram leaf label
EMISSIONS_RANK_COLUMN = 'ghg_emissions'  # Greenhouse-gas column used for ranking
EMISSIONS_FEATURES = None                # None = every numeric column
TOP_N_EMITTERS = 20

# =============================================================================
# SCALING
# =============================================================================

SCALE_CENTER = True
SCALE_SCALE = True
ZERO_VARIANCE_POLICY = 'flag'   # 'flag' or 'raise'

# =============================================================================
# CLUSTER COUNT ESTIMATION
# =============================================================================

# Range of cluster numbers to test during optimization
MIN_CLUSTERS = 2
MAX_CLUSTERS = 8

# Validity indices voting on the cluster count
CLUSTER_COUNT_INDICES = (
    'silhouette',
    'calinski_harabasz',
    'davies_bouldin',
    'elbow',
    'hartigan',
    'krzanowski_lai',
    'gap',
)
GAP_REFERENCES = 10

# =============================================================================
# K-MEANS PARAMETERS
# =============================================================================

# Cluster count used for the penguin analysis (chosen over the vote on domain grounds)
N_CLUSTERS = 3
N_RESTARTS = 25
MAX_ITER = 300

# Random state for reproducible results
RANDOM_STATE = 42

# =============================================================================
# HIERARCHICAL PARAMETERS
# =============================================================================

DISTANCE_METRIC = 'euclidean'
LINKAGE_METHODS = ('complete', 'single')
OPTIMAL_LEAF_ORDERING = True
ENTANGLEMENT_POWER = 1.5
DENDROGRAM_CUT_CLUSTERS = 4

# =============================================================================
# OUTPUT AND VISUALIZATION
# =============================================================================

# Whether to show plots and visualizations
SHOW_VISUALIZATIONS = True

# Whether to export results to Excel files
EXPORT_RESULTS = False
EXPORT_DIR = 'exports'


def get_clustering_params() -> dict:
    """Return every parameter above as a plain dict."""
    return {
        name.lower(): value
        for name, value in globals().items()
        if name.isupper()
    }
