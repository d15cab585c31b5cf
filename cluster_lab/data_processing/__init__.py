"""
Data Processing Module

This module contains the clustering analysis utilities:
- Feature scaling and table shaping
- Cluster count estimation
- K-means and hierarchical clustering
- Visualizations and result export
"""
