"""Reduction, clustering, labeling and time-series analysis."""

from .clustering import auto_detect_k, cluster_kmeans, kmeans_plus_plus, silhouette_proxy
from .labeling import ClusterLabeler, extract_keywords, parse_ai_response, sample_texts
from .models import ClusteringResult, ClusterLabel, PCAResult
from .reduction import normalize_projections_3d, reduce_pca, reduce_umap_3d
from .rng import XorShift32, make_rng
from .time_series import calculate_granularity, generate_time_series_data

__all__ = [
    "reduce_pca",
    "reduce_umap_3d",
    "normalize_projections_3d",
    "cluster_kmeans",
    "auto_detect_k",
    "kmeans_plus_plus",
    "silhouette_proxy",
    "ClusterLabeler",
    "extract_keywords",
    "parse_ai_response",
    "sample_texts",
    "calculate_granularity",
    "generate_time_series_data",
    "XorShift32",
    "make_rng",
    "PCAResult",
    "ClusteringResult",
    "ClusterLabel",
]
