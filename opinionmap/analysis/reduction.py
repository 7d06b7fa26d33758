"""Dimensionality reduction for clustering and 3-D display."""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from .models import PCAResult

logger = logging.getLogger(__name__)

# UMAP's spectral layout needs a handful of points to work with
MIN_UMAP_SAMPLES = 5


def _as_matrix(embeddings: Sequence[Sequence[float]]) -> np.ndarray:
    matrix = np.asarray(embeddings, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        raise ValueError(f"Expected a non-empty 2-D array of embeddings, got shape {matrix.shape}")
    return matrix


def reduce_pca(
    embeddings: Sequence[Sequence[float]],
    n_components: int = 20,
    random_state: Optional[int] = None,
) -> PCAResult:
    """
    Standardize embeddings and project them onto their principal components.

    Args:
        embeddings: N vectors of dimension D
        n_components: Target dimension, capped at min(N, D)
        random_state: Seed for the randomized SVD solver

    Returns:
        PCAResult with the reduced vectors and explained variance ratio
    """
    matrix = _as_matrix(embeddings)
    n_samples, n_features = matrix.shape
    components = max(1, min(n_components, n_samples, n_features))

    scaled = StandardScaler().fit_transform(matrix)
    pca = PCA(n_components=components, random_state=random_state)
    reduced = pca.fit_transform(scaled)

    explained = float(np.nan_to_num(pca.explained_variance_ratio_).sum())
    logger.info(
        "PCA reduced %d x %d to %d dimensions (%.1f%% variance explained)",
        n_samples, n_features, components, explained * 100,
    )

    return PCAResult(
        vectors=reduced,
        n_components=components,
        explained_variance_ratio=explained,
    )


def reduce_umap_3d(
    embeddings: Sequence[Sequence[float]],
    n_neighbors: int = 15,
    min_dist: float = 0.1,
    spread: float = 1.0,
    metric: str = "cosine",
    random_state: Optional[int] = None,
) -> np.ndarray:
    """Project embeddings to exactly three dimensions for display."""
    matrix = _as_matrix(embeddings)
    n_samples = matrix.shape[0]

    if n_samples < MIN_UMAP_SAMPLES:
        logger.warning("Only %d points, using PCA instead of UMAP for 3-D layout", n_samples)
        return _pca_3d(matrix, random_state)

    # umap pulls in numba; import on first use
    import umap

    reducer = umap.UMAP(
        n_components=3,
        n_neighbors=max(2, min(n_neighbors, n_samples - 1)),
        min_dist=min(min_dist, spread),
        spread=spread,
        metric=metric,
        random_state=random_state,
    )
    coords = reducer.fit_transform(matrix)
    logger.info("UMAP projected %d points to 3-D", n_samples)
    return np.asarray(coords, dtype=np.float64)


def _pca_3d(matrix: np.ndarray, random_state: Optional[int]) -> np.ndarray:
    n_samples, n_features = matrix.shape
    components = min(3, n_samples, n_features)
    coords = PCA(n_components=components, random_state=random_state).fit_transform(matrix)
    if components < 3:
        coords = np.hstack([coords, np.zeros((n_samples, 3 - components))])
    return coords


def normalize_projections_3d(
    coords: Sequence[Sequence[float]],
    target_range: Tuple[float, float] = (0.0, 100.0),
) -> np.ndarray:
    """
    Min-max scale each axis into ``target_range``.

    An axis with zero spread maps every point to the middle of the range.
    """
    matrix = np.asarray(coords, dtype=np.float64)
    if matrix.size == 0:
        return matrix.reshape(0, 3)

    low, high = target_range
    mins = matrix.min(axis=0)
    spans = matrix.max(axis=0) - mins

    normalized = np.empty_like(matrix)
    for axis in range(matrix.shape[1]):
        if spans[axis] == 0:
            normalized[:, axis] = (low + high) / 2
        else:
            normalized[:, axis] = (matrix[:, axis] - mins[axis]) / spans[axis] * (high - low) + low

    # float error can step just outside the bounds
    return np.clip(normalized, low, high)
