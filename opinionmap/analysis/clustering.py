"""K-means clustering with automatic K selection and outlier flagging."""

import logging
import random
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..models import OUTLIER_CLUSTER_ID
from .models import ClusteringResult
from .rng import make_rng

logger = logging.getLogger(__name__)


def _squared_distances(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Pairwise squared euclidean distances, shape (n_points, n_centroids)."""
    diff = points[:, None, :] - centroids[None, :, :]
    return np.einsum("ijk,ijk->ij", diff, diff)


def kmeans_plus_plus(points: np.ndarray, k: int, rng: random.Random) -> np.ndarray:
    """Pick initial centroids with probability proportional to squared distance."""
    n_points = points.shape[0]
    centroids = [points[rng.randrange(n_points)]]
    closest = _squared_distances(points, centroids[0][None, :])[:, 0]

    for _ in range(1, k):
        total = float(closest.sum())
        if total <= 0:
            # every point already sits on a centroid
            index = rng.randrange(n_points)
        else:
            target = rng.random() * total
            index = int(np.searchsorted(np.cumsum(closest), target, side="right"))
            index = min(index, n_points - 1)
        centroids.append(points[index])
        closest = np.minimum(closest, _squared_distances(points, points[index][None, :])[:, 0])

    return np.array(centroids, dtype=np.float64)


def _lloyd(
    points: np.ndarray,
    centroids: np.ndarray,
    max_iterations: int,
    tolerance: float,
    rng: random.Random,
) -> Tuple[np.ndarray, np.ndarray, int]:
    n_points = points.shape[0]
    k = centroids.shape[0]
    iterations = 0

    for iterations in range(1, max_iterations + 1):
        labels = np.argmin(_squared_distances(points, centroids), axis=1)

        updated = np.empty_like(centroids)
        for cluster in range(k):
            members = points[labels == cluster]
            if len(members):
                updated[cluster] = members.mean(axis=0)
            else:
                updated[cluster] = points[rng.randrange(n_points)]

        shift = float(np.sqrt(((updated - centroids) ** 2).sum(axis=1)).max())
        centroids = updated
        if shift < tolerance:
            break

    labels = np.argmin(_squared_distances(points, centroids), axis=1)
    return labels, centroids, iterations


def _wcss(points: np.ndarray, centroids: np.ndarray, labels: np.ndarray) -> float:
    return float(((points - centroids[labels]) ** 2).sum())


def silhouette_proxy(
    points: np.ndarray,
    centroids: np.ndarray,
    sample_size: int,
    rng: random.Random,
) -> float:
    """
    Approximate the silhouette score from centroid distances only.

    For each sampled point, ``a`` is the distance to its own (nearest)
    centroid and ``b`` the distance to the next nearest one.
    """
    if centroids.shape[0] < 2:
        return 0.0

    n_points = points.shape[0]
    if n_points > sample_size:
        indices = rng.sample(range(n_points), sample_size)
        points = points[indices]

    distances = np.sqrt(_squared_distances(points, centroids))
    nearest_two = np.partition(distances, 1, axis=1)[:, :2]
    a, b = nearest_two[:, 0], nearest_two[:, 1]
    denom = np.maximum(a, b)
    scores = np.divide(b - a, denom, out=np.zeros_like(denom), where=denom > 0)
    return float(scores.mean())


def _elbow(ks: List[int], wcss: List[float]) -> int:
    """K at the largest second difference of the WCSS curve."""
    if len(ks) < 3:
        return ks[0]
    best_k, best_delta = ks[0], float("-inf")
    for i in range(1, len(ks) - 1):
        delta = (wcss[i - 1] - wcss[i]) - (wcss[i] - wcss[i + 1])
        if delta > best_delta:
            best_k, best_delta = ks[i], delta
    return best_k


def auto_detect_k(
    points: np.ndarray,
    k_min: int = 5,
    k_max: int = 12,
    max_iterations: int = 50,
    tolerance: float = 1e-4,
    sample_size: int = 500,
    rng: Optional[random.Random] = None,
) -> Tuple[int, Dict[int, float]]:
    """
    Choose K by silhouette proxy, falling back to the WCSS elbow.

    Returns:
        Chosen K and the silhouette proxy of every K tried
    """
    rng = rng or make_rng()
    n_points = points.shape[0]
    upper = max(1, min(k_max, n_points))
    lower = max(1, min(k_min, upper))
    if lower == upper:
        return lower, {}

    ks = list(range(lower, upper + 1))
    scores: Dict[int, float] = {}
    wcss: List[float] = []
    for k in ks:
        centroids = kmeans_plus_plus(points, k, rng)
        labels, centroids, _ = _lloyd(points, centroids, max_iterations, tolerance, rng)
        wcss.append(_wcss(points, centroids, labels))
        scores[k] = silhouette_proxy(points, centroids, sample_size, rng)

    finite = [s for s in scores.values() if np.isfinite(s)]
    if finite and max(finite) - min(finite) > 1e-9:
        best_k = max(ks, key=lambda k: (scores[k] if np.isfinite(scores[k]) else float("-inf"), -k))
        logger.info("Auto-detected K=%d (silhouette proxy %.3f)", best_k, scores[best_k])
    else:
        best_k = _elbow(ks, wcss)
        logger.info("Silhouette proxy degenerate, elbow picked K=%d", best_k)

    return best_k, scores


def assignment_confidence(distances: np.ndarray) -> np.ndarray:
    """
    Confidence per point from its distances to every centroid.

    ``(second_nearest - nearest) / second_nearest``, or 1.0 with a single
    centroid.
    """
    if distances.shape[1] < 2:
        return np.ones(distances.shape[0])
    nearest_two = np.partition(distances, 1, axis=1)[:, :2]
    d1, d2 = nearest_two[:, 0], nearest_two[:, 1]
    confidence = np.divide(d2 - d1, d2, out=np.zeros_like(d2), where=d2 > 0)
    return np.clip(confidence, 0.0, 1.0)


def cluster_kmeans(
    vectors: Sequence[Sequence[float]],
    k: Optional[int] = None,
    k_min: int = 5,
    k_max: int = 12,
    max_iterations: int = 100,
    selection_iterations: int = 50,
    tolerance: float = 1e-4,
    confidence_threshold: float = 0.2,
    silhouette_sample_size: int = 500,
    rng: Optional[random.Random] = None,
) -> ClusteringResult:
    """
    Partition vectors with k-means++ and flag low-confidence points.

    Args:
        vectors: Points to cluster (normally the PCA output)
        k: Fixed cluster count; auto-detected in [k_min, k_max] when None
        k_min: Smallest K tried by auto-detection
        k_max: Largest K tried by auto-detection
        max_iterations: Iteration cap for the final pass
        selection_iterations: Iteration cap for each pass while choosing K
        tolerance: Stop once no centroid moves further than this
        confidence_threshold: Points below it are relabelled -1
        silhouette_sample_size: Points used by the silhouette proxy
        rng: Random source; pass a seeded generator for reproducible runs

    Returns:
        ClusteringResult
    """
    points = np.asarray(vectors, dtype=np.float64)
    if points.ndim != 2 or points.shape[0] == 0:
        raise ValueError(f"Expected a non-empty 2-D array of vectors, got shape {points.shape}")
    rng = rng or make_rng()
    n_points = points.shape[0]

    k_scores: Dict[int, float] = {}
    if k is None:
        k, k_scores = auto_detect_k(
            points,
            k_min=k_min,
            k_max=k_max,
            max_iterations=selection_iterations,
            tolerance=tolerance,
            sample_size=silhouette_sample_size,
            rng=rng,
        )
    else:
        k = max(1, min(k, n_points))

    centroids = kmeans_plus_plus(points, k, rng)
    labels, centroids, iterations = _lloyd(points, centroids, max_iterations, tolerance, rng)
    wcss = _wcss(points, centroids, labels)

    confidence = assignment_confidence(np.sqrt(_squared_distances(points, centroids)))
    outliers = confidence < confidence_threshold
    final_labels = np.where(outliers, OUTLIER_CLUSTER_ID, labels)

    outlier_count = int(outliers.sum())
    logger.info(
        "K-means finished: K=%d, %d iterations, %d/%d outliers",
        k, iterations, outlier_count, n_points,
    )

    return ClusteringResult(
        labels=[int(label) for label in final_labels],
        confidence=[float(c) for c in confidence],
        centroids=centroids.tolist(),
        cluster_count=k,
        outlier_count=outlier_count,
        iterations=iterations,
        wcss=wcss,
        k_scores=k_scores,
    )
