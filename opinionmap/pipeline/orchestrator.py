"""Pipeline orchestrator that turns a pending session into an opinion map."""

import logging
import math
import time
import traceback
from typing import Dict, List, Optional

import numpy as np
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from ..analysis import (
    ClusterLabeler,
    cluster_kmeans,
    make_rng,
    normalize_projections_3d,
    reduce_pca,
    reduce_umap_3d,
)
from ..config import Config, ConfigModel
from ..errors import (
    NoCoherentOpinionsError,
    SampleIntegrityError,
    SessionCancelledError,
    VectorizationError,
)
from ..models import OUTLIER_CLUSTER_ID, OpinionCluster, OpinionSession, Projection, SessionStatus
from ..providers import EmbeddingProvider, LLMProvider, get_embedding_provider, get_llm_provider
from ..store import ContentStore
from .models import PipelineResult
from .sessions import SessionManager
from .vectorization import Vectorizer

console = Console()
logger = logging.getLogger(__name__)

PROJECTION_BATCH_SIZE = 1000


class PipelineStage:
    """Represents a pipeline stage."""

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.success = False
        self.error: Optional[str] = None
        self.stats: Dict = {}

    def start(self):
        """Mark stage as started."""
        self.start_time = time.time()

    def complete(self, stats: Optional[Dict] = None):
        """Mark stage as completed successfully."""
        self.end_time = time.time()
        self.success = True
        if stats:
            self.stats.update(stats)

    def fail(self, error: str):
        """Mark stage as failed."""
        self.end_time = time.time()
        self.success = False
        self.error = error

    @property
    def duration(self) -> float:
        """Get stage duration in seconds."""
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return 0.0


class OpinionMapPipeline:
    """Runs vectorize, reduce, cluster and label for one session."""

    def __init__(
        self,
        store: ContentStore,
        embedding_provider: EmbeddingProvider,
        llm_provider: LLMProvider,
        config: Optional[ConfigModel] = None,
        show_progress: bool = False,
        sleep=time.sleep,
    ) -> None:
        """
        Initialize pipeline.

        Args:
            store: Content store handle used by every stage
            embedding_provider: Embedding service
            llm_provider: Text generation service for labels
            config: Pipeline settings (defaults when omitted)
            show_progress: Render rich progress and a summary table
            sleep: Blocking sleep for backoff (injected in tests)
        """
        self.store = store
        self.embedding_provider = embedding_provider
        self.llm_provider = llm_provider
        self.config = config or ConfigModel()
        self.show_progress = show_progress
        self.sessions = SessionManager(store)
        self.vectorizer = Vectorizer(store, embedding_provider, self.config.vectorization, sleep=sleep)
        labeling = self.config.labeling
        self.labeler = ClusterLabeler(
            llm_provider,
            max_posts=labeling.max_posts,
            top_keywords=labeling.top_keywords,
            max_retries=labeling.max_retries,
            base_retry_delay=labeling.base_retry_delay,
            temperature=labeling.temperature,
            max_tokens=labeling.max_tokens,
            ai_confidence=labeling.ai_confidence,
            fallback_confidence=labeling.fallback_confidence,
            sleep=sleep,
        )
        self.stages = [
            PipelineStage("vectorize", "Vectorizing posts"),
            PipelineStage("reduce", "Reducing dimensions"),
            PipelineStage("cluster", "Clustering opinions"),
            PipelineStage("label", "Labelling clusters"),
        ]

    @classmethod
    def from_config(cls, config: Config, store: ContentStore, show_progress: bool = False) -> "OpinionMapPipeline":
        """Build a pipeline with providers resolved from configuration."""
        return cls(
            store,
            embedding_provider=get_embedding_provider(config),
            llm_provider=get_llm_provider(config),
            config=config.config,
            show_progress=show_progress,
        )

    def _check_cancelled(self, session_id: str) -> None:
        if self.sessions.is_cancelled(session_id):
            raise SessionCancelledError(f"Session {session_id} was cancelled")

    def _update(self, session_id: str, status: SessionStatus, progress: int, message: str, **counters) -> None:
        self.sessions.update_progress(session_id, status, progress, message, **counters)

    def run(self, session_id: str) -> PipelineResult:
        """
        Run the pipeline for a pending session.

        Failures are recorded on the session rather than raised.

        Returns:
            PipelineResult describing the final state
        """
        started = time.time()
        session = self.sessions.get_session(session_id)
        result = PipelineResult(session_id=session_id, status=session.status)

        if not session.is_active:
            logger.warning("Session %s is already %s, nothing to do", session_id, session.status.value)
            result.success = session.status == SessionStatus.COMPLETED
            return result

        if self.show_progress:
            console.print(Panel.fit(
                f"Opinion Map Pipeline\n"
                f"Zone: {session.zone_id} • Session: {session_id} • "
                f"Posts: {len(session.config.sampled_post_ids)}",
                style="bold blue"
            ))

        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TimeElapsedColumn(),
                console=console,
                disable=not self.show_progress,
            ) as progress:
                self._execute_pipeline(session, progress, result)
        except SessionCancelledError as e:
            logger.info("%s", e)
            result.error = "Cancelled"
        except Exception as e:
            logger.exception("Pipeline failed for session %s", session_id)
            self.sessions.mark_failed(session_id, str(e), traceback.format_exc())
            result.error = str(e)

        final = self.sessions.get_session(session_id)
        result.status = final.status
        result.success = final.status == SessionStatus.COMPLETED
        result.execution_time_ms = int((time.time() - started) * 1000)
        result.stage_stats = {
            stage.name: {
                "duration": stage.duration,
                "success": stage.success,
                "error": stage.error,
                **stage.stats,
            }
            for stage in self.stages
        }
        result.usage = {
            "embedding": self.embedding_provider.get_usage_stats(),
            "llm": self.llm_provider.get_usage_stats(),
        }

        if self.show_progress:
            self._print_summary(result)
        return result

    def _execute_pipeline(self, session: OpinionSession, progress: Progress, result: PipelineResult) -> None:
        """Execute the pipeline stages."""
        session_id = session.session_id
        zone_id = session.zone_id
        session_config = session.config
        settings = self.config
        seed = session_config.seed if session_config.seed is not None else settings.clustering.seed
        post_ids = session_config.sampled_post_ids

        # Stage 1: Vectorize
        stage = self.stages[0]
        task = progress.add_task(stage.description, total=1)
        stage.start()

        try:
            if not post_ids:
                raise SampleIntegrityError("Session has no sampled posts")
            self._check_cancelled(session_id)
            self._update(
                session_id, SessionStatus.VECTORIZING, 0,
                f"Vectorizing {len(post_ids)} posts", total_tweets=len(post_ids),
            )

            def on_progress(done: int, total: int) -> None:
                self._update(
                    session_id, SessionStatus.VECTORIZING, math.floor(done / total * 20),
                    f"Vectorized {done}/{total} posts",
                )

            vectorization = self.vectorizer.ensure_embeddings(
                post_ids,
                should_cancel=lambda: self.sessions.is_cancelled(session_id),
                on_progress=on_progress,
            )
            if not vectorization.success:
                raise VectorizationError(
                    f"Only {vectorization.vectorized} of {vectorization.total} posts could be vectorized"
                )

            posts = self.vectorizer.fetch_embeddings(post_ids)
            result.total_posts = len(posts)
            stage.complete(vectorization.model_dump())
            progress.advance(task, 1)

        except Exception as e:
            stage.fail(str(e))
            raise

        # Stage 2: Reduce
        stage = self.stages[1]
        progress.remove_task(task)
        task = progress.add_task(stage.description, total=1)
        stage.start()

        try:
            self._check_cancelled(session_id)
            self._update(
                session_id, SessionStatus.REDUCING, 20,
                "Reducing dimensions", vectorized_tweets=len(posts),
            )
            embeddings = np.array([p.embedding for p in posts], dtype=np.float64)

            self._update(session_id, SessionStatus.REDUCING, 25, "Running PCA")
            pca = reduce_pca(embeddings, settings.reduction.pca_components, random_state=seed)
            result.explained_variance = pca.explained_variance_ratio
            self._update(
                session_id, SessionStatus.REDUCING, 40,
                f"PCA kept {pca.explained_variance_ratio:.0%} of variance",
            )

            self._check_cancelled(session_id)
            self._update(session_id, SessionStatus.REDUCING, 45, "Projecting to 3-D")
            reduction = settings.reduction
            coords = reduce_umap_3d(
                embeddings,
                n_neighbors=reduction.umap_neighbors,
                min_dist=reduction.umap_min_dist,
                spread=reduction.umap_spread,
                metric=reduction.umap_metric,
                random_state=seed,
            )
            coords = normalize_projections_3d(coords, (reduction.target_min, reduction.target_max))

            stage.complete({
                "pca_components": pca.n_components,
                "explained_variance": pca.explained_variance_ratio,
            })
            progress.advance(task, 1)

        except Exception as e:
            stage.fail(str(e))
            raise

        # Stage 3: Cluster
        stage = self.stages[2]
        progress.remove_task(task)
        task = progress.add_task(stage.description, total=1)
        stage.start()

        try:
            self._check_cancelled(session_id)
            self._update(session_id, SessionStatus.CLUSTERING, 60, "Clustering opinions")
            clustering_settings = settings.clustering
            clustering = cluster_kmeans(
                pca.vectors,
                k=session_config.k if session_config.k is not None else clustering_settings.k,
                k_min=clustering_settings.k_min,
                k_max=clustering_settings.k_max,
                max_iterations=clustering_settings.max_iterations,
                selection_iterations=clustering_settings.selection_iterations,
                tolerance=clustering_settings.tolerance,
                confidence_threshold=clustering_settings.confidence_threshold,
                silhouette_sample_size=clustering_settings.silhouette_sample_size,
                rng=make_rng(seed),
            )
            cluster_ids = clustering.cluster_ids
            if not cluster_ids:
                raise NoCoherentOpinionsError(
                    f"No coherent opinions found: all {len(posts)} posts were classified as outliers"
                )
            result.outlier_count = clustering.outlier_count
            self._update(
                session_id, SessionStatus.CLUSTERING, 65,
                f"Found {len(cluster_ids)} clusters", outlier_count=clustering.outlier_count,
            )

            projections = [
                Projection(
                    tweet_db_id=post.id,
                    zone_id=zone_id,
                    session_id=session_id,
                    x=float(coords[i][0]),
                    y=float(coords[i][1]),
                    z=float(coords[i][2]),
                    cluster_id=clustering.labels[i],
                    cluster_confidence=clustering.confidence[i],
                    is_outlier=clustering.labels[i] == OUTLIER_CLUSTER_ID,
                )
                for i, post in enumerate(posts)
            ]
            for start in range(0, len(projections), PROJECTION_BATCH_SIZE):
                self.store.save_projections(projections[start:start + PROJECTION_BATCH_SIZE])
            self._update(session_id, SessionStatus.CLUSTERING, 70, f"Saved {len(projections)} projections")

            stage.complete({
                "k": clustering.cluster_count,
                "clusters": len(cluster_ids),
                "outliers": clustering.outlier_count,
                "iterations": clustering.iterations,
            })
            progress.advance(task, 1)

        except Exception as e:
            stage.fail(str(e))
            raise

        # Stage 4: Label
        stage = self.stages[3]
        progress.remove_task(task)
        task = progress.add_task(stage.description, total=len(cluster_ids))
        stage.start()

        try:
            self._update(session_id, SessionStatus.LABELING, 75, f"Labelling {len(cluster_ids)} clusters")
            clusters: List[OpinionCluster] = []
            fallbacks = 0
            for done, cluster_id in enumerate(cluster_ids, start=1):
                self._check_cancelled(session_id)
                members = clustering.member_indices(cluster_id)
                label = self.labeler.label_cluster(
                    [posts[i].text for i in members],
                    cluster_id,
                    operational_context=session_config.operational_context,
                    language=session_config.language,
                )
                fallbacks += int(label.fallback)
                centroid = coords[members].mean(axis=0)
                clusters.append(OpinionCluster(
                    zone_id=zone_id,
                    session_id=session_id,
                    cluster_id=cluster_id,
                    label=label.label,
                    keywords=label.keywords,
                    tweet_count=len(members),
                    avg_sentiment=label.sentiment,
                    coherence_score=label.confidence,
                    reasoning=label.reasoning,
                    centroid_x=float(centroid[0]),
                    centroid_y=float(centroid[1]),
                    centroid_z=float(centroid[2]),
                ))
                self._update(
                    session_id, SessionStatus.LABELING,
                    80 + math.floor(done / len(cluster_ids) * 15),
                    f"Labelled {done}/{len(cluster_ids)} clusters",
                )
                progress.advance(task, 1)

            self.store.save_clusters(clusters)
            result.total_clusters = len(clusters)
            stage.complete({"clusters": len(clusters), "fallback_labels": fallbacks})

        except Exception as e:
            stage.fail(str(e))
            raise

        self._update(
            session_id, SessionStatus.COMPLETED, 100, "Completed",
            total_clusters=len(clusters), outlier_count=clustering.outlier_count,
        )

    def _print_summary(self, result: PipelineResult) -> None:
        """Print pipeline execution summary."""
        table = Table(title="Pipeline Summary")
        table.add_column("Stage", style="cyan")
        table.add_column("Status", style="bold")
        table.add_column("Duration", style="yellow")
        table.add_column("Details", style="dim")

        for stage in self.stages:
            if stage.start_time is None:
                status = "[dim]-[/dim]"
            else:
                status = "[green]✓[/green]" if stage.success else "[red]✗[/red]"
            duration = f"{stage.duration:.1f}s" if stage.duration > 0 else "-"

            details = ""
            if stage.success and stage.stats:
                if stage.name == "vectorize":
                    details = (
                        f"{stage.stats.get('already_vectorized', 0)} cached, "
                        f"{stage.stats.get('newly_vectorized', 0)} new, "
                        f"{stage.stats.get('failed', 0)} failed"
                    )
                elif stage.name == "reduce":
                    details = f"{stage.stats.get('explained_variance', 0):.0%} variance kept"
                elif stage.name == "cluster":
                    details = f"{stage.stats.get('clusters', 0)} clusters, {stage.stats.get('outliers', 0)} outliers"
                elif stage.name == "label":
                    details = f"{stage.stats.get('fallback_labels', 0)} keyword fallbacks"
            elif stage.error:
                details = stage.error

            table.add_row(stage.name.title(), status, duration, details)

        console.print("\n")
        console.print(table)

        llm_usage = result.usage.get("llm", {})
        if result.success:
            console.print(Panel(
                f"[green]✅ Opinion map completed![/green]\n\n"
                f"Session: {result.session_id}\n"
                f"Clusters: {result.total_clusters} • Outliers: {result.outlier_count}\n"
                f"Duration: {result.execution_time_ms / 1000:.1f} seconds\n"
                f"LLM: {llm_usage.get('api_calls', 0)} calls, ${llm_usage.get('estimated_cost', 0):.3f}",
                style="green"
            ))
        else:
            console.print(Panel(
                f"[red]❌ Opinion map {result.status.value}![/red]\n\n"
                f"Session: {result.session_id}\n"
                f"Reason: {result.error or 'unknown'}\n"
                f"Duration: {result.execution_time_ms / 1000:.1f} seconds",
                style="red"
            ))
