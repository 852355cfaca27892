"""Gene-level parallel execution.

One gene is one task. Genes run serially or across worker processes; each
worker process builds its own projector from the picklable
``ProjectionInputs`` once, in the pool initializer. Output genes are handed
back to the parent process, which stores them, so a gene is stored whole or
not at all.

Genes whose aligner run hit the memory limit come back as retry requests.
They can be re-run on the high-memory lane, serially, with the larger
memory bound.

Features:
    - Serial and process-pool backends
    - Progress tracking with rich
    - Per-task timing and memory statistics
    - High-memory retry lane

Example:
    >>> from liftforge.parallel.executor import GeneExecutor
    >>> executor = GeneExecutor(inputs, n_workers=8)
    >>> report = executor.project(gene_ids, writer, himem_lane=True)
    >>> print(f"{report.stats.successful}/{report.stats.total_tasks} genes")
"""

from __future__ import annotations

import logging
import os
import platform
import resource
import time
from concurrent.futures import Future, ProcessPoolExecutor, as_completed
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

import attrs
import psutil

from liftforge.core.pipeline import JobStatus, RetryRequest
from liftforge.exceptions import ProjectionError

if TYPE_CHECKING:
    from liftforge.core.pipeline import (
        GeneJobResult,
        GeneStore,
        ProjectionInputs,
        TranscriptProjector,
    )

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class ExecutorBackend(Enum):
    """Available execution backends."""

    SERIAL = "serial"
    PROCESSES = "processes"


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class MemoryStats:
    """Memory usage statistics."""

    current_mb: float
    peak_mb: float
    available_mb: float
    percent_used: float

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "current_mb": round(self.current_mb, 2),
            "peak_mb": round(self.peak_mb, 2),
            "available_mb": round(self.available_mb, 2),
            "percent_used": round(self.percent_used, 2),
        }


@attrs.define(slots=True)
class TaskResult:
    """Result of projecting one gene."""

    gene_id: str
    success: bool
    result: GeneJobResult | None = None
    error: str | None = None
    duration_seconds: float = 0.0
    peak_memory_mb: float | None = None

    @property
    def needs_retry(self) -> bool:
        """Whether the gene was re-queued for the high-memory lane."""
        return self.result is not None and self.result.status is JobStatus.RETRY

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "gene_id": self.gene_id,
            "success": self.success,
            "status": self.result.status.value if self.result else None,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
            "peak_memory_mb": (
                round(self.peak_memory_mb, 2) if self.peak_memory_mb else None
            ),
        }


@attrs.define(slots=True)
class ExecutionStats:
    """Statistics from gene execution."""

    total_tasks: int
    successful: int
    failed: int
    retried: int
    total_duration: float
    mean_task_duration: float
    max_task_duration: float
    peak_memory_mb: float | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total_tasks": self.total_tasks,
            "successful": self.successful,
            "failed": self.failed,
            "retried": self.retried,
            "total_duration": round(self.total_duration, 3),
            "mean_task_duration": round(self.mean_task_duration, 3),
            "max_task_duration": round(self.max_task_duration, 3),
            "peak_memory_mb": (
                round(self.peak_memory_mb, 2) if self.peak_memory_mb else None
            ),
        }

    @classmethod
    def from_results(cls, results: list[TaskResult], total_duration: float) -> ExecutionStats:
        """Summarize a list of task results."""
        durations = [r.duration_seconds for r in results]
        peaks = [r.peak_memory_mb for r in results if r.peak_memory_mb is not None]
        return cls(
            total_tasks=len(results),
            successful=sum(1 for r in results if r.success and not r.needs_retry),
            failed=sum(1 for r in results if not r.success),
            retried=sum(1 for r in results if r.needs_retry),
            total_duration=total_duration,
            mean_task_duration=sum(durations) / len(durations) if durations else 0.0,
            max_task_duration=max(durations) if durations else 0.0,
            peak_memory_mb=max(peaks) if peaks else None,
        )


@attrs.define
class RunReport:
    """Outcome of a full projection run.

    Attributes:
        results: One task result per gene attempt, high-memory lane included.
        stats: Statistics over the primary lane.
        retries: Genes still waiting for a high-memory run.
        genes_stored: Number of output genes handed to the store.
        himem_stats: Statistics over the high-memory lane, if it ran.
    """

    results: list[TaskResult]
    stats: ExecutionStats
    retries: list[RetryRequest] = attrs.Factory(list)
    genes_stored: int = 0
    himem_stats: ExecutionStats | None = None

    @property
    def failures(self) -> list[TaskResult]:
        """Task results of genes that failed."""
        return [r for r in self.results if not r.success]


# =============================================================================
# Memory Monitoring
# =============================================================================


def get_memory_stats() -> MemoryStats:
    """Get current memory usage statistics of this process.

    Returns:
        MemoryStats with current memory information.
    """
    process = psutil.Process()
    mem_info = process.memory_info()
    virtual = psutil.virtual_memory()

    # ru_maxrss is in KB on Linux and in bytes on macOS
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if platform.system() == "Darwin":
        peak_mb = peak / 1024 / 1024
    else:
        peak_mb = peak / 1024

    return MemoryStats(
        current_mb=mem_info.rss / 1024 / 1024,
        peak_mb=peak_mb,
        available_mb=virtual.available / 1024 / 1024,
        percent_used=virtual.percent,
    )


def get_optimal_workers(
    max_workers: int | None = None,
    memory_per_worker_mb: int = 2000,
) -> int:
    """Determine the number of workers based on system resources.

    Args:
        max_workers: Maximum workers (defaults to CPU count).
        memory_per_worker_mb: Expected memory per worker in MB.

    Returns:
        Number of workers, at least 1.
    """
    cpu_count = os.cpu_count() or 1
    if max_workers is None:
        max_workers = cpu_count

    stats = get_memory_stats()
    memory_limited = int(stats.available_mb / memory_per_worker_mb)
    max_workers = min(max_workers, max(1, memory_limited))

    return max(1, min(max_workers, cpu_count))


def create_progress_bar() -> Any:
    """Create rich progress bar for gene execution.

    Returns:
        Rich Progress object.
    """
    from rich.progress import (
        BarColumn,
        MofNCompleteColumn,
        Progress,
        SpinnerColumn,
        TextColumn,
        TimeRemainingColumn,
    )

    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
    )


# =============================================================================
# Worker Functions
# =============================================================================

# Projector of the current worker process, built by _init_worker
_PROJECTOR: TranscriptProjector | None = None


def _init_worker(inputs: ProjectionInputs) -> None:
    """Pool initializer: build the projector of this worker process."""
    global _PROJECTOR
    _PROJECTOR = inputs.build_projector()


def _run_gene_task(gene_id: str, max_memory_gb: float | None = None) -> TaskResult:
    """Project one gene with the worker's projector."""
    if _PROJECTOR is None:
        raise RuntimeError("Worker projector is not initialized")
    return run_gene_task(_PROJECTOR, gene_id, max_memory_gb)


def run_gene_task(
    projector: TranscriptProjector,
    gene_id: str,
    max_memory_gb: float | None = None,
) -> TaskResult:
    """Project one gene and wrap the outcome with timing.

    Any error fails the gene; it does not stop the run.

    Args:
        projector: Projector to use.
        gene_id: Gene identifier.
        max_memory_gb: Aligner memory bound.

    Returns:
        TaskResult for the gene.
    """
    start_time = time.time()
    try:
        result = projector.run_gene(gene_id, max_memory_gb=max_memory_gb)
    except ProjectionError as e:
        logger.error(f"Projection of gene {gene_id} failed: {e}")
        return TaskResult(
            gene_id=gene_id,
            success=False,
            error=str(e),
            duration_seconds=time.time() - start_time,
            peak_memory_mb=get_memory_stats().peak_mb,
        )
    except Exception as e:
        logger.exception(f"Unexpected error projecting gene {gene_id}")
        return TaskResult(
            gene_id=gene_id,
            success=False,
            error=f"{type(e).__name__}: {e}",
            duration_seconds=time.time() - start_time,
            peak_memory_mb=get_memory_stats().peak_mb,
        )

    return TaskResult(
        gene_id=gene_id,
        success=True,
        result=result,
        duration_seconds=time.time() - start_time,
        peak_memory_mb=get_memory_stats().peak_mb,
    )


# =============================================================================
# Gene Executor
# =============================================================================


class GeneExecutor:
    """Project genes serially or across worker processes.

    Example:
        >>> executor = GeneExecutor(inputs, n_workers=4)
        >>> results, stats = executor.map_genes(["G1", "G2", "G3"])
        >>> print(f"Projected {stats.successful}/{stats.total_tasks} genes")
    """

    def __init__(
        self,
        inputs: ProjectionInputs,
        n_workers: int = 1,
        backend: ExecutorBackend | str = ExecutorBackend.PROCESSES,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            inputs: Input files and configuration, shipped to every worker.
            n_workers: Number of parallel workers (1 = serial).
            backend: Execution backend.
            progress_callback: Called with (completed, total, gene_id).
        """
        self.inputs = inputs
        self.n_workers = max(1, n_workers)
        self.backend = (
            ExecutorBackend(backend) if isinstance(backend, str) else backend
        )
        self.progress_callback = progress_callback

        # Auto-select serial if n_workers=1
        if self.n_workers == 1:
            self.backend = ExecutorBackend.SERIAL

        self._projector: TranscriptProjector | None = None

    def __enter__(self) -> GeneExecutor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the in-process projector, if one was built."""
        if self._projector is not None:
            self._projector.close()
            self._projector = None

    @property
    def projector(self) -> TranscriptProjector:
        """In-process projector used by the serial backend and the high-memory lane."""
        if self._projector is None:
            self._projector = self.inputs.build_projector()
        return self._projector

    def map_genes(
        self,
        gene_ids: list[str],
        max_memory_gb: float | None = None,
        serial: bool = False,
    ) -> tuple[list[TaskResult], ExecutionStats]:
        """Project every gene.

        Args:
            gene_ids: Gene identifiers.
            max_memory_gb: Aligner memory bound (None = configured default).
            serial: Force serial execution.

        Returns:
            Tuple of (results_list, execution_stats).
        """
        if not gene_ids:
            return [], ExecutionStats.from_results([], 0.0)

        backend = ExecutorBackend.SERIAL if serial else self.backend
        logger.info(
            f"Projecting {len(gene_ids)} genes with {self.n_workers if not serial else 1} workers "
            f"(backend={backend.value})"
        )

        start_time = time.time()
        if backend == ExecutorBackend.SERIAL:
            results = self._execute_serial(gene_ids, max_memory_gb)
        else:
            results = self._execute_parallel(gene_ids, max_memory_gb)

        stats = ExecutionStats.from_results(results, time.time() - start_time)
        logger.info(
            f"Completed: {stats.successful}/{stats.total_tasks} genes, "
            f"{stats.failed} failed, {stats.retried} re-queued, "
            f"duration={stats.total_duration:.1f}s"
        )
        return results, stats

    def _execute_serial(self, gene_ids: list[str], max_memory_gb: float | None) -> list[TaskResult]:
        """Serial execution with progress tracking."""
        results = []
        total = len(gene_ids)
        for i, gene_id in enumerate(gene_ids):
            results.append(run_gene_task(self.projector, gene_id, max_memory_gb))
            if self.progress_callback:
                self.progress_callback(i + 1, total, gene_id)
        return results

    def _execute_parallel(self, gene_ids: list[str], max_memory_gb: float | None) -> list[TaskResult]:
        """Parallel execution using ProcessPoolExecutor."""
        results = []
        total = len(gene_ids)
        completed = 0

        with ProcessPoolExecutor(
            max_workers=self.n_workers,
            initializer=_init_worker,
            initargs=(self.inputs,),
        ) as executor:
            futures: dict[Future, str] = {
                executor.submit(_run_gene_task, gene_id, max_memory_gb): gene_id
                for gene_id in gene_ids
            }

            for future in as_completed(futures):
                completed += 1
                try:
                    task_result = future.result()
                except Exception as e:
                    # Worker died before returning a result
                    logger.error(f"Worker for gene {futures[future]} failed: {e}")
                    task_result = TaskResult(gene_id=futures[future], success=False, error=str(e))
                results.append(task_result)
                if self.progress_callback:
                    self.progress_callback(completed, total, task_result.gene_id)

        # Keep input order in the output regardless of completion order
        order = {gene_id: i for i, gene_id in enumerate(gene_ids)}
        results.sort(key=lambda r: order[r.gene_id])
        return results

    def project(
        self,
        gene_ids: Iterable[str],
        store: GeneStore,
        max_memory_gb: float | None = None,
        himem_lane: bool = False,
    ) -> RunReport:
        """Project genes, store their output and handle memory retries.

        Args:
            gene_ids: Gene identifiers.
            store: Destination of output genes.
            max_memory_gb: Aligner memory bound of the primary lane.
            himem_lane: Re-run memory-exceeded genes serially with the
                high-memory bound before returning.

        Returns:
            RunReport. Genes still needing more memory are in ``retries``.
        """
        gene_ids = list(dict.fromkeys(gene_ids))
        results, stats = self.map_genes(gene_ids, max_memory_gb=max_memory_gb)
        stored = _store_results(results, store)
        retries = [r.result.retry for r in results if r.needs_retry and r.result.retry]

        report = RunReport(results=results, stats=stats, retries=retries, genes_stored=stored)
        if not himem_lane or not retries:
            return report

        logger.info(f"Running {len(retries)} genes on the high-memory lane")
        himem_results: list[TaskResult] = []
        start_time = time.time()
        for request in retries:
            himem_results.append(
                run_gene_task(self.projector, request.gene_id, request.max_memory_gb)
            )

        report.results.extend(himem_results)
        report.genes_stored += _store_results(himem_results, store)
        report.himem_stats = ExecutionStats.from_results(himem_results, time.time() - start_time)
        report.retries = [
            r.result.retry for r in himem_results if r.needs_retry and r.result.retry
        ]
        if report.retries:
            logger.warning(
                f"{len(report.retries)} genes exceeded memory on the high-memory lane too"
            )
        return report


def _store_results(results: list[TaskResult], store: GeneStore) -> int:
    """Store the output genes of completed tasks; returns the gene count."""
    stored = 0
    for task in results:
        if task.result is None or task.result.status is not JobStatus.COMPLETED:
            continue
        for gene in task.result.genes:
            store.store(gene)
            stored += 1
    return stored
