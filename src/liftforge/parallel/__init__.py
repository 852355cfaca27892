"""Parallelization utilities for LiftForge.

Genes are the unit of work. They run serially or across worker processes,
and genes that exceed the aligner memory bound can be re-run on a
high-memory lane.

Example:
    >>> from liftforge.parallel import GeneExecutor
    >>> executor = GeneExecutor(inputs, n_workers=8)
    >>> report = executor.project(gene_ids, writer)
"""

from liftforge.parallel.executor import (
    ExecutionStats,
    ExecutorBackend,
    GeneExecutor,
    MemoryStats,
    RunReport,
    TaskResult,
    get_memory_stats,
    get_optimal_workers,
)

__all__ = [
    "ExecutionStats",
    "ExecutorBackend",
    "GeneExecutor",
    "MemoryStats",
    "RunReport",
    "TaskResult",
    "get_memory_stats",
    "get_optimal_workers",
]
