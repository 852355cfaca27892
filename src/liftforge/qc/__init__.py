"""Quality control for projected transcripts.

Example:
    >>> from liftforge.qc import create_filter
    >>> from liftforge.config import FilterConfig
    >>> quality_filter = create_filter(FilterConfig(kind="coverage_identity", min_coverage=80))
    >>> kept = [t for t in transcripts if quality_filter.evaluate(t)]
"""

from liftforge.qc.filters import (
    CoverageIdentityFilter,
    QualityFilter,
    create_filter,
    register_filter,
)

__all__ = [
    "CoverageIdentityFilter",
    "QualityFilter",
    "create_filter",
    "register_filter",
]
