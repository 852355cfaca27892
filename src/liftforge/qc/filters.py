"""Quality filtering of projected transcripts.

Filters are looked up by kind in a registry and built from a
``FilterConfig``. Every filter exposes one capability: ``evaluate`` a
projected transcript and say whether to keep it.

Example:
    >>> from liftforge.config import FilterConfig
    >>> from liftforge.qc.filters import create_filter
    >>> quality_filter = create_filter(FilterConfig(kind="coverage_identity", min_coverage=80))
    >>> kept = [t for t in projected_transcripts if quality_filter.evaluate(t)]
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import attrs

from liftforge.config import COVERAGE_IDENTITY_FILTER
from liftforge.exceptions import ConfigurationError

if TYPE_CHECKING:
    from liftforge.config import FilterConfig
    from liftforge.core.models import ProjectedTranscript

logger = logging.getLogger(__name__)


# =============================================================================
# Filter Capability
# =============================================================================


@runtime_checkable
class QualityFilter(Protocol):
    """Keep/drop decision for a projected transcript."""

    def evaluate(self, transcript: ProjectedTranscript) -> bool: ...


# =============================================================================
# Coverage / Identity Filter
# =============================================================================


@attrs.define
class CoverageIdentityFilter:
    """Keep transcripts whose best supporting feature meets both thresholds.

    Attributes:
        min_coverage: Minimum coverage of the source protein (0-100).
        min_percent_id: Minimum percent identity (0-100).
    """

    min_coverage: float = 50.0
    min_percent_id: float = 50.0

    def evaluate(self, transcript: ProjectedTranscript) -> bool:
        """Whether the transcript passes."""
        passed, reason = self._check_transcript(transcript)
        if not passed:
            logger.debug(f"Transcript {transcript.stable_id} filtered out: {reason}")
        return passed

    def _check_transcript(self, transcript: ProjectedTranscript) -> tuple[bool, str | None]:
        """Check a transcript against the thresholds.

        Returns:
            Tuple of (passed, failure_reason).
        """
        if not transcript.supporting_features:
            return False, "no_supporting_features"

        for feature in transcript.supporting_features:
            if feature.coverage >= self.min_coverage and feature.percent_id >= self.min_percent_id:
                return True, None

        best = max(transcript.supporting_features, key=lambda f: (f.coverage, f.percent_id))
        if best.coverage < self.min_coverage:
            return False, "low_coverage"
        return False, "low_percent_id"

    @classmethod
    def from_config(cls, config: FilterConfig) -> CoverageIdentityFilter:
        """Build from a filter configuration."""
        return cls(min_coverage=config.min_coverage, min_percent_id=config.min_percent_id)


# =============================================================================
# Registry
# =============================================================================

FILTER_REGISTRY: dict[str, Callable[[FilterConfig], QualityFilter]] = {
    COVERAGE_IDENTITY_FILTER: CoverageIdentityFilter.from_config,
}


def register_filter(kind: str, factory: Callable[[FilterConfig], QualityFilter]) -> None:
    """Register a filter factory under a kind name."""
    FILTER_REGISTRY[kind] = factory


def create_filter(config: FilterConfig | None) -> QualityFilter | None:
    """Create the filter described by a configuration.

    Args:
        config: Filter configuration. None or ``kind=None`` disables filtering.

    Returns:
        QualityFilter, or None when filtering is disabled.

    Raises:
        ConfigurationError: If the kind is not registered.
    """
    if config is None or config.kind is None:
        return None
    factory = FILTER_REGISTRY.get(config.kind)
    if factory is None:
        known = ", ".join(sorted(FILTER_REGISTRY))
        raise ConfigurationError(f"Unknown filter kind: {config.kind} (known: {known})")
    return factory(config)
