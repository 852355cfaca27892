"""Tests for QC filtering of projected transcripts."""

from __future__ import annotations

import pytest

from liftforge.config import FilterConfig
from liftforge.core.models import ProjectedExon, ProjectedTranscript, SupportingFeature
from liftforge.exceptions import ConfigurationError
from liftforge.qc.filters import (
    FILTER_REGISTRY,
    CoverageIdentityFilter,
    QualityFilter,
    create_filter,
    register_filter,
)
from liftforge.utils.intervals import GenomicInterval


def make_transcript(stable_id: str, *scores: tuple[float, float]) -> ProjectedTranscript:
    transcript = ProjectedTranscript.from_exons(
        GenomicInterval("chr2", 1001, 1200),
        [ProjectedExon(1, 90, stable_id)],
        stable_id=stable_id,
        source_transcript_id=stable_id.split(".")[0],
    )
    for coverage, percent_id in scores:
        transcript.supporting_features.append(SupportingFeature(stable_id, coverage, percent_id))
    return transcript


# =============================================================================
# Coverage / Identity Filter
# =============================================================================


class TestCoverageIdentityFilter:
    """Tests for CoverageIdentityFilter."""

    def test_passes_at_threshold(self) -> None:
        """Values equal to the thresholds pass."""
        assert CoverageIdentityFilter(50, 50).evaluate(make_transcript("TX1.1", (50, 50)))

    @pytest.mark.parametrize("scores", [(49.9, 90), (90, 49.9), (10, 10)])
    def test_fails_below_threshold(self, scores) -> None:
        """Either value below its threshold fails."""
        assert not CoverageIdentityFilter(50, 50).evaluate(make_transcript("TX1.1", scores))

    def test_any_feature_may_pass(self) -> None:
        """One good supporting feature is enough."""
        transcript = make_transcript("TX1.1", (20, 20), (95, 98))
        assert CoverageIdentityFilter(80, 80).evaluate(transcript)

    def test_no_features_fail(self) -> None:
        """Transcripts without supporting features fail."""
        assert not CoverageIdentityFilter().evaluate(make_transcript("TX1.1"))

    @pytest.mark.parametrize(
        "scores,reason",
        [((), "no_supporting_features"), (((30, 90),), "low_coverage"), (((90, 30),), "low_percent_id")],
    )
    def test_failure_reason_logged(self, scores, reason, caplog) -> None:
        """Dropped transcripts are logged with the failing threshold."""
        transcript = make_transcript("TX2.1", *scores)
        with caplog.at_level("DEBUG", logger="liftforge.qc.filters"):
            assert not CoverageIdentityFilter(50, 50).evaluate(transcript)
        assert f"TX2.1 filtered out: {reason}" in caplog.text

    def test_is_quality_filter(self) -> None:
        """The filter satisfies the QualityFilter protocol."""
        assert isinstance(CoverageIdentityFilter(), QualityFilter)


# =============================================================================
# Registry
# =============================================================================


class TestCreateFilter:
    """Tests for create_filter and the registry."""

    def test_from_config(self) -> None:
        """The coverage/identity kind builds a CoverageIdentityFilter."""
        quality_filter = create_filter(
            FilterConfig(kind="coverage_identity", min_coverage=80, min_percent_id=60)
        )
        assert quality_filter == CoverageIdentityFilter(80, 60)

    def test_disabled(self) -> None:
        """None, the default or a null kind disables filtering."""
        assert create_filter(None) is None
        assert create_filter(FilterConfig()) is None
        assert create_filter(FilterConfig(kind=None)) is None

    def test_unknown_kind(self) -> None:
        """Unregistered kinds are a configuration error."""
        with pytest.raises(ConfigurationError, match="coverage_identity"):
            create_filter(FilterConfig(kind="perl_default"))

    def test_register(self) -> None:
        """Registered factories are used by create_filter."""

        class KeepAll:
            def evaluate(self, transcript) -> bool:
                return True

        register_filter("keep_all", lambda config: KeepAll())
        try:
            quality_filter = create_filter(FilterConfig(kind="keep_all"))
            assert quality_filter.evaluate(make_transcript("TX1.1"))
        finally:
            FILTER_REGISTRY.pop("keep_all")
