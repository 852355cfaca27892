"""Assembly of projected transcripts from mapped exons.

Takes the exons mapped from the aligner output, sets their reading-frame
phases, builds the translation, scores the projected protein against the
source protein and decides, through the configured quality filter, whether
the transcript is kept.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from liftforge.core.models import ProjectedExon, ProjectedTranscript, SeqEdit, SupportingFeature
from liftforge.homology.protein import align_proteins
from liftforge.utils.sequences import translate

if TYPE_CHECKING:
    from liftforge.core.models import SourceTranscript
    from liftforge.qc.filters import QualityFilter
    from liftforge.utils.intervals import GenomicInterval

logger = logging.getLogger(__name__)


def calculate_exon_phases(exons: list[ProjectedExon], start_phase: int) -> None:
    """Set phase and end phase of every exon in place.

    The first exon takes the source start phase (-1 counts as 0); every
    following exon starts in the end phase of the one before.

    Args:
        exons: Exons in translation order.
        start_phase: Phase of the source translation start exon.
    """
    phase = max(start_phase, 0)
    for exon in exons:
        exon.phase = phase
        exon.end_phase = (phase + exon.length) % 3
        phase = exon.end_phase


def coding_sequence(transcript: ProjectedTranscript, target_sequence: str) -> str:
    """Concatenated exon bases of a transcript, padded to its start phase."""
    bases = "".join(target_sequence[e.start - 1 : e.end] for e in transcript.exons)
    start_phase = transcript.exons[0].phase if transcript.exons else 0
    return "N" * max(start_phase, 0) + bases


def assemble_transcript(
    source: SourceTranscript,
    exons: list[ProjectedExon],
    interval: GenomicInterval,
    target_sequence: str,
    seq_edits: list[SeqEdit] | None = None,
) -> ProjectedTranscript | None:
    """Build a projected transcript.

    Args:
        source: Source transcript.
        exons: Mapped exons relative to ``interval``.
        interval: Re-fetched target interval.
        target_sequence: Sequence of ``interval``.
        seq_edits: Gap-insertion edits from the alignment.

    Returns:
        ProjectedTranscript, or None if no exon was projected.
    """
    if not exons:
        logger.warning(f"No exons projected for transcript {source.transcript_id}")
        return None

    transcript = ProjectedTranscript.from_exons(
        interval,
        exons,
        stable_id=source.stable_id_version,
        source_transcript_id=source.transcript_id,
    )
    calculate_exon_phases(transcript.exons, source.start_phase)

    protein = translate(coding_sequence(transcript, target_sequence)).rstrip("*")
    transcript.protein = protein
    if seq_edits:
        transcript.seq_edits = list(seq_edits)

    if protein:
        coverage, percent_id = align_proteins(source.translation, protein)
        transcript.coverage = coverage
        transcript.percent_id = percent_id
        transcript.supporting_features.append(
            SupportingFeature(hit_name=source.transcript_id, coverage=coverage, percent_id=percent_id)
        )

    logger.debug(
        f"Assembled {transcript.stable_id}: {len(exons)} exons, "
        f"coverage {transcript.coverage:.2f}, identity {transcript.percent_id:.2f}"
    )
    return transcript


def accept(projected: ProjectedTranscript, quality_filter: QualityFilter | None) -> bool:
    """Decide whether a projected transcript is kept.

    Without a filter every transcript is kept. With a filter, transcripts
    without supporting features are dropped without being evaluated.

    Args:
        projected: Projected transcript.
        quality_filter: Configured filter, or None.

    Returns:
        True to keep the transcript.
    """
    if quality_filter is None:
        return True
    if not projected.supporting_features:
        logger.debug(f"Transcript {projected.stable_id} has no supporting features, not filtered")
        return False
    if not quality_filter.evaluate(projected):
        logger.info(
            f"Transcript {projected.stable_id} filtered out "
            f"(coverage {projected.coverage:.2f}, identity {projected.percent_id:.2f})"
        )
        return False
    return True
