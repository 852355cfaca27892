"""Parsing of CESAR output into projected exons.

CESAR writes one 4-line record per projection:

    >reference header
    reference-aligned sequence (spaces outside the aligned exons)
    >target interval descriptor
    target-aligned sequence (uppercase = projected exon bases)

This module reads those records, picks one when several are present, maps
the uppercase runs of the target sequence onto coordinates of the target
interval and derives the insertion edits implied by target gaps.
"""

from __future__ import annotations

import logging
import re

import attrs

from liftforge.core.models import ProjectedExon, SeqEdit
from liftforge.exceptions import AmbiguousProjectionError, InputError
from liftforge.utils.intervals import GenomicInterval, features_overlap

logger = logging.getLogger(__name__)

# =============================================================================
# Patterns
# =============================================================================

FLANK_PATTERN = re.compile(r"( *)([\-atgcnATGCN ]+[-atgcnATGCN]+)( *)")
EXON_PATTERN = re.compile(r"[ATGCN]+")
GAP_RUN_PATTERN = re.compile(r"-+")
LEFT_FLANK_PATTERN = re.compile(r"([acgtn]+)[ACGTN-]+")

RECORD_LINES = 4


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class ProjectionResult:
    """One projection record of the aligner output.

    Attributes:
        reference_header: Header of the reference record.
        reference_aligned: Reference-aligned sequence.
        target_header: Header of the target record.
        target_aligned: Target-aligned sequence.
        target_name: Interval descriptor parsed from the target header.
        target_strand: Strand field of the target header.
        left_flank: Leading spaces of the reference alignment.
        right_flank: Trailing spaces of the reference alignment.
    """

    reference_header: str
    reference_aligned: str
    target_header: str
    target_aligned: str
    target_name: str = ""
    target_strand: int = 1
    left_flank: int = 0
    right_flank: int = 0

    @property
    def gap_count(self) -> int:
        """Number of gap characters in the target-aligned sequence."""
        return self.target_aligned.count("-")

    @property
    def projected_sequence(self) -> str:
        """Target-aligned sequence with gaps removed."""
        return self.target_aligned.replace("-", "")


# =============================================================================
# Record Parsing
# =============================================================================


def _split_records(text: str) -> list[list[str]]:
    lines = text.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        raise InputError("Aligner output is empty")
    if len(lines) % RECORD_LINES != 0:
        raise InputError(
            f"Aligner output has {len(lines)} lines, expected a multiple of {RECORD_LINES}"
        )
    return [lines[i : i + RECORD_LINES] for i in range(0, len(lines), RECORD_LINES)]


def _parse_header(header: str) -> tuple[str, int]:
    """Validate a target header and return (descriptor, strand)."""
    interval = GenomicInterval.parse(header)
    return interval.name, interval.strand


def _build_result(record: list[str]) -> ProjectionResult:
    reference_header, reference_aligned, target_header, target_aligned = record
    target_name, target_strand = _parse_header(target_header)

    left = right = 0
    match = FLANK_PATTERN.search(reference_aligned)
    if match:
        left, right = len(match.group(1)), len(match.group(3))

    return ProjectionResult(
        reference_header=reference_header.strip(),
        reference_aligned=reference_aligned.rstrip("\n"),
        target_header=target_header.strip(),
        target_aligned=target_aligned.strip(),
        target_name=target_name,
        target_strand=target_strand,
        left_flank=left,
        right_flank=right,
    )


def parse_projection(text: str, fewest_gaps: bool = True, transcript_id: str = "") -> ProjectionResult:
    """Parse aligner output into a single projection.

    Args:
        text: Cleaned aligner output.
        fewest_gaps: With several records, choose the one whose target
            sequence has the fewest gaps (first one on ties). If False,
            several records are an error.
        transcript_id: Transcript identifier for error messages.

    Returns:
        The chosen ProjectionResult.

    Raises:
        InputError: If the output is empty or truncated.
        AmbiguousProjectionError: If several records are present and
            fewest_gaps is False.
        MalformedHeaderError: If the target header is not a descriptor.
    """
    records = _split_records(text)

    if len(records) > 1 and not fewest_gaps:
        raise AmbiguousProjectionError(
            "Output file has more than one projection", transcript_id=transcript_id
        )

    best: ProjectionResult | None = None
    for record in records:
        if not record[1].strip() or not record[3].strip():
            continue
        result = _build_result(record)
        if best is None or result.gap_count < best.gap_count:
            best = result

    if best is None:
        raise InputError("Aligner output holds no aligned sequence", transcript_id=transcript_id)

    if len(records) > 1:
        logger.info(
            f"Transcript {transcript_id}: {len(records)} projections in output, "
            f"chose one with {best.gap_count} gaps"
        )
    return best


# =============================================================================
# Coordinate Mapping
# =============================================================================


def map_exons(result: ProjectionResult, target_length: int, stable_id: str = "") -> list[ProjectedExon]:
    """Map the uppercase runs of the projected sequence onto the target interval.

    Exons are returned in left-to-right discovery order for both strands.

    Args:
        result: Parsed projection.
        target_length: Length of the re-fetched target interval.
        stable_id: Identifier given to every exon.

    Returns:
        Projected exons relative to the target interval.
    """
    exons = []
    for match in EXON_PATTERN.finditer(result.projected_sequence):
        s, e = match.start(), match.end()
        if result.target_strand == -1:
            start, end = target_length - (e - 1), target_length - s
        else:
            start, end = s + 1, e
        exons.append(ProjectedExon(start=start, end=end, stable_id=stable_id, strand=1))
    return exons


def make_seq_edits(source_aligned: str, target_aligned: str) -> list[SeqEdit]:
    """Insertion edits for every run of gaps in the target-aligned sequence.

    Inserted bases are taken from the reference-aligned sequence at the
    same columns. Positions are relative to the projected sequence, after
    the lowercase left flank.

    Args:
        source_aligned: Reference-aligned sequence.
        target_aligned: Target-aligned sequence.

    Returns:
        SeqEdit records in alignment order.
    """
    flank = 0
    match = LEFT_FLANK_PATTERN.search(target_aligned)
    if match:
        flank = len(match.group(1))

    edits = []
    accumulated = 0
    for gap in GAP_RUN_PATTERN.finditer(target_aligned):
        size = gap.end() - gap.start()
        accumulated += size
        start = gap.end() + 1 - accumulated - flank
        edits.append(
            SeqEdit(
                start=start,
                end=start - 1,
                alt_seq=source_aligned[gap.start() : gap.end()],
            )
        )
    return edits


def remove_overlapping_exons(exons: list[ProjectedExon]) -> list[ProjectedExon]:
    """Drop every exon overlapped by a kept exon at least as long.

    Args:
        exons: Projected exons.

    Returns:
        Exons with overlaps resolved, original order kept.
    """
    discarded: set[int] = set()
    for i, exon in enumerate(exons):
        for j, other in enumerate(exons):
            if i == j or j in discarded:
                continue
            if features_overlap(exon.start, exon.end, other.start, other.end) and exon.length <= other.length:
                discarded.add(i)
                break

    kept = [exon for i, exon in enumerate(exons) if i not in discarded]
    if discarded:
        logger.debug(f"Removed {len(discarded)} overlapping exons, {len(kept)} left")
    return kept
