"""Target locus selection from whole-genome alignment blocks.

A reference transcript usually maps to several alignment blocks, and those
blocks can belong to different chains (groups) landing on different target
sequences. The selector pads the transcript window, restricts every block to
it, accumulates aligned target bases per group and returns the span of the
best-supported group.

Example:
    >>> from liftforge.core.locus import select_target_region
    >>> region = select_target_region(transcript, blocks, padding=50, region_length=1_000_000)
    >>> region.name
    'toplevel::chr2:4951:5250:1'
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Protocol

import attrs

from liftforge.utils.intervals import GenomicInterval

if TYPE_CHECKING:
    from liftforge.core.models import SourceTranscript

logger = logging.getLogger(__name__)


class RestrictableBlock(Protocol):
    """Alignment block as consumed by the selector."""

    group_id: int

    def restrict(self, start: int, end: int) -> RestrictableBlock | None: ...

    def non_reference_aligns(self) -> list[GenomicInterval]: ...


class GenomeLookup(Protocol):
    def fetch_interval(self, seqid: str, start: int, end: int, strand: int = 1) -> GenomicInterval: ...


# =============================================================================
# Group Accumulation
# =============================================================================


@attrs.define(slots=True)
class AlignmentGroup:
    """Aligned target evidence accumulated for one alignment group.

    Attributes:
        group_id: Alignment group identifier.
        seqid: Target sequence of the group.
        strand: Target strand of the group.
        length: Total aligned target bases.
        start: Lowest target start seen.
        end: Highest target end seen.
    """

    group_id: int
    seqid: str = ""
    strand: int = 1
    length: int = 0
    start: int | None = None
    end: int | None = None

    def add(self, interval: GenomicInterval) -> None:
        """Add one aligned target interval to the group."""
        self.length += interval.length
        self.start = interval.start if self.start is None else min(self.start, interval.start)
        self.end = interval.end if self.end is None else max(self.end, interval.end)
        self.seqid = interval.seqid
        self.strand = interval.strand

    @property
    def interval(self) -> GenomicInterval:
        """Target span of the group."""
        return GenomicInterval(self.seqid, self.start, self.end, self.strand)


def accumulate_groups(blocks: Iterable[RestrictableBlock], start: int, end: int) -> dict[int, AlignmentGroup]:
    """Restrict blocks to a window and bucket target evidence by group id.

    Args:
        blocks: Alignment blocks overlapping the window.
        start: Window start on the reference (1-based).
        end: Window end on the reference (1-based, inclusive).

    Returns:
        Accumulators keyed by group id.
    """
    groups: dict[int, AlignmentGroup] = {}
    for block in blocks:
        restricted = block.restrict(start, end)
        if restricted is None:
            continue
        for aligned in restricted.non_reference_aligns():
            group = groups.get(restricted.group_id)
            if group is None:
                group = groups[restricted.group_id] = AlignmentGroup(restricted.group_id)
            group.add(aligned)
    return groups


def best_group(groups: dict[int, AlignmentGroup]) -> AlignmentGroup | None:
    """Group with the most aligned bases; ties go to the smallest group id."""
    best: AlignmentGroup | None = None
    for group_id in sorted(groups):
        group = groups[group_id]
        if group.length > 0 and (best is None or group.length > best.length):
            best = group
    return best


# =============================================================================
# Selection
# =============================================================================


def select_target_region(
    transcript: SourceTranscript,
    alignment_blocks: Iterable[RestrictableBlock],
    padding: int,
    region_length: int,
    genome: GenomeLookup | None = None,
) -> GenomicInterval | None:
    """Pick the best-supported target region for a reference transcript.

    Args:
        transcript: Reference transcript.
        alignment_blocks: Blocks overlapping the transcript's reference span.
        padding: Bases added to each side of the reference window.
        region_length: Length of the reference sequence (padding clamp).
        genome: Target genome; when given the region is fetched from it.

    Returns:
        Target interval, or None when no group has aligned bases.
    """
    window = transcript.interval.padded(padding, region_length)
    groups = accumulate_groups(alignment_blocks, window.start, window.end)
    group = best_group(groups)

    if group is None:
        logger.warning(
            f"No alignment coverage for transcript {transcript.transcript_id} "
            f"in {window.seqid}:{window.start}-{window.end}, no projection possible"
        )
        return None

    logger.debug(
        f"Transcript {transcript.transcript_id}: selected group {group.group_id} "
        f"({group.length} aligned bases of {len(groups)} groups) on "
        f"{group.seqid}:{group.start}-{group.end}:{group.strand}"
    )

    if genome is not None:
        return genome.fetch_interval(group.seqid, group.start, group.end, group.strand)
    return group.interval
