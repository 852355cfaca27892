"""Building output genes from accepted projected transcripts."""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Protocol

from liftforge.core.models import CESAR_LOGIC_NAME, ProjectedGene, ProjectedTranscript

if TYPE_CHECKING:
    from liftforge.core.models import SourceGene
    from liftforge.utils.intervals import GenomicInterval

logger = logging.getLogger(__name__)


class IntervalFetcher(Protocol):
    def fetch_interval(self, seqid: str, start: int, end: int, strand: int = 1) -> GenomicInterval: ...


def most_common_seqid(transcripts: list[ProjectedTranscript]) -> str:
    """Most frequent target sequence; ties go to the first seen."""
    counts = Counter(t.seqid for t in transcripts)
    best = transcripts[0].seqid
    for transcript in transcripts:
        if counts[transcript.seqid] > counts[best]:
            best = transcript.seqid
    return best


def shared_interval(transcripts: list[ProjectedTranscript], genome: IntervalFetcher) -> GenomicInterval:
    """Fetch one interval spanning every transcript on the most common sequence.

    Args:
        transcripts: Accepted transcripts of one gene.
        genome: Target genome.

    Returns:
        Interval on the most common sequence, strand 1.
    """
    seqid = most_common_seqid(transcripts)
    on_seqid = [t for t in transcripts if t.seqid == seqid]
    start = min(t.seq_region_start for t in on_seqid)
    end = max(t.seq_region_end for t in on_seqid)
    return genome.fetch_interval(seqid, start, end, 1)


def build_genes(
    projected: list[ProjectedTranscript],
    source_gene: SourceGene,
    shared_region: bool = False,
    genome: IntervalFetcher | None = None,
) -> list[ProjectedGene]:
    """Turn accepted transcripts into output genes.

    By default every transcript becomes its own gene. In shared-region mode
    the transcripts are moved onto one interval spanning them and merged into
    a single gene carrying the source gene id; transcripts on any other
    sequence than the most common one are left out.

    Args:
        projected: Accepted transcripts of one source gene.
        source_gene: The source gene.
        shared_region: Merge into one gene on a shared interval.
        genome: Target genome, required in shared-region mode.

    Returns:
        Output genes (empty if nothing was accepted).

    Raises:
        ValueError: If shared-region mode is requested without a genome.
    """
    if not projected:
        return []

    if not shared_region:
        return [
            ProjectedGene(
                gene_id=f"{source_gene.gene_id}-{i}",
                transcripts=[transcript],
                source_gene_id=source_gene.gene_id,
                logic_name=CESAR_LOGIC_NAME,
            )
            for i, transcript in enumerate(projected, 1)
        ]

    if genome is None:
        raise ValueError("A target genome is required to build genes on a shared region")

    interval = shared_interval(projected, genome)
    merged = []
    for transcript in projected:
        if transcript.seqid != interval.seqid:
            logger.warning(
                f"Transcript {transcript.stable_id} is on {transcript.seqid}, not on the shared "
                f"region {interval.name}; left out of gene {source_gene.gene_id}"
            )
            continue
        transcript.rebase(interval)
        merged.append(transcript)

    logger.info(f"Shared region for gene {source_gene.gene_id} set to {interval.name}")
    return [
        ProjectedGene(
            gene_id=source_gene.gene_id,
            transcripts=merged,
            source_gene_id=source_gene.gene_id,
            logic_name=CESAR_LOGIC_NAME,
        )
    ]
