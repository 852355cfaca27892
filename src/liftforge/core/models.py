"""Data models for source and projected gene structures.

Source models describe the reference annotation handed to the projector;
projected models describe what the projector builds on the target genome.
Projected exon coordinates are relative to the target interval they are
attached to (1-based, inclusive) and always carry strand +1, because the
interval itself already encodes the orientation.

Example:
    >>> from liftforge.core.models import ProjectedExon, ProjectedTranscript
    >>> from liftforge.utils.intervals import GenomicInterval
    >>> interval = GenomicInterval("chr2", 5001, 5200)
    >>> exon = ProjectedExon(start=1, end=149, stable_id="TX1.1")
    >>> transcript = ProjectedTranscript.from_exons(interval, [exon], "TX1.1", "TX1")
    >>> transcript.seq_region_start, transcript.seq_region_end
    (5001, 5149)
"""

from __future__ import annotations

import attrs

from liftforge.utils.intervals import GenomicInterval

PROTEIN_CODING = "protein_coding"
CESAR_LOGIC_NAME = "cesar"


def _to_genomic(interval: GenomicInterval, start: int, end: int) -> tuple[int, int, int]:
    """Convert interval-relative coordinates to (start, end, strand) on the sequence."""
    if interval.strand == -1:
        return interval.end - end + 1, interval.end - start + 1, -1
    return interval.start + start - 1, interval.start + end - 1, 1


# =============================================================================
# Source Models
# =============================================================================


@attrs.define(slots=True)
class SourceExon:
    """A coding exon of a reference transcript.

    Attributes:
        exon_id: Stable exon identifier.
        interval: Reference interval of the coding part of the exon.
        phase: Codon offset of the first base (0, 1, 2 or -1 for unset).
        end_phase: Codon offset after the last base (0, 1, 2 or -1).
        sequence: Coding sequence in 5'->3' transcript orientation.
        selenocysteine: Offset of a masked in-frame TGA, if one was found.
    """

    exon_id: str
    interval: GenomicInterval
    phase: int
    end_phase: int
    sequence: str
    selenocysteine: int | None = None

    @property
    def length(self) -> int:
        """Exon length in bases."""
        return self.interval.length


@attrs.define(slots=True)
class SourceTranscript:
    """A protein-coding reference transcript.

    Attributes:
        transcript_id: Stable transcript identifier.
        gene_id: Owning gene identifier.
        interval: Reference interval spanning the coding exons.
        exons: Coding exons in transcript order.
        biotype: Transcript biotype.
        is_canonical: Whether this is the gene's canonical transcript.
        translation: Amino-acid sequence of the source translation.
        version: Stable id version.
    """

    transcript_id: str
    gene_id: str
    interval: GenomicInterval
    exons: list[SourceExon] = attrs.Factory(list)
    biotype: str = PROTEIN_CODING
    is_canonical: bool = False
    translation: str = ""
    version: int = 1

    @property
    def strand(self) -> int:
        """Reference strand of the transcript."""
        return self.interval.strand

    @property
    def stable_id_version(self) -> str:
        """Stable id with version suffix."""
        return f"{self.transcript_id}.{self.version}"

    @property
    def start_phase(self) -> int:
        """Phase of the translation start exon."""
        if not self.exons:
            return -1
        return self.exons[0].phase

    @property
    def is_protein_coding(self) -> bool:
        """Whether the transcript is protein coding."""
        return self.biotype == PROTEIN_CODING


@attrs.define(slots=True)
class SourceGene:
    """A reference gene with its transcripts.

    Attributes:
        gene_id: Stable gene identifier.
        interval: Reference interval of the gene.
        biotype: Gene biotype.
        transcripts: Transcripts of the gene.
        seq_length: Length of the containing reference sequence.
    """

    gene_id: str
    interval: GenomicInterval
    biotype: str = PROTEIN_CODING
    transcripts: list[SourceTranscript] = attrs.Factory(list)
    seq_length: int = 0

    @property
    def canonical_transcript(self) -> SourceTranscript | None:
        """The flagged canonical transcript, else the longest coding one."""
        for transcript in self.transcripts:
            if transcript.is_canonical:
                return transcript
        coding = [t for t in self.transcripts if t.exons]
        if not coding:
            return None
        return max(coding, key=lambda t: sum(e.length for e in t.exons))

    @property
    def is_protein_coding(self) -> bool:
        """Whether the gene is protein coding."""
        return self.biotype == PROTEIN_CODING


# =============================================================================
# Projected Models
# =============================================================================


@attrs.define(slots=True)
class ProjectedExon:
    """An exon placed on a target interval.

    Attributes:
        start: Start relative to the target interval (1-based).
        end: End relative to the target interval (1-based, inclusive).
        stable_id: Identifier inherited from the source transcript.
        strand: Always 1; orientation lives on the interval.
        phase: Codon phase of the first base.
        end_phase: Codon phase after the last base.
    """

    start: int
    end: int
    stable_id: str = ""
    strand: int = 1
    phase: int = -1
    end_phase: int = -1

    @property
    def length(self) -> int:
        """Exon length in bases."""
        return self.end - self.start + 1


@attrs.define(slots=True)
class Translation:
    """Translation span over a projected transcript's exons.

    Attributes:
        start_exon: Index of the start exon.
        start: Offset of the first coding base in the start exon (1-based).
        end_exon: Index of the end exon.
        end: Offset of the last coding base in the end exon (1-based).
    """

    start_exon: int
    start: int
    end_exon: int
    end: int


@attrs.define(slots=True, frozen=True)
class SupportingFeature:
    """Alignment evidence linking a projection to its source protein.

    Attributes:
        hit_name: Source transcript identifier.
        coverage: Coverage of the source protein (0-100).
        percent_id: Percent identity to the source protein (0-100).
    """

    hit_name: str
    coverage: float
    percent_id: float


@attrs.define(slots=True, frozen=True)
class SeqEdit:
    """An insertion edit recovering bases the target alignment gapped out.

    Attributes:
        start: Insertion point in the projected sequence (1-based).
        end: ``start - 1`` for an insertion.
        alt_seq: Bases taken from the reference alignment.
    """

    start: int
    end: int
    alt_seq: str
    code: str = "_rna_edit"
    description: str = "Cesar alignment"


@attrs.define(slots=True)
class ProjectedTranscript:
    """A transcript model projected onto the target genome.

    Attributes:
        interval: Target interval the exons are relative to.
        exons: Exons in alignment-output order.
        stable_id: Source stable id with version.
        source_transcript_id: Source transcript identifier.
        translation: Translation span over the exons.
        coverage: Coverage of the source protein (0-100).
        percent_id: Percent identity to the source protein (0-100).
        description: Free text linking back to the source.
        protein: Translated amino-acid sequence.
        supporting_features: Alignment evidence used by quality filters.
        seq_edits: Gap-insertion edits derived from the alignment.
    """

    interval: GenomicInterval
    exons: list[ProjectedExon]
    stable_id: str
    source_transcript_id: str
    translation: Translation
    coverage: float = 0.0
    percent_id: float = 0.0
    description: str = ""
    protein: str = ""
    supporting_features: list[SupportingFeature] = attrs.Factory(list)
    seq_edits: list[SeqEdit] = attrs.Factory(list)

    @classmethod
    def from_exons(
        cls,
        interval: GenomicInterval,
        exons: list[ProjectedExon],
        stable_id: str,
        source_transcript_id: str,
    ) -> ProjectedTranscript:
        """Create a transcript whose translation spans all exons.

        Raises:
            ValueError: If no exons are given.
        """
        if not exons:
            raise ValueError(f"Projected transcript {stable_id} has no exons")
        translation = Translation(
            start_exon=0,
            start=1,
            end_exon=len(exons) - 1,
            end=exons[-1].length,
        )
        return cls(
            interval=interval,
            exons=list(exons),
            stable_id=stable_id,
            source_transcript_id=source_transcript_id,
            translation=translation,
            description=f"stable_id of source: {source_transcript_id}",
        )

    @property
    def seqid(self) -> str:
        """Target sequence name."""
        return self.interval.seqid

    def exon_genomic(self, exon: ProjectedExon) -> tuple[int, int, int]:
        """Absolute (start, end, strand) of an exon on the target sequence."""
        start, end, strand = _to_genomic(self.interval, exon.start, exon.end)
        return start, end, strand * exon.strand

    @property
    def seq_region_start(self) -> int:
        """Lowest absolute exon coordinate."""
        return min(self.exon_genomic(e)[0] for e in self.exons)

    @property
    def seq_region_end(self) -> int:
        """Highest absolute exon coordinate."""
        return max(self.exon_genomic(e)[1] for e in self.exons)

    @property
    def seq_region_strand(self) -> int:
        """Absolute strand of the transcript."""
        return self.interval.strand

    def rebase(self, interval: GenomicInterval) -> None:
        """Move the transcript onto another interval of the same sequence.

        Exons keep their absolute position; relative coordinates are
        recomputed against the new interval.
        """
        rebased = []
        for exon in self.exons:
            abs_start, abs_end, _ = self.exon_genomic(exon)
            if interval.strand == -1:
                start = interval.end - abs_end + 1
                end = interval.end - abs_start + 1
            else:
                start = abs_start - interval.start + 1
                end = abs_end - interval.start + 1
            rebased.append(attrs.evolve(exon, start=start, end=end))
        self.exons = rebased
        self.interval = interval


@attrs.define(slots=True)
class ProjectedGene:
    """An output gene on the target genome.

    Attributes:
        gene_id: Output gene identifier.
        transcripts: Projected transcripts of the gene.
        source_gene_id: Identifier of the source gene.
        logic_name: Analysis logic name of the projection method.
    """

    gene_id: str
    transcripts: list[ProjectedTranscript] = attrs.Factory(list)
    source_gene_id: str = ""
    logic_name: str = CESAR_LOGIC_NAME

    @property
    def seqid(self) -> str:
        """Target sequence name."""
        return self.transcripts[0].seqid

    @property
    def start(self) -> int:
        """Lowest absolute coordinate of any transcript."""
        return min(t.seq_region_start for t in self.transcripts)

    @property
    def end(self) -> int:
        """Highest absolute coordinate of any transcript."""
        return max(t.seq_region_end for t in self.transcripts)

    @property
    def strand(self) -> int:
        """Absolute strand of the first transcript."""
        return self.transcripts[0].seq_region_strand
