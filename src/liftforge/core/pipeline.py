"""Per-gene projection pipeline.

One gene is one unit of work. For every protein-coding transcript of the
gene the pipeline selects a target region, encodes the transcript, runs
CESAR, parses the result and assembles a projected transcript. Accepted
transcripts are then turned into output genes.

A memory-exceeded aligner run on any transcript aborts the whole gene: no
genes are returned for it and a ``RetryRequest`` for the high-memory lane is
returned instead. Scratch files are deleted on every exit path.

Example:
    >>> from liftforge.core.pipeline import ProjectionInputs
    >>> inputs = ProjectionInputs(
    ...     reference_fasta="ref.fa", target_fasta="tgt.fa",
    ...     annotation_gff="ref.gff3", alignment_maf="ref_vs_tgt.maf",
    ... )
    >>> with inputs.build_projector() as projector:
    ...     result = projector.run_gene("ENSG00000139618")
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import attrs

from liftforge.config import Config
from liftforge.core.assemble import accept, assemble_transcript
from liftforge.core.encoder import encode_transcript, scratch_path
from liftforge.core.genes import build_genes
from liftforge.core.locus import select_target_region
from liftforge.exceptions import (
    DataConsistencyError,
    InputError,
    MemoryExceededError,
    ProjectionError,
)
from liftforge.homology.cesar import CesarRunner
from liftforge.homology.parse import (
    make_seq_edits,
    map_exons,
    parse_projection,
    remove_overlapping_exons,
)
from liftforge.qc.filters import create_filter
from liftforge.utils.logging import Timer

if TYPE_CHECKING:
    from liftforge.core.models import (
        ProjectedGene,
        ProjectedTranscript,
        SourceGene,
        SourceTranscript,
    )
    from liftforge.qc.filters import QualityFilter
    from liftforge.utils.intervals import GenomicInterval

logger = logging.getLogger(__name__)


# =============================================================================
# Collaborator Interfaces
# =============================================================================


class GenomeSource(Protocol):
    """Genome sequence collaborator."""

    def fetch_interval(self, seqid: str, start: int, end: int, strand: int = 1) -> GenomicInterval: ...

    def fetch_by_name(self, descriptor: str) -> GenomicInterval: ...

    def get_sequence(self, interval: GenomicInterval) -> str: ...

    def get_length(self, seqid: str) -> int: ...


class AnnotationSource(Protocol):
    """Reference annotation collaborator."""

    def get_gene(self, gene_id: str) -> SourceGene | None: ...


class AlignmentSource(Protocol):
    """Pairwise whole-genome alignment collaborator."""

    def fetch_blocks(self, interval: GenomicInterval) -> list[Any]: ...


class GeneStore(Protocol):
    """Output gene store collaborator."""

    def store(self, gene: ProjectedGene) -> None: ...


# =============================================================================
# Scratch Files
# =============================================================================


class ScratchRegistry:
    """Tracks scratch files and deletes them when the context exits.

    Example:
        >>> with ScratchRegistry() as scratch:
        ...     path = scratch.register(Path("cesar_1_TX1_42.fasta"))
        # path is deleted here, whether or not an exception was raised
    """

    def __init__(self) -> None:
        self.paths: list[Path] = []

    def register(self, path: Path | str) -> Path:
        """Register a path for deletion and return it."""
        path = Path(path)
        self.paths.append(path)
        return path

    def cleanup(self) -> None:
        """Delete every registered file that exists."""
        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not delete scratch file {path}: {e}")
        if self.paths:
            logger.debug(f"Deleted {len(self.paths)} scratch files")
        self.paths.clear()

    def __enter__(self) -> ScratchRegistry:
        return self

    def __exit__(self, *args: Any) -> None:
        self.cleanup()


# =============================================================================
# Job State
# =============================================================================


class JobStatus(Enum):
    """Final state of a gene job."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    RETRY = "retry"


@attrs.define(slots=True, frozen=True)
class RetryRequest:
    """Request to re-run a gene on the high-memory lane.

    Attributes:
        gene_id: Gene to re-run.
        max_memory_gb: Memory bound for the re-run.
        reason: Why the gene is re-queued.
    """

    gene_id: str
    max_memory_gb: float
    reason: str = "memory_exceeded"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return attrs.asdict(self)

    def to_json(self) -> str:
        """One JSON line."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, line: str) -> RetryRequest:
        """Parse one JSON line."""
        data = json.loads(line)
        return cls(
            gene_id=data["gene_id"],
            max_memory_gb=float(data["max_memory_gb"]),
            reason=data.get("reason", "memory_exceeded"),
        )


@attrs.define
class GeneJob:
    """Working state of one gene projection.

    Attributes:
        gene: Source gene.
        transcripts: De-duplicated protein-coding transcripts, in order.
        target_regions: Selected target region per transcript id.
        scratch: Scratch file registry of the job.
        max_memory_gb: Aligner memory bound for this attempt.
        projected: Projected transcripts collected so far.
        output_genes: Genes built from the accepted transcripts.
        failed: Number of transcripts that did not project.
    """

    gene: SourceGene
    transcripts: list[SourceTranscript]
    target_regions: dict[str, GenomicInterval]
    scratch: ScratchRegistry
    max_memory_gb: float | None = None
    projected: list[ProjectedTranscript] = attrs.Factory(list)
    output_genes: list[ProjectedGene] = attrs.Factory(list)
    failed: int = 0


@attrs.define
class GeneJobResult:
    """Outcome of one gene projection.

    Attributes:
        gene_id: Source gene identifier.
        status: Final job state.
        genes: Output genes (empty unless COMPLETED).
        retry: High-memory retry request (RETRY only).
        failed: Transcripts that failed to project.
        total: Transcripts attempted.
    """

    gene_id: str
    status: JobStatus
    genes: list[ProjectedGene] = attrs.Factory(list)
    retry: RetryRequest | None = None
    failed: int = 0
    total: int = 0


# =============================================================================
# Transcript Selection
# =============================================================================


def unique_translateable_transcripts(gene: SourceGene, canonical: bool = False) -> list[SourceTranscript]:
    """Protein-coding transcripts of a gene, de-duplicated by id.

    Args:
        gene: Source gene.
        canonical: Only consider the canonical transcript.

    Returns:
        Transcripts in first-seen order.
    """
    if canonical:
        candidates = [gene.canonical_transcript] if gene.canonical_transcript else []
    else:
        candidates = gene.transcripts

    unique: dict[str, SourceTranscript] = {}
    for transcript in candidates:
        if transcript.is_protein_coding and transcript.exons:
            unique.setdefault(transcript.transcript_id, transcript)
    return list(unique.values())


# =============================================================================
# Projector
# =============================================================================


class TranscriptProjector:
    """Projects the transcripts of reference genes onto a target genome.

    Attributes:
        config: Run configuration.
        reference: Reference genome.
        target: Target genome.
        annotation: Reference annotation.
        alignments: Reference-vs-target alignment blocks.
        runner: CESAR driver.
        quality_filter: Filter applied to assembled transcripts.
    """

    def __init__(
        self,
        config: Config,
        reference: GenomeSource,
        target: GenomeSource,
        annotation: AnnotationSource,
        alignments: AlignmentSource,
        runner: CesarRunner | None = None,
        quality_filter: QualityFilter | None = None,
    ) -> None:
        self.config = config
        self.reference = reference
        self.target = target
        self.annotation = annotation
        self.alignments = alignments
        self.runner = runner or CesarRunner(
            cesar_path=config.projection.cesar_path,
            clade=config.projection.clade,
            max_memory_gb=config.projection.max_memory_gb,
        )
        self.quality_filter = quality_filter if quality_filter is not None else create_filter(config.filter)

    def __enter__(self) -> TranscriptProjector:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close collaborators that hold open files."""
        for source in (self.reference, self.target):
            close = getattr(source, "close", None)
            if close is not None:
                close()

    # -------------------------------------------------------------------------
    # Job preparation
    # -------------------------------------------------------------------------

    def prepare(self, gene: SourceGene, scratch: ScratchRegistry, max_memory_gb: float | None = None) -> GeneJob:
        """Select transcripts and target regions for a gene.

        Args:
            gene: Source gene.
            scratch: Registry for the job's scratch files.
            max_memory_gb: Aligner memory bound for this attempt.

        Returns:
            GeneJob ready to run.
        """
        projection = self.config.projection
        transcripts = unique_translateable_transcripts(gene, projection.canonical)
        region_length = gene.seq_length or self.reference.get_length(gene.interval.seqid)

        regions: dict[str, GenomicInterval] = {}
        for transcript in transcripts:
            window = transcript.interval.padded(projection.padding, region_length)
            blocks = self.alignments.fetch_blocks(window)
            region = select_target_region(
                transcript,
                blocks,
                padding=projection.padding,
                region_length=region_length,
                genome=self.target,
            )
            if region is not None:
                regions[transcript.transcript_id] = region

        return GeneJob(
            gene=gene,
            transcripts=transcripts,
            target_regions=regions,
            scratch=scratch,
            max_memory_gb=max_memory_gb,
        )

    @staticmethod
    def check_consistency(job: GeneJob) -> None:
        """Check that the gene, its transcripts and target regions agree.

        Raises:
            DataConsistencyError: On any mismatch.
        """
        transcript_ids = {t.transcript_id for t in job.transcripts}
        if len(transcript_ids) != len(job.transcripts):
            raise DataConsistencyError("Duplicate transcripts in job", gene_id=job.gene.gene_id)
        stray = set(job.target_regions) - transcript_ids
        if stray:
            raise DataConsistencyError(
                f"Target regions for transcripts outside the job: {', '.join(sorted(stray))}",
                gene_id=job.gene.gene_id,
            )
        for transcript in job.transcripts:
            if transcript.gene_id != job.gene.gene_id:
                raise DataConsistencyError(
                    f"Transcript belongs to gene {transcript.gene_id}",
                    gene_id=job.gene.gene_id,
                    transcript_id=transcript.transcript_id,
                )

    # -------------------------------------------------------------------------
    # Transcript projection
    # -------------------------------------------------------------------------

    def project_transcript(self, job: GeneJob, transcript: SourceTranscript) -> ProjectedTranscript | None:
        """Project one transcript onto its selected target region.

        Returns:
            ProjectedTranscript, or None if nothing could be projected.

        Raises:
            MemoryExceededError: If CESAR hit its memory limit.
            AlignerFatalError: If CESAR reported a critical error.
            InputError: On malformed input or output.
        """
        projection = self.config.projection
        region = job.target_regions[transcript.transcript_id]

        encoded = encode_transcript(transcript, region, self.target.get_sequence(region))
        if not encoded.exon_records:
            logger.warning(f"No exon of transcript {transcript.transcript_id} could be encoded")
            return None

        input_path = job.scratch.register(scratch_path(projection.scratch_dir, transcript.transcript_id))
        encoded.write(input_path)

        with Timer(f"CESAR run for transcript {transcript.transcript_id}", logger):
            outcome = self.runner.run_or_raise(
                input_path,
                max_memory_gb=job.max_memory_gb,
                register=job.scratch.register,
            )

        result = parse_projection(
            outcome.output,
            fewest_gaps=projection.fewest_gaps,
            transcript_id=transcript.transcript_id,
        )
        interval = self.target.fetch_by_name(result.target_name)
        exons = map_exons(result, interval.length, stable_id=transcript.stable_id_version)
        exons = remove_overlapping_exons(exons)
        edits = make_seq_edits(result.reference_aligned, result.target_aligned)

        return assemble_transcript(
            transcript,
            exons,
            interval,
            self.target.get_sequence(interval),
            seq_edits=edits,
        )

    # -------------------------------------------------------------------------
    # Gene projection
    # -------------------------------------------------------------------------

    def run_gene(self, gene_id: str, max_memory_gb: float | None = None) -> GeneJobResult:
        """Project every transcript of a gene.

        Args:
            gene_id: Source gene identifier.
            max_memory_gb: Aligner memory bound (None = configured default).

        Returns:
            GeneJobResult. Output genes are returned, not stored.

        Raises:
            InputError: If the gene is unknown or input is malformed.
            DataConsistencyError: If the job state is inconsistent.
            AlignerFatalError: If CESAR reported a critical error.
        """
        gene = self.annotation.get_gene(gene_id)
        if gene is None:
            raise InputError("Gene not found in annotation", gene_id=gene_id)

        if not gene.is_protein_coding:
            logger.warning(f"Gene {gene.gene_id} does not have protein_coding biotype, skipping")
            return GeneJobResult(gene_id=gene.gene_id, status=JobStatus.SKIPPED)

        with ScratchRegistry() as scratch:
            job = self.prepare(gene, scratch, max_memory_gb)
            self.check_consistency(job)

            if not job.transcripts or not job.target_regions:
                logger.warning(
                    f"Gene {gene.gene_id} does not have unique translateable transcripts "
                    f"or target regions"
                )
                return GeneJobResult(
                    gene_id=gene.gene_id,
                    status=JobStatus.COMPLETED,
                    total=len(job.transcripts),
                )

            try:
                self._project_transcripts(job)
            except MemoryExceededError:
                himem = self.config.projection.himem_max_memory_gb
                logger.warning(
                    f"Memory limit reached for gene {gene.gene_id}; "
                    f"discarding {len(job.projected)} projected transcripts, "
                    f"re-queueing with {himem:g} GB"
                )
                job.projected.clear()
                return GeneJobResult(
                    gene_id=gene.gene_id,
                    status=JobStatus.RETRY,
                    retry=RetryRequest(gene_id=gene.gene_id, max_memory_gb=himem),
                    failed=job.failed + 1,
                    total=len(job.transcripts),
                )

            accepted = [t for t in job.projected if accept(t, self.quality_filter)]
            job.output_genes = build_genes(
                accepted,
                gene,
                shared_region=self.config.projection.common_slice,
                genome=self.target,
            )

        logger.info(
            f"Had a total of {job.failed}/{len(job.transcripts)} failed transcript "
            f"projections for gene {gene.gene_id}"
        )
        return GeneJobResult(
            gene_id=gene.gene_id,
            status=JobStatus.COMPLETED,
            genes=job.output_genes,
            failed=job.failed,
            total=len(job.transcripts),
        )

    def _project_transcripts(self, job: GeneJob) -> None:
        """Run the transcript loop of a job; the first hard failure propagates."""
        for transcript in job.transcripts:
            region = job.target_regions.get(transcript.transcript_id)
            if region is None:
                job.failed += 1
                continue

            if transcript.strand == -1 or region.strand == -1:
                logger.warning(
                    f"Skipping transcript {transcript.transcript_id}: unsupported strand "
                    f"combination (source {transcript.strand}, target {region.strand})"
                )
                continue

            try:
                projected = self.project_transcript(job, transcript)
            except ProjectionError as e:
                e.gene_id = e.gene_id or job.gene.gene_id
                e.transcript_id = e.transcript_id or transcript.transcript_id
                raise

            if projected is None:
                logger.info(f"Failed to project transcript {transcript.transcript_id}")
                job.failed += 1
            else:
                job.projected.append(projected)


# =============================================================================
# File-backed Inputs
# =============================================================================


@attrs.define(frozen=True)
class ProjectionInputs:
    """File paths and settings needed to build a projector in any process.

    Attributes:
        reference_fasta: Reference genome FASTA.
        target_fasta: Target genome FASTA.
        annotation_gff: Reference annotation GFF3.
        alignment_maf: Reference-vs-target MAF alignment.
        reference_assembly: Reference assembly name (MAF prefix).
        target_assembly: Target assembly name (MAF prefix, descriptors).
        config: Run configuration.
    """

    reference_fasta: Path | str
    target_fasta: Path | str
    annotation_gff: Path | str
    alignment_maf: Path | str
    reference_assembly: str = ""
    target_assembly: str = ""
    config: Config = attrs.Factory(Config)

    def build_projector(self) -> TranscriptProjector:
        """Open the input files and build a projector."""
        from liftforge.io.fasta import GenomeAccessor
        from liftforge.io.gff import GFF3Parser
        from liftforge.io.maf import MAFAlignmentSource

        reference = GenomeAccessor(self.reference_fasta, assembly=self.reference_assembly)
        target = GenomeAccessor(self.target_fasta, assembly=self.target_assembly)
        annotation = GFF3Parser(self.annotation_gff, reference)
        alignments = MAFAlignmentSource(
            self.alignment_maf,
            reference_assembly=self.reference_assembly,
            target_assembly=self.target_assembly,
            method_link_type=self.config.projection.method_link_type,
        )
        return TranscriptProjector(self.config, reference, target, annotation, alignments)
