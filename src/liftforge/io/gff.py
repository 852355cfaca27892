"""GFF3 file handling.

This module reads the reference annotation from GFF3 into source gene
models and writes projected genes back out as GFF3.

Features:
    - Parse gene/mRNA/exon/CDS hierarchies into SourceGene objects
    - Derive exon phases and coding sequences from CDS features
    - Write ProjectedGene objects with projection attributes

Example:
    >>> from liftforge.io.fasta import GenomeAccessor
    >>> from liftforge.io.gff import GFF3Parser, GFF3Writer
    >>> parser = GFF3Parser("reference.gff3", GenomeAccessor("reference.fa"))
    >>> gene = parser.get_gene("ENSG00000139618")
    >>> with GFF3Writer("projected.gff3") as writer:
    ...     writer.write_header()
    ...     writer.store(projected_gene)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

from liftforge.core.models import (
    PROTEIN_CODING,
    ProjectedGene,
    ProjectedTranscript,
    SourceExon,
    SourceGene,
    SourceTranscript,
)
from liftforge.utils.intervals import GenomicInterval
from liftforge.utils.sequences import translate

if TYPE_CHECKING:
    from liftforge.io.fasta import GenomeAccessor

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# GFF3 column indices
COL_SEQID = 0
COL_SOURCE = 1
COL_TYPE = 2
COL_START = 3
COL_END = 4
COL_SCORE = 5
COL_STRAND = 6
COL_PHASE = 7
COL_ATTRIBUTES = 8

# Standard feature types
FEATURE_GENE = "gene"
FEATURE_MRNA = "mRNA"
FEATURE_EXON = "exon"
FEATURE_CDS = "CDS"

FEATURE_TYPES_GENE = {"gene"}
FEATURE_TYPES_TRANSCRIPT = {"mRNA", "transcript"}

# Transcript tags marking the canonical isoform
CANONICAL_TAGS = {"Ensembl_canonical", "canonical"}


# =============================================================================
# Attribute Parsing
# =============================================================================


def parse_attributes(attr_string: str) -> dict[str, str]:
    """Parse GFF3 attribute string into dictionary.

    Args:
        attr_string: Semicolon-separated key=value pairs.

    Returns:
        Dictionary of attribute key-value pairs.
    """
    attributes: dict[str, str] = {}
    if not attr_string or attr_string == ".":
        return attributes

    for item in attr_string.split(";"):
        item = item.strip()
        if not item or "=" not in item:
            continue
        key, value = item.split("=", 1)
        value = value.replace("%3B", ";").replace("%3D", "=").replace("%26", "&")
        attributes[key] = value

    return attributes


def format_attributes(attributes: dict[str, Any]) -> str:
    """Format attribute dictionary as GFF3 string.

    List values are written as comma-separated multi-values.

    Args:
        attributes: Dictionary of attributes.

    Returns:
        Semicolon-separated key=value string.
    """
    if not attributes:
        return "."

    def encode(value: Any) -> str:
        value = str(value).replace(";", "%3B").replace("=", "%3D")
        return value.replace("&", "%26").replace(",", "%2C")

    parts = []
    for key, value in attributes.items():
        if isinstance(value, (list, tuple)):
            text = ",".join(encode(v) for v in value)
        else:
            text = encode(value)
        parts.append(f"{key}={text}")

    return ";".join(parts)


def gff_to_exon_phase(gff_phase: int) -> int:
    """Convert a GFF3 CDS phase to the exon phase convention.

    GFF3 phase counts bases to skip before the next codon starts; exon
    phase counts bases of the previous codon already read.
    """
    return (3 - gff_phase) % 3


def exon_to_gff_phase(phase: int) -> int:
    """Convert an exon phase (-1 treated as 0) to a GFF3 CDS phase."""
    return (3 - max(phase, 0)) % 3


# =============================================================================
# GFF3 Parser
# =============================================================================


class GFF3Parser:
    """Parse a reference GFF3 annotation into source gene models.

    Coding sequences are extracted from the reference genome, so the parser
    needs a genome accessor to build genes.

    Attributes:
        path: Path to the GFF3 file.
        genome: Reference genome used for exon sequences.

    Example:
        >>> parser = GFF3Parser("annotations.gff3", genome)
        >>> for gene in parser.iter_genes():
        ...     print(gene.gene_id, len(gene.transcripts))
    """

    def __init__(self, gff_path: Path | str, genome: GenomeAccessor | None = None) -> None:
        """Initialize the parser.

        Args:
            gff_path: Path to GFF3 file.
            genome: Reference genome accessor.

        Raises:
            FileNotFoundError: If file doesn't exist.
        """
        self.path = Path(gff_path)
        if not self.path.exists():
            raise FileNotFoundError(f"GFF3 file not found: {self.path}")

        self.genome = genome
        self._features: dict[str, dict[str, Any]] | None = None
        self._genes: dict[str, SourceGene] = {}

    def _parse_line(self, line: str) -> dict[str, Any] | None:
        """Parse a single GFF3 line.

        Args:
            line: Raw GFF3 line.

        Returns:
            Parsed feature dictionary or None for comments/empty.
        """
        line = line.strip()
        if not line or line.startswith("#"):
            return None

        parts = line.split("\t")
        if len(parts) < 9:
            logger.warning(f"Malformed GFF3 line (expected 9 columns): {line[:50]}...")
            return None

        try:
            return {
                "seqid": parts[COL_SEQID],
                "source": parts[COL_SOURCE],
                "type": parts[COL_TYPE],
                "start": int(parts[COL_START]),
                "end": int(parts[COL_END]),
                "strand": -1 if parts[COL_STRAND] == "-" else 1,
                "phase": None if parts[COL_PHASE] == "." else int(parts[COL_PHASE]),
                "attributes": parse_attributes(parts[COL_ATTRIBUTES]),
            }
        except (ValueError, IndexError) as e:
            logger.warning(f"Error parsing GFF3 line: {e}")
            return None

    def _collect(self) -> dict[str, dict[str, Any]]:
        """Group features into gene -> transcript -> exon/CDS records."""
        genes: dict[str, dict[str, Any]] = {}
        transcripts: dict[str, dict[str, Any]] = {}
        children: list[dict[str, Any]] = []

        with open(self.path) as f:
            for line in f:
                feature = self._parse_line(line)
                if feature is None:
                    continue
                ftype = feature["type"]
                attributes = feature["attributes"]
                if ftype in FEATURE_TYPES_GENE:
                    gene_id = attributes.get("ID", f"gene_{len(genes)}")
                    genes[gene_id] = {**feature, "transcripts": {}}
                elif ftype in FEATURE_TYPES_TRANSCRIPT:
                    tx_id = attributes.get("ID", f"tx_{len(transcripts)}")
                    transcripts[tx_id] = {**feature, "exons": [], "cds": []}
                elif ftype in (FEATURE_EXON, FEATURE_CDS):
                    children.append(feature)

        for tx_id, tx in transcripts.items():
            for parent_id in tx["attributes"].get("Parent", "").split(","):
                if parent_id in genes:
                    genes[parent_id]["transcripts"][tx_id] = tx

        for feature in children:
            key = "exons" if feature["type"] == FEATURE_EXON else "cds"
            for parent_id in feature["attributes"].get("Parent", "").split(","):
                if parent_id in transcripts:
                    transcripts[parent_id][key].append(feature)

        logger.info(f"Parsed {len(genes)} genes, {len(transcripts)} transcripts")
        return genes

    def _ensure_parsed(self) -> dict[str, dict[str, Any]]:
        """Ensure the GFF3 file has been parsed."""
        if self._features is None:
            self._features = self._collect()
        return self._features

    def _build_transcript(self, gene_id: str, tx_id: str, record: dict[str, Any]) -> SourceTranscript:
        """Build a source transcript from its exon and CDS records."""
        attributes = record["attributes"]
        strand = record["strand"]
        stable_id = tx_id.split(":", 1)[1] if tx_id.startswith("transcript:") else tx_id
        tags = set(attributes.get("tag", "").split(","))
        version = int(attributes["version"]) if attributes.get("version", "").isdigit() else 1

        # Coding order: ascending on +1, descending on -1
        cds_records = sorted(record["cds"], key=lambda c: c["start"], reverse=strand == -1)
        exon_records = record["exons"]

        exons: list[SourceExon] = []
        phase = -1
        for i, cds in enumerate(cds_records):
            interval = GenomicInterval(
                seqid=cds["seqid"],
                start=cds["start"],
                end=cds["end"],
                strand=strand,
            )
            containing = next(
                (e for e in exon_records if e["start"] <= cds["start"] and cds["end"] <= e["end"]),
                None,
            )
            if containing is not None:
                exon_id = containing["attributes"].get(
                    "exon_id", containing["attributes"].get("ID", f"{stable_id}.exon{i + 1}")
                )
            else:
                exon_id = cds["attributes"].get("ID", f"{stable_id}.cds{i + 1}")

            if i == 0:
                gff_phase = cds["phase"] or 0
                utr = containing is not None and (
                    (strand == 1 and containing["start"] < cds["start"])
                    or (strand == -1 and containing["end"] > cds["end"])
                )
                phase = gff_to_exon_phase(gff_phase) if gff_phase else (-1 if utr else 0)

            end_phase = (max(phase, 0) + interval.length) % 3
            if i == len(cds_records) - 1 and containing is not None and (
                (strand == 1 and containing["end"] > cds["end"])
                or (strand == -1 and containing["start"] < cds["start"])
            ):
                end_phase = -1

            sequence = self.genome.get_sequence(interval) if self.genome is not None else ""
            exons.append(
                SourceExon(
                    exon_id=exon_id,
                    interval=interval,
                    phase=phase,
                    end_phase=end_phase,
                    sequence=sequence,
                )
            )
            phase = end_phase if end_phase != -1 else 0

        translation = ""
        if exons and self.genome is not None:
            cds_seq = "".join(e.sequence for e in exons)
            offset = cds_records[0]["phase"] or 0
            translation = translate(cds_seq[offset:]).rstrip("*")

        if exons:
            interval = GenomicInterval(
                seqid=record["seqid"],
                start=min(e.interval.start for e in exons),
                end=max(e.interval.end for e in exons),
                strand=strand,
            )
        else:
            interval = GenomicInterval(record["seqid"], record["start"], record["end"], strand)

        return SourceTranscript(
            transcript_id=stable_id,
            gene_id=gene_id,
            interval=interval,
            exons=exons,
            biotype=attributes.get("biotype", PROTEIN_CODING if exons else "unknown"),
            is_canonical=bool(tags & CANONICAL_TAGS) or attributes.get("is_canonical") == "1",
            translation=translation,
            version=version,
        )

    def get_gene(self, gene_id: str) -> SourceGene | None:
        """Retrieve a source gene by ID.

        Args:
            gene_id: Gene identifier (``gene:`` prefix optional).

        Returns:
            SourceGene or None if not found.
        """
        if gene_id in self._genes:
            return self._genes[gene_id]

        features = self._ensure_parsed()
        record = features.get(gene_id) or features.get(f"gene:{gene_id}")
        if record is None:
            return None

        attributes = record["attributes"]
        stable_id = attributes.get("gene_id", gene_id.removeprefix("gene:"))
        seq_length = self.genome.get_length(record["seqid"]) if self.genome is not None else 0
        gene = SourceGene(
            gene_id=stable_id,
            interval=GenomicInterval(record["seqid"], record["start"], record["end"], record["strand"]),
            biotype=attributes.get("biotype", PROTEIN_CODING),
            transcripts=[
                self._build_transcript(stable_id, tx_id, tx)
                for tx_id, tx in record["transcripts"].items()
            ],
            seq_length=seq_length,
        )
        self._genes[gene_id] = gene
        return gene

    def iter_genes(self) -> Iterator[SourceGene]:
        """Iterate over all genes in file order.

        Yields:
            SourceGene objects.
        """
        for gene_id in self.gene_ids:
            gene = self.get_gene(gene_id)
            if gene is not None:
                yield gene

    @property
    def gene_ids(self) -> list[str]:
        """List of all gene IDs as they appear in the file."""
        return list(self._ensure_parsed().keys())


# =============================================================================
# GFF3 Writer
# =============================================================================


class GFF3Writer:
    """Write projected genes to GFF3 format.

    Example:
        >>> writer = GFF3Writer("output.gff3")
        >>> writer.write_header(target_genome="target.fa")
        >>> for gene in genes:
        ...     writer.store(gene)
        >>> writer.close()
    """

    def __init__(
        self,
        output_path: Path | str,
        source: str = "LiftForge",
    ) -> None:
        """Initialize the writer.

        Args:
            output_path: Output file path.
            source: Source field value for GFF3.
        """
        self.path = Path(output_path)
        self.source = source
        self._file = open(self.path, "w")
        self._header_written = False
        self.genes_written = 0

    def __enter__(self) -> GFF3Writer:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the output file."""
        if self._file:
            self._file.close()
            self._file = None

    def write_header(
        self,
        target_genome: Path | str | None = None,
        liftforge_version: str = "0.1.0",
    ) -> None:
        """Write GFF3 header with provenance.

        Args:
            target_genome: Path to the target genome.
            liftforge_version: LiftForge version.
        """
        self._file.write("##gff-version 3\n")
        self._file.write(f"#!processor LiftForge v{liftforge_version}\n")
        if target_genome:
            self._file.write(f"#!genome-build-file {target_genome}\n")
        self._header_written = True

    def _format_line(
        self,
        seqid: str,
        feature_type: str,
        start: int,
        end: int,
        strand: int,
        attributes: dict[str, Any],
        score: float | None = None,
        phase: int | None = None,
    ) -> str:
        """Format a GFF3 line (coordinates 1-based, inclusive)."""
        score_str = "." if score is None else f"{score:.2f}"
        phase_str = "." if phase is None else str(phase)
        strand_str = "-" if strand == -1 else "+"
        attr_str = format_attributes(attributes)
        return (
            f"{seqid}\t{self.source}\t{feature_type}\t{start}\t{end}\t"
            f"{score_str}\t{strand_str}\t{phase_str}\t{attr_str}\n"
        )

    def store(self, gene: ProjectedGene) -> None:
        """Store a projected gene (gene store collaborator interface)."""
        self.write_gene(gene)

    def write_gene(self, gene: ProjectedGene) -> None:
        """Write a gene and its child features.

        Args:
            gene: ProjectedGene to write.
        """
        if not self._header_written:
            self.write_header()

        gene_attrs = {
            "ID": gene.gene_id,
            "biotype": PROTEIN_CODING,
            "logic_name": gene.logic_name,
        }
        if gene.source_gene_id:
            gene_attrs["source_gene"] = gene.source_gene_id

        self._file.write(
            self._format_line(gene.seqid, FEATURE_GENE, gene.start, gene.end, gene.strand, gene_attrs)
        )

        for transcript in gene.transcripts:
            self._write_transcript(gene, transcript)

        self.genes_written += 1

    def _write_transcript(self, gene: ProjectedGene, transcript: ProjectedTranscript) -> None:
        """Write a transcript and its exon/CDS features."""
        tx_id = f"{gene.gene_id}:{transcript.stable_id}"
        tx_attrs: dict[str, Any] = {
            "ID": tx_id,
            "Parent": gene.gene_id,
            "biotype": PROTEIN_CODING,
            "logic_name": gene.logic_name,
            "description": transcript.description,
            "coverage": f"{transcript.coverage:.2f}",
            "percent_id": f"{transcript.percent_id:.2f}",
        }
        if transcript.seq_edits:
            tx_attrs["seq_edits"] = [
                f"{edit.start}:{edit.end}:{edit.alt_seq}" for edit in transcript.seq_edits
            ]

        self._file.write(
            self._format_line(
                transcript.seqid,
                FEATURE_MRNA,
                transcript.seq_region_start,
                transcript.seq_region_end,
                transcript.seq_region_strand,
                tx_attrs,
                score=transcript.percent_id,
            )
        )

        for i, exon in enumerate(transcript.exons, 1):
            start, end, strand = transcript.exon_genomic(exon)
            exon_attrs = {"ID": f"{tx_id}.exon{i}", "Parent": tx_id}
            self._file.write(
                self._format_line(transcript.seqid, FEATURE_EXON, start, end, strand, exon_attrs)
            )

        for i, exon in enumerate(transcript.exons, 1):
            start, end, strand = transcript.exon_genomic(exon)
            cds_attrs = {"ID": f"{tx_id}.CDS{i}", "Parent": tx_id}
            self._file.write(
                self._format_line(
                    transcript.seqid,
                    FEATURE_CDS,
                    start,
                    end,
                    strand,
                    cds_attrs,
                    phase=exon_to_gff_phase(exon.phase),
                )
            )
