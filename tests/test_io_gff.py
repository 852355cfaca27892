"""Unit tests for liftforge.io.gff module.

Tests cover:
- Attribute parsing and formatting
- Phase conversion between GFF3 and exon conventions
- GFF3Parser source gene models
- GFF3Writer output of projected genes
"""

from pathlib import Path

import pytest

from liftforge.core.assemble import calculate_exon_phases
from liftforge.core.models import ProjectedExon, ProjectedGene, ProjectedTranscript, SeqEdit
from liftforge.io.fasta import GenomeAccessor
from liftforge.io.gff import (
    GFF3Parser,
    GFF3Writer,
    exon_to_gff_phase,
    format_attributes,
    gff_to_exon_phase,
    parse_attributes,
)
from liftforge.utils.intervals import GenomicInterval

# =============================================================================
# Utility Function Tests
# =============================================================================


class TestAttributes:
    """Tests for attribute parsing and formatting."""

    def test_parse(self) -> None:
        """Key/value pairs are split and unescaped."""
        attrs = parse_attributes("ID=gene1;Name=a%3Bb;Note=x%3Dy;")
        assert attrs == {"ID": "gene1", "Name": "a;b", "Note": "x=y"}

    def test_parse_empty(self) -> None:
        """Missing attributes give an empty dict."""
        assert parse_attributes(".") == {}
        assert parse_attributes("") == {}

    def test_format(self) -> None:
        """Reserved characters are escaped, lists become multi-values."""
        text = format_attributes({"ID": "t1", "Note": "a;b=c", "seq_edits": ["4:3:CCC", "7:6:GG"]})
        assert text == "ID=t1;Note=a%3Bb%3Dc;seq_edits=4:3:CCC,7:6:GG"

    def test_format_empty(self) -> None:
        """No attributes is a dot."""
        assert format_attributes({}) == "."


class TestPhaseConversion:
    """Tests for GFF3/exon phase conversion."""

    @pytest.mark.parametrize("gff_phase,exon_phase", [(0, 0), (1, 2), (2, 1)])
    def test_round_trip(self, gff_phase: int, exon_phase: int) -> None:
        """The two conventions are each other's complement modulo 3."""
        assert gff_to_exon_phase(gff_phase) == exon_phase
        assert exon_to_gff_phase(exon_phase) == gff_phase

    def test_unset_phase(self) -> None:
        """An unset exon phase writes as 0."""
        assert exon_to_gff_phase(-1) == 0


# =============================================================================
# Parser Tests
# =============================================================================


class TestGFF3Parser:
    """Tests for GFF3Parser."""

    @pytest.fixture
    def parser(self, annotation_gff: Path, reference_fasta: Path) -> GFF3Parser:
        return GFF3Parser(annotation_gff, GenomeAccessor(reference_fasta))

    def test_gene_ids(self, parser: GFF3Parser) -> None:
        """Gene ids are listed in file order."""
        assert parser.gene_ids == ["G1", "G2", "G3", "G4"]

    def test_two_exon_gene(self, parser: GFF3Parser, reference_sequences: dict[str, str]) -> None:
        """CDS features become coding exons with sequences and phases."""
        chr1 = reference_sequences["chr1"]
        gene = parser.get_gene("G1")
        assert gene.seq_length == 1000
        assert gene.is_protein_coding

        [transcript] = gene.transcripts
        assert transcript.stable_id_version == "TX1.3"
        assert transcript.is_canonical
        assert transcript.strand == 1
        assert [e.exon_id for e in transcript.exons] == ["TX1E1", "TX1E2"]
        assert [(e.phase, e.end_phase) for e in transcript.exons] == [(0, 0), (0, 0)]
        assert [e.sequence for e in transcript.exons] == [chr1[100:190], chr1[290:350]]
        assert transcript.translation == "M" + "A" * 29 + "E" * 19
        assert (transcript.interval.start, transcript.interval.end) == (101, 350)

    def test_cached(self, parser: GFF3Parser) -> None:
        """Genes are built once."""
        assert parser.get_gene("G1") is parser.get_gene("G1")

    def test_non_coding_gene(self, parser: GFF3Parser) -> None:
        """Non-coding transcripts have no coding exons."""
        gene = parser.get_gene("G3")
        assert gene.biotype == "lncRNA"
        assert not gene.is_protein_coding
        assert gene.transcripts[0].exons == []

    def test_minus_strand(self, parser: GFF3Parser) -> None:
        """Minus-strand transcripts keep strand -1."""
        transcript = parser.get_gene("G4").transcripts[0]
        assert transcript.strand == -1
        assert transcript.exons[0].interval.strand == -1

    def test_missing_gene(self, parser: GFF3Parser) -> None:
        """Unknown ids give None."""
        assert parser.get_gene("NOPE") is None

    def test_iter_genes(self, parser: GFF3Parser) -> None:
        """Every gene is yielded."""
        assert [g.gene_id for g in parser.iter_genes()] == ["G1", "G2", "G3", "G4"]

    def test_utr_start_phase(self, tmp_path: Path, reference_fasta: Path) -> None:
        """A CDS starting inside its exon has an unset start phase."""
        path = tmp_path / "utr.gff3"
        path.write_text(
            "##gff-version 3\n"
            "chr1\tref\tgene\t91\t200\t.\t+\t.\tID=G9\n"
            "chr1\tref\tmRNA\t91\t200\t.\t+\t.\tID=TX9;Parent=G9\n"
            "chr1\tref\texon\t91\t200\t.\t+\t.\tID=TX9.e1;Parent=TX9\n"
            "chr1\tref\tCDS\t101\t190\t.\t+\t0\tID=TX9.cds;Parent=TX9\n"
        )
        transcript = GFF3Parser(path, GenomeAccessor(reference_fasta)).get_gene("G9").transcripts[0]
        assert transcript.exons[0].phase == -1
        assert transcript.exons[0].end_phase == -1
        assert transcript.exons[0].exon_id == "TX9.e1"

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing GFF3 raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            GFF3Parser(tmp_path / "missing.gff3")


# =============================================================================
# Writer Tests
# =============================================================================


def make_gene() -> ProjectedGene:
    transcript = ProjectedTranscript.from_exons(
        GenomicInterval("chr2", 4951, 5300, assembly="tgt"),
        [ProjectedExon(51, 140, "TX1.3"), ProjectedExon(241, 301, "TX1.3")],
        stable_id="TX1.3",
        source_transcript_id="TX1",
    )
    calculate_exon_phases(transcript.exons, 0)
    transcript.coverage = 98.5
    transcript.percent_id = 97.25
    transcript.seq_edits = [SeqEdit(4, 3, "CCC")]
    return ProjectedGene("G1-1", [transcript], source_gene_id="G1")


class TestGFF3Writer:
    """Tests for GFF3Writer."""

    def test_write_gene(self, tmp_path: Path) -> None:
        """Gene, mRNA, exon and CDS lines with absolute coordinates."""
        output = tmp_path / "out.gff3"
        with GFF3Writer(output) as writer:
            writer.write_header(target_genome="target.fa")
            writer.store(make_gene())
            assert writer.genes_written == 1

        lines = output.read_text().splitlines()
        assert lines[0] == "##gff-version 3"
        assert lines[2] == "#!genome-build-file target.fa"

        features = [line.split("\t") for line in lines if not line.startswith("#")]
        assert [f[2] for f in features] == ["gene", "mRNA", "exon", "exon", "CDS", "CDS"]
        assert [(f[3], f[4]) for f in features[2:4]] == [("5001", "5090"), ("5191", "5251")]
        assert (features[0][3], features[0][4]) == ("5001", "5251")

        gene_attrs = parse_attributes(features[0][8])
        assert gene_attrs["ID"] == "G1-1"
        assert gene_attrs["source_gene"] == "G1"
        assert gene_attrs["logic_name"] == "cesar"

        mrna_attrs = parse_attributes(features[1][8])
        assert mrna_attrs["ID"] == "G1-1:TX1.3"
        assert mrna_attrs["coverage"] == "98.50"
        assert mrna_attrs["percent_id"] == "97.25"
        assert mrna_attrs["seq_edits"] == "4:3:CCC"
        assert mrna_attrs["description"] == "stable_id of source: TX1"

        # Second exon starts at exon phase 0, CDS phase column is the GFF3 phase
        assert [f[7] for f in features[4:]] == ["0", "0"]

    def test_header_written_once(self, tmp_path: Path) -> None:
        """The header is added automatically if missing."""
        output = tmp_path / "out.gff3"
        with GFF3Writer(output) as writer:
            writer.store(make_gene())
            writer.store(make_gene())
        text = output.read_text()
        assert text.count("##gff-version 3") == 1
        assert text.count("\tgene\t") == 2

    def test_reverse_strand_cds_phase(self, tmp_path: Path) -> None:
        """Minus-strand transcripts are written on - with converted phases."""
        transcript = ProjectedTranscript.from_exons(
            GenomicInterval("chr2", 1001, 1200, strand=-1),
            [ProjectedExon(1, 91), ProjectedExon(101, 160)],
            stable_id="TX4.1",
            source_transcript_id="TX4",
        )
        calculate_exon_phases(transcript.exons, 0)
        output = tmp_path / "out.gff3"
        with GFF3Writer(output) as writer:
            writer.store(ProjectedGene("G4-1", [transcript], source_gene_id="G4"))

        features = [
            line.split("\t") for line in output.read_text().splitlines() if not line.startswith("#")
        ]
        cds = [f for f in features if f[2] == "CDS"]
        assert all(f[6] == "-" for f in features)
        assert [(c[3], c[4]) for c in cds] == [("1110", "1200"), ("1041", "1100")]
        # Exon phases 0 then 1 become GFF3 phases 0 then 2
        assert [c[7] for c in cds] == ["0", "2"]
