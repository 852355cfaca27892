"""Pytest configuration and shared fixtures for LiftForge tests.

This module contains fixtures that are shared across multiple test modules.
Fixtures are organized by category:

- Sequence fixtures: Reference and target genome sequences
- File fixtures: Synthetic FASTA, GFF3 and MAF files
- Aligner fixtures: A fake ``cesar`` for subprocess.run

The synthetic data describe one projection scenario. Reference chr1 holds a
two-exon transcript (CDS 101-190 and 291-350, + strand). Target chr2 holds a
copy of reference 51-400 at 4951-5300, so reference position p maps to
target position p + 4900. The MAF file aligns that copy (group 1, 350
aligned bases) and a shorter block onto target chr3 (group 2, 120 bases).
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from liftforge.core.models import SourceExon, SourceGene, SourceTranscript
from liftforge.homology.cesar import MEMORY_MARKER
from liftforge.utils.intervals import GenomicInterval

# =============================================================================
# Constants
# =============================================================================

EXON1 = "ATG" + "GCT" * 29  # 90 bp
EXON2 = "GAA" * 19 + "TAA"  # 60 bp
SOURCE_PROTEIN = "M" + "A" * 29 + "E" * 19

REFERENCE_OFFSET = 4900
# Exon spans relative to the selected target region chr2:4951-5300
TARGET_EXON_SPANS = [(51, 140), (241, 300)]


def _random_sequence(rng: np.random.Generator, length: int) -> str:
    return "".join(rng.choice(list("ACGT"), length))


def _write_fasta(path: Path, sequences: dict[str, str]) -> Path:
    with open(path, "w") as f:
        for seqid, seq in sequences.items():
            f.write(f">{seqid}\n")
            # Write in 80-character lines
            for i in range(0, len(seq), 80):
                f.write(seq[i : i + 80] + "\n")
    return path


# =============================================================================
# Sequence Fixtures
# =============================================================================


@pytest.fixture
def reference_sequences() -> dict[str, str]:
    """Reference genome: chr1 (1000 bp) with the two-exon CDS."""
    rng = np.random.default_rng(42)
    chr1 = (
        _random_sequence(rng, 100)
        + EXON1
        + "GT" + _random_sequence(rng, 96) + "AG"
        + EXON2
        + _random_sequence(rng, 650)
    )
    assert len(chr1) == 1000
    return {"chr1": chr1}


@pytest.fixture
def target_sequences(reference_sequences: dict[str, str]) -> dict[str, str]:
    """Target genome: chr2 (6000 bp) with reference 51-400 at 4951-5300, chr3 (500 bp)."""
    rng = np.random.default_rng(7)
    chr2 = (
        _random_sequence(rng, 4950)
        + reference_sequences["chr1"][50:400]
        + _random_sequence(rng, 700)
    )
    assert len(chr2) == 6000
    return {"chr2": chr2, "chr3": _random_sequence(rng, 500)}


# =============================================================================
# File Fixtures
# =============================================================================


@pytest.fixture
def reference_fasta(tmp_path: Path, reference_sequences: dict[str, str]) -> Path:
    """Reference genome FASTA file."""
    return _write_fasta(tmp_path / "reference.fa", reference_sequences)


@pytest.fixture
def target_fasta(tmp_path: Path, target_sequences: dict[str, str]) -> Path:
    """Target genome FASTA file."""
    return _write_fasta(tmp_path / "target.fa", target_sequences)


def _gff_line(seqid, ftype, start, end, strand, attrs, phase="."):
    return f"{seqid}\tref\t{ftype}\t{start}\t{end}\t.\t{strand}\t{phase}\t{attrs}\n"


def _two_exon_transcript(tx_id: str, gene_id: str, extra: str = "") -> list[str]:
    return [
        _gff_line("chr1", "mRNA", 101, 350, "+", f"ID={tx_id};Parent={gene_id};biotype=protein_coding{extra}"),
        _gff_line("chr1", "exon", 101, 190, "+", f"ID={tx_id}.e1;Parent={tx_id};exon_id={tx_id}E1"),
        _gff_line("chr1", "exon", 291, 350, "+", f"ID={tx_id}.e2;Parent={tx_id};exon_id={tx_id}E2"),
        _gff_line("chr1", "CDS", 101, 190, "+", f"ID={tx_id}.cds;Parent={tx_id}", phase="0"),
        _gff_line("chr1", "CDS", 291, 350, "+", f"ID={tx_id}.cds;Parent={tx_id}", phase="0"),
    ]


@pytest.fixture
def annotation_gff(tmp_path: Path) -> Path:
    """Reference annotation GFF3.

    Genes:
    - G1: one two-exon transcript TX1 (canonical, version 3)
    - G2: three identical transcripts TX2A, TX2B, TX2C
    - G3: lncRNA gene
    - G4: one transcript on the - strand
    """
    lines = ["##gff-version 3\n"]

    lines.append(_gff_line("chr1", "gene", 101, 350, "+", "ID=G1;biotype=protein_coding"))
    lines.extend(_two_exon_transcript("TX1", "G1", ";tag=Ensembl_canonical;version=3"))

    lines.append(_gff_line("chr1", "gene", 101, 350, "+", "ID=G2;biotype=protein_coding"))
    for tx_id in ("TX2A", "TX2B", "TX2C"):
        lines.extend(_two_exon_transcript(tx_id, "G2"))

    lines.append(_gff_line("chr1", "gene", 500, 700, "+", "ID=G3;biotype=lncRNA"))
    lines.append(_gff_line("chr1", "transcript", 500, 700, "+", "ID=TX3;Parent=G3;biotype=lncRNA"))
    lines.append(_gff_line("chr1", "exon", 500, 700, "+", "ID=TX3.e1;Parent=TX3"))

    lines.append(_gff_line("chr1", "gene", 151, 240, "-", "ID=G4;biotype=protein_coding"))
    lines.append(_gff_line("chr1", "mRNA", 151, 240, "-", "ID=TX4;Parent=G4;biotype=protein_coding"))
    lines.append(_gff_line("chr1", "exon", 151, 240, "-", "ID=TX4.e1;Parent=TX4"))
    lines.append(_gff_line("chr1", "CDS", 151, 240, "-", "ID=TX4.cds;Parent=TX4", phase="0"))

    path = tmp_path / "reference.gff3"
    path.write_text("".join(lines))
    return path


@pytest.fixture
def alignment_maf(
    tmp_path: Path,
    reference_sequences: dict[str, str],
    target_sequences: dict[str, str],
) -> Path:
    """Pairwise MAF with a 350 bp block (group 1) and a 120 bp block (group 2)."""
    ref = reference_sequences["chr1"]
    chr2 = target_sequences["chr2"]
    chr3 = target_sequences["chr3"]
    text = (
        "##maf version=1\n"
        "\n"
        "a score=35000 group=1\n"
        f"s ref.chr1 50 350 + 1000 {ref[50:400]}\n"
        f"s tgt.chr2 4950 350 + 6000 {chr2[4950:5300]}\n"
        "\n"
        "a score=9000 group=2\n"
        f"s ref.chr1 100 120 + 1000 {ref[100:220]}\n"
        f"s tgt.chr3 200 120 + 500 {chr3[200:320]}\n"
        "\n"
    )
    path = tmp_path / "alignment.maf"
    path.write_text(text)
    return path


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    """Empty scratch directory."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def two_exon_transcript() -> SourceTranscript:
    """Source transcript with exons of 90 and 60 bp, phases 0/0 and 0/-1."""
    exon1 = SourceExon("E1", GenomicInterval("chr1", 101, 190), 0, 0, EXON1)
    exon2 = SourceExon("E2", GenomicInterval("chr1", 291, 350), 0, -1, EXON2)
    return SourceTranscript(
        transcript_id="TX1",
        gene_id="G1",
        interval=GenomicInterval("chr1", 101, 350),
        exons=[exon1, exon2],
        translation=SOURCE_PROTEIN,
    )


@pytest.fixture
def source_gene(two_exon_transcript: SourceTranscript) -> SourceGene:
    """Source gene holding the two-exon transcript."""
    return SourceGene(
        gene_id="G1",
        interval=GenomicInterval("chr1", 101, 350),
        transcripts=[two_exon_transcript],
        seq_length=1000,
    )


# =============================================================================
# Aligner Fixtures
# =============================================================================


def cesar_record(target_name: str, target_sequence: str, spans: list[tuple[int, int]]) -> str:
    """Build one CESAR output record with uppercase exon spans (1-based, inclusive)."""
    aligned = list(target_sequence.lower())
    reference = [" "] * len(target_sequence)
    for start, end in spans:
        for i in range(start - 1, end):
            aligned[i] = aligned[i].upper()
            reference[i] = aligned[i]
    return (
        ">referenceExon\n"
        f"{''.join(reference)}\n"
        f">{target_name}\n"
        f"{''.join(aligned)}\n"
    )


def read_cesar_input(path: Path | str) -> tuple[str, str]:
    """Return (target_name, target_sequence) from an encoded input file."""
    lines = Path(path).read_text().splitlines()
    separator = lines.index("#")
    return lines[separator + 1][1:], lines[separator + 2]


@pytest.fixture
def fake_cesar() -> Callable[..., Callable]:
    """Factory for subprocess.run replacements emulating cesar.

    The returned function projects ``spans`` onto the target of the input
    file. Inputs whose name contains any of ``memory_for`` report the
    memory limit instead, and inputs matching ``critical_for`` report a
    critical error.
    """

    def factory(
        spans: list[tuple[int, int]] | None = None,
        memory_for: tuple[str, ...] = (),
        critical_for: tuple[str, ...] = (),
    ) -> Callable:
        spans = TARGET_EXON_SPANS if spans is None else spans
        calls: list[list[str]] = []

        def run(cmd, **kwargs):
            calls.append(list(cmd))
            name = Path(cmd[1]).name
            if any(f"_{tx}_" in name for tx in memory_for):
                stdout = f"{MEMORY_MARKER} to 2 GB\n"
            elif any(f"_{tx}_" in name for tx in critical_for):
                stdout = "CRITICAL: something broke\n"
            else:
                target_name, target_sequence = read_cesar_input(cmd[1])
                stdout = "WARNING: low coverage\n" + cesar_record(target_name, target_sequence, spans)
            return subprocess.CompletedProcess(cmd, 0, stdout=stdout)

        run.calls = calls
        return run

    return factory
