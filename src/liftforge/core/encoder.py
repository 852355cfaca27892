"""Codon-safe encoding of source exons for the CESAR aligner.

CESAR reads each reference exon as a run of complete uppercase codons with
the bases of split codons written in lowercase. This module converts source
exons into that form and writes the aligner input file: one record per
surviving exon, a ``#`` separator line, then the target region.

Example:
    >>> from liftforge.core.encoder import encode_exon
    >>> exon.phase, exon.end_phase, exon.sequence
    (1, 2, 'GCATGAAAGG')
    >>> encode_exon(exon)
    'gcATGAAAgg'
"""

from __future__ import annotations

import logging
import os
import random
from pathlib import Path
from typing import TYPE_CHECKING

import attrs

from liftforge.exceptions import UnexpectedPhaseError
from liftforge.utils.sequences import count_unambiguous, normalize_ambiguity

if TYPE_CHECKING:
    from liftforge.core.models import SourceExon, SourceTranscript
    from liftforge.utils.intervals import GenomicInterval

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

VALID_PHASES = (-1, 0, 1, 2)
SPLIT_CODON_BASES = frozenset("acgtn")
SELENOCYSTEINE_CODON = "TGA"
TERMINAL_STOP_CODONS = ("TAA", "TAG")
MASK = "NNN"
RECORD_SEPARATOR = "#"


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class EncodedInput:
    """Aligner input for one transcript.

    Attributes:
        transcript_id: Source transcript identifier.
        exon_records: (header, sequence) per surviving exon.
        target_name: Descriptor of the target interval.
        target_sequence: Ambiguity-normalised target sequence.
        skipped_exons: Exon ids dropped for an in-frame stop codon.
    """

    transcript_id: str
    exon_records: list[tuple[str, str]]
    target_name: str
    target_sequence: str
    skipped_exons: list[str] = attrs.Factory(list)

    @property
    def text(self) -> str:
        """FASTA text of the aligner input file."""
        lines = []
        for header, sequence in self.exon_records:
            lines.append(f">{header}")
            lines.append(sequence)
        lines.append(RECORD_SEPARATOR)
        lines.append(f">{self.target_name}")
        lines.append(self.target_sequence)
        return "\n".join(lines) + "\n"

    def write(self, path: Path | str) -> Path:
        """Write the input file and return its path."""
        path = Path(path)
        path.write_text(self.text)
        return path


def scratch_path(scratch_dir: Path | str, transcript_id: str) -> Path:
    """Per-attempt input path: ``cesar_<pid>_<transcript_id>_<rand>.fasta``."""
    return Path(scratch_dir) / f"cesar_{os.getpid()}_{transcript_id}_{random.randint(0, 9999)}.fasta"


# =============================================================================
# Encoding
# =============================================================================


def mark_split_codons(sequence: str, phase: int, end_phase: int, exon_id: str = "") -> str:
    """Lowercase the bases of codons split by the exon boundaries.

    Args:
        sequence: Exon coding sequence (uppercase).
        phase: Exon phase.
        end_phase: Exon end phase.
        exon_id: Exon identifier for error messages.

    Returns:
        Sequence with split-codon bases in lowercase.

    Raises:
        UnexpectedPhaseError: If phase or end phase is not in {0, 1, 2, -1}.
    """
    if phase == 1:
        sequence = sequence[:2].lower() + sequence[2:]
    elif phase == 2:
        sequence = sequence[:1].lower() + sequence[1:]
    elif phase not in VALID_PHASES:
        raise UnexpectedPhaseError(exon_id, phase)

    if end_phase == 1:
        sequence = sequence[:-1] + sequence[-1:].lower()
    elif end_phase == 2:
        sequence = sequence[:-2] + sequence[-2:].lower()
    elif end_phase not in VALID_PHASES:
        raise UnexpectedPhaseError(exon_id, end_phase, which="end phase")

    return sequence


def trim_to_codons(sequence: str) -> str:
    """Drop trailing characters until the uppercase base count is a multiple of 3."""
    while sequence and count_unambiguous(sequence) % 3 != 0:
        sequence = sequence[:-1]
    return sequence


def encode_exon(exon: SourceExon) -> str | None:
    """Encode one source exon for the aligner.

    In-frame TGA codons other than the last one are masked with NNN and
    their offset is recorded on ``exon.selenocysteine``.

    Args:
        exon: Source exon.

    Returns:
        Encoded sequence, or None if the exon holds an in-frame TAA/TAG
        before its final codon.

    Raises:
        UnexpectedPhaseError: If the exon phase or end phase is invalid.
    """
    sequence = mark_split_codons(exon.sequence, exon.phase, exon.end_phase, exon.exon_id)
    sequence = trim_to_codons(sequence)

    step = 1
    i = 0
    while i < len(sequence):
        if step == 1 and sequence[i] not in SPLIT_CODON_BASES:
            step = 3
        codon = sequence[i : i + 3]
        if i + 3 < len(sequence):
            if codon == SELENOCYSTEINE_CODON:
                sequence = sequence[:i] + MASK + sequence[i + 3 :]
                exon.selenocysteine = i
                logger.debug(f"Masked in-frame TGA at offset {i} of exon {exon.exon_id}")
            elif codon in TERMINAL_STOP_CODONS:
                logger.warning(
                    f"Exon {exon.exon_id} has an in-frame {codon} at offset {i}, skipping exon"
                )
                return None
        i += step

    return normalize_ambiguity(sequence)


def encode_transcript(
    transcript: SourceTranscript,
    target_interval: GenomicInterval,
    target_sequence: str,
) -> EncodedInput:
    """Encode a transcript and its target region as aligner input.

    Args:
        transcript: Source transcript with coding exons.
        target_interval: Selected target interval.
        target_sequence: Sequence of the target interval.

    Returns:
        EncodedInput ready to be written.

    Raises:
        UnexpectedPhaseError: If an exon has an invalid phase.
    """
    records = []
    skipped = []
    for exon in transcript.exons:
        encoded = encode_exon(exon)
        if encoded is None:
            skipped.append(exon.exon_id)
            continue
        records.append((f"{transcript.transcript_id}_{exon.exon_id}", encoded))

    return EncodedInput(
        transcript_id=transcript.transcript_id,
        exon_records=records,
        target_name=target_interval.name,
        target_sequence=normalize_ambiguity(target_sequence),
        skipped_exons=skipped,
    )
