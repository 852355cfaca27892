"""FASTA file handling for genome sequences.

This module provides access to genome sequences stored in FASTA format,
using pyfaidx for indexed random access. It is the file-backed genome
collaborator used for both the reference and the target assembly.

Features:
    - Random access to sequences by interval
    - Interval lookup by descriptor name
    - Strand-aware extraction (reverse complement on -1)
    - Coordinate validation

Example:
    >>> from liftforge.io.fasta import GenomeAccessor
    >>> genome = GenomeAccessor("target.fa", assembly="tgt1")
    >>> interval = genome.fetch_interval("chr2", 5001, 5200)
    >>> seq = genome.get_sequence(interval)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pyfaidx

from liftforge.exceptions import IntervalNotFoundError, MalformedHeaderError
from liftforge.utils.intervals import DEFAULT_COORD_SYSTEM, GenomicInterval
from liftforge.utils.sequences import reverse_complement

logger = logging.getLogger(__name__)


# =============================================================================
# Main Accessor Class
# =============================================================================


class GenomeAccessor:
    """Indexed FASTA access using pyfaidx.

    Attributes:
        path: Path to the FASTA file.
        assembly: Assembly name stamped on fetched intervals.
        coord_system: Coordinate system name stamped on fetched intervals.

    Example:
        >>> genome = GenomeAccessor("genome.fa")
        >>> interval = genome.fetch_by_name("toplevel::chr1:1000:2000:1")
    """

    def __init__(
        self,
        fasta_path: Path | str,
        assembly: str = "",
        coord_system: str = DEFAULT_COORD_SYSTEM,
    ) -> None:
        """Initialize the genome accessor.

        Args:
            fasta_path: Path to FASTA file. Will create .fai index if needed.
            assembly: Assembly name for fetched intervals.
            coord_system: Coordinate system name for fetched intervals.

        Raises:
            FileNotFoundError: If FASTA file doesn't exist.
        """
        self.path = Path(fasta_path)
        if not self.path.exists():
            raise FileNotFoundError(f"FASTA file not found: {self.path}")

        self.assembly = assembly
        self.coord_system = coord_system
        self._fasta: pyfaidx.Fasta | None = None
        self._scaffold_lengths: dict[str, int] = {}

        self._open()

    def _open(self) -> None:
        """Open the FASTA file with pyfaidx."""
        self._fasta = pyfaidx.Fasta(
            str(self.path),
            sequence_always_upper=False,
            read_ahead=10000,
            rebuild=False,
        )
        self._scaffold_lengths = {
            seqid: len(self._fasta[seqid]) for seqid in self._fasta.keys()
        }

        logger.info(
            f"Opened FASTA: {self.path.name}, "
            f"{len(self._scaffold_lengths)} sequences, "
            f"{self.total_length:,} bp total"
        )

    @property
    def total_length(self) -> int:
        """Total genome size in bases."""
        return sum(self._scaffold_lengths.values())

    def __enter__(self) -> GenomeAccessor:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the FASTA file."""
        if self._fasta is not None:
            self._fasta.close()
            self._fasta = None

    # -------------------------------------------------------------------------
    # Genome collaborator interface
    # -------------------------------------------------------------------------

    def get_length(self, seqid: str) -> int:
        """Get the length of a sequence.

        Raises:
            IntervalNotFoundError: If seqid is not in the FASTA.
        """
        if seqid not in self._scaffold_lengths:
            raise IntervalNotFoundError(f"Unknown sequence: {seqid}")
        return self._scaffold_lengths[seqid]

    def fetch_interval(
        self,
        seqid: str,
        start: int,
        end: int,
        strand: int = 1,
    ) -> GenomicInterval:
        """Fetch a validated interval (1-based, inclusive).

        A start below 1 is clamped to 1.

        Args:
            seqid: Sequence name.
            start: Start position.
            end: End position.
            strand: 1 or -1.

        Returns:
            GenomicInterval on this assembly.

        Raises:
            IntervalNotFoundError: If the sequence is unknown or the
                coordinates fall outside it.
        """
        length = self.get_length(seqid)
        start = max(1, start)
        if end > length or start > end:
            raise IntervalNotFoundError(
                f"Interval {seqid}:{start}-{end} is outside sequence of length {length}"
            )
        return GenomicInterval(
            seqid=seqid,
            start=start,
            end=end,
            strand=strand,
            coord_system=self.coord_system,
            assembly=self.assembly,
        )

    def fetch_by_name(self, descriptor: str) -> GenomicInterval:
        """Fetch an interval from its descriptor name.

        Raises:
            IntervalNotFoundError: If the descriptor does not resolve to an
                interval of this genome.
        """
        try:
            parsed = GenomicInterval.parse(descriptor)
        except MalformedHeaderError as e:
            raise IntervalNotFoundError(f"Could not fetch interval by name: {descriptor}") from e
        return self.fetch_interval(parsed.seqid, parsed.start, parsed.end, parsed.strand)

    def get_sequence(self, interval: GenomicInterval) -> str:
        """Get the sequence of an interval, reverse complemented on strand -1.

        Case is preserved.

        Raises:
            IntervalNotFoundError: If the interval is not on this genome.
        """
        if self._fasta is None:
            raise RuntimeError("FASTA file not opened")
        length = self.get_length(interval.seqid)
        if interval.start < 1 or interval.end > length:
            raise IntervalNotFoundError(f"Interval {interval.name} is outside {interval.seqid}")

        # pyfaidx slicing is 0-based, half-open
        sequence = str(self._fasta[interval.seqid][interval.start - 1 : interval.end])
        if interval.strand == -1:
            sequence = reverse_complement(sequence)
        return sequence

