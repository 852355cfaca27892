"""Genomic interval operations.

This module provides the interval type shared by the reference and target
sides of a projection, together with the descriptor string used to name an
interval in aligner input and output:

- Descriptor formatting and parsing
- Padding and clamping
- Overlap detection

Coordinate conventions:
    - GenomicInterval: 1-based, inclusive on both ends
    - Strand: +1 (forward) or -1 (reverse)
    - Descriptor: ``coord_system:assembly:seqid:start:end:strand``

Example:
    >>> from liftforge.utils.intervals import GenomicInterval
    >>> interval = GenomicInterval("chr1", 1001, 2000, strand=-1)
    >>> interval.name
    'toplevel::chr1:1001:2000:-1'
    >>> GenomicInterval.parse(interval.name) == interval
    True
"""

from __future__ import annotations

import re

import attrs

from liftforge.exceptions import MalformedHeaderError

# =============================================================================
# Constants
# =============================================================================

DEFAULT_COORD_SYSTEM = "toplevel"

# coord_system[:assembly]:seqid:start:end:strand
_DESCRIPTOR_PATTERN = re.compile(
    r"^(?P<coord_system>[^:]+):(?:(?P<assembly>[^:]*):)?(?P<seqid>.+)"
    r":(?P<start>\d+):(?P<end>\d+):(?P<strand>-?1)$"
)


def _check_strand(instance: GenomicInterval, attribute: attrs.Attribute, value: int) -> None:
    if value not in (1, -1):
        raise ValueError(f"Strand must be 1 or -1, got {value!r}")


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True, frozen=True)
class GenomicInterval:
    """An immutable stranded interval on a named coordinate system.

    Attributes:
        seqid: Chromosome/scaffold identifier.
        start: Start position (1-based, inclusive).
        end: End position (1-based, inclusive).
        strand: Strand (1 or -1).
        coord_system: Coordinate system name.
        assembly: Assembly/version name (may be empty).
    """

    seqid: str
    start: int
    end: int
    strand: int = attrs.field(default=1, validator=_check_strand)
    coord_system: str = DEFAULT_COORD_SYSTEM
    assembly: str = ""

    @property
    def length(self) -> int:
        """Get interval length."""
        return self.end - self.start + 1

    @property
    def name(self) -> str:
        """Descriptor string naming this interval."""
        return (
            f"{self.coord_system}:{self.assembly}:{self.seqid}:"
            f"{self.start}:{self.end}:{self.strand}"
        )

    @classmethod
    def parse(cls, descriptor: str) -> GenomicInterval:
        """Parse a descriptor string (optionally FASTA-header prefixed).

        Args:
            descriptor: ``coord_system:assembly:seqid:start:end:strand``.
                The assembly field may be omitted.

        Returns:
            GenomicInterval described by the string.

        Raises:
            MalformedHeaderError: If the descriptor does not match.
        """
        text = descriptor.strip()
        if text.startswith(">"):
            text = text[1:]
        match = _DESCRIPTOR_PATTERN.match(text)
        if not match:
            raise MalformedHeaderError(
                f"Couldn't parse the header to get the interval name. Header: {descriptor.strip()}"
            )
        return cls(
            seqid=match.group("seqid"),
            start=int(match.group("start")),
            end=int(match.group("end")),
            strand=int(match.group("strand")),
            coord_system=match.group("coord_system"),
            assembly=match.group("assembly") or "",
        )

    def padded(self, padding: int, seq_length: int) -> GenomicInterval:
        """Return a copy padded on both sides and clamped to the sequence.

        Args:
            padding: Bases added to each side.
            seq_length: Length of the containing sequence.

        Returns:
            New GenomicInterval within [0, seq_length].
        """
        return attrs.evolve(
            self,
            start=max(0, self.start - padding),
            end=min(seq_length, self.end + padding),
        )

    def __str__(self) -> str:
        return self.name


# =============================================================================
# Overlap Operations
# =============================================================================


def features_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Check whether two inclusive coordinate ranges overlap."""
    return a_start <= b_end and b_start <= a_end
