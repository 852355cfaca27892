"""MAF file handling for pairwise whole-genome alignments.

This module reads reference-vs-target pairwise alignments (for example
LASTZ net output converted to MAF) and serves them as alignment blocks that
can be restricted to a reference window.

The first ``s`` line of every block is the reference row. Blocks may carry
a ``group=<int>`` attribute on their ``a`` line to tie together the blocks
of one chain/net; blocks without it get their own group id (the block index).

Example:
    >>> from liftforge.io.maf import MAFAlignmentSource
    >>> source = MAFAlignmentSource("ref_vs_tgt.maf", reference_assembly="ref1")
    >>> for block in source.fetch_blocks(interval):
    ...     restricted = block.restrict(interval.start, interval.end)
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from pathlib import Path
from typing import Iterator

import attrs

from liftforge.exceptions import InputError
from liftforge.utils.intervals import GenomicInterval

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

GAP = "-"
_GROUP_PATTERN = re.compile(r"\bgroup=(\d+)")


# =============================================================================
# Data Models
# =============================================================================


@attrs.define(slots=True, frozen=True)
class AlignedRow:
    """One sequence row of a MAF block.

    Attributes:
        seqid: Sequence name with any assembly prefix removed.
        start: MAF start (0-based, on the row's strand).
        size: Number of non-gap characters.
        strand: 1 or -1.
        src_size: Length of the whole source sequence.
        text: Gapped aligned text.
    """

    seqid: str
    start: int
    size: int
    strand: int
    src_size: int
    text: str

    def forward_position(self, offset: int) -> int:
        """1-based forward-strand position of the ``offset``-th aligned base."""
        if self.strand == -1:
            return self.src_size - (self.start + offset)
        return self.start + offset + 1

    @property
    def interval(self) -> GenomicInterval:
        """Forward-strand interval covered by this row."""
        if self.strand == -1:
            start = self.src_size - self.start - self.size + 1
        else:
            start = self.start + 1
        return GenomicInterval(
            seqid=self.seqid,
            start=start,
            end=start + self.size - 1,
            strand=self.strand,
        )

    def sliced(self, first_column: int, last_column: int) -> AlignedRow:
        """Row restricted to columns [first_column, last_column]."""
        skipped = len(self.text[:first_column].replace(GAP, ""))
        text = self.text[first_column : last_column + 1]
        return attrs.evolve(
            self,
            start=self.start + skipped,
            size=len(text.replace(GAP, "")),
            text=text,
        )


@attrs.define(slots=True, frozen=True)
class AlignmentBlock:
    """A pairwise (or multiple) alignment block.

    Attributes:
        group_id: Identifier shared by blocks of one chain/net.
        reference: Reference row.
        others: Non-reference rows.
    """

    group_id: int
    reference: AlignedRow
    others: tuple[AlignedRow, ...] = ()

    @property
    def reference_interval(self) -> GenomicInterval:
        """Forward-strand reference interval of the block."""
        return self.reference.interval

    def restrict(self, start: int, end: int) -> AlignmentBlock | None:
        """Restrict the block to a reference window (1-based, inclusive).

        Args:
            start: Window start on the reference sequence.
            end: Window end on the reference sequence.

        Returns:
            New block covering only the columns whose reference base falls in
            the window, or None if the block does not intersect it.
        """
        columns = []
        offset = 0
        for column, char in enumerate(self.reference.text):
            if char == GAP:
                continue
            position = self.reference.forward_position(offset)
            offset += 1
            if start <= position <= end:
                columns.append(column)

        if not columns:
            return None

        first, last = columns[0], columns[-1]
        return AlignmentBlock(
            group_id=self.group_id,
            reference=self.reference.sliced(first, last),
            others=tuple(row.sliced(first, last) for row in self.others),
        )

    def non_reference_aligns(self) -> list[GenomicInterval]:
        """Forward-strand intervals of the non-reference rows with bases."""
        return [row.interval for row in self.others if row.size > 0]


# =============================================================================
# Alignment Source
# =============================================================================


class MAFAlignmentSource:
    """Pairwise alignment collaborator backed by a MAF file.

    Attributes:
        path: Path to the MAF file.
        reference_assembly: Assembly prefix of reference rows (``asm.seqid``).
        target_assembly: Assembly prefix of target rows.
        method_link_type: Name of the alignment method, for reporting.
    """

    def __init__(
        self,
        maf_path: Path | str,
        reference_assembly: str = "",
        target_assembly: str = "",
        method_link_type: str = "LASTZ_NET",
    ) -> None:
        """Initialize the source.

        Raises:
            FileNotFoundError: If the MAF file doesn't exist.
        """
        self.path = Path(maf_path)
        if not self.path.exists():
            raise FileNotFoundError(f"MAF file not found: {self.path}")

        self.reference_assembly = reference_assembly
        self.target_assembly = target_assembly
        self.method_link_type = method_link_type
        self._index: dict[str, list[AlignmentBlock]] | None = None

    def _strip_assembly(self, src: str, assembly: str) -> str:
        prefix = f"{assembly}."
        if assembly and src.startswith(prefix):
            return src[len(prefix) :]
        return src

    def _parse_row(self, line: str, assembly: str) -> AlignedRow:
        parts = line.split()
        if len(parts) != 7:
            raise InputError(f"Malformed MAF sequence line in {self.path}: {line[:60]}")
        try:
            return AlignedRow(
                seqid=self._strip_assembly(parts[1], assembly),
                start=int(parts[2]),
                size=int(parts[3]),
                strand=-1 if parts[4] == "-" else 1,
                src_size=int(parts[5]),
                text=parts[6],
            )
        except ValueError as e:
            raise InputError(f"Malformed MAF sequence line in {self.path}: {e}") from e

    def iter_blocks(self) -> Iterator[AlignmentBlock]:
        """Iterate over the blocks of the file in order.

        Yields:
            AlignmentBlock objects.
        """
        header: str | None = None
        rows: list[str] = []
        block_index = 0

        def build() -> AlignmentBlock | None:
            if header is None or not rows:
                return None
            match = _GROUP_PATTERN.search(header)
            group_id = int(match.group(1)) if match else block_index
            reference = self._parse_row(rows[0], self.reference_assembly)
            others = tuple(self._parse_row(r, self.target_assembly) for r in rows[1:])
            return AlignmentBlock(group_id=group_id, reference=reference, others=others)

        with open(self.path) as f:
            for line in f:
                line = line.strip()
                if line.startswith("#"):
                    continue
                if line.startswith("a"):
                    block = build()
                    if block is not None:
                        yield block
                        block_index += 1
                    header, rows = line, []
                elif line.startswith("s ") and header is not None:
                    rows.append(line)

        block = build()
        if block is not None:
            yield block

    def _ensure_indexed(self) -> dict[str, list[AlignmentBlock]]:
        if self._index is None:
            index: dict[str, list[AlignmentBlock]] = defaultdict(list)
            n_blocks = 0
            for block in self.iter_blocks():
                index[block.reference.seqid].append(block)
                n_blocks += 1
            self._index = dict(index)
            logger.info(
                f"Loaded {n_blocks} {self.method_link_type} blocks on "
                f"{len(self._index)} reference sequences from {self.path.name}"
            )
        return self._index

    def fetch_blocks(self, interval: GenomicInterval) -> list[AlignmentBlock]:
        """Blocks whose reference row overlaps an interval (strand ignored).

        Args:
            interval: Reference interval.

        Returns:
            Overlapping blocks in file order.
        """
        index = self._ensure_indexed()
        blocks = []
        for block in index.get(interval.seqid, []):
            ref = block.reference_interval
            if ref.start <= interval.end and interval.start <= ref.end:
                blocks.append(block)
        return blocks
