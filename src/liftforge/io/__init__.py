"""Input/output handlers for LiftForge.

This module provides the file-backed collaborators of the projection
pipeline:

- FASTA: Reference and target genome sequences
- GFF3: Reference annotation in, projected genes out
- MAF: Pairwise whole-genome alignment blocks

Example:
    >>> from liftforge.io import GenomeAccessor, GFF3Parser
    >>> genome = GenomeAccessor("reference.fa")
    >>> gene = GFF3Parser("reference.gff3", genome).get_gene("ENSG00000139618")
"""

from liftforge.io.fasta import GenomeAccessor
from liftforge.io.gff import GFF3Parser, GFF3Writer
from liftforge.io.maf import AlignmentBlock, MAFAlignmentSource

__all__ = [
    "AlignmentBlock",
    "GFF3Parser",
    "GFF3Writer",
    "GenomeAccessor",
    "MAFAlignmentSource",
]
