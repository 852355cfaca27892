"""LiftForge: codon-aware projection of transcripts across genomes.

LiftForge projects protein-coding transcripts annotated on a reference
genome onto a target genome. A pairwise whole-genome alignment picks the
target region, the CESAR2.0 aligner places the exons, and the projected
transcripts are scored against the source protein before they are written
out as genes.

Example:
    >>> import liftforge
    >>> liftforge.__version__
    '0.1.0'

Modules:
    io: Readers and writers for FASTA, GFF3 and MAF files
    core: Locus selection, encoding, assembly, gene building, pipeline
    homology: CESAR driver, output parsing, protein comparison
    qc: Quality filters for projected transcripts
    parallel: Gene-level parallel execution
    utils: Intervals, sequences and logging
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
