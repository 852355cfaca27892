"""Utility functions for LiftForge.

- Genomic intervals and interval descriptors
- Sequence manipulation and translation
- Logging configuration

Example:
    >>> from liftforge.utils.intervals import GenomicInterval
    >>> interval = GenomicInterval.parse("toplevel::chr2:5001:5200:1")
"""
