"""Exceptions raised while projecting transcripts.

All errors derive from ``ProjectionError`` so callers can catch the whole
family. Errors carry the gene and transcript identifiers they concern so
that messages name the unit of work that failed.

Hierarchy:
    ProjectionError
    ├── InputError                 fatal to the transcript and its gene
    │   ├── UnexpectedPhaseError
    │   ├── MalformedHeaderError
    │   ├── AmbiguousProjectionError
    │   └── IntervalNotFoundError
    ├── DataConsistencyError       fatal to the gene, raised before alignment
    ├── AlignerFatalError          CESAR reported CRITICAL
    └── MemoryExceededError        retryable on the high-memory lane

    ConfigurationError             invalid configuration file or value
"""

from __future__ import annotations


class ProjectionError(Exception):
    """Base exception for all projection errors."""

    def __init__(self, message: str, gene_id: str = "", transcript_id: str = "") -> None:
        super().__init__(message)
        self.gene_id = gene_id
        self.transcript_id = transcript_id

    def __str__(self) -> str:
        message = super().__str__()
        if self.transcript_id and self.gene_id:
            return f"{message} (gene {self.gene_id}, transcript {self.transcript_id})"
        if self.transcript_id:
            return f"{message} (transcript {self.transcript_id})"
        if self.gene_id:
            return f"{message} (gene {self.gene_id})"
        return message


class InputError(ProjectionError):
    """Malformed input to one of the projection stages."""


class UnexpectedPhaseError(InputError):
    """Exon phase or end phase outside {0, 1, 2, -1}."""

    def __init__(self, exon_id: str, phase: int, which: str = "phase") -> None:
        super().__init__(f"Unexpected {which} found for exon {exon_id}: {phase}")
        self.exon_id = exon_id
        self.phase = phase


class MalformedHeaderError(InputError):
    """Aligner output header is not an interval descriptor."""


class AmbiguousProjectionError(InputError):
    """Aligner output holds more than one projection record."""


class IntervalNotFoundError(InputError):
    """An interval could not be fetched from the genome."""


class DataConsistencyError(ProjectionError):
    """Genes, transcripts and target regions are out of step."""


class AlignerFatalError(ProjectionError):
    """The aligner reported a CRITICAL failure."""

    def __init__(self, message: str, command: list[str] | None = None, **kwargs: str) -> None:
        super().__init__(message, **kwargs)
        self.command = command or []


class MemoryExceededError(ProjectionError):
    """The aligner hit its memory limit; the gene must be re-run with more memory."""


class ConfigurationError(Exception):
    """Invalid or unreadable configuration."""
