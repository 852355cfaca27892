"""CESAR2.0 aligner driver.

This module runs the external ``cesar`` binary on an encoded input file and
classifies the result. CESAR reports problems in its combined output rather
than through exit codes, so the outcome is decided from the text:

- ``The memory consumption is limited`` -> memory exceeded (retry the gene
  with more memory)
- ``CRITICAL`` -> fatal
- anything else -> success, with ``WARNING`` lines stripped

Example:
    >>> from liftforge.homology.cesar import CesarRunner
    >>> runner = CesarRunner(cesar_path="/opt/cesar", clade="human")
    >>> outcome = runner.run("cesar_123_TX1_42.fasta")
    >>> outcome.status
    <CesarStatus.SUCCESS: 'success'>
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from enum import Enum
from pathlib import Path
from typing import Callable

import attrs

from liftforge.exceptions import AlignerFatalError, MemoryExceededError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

CESAR_EXECUTABLE = "cesar"
MEMORY_MARKER = "The memory consumption is limited"
CRITICAL_MARKER = "CRITICAL"
WARNING_MARKER = "WARNING"

RAW_SUFFIX = ".ces.tmp"
CLEAN_SUFFIX = ".ces"


class CesarStatus(Enum):
    """Classified outcome of one aligner run."""

    SUCCESS = "success"
    MEMORY_EXCEEDED = "memory_exceeded"
    FATAL = "fatal"


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class CesarOutcome:
    """Result of one aligner run.

    Attributes:
        status: Classified outcome.
        output: Output with WARNING lines removed (success only).
        raw_output: Combined stdout/stderr text.
        command: Command that was run.
        output_path: Path of the cleaned output file (success only).
    """

    status: CesarStatus
    output: str
    raw_output: str
    command: list[str] = attrs.Factory(list)
    output_path: Path | None = None


def classify_output(text: str) -> CesarStatus:
    """Classify combined aligner output.

    Args:
        text: Combined stdout and stderr.

    Returns:
        CesarStatus for the run.
    """
    if MEMORY_MARKER in text:
        return CesarStatus.MEMORY_EXCEEDED
    if CRITICAL_MARKER in text:
        return CesarStatus.FATAL
    return CesarStatus.SUCCESS


def strip_warnings(text: str) -> str:
    """Remove lines containing WARNING."""
    lines = text.splitlines(keepends=True)
    return "".join(line for line in lines if WARNING_MARKER not in line)


# =============================================================================
# Runner
# =============================================================================


class CesarRunner:
    """Runs CESAR2.0 on encoded transcript inputs.

    Attributes:
        cesar_path: Directory holding the ``cesar`` binary ("" = PATH).
        clade: Value passed to ``--clade``.
        max_memory_gb: Default ``--max-memory`` bound (None = unbounded).
    """

    def __init__(
        self,
        cesar_path: Path | str = "",
        clade: str = "human",
        max_memory_gb: float | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            cesar_path: Directory containing the ``cesar`` binary.
            clade: Clade/model parameter.
            max_memory_gb: Default memory bound in GB.
        """
        self.cesar_path = str(cesar_path) if cesar_path else ""
        self.clade = clade
        self.max_memory_gb = max_memory_gb

    @property
    def executable(self) -> str:
        """Path to the cesar binary."""
        if self.cesar_path:
            return str(Path(self.cesar_path).absolute() / CESAR_EXECUTABLE)
        return CESAR_EXECUTABLE

    @property
    def working_dir(self) -> str | None:
        """Directory the aligner runs in.

        CESAR2.0 finds its clade tables relative to its own directory.
        """
        return str(Path(self.cesar_path).absolute()) if self.cesar_path else None

    def check_available(self) -> None:
        """Check that the binary can be found.

        Raises:
            RuntimeError: If cesar is not found.
        """
        if shutil.which(self.executable) is None:
            raise RuntimeError(
                f"{self.executable} not found. Install CESAR2.0 or set projection.cesar_path."
            )

    def build_command(self, input_file: Path | str, max_memory_gb: float | None = None) -> list[str]:
        """Build the aligner command line."""
        cmd = [self.executable, str(input_file), "--clade", self.clade]
        memory = max_memory_gb if max_memory_gb is not None else self.max_memory_gb
        if memory is not None:
            cmd.extend(["--max-memory", f"{memory:g}"])
        return cmd

    def run(
        self,
        input_file: Path | str,
        max_memory_gb: float | None = None,
        register: Callable[[Path], None] | None = None,
    ) -> CesarOutcome:
        """Run the aligner on one input file.

        Args:
            input_file: Encoded input file.
            max_memory_gb: Memory bound overriding the runner default.
            register: Callback receiving every output file created, so the
                caller can delete it later.

        Returns:
            CesarOutcome with the classified status.

        Raises:
            AlignerFatalError: If the binary cannot be executed.
        """
        input_file = Path(input_file).absolute()
        cmd = self.build_command(input_file, max_memory_gb)
        logger.debug(f"CESAR command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
                cwd=self.working_dir,
            )
        except OSError as e:
            raise AlignerFatalError(f"Could not run CESAR: {e}", command=cmd) from e

        raw = result.stdout or ""
        status = classify_output(raw)
        if status is not CesarStatus.SUCCESS:
            return CesarOutcome(status=status, output="", raw_output=raw, command=cmd)

        if result.returncode != 0:
            logger.warning(f"CESAR exited with status {result.returncode} for {input_file.name}")

        raw_path = input_file.with_name(input_file.name + RAW_SUFFIX)
        clean_path = input_file.with_name(input_file.name + CLEAN_SUFFIX)
        cleaned = strip_warnings(raw)
        for path, text in ((raw_path, raw), (clean_path, cleaned)):
            if register is not None:
                register(path)
            path.write_text(text)

        return CesarOutcome(
            status=status,
            output=cleaned,
            raw_output=raw,
            command=cmd,
            output_path=clean_path,
        )

    def run_or_raise(
        self,
        input_file: Path | str,
        max_memory_gb: float | None = None,
        register: Callable[[Path], None] | None = None,
    ) -> CesarOutcome:
        """Run the aligner and turn failures into exceptions.

        Raises:
            MemoryExceededError: If CESAR hit its memory limit.
            AlignerFatalError: If CESAR reported a CRITICAL error.
        """
        outcome = self.run(input_file, max_memory_gb=max_memory_gb, register=register)
        if outcome.status is CesarStatus.MEMORY_EXCEEDED:
            raise MemoryExceededError(f"CESAR memory limit reached for {Path(input_file).name}")
        if outcome.status is CesarStatus.FATAL:
            raise AlignerFatalError(
                f"CESAR reported a critical error for {Path(input_file).name}:\n{outcome.raw_output}",
                command=outcome.command,
            )
        return outcome
