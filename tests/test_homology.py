"""Tests for the CESAR driver and protein comparison.

Tests cover:
- Command construction
- Outcome classification from aligner text
- Output files and their registration
- Failure mapping to exceptions
- Protein coverage and identity
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from liftforge.exceptions import AlignerFatalError, MemoryExceededError
from liftforge.homology.cesar import (
    CLEAN_SUFFIX,
    RAW_SUFFIX,
    CesarRunner,
    CesarStatus,
    classify_output,
    strip_warnings,
)
from liftforge.homology.protein import align_proteins

RECORD = ">ref\n  ATGAAA  \n>toplevel::chr2:1:10:1\nacATGAAAcc\n"


def completed(stdout: str, returncode: int = 0):
    def run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout)

    return run


# =============================================================================
# Classification
# =============================================================================


class TestClassifyOutput:
    """Tests for classify_output and strip_warnings."""

    def test_success(self) -> None:
        """Plain output is a success."""
        assert classify_output(RECORD) is CesarStatus.SUCCESS

    def test_memory(self) -> None:
        """The memory marker wins over everything else."""
        text = "CRITICAL: x\nThe memory consumption is limited to 16 GB\n"
        assert classify_output(text) is CesarStatus.MEMORY_EXCEEDED

    def test_critical(self) -> None:
        """CRITICAL anywhere is fatal."""
        assert classify_output("WARNING: a\nCRITICAL: b\n") is CesarStatus.FATAL

    def test_strip_warnings(self) -> None:
        """WARNING lines are removed, everything else kept."""
        text = "WARNING: short exon\n" + RECORD + "WARNING: another\n"
        assert strip_warnings(text) == RECORD


# =============================================================================
# Runner
# =============================================================================


class TestCesarRunner:
    """Tests for CesarRunner."""

    def test_build_command(self) -> None:
        """Binary, input, clade and memory bound."""
        runner = CesarRunner(cesar_path="/opt/cesar", clade="mouse", max_memory_gb=16)
        assert runner.build_command("in.fasta") == [
            "/opt/cesar/cesar",
            "in.fasta",
            "--clade",
            "mouse",
            "--max-memory",
            "16",
        ]

    def test_build_command_memory_override(self) -> None:
        """A per-call bound overrides the default; no bound omits the flag."""
        runner = CesarRunner()
        assert runner.build_command("in.fasta") == ["cesar", "in.fasta", "--clade", "human"]
        assert runner.build_command("in.fasta", max_memory_gb=32.5)[-2:] == ["--max-memory", "32.5"]

    def test_check_available(self) -> None:
        """A missing binary raises RuntimeError."""
        with patch("liftforge.homology.cesar.shutil.which", return_value=None):
            with pytest.raises(RuntimeError, match="not found"):
                CesarRunner().check_available()

    def test_run_success_writes_outputs(self, tmp_path: Path) -> None:
        """Raw and cleaned outputs are written beside the input and registered."""
        input_file = tmp_path / "cesar_1_TX1_5.fasta"
        input_file.write_text("")
        registered: list[Path] = []

        with patch("liftforge.homology.cesar.subprocess.run", completed("WARNING: w\n" + RECORD)):
            outcome = CesarRunner().run(input_file, register=registered.append)

        assert outcome.status is CesarStatus.SUCCESS
        assert outcome.output == RECORD
        assert outcome.output_path == tmp_path / ("cesar_1_TX1_5.fasta" + CLEAN_SUFFIX)
        assert outcome.output_path.read_text() == RECORD
        assert (tmp_path / ("cesar_1_TX1_5.fasta" + RAW_SUFFIX)).read_text().startswith("WARNING")
        assert len(registered) == 2

    def test_run_nonzero_exit_classified_from_text(self, tmp_path: Path) -> None:
        """A non-zero exit without markers is still a success."""
        input_file = tmp_path / "in.fasta"
        input_file.write_text("")
        with patch("liftforge.homology.cesar.subprocess.run", completed(RECORD, returncode=1)):
            outcome = CesarRunner().run(input_file)
        assert outcome.status is CesarStatus.SUCCESS

    def test_run_memory_writes_nothing(self, tmp_path: Path) -> None:
        """A memory failure produces no output files."""
        input_file = tmp_path / "in.fasta"
        input_file.write_text("")
        with patch(
            "liftforge.homology.cesar.subprocess.run",
            completed("The memory consumption is limited to 2 GB\n"),
        ):
            outcome = CesarRunner().run(input_file)
        assert outcome.status is CesarStatus.MEMORY_EXCEEDED
        assert outcome.output == ""
        assert sorted(p.name for p in tmp_path.iterdir()) == ["in.fasta"]

    def test_run_or_raise_memory(self, tmp_path: Path) -> None:
        """Memory failures raise MemoryExceededError."""
        with patch(
            "liftforge.homology.cesar.subprocess.run",
            completed("The memory consumption is limited to 2 GB\n"),
        ):
            with pytest.raises(MemoryExceededError):
                CesarRunner().run_or_raise(tmp_path / "in.fasta")

    def test_run_or_raise_critical(self, tmp_path: Path) -> None:
        """CRITICAL output raises AlignerFatalError with the command."""
        with patch("liftforge.homology.cesar.subprocess.run", completed("CRITICAL: bad input\n")):
            with pytest.raises(AlignerFatalError, match="bad input") as excinfo:
                CesarRunner(clade="human").run_or_raise(tmp_path / "in.fasta")
        assert excinfo.value.command[0] == "cesar"

    def test_run_missing_binary(self, tmp_path: Path) -> None:
        """An unexecutable binary is fatal."""
        with patch(
            "liftforge.homology.cesar.subprocess.run",
            side_effect=FileNotFoundError("no such file"),
        ):
            with pytest.raises(AlignerFatalError, match="Could not run CESAR"):
                CesarRunner().run(tmp_path / "in.fasta")

    def test_memory_flag_passed(self, tmp_path: Path) -> None:
        """The memory bound reaches the command line."""
        input_file = tmp_path / "in.fasta"
        input_file.write_text("")
        with patch("liftforge.homology.cesar.subprocess.run", side_effect=completed(RECORD)) as run:
            CesarRunner(max_memory_gb=4).run(input_file, max_memory_gb=32)
        cmd = run.call_args.args[0]
        assert cmd[-2:] == ["--max-memory", "32"]

    def test_runs_inside_cesar_directory(self, tmp_path: Path) -> None:
        """The aligner runs from its own directory so it finds its clade tables."""
        input_file = tmp_path / "in.fasta"
        input_file.write_text("")
        with patch("liftforge.homology.cesar.subprocess.run", side_effect=completed(RECORD)) as run:
            CesarRunner(cesar_path="/opt/CESAR2.0").run(input_file)
        assert run.call_args.kwargs["cwd"] == "/opt/CESAR2.0"
        assert run.call_args.args[0][:2] == ["/opt/CESAR2.0/cesar", str(input_file)]

    def test_runs_in_place_without_cesar_directory(self, tmp_path: Path) -> None:
        """A binary on PATH keeps the current directory."""
        input_file = tmp_path / "in.fasta"
        input_file.write_text("")
        with patch("liftforge.homology.cesar.subprocess.run", side_effect=completed(RECORD)) as run:
            CesarRunner().run(input_file)
        assert run.call_args.kwargs["cwd"] is None

    def test_output_registered_before_write(self, tmp_path: Path) -> None:
        """An output that fails to write is still registered for cleanup."""
        input_file = tmp_path / "in.fasta"
        input_file.write_text("")
        (tmp_path / ("in.fasta" + CLEAN_SUFFIX)).mkdir()
        registered: list[Path] = []
        with patch("liftforge.homology.cesar.subprocess.run", completed(RECORD)):
            with pytest.raises(OSError):
                CesarRunner().run(input_file, register=registered.append)
        assert [p.name for p in registered] == ["in.fasta" + RAW_SUFFIX, "in.fasta" + CLEAN_SUFFIX]


# =============================================================================
# Protein Comparison
# =============================================================================


class TestAlignProteins:
    """Tests for align_proteins."""

    def test_identical(self) -> None:
        """Identical proteins: full coverage and identity."""
        coverage, percent_id = align_proteins("MKTAYIAKQR", "MKTAYIAKQR")
        assert coverage == pytest.approx(100.0)
        assert percent_id == pytest.approx(100.0)

    def test_stop_and_case_ignored(self) -> None:
        """Terminal stops and case do not matter."""
        coverage, percent_id = align_proteins("MKTAYIAKQR*", "mktayiakqr")
        assert coverage == pytest.approx(100.0)
        assert percent_id == pytest.approx(100.0)

    def test_truncated_target(self) -> None:
        """Half the source aligned: half coverage, full identity."""
        coverage, percent_id = align_proteins("MKTAYIAKQRWWWWWWWWWW", "MKTAYIAKQR")
        assert coverage == pytest.approx(50.0)
        assert percent_id == pytest.approx(100.0)

    def test_substitution(self) -> None:
        """One mismatch in ten residues."""
        coverage, percent_id = align_proteins("MKTAYIAKQR", "MKTAYIAKQW")
        assert coverage == pytest.approx(100.0)
        assert percent_id == pytest.approx(90.0)

    def test_empty(self) -> None:
        """Empty sequences score zero."""
        assert align_proteins("", "MK") == (0.0, 0.0)
        assert align_proteins("MK", "*") == (0.0, 0.0)
