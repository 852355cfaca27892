"""Unit tests for liftforge.utils.sequences module."""

import pytest

from liftforge.utils.sequences import (
    AMBIGUITY_CODES,
    count_unambiguous,
    normalize_ambiguity,
    reverse_complement,
    translate,
)


class TestReverseComplement:
    """Tests for reverse_complement function."""

    def test_simple_sequence(self) -> None:
        """Test reverse complement of a simple sequence."""
        assert reverse_complement("ACGT") == "ACGT"
        assert reverse_complement("AAAC") == "GTTT"

    def test_case_preservation(self) -> None:
        """Test that case is preserved."""
        assert reverse_complement("AcGt") == "aCgT"

    def test_empty_sequence(self) -> None:
        """Test empty sequence."""
        assert reverse_complement("") == ""


class TestNormalizeAmbiguity:
    """Tests for normalize_ambiguity function."""

    def test_every_code_collapses(self) -> None:
        """Every ambiguity code, in either case, becomes N or n."""
        sequence = "A" + AMBIGUITY_CODES + "c" + AMBIGUITY_CODES.lower() + "G"
        result = normalize_ambiguity(sequence)
        assert result == "A" + "N" * len(AMBIGUITY_CODES) + "c" + "n" * len(AMBIGUITY_CODES) + "G"

    def test_other_characters_untouched(self) -> None:
        """Bases, N, gaps and spaces are left as they are."""
        sequence = "ACGTNacgtn- "
        assert normalize_ambiguity(sequence) == sequence

    def test_positions_preserved(self) -> None:
        """Only the positions holding ambiguity codes change."""
        sequence = "ATRGCyT"
        result = normalize_ambiguity(sequence)
        changed = [i for i, (a, b) in enumerate(zip(sequence, result)) if a != b]
        assert changed == [2, 5]
        assert result[2] == "N" and result[5] == "n"


class TestCountUnambiguous:
    """Tests for count_unambiguous function."""

    def test_counts_uppercase_only(self) -> None:
        """Lowercase split-codon bases are not counted."""
        assert count_unambiguous("acATGNNNgt") == 6
        assert count_unambiguous("") == 0


class TestTranslate:
    """Tests for translate function."""

    def test_basic(self) -> None:
        """Standard code translation."""
        assert translate("ATGAAATAG") == "MK*"

    def test_internal_stop_kept(self) -> None:
        """Stop codons are translated, not truncated."""
        assert translate("ATGTAAAAA") == "M*K"

    def test_ambiguous_codon(self) -> None:
        """Codons with N translate to X."""
        assert translate("NNNATG") == "XM"

    def test_partial_codon_ignored(self) -> None:
        """A trailing partial codon is ignored."""
        assert translate("ATGAA") == "M"

    def test_lowercase(self) -> None:
        """Lowercase input translates like uppercase."""
        assert translate("atggct") == "MA"
