"""Sequence manipulation utilities.

This module provides utilities for working with nucleotide and protein
sequences:

- Reverse complement
- IUPAC ambiguity normalisation
- Translation with the standard genetic code

Example:
    >>> from liftforge.utils.sequences import normalize_ambiguity, translate
    >>> normalize_ambiguity("ACRTy")
    'ACNTn'
    >>> translate("ATGAAATAG")
    'MK*'
"""

# =============================================================================
# Constants
# =============================================================================

# Standard complement mapping
COMPLEMENT = {
    "A": "T",
    "T": "A",
    "G": "C",
    "C": "G",
    "N": "N",
    "a": "t",
    "t": "a",
    "g": "c",
    "c": "g",
    "n": "n",
}

# IUPAC ambiguity codes collapsed to N, case preserved
AMBIGUITY_CODES = "YKWMSRDVHBX"
AMBIGUITY_TABLE = str.maketrans(
    AMBIGUITY_CODES + AMBIGUITY_CODES.lower(),
    "N" * len(AMBIGUITY_CODES) + "n" * len(AMBIGUITY_CODES),
)

# Bases counted as codon content by the encoder
UNAMBIGUOUS_BASES = frozenset("ACGTN")

# Standard genetic code (NCBI Table 1)
CODON_TABLE_STANDARD = {
    "TTT": "F", "TTC": "F", "TTA": "L", "TTG": "L",
    "CTT": "L", "CTC": "L", "CTA": "L", "CTG": "L",
    "ATT": "I", "ATC": "I", "ATA": "I", "ATG": "M",
    "GTT": "V", "GTC": "V", "GTA": "V", "GTG": "V",
    "TCT": "S", "TCC": "S", "TCA": "S", "TCG": "S",
    "CCT": "P", "CCC": "P", "CCA": "P", "CCG": "P",
    "ACT": "T", "ACC": "T", "ACA": "T", "ACG": "T",
    "GCT": "A", "GCC": "A", "GCA": "A", "GCG": "A",
    "TAT": "Y", "TAC": "Y", "TAA": "*", "TAG": "*",
    "CAT": "H", "CAC": "H", "CAA": "Q", "CAG": "Q",
    "AAT": "N", "AAC": "N", "AAA": "K", "AAG": "K",
    "GAT": "D", "GAC": "D", "GAA": "E", "GAG": "E",
    "TGT": "C", "TGC": "C", "TGA": "*", "TGG": "W",
    "CGT": "R", "CGC": "R", "CGA": "R", "CGG": "R",
    "AGT": "S", "AGC": "S", "AGA": "R", "AGG": "R",
    "GGT": "G", "GGC": "G", "GGA": "G", "GGG": "G",
}


# =============================================================================
# Complement and Reverse Complement
# =============================================================================


def complement(sequence: str) -> str:
    """Get the complement of a DNA sequence.

    Args:
        sequence: DNA sequence string.

    Returns:
        Complement sequence.
    """
    return "".join(COMPLEMENT.get(base, "N") for base in sequence)


def reverse_complement(sequence: str) -> str:
    """Get the reverse complement of a DNA sequence.

    Args:
        sequence: DNA sequence string.

    Returns:
        Reverse complement sequence.
    """
    return complement(sequence)[::-1]


# =============================================================================
# Ambiguity Handling
# =============================================================================


def normalize_ambiguity(sequence: str) -> str:
    """Replace IUPAC ambiguity codes with N, preserving case.

    Only the codes Y, K, W, M, S, R, D, V, H, B and X (either case) are
    touched; every other character is returned unchanged.

    Args:
        sequence: Nucleotide sequence.

    Returns:
        Sequence with ambiguity codes collapsed to N/n.
    """
    return sequence.translate(AMBIGUITY_TABLE)


def count_unambiguous(sequence: str) -> int:
    """Count uppercase A/C/G/T/N characters."""
    return sum(1 for base in sequence if base in UNAMBIGUOUS_BASES)


# =============================================================================
# Translation
# =============================================================================


def translate(sequence: str) -> str:
    """Translate a DNA sequence with the standard genetic code.

    Codons containing anything other than A/C/G/T translate to 'X'. A
    trailing partial codon is ignored and stop codons are kept as '*'.
    """
    protein = []
    for i in range(0, len(sequence) - len(sequence) % 3, 3):
        protein.append(CODON_TABLE_STANDARD.get(sequence[i : i + 3].upper(), "X"))
    return "".join(protein)
