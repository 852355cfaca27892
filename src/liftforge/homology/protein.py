"""Protein-level comparison of projected and source translations.

Coverage and identity of a projection are measured on a global protein
alignment (BLOSUM62, affine gaps) computed with Biopython's
``PairwiseAligner``.

Example:
    >>> from liftforge.homology.protein import align_proteins
    >>> align_proteins("MKTAYIAK", "MKTAYIAK")
    (100.0, 100.0)
"""

from __future__ import annotations

import logging
from functools import lru_cache

import numpy as np
from Bio.Align import PairwiseAligner, substitution_matrices

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SUBSTITUTION_MATRIX = "BLOSUM62"
OPEN_GAP_SCORE = -10.0
EXTEND_GAP_SCORE = -0.5


@lru_cache(maxsize=1)
def _get_aligner() -> PairwiseAligner:
    aligner = PairwiseAligner()
    aligner.mode = "global"
    aligner.substitution_matrix = substitution_matrices.load(SUBSTITUTION_MATRIX)
    aligner.open_gap_score = OPEN_GAP_SCORE
    aligner.extend_gap_score = EXTEND_GAP_SCORE
    return aligner


def align_proteins(source: str, target: str) -> tuple[float, float]:
    """Compute coverage and percent identity of a target protein.

    Coverage is the share of source residues aligned to a target residue;
    percent identity is the share of aligned residue pairs that are
    identical. Both are percentages.

    Args:
        source: Source (reference) protein sequence.
        target: Projected protein sequence.

    Returns:
        Tuple of (coverage, percent_id). Both 0.0 if either sequence is empty.
    """
    source = source.upper().rstrip("*")
    target = target.upper().rstrip("*")
    if not source or not target:
        return 0.0, 0.0

    alignment = _get_aligner().align(source, target)[0]

    source_codes = np.frombuffer(source.encode("ascii"), dtype=np.uint8)
    target_codes = np.frombuffer(target.encode("ascii"), dtype=np.uint8)

    aligned_pairs = 0
    identical = 0
    for (s_start, s_end), (t_start, t_end) in zip(*alignment.aligned):
        aligned_pairs += int(s_end - s_start)
        identical += int(np.sum(source_codes[s_start:s_end] == target_codes[t_start:t_end]))

    coverage = aligned_pairs / len(source) * 100
    percent_id = identical / aligned_pairs * 100 if aligned_pairs else 0.0
    logger.debug(f"Protein alignment: coverage {coverage:.2f}%, identity {percent_id:.2f}%")
    return coverage, percent_id
