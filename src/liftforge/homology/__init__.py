"""Alignment against the target genome.

- cesar: CESAR2.0 driver and outcome classification
- parse: Aligner output parsing and coordinate mapping
- protein: Protein coverage and identity of projections
"""
