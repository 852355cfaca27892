"""Core projection logic for LiftForge.

- models: Source and projected gene/transcript/exon models
- locus: Target region selection from alignment blocks
- encoder: Codon-safe encoding of exons as aligner input
- assemble: Phases, translation and scoring of projected transcripts
- genes: Output gene building
- pipeline: Per-gene projection jobs
"""
