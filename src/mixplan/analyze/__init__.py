"""
Track Analysis Module: Interpret precomputed musical features.

- Camelot key normalization and wheel distance
- Candidate exit/entry mix points from structure, beat grid and vocals
- Pure functions over immutable tracks; no audio is decoded here
"""

__all__ = ["key", "cues"]
