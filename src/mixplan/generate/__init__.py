"""
Set Generation Module: Score transitions and sequence sessions.

- Pairwise transition scoring over candidate mix points
- Best-first (A*) search with a bounded frontier
- Output: Session with per-transition metadata and warnings
"""

__all__ = ["energy", "scorer", "search", "session"]
