"""
Harmony Module: Camelot key model and transition compatibility scoring.

- Static 24-key Camelot wheel graph
- Tempo, key and energy scores, combined transition quality
- Whole-set mixability analysis
"""

__all__ = ["camelot", "scoring"]
