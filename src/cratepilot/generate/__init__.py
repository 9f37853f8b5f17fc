"""
Crate Generation Module: candidate pools, sequencing and plan orchestration.

- Greedy nearest-neighbour ordering (no backtracking)
- Deterministic fill as fallback for every LLM sequencing call
- Draft -> Finalized plan lifecycle
"""

__all__ = ["pool", "sequencer", "planner"]
