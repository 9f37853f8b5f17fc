"""
LLM client interface.

The planner only needs single-shot text generation. Retries, backoff,
quotas and authentication belong to the implementation behind this
interface; any exception it raises is treated as a failed phase.
"""

from dataclasses import dataclass
from typing import Protocol


class LLMClient(Protocol):
    def generate(self, prompt: str) -> str:
        """Return the model's text response to prompt."""
        ...


@dataclass
class LLMSettings:
    model: str = "gemini-2.5-flash-lite"
    temperature: float = 0.7
