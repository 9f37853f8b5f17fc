"""
LLM Module: interface to the external text-generation collaborator.

- client  : LLMClient protocol (generate(prompt) -> str) and settings
- prompts : prompt templates and track-list formatting
- parsers : JSON extraction and schema-validated decoding of responses
"""

__all__ = ["client", "prompts", "parsers"]
