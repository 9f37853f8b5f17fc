# CratePilot: deterministic DJ crate planning engine
# Package: src.cratepilot

__version__ = "1.0.0-dev"
__author__ = "CratePilot Contributors"
__description__ = "Harmonic, tempo and energy aware crate planning with optional LLM assistance"

# Module structure:
#   - cratepilot.catalog     : In-memory track store
#   - cratepilot.harmony     : Camelot key model, compatibility scoring
#   - cratepilot.generate    : Candidate pools, sequencing, plan orchestration
#   - cratepilot.llm         : LLM client interface, prompts, response parsing
#   - cratepilot.validation  : Plan validation
#   - cratepilot.config      : Configuration management
