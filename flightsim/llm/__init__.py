# flightsim/llm/__init__.py
"""LLM access: client and JSON extraction."""

from .client import LLMClient, LLMResponse, TextGenerator, get_llm_client
from .extract import ExtractionResult, extract_json, generate_json

__all__ = [
    "LLMClient",
    "LLMResponse",
    "TextGenerator",
    "get_llm_client",
    "ExtractionResult",
    "extract_json",
    "generate_json",
]
