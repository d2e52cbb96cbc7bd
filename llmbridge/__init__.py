"""Shared chat types, OpenAI and OpenRouter chat clients, and Algolia search conversions."""

__version__ = "0.1.0"

__all__ = [
    "types",
    "sse",
    "openai_client",
    "openai_conversions",
    "openai",
    "openrouter_client",
    "openrouter_conversions",
    "openrouter",
    "algolia_models",
    "algolia_conversions",
    "algolia_query",
]