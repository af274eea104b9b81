"""LLM provider abstraction layer.

Provides a unified async interface for structured text generation across
Vertex AI and Ollama.

Usage:
    from contentfactory.services.llm import get_adapter, LLMAdapter

    adapter = get_adapter("gemini-2.5-flash")
    result = await adapter.generate_text(prompt, MySchema)

    adapter = get_adapter("ollama/llama3.1")
    result = await adapter.generate_text(prompt, MySchema)
"""

from contentfactory.services.llm.base import LLMAdapter
from contentfactory.services.llm.registry import get_adapter

__all__ = ["LLMAdapter", "get_adapter"]
