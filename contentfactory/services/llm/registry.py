"""Provider registry for LLM adapters.

Routes model IDs to the correct adapter implementation based on the model
ID prefix. Supports Vertex AI (gemini- prefix) and Ollama (ollama/ prefix).
"""

import logging
from typing import Optional

from contentfactory.config import settings
from contentfactory.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


def _is_ollama_model(model_id: str) -> bool:
    """Return True if the model ID uses the ollama/ prefix."""
    return model_id.startswith("ollama/")


def get_adapter(model_id: Optional[str] = None) -> LLMAdapter:
    """Return the appropriate LLM adapter for the given model ID.

    Routing logic:
    - "ollama/*"  → OllamaAdapter (settings.models.ollama_endpoint)
    - anything else → VertexAIAdapter

    Args:
        model_id: Model identifier string (e.g., "gemini-2.5-flash",
                  "ollama/llama3.1"). Defaults to settings.models.text_llm.

    Returns:
        Configured LLMAdapter instance ready for use.
    """
    model_id = model_id or settings.models.text_llm

    if _is_ollama_model(model_id):
        from contentfactory.services.llm.ollama_adapter import OllamaAdapter

        base_url = settings.models.ollama_endpoint
        api_key = settings.models.ollama_api_key
        logger.debug(
            "Routing %s to OllamaAdapter (base_url=%s, has_key=%s)",
            model_id,
            base_url,
            bool(api_key),
        )
        return OllamaAdapter(model_id=model_id, base_url=base_url, api_key=api_key)

    # Default: Vertex AI (handles gemini- models and anything else)
    from contentfactory.services.llm.vertex_adapter import VertexAIAdapter

    logger.debug("Routing %s to VertexAIAdapter", model_id)
    return VertexAIAdapter(model_id=model_id)
