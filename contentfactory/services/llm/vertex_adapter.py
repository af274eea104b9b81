"""Gemini on Vertex AI as a structured-output text model.

The schema is passed as ``response_schema`` so the reply is JSON already; the
client comes from the per-location cache in ``vertex_client``.
"""

import logging
from typing import Optional, Type

from google.genai import types as genai_types

from contentfactory.services.llm.base import LLMAdapter, SchemaT, retry_policy
from contentfactory.services.vertex_client import get_vertex_client, location_for_model

logger = logging.getLogger(__name__)


class VertexAIAdapter(LLMAdapter):
    """Adapter for ``gemini-*`` and other Vertex-hosted text models."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id

    def _config(
        self,
        schema: Type[SchemaT],
        temperature: float,
        system_prompt: Optional[str],
        max_output_tokens: Optional[int],
    ) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            temperature=temperature,
            response_mime_type="application/json",
            response_schema=schema,
            system_instruction=system_prompt,
            max_output_tokens=max_output_tokens,
        )

    async def generate_text(
        self,
        prompt: str,
        schema: Type[SchemaT],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
        max_retries: int = 3,
    ) -> SchemaT:
        config = self._config(schema, temperature, system_prompt, max_output_tokens)

        @retry_policy(max_retries)
        async def _call() -> SchemaT:
            client = get_vertex_client(location=location_for_model(self.model_id))
            response = await client.aio.models.generate_content(
                model=self.model_id,
                contents=prompt,
                config=config,
            )
            if not response.text:
                raise ValueError(f"{self.model_id} returned an empty {schema.__name__}")
            return schema.model_validate_json(response.text)

        logger.debug(f"{self.model_id}: requesting {schema.__name__}")
        return await _call()
