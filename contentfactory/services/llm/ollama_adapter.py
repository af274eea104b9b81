"""Ollama adapter for the LLM abstraction layer.

Connects via ollama.AsyncClient with optional auth headers and structured
JSON output via format='json' plus a schema instruction in the system
prompt. Ollama Cloud does not reliably enforce a full JSON schema passed as
``format``, so the schema travels in the prompt instead.
"""

import json
import logging
from typing import Optional, Type

from ollama import AsyncClient
from pydantic import BaseModel

from contentfactory.services.llm.base import LLMAdapter, SchemaT, retry_policy

logger = logging.getLogger(__name__)


def _schema_instruction(schema: Type[BaseModel]) -> str:
    """Build a concise JSON schema instruction to append to the system prompt."""
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    return (
        "\n\nIMPORTANT: You MUST respond with a single JSON object (no markdown, "
        "no commentary, no code fences). The JSON must conform to this schema:\n"
        f"```json\n{schema_json}\n```\n"
        "All string fields must be strings (not arrays). Return ONLY the JSON object."
    )


def _strip_code_fences(raw: str) -> str:
    """Some models wrap JSON in markdown code fences."""
    stripped = raw.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        stripped = stripped[first_newline + 1:] if first_newline != -1 else ""
        if stripped.endswith("```"):
            stripped = stripped[:-3].rstrip()
    return stripped


class OllamaAdapter(LLMAdapter):
    """LLM adapter backed by a local or cloud Ollama instance.

    Strips the "ollama/" prefix from model IDs before passing to the ollama
    library. Always passes stream=False to avoid async generator responses.
    """

    def __init__(
        self,
        model_id: str,
        base_url: str = "http://localhost:11434",
        api_key: Optional[str] = None,
    ) -> None:
        self.model_id = model_id
        self._ollama_model = model_id.removeprefix("ollama/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = AsyncClient(host=base_url, headers=headers)

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
        """Generate structured text using an Ollama model.

        Args:
            prompt: User prompt to send.
            schema: Pydantic model class for structured JSON output.
            temperature: Sampling temperature.
            system_prompt: Optional system instruction.
            max_output_tokens: Sent as num_predict when set.
            max_retries: Retry attempts on failure.

        Returns:
            Validated Pydantic model instance.
        """
        schema_suffix = _schema_instruction(schema)

        options = {"temperature": temperature}
        if max_output_tokens:
            options["num_predict"] = max_output_tokens

        @retry_policy(max_retries)
        async def _call() -> SchemaT:
            system = (system_prompt + schema_suffix) if system_prompt else schema_suffix.lstrip()
            messages = [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ]
            response = await self._client.chat(
                model=self._ollama_model,
                messages=messages,
                format="json",
                options=options,
                stream=False,
            )
            return schema.model_validate_json(_strip_code_fences(response.message.content))

        return await _call()
