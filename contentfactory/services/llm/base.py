"""Common interface for the text LLMs behind the specialist agents.

Every call names a pydantic schema and gets back a validated instance of it.
Adapters retry on their own through ``retry_policy`` so agents only ever see
the final outcome of a call.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Type, TypeVar

from pydantic import BaseModel
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def retry_policy(max_retries: int):
    """Tenacity decorator wrapped around a single model call."""
    return retry(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(Exception),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


class LLMAdapter(ABC):
    """Structured-output text generation for one configured model."""

    model_id: str = ""

    @abstractmethod
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
        """Ask the model for JSON matching ``schema``.

        Args:
            prompt: Task for the model (trend keywords, plan, caption, storyboard).
            schema: Pydantic model the reply is validated against.
            temperature: Sampling temperature; prompt ideas run hotter than captions.
            system_prompt: Role instruction for the agent making the call.
            max_output_tokens: Cap on the reply length, None for the model default.
            max_retries: Attempts before the last error is re-raised.

        Returns:
            Validated instance of ``schema``.
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.model_id!r})"
