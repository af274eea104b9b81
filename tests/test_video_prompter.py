"""Video prompter templates, prompt building and LLM failure handling."""

import pytest

from contentfactory.orchestrator.errors import PromptGenerationError
from contentfactory.schemas.prompter import VideoPromptRequest
from contentfactory.services.llm.base import LLMAdapter
from contentfactory.services.video_prompter import (
    DEFAULT_TEMPLATE,
    NICHE_TEMPLATES,
    VideoPrompter,
)


class ScriptedAdapter(LLMAdapter):
    """Replays responses in order; exceptions in the script are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate_text(self, prompt, schema, *, temperature=0.7, system_prompt=None, **kwargs):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "temperature": temperature, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return schema.model_validate(response)


BEACH_PROMPT = {
    "concept": "Sunrise over a quiet beach",
    "prompt": "Slow dolly along the shoreline at dawn. Audio: waves and gulls.",
    "suggested_scenes": 4,
}


def test_niches_and_templates():
    prompter = VideoPrompter(adapter=ScriptedAdapter())

    niches = prompter.available_niches()
    assert "Travel" in niches
    assert len(niches) == len(NICHE_TEMPLATES)
    assert prompter.niche_info("Foodie").visual_styles[0] == "warm"
    assert prompter.niche_info("Knitting") is None


async def test_generate_prompt_fills_defaults_from_the_template():
    adapter = ScriptedAdapter(BEACH_PROMPT)
    prompter = VideoPrompter(adapter=adapter)

    result = await prompter.generate_prompt(
        VideoPromptRequest(niche="Travel", topic="Lisbon", mood="calm", keywords=["tram", "tiles"])
    )

    assert result.concept == "Sunrise over a quiet beach"
    assert result.suggested_scenes == 4
    assert result.suggested_duration == 32
    assert result.visual_style == "cinematic"
    assert result.mood == "calm"

    call = adapter.calls[0]
    assert '"Lisbon"' in call["prompt"]
    assert "tram, tiles" in call["prompt"]
    assert "sweeping landscapes" in call["system_prompt"]
    assert "calm tone" in call["system_prompt"]
    assert call["temperature"] == 0.8
    assert call["max_output_tokens"] == 1024


async def test_unknown_niche_uses_generic_template():
    adapter = ScriptedAdapter({"concept": "c", "prompt": "p", "mood": "dramatic"})
    prompter = VideoPrompter(adapter=adapter)

    result = await prompter.generate_prompt(VideoPromptRequest(niche="Knitting"))

    assert result.visual_style == DEFAULT_TEMPLATE.visual_styles[0]
    assert result.suggested_scenes == 3
    assert result.suggested_duration == 24
    assert result.mood == "dramatic"
    assert "behind the scenes" in adapter.calls[0]["system_prompt"]


async def test_llm_failure_raises_prompt_error():
    prompter = VideoPrompter(adapter=ScriptedAdapter(RuntimeError("quota exceeded")))

    with pytest.raises(PromptGenerationError, match="Failed to generate video prompt"):
        await prompter.generate_prompt(VideoPromptRequest(niche="Gaming"))


async def test_empty_prompt_is_rejected():
    prompter = VideoPrompter(adapter=ScriptedAdapter({"concept": "c", "prompt": "   "}))

    with pytest.raises(PromptGenerationError):
        await prompter.generate_prompt(VideoPromptRequest(niche="Gaming"))


async def test_multiple_prompts_skip_failures():
    adapter = ScriptedAdapter(BEACH_PROMPT, RuntimeError("timeout"), BEACH_PROMPT)
    prompter = VideoPrompter(adapter=adapter)

    results = await prompter.generate_multiple_prompts(VideoPromptRequest(niche="Travel"), count=3)

    assert len(results) == 2
    assert len(adapter.calls) == 3
