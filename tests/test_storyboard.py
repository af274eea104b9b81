"""Storyboard normalization and the storyboard agent with a scripted LLM."""

import pytest
from pydantic import ValidationError

from contentfactory.orchestrator.errors import StageError
from contentfactory.pipeline.video import check_storyboard
from contentfactory.schemas.storyboard import SceneSchema, StoryboardOutput
from contentfactory.services.llm.base import LLMAdapter
from contentfactory.services.storyboard_agent import (
    StoryboardAgent,
    build_scene_prompt,
    normalize_storyboard,
)


class ScriptedAdapter(LLMAdapter):
    """Returns a canned response (or raises it) and records the prompt."""

    def __init__(self, response):
        self.response = response
        self.prompts = []

    async def generate_text(self, prompt, schema, *, temperature=0.7, system_prompt=None, **kwargs):
        self.prompts.append(prompt)
        if isinstance(self.response, Exception):
            raise self.response
        return schema.model_validate(self.response)


def _raw_scene(number, **overrides):
    scene = {
        "scene_number": number,
        "description": f"Shot {number}",
        "camera_angle": "wide",
        "action": "Waves roll in",
        "transition": "cut",
    }
    scene.update(overrides)
    return scene


def test_llm_spellings_are_normalized():
    scene = SceneSchema.model_validate(
        _raw_scene(1, camera_angle="Close Up", transition=" Fade ", description=["sand", "sea"])
    )
    assert scene.camera_angle == "close-up"
    assert scene.transition == "fade"
    assert scene.description == "sand, sea"


def test_unknown_camera_angle_is_rejected():
    with pytest.raises(ValidationError):
        SceneSchema.model_validate(_raw_scene(1, camera_angle="dutch tilt"))


def test_normalize_renumbers_and_fills_durations():
    output = StoryboardOutput.model_validate(
        {
            "title": "Beach Day",
            "overall_prompt": "A day at the beach",
            "scenes": [_raw_scene(4), _raw_scene(7, duration=12), _raw_scene(7, duration=0)],
        }
    )

    storyboard = normalize_storyboard(output, "Travel", total_duration=30, scene_count=3)

    assert [scene.scene_number for scene in storyboard.scenes] == [1, 2, 3]
    assert [scene.duration for scene in storyboard.scenes] == [10, 12, 10]
    assert storyboard.niche == "Travel"
    assert storyboard.total_scenes == 3
    check_storyboard(storyboard, 3)


def test_scene_prompt_includes_camera_instruction():
    output = StoryboardOutput.model_validate(
        {"title": "t", "overall_prompt": "p", "scenes": [_raw_scene(1, camera_angle="pov")]}
    )
    scene = normalize_storyboard(output, None, 30, 1).scenes[0]

    prompt = build_scene_prompt(scene)

    assert prompt.startswith("Shot 1. Point of view shot")
    assert "Waves roll in." in prompt


async def test_agent_truncates_extra_scenes():
    adapter = ScriptedAdapter(
        {
            "title": "Too long",
            "niche": "Fitness",
            "overall_prompt": "Morning run",
            "scenes": [_raw_scene(n) for n in range(1, 6)],
        }
    )

    storyboard = await StoryboardAgent(adapter).create_storyboard(
        "morning run", niche="Travel", scene_count=3, total_duration=30
    )

    assert storyboard.total_scenes == 3
    assert storyboard.niche == "Fitness"
    assert "Number of scenes: 3" in adapter.prompts[0]
    assert "Niche: Travel" in adapter.prompts[0]


async def test_agent_failure_is_a_stage_error():
    agent = StoryboardAgent(ScriptedAdapter(RuntimeError("rate limited")))

    with pytest.raises(StageError) as exc_info:
        await agent.create_storyboard("anything", scene_count=2, total_duration=20)

    assert exc_info.value.retryable
    assert "rate limited" in str(exc_info.value)


def test_misnumbered_storyboard_is_rejected():
    output = StoryboardOutput.model_validate(
        {"title": "t", "overall_prompt": "p", "scenes": [_raw_scene(1), _raw_scene(2)]}
    )
    storyboard = normalize_storyboard(output, None, 30, 2)
    storyboard.scenes[1].scene_number = 3

    with pytest.raises(StageError, match="not contiguous"):
        check_storyboard(storyboard, 2)
