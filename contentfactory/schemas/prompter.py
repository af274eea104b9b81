"""Pydantic schemas for the video prompter.

The prompter turns a niche (plus optional topic, mood and keywords) into a
ready-to-use prompt for a video job. ``VideoPromptResponse`` is what the LLM
is asked for; ``VideoPromptResult`` is what callers get back.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

VideoMood = Literal["energetic", "calm", "dramatic", "playful", "professional", "casual"]


class NicheTemplate(BaseModel):
    """Content ideas the prompter steers the model towards for one niche."""

    content_types: list[str]
    visual_styles: list[str]
    common_elements: list[str]
    audio_elements: list[str]


class VideoPromptRequest(BaseModel):
    """Input for generating a video prompt."""

    niche: str = Field(min_length=1)
    topic: Optional[str] = None
    mood: VideoMood = "professional"
    visual_style: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)


class VideoPromptResponse(BaseModel):
    """LLM structured output for a video prompt."""

    concept: str = Field(description="1-2 sentence description of the video concept")
    prompt: str = Field(
        description=(
            "3-5 sentences describing an 8-second scene: camera angles, lighting, "
            "actions and an 'Audio: ...' description"
        )
    )
    visual_style: Optional[str] = None
    suggested_scenes: Optional[int] = Field(default=None, ge=1, le=10)
    mood: Optional[str] = None


class VideoPromptResult(BaseModel):
    """Generated prompt with the scene plan a video job can start from."""

    concept: str
    prompt: str
    visual_style: str
    suggested_scenes: int
    suggested_duration: int
    mood: str
