"""Pydantic schemas for storyboard structured output and video scenes.

StoryboardOutput is the structure requested from the LLM via response_schema.
Storyboard and Scene are the normalized forms persisted on the video entity:
scene numbers are renumbered 1..N and durations defaulted, so downstream
stages can rely on a contiguous ordered sequence.
"""

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, Field

CAMERA_ANGLES = ("wide", "medium", "close-up", "overhead", "pov")
TRANSITIONS = ("cut", "fade", "dissolve", "wipe")

_CAMERA_ALIASES = {
    "close up": "close-up",
    "closeup": "close-up",
    "close_up": "close-up",
    "point of view": "pov",
    "point-of-view": "pov",
    "bird's eye": "overhead",
    "birds-eye": "overhead",
    "aerial": "overhead",
    "wide shot": "wide",
    "medium shot": "medium",
}


def _normalize_camera_angle(v: Any) -> Any:
    """Map common LLM spellings onto the camera angle enum."""
    if isinstance(v, str):
        key = v.strip().lower()
        return _CAMERA_ALIASES.get(key, key)
    return v


def _normalize_transition(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().lower()
    return v


def _coerce_to_str(v: Any) -> str:
    """Coerce list values to a comma-separated string.

    Some LLM providers (e.g. Ollama) return arrays for fields declared as
    string in the JSON schema.
    """
    if isinstance(v, list):
        return ", ".join(str(item) for item in v)
    return v


CameraAngle = Annotated[
    Literal["wide", "medium", "close-up", "overhead", "pov"],
    BeforeValidator(_normalize_camera_angle),
]
Transition = Annotated[
    Literal["cut", "fade", "dissolve", "wipe"],
    BeforeValidator(_normalize_transition),
]
CoercedStr = Annotated[str, BeforeValidator(_coerce_to_str)]


class SceneSchema(BaseModel):
    """Individual scene as produced by the storyboard LLM."""

    scene_number: int = Field(description="Sequential scene number starting from 1")
    description: CoercedStr = Field(
        description="Detailed visual description of the scene"
    )
    camera_angle: CameraAngle = Field(
        description="One of: wide, medium, close-up, overhead, pov"
    )
    action: CoercedStr = Field(description="What happens in this scene")
    transition: Transition = Field(
        description="Transition into the next scene: cut, fade, dissolve or wipe"
    )
    duration: Optional[float] = Field(
        default=None, description="Scene duration in seconds"
    )


class StoryboardOutput(BaseModel):
    """Complete storyboard output from structured generation."""

    title: CoercedStr = Field(description="Video title")
    niche: Optional[str] = Field(default=None, description="Content niche")
    overall_prompt: CoercedStr = Field(
        description="Overall description of the video"
    )
    scenes: list[SceneSchema] = Field(
        min_length=1, description="Scenes in playback order"
    )


class Scene(BaseModel):
    """Normalized scene; media_url is attached when its generation completes."""

    scene_number: int = Field(ge=1)
    description: str
    camera_angle: CameraAngle
    action: str
    transition: Transition
    duration: float = Field(gt=0)
    media_url: Optional[str] = None


class Storyboard(BaseModel):
    """Normalized storyboard: an immutable ordered scene sequence."""

    title: str
    niche: str
    overall_prompt: str
    total_duration: int
    scenes: list[Scene]

    @property
    def total_scenes(self) -> int:
        return len(self.scenes)
