"""Pydantic schemas for the content-post pipeline.

Stage outputs (Topic, ContentPlan, GeneratedImage, PublishResult) flow between
stages of one iteration. The *Response models are the structured-output
schemas requested from the LLM.
"""

from pydantic import BaseModel, Field


class Topic(BaseModel):
    """Trending topic chosen by the trend explorer."""

    niche: str
    keywords: list[str]
    trend_score: float = Field(ge=0.0, le=1.0)


class ContentPlan(BaseModel):
    """Showrunner's plan for one post."""

    niche: str
    keywords: list[str]
    image_prompt: str
    caption_style: str = "casual"
    hashtags: list[str] = Field(default_factory=lambda: ["#DNA"])


class GeneratedImage(BaseModel):
    """Stored image produced for a post."""

    url: str
    prompt: str


class PublishResult(BaseModel):
    """Acknowledgement from the publishing platform."""

    external_post_id: str


class TrendingKeywordsResponse(BaseModel):
    """LLM structured output for trending keywords."""

    keywords: list[str] = Field(description="3-5 trending keywords for the niche")


class ContentPlanResponse(BaseModel):
    """LLM structured output for a content plan."""

    image_prompt: str = Field(description="Detailed prompt for image generation")
    caption_style: str = Field(
        description="Style of caption: casual, professional, or inspirational"
    )


class CaptionResponse(BaseModel):
    """LLM structured output for a caption."""

    caption: str = Field(description="2-3 sentence caption without hashtags")
