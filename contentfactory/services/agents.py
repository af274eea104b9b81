"""Specialist agents for the content-post pipeline.

Trend Explorer, Showrunner and Caption Writer ask the text LLM for structured
output. When the LLM is unavailable they degrade to a generic result and log
a warning, so one flaky LLM call does not cost a whole post. Image
generation and publishing have no sensible fallback and raise instead.
"""

import logging
import random
from typing import Optional

from contentfactory.schemas.content import (
    CaptionResponse,
    ContentPlan,
    ContentPlanResponse,
    Topic,
    TrendingKeywordsResponse,
)
from contentfactory.services.llm import LLMAdapter, get_adapter

logger = logging.getLogger(__name__)

# Available niches for content creation (must match publisher profiles)
NICHES = [
    "Art & Design",
    "Business",
    "Entertainment",
    "Finance",
    "Fitness",
    "Gaming",
    "Health & Wellness",
    "Lifestyle",
    "Music",
    "Sports",
    "Technology",
    "Travel",
]

DEFAULT_HASHTAGS = ["#DNA"]
FALLBACK_KEYWORDS = ["trending", "viral", "popular"]


class LLMAgent:
    """Base for agents that call the configured text LLM."""

    def __init__(self, adapter: Optional[LLMAdapter] = None) -> None:
        self._adapter = adapter

    @property
    def adapter(self) -> LLMAdapter:
        # Resolved lazily so constructing agents never needs credentials
        if self._adapter is None:
            self._adapter = get_adapter()
        return self._adapter


class TrendExplorer(LLMAgent):
    """Finds trending keywords for a randomly chosen niche."""

    def __init__(
        self,
        adapter: Optional[LLMAdapter] = None,
        niches: Optional[list[str]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(adapter)
        self.niches = niches or NICHES
        self._rng = rng or random.Random()

    async def find_topic(self) -> Topic:
        niche = self._rng.choice(self.niches)
        try:
            result = await self.adapter.generate_text(
                f'Generate 3-5 trending keywords for the "{niche}" niche.',
                TrendingKeywordsResponse,
                system_prompt=(
                    "You are a social media trend expert. Generate trending "
                    "keywords and topics for the given niche."
                ),
            )
            return Topic(niche=niche, keywords=result.keywords, trend_score=0.8)
        except Exception as e:
            logger.warning(f"Trend Explorer falling back to generic keywords: {e}")
            return Topic(niche=niche, keywords=list(FALLBACK_KEYWORDS), trend_score=0.5)


class Showrunner(LLMAgent):
    """Turns a topic into an image prompt and caption style."""

    async def create_plan(self, topic: Topic) -> ContentPlan:
        keywords = ", ".join(topic.keywords)
        fallback_prompt = f"A beautiful {topic.niche.lower()} scene featuring {keywords}"
        try:
            result = await self.adapter.generate_text(
                f"Create a content plan for a {topic.niche} post about {keywords}. "
                "Include an image prompt and a caption style "
                "(casual, professional or inspirational).",
                ContentPlanResponse,
                system_prompt=(
                    "You are a content strategist. Create a detailed content "
                    "plan for social media posts."
                ),
            )
            image_prompt = result.image_prompt or fallback_prompt
            caption_style = result.caption_style or "casual"
        except Exception as e:
            logger.warning(f"Showrunner falling back to default plan: {e}")
            image_prompt = fallback_prompt
            caption_style = "casual"

        return ContentPlan(
            niche=topic.niche,
            keywords=topic.keywords,
            image_prompt=image_prompt,
            caption_style=caption_style,
            hashtags=list(DEFAULT_HASHTAGS),
        )


class CaptionWriter(LLMAgent):
    """Writes a short caption and appends the plan's hashtags."""

    async def write(self, plan: ContentPlan) -> str:
        hashtags = " ".join(plan.hashtags)
        try:
            result = await self.adapter.generate_text(
                f"Write a {plan.caption_style} caption for a {plan.niche} post about "
                f"{', '.join(plan.keywords)}. Keep it concise (2-3 sentences), "
                "engaging, and authentic. Do not include hashtags in the caption.",
                CaptionResponse,
                system_prompt=(
                    "You are a social media caption writer. Write engaging, "
                    f"authentic captions in a {plan.caption_style} style."
                ),
            )
            caption = result.caption.strip() or "Check this out!"
        except Exception as e:
            logger.warning(f"Caption Writer falling back to template caption: {e}")
            caption = f"Discover the best of {plan.niche}! {', '.join(plan.keywords)}"
        return f"{caption} {hashtags}".strip()
