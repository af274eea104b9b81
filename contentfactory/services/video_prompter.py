"""Video prompter: niche-aware prompt ideas for video jobs.

Runs outside any job. Given a niche it asks the text LLM for a concept and a
detailed scene prompt, guided by the niche's usual content types, visuals and
sounds. Unknown niches use a generic template.
"""

import logging
from typing import Optional

from contentfactory.orchestrator.errors import PromptGenerationError
from contentfactory.schemas.prompter import (
    NicheTemplate,
    VideoPromptRequest,
    VideoPromptResponse,
    VideoPromptResult,
)
from contentfactory.services.agents import LLMAgent

logger = logging.getLogger(__name__)

SECONDS_PER_SCENE = 8
DEFAULT_SCENES = 3

NICHE_TEMPLATES: dict[str, NicheTemplate] = {
    "Tech Reviewer": NicheTemplate(
        content_types=["unboxing", "product review", "comparison", "feature demo", "setup guide", "hands-on"],
        visual_styles=["minimalist", "modern", "white_aesthetic", "professional"],
        common_elements=["product close-ups", "hands interacting", "screen displays", "tech workspace"],
        audio_elements=["unboxing sounds", "device clicks", "keyboard typing", "modern electronic music"],
    ),
    "Foodie": NicheTemplate(
        content_types=["recipe tutorial", "cooking process", "food styling", "restaurant review", "ingredient showcase"],
        visual_styles=["warm", "appetizing", "rustic", "elegant"],
        common_elements=["ingredient close-ups", "cooking actions", "plating", "steam and sizzle"],
        audio_elements=["sizzling", "chopping", "pouring", "soft background music", "satisfied reactions"],
    ),
    "Travel": NicheTemplate(
        content_types=["destination showcase", "journey montage", "cultural experience", "landscape panorama", "adventure"],
        visual_styles=["cinematic", "vibrant", "natural", "wanderlust"],
        common_elements=["sweeping landscapes", "local culture", "transportation", "iconic landmarks"],
        audio_elements=["ambient sounds", "local music", "nature sounds", "travel vlog narration"],
    ),
    "Lifestyle": NicheTemplate(
        content_types=["morning routine", "wellness activity", "home organization", "daily vlog", "self-care"],
        visual_styles=["cozy", "minimalist", "white_aesthetic", "warm"],
        common_elements=["home interiors", "personal moments", "lifestyle products", "natural lighting"],
        audio_elements=["soft music", "ambient home sounds", "gentle narration", "calming background"],
    ),
    "Fashion": NicheTemplate(
        content_types=["outfit transition", "styling session", "accessory showcase", "runway walk", "wardrobe tour"],
        visual_styles=["chic", "elegant", "trendy", "bold"],
        common_elements=["outfit details", "mirror shots", "clothing textures", "accessories"],
        audio_elements=["upbeat music", "fabric sounds", "confident footsteps", "fashion commentary"],
    ),
    "Fitness": NicheTemplate(
        content_types=["workout demo", "exercise form", "transformation", "gym environment", "nutrition prep"],
        visual_styles=["energetic", "motivational", "dynamic", "powerful"],
        common_elements=["exercise movements", "gym equipment", "body form", "sweat and effort"],
        audio_elements=["workout music", "breathing", "equipment sounds", "motivational cues"],
    ),
    "Beauty": NicheTemplate(
        content_types=["makeup tutorial", "skincare routine", "product review", "transformation", "get ready with me"],
        visual_styles=["glam", "soft", "bright", "elegant"],
        common_elements=["close-up face shots", "product application", "before/after", "mirror reflection"],
        audio_elements=["soft music", "product sounds", "gentle narration", "satisfying application sounds"],
    ),
    "Gaming": NicheTemplate(
        content_types=["gameplay highlight", "reaction", "tutorial", "review", "setup showcase"],
        visual_styles=["dynamic", "vibrant", "dark_aesthetic", "neon"],
        common_elements=["screen capture", "controller close-ups", "gaming setup", "player reactions"],
        audio_elements=["game sounds", "commentary", "keyboard/controller clicks", "energetic music"],
    ),
}

DEFAULT_TEMPLATE = NicheTemplate(
    content_types=["showcase", "tutorial", "review", "behind the scenes"],
    visual_styles=["professional", "clean", "modern"],
    common_elements=["close-ups", "wide shots", "detail shots"],
    audio_elements=["background music", "ambient sounds", "narration"],
)


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def build_system_prompt(niche: str, mood: str, visual_style: str, template: NicheTemplate) -> str:
    return (
        f"You are a creative video director and scriptwriter specializing in {niche} "
        "content for Instagram, TikTok and YouTube Shorts. You write prompts for "
        "Veo video generation.\n\n"
        f"Each scene is {SECONDS_PER_SCENE} seconds long. Describe camera angles and "
        "movement, lighting and atmosphere, and the audio (dialogue, sound effects, "
        f"music). Match a {mood} tone and a {visual_style} visual aesthetic.\n\n"
        f"Content types for {niche}:\n{_bullets(template.content_types)}\n\n"
        f"Common visual elements:\n{_bullets(template.common_elements)}\n\n"
        f"Audio elements to consider:\n{_bullets(template.audio_elements)}"
    )


def build_user_prompt(request: VideoPromptRequest) -> str:
    prompt = f"Create a detailed video prompt for a {request.niche} video"
    if request.topic:
        prompt += f' about "{request.topic}"'
    prompt += "."
    if request.keywords:
        prompt += f" Incorporate these keywords naturally: {', '.join(request.keywords)}."
    prompt += (
        " Make it cinematic and specific, and end the prompt with "
        "'Audio: [sounds, dialogue, music]'."
    )
    return prompt


class VideoPrompter(LLMAgent):
    """Generates niche-templated prompts for video jobs."""

    def available_niches(self) -> list[str]:
        return list(NICHE_TEMPLATES)

    def niche_info(self, niche: str) -> Optional[NicheTemplate]:
        return NICHE_TEMPLATES.get(niche)

    async def generate_prompt(self, request: VideoPromptRequest) -> VideoPromptResult:
        """Ask the LLM for one concept and scene prompt.

        Raises:
            PromptGenerationError: If the model call fails or returns an
                empty prompt.
        """
        template = NICHE_TEMPLATES.get(request.niche, DEFAULT_TEMPLATE)
        visual_style = request.visual_style or template.visual_styles[0]
        try:
            result = await self.adapter.generate_text(
                build_user_prompt(request),
                VideoPromptResponse,
                temperature=0.8,
                system_prompt=build_system_prompt(
                    request.niche, request.mood, visual_style, template
                ),
                max_output_tokens=1024,
            )
        except Exception as e:
            logger.error(f"Video prompter failed for niche '{request.niche}': {e}")
            raise PromptGenerationError("Failed to generate video prompt") from e

        if not result.prompt.strip():
            raise PromptGenerationError("Failed to generate video prompt: empty prompt")

        scenes = result.suggested_scenes or DEFAULT_SCENES
        return VideoPromptResult(
            concept=result.concept,
            prompt=result.prompt,
            visual_style=result.visual_style or visual_style,
            suggested_scenes=scenes,
            suggested_duration=scenes * SECONDS_PER_SCENE,
            mood=result.mood or request.mood,
        )

    async def generate_multiple_prompts(
        self, request: VideoPromptRequest, count: int = 3
    ) -> list[VideoPromptResult]:
        """Generate up to ``count`` prompts one after another, skipping failures."""
        prompts = []
        for index in range(count):
            try:
                prompts.append(await self.generate_prompt(request))
            except PromptGenerationError as e:
                logger.warning(f"Video prompt suggestion {index + 1}/{count} skipped: {e}")
        return prompts
