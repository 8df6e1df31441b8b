from dataclasses import dataclass

from studio.errors import UnknownModelError
from studio.models import ModelType


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    accepts_system_instruction: bool
    accepts_safety_settings: bool
    accepts_sampling_params: bool
    accepts_thinking_budget: bool
    accepts_search_grounding: bool
    is_image_output: bool
    is_video_output: bool
    is_live_audio: bool = False


SEARCH_GROUNDING_MODELS = frozenset(
    {
        ModelType.GEMINI_PRO,
        ModelType.GEMINI_FLASH,
        ModelType.GEMINI_IMAGE_PRO,
    }
)

THINKING_FAMILIES = ("gemini-3", "gemini-2.5")

MODEL_DESCRIPTIONS = {
    ModelType.GEMINI_PRO: ("Gemini 3 Pro", "Most capable model for reasoning and creativity."),
    ModelType.GEMINI_FLASH: ("Gemini 3 Flash", "Fast and versatile for most tasks."),
    ModelType.GEMINI_FLASH_LITE: ("Gemini Flash Lite", "Highly efficient for high-volume tasks."),
    ModelType.GEMINI_IMAGE: ("Gemini Image Flash", "Fast image generation."),
    ModelType.GEMINI_IMAGE_PRO: ("Gemini Image Pro", "High-quality 1K/2K/4K images."),
    ModelType.GEMINI_LIVE: ("Gemini Live", "Real-time audio interaction."),
    ModelType.VEO_VIDEO: ("Veo Video", "High-quality video generation."),
}


def _classify(model: ModelType) -> CapabilitySet:
    name = model.value
    is_image = "image" in name
    is_video = name.startswith("veo-")
    is_live = "native-audio" in name
    text_input_config = not (is_image or is_video)

    return CapabilitySet(
        accepts_system_instruction=text_input_config,
        accepts_safety_settings=text_input_config,
        accepts_sampling_params=text_input_config,
        accepts_thinking_budget=(
            name.startswith(THINKING_FAMILIES) and not is_image and not is_live
        ),
        accepts_search_grounding=model in SEARCH_GROUNDING_MODELS,
        is_image_output=is_image,
        is_video_output=is_video,
        is_live_audio=is_live,
    )


CAPABILITIES: dict[ModelType, CapabilitySet] = {m: _classify(m) for m in ModelType}


def parse_model(model: str | ModelType) -> ModelType:
    try:
        return ModelType(model)
    except ValueError:
        raise UnknownModelError(str(model)) from None


def capabilities_of(model: str | ModelType) -> CapabilitySet:
    return CAPABILITIES[parse_model(model)]
