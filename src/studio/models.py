import base64
import mimetypes
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from common.ids import generate_id, utc_now

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a helpful and expert AI assistant. "
    "Provide concise, accurate, and professional responses."
)
DEFAULT_TITLE = "New Prompt"


class ModelType(str, Enum):
    GEMINI_PRO = "gemini-3-pro-preview"
    GEMINI_FLASH = "gemini-3-flash-preview"
    GEMINI_FLASH_LITE = "gemini-flash-lite-latest"
    GEMINI_IMAGE = "gemini-2.5-flash-image"
    GEMINI_IMAGE_PRO = "gemini-3-pro-image-preview"
    GEMINI_LIVE = "gemini-2.5-flash-native-audio-preview-09-2025"
    VEO_VIDEO = "veo-3.1-fast-generate-preview"


class HarmCategory(str, Enum):
    HATE_SPEECH = "HATE_SPEECH"
    HARASSMENT = "HARASSMENT"
    SEXUALLY_EXPLICIT = "SEXUALLY_EXPLICIT"
    DANGEROUS_CONTENT = "DANGEROUS_CONTENT"

    @property
    def wire_name(self) -> str:
        return f"HARM_CATEGORY_{self.value}"


class HarmBlockThreshold(str, Enum):
    """Ordered from least to most restrictive."""

    BLOCK_NONE = "BLOCK_NONE"
    BLOCK_ONLY_HIGH = "BLOCK_ONLY_HIGH"
    BLOCK_MEDIUM_AND_ABOVE = "BLOCK_MEDIUM_AND_ABOVE"
    BLOCK_LOW_AND_ABOVE = "BLOCK_LOW_AND_ABOVE"

    @property
    def severity(self) -> int:
        return list(HarmBlockThreshold).index(self)


class AspectRatio(str, Enum):
    SQUARE = "1:1"
    PORTRAIT_2_3 = "2:3"
    LANDSCAPE_3_2 = "3:2"
    PORTRAIT_3_4 = "3:4"
    LANDSCAPE_4_3 = "4:3"
    PORTRAIT_4_5 = "4:5"
    LANDSCAPE_5_4 = "5:4"
    PORTRAIT_9_16 = "9:16"
    LANDSCAPE_16_9 = "16:9"
    ULTRAWIDE_21_9 = "21:9"


DEFAULT_SAFETY_THRESHOLD = HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE


class StudioModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )

    def to_snapshot(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class InlineData(StudioModel):
    data: str
    mime_type: str


class Part(StudioModel):
    text: str | None = None
    inline_data: InlineData | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "Part":
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("a part holds exactly one of text or inlineData")
        return self

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_inline(cls, data: str, mime_type: str) -> "Part":
        return cls(inline_data=InlineData(data=data, mime_type=mime_type))

    def to_wire(self) -> dict:
        return self.to_snapshot()


class Citation(StudioModel):
    title: str = "Source"
    uri: str


class ChatMessage(StudioModel):
    id: str = Field(default_factory=generate_id)
    role: Literal["user", "model", "system"]
    parts: list[Part] = Field(min_length=1)
    timestamp: datetime = Field(default_factory=utc_now)
    citations: list[Citation] | None = None
    video_url: str | None = None

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if p.text)


class SafetySetting(StudioModel):
    category: HarmCategory
    threshold: HarmBlockThreshold = DEFAULT_SAFETY_THRESHOLD


def default_safety_settings(
    threshold: HarmBlockThreshold = DEFAULT_SAFETY_THRESHOLD,
) -> list[SafetySetting]:
    return [SafetySetting(category=c, threshold=threshold) for c in HarmCategory]


class GenerationConfig(StudioModel):
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    top_k: int = Field(default=40, gt=0)
    max_output_tokens: int = Field(default=8192, gt=0)
    stop_sequences: list[str] = Field(default_factory=list)
    # Kept as a plain string so snapshots naming a retired model still load;
    # the request builder rejects it.
    model: str = ModelType.GEMINI_FLASH.value
    grounding: bool = False
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    safety_settings: list[SafetySetting] = Field(default_factory=default_safety_settings)


class ChatSession(StudioModel):
    id: str = Field(default_factory=generate_id)
    title: str = DEFAULT_TITLE
    messages: list[ChatMessage] = Field(default_factory=list)
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    variables: dict[str, str] = Field(default_factory=dict)
    config: GenerationConfig = Field(default_factory=GenerationConfig)
    last_modified: datetime = Field(default_factory=utc_now)

    def touch(self) -> None:
        self.last_modified = utc_now()


class MediaFile(StudioModel):
    """An attachment waiting to be sent; ``data`` is a base64 data URI."""

    id: str = Field(default_factory=generate_id)
    data: str
    mime_type: str
    name: str

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str, name: str) -> "MediaFile":
        encoded = base64.b64encode(raw).decode("ascii")
        return cls(data=f"data:{mime_type};base64,{encoded}", mime_type=mime_type, name=name)

    @classmethod
    def from_path(cls, path: str | Path) -> "MediaFile":
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls.from_bytes(path.read_bytes(), mime_type, path.name)

    @property
    def payload(self) -> str:
        _, sep, encoded = self.data.partition(",")
        return encoded if sep else self.data

    def to_part(self) -> Part:
        return Part.from_inline(self.payload, self.mime_type)
