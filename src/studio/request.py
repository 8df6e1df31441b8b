"""Turn a chat session into a generation request the target model accepts.

Every optional field is gated on the capability table, so a request never
carries a parameter the model family rejects.
"""

import logging
from typing import Any, Iterable

from pydantic import BaseModel, Field

from common.text_template import resolve
from studio.capabilities import capabilities_of, parse_model
from studio.errors import UnsupportedModelError
from studio.models import ChatMessage, ChatSession, HarmCategory, Part

logger = logging.getLogger(__name__)

THINKING_BUDGET_DIVISOR = 2
THINKING_BUDGET_HEADROOM = 100
THINKING_BUDGET_FLOOR = 10

SEARCH_TOOL = {"googleSearch": {}}
CHAT_ROLES = ("user", "model")


class NormalizedRequest(BaseModel):
    model: str
    contents: list[dict[str, Any]]
    config: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        """Body for the ``models/{model}:generateContent`` REST call."""
        config = dict(self.config)
        body: dict[str, Any] = {"contents": self.contents}

        system_instruction = config.pop("systemInstruction", None)
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        safety = config.pop("safetySettings", None)
        if safety:
            body["safetySettings"] = [
                {
                    "category": HarmCategory(s["category"]).wire_name,
                    "threshold": s["threshold"],
                }
                for s in safety
            ]

        tools = config.pop("tools", None)
        if tools:
            body["tools"] = tools

        if "imageConfig" in config:
            config["responseModalities"] = ["TEXT", "IMAGE"]
        if config:
            body["generationConfig"] = config
        return body


class VideoRequest(BaseModel):
    model: str
    prompt: str


def compute_thinking_budget(max_output_tokens: int) -> int | None:
    budget = max(
        0,
        min(
            max_output_tokens - THINKING_BUDGET_HEADROOM,
            max_output_tokens // THINKING_BUDGET_DIVISOR,
        ),
    )
    if budget <= THINKING_BUDGET_FLOOR:
        return None
    return budget


def clean_stop_sequences(values: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for value in values or []:
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def _map_part(part: Part, role: str, variables: dict[str, str]) -> dict | None:
    if part.inline_data is not None:
        if not part.inline_data.data:
            return None
        return part.to_wire()
    if not part.text:
        return None
    if role == "user":
        return {"text": resolve(part.text, variables)}
    return {"text": part.text}


def build_contents(
    messages: Iterable[ChatMessage], variables: dict[str, str]
) -> list[dict[str, Any]]:
    contents = []
    for message in messages:
        if message.role not in CHAT_ROLES:
            continue
        parts = [p for p in (_map_part(part, message.role, variables) for part in message.parts) if p]
        if not parts:
            continue
        contents.append({"role": message.role, "parts": parts})
    return contents


def build_request(
    session: ChatSession, pending_user_parts: list[Part] | None = None
) -> NormalizedRequest | VideoRequest:
    model = parse_model(session.config.model)
    caps = capabilities_of(model)

    if caps.is_video_output:
        return build_video_request(session, pending_user_parts)
    if caps.is_live_audio:
        raise UnsupportedModelError(
            f"{model.value} is a live audio model and cannot be used for text chat. "
            "Pick a text, image or video model instead."
        )

    variables = session.variables
    history = list(session.messages)
    if pending_user_parts:
        history.append(ChatMessage(role="user", parts=pending_user_parts))
    contents = build_contents(history, variables)

    gen = session.config
    config: dict[str, Any] = {}

    if caps.accepts_sampling_params:
        config["temperature"] = gen.temperature
        config["topP"] = gen.top_p
        config["topK"] = gen.top_k

    if caps.accepts_system_instruction:
        system_instruction = resolve(session.system_instruction, variables)
        if system_instruction.strip():
            config["systemInstruction"] = system_instruction

    if caps.accepts_safety_settings and gen.safety_settings:
        config["safetySettings"] = [
            {"category": s.category, "threshold": s.threshold} for s in gen.safety_settings
        ]

    config["maxOutputTokens"] = gen.max_output_tokens
    if caps.accepts_thinking_budget:
        budget = compute_thinking_budget(gen.max_output_tokens)
        if budget is not None:
            config["thinkingConfig"] = {"thinkingBudget": budget}

    if caps.accepts_sampling_params:
        stop = clean_stop_sequences(gen.stop_sequences)
        if stop:
            config["stopSequences"] = stop

    if gen.grounding:
        if caps.accepts_search_grounding:
            config["tools"] = [dict(SEARCH_TOOL)]
        else:
            logger.debug(f"Dropping search grounding: not supported by {model.value}")

    if caps.is_image_output:
        config["imageConfig"] = {"aspectRatio": gen.aspect_ratio}

    return NormalizedRequest(model=model.value, contents=contents, config=config)


def build_video_request(
    session: ChatSession, pending_user_parts: list[Part] | None = None
) -> VideoRequest:
    model = parse_model(session.config.model)
    if not capabilities_of(model).is_video_output:
        raise UnsupportedModelError(f"{model.value} does not generate video")

    parts = pending_user_parts
    if parts is None:
        last_user = next((m for m in reversed(session.messages) if m.role == "user"), None)
        parts = last_user.parts if last_user else []

    prompt = "\n".join(resolve(p.text, session.variables) for p in parts if p.text).strip()
    if not prompt:
        raise UnsupportedModelError("Video generation needs a text prompt")
    return VideoRequest(model=model.value, prompt=prompt)
