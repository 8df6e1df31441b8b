import logging
from dataclasses import dataclass
from typing import Any

from studio.models import Citation, Part

logger = logging.getLogger(__name__)

DEFAULT_CITATION_TITLE = "Source"


@dataclass(frozen=True, slots=True)
class InterpretedResponse:
    text: str | None = None
    image_part: Part | None = None
    citations: list[Citation] | None = None
    finish_reason: str | None = None
    block_reason: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.text and self.image_part is None


def _first_candidate(raw: dict) -> dict:
    candidates = raw.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def citations_from_grounding(metadata: Any) -> list[Citation] | None:
    if not isinstance(metadata, dict):
        return None
    citations = []
    for chunk in metadata.get("groundingChunks") or []:
        if not isinstance(chunk, dict):
            continue
        source = chunk.get("web") or chunk.get("retrievedContext")
        if not isinstance(source, dict):
            continue
        uri = source.get("uri")
        if not isinstance(uri, str) or not uri:
            continue
        title = source.get("title")
        if not isinstance(title, str) or not title.strip():
            title = DEFAULT_CITATION_TITLE
        citations.append(Citation(title=title.strip(), uri=uri))
    return citations or None


def interpret(raw: dict) -> InterpretedResponse:
    """Pull text, the first inline image and search citations from a result.

    When a candidate carries several inline-data parts the first one wins.
    Reasoning ("thought") parts are not part of the visible text.
    """
    candidate = _first_candidate(raw or {})
    parts = (candidate.get("content") or {}).get("parts") or []

    texts: list[str] = []
    image_part: Part | None = None
    for part in parts:
        if not isinstance(part, dict) or part.get("thought"):
            continue
        if isinstance(part.get("text"), str):
            texts.append(part["text"])
            continue
        inline = part.get("inlineData")
        if image_part is None and isinstance(inline, dict) and inline.get("data"):
            image_part = Part.from_inline(
                inline["data"], inline.get("mimeType") or "image/png"
            )

    block_reason = ((raw or {}).get("promptFeedback") or {}).get("blockReason")
    if block_reason:
        logger.warning(f"Prompt blocked by the service: {block_reason}")

    return InterpretedResponse(
        text="".join(texts) or None,
        image_part=image_part,
        citations=citations_from_grounding(candidate.get("groundingMetadata")),
        finish_reason=candidate.get("finishReason"),
        block_reason=block_reason,
    )
