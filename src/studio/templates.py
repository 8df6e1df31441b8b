import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from studio.models import DEFAULT_SYSTEM_INSTRUCTION, ChatSession, GenerationConfig, ModelType
from studio.sessions import SessionStore

logger = logging.getLogger(__name__)

VIBE_SYSTEM_INSTRUCTION = (
    "You are a senior full-stack engineer. Scaffold complete, runnable apps: "
    "list the files first, then give each file in its own fenced code block."
)


@dataclass(frozen=True)
class SessionTemplate:
    name: str
    title: str
    model: str = ModelType.GEMINI_FLASH.value
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    config: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, str] = field(default_factory=dict)
    path: Path | None = None


BUILTIN_TEMPLATES = {
    "blank": SessionTemplate(name="blank", title="New Prompt"),
    "vibe": SessionTemplate(
        name="vibe",
        title="Vibe App Scaffold",
        model=ModelType.GEMINI_PRO.value,
        system_instruction=VIBE_SYSTEM_INSTRUCTION,
    ),
}


def _parse_frontmatter(text: str) -> tuple[Dict[str, Any], str]:
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, text

    for idx in range(1, len(lines)):
        if lines[idx].strip() == "---":
            header = "\n".join(lines[1:idx])
            body = "\n".join(lines[idx + 1 :]).strip()
            data = yaml.safe_load(header) or {}
            if not isinstance(data, dict):
                raise ValueError("frontmatter must be a mapping")
            return data, body

    return {}, text


def template_from_markdown(path: Path) -> SessionTemplate:
    frontmatter, body = _parse_frontmatter(path.read_text(encoding="utf-8"))
    variables = frontmatter.get("variables") or {}
    if not isinstance(variables, dict):
        raise ValueError("variables must be a mapping")
    name = str(frontmatter.get("name") or path.stem)
    config = {
        key: frontmatter[key]
        for key in GenerationConfig.model_fields
        if key in frontmatter and key != "model"
    }
    return SessionTemplate(
        name=name,
        title=str(frontmatter.get("title") or name),
        model=str(frontmatter.get("model") or ModelType.GEMINI_FLASH.value),
        system_instruction=body or DEFAULT_SYSTEM_INSTRUCTION,
        config=config,
        variables={str(k): str(v) for k, v in variables.items()},
        path=path,
    )


class TemplateRegistry:
    """Built-in presets plus ``*.md`` templates found under ``root``."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root) if root else None
        self.templates: Dict[str, SessionTemplate] = dict(BUILTIN_TEMPLATES)

    def reload(self) -> None:
        templates = dict(BUILTIN_TEMPLATES)
        if self.root is not None and self.root.exists():
            for path in sorted(self.root.glob("*.md")):
                try:
                    template = template_from_markdown(path)
                except (yaml.YAMLError, ValueError) as e:
                    logger.warning(f"Skipping template {path}: {e}")
                    continue
                templates[template.name] = template
        self.templates = templates

    def names(self) -> list[str]:
        return sorted(self.templates)

    def get(self, name: str) -> SessionTemplate | None:
        return self.templates.get(name)


def create_from_template(store: SessionStore, template: SessionTemplate) -> ChatSession:
    return store.create(
        template.title,
        template.model,
        system_instruction=template.system_instruction,
        variables=template.variables,
        config=template.config,
    )
