import re
from typing import Mapping

PLACEHOLDER_RE = re.compile(r"\{\{([A-Za-z0-9_.\-]+)\}\}")


def resolve(template: str, variables: Mapping[str, str] | None = None) -> str:
    """Replace every ``{{key}}`` with ``variables[key]``.

    Unknown keys are left as literal ``{{key}}``. Replacement values are not
    rescanned, so a value containing a placeholder never chains.
    """
    if not template or not variables:
        return template or ""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_RE.sub(_sub, template)


def detect_placeholders(text: str) -> set[str]:
    if not text:
        return set()
    return set(PLACEHOLDER_RE.findall(text))
