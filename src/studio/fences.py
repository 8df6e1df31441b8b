"""Split model output into prose and fenced code segments.

A fence is a line that starts (after at most three spaces) with three or more
backticks. An opening fence may carry a language tag; a closing fence must be
bare and at least as long as the one that opened the block, so a longer outer
fence can wrap shorter inner ones. A block left open at the end of the text
is rendered as prose.
"""

import re
from dataclasses import dataclass

FENCE_RE = re.compile(r"^ {0,3}(?P<fence>`{3,})(?P<info>[^`]*)$")

PROSE = "prose"
CODE = "code"


@dataclass(frozen=True, slots=True)
class Segment:
    kind: str
    text: str
    language: str | None = None


def _language(info: str) -> str | None:
    words = info.strip().split()
    return words[0] if words else None


def split_fences(text: str) -> list[Segment]:
    segments: list[Segment] = []
    prose: list[str] = []
    code: list[str] = []
    state = PROSE
    opening_line = ""
    fence_len = 0
    language: str | None = None

    def flush_prose() -> None:
        chunk = "".join(prose)
        if chunk.strip():
            segments.append(Segment(PROSE, chunk))
        prose.clear()

    for line in (text or "").splitlines(keepends=True):
        match = FENCE_RE.match(line.rstrip("\r\n"))
        if state == PROSE:
            if match:
                state = CODE
                opening_line = line
                fence_len = len(match.group("fence"))
                language = _language(match.group("info"))
                code = []
            else:
                prose.append(line)
            continue

        if match and len(match.group("fence")) >= fence_len and not match.group("info").strip():
            flush_prose()
            body = "".join(code)
            if body.endswith("\n"):
                body = body[:-1]
            segments.append(Segment(CODE, body, language))
            state = PROSE
        else:
            code.append(line)

    if state == CODE:
        prose.append(opening_line)
        prose.extend(code)
    flush_prose()
    return segments


def extract_code_blocks(text: str) -> list[Segment]:
    return [s for s in split_fences(text) if s.kind == CODE]
