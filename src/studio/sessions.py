import logging
from pathlib import Path
from typing import Any, Iterator, Protocol

from pydantic import ValidationError

from common.jsonio import atomic_write_json, load_json
from studio.config import STORAGE_KEY
from studio.models import (
    DEFAULT_SYSTEM_INSTRUCTION,
    DEFAULT_TITLE,
    ChatMessage,
    ChatSession,
    GenerationConfig,
    ModelType,
)
from studio.response import citations_from_grounding

logger = logging.getLogger(__name__)

SESSION_FIELDS = ("title", "system_instruction", "variables", "config")


class SnapshotStore(Protocol):
    def load(self) -> Any | None: ...

    def save(self, snapshot: list[dict]) -> None: ...


class MemorySnapshotStore:
    def __init__(self, snapshot: Any | None = None):
        self.snapshot = snapshot
        self.saves = 0

    def load(self) -> Any | None:
        return self.snapshot

    def save(self, snapshot: list[dict]) -> None:
        self.snapshot = snapshot
        self.saves += 1


class JsonFileSnapshotStore:
    """Keeps the whole session list under one key of a JSON document."""

    def __init__(self, path: str | Path, key: str = STORAGE_KEY):
        self.path = Path(path)
        self.key = key

    def load(self) -> Any | None:
        data = load_json(self.path)
        if isinstance(data, dict):
            return data.get(self.key)
        return data

    def save(self, snapshot: list[dict]) -> None:
        atomic_write_json(self.path, {self.key: snapshot})


def _is_valid_part(part: Any) -> bool:
    if not isinstance(part, dict):
        return False
    text = part.get("text")
    if isinstance(text, str):
        return bool(text)
    inline = part.get("inlineData", part.get("inline_data"))
    if not isinstance(inline, dict):
        return False
    mime_type = inline.get("mimeType", inline.get("mime_type"))
    return isinstance(inline.get("data"), str) and bool(inline["data"]) and isinstance(mime_type, str)


def _clean_part(part: dict) -> dict:
    if isinstance(part.get("text"), str):
        return {"text": part["text"]}
    return {"inlineData": part.get("inlineData", part.get("inline_data"))}


def _clean_citations(raw: dict) -> list[dict] | None:
    stored = raw.get("citations")
    if isinstance(stored, list):
        citations = []
        for c in stored:
            if not isinstance(c, dict) or not isinstance(c.get("uri"), str) or not c["uri"]:
                continue
            title = c.get("title")
            if not isinstance(title, str) or not title.strip():
                title = "Source"
            citations.append({"title": title, "uri": c["uri"]})
        return citations or None
    # Older snapshots keep the raw grounding payload instead.
    citations = citations_from_grounding(raw.get("groundingMetadata"))
    return [c.to_snapshot() for c in citations] if citations else None


def _sanitize_message(raw: Any) -> ChatMessage | None:
    if not isinstance(raw, dict):
        return None
    parts = [_clean_part(p) for p in raw.get("parts") or [] if _is_valid_part(p)]
    if not parts:
        return None
    cleaned = {k: v for k, v in raw.items() if k != "groundingMetadata"}
    cleaned.update(parts=parts, citations=_clean_citations(raw))
    try:
        return ChatMessage.model_validate(cleaned)
    except ValidationError as e:
        logger.debug(f"Invalid message {raw.get('id')}: {e}")
        return None


def validate_snapshot(raw: Any) -> list[ChatSession]:
    """Build live sessions from persisted data, dropping anything malformed."""
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning(f"Ignoring session snapshot of type {type(raw).__name__}")
        return []

    sessions: list[ChatSession] = []
    for entry in raw:
        if not isinstance(entry, dict):
            logger.warning("Skipping non-object session entry")
            continue
        messages = entry.get("messages")
        if not isinstance(messages, list):
            messages = []
        cleaned = [m for m in (_sanitize_message(m) for m in messages) if m]
        dropped = len(messages) - len(cleaned)
        if dropped:
            logger.info(f"Dropped {dropped} empty or corrupt messages from session {entry.get('id')}")
        try:
            sessions.append(ChatSession.model_validate({**entry, "messages": cleaned}))
        except ValidationError as e:
            logger.warning(f"Skipping invalid session {entry.get('id')}: {e.error_count()} errors")
    return sessions


class SessionStore:
    """In-memory chat sessions with exactly one active session once loaded."""

    def __init__(self, persistence: SnapshotStore | None = None):
        self.persistence = persistence or MemorySnapshotStore()
        self.sessions: list[ChatSession] = []
        self.active_id: str | None = None

    @classmethod
    def open(cls, persistence: SnapshotStore | None = None) -> "SessionStore":
        store = cls(persistence)
        store.load()
        return store

    def __len__(self) -> int:
        return len(self.sessions)

    def __iter__(self) -> Iterator[ChatSession]:
        return iter(self.sessions)

    @property
    def active(self) -> ChatSession | None:
        return self.get(self.active_id) if self.active_id else None

    def get(self, session_id: str) -> ChatSession | None:
        return next((s for s in self.sessions if s.id == session_id), None)

    def load(self) -> None:
        try:
            raw = self.persistence.load()
        except Exception as e:
            logger.warning(f"Could not read session snapshot, starting fresh: {e}")
            raw = None

        self.sessions = validate_snapshot(raw)
        if not self.sessions:
            self.active_id = None
            self.create()
            return
        self.active_id = self.sessions[0].id
        logger.info(f"Loaded {len(self.sessions)} sessions")

    def snapshot(self) -> list[dict]:
        return [s.to_snapshot() for s in self.sessions]

    def save(self) -> None:
        self.persistence.save(self.snapshot())

    def create(
        self,
        title: str | None = None,
        model: str | ModelType | None = None,
        *,
        system_instruction: str | None = None,
        variables: dict[str, str] | None = None,
        config: dict[str, Any] | None = None,
    ) -> ChatSession:
        settings = dict(config or {})
        if model is not None:
            settings["model"] = model.value if isinstance(model, ModelType) else model
        session = ChatSession(
            title=title or DEFAULT_TITLE,
            system_instruction=(
                DEFAULT_SYSTEM_INSTRUCTION if system_instruction is None else system_instruction
            ),
            variables=dict(variables or {}),
            config=GenerationConfig.model_validate(settings),
        )
        self.sessions.insert(0, session)
        self.active_id = session.id
        self.save()
        logger.debug(f"Created session {session.id} ({session.config.model})")
        return session

    def select(self, session_id: str) -> bool:
        if self.get(session_id) is None:
            return False
        self.active_id = session_id
        return True

    def delete(self, session_id: str) -> bool:
        session = self.get(session_id)
        if session is None:
            return False

        self.sessions.remove(session)
        logger.info(f"Deleted session {session_id}")
        if not self.sessions:
            self.create()
            return True
        if self.active_id == session_id:
            self.active_id = self.sessions[0].id
        self.save()
        return True

    def update(self, session_id: str, patch: dict[str, Any] | None = None, **changes) -> ChatSession | None:
        """Merge ``patch`` into a session.

        ``config`` and ``variables`` are merged key by key; a ``None`` variable
        value removes that variable. Unknown session ids are ignored.
        """
        session = self.get(session_id)
        if session is None:
            return None

        patch = {**(patch or {}), **changes}
        unknown = set(patch) - set(SESSION_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")

        if "config" in patch:
            aliases = {f.alias: name for name, f in GenerationConfig.model_fields.items() if f.alias}
            config_patch = {aliases.get(k, k): v for k, v in (patch["config"] or {}).items()}
            merged = {**session.config.model_dump(), **config_patch}
            session.config = GenerationConfig.model_validate(merged)
        if "variables" in patch:
            variables = dict(session.variables)
            for key, value in (patch["variables"] or {}).items():
                if value is None:
                    variables.pop(key, None)
                else:
                    variables[key] = str(value)
            session.variables = variables
        if "title" in patch and patch["title"] is not None:
            session.title = patch["title"]
        if "system_instruction" in patch and patch["system_instruction"] is not None:
            session.system_instruction = patch["system_instruction"]

        session.touch()
        self.save()
        return session

    def append_message(self, session_id: str, message: ChatMessage) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        session.messages.append(message)
        session.touch()
        self.save()
        return True

    def truncate(self, session_id: str, message_id: str) -> int:
        """Remove ``message_id`` and every later message; returns how many went."""
        session = self.get(session_id)
        if session is None:
            return 0
        index = next((i for i, m in enumerate(session.messages) if m.id == message_id), None)
        if index is None:
            return 0
        removed = len(session.messages) - index
        session.messages = session.messages[:index]
        session.touch()
        self.save()
        return removed
