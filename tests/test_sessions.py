import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from studio.models import DEFAULT_SYSTEM_INSTRUCTION, ChatMessage, ModelType, Part
from studio.sessions import (
    JsonFileSnapshotStore,
    MemorySnapshotStore,
    SessionStore,
    validate_snapshot,
)


def _raw_session(session_id: str, messages: list | None = None) -> dict:
    return {
        "id": session_id,
        "title": f"Session {session_id}",
        "messages": messages or [],
        "systemInstruction": "Be brief.",
        "variables": {},
        "config": {"temperature": 0.3, "topP": 0.8, "topK": 20, "model": "gemini-3-pro-preview", "grounding": True},
        "lastModified": 1735689600000,
    }


class TestSessionStore:
    def test_open_empty_creates_default_session(self):
        store = SessionStore.open(MemorySnapshotStore())
        assert len(store) == 1
        session = store.active
        assert session is not None
        assert session.title == "New Prompt"
        assert session.system_instruction == DEFAULT_SYSTEM_INSTRUCTION
        assert session.config.model == ModelType.GEMINI_FLASH.value
        assert [s.category for s in session.config.safety_settings] == [
            "HATE_SPEECH",
            "HARASSMENT",
            "SEXUALLY_EXPLICIT",
            "DANGEROUS_CONTENT",
        ]
        assert {s.threshold for s in session.config.safety_settings} == {"BLOCK_MEDIUM_AND_ABOVE"}

    @pytest.mark.parametrize("snapshot", [None, [], "garbage", {"not": "a list"}, [1, "x"]])
    def test_missing_or_corrupt_snapshot_gives_one_session(self, snapshot):
        store = SessionStore.open(MemorySnapshotStore(snapshot))
        assert len(store) == 1
        assert store.active_id == store.sessions[0].id

    def test_create_becomes_active_and_is_first(self, memory_store):
        first = memory_store.active
        created = memory_store.create("Second", ModelType.GEMINI_PRO)
        assert memory_store.active_id == created.id
        assert memory_store.sessions[0] is created
        assert memory_store.sessions[1] is first
        assert created.config.model == "gemini-3-pro-preview"

    def test_select_unknown_is_noop(self, memory_store):
        active = memory_store.active_id
        assert memory_store.select("nope") is False
        assert memory_store.active_id == active

    def test_select_known(self, memory_store):
        first = memory_store.active_id
        memory_store.create("Other")
        assert memory_store.select(first) is True
        assert memory_store.active_id == first

    def test_delete_only_session_recreates_default(self, memory_store):
        only = memory_store.active_id
        assert memory_store.delete(only) is True
        assert len(memory_store) == 1
        assert memory_store.active_id is not None
        assert memory_store.active_id != only

    def test_delete_active_moves_to_first_remaining(self, memory_store):
        older = memory_store.active
        newer = memory_store.create("Newer")
        memory_store.delete(newer.id)
        assert memory_store.active_id == older.id

    def test_delete_inactive_keeps_active(self, memory_store):
        older = memory_store.active
        newer = memory_store.create("Newer")
        memory_store.delete(older.id)
        assert memory_store.active_id == newer.id
        assert memory_store.delete("missing") is False

    def test_update_merges_config_and_variables(self, memory_store):
        session = memory_store.active
        before = session.last_modified
        memory_store.update(session.id, config={"temperature": 0.2, "topK": 5}, variables={"a": "1", "b": "2"})
        memory_store.update(session.id, {"variables": {"a": None}, "title": "Renamed"})

        assert session.config.temperature == 0.2
        assert session.config.top_k == 5
        assert session.config.top_p == 0.9
        assert session.variables == {"b": "2"}
        assert session.title == "Renamed"
        assert session.last_modified >= before

    def test_update_rejects_invalid_values(self, memory_store):
        with pytest.raises(ValidationError):
            memory_store.update(memory_store.active_id, config={"temperature": 1.5})
        with pytest.raises(ValueError):
            memory_store.update(memory_store.active_id, messages=[])

    def test_update_unknown_id_is_noop(self, memory_store):
        assert memory_store.update("missing", title="x") is None

    def test_append_and_truncate(self, memory_store):
        session = memory_store.active
        first = ChatMessage(role="user", parts=[Part.from_text("one")])
        second = ChatMessage(role="model", parts=[Part.from_text("two")])
        assert memory_store.append_message(session.id, first)
        assert memory_store.append_message(session.id, second)
        assert memory_store.append_message("missing", first) is False

        assert memory_store.truncate(session.id, second.id) == 1
        assert [m.id for m in session.messages] == [first.id]

    def test_every_mutation_is_persisted(self):
        persistence = MemorySnapshotStore()
        store = SessionStore.open(persistence)
        store.update(store.active_id, title="Saved")
        assert persistence.snapshot[0]["title"] == "Saved"


class TestSnapshotValidation:
    def test_wrong_typed_part_is_dropped(self):
        raw = [
            _raw_session(
                "s1",
                [
                    {"id": "m1", "role": "user", "parts": [{"text": 123}, {"text": "ok"}], "timestamp": 1735689600000},
                ],
            )
        ]
        sessions = validate_snapshot(raw)
        assert len(sessions) == 1
        parts = sessions[0].messages[0].parts
        assert len(parts) == 1
        assert parts[0].text == "ok"

    def test_messages_without_valid_parts_are_dropped(self):
        raw = [
            _raw_session(
                "s1",
                [
                    {"id": "m1", "role": "user", "parts": [None, {}, {"inlineData": {"data": 5}}]},
                    {"id": "m2", "role": "model", "parts": [{"inlineData": {"data": "aGk=", "mimeType": "image/png"}}]},
                ],
            )
        ]
        messages = validate_snapshot(raw)[0].messages
        assert [m.id for m in messages] == ["m2"]
        assert messages[0].parts[0].inline_data.mime_type == "image/png"

    def test_invalid_message_does_not_discard_history(self):
        raw = [
            _raw_session(
                "s1",
                [
                    {"id": "m1", "role": "user", "parts": [{"text": "kept"}]},
                    {"id": "m2", "role": "assistant", "parts": [{"text": "bad role"}]},
                    {"id": "m3", "role": "model", "parts": [{"text": "also kept"}], "timestamp": "yesterday"},
                ],
            )
        ]
        sessions = validate_snapshot(raw)
        assert len(sessions) == 1
        assert [m.id for m in sessions[0].messages] == ["m1"]

    def test_stored_citations_without_uri_are_dropped(self):
        raw = [
            _raw_session(
                "s1",
                [
                    {
                        "id": "m1",
                        "role": "model",
                        "parts": [{"text": "cited"}],
                        "citations": [{"title": "x"}, {"uri": "https://a.example"}],
                    },
                    {"id": "m2", "role": "model", "parts": [{"text": "none"}], "citations": [{"title": "x"}]},
                ],
            )
        ]
        messages = validate_snapshot(raw)[0].messages
        assert [m.id for m in messages] == ["m1", "m2"]
        assert [(c.title, c.uri) for c in messages[0].citations] == [("Source", "https://a.example")]
        assert messages[1].citations is None

    def test_grounding_metadata_becomes_citations(self):
        raw = [
            _raw_session(
                "s1",
                [
                    {
                        "id": "m1",
                        "role": "model",
                        "parts": [{"text": "cited"}],
                        "groundingMetadata": {
                            "groundingChunks": [
                                {"web": {"uri": "https://a.example", "title": "A"}},
                                {"web": {"title": "no link"}},
                            ]
                        },
                    },
                ],
            )
        ]
        message = validate_snapshot(raw)[0].messages[0]
        assert [(c.title, c.uri) for c in message.citations] == [("A", "https://a.example")]
        assert "groundingMetadata" not in message.to_snapshot()

    def test_invalid_session_entries_are_skipped(self):
        good = _raw_session("good")
        bad = _raw_session("bad")
        bad["config"]["temperature"] = "hot"
        sessions = validate_snapshot([bad, "junk", good])
        assert [s.id for s in sessions] == ["good"]

    def test_browser_snapshot_fields(self):
        session = validate_snapshot([_raw_session("s1")])[0]
        assert session.system_instruction == "Be brief."
        assert session.config.top_p == 0.8
        assert session.config.grounding is True
        assert session.last_modified.year == 2025
        assert len(session.config.safety_settings) == 4


class TestJsonFileSnapshotStore:
    def test_round_trip(self, tmp_path: Path):
        path = tmp_path / "ai_studio_sessions.json"
        store = SessionStore.open(JsonFileSnapshotStore(path))
        session = store.active
        store.update(session.id, variables={"name": "Ada"})
        store.append_message(session.id, ChatMessage(role="user", parts=[Part.from_text("Hi {{name}}")]))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert list(data) == ["ai_studio_sessions"]
        stored = data["ai_studio_sessions"][0]
        assert stored["systemInstruction"] == DEFAULT_SYSTEM_INSTRUCTION
        assert stored["config"]["maxOutputTokens"] == 8192

        reloaded = SessionStore.open(JsonFileSnapshotStore(path))
        assert reloaded.active_id == session.id
        assert reloaded.active.variables == {"name": "Ada"}
        assert reloaded.active.messages[0].parts[0].text == "Hi {{name}}"

    def test_corrupt_file_recovers(self, tmp_path: Path):
        path = tmp_path / "ai_studio_sessions.json"
        path.write_text("{not json", encoding="utf-8")
        store = SessionStore.open(JsonFileSnapshotStore(path))
        assert len(store) == 1
        assert store.active is not None
