import pytest

from common.events import ErrorEvent
from studio.chat import ChatService, derive_title
from studio.client import GenerationClient, VideoClient
from studio.errors import GenerationError, GenerationInProgressError, UnsupportedModelError
from studio.models import MediaFile, ModelType


def _service(memory_store, studio_config, transport, **kwargs) -> ChatService:
    http = transport.client()
    return ChatService(
        memory_store,
        studio_config,
        generation_client=GenerationClient(studio_config, http=http),
        video_client=VideoClient(studio_config, http=http),
        **kwargs,
    )


class TestChatService:
    def test_successful_send_appends_exchange(self, memory_store, studio_config, make_transport, reply_with_text):
        transport = make_transport((200, reply_with_text("Hi there")))
        service = _service(memory_store, studio_config, transport)

        reply = service.send("Hello model, how are you doing today?")

        session = memory_store.active
        assert reply.role == "model"
        assert reply.text == "Hi there"
        assert [m.role for m in session.messages] == ["user", "model"]
        assert session.title == "Hello model, how are you doing"
        assert service.generating is False

    def test_title_only_set_on_first_exchange(self, memory_store, studio_config, make_transport, reply_with_text):
        transport = make_transport((200, reply_with_text("a")), (200, reply_with_text("b")))
        service = _service(memory_store, studio_config, transport)
        service.send("first")
        service.send("second")
        assert memory_store.active.title == "first"
        assert len(memory_store.active.messages) == 4

    def test_empty_input_is_ignored(self, memory_store, studio_config, make_transport):
        service = _service(memory_store, studio_config, make_transport())
        assert service.send("   ") is None
        assert memory_store.active.messages == []

    def test_failure_appends_nothing(self, memory_store, studio_config, make_transport):
        transport = make_transport((500, {"error": {"message": "internal"}}))
        events = []
        service = _service(memory_store, studio_config, transport, on_event=events.append)
        media = service.attach(MediaFile.from_bytes(b"\x89PNG", "image/png", "a.png"))

        with pytest.raises(GenerationError):
            service.send("describe")

        assert memory_store.active.messages == []
        assert service.generating is False
        assert service.attachments == [media]
        assert isinstance(events[0], ErrorEvent)

    def test_empty_model_reply_is_a_failure(self, memory_store, studio_config, make_transport):
        transport = make_transport((200, {"candidates": [], "promptFeedback": {"blockReason": "SAFETY"}}))
        service = _service(memory_store, studio_config, transport)
        with pytest.raises(GenerationError, match="SAFETY"):
            service.send("something")
        assert memory_store.active.messages == []

    def test_attachments_become_inline_parts(self, memory_store, studio_config, make_transport, reply_with_text):
        transport = make_transport((200, reply_with_text("A cat")))
        service = _service(memory_store, studio_config, transport)
        service.attach(MediaFile.from_bytes(b"img", "image/png", "cat.png"))

        service.send("")

        user = memory_store.active.messages[0]
        assert user.parts[0].inline_data.data == "aW1n"
        assert user.parts[0].inline_data.mime_type == "image/png"
        assert memory_store.active.title == "Media Prompt"
        assert service.attachments == []

    def test_image_reply_and_citations(self, memory_store, studio_config, make_transport):
        raw = {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "Here"},
                            {"inlineData": {"data": "aW1n", "mimeType": "image/png"}},
                        ]
                    },
                    "groundingMetadata": {"groundingChunks": [{"web": {"uri": "https://s.test"}}]},
                }
            ]
        }
        service = _service(memory_store, studio_config, make_transport((200, raw)))
        reply = service.send("draw")
        assert reply.parts[0].text == "Here"
        assert reply.parts[1].inline_data.data == "aW1n"
        assert reply.citations[0].title == "Source"

    def test_live_model_rejected_before_network(self, memory_store, studio_config, make_transport):
        transport = make_transport()
        service = _service(memory_store, studio_config, transport)
        memory_store.update(memory_store.active_id, config={"model": ModelType.GEMINI_LIVE.value})

        with pytest.raises(UnsupportedModelError):
            service.send("hello")
        assert transport.requests == []

    def test_generation_in_progress(self, memory_store, studio_config, make_transport):
        service = _service(memory_store, studio_config, make_transport())
        service.generating = True
        with pytest.raises(GenerationInProgressError):
            service.send("again")

    def test_video_send(self, memory_store, studio_config, make_transport):
        transport = make_transport(
            (200, {"name": "operations/v1"}),
            (
                200,
                {
                    "name": "operations/v1",
                    "done": True,
                    "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "https://v.test/1"}}]}},
                },
            ),
        )
        service = _service(memory_store, studio_config, transport)
        memory_store.update(memory_store.active_id, config={"model": ModelType.VEO_VIDEO.value})

        reply = service.send("ocean at dawn")

        assert reply.video_url == "https://v.test/1"
        assert "ocean at dawn" in reply.text

    def test_placeholders_cover_system_and_input(self, memory_store, studio_config, make_transport):
        service = _service(memory_store, studio_config, make_transport())
        memory_store.update(memory_store.active_id, system_instruction="Act as {{role}}")
        assert service.placeholders("Tell {{name}} about {{role}}") == {"role", "name"}


def test_derive_title():
    assert derive_title("  short  ") == "short"
    assert derive_title("x" * 40) == "x" * 30
    assert derive_title("") == "Media Prompt"
