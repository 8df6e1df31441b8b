import httpx
import pytest

from studio.config import StudioConfig
from studio.models import ChatMessage, ChatSession, GenerationConfig, Part
from studio.sessions import MemorySnapshotStore, SessionStore


@pytest.fixture
def studio_config(tmp_path) -> StudioConfig:
    return StudioConfig(
        api_key="test-key",
        api_base="https://api.test/v1beta",
        data_dir=str(tmp_path),
        request_timeout_s=5.0,
        video_poll_interval_s=0.0,
        video_max_polls=3,
    )


@pytest.fixture
def memory_store() -> SessionStore:
    return SessionStore.open(MemorySnapshotStore())


@pytest.fixture
def chat_session() -> ChatSession:
    return ChatSession(
        title="Greeting",
        system_instruction="You help {{user}} with {{topic}}.",
        variables={"user": "Ada", "topic": "maths"},
        config=GenerationConfig(model="gemini-3-flash-preview", max_output_tokens=1000),
        messages=[
            ChatMessage(role="user", parts=[Part.from_text("Hi, I am {{user}}")]),
            ChatMessage(role="model", parts=[Part.from_text("Hello {{user}}, literally")]),
        ],
    )


def text_response(text: str, **candidate) -> dict:
    return {
        "candidates": [
            {
                "content": {"role": "model", "parts": [{"text": text}]},
                "finishReason": "STOP",
                **candidate,
            }
        ]
    }


class RecordingTransport:
    """Serves queued JSON replies and remembers every request it saw."""

    def __init__(self, replies: list[tuple[int, dict]]):
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.replies.pop(0)
        return httpx.Response(status, json=body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def make_transport():
    def _make(*replies: tuple[int, dict]) -> RecordingTransport:
        return RecordingTransport(list(replies))

    return _make


@pytest.fixture
def reply_with_text():
    return text_response
