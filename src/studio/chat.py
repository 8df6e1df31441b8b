import logging
import threading
from pathlib import Path

from common.events import ErrorEvent, EventCallback, EventEmitter
from common.text_template import detect_placeholders
from studio.capabilities import capabilities_of
from studio.client import GenerationClient, VideoClient
from studio.config import StudioConfig
from studio.errors import (
    GenerationError,
    GenerationInProgressError,
    StudioError,
    UnsupportedModelError,
)
from studio.models import ChatMessage, ChatSession, MediaFile, Part
from studio.request import build_request, build_video_request
from studio.response import interpret
from studio.sessions import SessionStore

logger = logging.getLogger(__name__)

TITLE_LENGTH = 30
MEDIA_TITLE = "Media Prompt"


def derive_title(text: str) -> str:
    return text.strip()[:TITLE_LENGTH] or MEDIA_TITLE


class ChatService:
    def __init__(
        self,
        store: SessionStore,
        config: StudioConfig | None = None,
        *,
        generation_client: GenerationClient | None = None,
        video_client: VideoClient | None = None,
        on_event: EventCallback = None,
    ):
        self.store = store
        self.config = config or StudioConfig()
        self._generation_client = generation_client
        self._video_client = video_client
        self.emitter = EventEmitter(on_event)
        self.attachments: list[MediaFile] = []
        self.generating = False

    @property
    def generation_client(self) -> GenerationClient:
        if self._generation_client is None:
            self._generation_client = GenerationClient(self.config)
        return self._generation_client

    @property
    def video_client(self) -> VideoClient:
        if self._video_client is None:
            self._video_client = VideoClient(self.config, on_event=self.emitter.emit)
        return self._video_client

    def close(self) -> None:
        for client in (self._generation_client, self._video_client):
            if client is not None:
                client.close()

    def attach(self, media: MediaFile) -> MediaFile:
        self.attachments.append(media)
        return media

    def attach_path(self, path: str | Path) -> MediaFile:
        return self.attach(MediaFile.from_path(path))

    def remove_attachment(self, media_id: str) -> bool:
        before = len(self.attachments)
        self.attachments = [a for a in self.attachments if a.id != media_id]
        return len(self.attachments) != before

    def placeholders(self, text: str = "", session_id: str | None = None) -> set[str]:
        session = self._session(session_id)
        return detect_placeholders(f"{session.system_instruction}\n{text}")

    def _session(self, session_id: str | None) -> ChatSession:
        session = self.store.get(session_id) if session_id else self.store.active
        if session is None:
            raise StudioError(f"No such session: {session_id}" if session_id else "No active session")
        return session

    def send(
        self,
        text: str = "",
        session_id: str | None = None,
        cancel: threading.Event | None = None,
    ) -> ChatMessage | None:
        """Send the pending input and append the exchange on success.

        Nothing is appended when generation fails.
        """
        session = self._session(session_id)
        text = text or ""
        if not text.strip() and not self.attachments:
            return None
        if self.generating:
            raise GenerationInProgressError("A generation is already in progress")

        caps = capabilities_of(session.config.model)
        if caps.is_live_audio:
            raise UnsupportedModelError(
                f"{session.config.model} only supports realtime audio sessions; "
                "switch to a text, image or video model to chat."
            )

        parts: list[Part] = []
        if text.strip():
            parts.append(Part.from_text(text))
        parts.extend(a.to_part() for a in self.attachments)
        user_message = ChatMessage(role="user", parts=parts)
        first_exchange = not session.messages

        self.generating = True
        try:
            if caps.is_video_output:
                reply = self._generate_video(session, parts, cancel)
            else:
                reply = self._generate_content(session, parts)
        except StudioError as e:
            logger.error(f"Generation failed for session {session.id}: {e}")
            self.emitter.emit(ErrorEvent(message=str(e), source="generation"))
            raise
        finally:
            self.generating = False

        self.store.append_message(session.id, user_message)
        self.store.append_message(session.id, reply)
        if first_exchange:
            self.store.update(session.id, title=derive_title(text))
        self.attachments = []
        return reply

    def _generate_content(self, session: ChatSession, parts: list[Part]) -> ChatMessage:
        request = build_request(session, parts)
        raw = self.generation_client.generate(request)
        result = interpret(raw)
        if result.is_empty:
            reason = result.block_reason or result.finish_reason or "no content"
            raise GenerationError(f"The model returned an empty response ({reason})")

        reply_parts: list[Part] = []
        if result.text:
            reply_parts.append(Part.from_text(result.text))
        if result.image_part is not None:
            reply_parts.append(result.image_part)
        return ChatMessage(role="model", parts=reply_parts, citations=result.citations)

    def _generate_video(
        self,
        session: ChatSession,
        parts: list[Part],
        cancel: threading.Event | None,
    ) -> ChatMessage:
        request = build_video_request(session, parts)
        uri = self.video_client.generate(request, cancel=cancel)
        return ChatMessage(
            role="model",
            parts=[Part.from_text(f"Generated video for: {request.prompt}")],
            video_url=uri,
        )
