from studio.capabilities import CapabilitySet, capabilities_of
from studio.chat import ChatService
from studio.models import ChatMessage, ChatSession, GenerationConfig, MediaFile, ModelType, Part
from studio.request import NormalizedRequest, VideoRequest, build_request, build_video_request
from studio.response import interpret
from studio.sessions import SessionStore

__version__ = "0.1.0"

__all__ = [
    "CapabilitySet",
    "capabilities_of",
    "ChatService",
    "ChatMessage",
    "ChatSession",
    "GenerationConfig",
    "MediaFile",
    "ModelType",
    "Part",
    "NormalizedRequest",
    "VideoRequest",
    "build_request",
    "build_video_request",
    "interpret",
    "SessionStore",
]
