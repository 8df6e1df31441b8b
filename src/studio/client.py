import logging
import threading
from pathlib import Path
from typing import Any

import httpx

from common.events import EventCallback, EventEmitter, ProgressEvent, VideoJobEvent
from studio.config import StudioConfig
from studio.errors import GenerationError, VideoCancelledError, VideoTimeoutError
from studio.request import NormalizedRequest, VideoRequest

logger = logging.getLogger(__name__)

VIDEO_DEFAULTS = {
    "sampleCount": 1,
    "resolution": "720p",
    "aspectRatio": "16:9",
}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or response.reason_phrase
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text[:500]


class _GeminiTransport:
    def __init__(self, config: StudioConfig, http: httpx.Client | None = None):
        self.config = config
        self._client = http

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.request_timeout_s)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def _url(self, path: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        headers = {"x-goog-api-key": self.config.require_api_key()}
        try:
            response = self.client.request(method, self._url(path), headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = _error_message(e.response)
            logger.error(f"Generation service returned {status}: {message}")
            if status == 400:
                message = (
                    "API Argument Error (400): Please check your settings for this model. "
                    f"{message}"
                )
            raise GenerationError(message, status_code=status) from e
        except httpx.RequestError as e:
            logger.error(f"Generation request failed: {e}")
            raise GenerationError(f"Network error talking to the generation service: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise GenerationError("Generation service returned a non-JSON body") from e


class GenerationClient(_GeminiTransport):
    def generate(self, request: NormalizedRequest) -> dict[str, Any]:
        logger.debug(f"generateContent model={request.model} contents={len(request.contents)}")
        return self._request(
            "POST",
            f"models/{request.model}:generateContent",
            json=request.to_wire(),
        )


class VideoClient(_GeminiTransport):
    """Long-running video jobs: submit once, then poll until done.

    Polling is capped by ``video_max_polls`` and can be aborted through a
    ``threading.Event``.
    """

    def __init__(
        self,
        config: StudioConfig,
        http: httpx.Client | None = None,
        *,
        on_event: EventCallback = None,
    ):
        super().__init__(config, http)
        self.emitter = EventEmitter(on_event)

    def submit(self, request: VideoRequest) -> dict[str, Any]:
        body = {"instances": [{"prompt": request.prompt}], "parameters": dict(VIDEO_DEFAULTS)}
        operation = self._request("POST", f"models/{request.model}:predictLongRunning", json=body)
        logger.info(f"Submitted video job {operation.get('name')}")
        return operation

    def poll(self, operation_name: str) -> dict[str, Any]:
        return self._request("GET", operation_name)

    def generate(self, request: VideoRequest, cancel: threading.Event | None = None) -> str:
        cancel = cancel or threading.Event()
        operation = self.submit(request)
        name = operation.get("name", "")
        polls = 0

        while not operation.get("done"):
            if polls >= self.config.video_max_polls:
                raise VideoTimeoutError(
                    f"Video job {name} not finished after {polls} status checks"
                )
            if cancel.wait(self.config.video_poll_interval_s):
                raise VideoCancelledError(f"Video job {name} cancelled")
            operation = self.poll(name)
            polls += 1
            self.emitter.emit(VideoJobEvent(operation=name, done=bool(operation.get("done")), polls=polls))
            self.emitter.emit(
                ProgressEvent(stage="video", current=polls, total=self.config.video_max_polls)
            )

        if operation.get("error"):
            message = (operation["error"] or {}).get("message") or "video job failed"
            raise GenerationError(f"Video job {name} failed: {message}")

        uri = video_uri(operation)
        if not uri:
            raise GenerationError(f"Video job {name} finished without a video")
        logger.info(f"Video job {name} finished after {polls} polls")
        return uri

    def download(self, uri: str, dest: str | Path) -> Path:
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        # Keep the URI's own query (alt=media) and add the key to it.
        url = httpx.URL(uri).copy_merge_params({"key": self.config.require_api_key()})
        try:
            with self.client.stream("GET", url, follow_redirects=True) as response:
                response.raise_for_status()
                with open(dest, "wb") as handle:
                    for chunk in response.iter_bytes():
                        handle.write(chunk)
        except httpx.HTTPError as e:
            raise GenerationError(f"Could not download video: {e}") from e
        return dest


def video_uri(operation: dict[str, Any]) -> str | None:
    response = operation.get("response") or {}
    samples = (response.get("generateVideoResponse") or {}).get("generatedSamples")
    if samples is None:
        samples = response.get("generatedVideos")
    for sample in samples or []:
        uri = ((sample or {}).get("video") or {}).get("uri")
        if uri:
            return uri
    return None
