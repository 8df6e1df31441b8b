class StudioError(Exception):
    pass


class UnknownModelError(StudioError, ValueError):
    def __init__(self, model: str):
        super().__init__(f"Unknown model: {model!r}")
        self.model = model


class UnsupportedModelError(StudioError):
    pass


class GenerationError(StudioError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GenerationInProgressError(StudioError):
    pass


class VideoTimeoutError(GenerationError):
    pass


class VideoCancelledError(GenerationError):
    pass
