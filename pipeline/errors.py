class TranscriptionError(Exception):
    """Base class for failures a transcription job can run into."""

    retryable = False


class AcquisitionError(TranscriptionError):
    NOT_FOUND = "not_found"
    PRIVATE = "private"
    NETWORK = "network"

    def __init__(self, message: str, kind: str = NETWORK):
        super().__init__(message)
        self.kind = kind


class DecodeError(TranscriptionError):
    pass


class ModelInitError(TranscriptionError):
    retryable = True


class InferenceError(TranscriptionError):
    retryable = True


class JobCancelledError(TranscriptionError):
    pass
