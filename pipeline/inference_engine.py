from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from pipeline.models import Segment


@dataclass(frozen=True)
class TranscribeOptions:
    language: str | None = None
    return_timestamps: bool = True
    beam_size: int = 5
    task: str = "transcribe"


class InferenceEngine(ABC):
    """
    Opaque speech-recognition model. Not safe for concurrent use; callers
    go through InferenceCoordinator.
    """

    @abstractmethod
    def transcribe_chunk(self, samples: np.ndarray, options: TranscribeOptions) -> list[Segment]:
        """
        Transcribe one window of 16kHz mono samples.
        Returned segment times are relative to the start of `samples`.
        """
        pass
