from abc import ABC, abstractmethod

from sources.audio_buffer import AudioBuffer


class AudioDecoder(ABC):
    @abstractmethod
    def decode_to_canonical_pcm(self, path: str) -> AudioBuffer:
        """
        Decode any container/codec at `path` to 16kHz mono float32 PCM.
        Raises DecodeError if the input cannot be decoded or normalised.
        """
        pass
