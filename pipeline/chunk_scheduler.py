import math
from typing import Iterator

from pipeline.models import Chunk
from sources.audio_buffer import AudioBuffer


class ChunkScheduler:
    """
    Slices an AudioBuffer into overlapping fixed-length windows.

    Each window after the first re-reads the trailing `overlap_seconds` of
    the previous one. The last window may be shorter than `chunk_seconds`;
    windows are never padded.
    """

    def __init__(self, chunk_seconds: float = 30, overlap_seconds: float = 5):
        if chunk_seconds <= 0:
            raise ValueError("chunk_seconds must be positive")
        if overlap_seconds < 0:
            raise ValueError("overlap_seconds must not be negative")
        if overlap_seconds >= chunk_seconds:
            raise ValueError("overlap_seconds must be smaller than chunk_seconds")

        self.chunk_seconds = chunk_seconds
        self.overlap_seconds = overlap_seconds

    def window_samples(self, sample_rate: int) -> tuple[int, int]:
        chunk_samples = int(round(self.chunk_seconds * sample_rate))
        overlap_samples = int(round(self.overlap_seconds * sample_rate))
        if chunk_samples <= 0 or overlap_samples >= chunk_samples:
            raise ValueError(
                f"Window of {chunk_samples} samples with {overlap_samples} overlap is not schedulable"
            )
        return chunk_samples, overlap_samples

    def schedule(self, buffer: AudioBuffer) -> Iterator[Chunk]:
        """
        Lazily yield chunks in index order. The iterator is single-pass;
        calling schedule() again re-derives the same chunks.
        """
        chunk_samples, overlap_samples = self.window_samples(buffer.sample_rate)
        total = len(buffer)

        start = 0
        index = 0
        while total > 0:
            end = min(total, start + chunk_samples)
            yield Chunk(
                index=index,
                start_sample=start,
                end_sample=end,
                samples=buffer.samples[start:end],
            )

            if end == total:
                return

            start = end - overlap_samples
            index += 1

    def count(self, total_samples: int, sample_rate: int) -> int:
        """Number of chunks schedule() yields for a buffer of `total_samples`."""
        if total_samples <= 0:
            return 0

        chunk_samples, overlap_samples = self.window_samples(sample_rate)
        if total_samples <= chunk_samples:
            return 1

        stride = chunk_samples - overlap_samples
        remaining = total_samples - chunk_samples
        return 1 + math.ceil(remaining / stride)
