from dataclasses import dataclass

import numpy as np

SAMPLE_RATE = 16000
CHANNELS = 1


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    samples: np.ndarray            # mono float32 in [-1, 1]
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS

    def __post_init__(self) -> None:
        if self.sample_rate != SAMPLE_RATE:
            raise ValueError(f"Expected {SAMPLE_RATE}Hz audio, got {self.sample_rate}")
        if self.channels != CHANNELS:
            raise ValueError(f"Expected mono audio, got {self.channels} channels")

        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim != 1:
            raise ValueError(f"Expected 1-D samples, got shape {samples.shape}")

        samples = samples.copy() if samples.flags.writeable else samples
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_seconds(self) -> float:
        return len(self) / float(self.sample_rate)

    @classmethod
    def empty(cls) -> "AudioBuffer":
        return cls(samples=np.zeros((0,), dtype=np.float32))
