import logging
import subprocess
import uuid
from pathlib import Path

import numpy as np
import soundfile as sf

from pipeline.errors import DecodeError
from sources.audio_buffer import SAMPLE_RATE, AudioBuffer
from sources.decoder import AudioDecoder

logger = logging.getLogger(__name__)


class FfmpegDecoder(AudioDecoder):
    def __init__(self, temp_dir: str = "temp_decode", ffmpeg_bin: str = "ffmpeg"):
        self.temp_dir = Path(temp_dir)
        self.ffmpeg_bin = ffmpeg_bin

    def decode_to_canonical_pcm(self, path: str) -> AudioBuffer:
        src = Path(path)
        if not src.is_file():
            raise DecodeError(f"Audio file does not exist: {path}")

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        wav_path = self.temp_dir / f"decode_{uuid.uuid4().hex}.wav"

        try:
            self._convert(src, wav_path)
            return self.read_wav(str(wav_path))
        finally:
            if wav_path.exists():
                wav_path.unlink()

    def _convert(self, src: Path, wav_path: Path) -> None:
        cmd = [
            self.ffmpeg_bin,
            "-i",
            str(src),
            "-ar",
            str(SAMPLE_RATE),
            "-ac",
            "1",
            "-c:a",
            "pcm_s16le",
            "-y",
            str(wav_path),
            "-loglevel",
            "error",
        ]

        logger.info("Converting %s to %dHz mono PCM", src.name, SAMPLE_RATE)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise DecodeError(f"ffmpeg not found: {self.ffmpeg_bin}") from exc

        if result.returncode != 0 or not wav_path.exists():
            message = result.stderr.strip() or "ffmpeg failed to convert audio"
            raise DecodeError(f"Failed to decode {src.name}: {message}")

    @staticmethod
    def read_wav(wav_path: str) -> AudioBuffer:
        try:
            audio, sr = sf.read(wav_path, dtype="float32", always_2d=True)
        except RuntimeError as exc:
            raise DecodeError(f"Unreadable audio: {exc}") from exc

        if sr != SAMPLE_RATE:
            raise DecodeError(f"Audio sample rate must be {SAMPLE_RATE}Hz, got {sr}")

        # multi-channel input keeps the first channel only
        mono = np.clip(audio[:, 0], -1.0, 1.0)
        return AudioBuffer(samples=mono)
