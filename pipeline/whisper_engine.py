import logging

import numpy as np
import torch
from transformers import pipeline

from pipeline.errors import InferenceError, ModelInitError
from pipeline.inference_engine import InferenceEngine, TranscribeOptions
from pipeline.models import Segment
from sources.audio_buffer import SAMPLE_RATE

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openai/whisper-medium"


class WhisperEngine(InferenceEngine):
    def __init__(self, model_name: str = DEFAULT_MODEL, device: str | None = None):
        self.model_name = model_name
        self.device = torch.device(device) if device else self._pick_device()

        logger.info("Loading Whisper model %s on %s", model_name, self.device)
        try:
            self._pipe = pipeline(
                "automatic-speech-recognition",
                model=model_name,
                device=self.device,
                torch_dtype=torch.float16 if self.device.type in ("cuda", "mps") else torch.float32,
            )
        except Exception as exc:
            raise ModelInitError(f"Failed to load {model_name}: {exc}") from exc
        logger.info("Whisper model loaded")

    def _pick_device(self) -> torch.device:
        if torch.backends.mps.is_available():
            return torch.device("mps")
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")

    def transcribe_chunk(self, samples: np.ndarray, options: TranscribeOptions) -> list[Segment]:
        audio = np.array(samples, dtype=np.float32, copy=True)
        duration = len(audio) / float(SAMPLE_RATE)

        generate_kwargs = {
            "task": options.task,
            "num_beams": options.beam_size,
            "do_sample": False,
        }
        if options.language:
            generate_kwargs["language"] = options.language

        try:
            with torch.no_grad():
                output = self._pipe(
                    {"raw": audio, "sampling_rate": SAMPLE_RATE},
                    return_timestamps=options.return_timestamps,
                    generate_kwargs=generate_kwargs,
                )
        except Exception as exc:
            raise InferenceError(f"Whisper inference failed: {exc}") from exc

        return self.segments_from_output(output, duration)

    @staticmethod
    def segments_from_output(output: dict, duration: float) -> list[Segment]:
        """
        Convert pipeline output to chunk-relative segments.

        Whisper leaves the end of the final segment open (None) when the
        window cuts speech off; it is clamped to the window duration.
        """
        chunks = output.get("chunks")
        if chunks is None:
            text = str(output.get("text") or "").strip()
            return [Segment(text=text, start_time=0.0, end_time=duration)] if text else []

        segments: list[Segment] = []
        for item in chunks:
            text = str(item.get("text") or "").strip()
            if not text:
                continue

            start, end = (tuple(item.get("timestamp") or ()) + (None, None))[:2]
            start = float(start) if start is not None else 0.0
            end = float(end) if end is not None else duration
            end = max(end, start)

            segments.append(Segment(text=text, start_time=start, end_time=end))

        return segments
