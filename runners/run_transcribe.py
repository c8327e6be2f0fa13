from pathlib import Path
from threading import Event, Thread
import argparse
import json
import logging
import os
import sys

from dotenv import load_dotenv
from tqdm import tqdm

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

load_dotenv(ROOT_DIR / ".env")

from backend import config
from pipeline.chunk_scheduler import ChunkScheduler
from pipeline.events import STATUS_ERROR, ProgressChannel, ProgressEvent
from pipeline.inference_coordinator import InferenceCoordinator
from pipeline.inference_engine import TranscribeOptions
from pipeline.job_orchestrator import JobOrchestrator
from pipeline.models import TranscriptionJob, TranscriptionResult
from pipeline.whisper_engine import WhisperEngine
from sources.ffmpeg_decoder import FfmpegDecoder
from sources.media_source import FileSource, UrlSource
from sources.ytdlp_downloader import YtDlpDownloader

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

# log lines would tear through the progress bar
DEFAULT_LOG_LEVEL = "WARNING"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Transcribe a local media file or a video URL")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--file", help="Path to a local audio or video file")
    target.add_argument("--url", help="Video URL to download and transcribe")
    parser.add_argument("--language", default=None, help="Language hint, e.g. chinese or english")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    return parser.parse_args(argv)


def build_orchestrator() -> JobOrchestrator:
    coordinator = InferenceCoordinator(
        engine_factory=lambda: WhisperEngine(
            model_name=config.WHISPER_MODEL,
            device=config.WHISPER_DEVICE,
        ),
        options=TranscribeOptions(
            language=config.WHISPER_LANGUAGE,
            beam_size=config.WHISPER_BEAM_SIZE,
        ),
    )

    return JobOrchestrator(
        coordinator=coordinator,
        acquirer=YtDlpDownloader(temp_dir=config.TEMP_DOWNLOAD_DIR, proxy=config.DOWNLOAD_PROXY),
        decoder=FfmpegDecoder(temp_dir=config.TEMP_DECODE_DIR),
        scheduler=ChunkScheduler(
            chunk_seconds=config.CHUNK_SECONDS,
            overlap_seconds=config.OVERLAP_SECONDS,
        ),
        max_attempts=config.MAX_ATTEMPTS,
        retry_delay_seconds=config.RETRY_DELAY_SECONDS,
    )


def render(event: ProgressEvent, bar: tqdm) -> None:
    if event.status == STATUS_ERROR:
        bar.write(f"[attempt {event.attempt}] {event.message}")
        return

    bar.set_description(event.status)
    if event.progress is not None:
        # a retry starts the bar over
        bar.n = event.progress.percent
        bar.refresh()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    source = FileSource(path=args.file) if args.file else UrlSource(url=args.url)
    job = TranscriptionJob.create(source, language=args.language)
    channel = ProgressChannel()
    cancel_event = Event()
    outcome: dict[str, TranscriptionResult] = {}

    orchestrator = build_orchestrator()

    def worker() -> None:
        try:
            outcome["result"] = orchestrator.run(job, channel, cancel_event)
        except Exception as exc:
            outcome["result"] = TranscriptionResult.failed(f"Internal error: {exc}")
        finally:
            channel.close()

    thread = Thread(target=worker, name="transcribe", daemon=True)
    thread.start()

    seen = 0
    with tqdm(total=100, unit="%", bar_format="{desc}: {percentage:3.0f}%|{bar}| {elapsed}") as bar:
        try:
            while True:
                batch = channel.wait_for_events(after=seen, timeout=0.5)
                for event in batch:
                    render(event, bar)
                seen += len(batch)
                if channel.closed and len(channel) == seen:
                    break
        except KeyboardInterrupt:
            bar.write("Cancelling...")
            cancel_event.set()

    thread.join()
    result = outcome.get("result") or TranscriptionResult.failed("Job did not finish")

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    elif result.success:
        print(result.text)
    else:
        print(f"Error: {result.error}", file=sys.stderr)

    if result.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK if result.success else EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
