import os
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"

TEMP_DOWNLOAD_DIR = str(DATA_DIR / "temp_downloads")
TEMP_UPLOAD_DIR = str(DATA_DIR / "temp_uploads")
TEMP_DECODE_DIR = str(DATA_DIR / "temp_decode")

WHISPER_MODEL = os.getenv("WHISPER_MODEL", "openai/whisper-medium")
# empty string = let Whisper detect the language
WHISPER_LANGUAGE = os.getenv("WHISPER_LANGUAGE", "chinese").strip() or None
WHISPER_DEVICE = os.getenv("WHISPER_DEVICE", "").strip() or None
WHISPER_BEAM_SIZE = int(os.getenv("WHISPER_BEAM_SIZE", "5"))

CHUNK_SECONDS = float(os.getenv("CHUNK_SECONDS", "30"))
OVERLAP_SECONDS = float(os.getenv("OVERLAP_SECONDS", "5"))
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "3"))
RETRY_DELAY_SECONDS = float(os.getenv("RETRY_DELAY_SECONDS", "1.0"))

JOB_HISTORY_LIMIT = int(os.getenv("JOB_HISTORY_LIMIT", "100"))

DOWNLOAD_PROXY = (
    os.getenv("HTTPS_PROXY")
    or os.getenv("https_proxy")
    or os.getenv("HTTP_PROXY")
    or os.getenv("http_proxy")
    or None
)
