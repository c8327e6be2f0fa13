import glob
import logging
import os
import uuid

import yt_dlp
from yt_dlp.utils import YoutubeDLError

from pipeline.errors import AcquisitionError
from sources.acquisition import Acquirer

logger = logging.getLogger(__name__)

DOUYIN_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/14.0 Mobile/15E148 Safari/604.1"
)


class YtDlpDownloader(Acquirer):
    def __init__(
        self,
        temp_dir: str = "temp_downloads",
        proxy: str | None = None,
    ):
        self.temp_dir = temp_dir
        self.proxy = proxy

    def download_to_local_file(self, url: str) -> str:
        os.makedirs(self.temp_dir, exist_ok=True)

        # yt-dlp picks the extension, so download to a unique base name
        base = os.path.join(os.path.abspath(self.temp_dir), f"audio_{uuid.uuid4().hex}")
        ydl_opts = self.build_options(url, base)

        logger.info("Downloading audio from %s", url)
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=True)
        except YoutubeDLError as exc:
            raise self.classify_error(str(exc)) from exc
        except OSError as exc:
            raise AcquisitionError(f"Download failed: {exc}", kind=AcquisitionError.NETWORK) from exc

        path = self._resolve_output_path(base, info)
        if path is None:
            raise AcquisitionError(
                "Audio download failed, make sure the link is valid and accessible",
                kind=AcquisitionError.NOT_FOUND,
            )

        logger.info("Downloaded %s to %s", url, path)
        return path

    def cleanup(self, path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as exc:
            logger.warning("Failed to remove downloaded file %s: %s", path, exc)

    def build_options(self, url: str, base: str) -> dict:
        ydl_opts = {
            "format": "bestaudio/best",
            "outtmpl": base + ".%(ext)s",
            "nopart": True,
            "overwrites": True,
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
        }

        if self.proxy:
            ydl_opts["proxy"] = self.proxy

        if self.is_douyin_url(url):
            ydl_opts["http_headers"] = {
                "User-Agent": DOUYIN_USER_AGENT,
                "Referer": "https://www.douyin.com/",
                "Cookie": "passport_csrf_token=1;",
            }

        return ydl_opts

    @staticmethod
    def is_douyin_url(url: str) -> bool:
        return "douyin.com" in url.lower()

    @staticmethod
    def classify_error(message: str) -> AcquisitionError:
        lowered = (message or "").lower()

        if "private" in lowered:
            return AcquisitionError(
                "The video is private and cannot be accessed",
                kind=AcquisitionError.PRIVATE,
            )

        if "unavailable" in lowered or "not found" in lowered or "404" in lowered:
            return AcquisitionError(
                "The video does not exist or has been removed",
                kind=AcquisitionError.NOT_FOUND,
            )

        detail = (message or "").strip() or "unknown error"
        return AcquisitionError(f"Download failed: {detail}", kind=AcquisitionError.NETWORK)

    def _resolve_output_path(self, base: str, info: dict | None) -> str | None:
        for download in (info or {}).get("requested_downloads") or []:
            candidate = download.get("filepath")
            if candidate and os.path.exists(candidate):
                return candidate

        matches = sorted(glob.glob(glob.escape(base) + ".*"))
        for candidate in matches:
            if os.path.getsize(candidate) > 0:
                return candidate
        return None
