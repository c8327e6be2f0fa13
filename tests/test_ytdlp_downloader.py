import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch
import sys

from yt_dlp.utils import DownloadError

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pipeline.errors import AcquisitionError
from sources.ytdlp_downloader import YtDlpDownloader


class TestYtDlpDownloader(unittest.TestCase):
    def test_classify_error(self) -> None:
        private = YtDlpDownloader.classify_error("ERROR: This video is private")
        missing = YtDlpDownloader.classify_error("ERROR: Video unavailable")
        http404 = YtDlpDownloader.classify_error("HTTP Error 404")
        network = YtDlpDownloader.classify_error("Connection reset by peer")

        self.assertEqual(private.kind, AcquisitionError.PRIVATE)
        self.assertEqual(missing.kind, AcquisitionError.NOT_FOUND)
        self.assertEqual(http404.kind, AcquisitionError.NOT_FOUND)
        self.assertEqual(network.kind, AcquisitionError.NETWORK)
        self.assertIn("Connection reset by peer", str(network))

    def test_douyin_options(self) -> None:
        downloader = YtDlpDownloader(proxy="http://127.0.0.1:7890")

        opts = downloader.build_options("https://www.douyin.com/video/123", "/tmp/audio_x")

        self.assertEqual(opts["outtmpl"], "/tmp/audio_x.%(ext)s")
        self.assertEqual(opts["proxy"], "http://127.0.0.1:7890")
        self.assertEqual(opts["http_headers"]["Referer"], "https://www.douyin.com/")
        self.assertIn("iPhone", opts["http_headers"]["User-Agent"])

    def test_plain_options(self) -> None:
        opts = YtDlpDownloader().build_options("https://www.youtube.com/watch?v=abc", "/tmp/a")

        self.assertNotIn("proxy", opts)
        self.assertNotIn("http_headers", opts)
        self.assertTrue(opts["noplaylist"])

    def test_download_returns_written_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            downloader = YtDlpDownloader(temp_dir=tmp)

            def extract_info(url, download):
                base = downloader_opts["outtmpl"].replace(".%(ext)s", "")
                path = base + ".m4a"
                Path(path).write_bytes(b"audio")
                return {"requested_downloads": [{"filepath": path}]}

            downloader_opts = {}
            ydl = MagicMock()
            ydl.__enter__.return_value = ydl
            ydl.extract_info.side_effect = extract_info

            def make_ydl(opts):
                downloader_opts.update(opts)
                return ydl

            with patch("sources.ytdlp_downloader.yt_dlp.YoutubeDL", side_effect=make_ydl):
                path = downloader.download_to_local_file("https://example.com/v/1")

            self.assertTrue(os.path.exists(path))
            self.assertTrue(path.endswith(".m4a"))

            downloader.cleanup(path)
            self.assertFalse(os.path.exists(path))
            # already gone
            downloader.cleanup(path)

    def test_download_error_is_classified(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            downloader = YtDlpDownloader(temp_dir=tmp)
            ydl = MagicMock()
            ydl.__enter__.return_value = ydl
            ydl.extract_info.side_effect = DownloadError("ERROR: Private video")

            with patch("sources.ytdlp_downloader.yt_dlp.YoutubeDL", return_value=ydl):
                with self.assertRaises(AcquisitionError) as ctx:
                    downloader.download_to_local_file("https://example.com/v/2")

        self.assertEqual(ctx.exception.kind, AcquisitionError.PRIVATE)

    def test_missing_output_is_not_found(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            downloader = YtDlpDownloader(temp_dir=tmp)
            ydl = MagicMock()
            ydl.__enter__.return_value = ydl
            ydl.extract_info.return_value = {}

            with patch("sources.ytdlp_downloader.yt_dlp.YoutubeDL", return_value=ydl):
                with self.assertRaises(AcquisitionError) as ctx:
                    downloader.download_to_local_file("https://example.com/v/3")

        self.assertEqual(ctx.exception.kind, AcquisitionError.NOT_FOUND)


if __name__ == "__main__":
    unittest.main()
