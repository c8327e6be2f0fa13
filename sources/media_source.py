from dataclasses import dataclass


@dataclass(frozen=True)
class FileSource:
    path: str
    # True when the file was created for this job (e.g. an upload) and
    # should be deleted once the job ends.
    temporary: bool = False

    @property
    def source_type(self) -> str:
        return "file"

    def describe(self) -> str:
        return self.path


@dataclass(frozen=True)
class UrlSource:
    url: str

    @property
    def source_type(self) -> str:
        return "url"

    def describe(self) -> str:
        return self.url


MediaSource = FileSource | UrlSource


def source_from_request(
    source_type: str,
    path: str | None = None,
    url: str | None = None,
) -> MediaSource:
    """
    Build a job source from a submission request ({sourceType, path?, url?}).
    Raises ValueError when the request does not name a usable source.
    """
    source_type = (source_type or "").strip().lower()

    if source_type == "file":
        path = (path or "").strip()
        if not path:
            raise ValueError("path is required for file sources")
        return FileSource(path=path)

    if source_type == "url":
        url = (url or "").strip()
        if not url:
            raise ValueError("url is required for url sources")
        if not url.lower().startswith(("http://", "https://")):
            raise ValueError(f"Unsupported url: {url}")
        return UrlSource(url=url)

    raise ValueError(f"Unknown source type: {source_type or '<empty>'}")
