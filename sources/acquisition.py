from abc import ABC, abstractmethod


class Acquirer(ABC):
    @abstractmethod
    def download_to_local_file(self, url: str) -> str:
        """
        Fetch the media behind `url` and return a local file path.
        Raises AcquisitionError (not_found / private / network) on failure.
        """
        pass

    @abstractmethod
    def cleanup(self, path: str) -> None:
        """Remove a file previously returned by download_to_local_file."""
        pass
