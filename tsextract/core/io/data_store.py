from abc import ABC, abstractmethod
from typing import Optional


class DataStore(ABC):
    """
    Storage backend that raster stacks and vector datasets are read from.

    Backends without a filesystem GDAL can open return ``None`` from
    ``local_path``; their files are then read fully into memory.
    """

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """
        Return the raw bytes stored at ``path``.

        Raises:
            IOError: If the file cannot be read
        """
        pass

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Whether ``path`` names an existing file in the store."""
        pass

    def local_path(self, path: str) -> Optional[str]:
        """Filesystem path of ``path`` if GDAL can open it directly, else None."""
        return None
