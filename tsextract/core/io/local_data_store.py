from pathlib import Path
from typing import Union

from .data_store import DataStore


class LocalDataStore(DataStore):
    """Files on the local filesystem, optionally relative to ``base_path``."""

    def __init__(self, base_path: Union[str, Path] = ""):
        self.base_path = Path(base_path).resolve()

    def _full_path(self, path: Union[str, Path]) -> Path:
        # absolute paths ignore base_path
        return self.base_path / path

    def read_file(self, path: str) -> bytes:
        return self._full_path(path).read_bytes()

    def file_exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def local_path(self, path: str) -> str:
        return str(self._full_path(path))
