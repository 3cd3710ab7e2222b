import shutil
from pathlib import Path
from typing import Union

from photo2video.utils.logger import logger


class StorageError(Exception):
    pass


class LocalStorage:
    """Store generated assets on local disk and serve them under a public URL prefix"""

    def __init__(self, base_dir: Union[str, Path] = "./storage/public", base_url: str = "/storage"):
        self.base_dir = Path(base_dir)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, relative_path: str) -> Path:
        target = (self.base_dir / relative_path).resolve()
        # Keep every write inside the storage root
        if self.base_dir.resolve() not in target.parents:
            raise StorageError(f"Path escapes storage root: {relative_path}")
        return target

    def upload(self, source_path: Union[str, Path], destination: str) -> str:
        """Copy a local file into storage and return its public URL"""
        source = Path(source_path)
        if not source.is_file():
            raise StorageError(f"Source file not found: {source}")

        target = self._resolve(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)

        logger.info(f"Stored asset at {destination}")
        return self.get_url(destination)

    def get_url(self, relative_path: str) -> str:
        return f"{self.base_url}/{relative_path.lstrip('/')}"
