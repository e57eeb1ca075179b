from __future__ import annotations

from collections.abc import Iterator
import os
from pathlib import Path
from typing import Protocol


class FileSource(Protocol):
    def iter_relative_paths(self) -> Iterator[str]: ...

    def read_bytes(self, relative_path: str) -> bytes: ...

    def read_head(self, relative_path: str, size: int) -> bytes: ...


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


class LocalFileSource:
    def __init__(self, root: Path) -> None:
        if not root.exists():
            raise FileNotFoundError(f"Documents directory does not exist: {root}")
        if not root.is_dir():
            raise NotADirectoryError(f"Documents path is not a directory: {root}")
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def iter_relative_paths(self) -> Iterator[str]:
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = [name for name in dirnames if not _is_hidden(name)]
            base = Path(dirpath)
            for filename in filenames:
                if _is_hidden(filename):
                    continue
                path = base / filename
                if not path.is_file():
                    continue
                found.append(path.relative_to(self._root).as_posix())
        yield from sorted(found)

    def _resolve(self, relative_path: str) -> Path:
        path = (self._root / relative_path).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise ValueError(f"Path escapes the documents directory: {relative_path}")
        return path

    def read_bytes(self, relative_path: str) -> bytes:
        return self._resolve(relative_path).read_bytes()

    def read_head(self, relative_path: str, size: int) -> bytes:
        with self._resolve(relative_path).open("rb") as handle:
            return handle.read(size)
