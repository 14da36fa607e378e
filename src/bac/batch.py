"""Batch collection and source scanning (standard library only)."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator, List

from loguru import logger

from .models import SUPPORTED_FORMATS, AudioFile, extension_of


def is_audio_file(name: str) -> bool:
    return extension_of(name) in SUPPORTED_FORMATS


def scan_audio_files(root: Path, *, recursive: bool = False) -> List[Path]:
    """Supported audio files under root, sorted by path."""
    root = Path(root).expanduser().resolve()
    found: List[Path] = []
    if recursive:
        for dirpath, _, filenames in os.walk(root):
            for name in filenames:
                if is_audio_file(name):
                    found.append(Path(dirpath) / name)
    else:
        for entry in root.iterdir():
            if entry.is_file() and is_audio_file(entry.name):
                found.append(entry)
    return sorted(found)


class Batch:
    """Files accepted for the next conversion run, in the order they were added.

    Only supported extensions are accepted and each resolved path appears at
    most once.
    """

    def __init__(self) -> None:
        self._files: List[AudioFile] = []

    def __len__(self) -> int:
        return len(self._files)

    def __iter__(self) -> Iterator[AudioFile]:
        return iter(self._files)

    @property
    def files(self) -> List[AudioFile]:
        return list(self._files)

    def contains(self, path: Path | str) -> bool:
        p = Path(path).expanduser().resolve()
        return any(f.path == p for f in self._files)

    def add(self, path: Path | str) -> bool:
        """Accept one file; return False when rejected or already present."""
        p = Path(path).expanduser().resolve()
        if not is_audio_file(p.name):
            logger.debug(f"skipping unsupported file: {p}")
            return False
        if self.contains(p):
            return False
        self._files.append(AudioFile.from_path(p))
        return True

    def add_all(self, paths: Iterable[Path | str]) -> int:
        return sum(1 for p in paths if self.add(p))

    def add_inputs(self, inputs: Iterable[Path | str], *, recursive: bool = False) -> int:
        """Accept files and directories; directories contribute their audio files."""
        added = 0
        for item in inputs:
            p = Path(item).expanduser()
            if p.is_dir():
                added += self.add_all(scan_audio_files(p, recursive=recursive))
            else:
                added += int(self.add(p))
        return added

    def remove(self, path: Path | str) -> bool:
        p = Path(path).expanduser().resolve()
        before = len(self._files)
        self._files = [f for f in self._files if f.path != p]
        return len(self._files) != before

    def clear(self) -> None:
        self._files.clear()

    def requeue(self) -> None:
        """Replace every entry with a fresh Pending AudioFile for another run."""
        self._files = [AudioFile.from_path(f.path) for f in self._files]
