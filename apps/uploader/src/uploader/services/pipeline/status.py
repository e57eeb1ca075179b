from __future__ import annotations

import sys
from typing import Protocol, TextIO


class StatusSink(Protocol):
    def set_status(self, text: str) -> None: ...

    def set_progress(self, fraction: float) -> None: ...


def clamp_progress(fraction: float) -> float:
    return max(0.0, min(1.0, fraction))


class NullStatusSink:
    def set_status(self, text: str) -> None:
        del text

    def set_progress(self, fraction: float) -> None:
        del fraction


class ConsoleStatusSink:
    def __init__(self, *, prefix: str = "doc-upload", stream: TextIO | None = None) -> None:
        self._prefix = prefix
        self._stream = stream or sys.stdout
        self._last_percent: int | None = None

    def set_status(self, text: str) -> None:
        print(f"[{self._prefix}] {text}", file=self._stream, flush=True)

    def set_progress(self, fraction: float) -> None:
        percent = round(clamp_progress(fraction) * 100)
        if percent == self._last_percent:
            return
        self._last_percent = percent
        print(f"[{self._prefix}] progress={percent}%", file=self._stream, flush=True)
