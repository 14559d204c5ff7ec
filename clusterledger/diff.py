"""Unified diff rendering of two topology texts."""

from __future__ import annotations

import difflib
import sys
from typing import Iterator, List, Optional, TextIO

from clusterledger.errors import DiffRenderError

RED = "\033[31m"
GREEN = "\033[32m"
CYAN = "\033[36m"
HI_YELLOW = "\033[93m"
RESET = "\033[0m"

def use_color(mode: str, stream: TextIO) -> bool:
    """Resolve an ``auto``/``always``/``never`` mode against ``stream``."""
    if mode == "always":
        return True
    if mode == "never":
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def paint(text: str, code: str) -> str:
    return f"{code}{text}{RESET}"


def build_diff(original: str, candidate: str, fromfile: str = "original",
               tofile: str = "new") -> List[str]:
    """Return unified diff lines (each ending in a newline)."""
    lines = difflib.unified_diff(
        original.splitlines(keepends=True),
        candidate.splitlines(keepends=True),
        fromfile=fromfile,
        tofile=tofile,
    )
    return [line if line.endswith("\n") else line + "\n" for line in lines]


def _colorize(lines: List[str]) -> Iterator[str]:
    for line in lines:
        if line.startswith(("---", "+++")):
            yield line
        elif line.startswith("@@"):
            yield paint(line.rstrip("\n"), CYAN) + "\n"
        elif line.startswith("-"):
            yield paint(line.rstrip("\n"), RED) + "\n"
        elif line.startswith("+"):
            yield paint(line.rstrip("\n"), GREEN) + "\n"
        else:
            yield line


class DiffPresenter:
    """
    Writes the change between two canonical texts to a sink.

    ``color`` is one of ``auto`` (colour only when the sink is a terminal),
    ``always`` or ``never``.
    """

    def __init__(self, sink: Optional[TextIO] = None, color: str = "auto") -> None:
        self._sink = sink
        self._color = color

    @property
    def sink(self) -> TextIO:
        return self._sink if self._sink is not None else sys.stdout

    def render(self, original_text: str, candidate_text: str) -> None:
        lines = build_diff(original_text, candidate_text)
        try:
            if use_color(self._color, self.sink):
                lines = list(_colorize(lines))
            self.sink.writelines(lines)
            self.sink.flush()
        except (OSError, ValueError) as exc:
            # ValueError: the sink was already closed.
            raise DiffRenderError(str(exc)) from exc
