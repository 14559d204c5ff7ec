"""Operator confirmation gates."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from clusterledger.errors import ChangeCancelled

logger = logging.getLogger(__name__)

AFFIRMATIVE = frozenset({"y", "yes"})


class ConfirmationGate:
    """
    Yes/no decision point.

    ``confirm`` returns only on an explicit affirmative answer and raises
    ChangeCancelled otherwise, including when the prompt is interrupted.
    """

    def confirm(self, prompt: str) -> None:
        raise NotImplementedError


class TerminalConfirmationGate(ConfirmationGate):
    """Asks on the terminal; an empty answer means "no"."""

    def __init__(self, read: Optional[Callable[[str], str]] = None) -> None:
        self._read = read or input

    def confirm(self, prompt: str) -> None:
        try:
            answer = self._read(prompt)
        except (EOFError, KeyboardInterrupt) as exc:
            raise ChangeCancelled("Operation aborted by user (prompt interrupted)") from exc
        if answer.strip().lower() not in AFFIRMATIVE:
            logger.info("Operator answered %r, aborting", answer.strip())
            raise ChangeCancelled()
