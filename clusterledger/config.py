"""
Runtime settings for clusterledger.

Values come from the environment (a ``.env`` file is honoured when the CLI
calls ``load_dotenv`` first):

    CLUSTERLEDGER_HOME         storage root (default: ~/.clusterledger)
    CLUSTERLEDGER_MAX_BACKUPS  metadata backups kept per cluster (default: 10)
    CLUSTERLEDGER_COLOR        diff colouring: auto, always or never (default: auto)
    CLUSTERLEDGER_PROG         program name shown in follow-up hints (default: clusterctl)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

COLOR_MODES = ("auto", "always", "never")


def _default_home() -> Path:
    return Path(os.path.expanduser("~/.clusterledger"))


@dataclass
class Settings:
    home: Path = field(default_factory=_default_home)
    max_backups: int = 10
    color: str = "auto"
    prog: str = "clusterctl"

    def validate(self) -> None:
        if self.max_backups < 0:
            raise ValueError(f"CLUSTERLEDGER_MAX_BACKUPS must be >= 0, got {self.max_backups}")
        if self.color not in COLOR_MODES:
            raise ValueError(
                f"CLUSTERLEDGER_COLOR must be one of {', '.join(COLOR_MODES)}, got '{self.color}'"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        settings = cls()

        home = env.get("CLUSTERLEDGER_HOME", "").strip()
        if home:
            settings.home = Path(os.path.expanduser(home))

        raw_backups = env.get("CLUSTERLEDGER_MAX_BACKUPS", "").strip()
        if raw_backups:
            try:
                settings.max_backups = int(raw_backups)
            except ValueError:
                raise ValueError(
                    f"CLUSTERLEDGER_MAX_BACKUPS must be an integer, got '{raw_backups}'"
                ) from None

        settings.color = env.get("CLUSTERLEDGER_COLOR", settings.color).strip().lower() or "auto"
        settings.prog = env.get("CLUSTERLEDGER_PROG", settings.prog).strip() or "clusterctl"
        settings.validate()
        return settings
